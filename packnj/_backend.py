"""
_backend.py
===========
Backend selection for the packnj compute kernels.

Two execution backends exist for the O(n^3) Neighbor-Joining Q-matrix and
pair scan and for the O(L^2 h) leaf distance matrix:

- 'python'       : numpy / pure-Python reference implementation
- 'cpu-parallel' : LLVM-compiled kernels (numba.njit + prange)

Both produce bit-identical results.  'best' resolves to the most optimized
backend unless a ``use_backend`` override is active.

Functions in this module have NO side effects - they only query state.
Logging is done by the calling code, not here.
"""

from typing import List

from packnj._context import get_backend_override


BACKENDS = ("python", "cpu-parallel")


def get_available_backends() -> List[str]:
    """
    Get list of available execution backends.

    Returns
    -------
    list[str]
        Available backends in preference order (last is best).

    Examples
    --------
    >>> get_available_backends()
    ['python', 'cpu-parallel']
    """
    return list(BACKENDS)


def get_best_backend() -> str:
    """
    Get the most optimized available backend.

    Examples
    --------
    >>> get_best_backend()
    'cpu-parallel'
    """
    return get_available_backends()[-1]


def resolve_backend(backend: str) -> str:
    """
    Resolve a backend specification to an actual backend.

    Parameters
    ----------
    backend : str
        Backend specification:
        - 'best': Use the ``use_backend`` override if one is active,
          otherwise the best available backend
        - 'python', 'cpu-parallel': Use specific backend

    Returns
    -------
    str
        Resolved backend name.

    Raises
    ------
    ValueError
        If the requested backend is unknown.

    Examples
    --------
    >>> resolve_backend('best')
    'cpu-parallel'

    >>> resolve_backend('python')
    'python'
    """
    if backend == "best":
        override = get_backend_override()
        if override is not None and override != "best":
            return override
        return get_best_backend()

    available = get_available_backends()
    if backend not in available:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(available)}"
        )

    return backend


def get_backend_info() -> dict:
    """
    Get comprehensive backend information.

    Returns
    -------
    dict
        Dictionary with keys:
        - 'numba_version': str
        - 'num_threads': int
        - 'backends': list[str]
        - 'best_backend': str

    Examples
    --------
    >>> info = get_backend_info()
    >>> info['backends']
    ['python', 'cpu-parallel']
    """
    import numba

    return {
        "numba_version": numba.__version__,
        "num_threads": numba.config.NUMBA_NUM_THREADS,
        "backends": get_available_backends(),
        "best_backend": get_best_backend(),
    }
