"""
_context.py
===========
Runtime configuration for packnj, as context managers.

There are no configuration files.  Two pieces of process-wide state can be
changed for the duration of a ``with`` block:

  * the level of the ``packnj`` loggers (``suppress_logger``, ``quiet``)
  * the backend that ``backend='best'`` resolves to (``use_backend``)

Each manager puts the previous value back when the block exits, whether it
exits normally or by an exception.
"""

import logging
from contextlib import contextmanager
from typing import Optional


# Backend forced by ``use_backend``; None means no override.
_backend_override = None

PACKAGE_LOGGER = "packnj"


# ============================================================================ #
# Logging Context Managers
# ============================================================================ #


@contextmanager
def suppress_logger(logger_name: str, level: int = logging.CRITICAL):
    """
    Set the level of logger *logger_name* to *level* inside the block.

    Parameters
    ----------
    logger_name : str
        Logger to adjust, e.g. ``'packnj._logging'``.
    level : int, default logging.CRITICAL
        Level applied inside the block.

    Examples
    --------
    >>> with suppress_logger('packnj._logging'):
    ...     tree = neighbor_joining(dists, labels)

    Notes
    -----
    The level in effect before entry is restored on exit, so blocks nest.
    """
    logger = logging.getLogger(logger_name)
    saved_level = logger.level

    try:
        logger.setLevel(level)
        yield
    finally:
        logger.setLevel(saved_level)


@contextmanager
def quiet(level: int = logging.CRITICAL):
    """
    Silence every packnj module inside the block.

    All module loggers are children of ``packnj`` and inherit its level.

    Examples
    --------
    >>> with quiet():
    ...     tree = neighbor_joining(dists, labels)

    >>> # keep negative-branch and multifurcation warnings
    >>> with quiet(logging.WARNING):
    ...     tree = neighbor_joining(dists, labels)
    """
    with suppress_logger(PACKAGE_LOGGER, level):
        yield


# ============================================================================ #
# Backend Context Managers
# ============================================================================ #


@contextmanager
def use_backend(backend: str):
    """
    Make ``backend='best'`` resolve to *backend* inside the block.

    Explicit backend arguments are not affected.

    Parameters
    ----------
    backend : str
        'python', 'cpu-parallel', or 'best' (no override).

    Raises
    ------
    ValueError
        If *backend* is not a known backend.

    Examples
    --------
    >>> with use_backend('python'):
    ...     labels, matrix = tree.distance_matrix()

    Notes
    -----
    The override is module-level state shared by all threads.  Pass
    ``backend=`` to ``distance_matrix()`` or ``neighbor_joining()`` instead
    when several threads pick different backends.
    """
    global _backend_override

    from packnj._backend import get_available_backends

    known = get_available_backends()
    if backend != "best" and backend not in known:
        raise ValueError(
            f"Backend '{backend}' not available. "
            f"Available backends: {', '.join(known)}"
        )

    previous = _backend_override
    try:
        _backend_override = backend
        yield
    finally:
        _backend_override = previous


def get_backend_override() -> Optional[str]:
    """
    Return the backend forced by ``use_backend``, or None outside any block.

    Examples
    --------
    >>> get_backend_override() is None
    True
    >>> with use_backend('python'):
    ...     get_backend_override()
    'python'
    """
    return _backend_override


# ============================================================================ #
# Combined Context Managers
# ============================================================================ #


@contextmanager
def silent_benchmark(backend: str = "best"):
    """
    ``quiet()`` and ``use_backend(backend)`` in one block, for timing runs.

    Examples
    --------
    >>> for backend in ['python', 'cpu-parallel']:
    ...     with silent_benchmark(backend):
    ...         start = time.perf_counter()
    ...         neighbor_joining(dists, labels)
    ...         print(f"{backend}: {time.perf_counter() - start:.3f}s")
    """
    with quiet():
        with use_backend(backend):
            yield
