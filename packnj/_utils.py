"""
_utils.py
=========
General-purpose helpers for packnj.

These are standalone functions that don't depend on the main classes.
"""

import math

import numpy as np

from packnj._errors import DimensionMismatchError


def format_newick(newick: str) -> str:
    """
    Format a NEWICK string for consistent representation.

    Ensures the NEWICK string:
    - Ends with a semicolon
    - Has no leading/trailing whitespace

    Parameters
    ----------
    newick : str
        NEWICK string to format.

    Returns
    -------
    str
        Formatted NEWICK string.

    Examples
    --------
    >>> format_newick('((A:1,B:1):1,(C:1,D:1):1)')
    '((A:1,B:1):1,(C:1,D:1):1);'

    >>> format_newick('  (A:1,B:1,C:1);  ')
    '(A:1,B:1,C:1);'
    """
    newick = newick.strip()
    if not newick.endswith(';'):
        newick += ';'
    return newick


def as_square_matrix(distances) -> np.ndarray:
    """
    Return *distances* as a fresh C-contiguous float64 square matrix.

    Accepts either a 2-D array-like of shape (n, n) or a flat, row-major
    sequence of length n*n.  The caller's data is always copied.

    Raises
    ------
    DimensionMismatchError
        If the input is not square, or a flat length is not a perfect square.

    Examples
    --------
    >>> as_square_matrix([0, 1, 1, 0]).shape
    (2, 2)
    """
    try:
        arr = np.array(distances, dtype=np.float64)
    except ValueError as err:
        raise DimensionMismatchError(
            "Distance matrix rows have unequal lengths."
        ) from err
    if arr.ndim == 1:
        row_size = math.isqrt(arr.shape[0])
        if row_size * row_size != arr.shape[0]:
            raise DimensionMismatchError(
                f"Flat distance matrix has {arr.shape[0]} elements, "
                "which is not a perfect square."
            )
        arr = arr.reshape(row_size, row_size)
    elif arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise DimensionMismatchError(
            f"Distance matrix must be square; received shape {arr.shape}."
        )
    return np.ascontiguousarray(arr)
