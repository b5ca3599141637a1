"""
_logging.py
===========
Logging functions for packnj.

All functions in this module have NO side effects except logging. They take
computed data as parameters and format/emit log messages.

This separation ensures:
- Logging can be easily disabled/mocked in tests
- Computation is separate from presentation
- Clear boundaries between algorithms and reporting
"""

import logging
import os
import platform
from typing import List, Sequence

logger = logging.getLogger(__name__)


# ============================================================================ #
# System and Backend Logging (called at module import time)
# ============================================================================ #


def log_optimization_status() -> None:
    """
    Log system capabilities and numba configuration at INFO level.

    Called once at module import time. Reports CPU count, Python version,
    the numba version and the threading configuration.
    """
    import numba

    cpu_count = os.cpu_count() or 1
    logger.info(
        "System: %s (%s), %d CPU cores, Python %s",
        platform.machine(),
        platform.system(),
        cpu_count,
        platform.python_version(),
    )
    logger.info(
        "Numba %s loaded, %d threads, threading layer '%s'",
        numba.__version__,
        numba.config.NUMBA_NUM_THREADS,
        numba.config.THREADING_LAYER,
    )


def log_backend_availability(backends_available: List[str]) -> None:
    """
    Log which execution backends are available for the compute kernels.

    Parameters
    ----------
    backends_available : List[str]
        Available backends in preference order (last is best).
    """
    logger.info("Available backends: %s", ", ".join(backends_available))
    if "cpu-parallel" in backends_available:
        logger.info("  cpu-parallel: LLVM-compiled parallel code (numba.njit + prange)")
    if "python" in backends_available:
        logger.info("  python: numpy reference implementation")
    logger.info("Default backend='best' will use: %s", backends_available[-1])


# ============================================================================ #
# Tree Construction Logging
# ============================================================================ #


def log_multifurcation_warning(n_resolved: int, n_leaves: int) -> None:
    """
    Emit a consolidated multifurcation warning for one parsed tree.

    Parameters
    ----------
    n_resolved : int
        Number of zero-length bifurcations inserted.
    n_leaves : int
        Leaf count of the parsed tree.
    """
    if n_resolved > 0:
        logger.warning(
            "Input tree with %d leaves is not strictly bifurcating: %d "
            "multifurcation(s) were resolved into zero-length bifurcations. "
            "The order of splitting is arbitrary.",
            n_leaves,
            n_resolved,
        )


def log_flatten(n_nodes: int, n_leaves: int, n_roots: int) -> None:
    """Log the shape of a freshly flattened tree."""
    logger.debug(
        "Flattened tree: %d nodes, %d leaves, unroot set of size %d",
        n_nodes,
        n_leaves,
        n_roots,
    )


def log_outgroup(label: str, outgroup_is_top_level: bool) -> None:
    """Log which rerooting case is applied for *label*."""
    if outgroup_is_top_level:
        logger.debug(
            "Outgroup '%s' is a top-level node; joining the other two "
            "top-level subtrees",
            label,
        )
    else:
        logger.debug(
            "Outgroup '%s' is nested; reorienting the path to the old centre",
            label,
        )


def log_unroot(n_roots_before: int, n_nodes: int) -> None:
    logger.debug(
        "Unrooting tree with %d nodes (unroot set of size %d)",
        n_nodes,
        n_roots_before,
    )


# ============================================================================ #
# Neighbor-Joining Logging
# ============================================================================ #


def log_nj_start(n_taxa: int, backend: str) -> None:
    logger.info("Neighbor-Joining: %d taxa, backend '%s'", n_taxa, backend)


def log_nj_join(
    row_size: int,
    i: int,
    j: int,
    q_value: float,
    left_weight: float,
    right_weight: float,
) -> None:
    """Log one join of the clustering loop at DEBUG level."""
    logger.debug(
        "NJ join at row_size=%d: clusters (%d, %d), Q=%.6g, "
        "branch lengths %.6g / %.6g",
        row_size,
        i,
        j,
        q_value,
        left_weight,
        right_weight,
    )


def log_nj_complete(n_taxa: int, n_nodes: int, final_weights: Sequence[float]) -> None:
    logger.debug(
        "NJ final join: branch lengths %s",
        ", ".join(f"{w:.6g}" for w in final_weights),
    )
    logger.info(
        "Neighbor-Joining complete: %d taxa, %d nodes", n_taxa, n_nodes
    )


def log_negative_branches(n_negative: int, n_branches: int) -> None:
    """
    Warn about negative branch lengths produced by Neighbor-Joining.

    The values are kept as computed; this only reports them.
    """
    if n_negative > 0:
        logger.warning(
            "Neighbor-Joining produced %d negative branch length(s) out of %d. "
            "This usually indicates a non-additive distance matrix.",
            n_negative,
            n_branches,
        )


# ============================================================================ #
# Distance Logging
# ============================================================================ #


def log_distance_matrix(n_leaves: int, backend: str) -> None:
    logger.debug(
        "Computing %dx%d leaf distance matrix with backend '%s'",
        n_leaves,
        n_leaves,
        backend,
    )
