"""
_cpu_kernels.py
===============
CPU-accelerated kernels using Numba.

This module contains ONLY numba-accelerated code and does not import other
project modules to avoid import-time complications.

Exported Functions
------------------
_q_matrix_njit : njit function
    Parallel Neighbor-Joining Q-matrix.

_find_pair_nb : njit function
    Serial strict-lower-triangle scan for the minimal Q entry.

_pair_distance_nb : njit function
    Branch-length distance between two nodes of a packed tree.

_leaf_distance_njit : njit function
    Parallel leaf-by-leaf distance matrix.

Notes
-----
- Every kernel reproduces the arithmetic order of the 'python' backend so
  both backends are bit-identical.
- cache=True persists compiled binary to disk for faster subsequent runs
"""

from numba import njit, prange


# ======================================================================== #
# Neighbor-Joining kernels                                                  #
# ======================================================================== #


@njit(parallel=True, cache=True)
def _q_matrix_njit(dists, row_sums, row_size, q_out):
    """
    Fill ``q_out[i, j] = (row_size - 2) * dists[i, j] - r[i] - r[j]``.

    The outer loop over i runs in parallel via prange; each thread owns its
    entire q_out[i, :] row.

    Parameters
    ----------
    dists    : float64[row_size, row_size]
    row_sums : float64[row_size]
    row_size : int
    q_out    : float64[row_size, row_size]   Written in place.
    """
    scale = row_size - 2
    for i in prange(row_size):
        for j in range(row_size):
            q_out[i, j] = scale * dists[i, j] - row_sums[i] - row_sums[j]


@njit(cache=True)
def _find_pair_nb(q, row_size):
    """
    Return (i, j), j < i, of the minimal Q entry in the strict lower triangle.

    Scans row-major with a non-strict comparison, so on ties the pair seen
    last wins.  Deliberately serial: the scan order defines the tie-break.
    """
    low_i = 0
    low_j = 1
    for i in range(row_size):
        for j in range(i):
            if q[i, j] <= q[low_i, low_j]:
                low_i = i
                low_j = j
    return low_i, low_j


# ======================================================================== #
# Distance kernels                                                          #
# ======================================================================== #


@njit(cache=True)
def _pair_distance_nb(u, v, parent, weight, depth):
    """
    Branch-length distance between nodes *u* and *v*.

    Climbs the deeper node to equal depth, then both nodes in lockstep until
    they meet.  Top-level nodes share depth 0 and a virtual common ancestor
    (-1), so the climb also terminates for unrooted trees.  Weights are summed
    from each node upward, matching the ancestor-chain walk.
    """
    if u == v:
        return 0.0
    du = depth[u]
    dv = depth[v]
    su = 0.0
    sv = 0.0
    while du > dv:
        su += weight[u]
        u = parent[u]
        du -= 1
    while dv > du:
        sv += weight[v]
        v = parent[v]
        dv -= 1
    while u != v:
        su += weight[u]
        sv += weight[v]
        u = parent[u]
        v = parent[v]
        if u == -1:
            break
    return su + sv


@njit(parallel=True, cache=True)
def _leaf_distance_njit(leaf_rows, parent, weight, depth, out):
    """
    Fill ``out[a, b]`` with the distance between leaf nodes leaf_rows[a] and
    leaf_rows[b].  Rows run in parallel; each thread owns out[a, :].
    """
    n = leaf_rows.shape[0]
    for a in prange(n):
        u = leaf_rows[a]
        for b in range(n):
            out[a, b] = _pair_distance_nb(u, leaf_rows[b], parent, weight, depth)
