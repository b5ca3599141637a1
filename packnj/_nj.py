"""
_nj.py
======
Neighbor-Joining tree reconstruction from a pairwise distance matrix.

Public API
----------
  NeighborJoining(distances, labels, backend='best')
      .run() -> PackedTree
  neighbor_joining(distances, labels, backend='best') -> PackedTree

Algorithm
---------
Every taxon starts as its own cluster.  While more than three clusters remain:

  1. r[i]    = sum_j D[i, j]
  2. Q[i, j] = (n - 2) * D[i, j] - r[i] - r[j]
  3. pick the minimal Q[i, j] in the strict lower triangle (j < i), scanning
     row-major; a later pair wins a tie
  4. join clusters i (left) and j (right) under a new node with
        w_i = D[i, j] / 2 + (r[i] - r[j]) / (2 * (2n - 2))
        w_j = D[i, j] - w_i
     drop rows/columns i and j (the others keep their relative order) and
     append the merged cluster as the last row/column with
        D'[k, new] = (D[k, i] + D[k, j] - D[i, j]) / 2

The three remaining clusters become the unrooted base, each with weight
(D[x, y] + D[x, z] - D[y, z]) / 2.

Negative branch lengths are kept as computed and reported with a warning.
"""

from typing import Dict, List, Optional, Sequence

import numpy as np

from packnj._arena import NodeArena
from packnj._backend import resolve_backend
from packnj._cpu_kernels import _find_pair_nb, _q_matrix_njit
from packnj._errors import DimensionMismatchError, MalformedTreeError
from packnj._logging import (
    log_negative_branches,
    log_nj_complete,
    log_nj_join,
    log_nj_start,
)
from packnj._tree import PackedTree
from packnj._utils import as_square_matrix


class NeighborJoining:
    """
    One Neighbor-Joining run over a fixed distance matrix.

    The working matrix, the live cluster list and the scratch arena belong to
    this object; the caller's *distances* are copied and never modified.

    Parameters
    ----------
    distances : array-like
        Square matrix, or a flat row-major sequence whose length is a perfect
        square.
    labels : sequence of str
        Taxon labels, one per row.
    backend : str
        'python', 'cpu-parallel' or 'best' (default).

    Raises
    ------
    DimensionMismatchError
        Non-square matrix, label count not equal to the matrix size, or fewer
        than three taxa.
    MalformedTreeError
        Duplicate labels.
    """

    def __init__(self, distances, labels: Sequence[str],
                 backend: str = "best") -> None:
        self.dists = as_square_matrix(distances)
        self.labels = [str(x) for x in labels]
        n = self.dists.shape[0]
        if len(self.labels) != n:
            raise DimensionMismatchError(
                f"Distance matrix is {n}x{n} but {len(self.labels)} labels "
                "were given."
            )
        if n < 3:
            raise DimensionMismatchError(
                f"Neighbor-Joining needs at least 3 taxa; received {n}."
            )
        if len(set(self.labels)) != n:
            raise MalformedTreeError("Taxon labels must be unique.")

        self.backend = resolve_backend(backend)
        self.n_taxa = n
        self.row_size = n
        self.arena = NodeArena()
        self.clusters: List[int] = [self.arena.add_node(label) for label in self.labels]
        self._branch_lengths: List[float] = []
        self._tree: Optional[PackedTree] = None

    # ================================================================== #
    # Public methods                                                       #
    # ================================================================== #

    def run(self) -> PackedTree:
        """Cluster down to three nodes and return the unrooted tree."""
        if self._tree is not None:
            return self._tree

        log_nj_start(self.n_taxa, self.backend)
        while self.row_size > 3:
            r = self._compute_r()
            q = self._compute_q(r)
            i, j = self._find_pair(q)
            self._join_pair(i, j, r, float(q[i, j]))

        self._join_final()
        self._tree = self._make_tree()
        return self._tree

    def label_index(self) -> Dict[str, int]:
        """Row index of each input label."""
        return {label: k for k, label in enumerate(self.labels)}

    # ================================================================== #
    # Clustering steps                                                     #
    # ================================================================== #

    def _compute_r(self) -> np.ndarray:
        return self.dists.sum(axis=1)

    def _compute_q(self, r: np.ndarray) -> np.ndarray:
        n = self.row_size
        if self.backend == "cpu-parallel":
            q = np.empty((n, n), dtype=np.float64)
            _q_matrix_njit(self.dists, r, n, q)
            return q
        return (n - 2) * self.dists - r[:, None] - r[None, :]

    def _find_pair(self, q: np.ndarray):
        """Return (i, j), j < i, of the minimal Q; the later pair wins ties."""
        if self.backend == "cpu-parallel":
            i, j = _find_pair_nb(q, self.row_size)
            return int(i), int(j)
        low_i, low_j = 0, 1
        rows = q.tolist()
        for i in range(self.row_size):
            row = rows[i]
            for j in range(i):
                if row[j] <= rows[low_i][low_j]:
                    low_i, low_j = i, j
        return low_i, low_j

    def _join_pair(self, i: int, j: int, r: np.ndarray, q_value: float) -> None:
        """
        Merge clusters *i* and *j* and shrink the working matrix by one.

        Survivors keep their relative order; the merged cluster becomes the
        last row and column.
        """
        n = self.row_size
        d = self.dists
        d_ij = d[i, j]
        left_weight = 0.5 * d_ij + (r[i] - r[j]) / (2 * (2 * n - 2))
        right_weight = d_ij - left_weight

        left, right = self.clusters[i], self.clusters[j]
        self.arena.weight[left] = float(left_weight)
        self.arena.weight[right] = float(right_weight)
        merged = self.arena.join(left, right)
        self._branch_lengths.extend((float(left_weight), float(right_weight)))
        log_nj_join(n, i, j, q_value, float(left_weight), float(right_weight))

        keep = [k for k in range(n) if k != i and k != j]
        reduced = np.zeros((n - 1, n - 1), dtype=np.float64)
        reduced[: n - 2, : n - 2] = d[np.ix_(keep, keep)]
        new_col = 0.5 * (d[keep, i] + d[keep, j] - d_ij)
        reduced[: n - 2, n - 2] = new_col
        reduced[n - 2, : n - 2] = new_col

        self.dists = reduced
        self.clusters = [self.clusters[k] for k in keep] + [merged]
        self.row_size = n - 1

    def _join_final(self) -> None:
        """Assign the branch lengths of the three remaining clusters."""
        d = self.dists
        for x in range(3):
            y = (x + 1) % 3
            z = (x + 2) % 3
            w = 0.5 * (d[x, y] + d[x, z] - d[y, z])
            self.arena.weight[self.clusters[x]] = float(w)
            self._branch_lengths.append(float(w))

    def _make_tree(self) -> PackedTree:
        tree = PackedTree.from_unroot(self.arena, self.clusters)
        final = self._branch_lengths[-3:]
        log_nj_complete(self.n_taxa, tree.n_nodes, final)
        n_negative = sum(1 for w in self._branch_lengths if w < 0.0)
        log_negative_branches(n_negative, len(self._branch_lengths))
        return tree


def neighbor_joining(distances, labels: Sequence[str],
                     backend: str = "best") -> PackedTree:
    """
    Reconstruct an unrooted tree from *distances* with Neighbor-Joining.

    Convenience wrapper around ``NeighborJoining(...).run()``.

    Examples
    --------
    >>> tree = neighbor_joining(
    ...     [[0, 5, 9, 9], [5, 0, 10, 10], [9, 10, 0, 8], [9, 10, 8, 0]],
    ...     ["A", "B", "C", "D"],
    ... )
    >>> tree.sort().to_string(precision=0)
    '(A:2,B:3,(C:4,D:4):3);'
    """
    return NeighborJoining(distances, labels, backend=backend).run()
