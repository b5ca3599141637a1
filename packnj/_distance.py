"""
_distance.py
============
Leaf-to-leaf branch-length distances over a ``PackedTree``.

Public API
----------
  build_label_index(tree)
  ancestor_chain(parent, node)
  lowest_common_ancestor(tree, u, v)
  pairwise_distance(tree, u, v)
  build_distance_matrix(tree, label_index=None, backend='best')

Algorithm
---------
The distance between two nodes is found through their lowest common ancestor
(LCA).  Each node's ancestor chain (the node, its parent, its grandparent, ...
and finally the ``-1`` sentinel once a parentless node is reached) is
compared from the root side inward; the last position where both chains
agree is the LCA.  An unrooted tree's three top-level nodes share the
sentinel as their virtual common ancestor, so a pair in different top-level
subtrees has ``LCA == -1`` and its path runs through the unrooted centre.

The distance is the sum of branch weights from each node up to, but not
including, the LCA.  Complexity O(h) per pair, O(L^2 h) for the matrix.

GPU / numba notes
-----------------
The 'cpu-parallel' matrix backend precomputes node depths (parents always
precede children in a packed array, so one forward pass suffices) and climbs
both nodes in lockstep inside a numba kernel.  Weights are accumulated in the
same order as the chain walk, so results are bit-identical across backends.
"""

from typing import Dict, List, Optional, Tuple

import numpy as np

from packnj._backend import resolve_backend
from packnj._cpu_kernels import _leaf_distance_njit
from packnj._errors import (
    DimensionMismatchError,
    InvalidTreeStateError,
    MalformedTreeError,
    UnknownLabelError,
)
from packnj._logging import log_distance_matrix


def build_label_index(tree) -> Dict[str, int]:
    """
    Map each leaf label to a sequential matrix index, in array order.

    The mapping is only stable across trees whose leaves sit in the same
    array order; callers comparing several trees should build it once and
    pass it to ``build_distance_matrix`` for every tree.
    """
    index = {}
    for node in range(tree.n_nodes):
        if tree.left_child[node] == -1:
            index[tree.names[node]] = len(index)
    return index


def ancestor_chain(parent, node: int) -> List[int]:
    """
    Return ``[node, parent(node), ..., top, -1]``.

    The trailing ``-1`` is appended only when the walk ends at a parentless
    node; a self-parented node ends the chain without it.

    Raises
    ------
    MalformedTreeError   if the parent graph contains a cycle.
    """
    limit = len(parent) + 1
    chain = [node]
    cur = node
    while parent[cur] != -1 and parent[cur] != cur:
        cur = int(parent[cur])
        chain.append(cur)
        if len(chain) > limit:
            raise MalformedTreeError(
                f"Parent graph contains a cycle through node {node}."
            )
    if parent[cur] == -1:
        chain.append(-1)
    return chain


def _lca_from_chains(chain_u: List[int], chain_v: List[int]) -> int:
    iu = len(chain_u) - 1
    iv = len(chain_v) - 1
    if chain_u[iu] != chain_v[iv]:
        raise InvalidTreeStateError(
            f"Ancestor chains of nodes {chain_u[0]} and {chain_v[0]} "
            "do not converge."
        )
    while iu >= 0 and iv >= 0 and chain_u[iu] == chain_v[iv]:
        iu -= 1
        iv -= 1
    # back up one step to the last shared entry
    return chain_u[iu + 1]


def _climb(parent, weight, node: int, ancestor: int) -> float:
    total = 0.0
    while node != ancestor:
        total += weight[node]
        node = parent[node]
    return total


def lowest_common_ancestor(tree, u, v) -> int:
    """
    Return the node ID of the LCA of *u* and *v*, or -1 when the common
    ancestor is the virtual centre of an unrooted tree.

    Parameters
    ----------
    u, v : int | str   Node IDs or leaf labels.
    """
    u_id = tree._resolve_node(u)
    v_id = tree._resolve_node(v)
    if u_id == v_id:
        return u_id
    parent = tree.parent.tolist()
    return _lca_from_chains(ancestor_chain(parent, u_id),
                            ancestor_chain(parent, v_id))


def pairwise_distance(tree, u, v) -> float:
    """
    Return the total branch length on the path between *u* and *v*.

    Parameters
    ----------
    u, v : int | str   Node IDs or leaf labels.
    """
    u_id = tree._resolve_node(u)
    v_id = tree._resolve_node(v)
    if u_id == v_id:
        return 0.0
    parent = tree.parent.tolist()
    weight = tree.weight.tolist()
    lca = _lca_from_chains(ancestor_chain(parent, u_id),
                           ancestor_chain(parent, v_id))
    return _climb(parent, weight, u_id, lca) + _climb(parent, weight, v_id, lca)


def build_distance_matrix(
    tree, label_index: Optional[Dict[str, int]] = None, backend: str = "best"
) -> Tuple[Dict[str, int], np.ndarray]:
    """
    Compute the dense leaf-by-leaf distance matrix of *tree*.

    Parameters
    ----------
    tree        : PackedTree
    label_index : dict[str, int] or None
        Row/column order.  Built from *tree* when omitted; pass the index of
        a reference tree to get directly comparable matrices.
    backend     : str   'python', 'cpu-parallel' or 'best'.

    Returns
    -------
    (dict[str, int], float64 ndarray [L, L])

    Raises
    ------
    DimensionMismatchError   if *label_index* is not the size of the leaf set.
    UnknownLabelError        if a leaf of *tree* is missing from *label_index*.
    """
    if label_index is None:
        label_index = build_label_index(tree)
    n_leaves = tree.n_leaves
    if len(label_index) != n_leaves:
        raise DimensionMismatchError(
            f"Label index has {len(label_index)} entries but the tree has "
            f"{n_leaves} leaves."
        )

    leaf_rows = np.full(n_leaves, -1, dtype=np.int64)
    for node in range(tree.n_nodes):
        if tree.left_child[node] == -1:
            name = tree.names[node]
            if name not in label_index:
                raise UnknownLabelError(name)
            leaf_rows[label_index[name]] = node

    backend = resolve_backend(backend)
    log_distance_matrix(n_leaves, backend)
    out = np.zeros((n_leaves, n_leaves), dtype=np.float64)

    if backend == "cpu-parallel":
        _leaf_distance_njit(
            leaf_rows,
            tree.parent.astype(np.int64),
            tree.weight,
            _node_depths(tree.parent).astype(np.int64),
            out,
        )
        return label_index, out

    parent = tree.parent.tolist()
    weight = tree.weight.tolist()
    rows = leaf_rows.tolist()
    for a in range(n_leaves):
        u = rows[a]
        # one chain per row, shared by every pair in that row
        chain_u = ancestor_chain(parent, u)
        up_u = {}
        for b in range(n_leaves):
            v = rows[b]
            if u == v:
                continue
            lca = _lca_from_chains(chain_u, ancestor_chain(parent, v))
            if lca not in up_u:
                up_u[lca] = _climb(parent, weight, u, lca)
            out[a, b] = up_u[lca] + _climb(parent, weight, v, lca)
    return label_index, out


def _node_depths(parent) -> np.ndarray:
    """Edge depth of every node below its top-level ancestor (which has 0)."""
    depth = np.zeros(parent.shape[0], dtype=np.int32)
    for node in range(parent.shape[0]):
        p = int(parent[node])
        if p != -1:
            depth[node] = depth[p] + 1
    return depth
