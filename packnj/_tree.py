"""
_tree.py
========
A binary phylogenetic tree packed into a set of parallel numpy arrays.

Public API
----------
  PackedTree(newick_string)
      Constructor.  Parses the NEWICK string and flattens it.
  PackedTree.from_unroot(arena, roots)
  PackedTree.from_distance_matrix(distances, labels, backend='best')
  .copy()

  .is_leaf(node)        .is_rooted()        .get_depth()
  .make_unrooted()      .set_outgroup(label)
  .sort()               .to_string(precision=6)
  .set_weights(weights, max_distance=0.0)
  .set_weights_constant(c)                  .clear_weights()
  .label_index()        .distance_matrix(label_index=None, backend='best')
  .branch_distance(u, v)                    .lca(u, v)

Representation
--------------
All node data lives in flat arrays attached directly to ``self``; node
references are integer slots and ``-1`` means "absent".  The top of the tree
is the *unroot set*: one slot for a rooted tree, three for an unrooted tree
(ternary base), two transiently after outgroup rerooting.

Lifecycle
---------
The arrays never change size.  Every structural edit copies them into a
``NodeArena``, edits the arena and re-flattens into brand-new arrays that
replace the old ones wholesale.  Content-only edits (weights, child order in
``sort``) happen in place.

Flattening order
----------------
The unroot members are pushed onto a LIFO stack and appended to a FIFO list;
each internal node popped from the stack pushes and appends its left then its
right child.  The FIFO list is the slot order, so the unroot set occupies
slots 0..k-1 and every parent precedes its children.
"""

import numbers
from typing import Dict, List, Optional, Tuple

import numpy as np

from packnj._arena import NodeArena
from packnj._backend import get_available_backends
from packnj._distance import (
    build_distance_matrix,
    build_label_index,
    lowest_common_ancestor,
    pairwise_distance,
)
from packnj._errors import (
    InvalidTreeStateError,
    MalformedTreeError,
    UnknownLabelError,
)
from packnj._logging import (
    log_backend_availability,
    log_flatten,
    log_optimization_status,
)
from packnj._newick import parse_newick
from packnj._reroot import reroot_at_outgroup, unroot

# Log system info and backend availability on module import
log_optimization_status()
log_backend_availability(get_available_backends())


class PackedTree:
    """
    A strictly binary tree (ternary at an unrooted base) in packed form.

    Attributes
    ----------
    n_nodes   : int        Total number of nodes.
    n_leaves  : int        Number of leaf (taxon) nodes.
    unroot    : list[int]  Top-level slots (size 1 rooted, 3 unrooted).
    names     : list[str]  Label for each node; '' for unlabelled internals.

    Arrays
    ------
    parent      : int32  [n_nodes]   Parent slot; -1 for top-level nodes.
    left_child  : int32  [n_nodes]   Left child slot; -1 for leaves.
    right_child : int32  [n_nodes]   Right child slot; -1 for leaves.
    weight      : float64[n_nodes]   Branch length to parent.
    """

    # ================================================================== #
    # Construction                                                         #
    # ================================================================== #

    def __init__(self, newick_string: str) -> None:
        """
        Parse *newick_string* and build the packed arrays.

        Parameters
        ----------
        newick_string : str
            A valid NEWICK-formatted tree string (trailing ';' optional).
        """
        arena, roots, _ = parse_newick(newick_string)
        self._flatten(arena, roots)

    @classmethod
    def from_unroot(cls, arena: NodeArena, roots: List[int]) -> "PackedTree":
        """
        Build a tree from an explicit unroot set of nodes in *arena*.

        Only the nodes reachable from *roots* are kept; parent links are
        rebuilt from the child links.
        """
        tree = cls.__new__(cls)
        tree._flatten(arena, roots)
        return tree

    @classmethod
    def from_distance_matrix(cls, distances, labels,
                             backend: str = "best") -> "PackedTree":
        """Reconstruct an unrooted tree with Neighbor-Joining."""
        from packnj._nj import neighbor_joining

        return neighbor_joining(distances, labels, backend=backend)

    def copy(self) -> "PackedTree":
        """Return an independent tree, re-flattened from this tree's unroot set."""
        return PackedTree.from_unroot(NodeArena.from_packed(self), self.unroot)

    def __copy__(self) -> "PackedTree":
        return self.copy()

    def __deepcopy__(self, memo) -> "PackedTree":
        return self.copy()

    # ================================================================== #
    # Public methods - queries                                             #
    # ================================================================== #

    def is_leaf(self, node) -> bool:
        node_id = self._resolve_node(node)
        return int(self.left_child[node_id]) == -1

    def is_rooted(self) -> bool:
        """A tree is rooted unless its unroot set has three members."""
        return len(self.unroot) <= 2

    def get_depth(self) -> int:
        """
        Return the number of nodes on the longest top-to-leaf path, not
        counting the root of a rooted tree.
        """
        depth = np.zeros(self.n_nodes, dtype=np.int32)
        max_depth = 0
        for node in range(self.n_nodes):
            p = int(self.parent[node])
            depth[node] = 1 if p == -1 else depth[p] + 1
            if depth[node] > max_depth:
                max_depth = int(depth[node])
        if len(self.unroot) == 1:
            max_depth -= 1
        return max_depth

    def label_index(self) -> Dict[str, int]:
        """Map leaf labels to matrix indices in array order."""
        return build_label_index(self)

    def distance_matrix(
        self, label_index: Optional[Dict[str, int]] = None, backend: str = "best"
    ) -> Tuple[Dict[str, int], np.ndarray]:
        """
        Return ``(label_index, matrix)`` of all leaf-to-leaf distances.

        Pass the *label_index* of another tree to get a matrix whose rows and
        columns line up with that tree's matrix.
        """
        return build_distance_matrix(self, label_index, backend=backend)

    def branch_distance(self, u, v) -> float:
        """
        Return the total branch length between nodes *u* and *v*.

        Parameters
        ----------
        u, v : int | str   Node IDs or leaf labels.
        """
        return pairwise_distance(self, u, v)

    def lca(self, u, v) -> int:
        """
        Return the node ID of the Lowest Common Ancestor of *u* and *v*.

        Returns -1 when the two nodes sit in different top-level subtrees,
        i.e. their common ancestor is the implicit root (or unrooted centre).
        """
        return lowest_common_ancestor(self, u, v)

    # ================================================================== #
    # Public methods - structural edits (re-flatten)                       #
    # ================================================================== #

    def make_unrooted(self) -> None:
        """
        Convert a rooted tree into the three-way unrooted form.

        Raises
        ------
        InvalidTreeStateError
            If the tree is already unrooted or has too few nodes.
        """
        if not self.is_rooted():
            raise InvalidTreeStateError(
                "Trying to unroot a tree that is already unrooted."
            )
        if self.n_nodes <= 2:
            raise InvalidTreeStateError("Tree is too small to unroot.")
        arena = NodeArena.from_packed(self)
        roots = unroot(arena, self.unroot)
        self._flatten(arena, roots)

    def set_outgroup(self, label: str) -> "PackedTree":
        """
        Reroot an unrooted tree so the leaf *label* is the outgroup.

        The result is rooted: its unroot set is ``[outgroup, rest]``.  Branch
        lengths are carried along the reoriented path, so leaf-to-leaf
        distances do not change.

        Raises
        ------
        InvalidTreeStateError   if the tree is not unrooted (call
                                ``make_unrooted`` first).
        UnknownLabelError       if no leaf carries *label*, or *label* is
                                the ID of an internal node.
        """
        if len(self.unroot) != 3:
            raise InvalidTreeStateError(
                "set_outgroup needs an unrooted tree (3 top-level nodes); "
                f"this tree has {len(self.unroot)}."
            )
        outgroup = self._resolve_node(label)
        if self.left_child[outgroup] != -1:
            raise UnknownLabelError(
                label, f"Node {label!r} is internal; the outgroup must be a leaf."
            )
        arena = NodeArena.from_packed(self)
        roots = reroot_at_outgroup(arena, self.unroot, outgroup, label)
        self._flatten(arena, roots)
        return self

    # ================================================================== #
    # Public methods - content edits (in place)                            #
    # ================================================================== #

    def sort(self) -> "PackedTree":
        """
        Canonicalise child order for a stable string form.

        Each internal node is keyed by the smallest label in its subtree (its
        own label counts when non-empty); children are swapped so the smaller
        key is on the left, and the unroot set is ordered by key.
        """
        left = self.left_child
        right = self.right_child
        names = self.names
        key = [""] * self.n_nodes
        # parents precede children, so a reverse sweep is a post-order
        for node in range(self.n_nodes - 1, -1, -1):
            lc = int(left[node])
            if lc == -1:
                key[node] = names[node]
                continue
            rc = int(right[node])
            lkey, rkey = key[lc], key[rc]
            if rkey < lkey:
                left[node], right[node] = rc, lc
                lkey = rkey
            label = names[node]
            key[node] = lkey if (lkey < label or label == "") else label

        self.unroot = sorted(self.unroot, key=lambda m: key[m])
        return self

    def set_weights(self, weights, max_distance: float = 0.0) -> None:
        """
        Assign depth-indexed branch lengths, making the tree ultrametric.

        An internal node at depth d (top-level nodes have d = 0) gets
        ``w(d)``.  Every leaf gets whatever length makes its distance from
        the top equal *max_distance*.  The root of a rooted tree gets 0.

        Parameters
        ----------
        weights : callable | float | sequence of float
            ``w(depth)``.  A number ``c`` means ``c/2`` at depth 0 and ``c``
            below; a sequence ``v`` means ``v[0]/2`` at depth 0 and ``v[d]``
            below.
        max_distance : float
            Common top-to-leaf distance; 0 means ``sum(w(d))`` over the tree
            depth.
        """
        if callable(weights):
            w_func = weights
        elif isinstance(weights, numbers.Real):
            c = float(weights)
            w_func = lambda d: c / 2.0 if d == 0 else c
        else:
            w_vec = [float(x) for x in weights]

            def w_func(d):
                if d >= len(w_vec):
                    raise ValueError(
                        f"Weight vector has {len(w_vec)} entries; depth {d} "
                        "is out of bounds."
                    )
                return w_vec[d] / 2.0 if d == 0 else w_vec[d]

        if max_distance == 0.0:
            for d in range(self.get_depth()):
                max_distance += w_func(d)

        stack = []
        if len(self.unroot) == 1:
            root = self.unroot[0]
            self.weight[root] = 0.0
            if int(self.left_child[root]) != -1:
                stack.append((int(self.right_child[root]), 0))
                stack.append((int(self.left_child[root]), 0))
        else:
            stack.extend((m, 0) for m in reversed(self.unroot))

        while stack:
            node, d = stack.pop()
            lc = int(self.left_child[node])
            if lc == -1:
                total = 0.0
                for k in range(d):
                    total += w_func(k)
                self.weight[node] = max_distance - total
            else:
                stack.append((int(self.right_child[node]), d + 1))
                stack.append((lc, d + 1))
                self.weight[node] = w_func(d)

    def set_weights_constant(self, c: float) -> None:
        """Set every branch length to *c* (the root of a rooted tree gets 0)."""
        self.weight[:] = c
        if len(self.unroot) == 1:
            self.weight[self.unroot[0]] = 0.0

    def clear_weights(self) -> "PackedTree":
        self.set_weights_constant(0.0)
        return self

    # ================================================================== #
    # Serialization                                                        #
    # ================================================================== #

    def to_string(self, precision: int = 6) -> str:
        """
        Render the tree in NEWICK notation.

        Internal nodes are written ``(left,right)``, leaves by their label.
        A ``:weight`` suffix in fixed notation with *precision* decimals
        follows every node whose weight is not exactly 0.  Multiple top-level
        nodes are wrapped in one pair of parentheses.
        """
        parts = [self._subtree_string(m, precision) for m in self.unroot]
        if not parts:
            return ""
        if len(parts) > 1:
            return "(" + ",".join(parts) + ");"
        return parts[0] + ";"

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return (
            f"PackedTree(n_nodes={self.n_nodes}, n_leaves={self.n_leaves}, "
            f"rooted={self.is_rooted()})"
        )

    # ================================================================== #
    # Private instance methods                                             #
    # ================================================================== #

    def _flatten(self, arena: NodeArena, roots: List[int]) -> None:
        """
        **Private.**  Pack the subtrees of *roots* in *arena* into new arrays
        and install them on ``self``, replacing any previous arrays.

        Raises
        ------
        InvalidTreeStateError   if *roots* does not hold 1 to 3 nodes.
        MalformedTreeError      on a node with exactly one child, or a node
                                reachable more than once.
        """
        if not 1 <= len(roots) <= 3:
            raise InvalidTreeStateError(
                f"An unroot set must hold 1 to 3 nodes; received {len(roots)}."
            )

        stack = list(roots)
        order = list(roots)
        while stack:
            cur = stack.pop()
            lc = arena.left[cur]
            rc = arena.right[cur]
            if lc != -1 and rc != -1:
                stack.append(lc)
                stack.append(rc)
                order.append(lc)
                order.append(rc)
            elif lc != -1 or rc != -1:
                raise MalformedTreeError(
                    f"Node '{arena.label[cur]}' ({cur}) has exactly one child."
                )
            if len(order) > len(arena):
                break

        slot = {node: k for k, node in enumerate(order)}
        if len(slot) != len(order):
            raise MalformedTreeError(
                "A node is reachable more than once from the unroot set."
            )

        n_nodes = len(order)
        parent = np.full(n_nodes, -1, dtype=np.int32)
        left_child = np.full(n_nodes, -1, dtype=np.int32)
        right_child = np.full(n_nodes, -1, dtype=np.int32)
        weight = np.zeros(n_nodes, dtype=np.float64)
        names = [""] * n_nodes

        n_leaves = 0
        for k, node in enumerate(order):
            names[k] = arena.label[node]
            weight[k] = arena.weight[node]
            lc = arena.left[node]
            if lc == -1:
                n_leaves += 1
                continue
            lk = slot[lc]
            rk = slot[arena.right[node]]
            left_child[k] = lk
            right_child[k] = rk
            parent[lk] = k
            parent[rk] = k

        self.parent = parent
        self.left_child = left_child
        self.right_child = right_child
        self.weight = weight
        self.names = names
        self.unroot = list(range(len(roots)))
        self.n_nodes = n_nodes
        self.n_leaves = n_leaves

        # Name index: built lazily on first name-based query.
        self._name_index: dict = None  # type: ignore[assignment]
        log_flatten(n_nodes, n_leaves, len(roots))

    def _subtree_string(self, top: int, precision: int) -> str:
        """
        **Private.**  NEWICK text of the subtree under *top*.

        A phase-coded stack drives the traversal without recursion:
          phase 0  First entry: leaf text, or '(' and schedule children.
          phase 1  Between children: ','.
          phase 2  After the right child: ')' and the weight suffix.
        """
        out = []
        stack = [(top, 0)]
        left = self.left_child
        right = self.right_child
        while stack:
            node, phase = stack.pop()
            if phase == 0:
                lc = int(left[node])
                if lc == -1:
                    out.append(self.names[node])
                    out.append(self._weight_suffix(node, precision))
                else:
                    out.append("(")
                    stack.append((node, 2))
                    stack.append((int(right[node]), 0))
                    stack.append((node, 1))
                    stack.append((lc, 0))
            elif phase == 1:
                out.append(",")
            else:
                out.append(")")
                out.append(self._weight_suffix(node, precision))
        return "".join(out)

    def _weight_suffix(self, node: int, precision: int) -> str:
        w = float(self.weight[node])
        if w == 0.0:
            return ""
        return f":{w:.{precision}f}"

    def _resolve_node(self, node) -> int:
        """
        **Private.**  Return the integer node ID for *node*.

        Integers (and numpy integers) are returned as plain ``int`` after a
        bounds check; strings are looked up among the leaf labels.

        Raises
        ------
        UnknownLabelError   if *node* is a label not present in the tree.
        IndexError          if *node* is an out-of-range ID.
        """
        if isinstance(node, (int, np.integer)):
            node_id = int(node)
            if not 0 <= node_id < self.n_nodes:
                raise IndexError(
                    f"Node ID {node_id} out of range for tree with "
                    f"{self.n_nodes} nodes."
                )
            return node_id
        if self._name_index is None:
            self._build_name_index()
        if node not in self._name_index:
            raise UnknownLabelError(node)
        return self._name_index[node]

    def _build_name_index(self) -> None:
        """
        **Private.**  Build and cache ``self._name_index``: leaf label ->
        node ID.  Rebuilt after every flatten.

        Raises
        ------
        MalformedTreeError   if duplicate leaf labels are found.
        """
        idx = {}
        for node_id in range(self.n_nodes):
            if int(self.left_child[node_id]) != -1:
                continue
            name = self.names[node_id]
            if name in idx:
                raise MalformedTreeError(
                    f"Duplicate leaf label '{name}' at IDs "
                    f"{idx[name]} and {node_id}."
                )
            idx[name] = node_id
        self._name_index = idx
