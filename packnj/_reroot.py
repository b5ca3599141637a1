"""
_reroot.py
==========
Structural surgery on the unroot set of a tree: outgroup rerooting and
unrooting.

All functions operate on a scratch ``NodeArena`` (a copy of a packed tree's
arrays) and return the new unroot set; the caller re-flattens.  A failure
therefore never leaves a packed tree half-edited.

Orientation
-----------
Moving the root reverses the "up" direction along exactly the path between
the old centre and the new outgroup.  Every node on that path exchanges its
parent link with the child link that points back along the path;
``reorient_towards`` performs that walk with an explicit loop, bounded by the
tree height.

Branch weights
--------------
A node's weight is the length of the edge to its parent.  When an edge
flips, its length moves with it: the walk carries the weight of the edge
being re-hung from one node to the next, so leaf-to-leaf distances are
unchanged by rerooting.
"""

from typing import List

from packnj._arena import NodeArena
from packnj._errors import InvalidTreeStateError
from packnj._logging import log_outgroup, log_unroot


def top_level_ancestor(arena: NodeArena, node: int) -> int:
    """Return the member of the unroot set whose subtree contains *node*."""
    while arena.parent[node] != -1:
        node = arena.parent[node]
    return node


def reorient_towards(arena: NodeArena, node: int, new_parent: int,
                     carry: float = 0.0) -> None:
    """
    Make *new_parent* the parent of *node*, flipping links up the old path.

    If *new_parent* is currently a child of *node* (``-1`` matches an empty
    child slot), that child slot and the parent slot are exchanged and the
    walk continues at the old parent with *node* as its new parent.  The walk
    stops at the first node whose orientation is already correct.

    Parameters
    ----------
    carry : float
        Length of the edge between *node* and *new_parent*.
    """
    while True:
        old_parent = arena.parent[node]
        if new_parent == arena.left[node]:
            arena.left[node] = old_parent
        elif new_parent == arena.right[node]:
            arena.right[node] = old_parent
        else:
            if old_parent == new_parent:
                arena.weight[node] = carry
            return
        arena.parent[node] = new_parent
        carry, arena.weight[node] = arena.weight[node], carry
        if old_parent == -1:
            return
        node, new_parent = old_parent, node


def reroot_at_outgroup(arena: NodeArena, roots: List[int], outgroup: int,
                       label: str = "") -> List[int]:
    """
    Restructure an unrooted tree so *outgroup* hangs directly off the root.

    Returns the new unroot set ``[outgroup, p]`` where ``p`` holds the rest of
    the tree.  Synthetic nodes are appended to *arena*.

    Raises
    ------
    InvalidTreeStateError   if *roots* is not an unroot set of size 3.
    """
    if len(roots) != 3:
        raise InvalidTreeStateError(
            f"Outgroup rerooting needs an unrooted tree (3 top-level nodes); "
            f"this tree has {len(roots)}."
        )

    if arena.parent[outgroup] == -1:
        log_outgroup(label, True)
        others = [m for m in roots if m != outgroup]
        p = arena.join(others[0], others[1])
        return [outgroup, p]

    log_outgroup(label, False)
    path_root = top_level_ancestor(arena, outgroup)
    others = [m for m in roots if m != path_root]

    # new node standing in for the old unrooted centre
    centre = arena.join(others[0], others[1])
    arena.parent[centre] = path_root
    arena.parent[path_root] = centre

    p = arena.parent[outgroup]
    arena.parent[outgroup] = -1
    if arena.left[p] != outgroup:
        arena.left[p], arena.right[p] = arena.right[p], arena.left[p]
    arena.left[p] = -1
    reorient_towards(arena, p, -1)
    return [outgroup, p]


def unroot(arena: NodeArena, roots: List[int]) -> List[int]:
    """
    Expand a rooted unroot set (size 1 or 2) to the three-way unrooted form.

    Repeatedly replaces the first internal top-level node by its two
    children.  When exactly one other top-level node remains, it absorbs the
    removed node's weight so the path across the old root keeps its length.

    Raises
    ------
    InvalidTreeStateError
        If the set is already unrooted, or no internal top-level node is left
        to expand.
    """
    if len(roots) > 2:
        raise InvalidTreeStateError("Tree is already unrooted.")
    log_unroot(len(roots), len(arena))

    roots = list(roots)
    while len(roots) != 3:
        idx = next((k for k, m in enumerate(roots) if not arena.is_leaf(m)), None)
        if idx is None:
            raise InvalidTreeStateError(
                "Could not find an internal top-level node to unroot; "
                "the tree is too small."
            )
        node = roots.pop(idx)
        if len(roots) == 1:
            arena.weight[roots[0]] += arena.weight[node]
        left, right = arena.left[node], arena.right[node]
        arena.detach_children(node)
        roots.extend([left, right])
    return roots
