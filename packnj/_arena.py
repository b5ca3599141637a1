"""
_arena.py
=========
The intermediate tree: a growable, index-based scratch arena used while a
tree is being built (Newick parsing, Neighbor-Joining) or structurally edited
(rerooting, unrooting).

Nodes are plain integer indices into parallel Python lists.  ``-1`` is the
"absent" sentinel for ``parent``, ``left`` and ``right``.  Appending is cheap
and pointer surgery is a list assignment; the arena is discarded once it has
been flattened into a ``PackedTree``.
"""

from typing import List

from packnj._errors import MalformedTreeError


class NodeArena:
    """
    Parallel-list storage for a pointer-style binary tree.

    Attributes
    ----------
    left, right : list[int]     Child indices; -1 for leaves.
    parent      : list[int]     Parent index; -1 for top-level nodes.
    weight      : list[float]   Branch length to the parent.
    label       : list[str]     Taxon label; '' for unlabelled internal nodes.
    """

    __slots__ = ("left", "right", "parent", "weight", "label")

    def __init__(self) -> None:
        self.left: List[int] = []
        self.right: List[int] = []
        self.parent: List[int] = []
        self.weight: List[float] = []
        self.label: List[str] = []

    def __len__(self) -> int:
        return len(self.left)

    @classmethod
    def from_packed(cls, tree) -> "NodeArena":
        """Copy the arrays of a ``PackedTree`` into a fresh, mutable arena."""
        arena = cls()
        arena.left = [int(x) for x in tree.left_child]
        arena.right = [int(x) for x in tree.right_child]
        arena.parent = [int(x) for x in tree.parent]
        arena.weight = [float(x) for x in tree.weight]
        arena.label = list(tree.names)
        return arena

    def add_node(self, label: str = "", weight: float = 0.0) -> int:
        """Append a detached leaf and return its index."""
        self.left.append(-1)
        self.right.append(-1)
        self.parent.append(-1)
        self.weight.append(float(weight))
        self.label.append(label)
        return len(self.left) - 1

    def join(self, left: int, right: int, label: str = "",
             weight: float = 0.0) -> int:
        """
        Create a new internal node over *left* and *right* and return it.

        Both children have their parent set to the new node.
        """
        if left == -1 or right == -1:
            raise MalformedTreeError(
                "An internal node needs two children; "
                f"received ({left}, {right})."
            )
        node = self.add_node(label, weight)
        self.left[node] = left
        self.right[node] = right
        self.parent[left] = node
        self.parent[right] = node
        return node

    def is_leaf(self, node: int) -> bool:
        return self.left[node] == -1 and self.right[node] == -1

    def detach_children(self, node: int) -> None:
        """Turn *node* into a leaf, orphaning both of its children."""
        for child in (self.left[node], self.right[node]):
            if child != -1:
                self.parent[child] = -1
        self.left[node] = -1
        self.right[node] = -1
