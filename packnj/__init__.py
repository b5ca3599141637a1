"""
packnj
======

Packed binary phylogenetic trees and Neighbor-Joining reconstruction.

Trees are stored as flat numpy arrays (parent / left / right / weight) that
are rebuilt wholesale on every structural edit.  Distance matrices are
computed through lowest-common-ancestor walks, and trees can be rebuilt from
distance matrices with Neighbor-Joining.

Main Classes
------------
PackedTree : Binary tree with NEWICK parsing, rerooting and distance queries
NeighborJoining : One Neighbor-Joining run over a distance matrix
NodeArena : Growable scratch tree used while building or editing a tree

Functions
---------
neighbor_joining : Reconstruct a tree from a distance matrix
parse_newick : Parse a NEWICK string into a NodeArena
build_label_index : Map leaf labels to matrix indices
build_distance_matrix : Leaf-by-leaf distance matrix of a tree
pairwise_distance : Branch-length distance between two nodes
lowest_common_ancestor : LCA of two nodes

Context Managers
----------------
quiet : Suppress logging during operations
suppress_logger : Suppress specific logger
use_backend : Force specific computational backend
silent_benchmark : Combine quiet + backend selection

Errors
------
PackNJError, MalformedTreeError, UnknownLabelError, InvalidTreeStateError,
DimensionMismatchError

Examples
--------
>>> from packnj import PackedTree, neighbor_joining
>>> tree = PackedTree("(A:1,B:2,(C:3,D:4):5);")
>>> tree.set_outgroup("C").to_string(precision=0)
'(C:3,((A:1,B:2):5,D:4));'
>>> tree.branch_distance("A", "D")
10.0

>>> nj = neighbor_joining(
...     [[0, 5, 9, 9], [5, 0, 10, 10], [9, 10, 0, 8], [9, 10, 8, 0]],
...     ["A", "B", "C", "D"],
... )
>>> nj.sort().to_string(precision=0)
'(A:2,B:3,(C:4,D:4):3);'
"""

__version__ = "0.1.0"
__license__ = "MIT"

# Main classes
from ._tree import PackedTree
from ._nj import NeighborJoining, neighbor_joining
from ._arena import NodeArena
from ._newick import parse_newick

# Distance engine
from ._distance import (
    build_label_index,
    build_distance_matrix,
    pairwise_distance,
    lowest_common_ancestor,
)

# Errors
from ._errors import (
    PackNJError,
    MalformedTreeError,
    UnknownLabelError,
    InvalidTreeStateError,
    DimensionMismatchError,
)

# Context managers (user-facing utilities)
from ._context import (
    suppress_logger,
    quiet,
    use_backend,
    silent_benchmark,
)

# Utilities (generally useful functions)
from ._utils import format_newick

# Backend information (useful for checking capabilities)
from ._backend import (
    get_available_backends,
    get_backend_info,
)

# Public API
__all__ = [
    # Main classes
    "PackedTree",
    "NeighborJoining",
    "NodeArena",
    # Construction / distance functions
    "neighbor_joining",
    "parse_newick",
    "build_label_index",
    "build_distance_matrix",
    "pairwise_distance",
    "lowest_common_ancestor",
    # Errors
    "PackNJError",
    "MalformedTreeError",
    "UnknownLabelError",
    "InvalidTreeStateError",
    "DimensionMismatchError",
    # Context managers
    "suppress_logger",
    "quiet",
    "use_backend",
    "silent_benchmark",
    # Utilities
    "format_newick",
    # Backend information
    "get_available_backends",
    "get_backend_info",
    # Version info
    "__version__",
]
