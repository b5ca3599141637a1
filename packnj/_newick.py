"""
_newick.py
==========
NEWICK parsing into an intermediate ``NodeArena``.

Public API
----------
  parse_newick(newick_string) -> (arena, roots, n_leaves)

``roots`` is the unroot set of the parsed tree:

  * ``((A,B),(C,D));``  ->  one root node over two subtrees (rooted)
  * ``(A,B,(C,D));``    ->  the three top-level subtrees (unrooted)
  * ``A;``              ->  the single leaf

Grammar
-------
``(`` opens a group, ``,`` separates siblings, ``)`` closes a group.  A bare
token is a leaf label; a token directly after ``)`` is an internal label
(name or support value).  Either may be followed by ``:weight``.  Missing
weights default to 0.  ``;`` terminates.

Multifurcations
---------------
An internal group with k > 2 children (or a top-level group with k > 3) is
resolved into a left-to-right cascade of zero-length bifurcations:

    (A, B, C, D)  ->  (((A, B):0.0, C):0.0, D)

Only the unrooted topology is preserved, not the relative order of the added
zero-length branches.  One consolidated warning is logged per tree.
"""

from typing import List, Tuple

from packnj._arena import NodeArena
from packnj._errors import MalformedTreeError
from packnj._logging import log_multifurcation_warning
from packnj._utils import format_newick

_TOKEN_END = ":,);\t\n\r "
_WEIGHT_END = ",);\t\n\r "
_TOP = -2


def parse_newick(newick_string: str) -> Tuple[NodeArena, List[int], int]:
    """
    Parse *newick_string* into a ``NodeArena``.

    Single character-by-character pass with an explicit stack of open child
    lists (no recursion).

    Returns
    -------
    (NodeArena, list[int], int)
        The arena, the unroot set (1 or 3 node indices) and the leaf count.

    Raises
    ------
    MalformedTreeError
        Unbalanced parentheses, a single-child group, more than one top-level
        item, an unparsable weight, a duplicate leaf label, text after the
        terminating ';', or empty input.
    """
    s = format_newick(newick_string)
    n = s.index(";")
    if s[n + 1:].strip():
        raise MalformedTreeError("Unexpected text after ';' in NEWICK string.")
    arena = NodeArena()
    stack = [[]]
    top_children = None
    seen = set()
    n_resolved = 0

    i = 0
    while i < n:
        c = s[i]

        if c in " \t\r\n" or c == ",":
            i += 1
            continue

        if c == "(":
            stack.append([])
            i += 1
            continue

        if c == ")":
            if len(stack) < 2:
                raise MalformedTreeError(
                    f"Unbalanced ')' at position {i} in NEWICK string."
                )
            children = stack.pop()
            i += 1
            label, i = _read_token(s, i, n, _TOKEN_END)
            weight, i = _read_weight(s, i, n)

            if len(stack) == 1:
                # outermost group: its children become the unroot set
                if top_children is not None or stack[0]:
                    raise MalformedTreeError(
                        "NEWICK string has more than one top-level item."
                    )
                top_children = children
                top_label = label
                stack[0].append(_TOP)
                continue

            node, extra = _join_group(arena, children, 2, label, weight)
            n_resolved += extra
            stack[-1].append(node)
            continue

        # Leaf
        label, i = _read_token(s, i, n, _TOKEN_END)
        weight, i = _read_weight(s, i, n)
        if label in seen:
            raise MalformedTreeError(
                f"Duplicate leaf label '{label}' in NEWICK string."
            )
        seen.add(label)
        stack[-1].append(arena.add_node(label, weight))

    if len(stack) != 1:
        raise MalformedTreeError(
            f"NEWICK string has {len(stack) - 1} unclosed '('."
        )
    items = stack[0]
    if len(items) != 1:
        raise MalformedTreeError(
            "NEWICK string must describe exactly one tree; "
            f"found {len(items)} top-level items."
        )

    if items[0] != _TOP:
        roots = items
        arena.weight[roots[0]] = 0.0
    elif len(top_children) == 2:
        root = arena.join(top_children[0], top_children[1], top_label, 0.0)
        roots = [root]
    else:
        roots, extra = _binarize(arena, top_children, 3)
        n_resolved += extra
        if len(roots) < 2:
            raise MalformedTreeError(
                "Top-level group has a single child; unary nodes are not allowed."
            )

    n_leaves = len(seen)
    log_multifurcation_warning(n_resolved, n_leaves)
    return arena, roots, n_leaves


# ======================================================================== #
# Private helpers                                                           #
# ======================================================================== #


def _join_group(arena: NodeArena, children: List[int], arity: int,
                label: str, weight: float) -> Tuple[int, int]:
    """Join a closed internal group into one node; return (node, n_resolved)."""
    if len(children) < 2:
        raise MalformedTreeError(
            f"Group with {len(children)} child(ren) found; internal nodes "
            "must have exactly two children."
        )
    children, n_resolved = _binarize(arena, children, arity)
    node = arena.join(children[0], children[1], label, weight)
    return node, n_resolved


def _binarize(arena: NodeArena, children: List[int],
              arity: int) -> Tuple[List[int], int]:
    """Merge the first two children repeatedly until *arity* remain."""
    children = list(children)
    n_resolved = 0
    while len(children) > arity:
        merged = arena.join(children[0], children[1], "", 0.0)
        children[0:2] = [merged]
        n_resolved += 1
    return children, n_resolved


def _read_token(s: str, i: int, n: int, stop: str) -> Tuple[str, int]:
    while i < n and s[i] in " \t":
        i += 1
    j = i
    while j < n and s[j] not in stop:
        j += 1
    return s[i:j], j


def _read_weight(s: str, i: int, n: int) -> Tuple[float, int]:
    while i < n and s[i] in " \t":
        i += 1
    if i >= n or s[i] != ":":
        return 0.0, i
    token, i = _read_token(s, i + 1, n, _WEIGHT_END)
    try:
        return float(token), i
    except ValueError:
        raise MalformedTreeError(
            f"Invalid branch length '{token}' in NEWICK string."
        ) from None
