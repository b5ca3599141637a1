"""
tests/test_newick.py
====================
Tests for the NEWICK parser (parse_newick) and multifurcation resolution.
"""

import logging
import os
import sys

import pytest

_TREES_DIR = os.path.join(os.path.dirname(__file__), "trees")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from packnj._errors import MalformedTreeError, PackNJError
from packnj._newick import parse_newick
from packnj._tree import PackedTree


def load_newick(filename: str) -> str:
    with open(os.path.join(_TREES_DIR, filename)) as fh:
        return fh.read().strip()


def bifurcation_warnings(caplog) -> list:
    return [r for r in caplog.records if "bifurcating" in r.getMessage().lower()]


# ======================================================================== #
# 1. Well-formed input                                                      #
# ======================================================================== #


class TestParseNewick:
    def test_rooted_tree_has_single_root(self):
        arena, roots, n_leaves = parse_newick("(A,B);")
        assert len(roots) == 1
        assert n_leaves == 2
        assert len(arena) == 3
        root = roots[0]
        assert arena.label[arena.left[root]] == "A"
        assert arena.label[arena.right[root]] == "B"

    def test_three_way_top_level_is_unrooted(self):
        arena, roots, n_leaves = parse_newick("(A,B,C);")
        assert [arena.label[r] for r in roots] == ["A", "B", "C"]
        assert len(arena) == 3
        assert all(arena.parent[r] == -1 for r in roots)

    def test_single_leaf(self):
        arena, roots, n_leaves = parse_newick("A:3;")
        assert roots == [0]
        assert n_leaves == 1
        assert arena.weight[0] == 0.0

    def test_weights_and_internal_labels(self):
        arena, roots, _ = parse_newick("((A:1.5,B:2)0.9:2.5,C:3,D);")
        ab = roots[0]
        assert arena.label[ab] == "0.9"
        assert arena.weight[ab] == 2.5
        assert arena.weight[arena.left[ab]] == 1.5
        assert arena.weight[arena.right[ab]] == 2.0
        assert arena.weight[roots[2]] == 0.0

    def test_scientific_notation_weight(self):
        arena, roots, _ = parse_newick("(A:1e-3,B:2.5E2);")
        root = roots[0]
        assert arena.weight[arena.left[root]] == 0.001
        assert arena.weight[arena.right[root]] == 250.0

    def test_whitespace_ignored(self):
        tree = PackedTree(" ( A : 1 ,\n B : 2 ) ; ")
        assert tree.to_string(precision=0) == "(A:1,B:2);"

    def test_missing_semicolon(self):
        assert PackedTree("(A:1,B:2,C:3)").to_string(precision=0) == "(A:1,B:2,C:3);"

    def test_root_weight_dropped(self):
        arena, roots, _ = parse_newick("(A:1,B:1):4;")
        assert arena.weight[roots[0]] == 0.0

    def test_parent_links(self):
        arena, roots, _ = parse_newick("((A,B),(C,D));")
        for node in range(len(arena)):
            for child in (arena.left[node], arena.right[node]):
                if child != -1:
                    assert arena.parent[child] == node


# ======================================================================== #
# 2. Malformed input                                                        #
# ======================================================================== #


class TestMalformedNewick:
    @pytest.mark.parametrize(
        "newick",
        [
            "((A,B);",  # unclosed group
            "(A,B));",  # stray ')'
            "((A),B);",  # single-child internal group
            "(A);",  # single-child top-level group
            "(A,B)(C,D);",  # two top-level groups
            "(A,B);(C,D);",  # second tree after the terminator
            "(A,B);C",  # trailing label
        ],
    )
    def test_structure_errors(self, newick):
        with pytest.raises(MalformedTreeError):
            parse_newick(newick)

    def test_two_bare_leaves(self):
        with pytest.raises(MalformedTreeError):
            parse_newick("A,B;")

    def test_invalid_weight(self):
        with pytest.raises(MalformedTreeError, match="branch length"):
            parse_newick("(A:x,B);")

    def test_duplicate_leaf(self):
        with pytest.raises(MalformedTreeError, match="Duplicate"):
            parse_newick("(A,(B,A));")

    @pytest.mark.parametrize("newick", ["", ";", "   "])
    def test_empty_input(self, newick):
        with pytest.raises(MalformedTreeError):
            parse_newick(newick)

    def test_errors_share_base_class(self):
        with pytest.raises(PackNJError):
            PackedTree("((A,B);")
        with pytest.raises(ValueError):
            PackedTree("((A,B);")


# ======================================================================== #
# 3. Multifurcations                                                        #
# ======================================================================== #


class TestMultifurcationResolution:
    """
    Multifurcating test trees:
      star_4leaf.tree            (A,B,C,D)             top level with 4 children
      trifurcating_internal.tree ((A:1,B:1,C:1):1,D:1) internal trifurcation
    """

    def test_no_warning_on_bifurcating_tree(self, caplog):
        with caplog.at_level(logging.WARNING):
            PackedTree(load_newick("balanced_4leaf.tree"))
        assert len(bifurcation_warnings(caplog)) == 0

    def test_no_warning_on_ternary_base(self, caplog):
        with caplog.at_level(logging.WARNING):
            PackedTree(load_newick("unrooted_4leaf.tree"))
        assert len(bifurcation_warnings(caplog)) == 0

    def test_star_warning_emitted_once(self, caplog):
        with caplog.at_level(logging.WARNING):
            PackedTree(load_newick("star_4leaf.tree"))
        assert len(bifurcation_warnings(caplog)) == 1

    def test_star_resolved_to_ternary_base(self):
        tree = PackedTree(load_newick("star_4leaf.tree"))
        assert not tree.is_rooted()
        assert tree.n_leaves == 4
        assert tree.n_nodes == 5
        assert tree.to_string() == "((A,B),C,D);"

    def test_internal_trifurcation(self, caplog):
        with caplog.at_level(logging.WARNING):
            tree = PackedTree(load_newick("trifurcating_internal.tree"))
        assert len(bifurcation_warnings(caplog)) == 1
        assert tree.is_rooted()
        assert tree.n_nodes == 7
        assert tree.to_string(precision=0) == "(((A:1,B:1),C:1):1,D:1);"

    def test_internal_trifurcation_distances(self):
        tree = PackedTree(load_newick("trifurcating_internal.tree"))
        assert tree.branch_distance("A", "B") == 2.0
        assert tree.branch_distance("A", "C") == 2.0
        assert tree.branch_distance("B", "C") == 2.0
        assert tree.branch_distance("A", "D") == 3.0

    def test_large_polytomy(self, caplog):
        with caplog.at_level(logging.WARNING):
            arena, roots, n_leaves = parse_newick("(A,B,C,D,E,F);")
        assert len(roots) == 3
        assert n_leaves == 6
        assert "3 multifurcation" in bifurcation_warnings(caplog)[0].getMessage()
