"""
tests/test_nj.py
================
Tests for Neighbor-Joining reconstruction.

Reference matrices
------------------
FOUR_TAXA   A..D, additive for (A:2,B:3,(C:4,D:4):3)

    Q ties at -38 between (B,A) and (D,C); the pair seen later in the
    row-major lower-triangle scan, (D,C), is joined first with D on the left.

FIVE_TAXA   A..E, not additive

    First join (E,D) with 1 / 1, then a tie picks (N,C) with 7/3 / 8/3;
    the base gets A:2, B:4 and N':1.
"""

import logging
import os
import sys

import numpy as np
import pytest

_TREES_DIR = os.path.join(os.path.dirname(__file__), "trees")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from packnj._errors import DimensionMismatchError, MalformedTreeError
from packnj._nj import NeighborJoining, neighbor_joining
from packnj._tree import PackedTree

FOUR_LABELS = ["A", "B", "C", "D"]
FOUR_TAXA = [
    [0, 5, 9, 9],
    [5, 0, 10, 10],
    [9, 10, 0, 8],
    [9, 10, 8, 0],
]

FIVE_LABELS = ["A", "B", "C", "D", "E"]
FIVE_TAXA = [
    [0, 6, 6, 6, 6],
    [6, 0, 8, 8, 8],
    [6, 8, 0, 6, 6],
    [6, 8, 6, 0, 2],
    [6, 8, 6, 2, 0],
]

BACKENDS = ["python", "cpu-parallel"]


def load_tree(filename: str) -> PackedTree:
    with open(os.path.join(_TREES_DIR, filename)) as fh:
        return PackedTree(fh.read().strip())


# ======================================================================== #
# 1. Worked examples                                                        #
# ======================================================================== #


class TestFourTaxa:
    @pytest.mark.parametrize("backend", BACKENDS)
    def test_topology_and_weights(self, backend):
        tree = neighbor_joining(FOUR_TAXA, FOUR_LABELS, backend=backend)
        assert tree.to_string(precision=0) == "(A:2,B:3,(D:4,C:4):3);"

    def test_sorted_string(self):
        tree = neighbor_joining(FOUR_TAXA, FOUR_LABELS)
        assert tree.sort().to_string(precision=0) == "(A:2,B:3,(C:4,D:4):3);"

    def test_unrooted_result(self):
        tree = neighbor_joining(FOUR_TAXA, FOUR_LABELS)
        assert not tree.is_rooted()
        assert tree.unroot == [0, 1, 2]
        assert tree.names == ["A", "B", "", "D", "C"]

    def test_additive_matrix_round_trip(self):
        tree = neighbor_joining(FOUR_TAXA, FOUR_LABELS)
        index = {label: k for k, label in enumerate(FOUR_LABELS)}
        _, matrix = tree.distance_matrix(index)
        assert np.array_equal(matrix, np.array(FOUR_TAXA, dtype=np.float64))

    def test_flat_input(self):
        flat = [x for row in FOUR_TAXA for x in row]
        tree = neighbor_joining(flat, FOUR_LABELS)
        assert tree.to_string(precision=0) == "(A:2,B:3,(D:4,C:4):3);"


class TestFiveTaxa:
    @pytest.mark.parametrize("backend", BACKENDS)
    def test_sorted_string(self, backend):
        tree = neighbor_joining(FIVE_TAXA, FIVE_LABELS, backend=backend)
        assert tree.sort().to_string(precision=4) == (
            "(A:2.0000,B:4.0000,(C:2.6667,(D:1.0000,E:1.0000):2.3333):1.0000);"
        )

    def test_array_order(self):
        tree = neighbor_joining(FIVE_TAXA, FIVE_LABELS)
        assert tree.names == ["A", "B", "", "", "C", "E", "D"]
        assert tree.label_index() == {"A": 0, "B": 1, "C": 2, "E": 3, "D": 4}

    def test_branch_lengths(self):
        tree = neighbor_joining(FIVE_TAXA, FIVE_LABELS)
        np.testing.assert_allclose(
            tree.weight, [2.0, 4.0, 1.0, 7.0 / 3.0, 8.0 / 3.0, 1.0, 1.0]
        )


# ======================================================================== #
# 2. Reconstruction of additive trees                                       #
# ======================================================================== #


def outgroup_shape(tree: PackedTree, outgroup: str) -> str:
    """Weightless, sorted NEWICK of *tree* rerooted at *outgroup*."""
    # re-parse the rendered string so internal labels do not enter sort keys
    tree = PackedTree(tree.to_string())
    if tree.is_rooted():
        tree.make_unrooted()
    return tree.set_outgroup(outgroup).clear_weights().sort().to_string()


class TestRoundTrip:
    """
    The Q criterion and the distance reduction do not depend on branch
    lengths, so an additive matrix yields the source topology.  The branch
    formula divides the row-sum difference by 2*(2n-2), so leaf distances
    of the rebuilt tree are not the source distances in general.
    """

    @pytest.mark.parametrize(
        "filename",
        ["unrooted_5leaf.tree", "balanced_4leaf.tree", "caterpillar_5leaf.tree"],
    )
    @pytest.mark.parametrize("backend", BACKENDS)
    def test_recovers_topology(self, filename, backend):
        source = load_tree(filename)
        index, matrix = source.distance_matrix()
        labels = sorted(index, key=index.get)
        rebuilt = neighbor_joining(matrix, labels, backend=backend)
        assert outgroup_shape(rebuilt, "A") == outgroup_shape(source, "A")

    def test_same_leaf_set(self):
        source = load_tree("unrooted_5leaf.tree")
        index, matrix = source.distance_matrix()
        labels = sorted(index, key=index.get)
        rebuilt = neighbor_joining(matrix, labels)
        assert sorted(rebuilt.label_index()) == sorted(index)
        _, again = rebuilt.distance_matrix(index)
        np.testing.assert_array_equal(again, again.T)

    def test_unequal_row_sums(self):
        # unrooted_4leaf: R = 22, 24, 26, 28.  (D,C) wins the Q tie at -40,
        # D gets 7/2 + 2/12 and C the remainder of 7.
        source = load_tree("unrooted_4leaf.tree")
        index, matrix = source.distance_matrix()
        labels = sorted(index, key=index.get)
        assert labels == ["A", "B", "C", "D"]
        rebuilt = neighbor_joining(matrix, labels)
        assert rebuilt.to_string(precision=4) == (
            "(A:1.0000,B:2.0000,(D:3.6667,C:3.3333):5.0000);"
        )
        np.testing.assert_allclose(
            rebuilt.weight, [1.0, 2.0, 5.0, 11.0 / 3.0, 10.0 / 3.0]
        )
        assert rebuilt.branch_distance("C", "D") == pytest.approx(7.0)
        assert rebuilt.branch_distance("A", "C") == pytest.approx(28.0 / 3.0)


# ======================================================================== #
# 3. Engine behaviour                                                       #
# ======================================================================== #


class TestNeighborJoiningEngine:
    def test_run_is_cached(self):
        nj = NeighborJoining(FOUR_TAXA, FOUR_LABELS)
        assert nj.run() is nj.run()

    def test_input_not_mutated(self):
        d = np.array(FOUR_TAXA, dtype=np.float64)
        before = d.copy()
        NeighborJoining(d, FOUR_LABELS).run()
        assert np.array_equal(d, before)

    def test_three_taxa(self):
        d = [[0, 3, 4], [3, 0, 5], [4, 5, 0]]
        tree = neighbor_joining(d, ["X", "Y", "Z"])
        assert tree.to_string(precision=0) == "(X:1,Y:2,Z:3);"

    def test_label_index(self):
        nj = NeighborJoining(FOUR_TAXA, FOUR_LABELS)
        assert nj.label_index() == {"A": 0, "B": 1, "C": 2, "D": 3}

    def test_backends_bit_identical(self):
        rng = np.random.default_rng(7)
        n = 12
        points = rng.random((n, 3))
        d = np.sqrt(((points[:, None, :] - points[None, :, :]) ** 2).sum(axis=2))
        labels = [f"T{k}" for k in range(n)]
        t_py = neighbor_joining(d, labels, backend="python")
        t_nb = neighbor_joining(d, labels, backend="cpu-parallel")
        assert t_py.names == t_nb.names
        assert np.array_equal(t_py.parent, t_nb.parent)
        assert np.array_equal(t_py.weight, t_nb.weight)

    def test_deterministic(self):
        runs = {neighbor_joining(FIVE_TAXA, FIVE_LABELS).to_string(17) for _ in range(3)}
        assert len(runs) == 1

    def test_negative_branch_kept_and_logged(self, caplog):
        d = [[0, 10, 1], [10, 0, 1], [1, 1, 0]]
        with caplog.at_level(logging.WARNING):
            tree = neighbor_joining(d, ["A", "B", "C"])
        assert tree.weight[2] == -4.0
        assert any("negative" in r.getMessage() for r in caplog.records)


# ======================================================================== #
# 4. Input validation                                                       #
# ======================================================================== #


class TestValidation:
    def test_flat_not_square(self):
        with pytest.raises(DimensionMismatchError):
            NeighborJoining(list(range(15)), FOUR_LABELS)

    def test_rectangular(self):
        with pytest.raises(DimensionMismatchError):
            NeighborJoining(np.zeros((3, 4)), ["A", "B", "C"])

    def test_ragged_rows(self):
        with pytest.raises(DimensionMismatchError):
            NeighborJoining([[0, 1, 2], [1, 0], [2, 1, 0]], ["A", "B", "C"])

    def test_label_count(self):
        with pytest.raises(DimensionMismatchError):
            NeighborJoining(FOUR_TAXA, ["A", "B", "C"])

    def test_too_few_taxa(self):
        with pytest.raises(DimensionMismatchError):
            NeighborJoining([[0, 1], [1, 0]], ["A", "B"])

    def test_duplicate_labels(self):
        with pytest.raises(MalformedTreeError):
            NeighborJoining(FOUR_TAXA, ["A", "B", "A", "D"])

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            NeighborJoining(FOUR_TAXA, FOUR_LABELS, backend="cuda")
