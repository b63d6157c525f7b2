# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

import pytest

from daealias.alias import (
    ZERO,
    AliasGraph,
    aag_bareiss,
    locally_structure_simplify,
    reduce_matrix,
    simple_aliases,
)
from daealias.structure import (
    BipartiteGraph,
    DiffGraph,
    SparseMatrixCLIL,
    linear_subsystem_matrix,
)

pytestmark = pytest.mark.minimal


def linear_system(nvars, rows, var_to_diff=None):
    """Incidence graph, derivative forest and coefficient matrix of `rows`,
    given as `{var: coeff}` dicts."""
    graph = BipartiteGraph.from_adjacency(nvars, [sorted(r) for r in rows])
    mm = linear_subsystem_matrix(graph, dict(enumerate(rows)))
    var_to_diff = DiffGraph.from_successors(var_to_diff or [None] * nvars)
    return graph, var_to_diff, mm


def single_row(ncols, row):
    cols = sorted(row)
    return SparseMatrixCLIL(1, ncols, [0], [cols], [[row[c] for c in cols]])


def alias_value(ag, values, v):
    if v not in ag:
        return values[v]
    coeff, rep = ag[v]
    return 0 if coeff == 0 else coeff * values[rep]


class TestReduceMatrix:
    def test_cancellation(self):
        mm = single_row(3, {0: 1, 1: 1, 2: 1})
        ag = AliasGraph(3)
        ag[2] = (-1, 1)
        reduce_matrix(mm, ag)
        assert mm.row_nonzeros(0) == [(0, 1)]

    def test_zero_and_accumulation(self):
        mm = single_row(3, {0: 1, 1: 1, 2: 1})
        ag = AliasGraph(3)
        ag[1] = 0
        ag[2] = (1, 0)
        reduce_matrix(mm, ag)
        assert mm.row_nonzeros(0) == [(0, 2)]

    def test_untouched_rows(self):
        mm = single_row(3, {0: 1, 1: -1})
        ag = AliasGraph(3)
        ag[2] = 0
        reduce_matrix(mm, ag)
        assert mm.row_nonzeros(0) == [(0, 1), (1, -1)]


class TestLocallyStructureSimplify:
    def test_positive_alias(self):
        mm = single_row(2, {0: 1, 1: -1})
        ag = AliasGraph(2)
        assert locally_structure_simplify(mm.row(0), 0, ag)
        assert ag[0] == (1, 1)
        assert mm.count_nonzeros(0) == 0

    def test_negative_alias(self):
        mm = single_row(2, {0: 2, 1: 2})
        ag = AliasGraph(2)
        assert locally_structure_simplify(mm.row(0), 0, ag)
        assert ag[0] == (-1, 1)

    def test_non_unit_ratio(self):
        mm = single_row(2, {0: 2, 1: 1})
        ag = AliasGraph(2)
        assert not locally_structure_simplify(mm.row(0), 0, ag)
        assert 0 not in ag
        assert mm.row_nonzeros(0) == [(0, 2), (1, 1)]

    def test_cancellation_gives_zero(self):
        mm = single_row(3, {0: 1, 1: 1, 2: 1})
        ag = AliasGraph(3)
        ag[2] = (-1, 1)
        assert locally_structure_simplify(mm.row(0), 0, ag)
        assert ag[0] == ZERO
        assert mm.count_nonzeros(0) == 0

    def test_pivot_already_eliminated(self):
        mm = single_row(2, {0: 1, 1: -1})
        ag = AliasGraph(2)
        ag[0] = 0
        assert not locally_structure_simplify(mm.row(0), 0, ag)
        assert mm.count_nonzeros(0) == 2

    def test_pivot_not_in_row(self):
        mm = single_row(3, {1: 1, 2: -1})
        ag = AliasGraph(3)
        assert not locally_structure_simplify(mm.row(0), 0, ag)

    def test_too_many_terms_keeps_substituted_row(self):
        mm = single_row(4, {0: 1, 1: 1, 2: 1, 3: 1})
        ag = AliasGraph(4)
        ag[3] = (1, 2)
        assert not locally_structure_simplify(mm.row(0), 0, ag)
        assert 0 not in ag
        assert mm.row_nonzeros(0) == [(0, 1), (1, 1), (2, 2)]


class TestAagBareiss:
    def test_rows_stay_in_sync(self):
        graph, var_to_diff, mm_orig = linear_system(3, [{0: 1, 1: 1, 2: 1}, {2: 1}])
        mm, solvable, (rank1, rank2, pivots) = aag_bareiss(graph, var_to_diff, mm_orig)
        assert mm.nzrows == mm_orig.nzrows == [1, 0]
        assert rank1 == rank2 == 2
        assert pivots[0] == 2
        assert len(solvable) == 2
        assert 2 in solvable
        # the original rows are only permuted
        assert mm_orig.row_nonzeros(0) == [(2, 1)]

    def test_only_linear_algebraic(self):
        # x1 = x0 and x1 = D(x0)
        graph, var_to_diff, mm_orig = linear_system(
            3, [{0: 1, 1: -1}, {1: 1, 2: -1}], var_to_diff=[2, None, None]
        )
        _, _, (rank1, rank2, pivots) = aag_bareiss(
            graph, var_to_diff, mm_orig, only_linear_algebraic=True
        )
        assert rank1 == rank2 == 1
        assert pivots[0] in (0, 1)

        graph, var_to_diff, mm_orig = linear_system(
            3, [{0: 1, 1: -1}, {1: 1, 2: -1}], var_to_diff=[2, None, None]
        )
        _, _, (rank1, rank2, _) = aag_bareiss(graph, var_to_diff, mm_orig)
        assert rank1 == 1
        assert rank2 == 2


class TestSimpleAliases:
    def test_chain(self):
        rows = [{0: 1, 1: -1}, {1: 1, 2: 1}, {2: 1, 3: -1}]
        graph, var_to_diff, mm_orig = linear_system(4, rows)
        ag = AliasGraph(4)
        mm = simple_aliases(ag, graph, var_to_diff, mm_orig)

        assert len(ag) == 3
        assert all(mm.count_nonzeros(i) == 0 for i in range(mm.nrows))
        (survivor,) = [v for v in range(4) if v not in ag]
        values = {survivor: 5}
        x = [alias_value(ag, values, v) for v in range(4)]
        for row in rows:
            assert sum(c * x[v] for v, c in row.items()) == 0

    def test_needs_elimination(self):
        # x0 + x1 + x2 = 0 and x0 + x1 - x2 = 0
        rows = [{0: 1, 1: 1, 2: 1}, {0: 1, 1: 1, 2: -1}]
        graph, var_to_diff, mm_orig = linear_system(3, rows)
        ag = AliasGraph(3)
        simple_aliases(ag, graph, var_to_diff, mm_orig)

        assert len(ag) == 2
        assert ag[2] == ZERO
        assert ag.get(0) == (-1, 1) or ag.get(1) == (-1, 0)

    @pytest.mark.parametrize("irreducible, eliminated", [(0, 1), (1, 0)])
    def test_irreducibles_are_kept(self, irreducible, eliminated):
        graph, var_to_diff, mm_orig = linear_system(2, [{0: 1, 1: -1}])
        ag = AliasGraph(2)
        simple_aliases(ag, graph, var_to_diff, mm_orig, irreducibles={irreducible})
        assert dict(ag.items()) == {eliminated: (1, irreducible)}

    def test_only_linear_algebraic(self):
        graph, var_to_diff, mm_orig = linear_system(
            3, [{0: 1, 1: -1}, {1: 1, 2: -1}], var_to_diff=[2, None, None]
        )
        ag = AliasGraph(3)
        simple_aliases(ag, graph, var_to_diff, mm_orig, only_linear_algebraic=True)
        assert len(ag) == 1
        assert 2 not in ag

    def test_non_unit_coefficients(self):
        graph, var_to_diff, mm_orig = linear_system(2, [{0: 2, 1: 3}])
        ag = AliasGraph(2)
        mm = simple_aliases(ag, graph, var_to_diff, mm_orig)
        assert len(ag) == 0
        assert mm.count_nonzeros(0) == 2
