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

import numpy as np
import pytest
import sympy as sp

from daealias.alias import alias_eliminate_graph
from daealias.structure import BipartiteGraph, DiffGraph, linear_subsystem_matrix

pytestmark = pytest.mark.minimal


def build(nvars, eqs, linear, var_to_diff=None):
    """`eqs` lists the variables of every equation, `linear` maps some of
    them to their integer coefficients."""
    graph = BipartiteGraph.from_adjacency(nvars, eqs)
    mm = linear_subsystem_matrix(graph, linear)
    var_to_diff = DiffGraph.from_successors(var_to_diff or [None] * nvars)
    return graph, var_to_diff, mm


def dense_rows(mm):
    return [[mm[i, j] for j in range(mm.ncols)] for i in range(mm.nrows)]


def random_algebraic_system(seed, nvars=8, neqs=6):
    rng = np.random.default_rng(seed)
    rows = []
    for _ in range(neqs):
        nterms = int(rng.choice([2, 2, 3]))
        vs = rng.choice(nvars, size=nterms, replace=False).tolist()
        rows.append({v: int(rng.choice([-1, 1, 1, 2])) for v in vs})
    return rows


class TestAliasEliminateGraph:
    def test_no_linear_equations(self):
        graph, var_to_diff, mm = build(2, [[0, 1]], {})
        ag, mm_out, updated = alias_eliminate_graph(graph, var_to_diff, mm)
        assert len(ag) == 0
        assert mm_out.nrows == 0
        assert updated == []
        assert graph.src_neighbors(0) == [0, 1]

    def test_input_matrix_is_untouched(self):
        graph, var_to_diff, mm = build(3, [[0, 1], [1, 2]], {0: {0: 1, 1: -1}, 1: {1: 1, 2: 1}})
        before = (list(mm.nzrows), [list(c) for c in mm.row_cols])
        alias_eliminate_graph(graph, var_to_diff, mm)
        assert (mm.nzrows, mm.row_cols) == before

    def test_derivative_alias(self):
        # 0: x_t = D(x), 1: D(x_t) = f(x), nonlinear
        x, dx, xt, dxt = range(4)
        graph, var_to_diff, mm = build(
            4,
            [[dx, xt], [x, dxt]],
            {0: {xt: 1, dx: -1}},
            var_to_diff=[dx, None, dxt, None],
        )
        ag, mm_out, updated = alias_eliminate_graph(graph, var_to_diff, mm)

        assert dict(ag.items()) == {xt: (1, dx)}
        assert updated == [dx]
        assert var_to_diff[dx] == dxt
        assert var_to_diff[xt] is None
        assert mm_out.count_nonzeros(0) == 0
        assert graph.src_neighbors(0) == []
        assert graph.src_neighbors(1) == [x, dxt]

    def test_nonlinear_edges_follow_aliases(self):
        # 0: x0 = x1, 1: f(x0, x2)
        graph, var_to_diff, mm = build(3, [[0, 1], [0, 2]], {0: {0: 1, 1: -1}})
        ag, _, _ = alias_eliminate_graph(graph, var_to_diff, mm)

        assert len(ag) == 1
        (v,) = ag.keys()
        _, rep = ag[v]
        assert graph.src_neighbors(0) == []
        assert v not in graph.src_neighbors(1)
        assert graph.src_neighbors(1) == sorted({rep, 2} - {v})
        assert graph.dst_neighbors(v) == []

    def test_oscillator(self):
        # 0: x_t = D(x), 1: D(x_t) = -x
        x, dx, xt, dxt = range(4)
        graph, var_to_diff, mm = build(
            4,
            [[dx, xt], [x, dxt]],
            {0: {xt: 1, dx: -1}, 1: {dxt: 1, x: 1}},
            var_to_diff=[dx, None, dxt, None],
        )
        ag, mm_out, updated = alias_eliminate_graph(graph, var_to_diff, mm)

        # D(x_t) becomes D(D(x)) and D(D(x)) = -x is kept
        assert dict(ag.items()) == {xt: (1, dx)}
        assert updated == [dx]
        assert var_to_diff[dx] == dxt
        assert [mm_out.count_nonzeros(i) for i in range(2)] == [0, 2]
        assert mm_out.row_nonzeros(1) == [(x, 1), (dxt, 1)]
        assert graph.src_neighbors(0) == []
        assert graph.src_neighbors(1) == [x, dxt]

    def test_ode_with_algebraic_alias(self):
        # 0: D(x) = y, 1: y = -x
        x, dx, y = range(3)
        graph, var_to_diff, mm = build(
            3,
            [[dx, y], [x, y]],
            {0: {dx: 1, y: -1}, 1: {y: 1, x: 1}},
            var_to_diff=[dx, None, None],
        )
        ag, mm_out, updated = alias_eliminate_graph(graph, var_to_diff, mm)

        assert ag.keys() == [y]
        assert ag[y] in [(1, dx), (-1, x)]
        assert updated == []
        rows = [mm_out.row_nonzeros(i) for i in range(mm_out.nrows)]
        assert sorted(len(r) for r in rows) == [0, 2]
        (row,) = [r for r in rows if r]
        assert [c for c, _ in row] == [x, dx]
        assert row[0][1] == row[1][1]

    @pytest.mark.parametrize("seed", range(10))
    def test_solution_set_is_preserved(self, seed):
        nvars = 8
        rows = random_algebraic_system(seed, nvars=nvars)
        graph, var_to_diff, mm = build(
            nvars, [sorted(r) for r in rows], dict(enumerate(rows))
        )
        A = sp.Matrix(dense_rows(mm))
        ag, mm_out, _ = alias_eliminate_graph(graph, var_to_diff, mm)

        final = [r for r in dense_rows(mm_out) if any(r)]
        for r in final:
            assert all(r[v] == 0 for v in ag)

        # every solution of the original system satisfies the aliases and the
        # reduced equations
        for n in A.nullspace():
            for v, (coeff, rep) in ag.items():
                expected = 0 if coeff == 0 else coeff * n[rep]
                assert n[v] == expected
            for r in final:
                assert sum(c * n[j] for j, c in enumerate(r)) == 0

        # and every solution of the reduced system solves the original one
        F = sp.Matrix(final) if final else sp.zeros(0, nvars)
        for i in range(A.rows):
            s = [0] * nvars
            for j in range(nvars):
                if A[i, j] == 0:
                    continue
                if j in ag:
                    coeff, rep = ag[j]
                    if coeff != 0:
                        s[rep] += coeff * A[i, j]
                else:
                    s[j] += A[i, j]
            if not any(s):
                continue
            assert F.rows > 0
            assert sp.Matrix.vstack(F, sp.Matrix([s])).rank() == F.rank()
