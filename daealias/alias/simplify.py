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

"""
Alias discovery on the linear subsystem.

Let `m` be the number of linear equations and `n` the number of variables.
The Bareiss factorization conceptually gives

    rank1 | [ M11  M12 | M13 ]   [v1]   [0]
    rank2 | [ 0    M22 | M23 ] P [v2] = [0]
          | [ 0    0   | 0   ]   [v3]   [0]

where `v1` are the variables matched in purely linear algebraic equations,
`v2` the other variables that the linear system may solve for, and `v3` those
that contribute to the equations without being solved by them. Walking the
pivot rows backwards while substituting the aliases found so far turns every
row that ends up with at most two terms into an alias.
"""

from typing import Collection

from daealias.logging import logger
from daealias.structure.bareiss import bareiss, find_masked_pivot
from daealias.structure.bipartite_graph import BipartiteGraph, DiffGraph, maximal_matching
from daealias.structure.sparse_matrix import CLILRow, SparseMatrixCLIL

from .alias_graph import AliasGraph


def reduce_matrix(mm: SparseMatrixCLIL, ag: AliasGraph) -> SparseMatrixCLIL:
    """Substitute every alias of `ag` into every row of `mm`, in place."""
    for i in range(mm.nrows):
        if not any(c in ag for c in mm.row_cols[i]):
            continue
        row = {}
        for c, val in mm.row_nonzeros(i):
            alias = ag.get(c)
            if alias is None:
                row[c] = row.get(c, 0) + val
                continue
            coeff, rep = alias
            if coeff != 0:
                row[rep] = row.get(rep, 0) + coeff * val
        cols = sorted(row)
        mm.set_row(i, cols, [row[c] for c in cols])
    return mm


def locally_structure_simplify(row: CLILRow, pivot_var: int, ag: AliasGraph) -> bool:
    """
    Try to turn `row` into an alias of its pivot variable.

    The aliases already in `ag` are substituted into the non-pivot terms,
    which may cancel some of them. If at most one other term `c * a`
    survives next to the pivot term `p * v`, then

        p * v + c * a = 0  =>  v = -(c / p) * a

    which is recorded when the quotient is exactly 1 or -1 (or `v = 0` when
    no other term survives), and the row is cleared. Otherwise nothing is
    recorded and False is returned; the substituted row is an equivalent
    equation and is kept.
    """
    if pivot_var in ag or row[pivot_var] == 0:
        return False

    # The row is edited while it is walked, `next_nonzero` always looks at
    # its current state.
    col = -1
    nz = row.next_nonzero(col)
    while nz is not None:
        var, val = nz
        col = var
        if var != pivot_var:
            alias = ag.get(var)
            if alias is not None:
                # `var = coeff * alias_var`, so we eliminate this var.
                coeff, alias_var = alias
                row[var] = 0
                if coeff != 0:
                    row[alias_var] = row[alias_var] + coeff * val
        nz = row.next_nonzero(col)

    pivot_val = row[pivot_var]
    if pivot_val == 0:
        return False

    irreducible = [(var, val) for var, val in row.nonzeros() if var != pivot_var]
    if len(irreducible) > 1:
        return False

    if irreducible:
        alias_var, alias_val = irreducible[0]
        d, r = divmod(alias_val, pivot_val)
        if r != 0 or d not in (1, -1):
            return False
        ag[pivot_var] = (-d, alias_var)
    else:
        ag[pivot_var] = 0

    row.zero()
    return True


def aag_bareiss(
    graph: BipartiteGraph,
    var_to_diff: DiffGraph,
    mm_orig: SparseMatrixCLIL,
    only_linear_algebraic: bool = False,
    irreducibles: Collection[int] = (),
):
    """
    Bareiss factorization of a copy of `mm_orig`.

    Pivots are first searched among the variables matched to linear algebraic
    equations (the rank1 block). Unless `only_linear_algebraic` is set, the
    search then continues over all variables. `mm_orig` has its rows swapped
    along with the copy so both keep pointing at the same equations.

    Returns:
        `(mm, solvable_variables, (rank1, rank2, pivots))`
    """
    mm = mm_orig.copy()

    is_linear_equations = [False] * mm_orig.nparentrows
    for e in mm_orig.nzrows:
        is_linear_equations[e] = all(
            var_to_diff.is_lowest(v) for v in graph.src_neighbors(e)
        )

    var_to_eq = maximal_matching(
        graph,
        lambda eq: is_linear_equations[eq],
        lambda var: var_to_diff.is_lowest(var) and var not in irreducibles,
    )
    is_linear_variables = [e is not None for e in var_to_eq]
    solvable_variables = [v for v, lin in enumerate(is_linear_variables) if lin]

    rank1 = None
    pivots: list[int] = []

    def find_pivot(M, k):
        nonlocal rank1
        if rank1 is None:
            r = find_masked_pivot(is_linear_variables, M, k)
            if r is not None:
                return r
            rank1 = k
        if only_linear_algebraic:
            return None
        # TODO: sort the candidates by derivative order so that the least
        # differentiated variables are eliminated first.
        return find_masked_pivot(None, M, k)

    def find_and_record_pivot(M, k):
        r = find_pivot(M, k)
        if r is None:
            return None
        pivots.append(r[0][1])
        return r

    def swap_rows(i, j):
        mm_orig.swap_rows(i, j)
        mm.swap_rows(i, j)

    rank2, _ = bareiss(mm, find_pivot=find_and_record_pivot, swap_rows=swap_rows)
    if rank1 is None:
        rank1 = rank2

    logger.debug(
        "aag_bareiss: rank1=%s rank2=%s pivots=%s solvable=%s",
        rank1,
        rank2,
        pivots,
        solvable_variables,
    )
    return mm, solvable_variables, (rank1, rank2, pivots)


def simple_aliases(
    ag: AliasGraph,
    graph: BipartiteGraph,
    var_to_diff: DiffGraph,
    mm_orig: SparseMatrixCLIL,
    only_linear_algebraic: bool = False,
    irreducibles: Collection[int] = (),
) -> SparseMatrixCLIL:
    """
    Record in `ag` every alias that the linear subsystem `mm_orig` proves and
    return the simplified matrix. The rows of `mm_orig` are permuted in
    place to match the rows of the returned matrix.
    """
    mm, _, (rank1, rank2, pivots) = aag_bareiss(
        graph, var_to_diff, mm_orig, only_linear_algebraic, irreducibles
    )

    def lss(ei):
        return locally_structure_simplify(mm.row(ei), pivots[ei], ag)

    # Go backwards, collecting eliminated variables and substituting aliases
    # as we go.
    for ei in reversed(range(rank2)):
        lss(ei)

    # Bareiss can make an equation denser than it was. In that case use the
    # original row instead and try it again.
    reduced = False
    for ei in range(rank2):
        if mm_orig.count_nonzeros(ei) < mm.count_nonzeros(ei):
            mm.set_row(ei, mm_orig.row_cols[ei], mm_orig.row_vals[ei])
            reduced |= lss(ei)

    # Iterate to convergence, `lss` modifies the rows.
    if reduced:
        while any(lss(ei) for ei in range(rank2)):
            pass

    logger.debug("simple_aliases: %s aliases after rank1=%s rank2=%s", len(ag), rank1, rank2)
    return mm
