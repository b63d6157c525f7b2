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

from daealias.logging import logdata, logger
from daealias.structure.bipartite_graph import BipartiteGraph, DiffGraph
from daealias.structure.sparse_matrix import SparseMatrixCLIL

from .alias_graph import AliasGraph
from .diff_chains import resolve_diff_chains
from .simplify import reduce_matrix, simple_aliases

__all__ = ["alias_eliminate_graph"]


def _merge_aliases(
    newag: AliasGraph, ag: AliasGraph, irreducibles: set[int]
) -> AliasGraph:
    final_ag = newag.copy()
    for v, alias in ag.items():
        if v in irreducibles or v in final_ag:
            continue
        final_ag[v] = alias
    return final_ag


def _substitute_edges(graph: BipartiteGraph, ag: AliasGraph, linear_eqs: set[int]):
    """Move the edges of the other equations from the eliminated variables to
    their representatives."""
    for v, (coeff, rep) in ag.items():
        for e in list(graph.dst_neighbors(v)):
            if e in linear_eqs:
                continue
            graph.rem_edge(e, v)
            if coeff != 0:
                graph.add_edge(e, rep)


def alias_eliminate_graph(
    graph: BipartiteGraph,
    var_to_diff: DiffGraph,
    mm_orig: SparseMatrixCLIL,
    debug: bool = False,
) -> tuple[AliasGraph, SparseMatrixCLIL, list[int]]:
    """
    Find every variable of the linear subsystem that is provably `±1` times
    another variable, or zero.

    Three passes are made. Simple aliases are read off the Bareiss
    factorization of `mm_orig`, the differentiation chains are then made
    consistent with them, and finally the matrix is reduced again with the
    canonical chain variables held fixed.

    `graph` and `var_to_diff` are updated in place; `mm_orig` is not touched.

    Args:
        graph: Incidence graph of the whole system.
        var_to_diff: Derivative successors of the variables.
        mm_orig: Integer coefficient matrix of the linear equations.
        debug: Log every alias that is found.

    Returns:
        `(ag, mm, updated_diff_vars)`: the alias graph, the reduced linear
        equations (rows still identify their equation through `nzrows`) and
        the variables whose derivative was newly assigned in `var_to_diff`.
        The caller must create the derivative of those variables.
    """
    mm_orig = mm_orig.copy()
    if mm_orig.nrows == 0:
        return AliasGraph(graph.ndsts), mm_orig, []

    ag = AliasGraph(graph.ndsts)
    mm = simple_aliases(ag, graph, var_to_diff, mm_orig)
    logger.debug("alias_eliminate_graph: %s simple aliases", len(ag))

    newag, irreducibles, updated_diff_vars = resolve_diff_chains(
        ag, var_to_diff, debug=debug
    )
    if irreducibles or len(newag) > 0:
        ag = _merge_aliases(newag, ag, irreducibles)
        mm = reduce_matrix(mm_orig.copy(), ag)
        mm = simple_aliases(
            ag,
            graph,
            var_to_diff,
            mm,
            only_linear_algebraic=True,
            irreducibles=irreducibles,
        )

    mm = reduce_matrix(mm, ag)
    for i, e in enumerate(mm.nzrows):
        graph.set_neighbors(e, mm.row_cols[i])
    _substitute_edges(graph, ag, set(mm.nzrows))

    if debug:
        for v, (coeff, rep) in ag.items():
            logger.debug(
                "alias: %s = %s",
                v,
                0 if coeff == 0 else f"{coeff} * {rep}",
                **logdata(var=v, coeff=coeff, rep=rep),
            )
    logger.debug(
        "alias_eliminate_graph: %s aliases, %s updated derivatives",
        len(ag),
        len(updated_diff_vars),
    )
    return ag, mm, updated_diff_vars
