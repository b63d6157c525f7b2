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
Evaluation order of observed equations.

Each observed equation `lhs = rhs` defines one variable. An equation can only
be evaluated once every observed variable in its right-hand side is known, so
the equations are sorted with Kahn's algorithm on that dependency graph.
"""

from collections import deque
from typing import TYPE_CHECKING, Optional, Sequence

from daealias.error import EquationCycleError, UnknownVariableError
from daealias.lazy_loader import LazyLoader
from daealias.logging import logger
from daealias.structure.bipartite_graph import BipartiteGraph

if TYPE_CHECKING:
    import sympy as sp
else:
    sp = LazyLoader("sp", globals(), "sympy")


def _referenced(expr, index: dict) -> list[int]:
    # `x(t)` inside `Derivative(x(t), t)` is not a reference to `x(t)`.
    derivatives = expr.atoms(sp.Derivative)
    found = {d for d in derivatives if d in index}
    stripped = expr.xreplace({d: sp.Dummy() for d in derivatives})
    found.update(a for a in stripped.atoms(sp.Symbol, sp.Function) if a in index)
    return sorted(index[a] for a in found)


def observed2graph(
    eqs: Sequence["sp.Eq"], states: Sequence
) -> tuple[BipartiteGraph, list[Optional[int]]]:
    """
    Incidence graph between the observed equations and the variables of their
    right-hand sides.

    Returns:
        `(graph, assigns)`, where `assigns[j]` is the equation defining
        `states[j]`, or None.

    Raises:
        UnknownVariableError: the left-hand side of an equation is not in
            `states`.
    """
    index = {s: j for j, s in enumerate(states)}
    graph = BipartiteGraph(len(eqs), len(states))
    assigns: list[Optional[int]] = [None] * len(states)

    for i, eq in enumerate(eqs):
        j = index.get(eq.lhs)
        if j is None:
            raise UnknownVariableError(
                f"The left-hand side of observed equation {i} is not a defined variable",
                variables=[eq.lhs],
                equations=[eq],
            )
        assigns[j] = i
        for k in _referenced(eq.rhs, index):
            graph.add_edge(i, k)

    return graph, assigns


def topsort_equations(
    eqs: Sequence["sp.Eq"], states: Sequence, check: bool = True
) -> list["sp.Eq"]:
    """
    Sort `eqs` so that every equation comes after the equations defining the
    variables it uses. Ties keep the input order.

    Variables of `states` without a defining equation are inputs and never
    delay anything.

    With `check=False` a cycle is not an error and the equations that could be
    ordered are returned, which is only meant for diagnostics.

    Raises:
        EquationCycleError: some equations depend on each other and `check`
            is set.
    """
    graph, assigns = observed2graph(eqs, states)
    neqs = len(eqs)

    degrees = [0] * neqs
    for i in range(neqs):
        for j in graph.src_neighbors(i):
            if assigns[j] is not None:
                degrees[i] += 1

    # `dependents[i]`: equations whose right-hand side uses the lhs of `i`.
    dependents: list[list[int]] = [[] for _ in range(neqs)]
    for j, i in enumerate(assigns):
        if i is not None:
            dependents[i].extend(graph.dst_neighbors(j))

    queue = deque(i for i in range(neqs) if degrees[i] == 0)
    order = []
    while queue:
        i = queue.popleft()
        order.append(i)
        for d in dependents[i]:
            degrees[d] -= 1
            if degrees[d] == 0:
                queue.append(d)

    if len(order) < neqs:
        cyclic = [eqs[i] for i in range(neqs) if degrees[i] > 0]
        if check:
            raise EquationCycleError(
                "The observed equations contain a cycle", equations=cyclic
            )
        logger.warning("Observed equations with cyclic dependencies: %s", cyclic)

    return [eqs[i] for i in order]
