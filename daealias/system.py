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
Symbolic front end of the alias elimination.

The elimination core only deals with integer handles and integer
coefficients. This module turns a list of sympy equations into that
representation and maps the result back: variables are the applied undefined
functions of the equations (`x(t)`) and their time derivatives, every lower
derivative of a derivative that appears being a variable as well.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Mapping, Optional, Sequence

from daealias.alias import alias_eliminate_graph
from daealias.error import EquationCycleError, InvalidSystemError
from daealias.lazy_loader import LazyLoader
from daealias.logging import logger, scope_logging
from daealias.structure.bipartite_graph import BipartiteGraph, DiffGraph
from daealias.structure.sparse_matrix import SparseMatrixCLIL, linear_subsystem_matrix
from daealias.topsort import topsort_equations

if TYPE_CHECKING:
    import sympy as sp
    import sympy.core.function as scf
else:
    sp = LazyLoader("sp", globals(), "sympy")
    scf = LazyLoader("scf", globals(), "sympy.core.function")

__all__ = [
    "DAESystem",
    "TearingState",
    "alias_elimination",
    "fixpoint_sub",
    "rename_promoted",
    "substitute_aliases",
]


@dataclass
class DAESystem:
    """
    Equations `eqs` in the unknowns of `t`, plus the explicit definitions
    `observed` of variables that were eliminated from them.

    `states` is filled in by `alias_elimination` with the unknowns that are
    left, at their lowest differentiation level.
    """

    eqs: list
    t: Optional["sp.Symbol"] = None
    observed: list = field(default_factory=list)
    states: list = field(default_factory=list)


def _as_equation(eq) -> "sp.Eq":
    if isinstance(eq, sp.Eq):
        return eq
    return sp.Eq(sp.sympify(eq), 0)


def _independent_variable(eqs, t):
    if t is not None:
        return t
    for eq in eqs:
        for d in eq.atoms(sp.Derivative):
            return d.variables[0]
    return None


def _derivative_order(var) -> int:
    if isinstance(var, sp.Derivative):
        return var.derivative_count
    return 0


def _lower(var, t):
    """`var` differentiated one time less."""
    order = _derivative_order(var)
    if order == 1:
        return var.expr
    return sp.Derivative(var.expr, (t, order - 1))


def _differentiate(var, t):
    return sp.Derivative(_base(var), (t, _derivative_order(var) + 1))


def _base(var):
    return var.expr if isinstance(var, sp.Derivative) else var


def collect_variables(eqs, t) -> list:
    """
    Unknowns of `eqs` in order of appearance. `Derivative(x(t), (t, n))`
    brings in `x(t)` and all its derivatives up to order `n`.
    """
    fullvars = []
    seen = set()

    def add(v):
        if v not in seen:
            seen.add(v)
            fullvars.append(v)

    for eq in eqs:
        derivatives = eq.atoms(sp.Derivative)
        stripped = eq.xreplace({d: sp.Dummy() for d in derivatives})
        for f in sorted(stripped.atoms(scf.AppliedUndef), key=sp.default_sort_key):
            add(f)
        for d in sorted(derivatives, key=sp.default_sort_key):
            if not isinstance(d.expr, scf.AppliedUndef) or set(d.variables) != {t}:
                raise InvalidSystemError(
                    "Only time derivatives of unknown functions are supported",
                    variables=[d],
                    equations=[eq],
                )
            add(d.expr)
            for k in range(1, d.derivative_count + 1):
                add(sp.Derivative(d.expr, (t, k)))

    return fullvars


def _linear_coefficients(expr, gens) -> Optional[dict]:
    """`{gen: coeff}` when `expr` is a linear form of `gens` with integer
    coefficients and no constant term, None otherwise."""
    if not gens:
        return None
    try:
        poly = sp.Poly(expr, *gens)
    except sp.PolynomialError:
        return None

    coeffs = {}
    for monom, c in poly.terms():
        if sum(monom) != 1 or not c.is_Integer:
            return None
        coeffs[gens[monom.index(1)]] = int(c)
    return coeffs


class TearingState:
    """
    Structural view of a `DAESystem`.

    Attributes:
        sys: The system the state was built from.
        t: Independent variable, None for purely algebraic systems.
        eqs: The equations of `sys`, all as `sp.Eq`.
        fullvars: The variables, the handle of a variable is its position.
        graph: Incidence graph of `eqs` and `fullvars`.
        var_to_diff: Derivative successors among `fullvars`.
        mm: Integer coefficients of the linear equations.
        dummies: One symbol per variable, used for exact substitutions.
    """

    def __init__(
        self,
        sys: DAESystem,
        t,
        eqs: list,
        fullvars: list,
        graph: BipartiteGraph,
        var_to_diff: DiffGraph,
        mm: SparseMatrixCLIL,
        dummies: list,
    ):
        self.sys = sys
        self.t = t
        self.eqs = eqs
        self.fullvars = fullvars
        self.graph = graph
        self.var_to_diff = var_to_diff
        self.mm = mm
        self.dummies = dummies

    @property
    def to_dummy(self) -> dict:
        return dict(zip(self.fullvars, self.dummies))

    @classmethod
    def from_system(cls, sys: DAESystem) -> "TearingState":
        eqs = [_as_equation(eq) for eq in sys.eqs if eq != sp.true]
        t = _independent_variable(eqs, sys.t)
        fullvars = collect_variables(eqs, t)
        index = {v: j for j, v in enumerate(fullvars)}

        var_to_diff = DiffGraph(len(fullvars))
        for v in fullvars:
            if _derivative_order(v) > 0:
                var_to_diff[index[_lower(v, t)]] = index[v]

        dummies = [sp.Dummy(f"v{j}") for j in range(len(fullvars))]
        to_dummy = dict(zip(fullvars, dummies))
        from_dummy = dict(zip(dummies, range(len(fullvars))))

        graph = BipartiteGraph(len(eqs), len(fullvars))
        coefficients = {}
        for e, eq in enumerate(eqs):
            residual = (eq.lhs - eq.rhs).xreplace(to_dummy)
            gens = sorted(
                (s for s in residual.free_symbols if s in from_dummy),
                key=lambda s: from_dummy[s],
            )
            for s in gens:
                graph.add_edge(e, from_dummy[s])
            coeffs = _linear_coefficients(residual, gens)
            if coeffs is not None:
                coefficients[e] = {from_dummy[s]: c for s, c in coeffs.items()}

        mm = linear_subsystem_matrix(graph, coefficients)
        logger.debug(
            "TearingState: %s equations (%s linear), %s variables",
            len(eqs),
            mm.nrows,
            len(fullvars),
        )
        return cls(sys, t, eqs, fullvars, graph, var_to_diff, mm, dummies)


def fixpoint_sub(expr, subs: Mapping):
    """
    Apply `subs` to `expr` until nothing changes anymore, so that chains such
    as `{x: y, y: z}` are fully resolved.

    Raises:
        EquationCycleError: `subs` is cyclic, e.g. `{x: y, y: x}`.
    """
    expr = sp.sympify(expr)
    subs = dict(subs)
    for _ in range(len(subs) + 1):
        new_expr = expr.xreplace(subs)
        if new_expr == expr:
            return new_expr
        expr = new_expr
    raise EquationCycleError(
        "Substitution did not reach a fixed point", variables=list(subs)
    )


def substitute_aliases(eqs: Sequence, subs: Mapping) -> list:
    return [fixpoint_sub(eq, subs) for eq in eqs]


def rename_promoted(fullvars: Sequence, var_to_diff: DiffGraph, promoted, t) -> list:
    """
    Copy of `fullvars` where the variable now holding the derivative of each
    `v` in `promoted` is named `D(fullvars[v])`. `promoted` lists the lower
    forms before the higher ones, as the chains are extended.

    Raises:
        InvalidSystemError: there is something to rename but no independent
            variable `t`.
    """
    fullvars = list(fullvars)
    for v in promoted:
        if t is None:
            raise InvalidSystemError(
                "A derivative must be created but the system has no independent "
                "variable",
                variables=[fullvars[v]],
            )
        dv = var_to_diff[v]
        fullvars[dv] = _differentiate(fullvars[v], t)
    return fullvars


@scope_logging
def alias_elimination(sys: DAESystem, debug: bool = False) -> DAESystem:
    """
    Remove from `sys` every variable that is `±1` times another variable or
    zero, as proven by the linear equations with integer coefficients.

    Eliminated variables get an explicit definition in `observed`, sorted in
    evaluation order. Linear equations are replaced by their reduced form and
    dropped when nothing is left of them; the aliases are substituted into
    all the other equations. A variable that becomes the derivative of
    another one, as `c` in `c = -D(b), b = -a`, is renamed `D(a)` in the result
    and gets the definition `c = D(a)`.

    Raises:
        InvalidSystemError: a derivative must be created but the system has
            no independent variable.
    """
    state = TearingState.from_system(sys)
    ag, mm, updated_diff_vars = alias_eliminate_graph(
        state.graph, state.var_to_diff, state.mm, debug=debug
    )

    fullvars = rename_promoted(
        state.fullvars, state.var_to_diff, updated_diff_vars, state.t
    )
    # Variables that were not derivatives get an explicit definition, the
    # others follow from differentiating the definition of their lower form.
    definitions = []
    for v in updated_diff_vars:
        dv = state.var_to_diff[v]
        if debug:
            logger.info("%s is now %s", state.fullvars[dv], fullvars[dv])
        if _derivative_order(state.fullvars[dv]) == 0:
            definitions.append(sp.Eq(state.fullvars[dv], fullvars[dv]))

    exprs = list(fullvars)
    for v, (coeff, rep) in ag.items():
        exprs[v] = sp.Integer(0) if coeff == 0 else coeff * fullvars[rep]

    # Two stages so that `Derivative(x(t), t)` is never rewritten through the
    # substitution of `x(t)`.
    to_dummy = state.to_dummy
    from_dummy = dict(zip(state.dummies, exprs))

    def rewrite(expr):
        return expr.xreplace(to_dummy).xreplace(from_dummy)

    rows = {e: i for i, e in enumerate(mm.nzrows)}
    eqs = []
    for e, eq in enumerate(state.eqs):
        if e in rows:
            nz = mm.row_nonzeros(rows[e])
            if not nz:
                continue
            new_eq = sp.Eq(sp.Add(*[val * fullvars[c] for c, val in nz]), 0)
        else:
            new_eq = rewrite(eq)
        if new_eq == sp.true:
            continue
        eqs.append(new_eq)

    # An observed variable that is also an eliminated unknown is defined by
    # its alias.
    eliminated = {state.fullvars[v] for v in ag.keys()}
    observed = []
    for eq in sys.observed:
        rhs = rewrite(eq.rhs)
        if eq.lhs in eliminated or rhs == eq.lhs:
            continue
        observed.append(sp.Eq(eq.lhs, rhs, evaluate=False))
    observed.extend(sp.Eq(fullvars[v], exprs[v]) for v in sorted(ag.keys()))
    observed.extend(definitions)
    observed = topsort_equations(observed, [eq.lhs for eq in observed])

    states = [
        fullvars[v]
        for v in range(len(fullvars))
        if v not in ag and state.var_to_diff.is_lowest(v)
    ]

    logger.info(
        "Alias elimination: %s -> %s equations, %s aliases",
        len(state.eqs),
        len(eqs),
        len(ag),
    )
    return DAESystem(eqs=eqs, t=state.t, observed=observed, states=states)
