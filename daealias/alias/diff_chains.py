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
Canonical differentiation chains of aliased variables.

After the simple aliases are found, `var_to_diff` and the alias graph form a
structure like the following:

        x   -->   D(x)
        ⇓          ⇑
        ⇓         x_t   -->   D(x_t)
        ⇓               |---------------|
    z --> D(z)  --> D(D(z))  |--> D(D(D(z))) |
        ⇑               |---------------|
    k --> D(k)

where `-->` is an edge in `var_to_diff`, `⇒` is an alias, and the boxed part
is purely conceptual, i.e. `D(D(D(z)))` is not a variable of the system.

For every connected class we pick as root the least differentiated variable
(`z` above) and walk from it, only ever moving across aliases or up the
derivative edges. Each variable reached at depth `l` with sign `c` satisfies
`var = c * D^l(root)`. If the root chain already has a variable at depth `l`,
the reached one becomes an alias of it (e.g. `x_t => D(D(z))`); if the walk
reaches one level past the end of the chain, that variable extends the chain
and `var_to_diff` is updated.
"""

from collections import deque
from enum import Enum
from typing import NamedTuple, Optional

from daealias.logging import logdata, logger
from daealias.structure.bipartite_graph import DiffGraph, extreme_var

from .alias_graph import AliasGraph


class NodeKind(Enum):
    ROOT = "root"
    ALIAS = "alias"  # reached across an alias edge
    DIFF = "diff"  # reached up a derivative edge


class AliasTreeNode(NamedTuple):
    kind: NodeKind
    var: int


class InducedAliasGraph:
    """
    Undirected view of the aliases of `ag` (nonzero ones only) together with
    the derivative forest. Moving up a derivative edge raises the level by
    one, moving down lowers it, aliases keep it.
    """

    def __init__(self, ag: AliasGraph, var_to_diff: DiffGraph):
        self.ag = ag
        self.var_to_diff = var_to_diff
        self.invag: list[list[int]] = [[] for _ in range(ag.nvars)]
        for v, (coeff, alias) in ag.items():
            if coeff != 0:
                self.invag[alias].append(v)

    def alias_neighbors(self, v: int) -> list[tuple[int, int]]:
        """`(coeff, u)` pairs such that `u = coeff * v`."""
        out = []
        alias = self.ag.get(v)
        if alias is not None and alias[0] != 0:
            out.append(alias)
        for u in self.invag[v]:
            # u = c * v  <=>  v = c * u  when c is -1 or 1
            out.append((self.ag[u][0], u))
        return out

    def neighbors(self, v: int) -> list[tuple[int, int]]:
        """`(u, level_delta)` pairs adjacent to `v`."""
        out = [(u, 0) for _, u in self.alias_neighbors(v)]
        dv = self.var_to_diff[v]
        if dv is not None:
            out.append((dv, 1))
        pv = self.var_to_diff.diff_to_var(v)
        if pv is not None:
            out.append((pv, -1))
        return out

    def find_root(self, v: int, processed: list[bool]) -> tuple[int, int]:
        """
        Least differentiated variable connected to `v`, with its level
        relative to `v`. Ties keep the first one found, starting with `v`.
        Variables already `processed` are not traversed.
        """
        level = {v: 0}
        queue = deque([v])
        root, root_level = v, 0
        while queue:
            u = queue.popleft()
            lv = level[u]
            if lv < root_level:
                root, root_level = u, lv
            for w, dl in self.neighbors(u):
                if w in level or processed[w]:
                    continue
                level[w] = lv + dl
                queue.append(w)
        return root, root_level

    def alias_bfs(
        self, root: int, processed: list[bool]
    ) -> list[tuple[int, int, AliasTreeNode]]:
        """
        Walk the rooted alias tree of `root`, returning `(coeff, level, node)`
        with `node.var = coeff * D^level(root)`, in nondecreasing level.

        Alias children go to the front of the queue and derivative children
        to the back, so levels never decrease. A visited set keeps cycles such
        as `D(x) = x` from looping; a variable keeps the first label it gets.
        """
        visited = {root}
        queue = deque([(1, 0, AliasTreeNode(NodeKind.ROOT, root))])
        order = []
        while queue:
            coeff, lv, node = queue.popleft()
            order.append((coeff, lv, node))
            for c, u in self.alias_neighbors(node.var):
                if u in visited or processed[u]:
                    continue
                visited.add(u)
                queue.appendleft((coeff * c, lv, AliasTreeNode(NodeKind.ALIAS, u)))
            dv = self.var_to_diff[node.var]
            if dv is not None and dv not in visited and not processed[dv]:
                visited.add(dv)
                queue.append((coeff, lv + 1, AliasTreeNode(NodeKind.DIFF, dv)))
        return order


def _chain_from(var_to_diff: DiffGraph, root: int, processed: list[bool]) -> list[int]:
    """Differentiation chain `root, D(root), D(D(root)), ...`, stopping before
    the first variable that was already processed."""
    chain: list[int] = []
    extreme_var(var_to_diff, root, descend=False, callback=chain.append)
    for i, v in enumerate(chain[1:], start=1):
        if processed[v]:
            return chain[:i]
    return chain


def _first_zero(ag: AliasGraph, chain: list[int]) -> Optional[int]:
    for i, v in enumerate(chain):
        alias = ag.get(v)
        if alias is not None and alias[0] == 0:
            return i
    return None


def _detachable(var_to_diff: DiffGraph, u: int, newag: AliasGraph) -> bool:
    # The old lower form of `u` loses its derivative, so it must be eliminated.
    pu = var_to_diff.diff_to_var(u)
    return pu is None or pu in newag


def _find(parent: list, v: int) -> tuple[int, int, int]:
    """`(root, coeff, level)` with `v = coeff * D^level(root)`."""
    coeff, level = 1, 0
    while parent[v] is not None:
        c, lv, v = parent[v]
        coeff *= c
        level += lv
    return v, coeff, level


def conflicting_aliases(ag: AliasGraph, var_to_diff: DiffGraph) -> list[int]:
    """
    Aliases of `ag` that contradict the derivative forest together with the
    aliases accepted before them, e.g. one of `x_t = D(x)` and `x = -D(x_t)`,
    or `D(x) = x` on its own. Such a class hides a differential equation.

    Every variable is labelled `coeff * D^level(root)` by a weighted
    union-find. Derivative edges are added first, then the positive aliases,
    then the negative ones, each in the order of `ag`. An alias is rejected
    when its endpoints already have labels that disagree with it.
    """
    parent: list = [None] * ag.nvars

    def union(a, b, c, lv):
        # a = c * D^lv(b)
        ra, ca, la = _find(parent, a)
        rb, cb, lb = _find(parent, b)
        if ra == rb:
            return ca == c * cb and la == lv + lb
        parent[ra] = (ca * c * cb, lv + lb - la, rb)
        return True

    for v, dv in enumerate(var_to_diff):
        if dv is not None:
            union(dv, v, 1, 1)

    aliases = [(v, alias) for v, alias in ag.items() if alias[0] != 0]
    aliases.sort(key=lambda item: item[1][0] != 1)
    return [v for v, (coeff, rep) in aliases if not union(v, rep, coeff, 0)]


def resolve_diff_chains(
    ag: AliasGraph, var_to_diff: DiffGraph, debug: bool = False
) -> tuple[AliasGraph, set[int], list[int]]:
    """
    Make the aliases found so far consistent with the differentiation chains.

    Every connected class of aliased variables that touches a derivative edge
    is rewritten around its root chain: the chain members become irreducible
    and every other member of the class reached at level `l` is aliased to
    the chain member at that level. Classes made of algebraic variables only
    are left alone.

    Aliases that contradict the others (see `conflicting_aliases`) are
    dropped first and their endpoints made irreducible, so that the
    equations behind them are kept. Members that can neither be aliased nor
    extend the chain are made irreducible together with their lower forms.

    `var_to_diff` is updated in place when a chain is extended.

    Returns:
        `(newag, irreducibles, updated_diff_vars)` where `updated_diff_vars`
        are the variables whose derivative was newly assigned.
    """
    newag = AliasGraph(ag.nvars)
    irreducibles: set[int] = set()
    updated_diff_vars: list[int] = []

    dropped = conflicting_aliases(ag, var_to_diff)
    if dropped:
        kept = AliasGraph(ag.nvars)
        for v, alias in ag.items():
            if v in dropped:
                irreducibles.update((v, alias[1]))
            else:
                kept[v] = alias
        ag = kept
        if debug:
            logger.info(
                "Aliases contradicting the derivative chains: %s",
                dropped,
                **logdata(dropped=dropped),
            )

    iag = InducedAliasGraph(ag, var_to_diff)
    processed = [False] * ag.nvars

    for v in range(ag.nvars):
        if processed[v]:
            continue
        if not iag.alias_neighbors(v) and not (v in ag and var_to_diff.in_forest(v)):
            continue

        root, _ = iag.find_root(v, processed)
        chain = _chain_from(var_to_diff, root, processed)
        # Within a level, positive aliases first so they extend the chain.
        nodes = sorted(iag.alias_bfs(root, processed), key=lambda n: (n[1], n[0] != 1))
        labels = {node.var: (coeff, lv) for coeff, lv, node in nodes}
        for u in labels:
            processed[u] = True
        for u in chain:
            processed[u] = True

        max_level = max(lv for _, lv, _ in nodes)
        zero_at = _first_zero(ag, chain)
        if max_level == 0 and len(chain) == 1 and zero_at is None:
            continue

        if zero_at is not None:
            for u in chain[zero_at:]:
                newag[u] = 0
            chain = chain[:zero_at]

        on_chain = set(chain)
        stuck = []
        for coeff, lv, node in nodes:
            u = node.var
            if u in on_chain or u in newag:
                continue
            if zero_at is not None and lv >= zero_at:
                newag[u] = 0
            elif lv < len(chain):
                newag[u] = (coeff, chain[lv])
            elif (
                lv == len(chain)
                and coeff == 1
                and var_to_diff[chain[-1]] is None
                and _detachable(var_to_diff, u, newag)
            ):
                prev = chain[-1]
                var_to_diff[prev] = u
                updated_diff_vars.append(prev)
                chain.append(u)
                on_chain.add(u)
            elif var_to_diff.in_forest(u):
                stuck.append(u)

        irreducibles.update(chain)
        for u in stuck:
            while u is not None and u in labels and u not in on_chain:
                newag.remove(u)
                irreducibles.add(u)
                u = var_to_diff.diff_to_var(u)

        if debug:
            logger.info(
                "Differentiation chain of %s: %s",
                root,
                chain,
                **logdata(root=root, chain=chain, nodes=len(nodes)),
            )

    if debug:
        logger.debug(
            "resolve_diff_chains: %s aliases, irreducibles=%s, updated=%s",
            len(newag),
            sorted(irreducibles),
            updated_diff_vars,
        )
    return newag, irreducibles, updated_diff_vars
