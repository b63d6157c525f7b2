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

from bisect import bisect_left, insort
from typing import TYPE_CHECKING, Callable, Iterable, Optional

from daealias.lazy_loader import LazyLoader

if TYPE_CHECKING:
    import networkx as nx
    from networkx.algorithms import bipartite
else:
    nx = LazyLoader("nx", globals(), "networkx")
    bipartite = LazyLoader("bipartite", globals(), "networkx.algorithms.bipartite")


class BipartiteGraph:
    """
    Incidence graph between equations (sources) and variables (destinations).

    Both vertex sets are fixed-size and identified by their integer index. The
    edges are stored twice, as sorted adjacency lists `fadj` (equation ->
    variables) and `badj` (variable -> equations), and every mutation keeps
    the two views consistent.
    """

    def __init__(self, nsrcs: int, ndsts: int):
        self.fadj: list[list[int]] = [[] for _ in range(nsrcs)]
        self.badj: list[list[int]] = [[] for _ in range(ndsts)]

    @classmethod
    def from_adjacency(cls, ndsts: int, fadj: Iterable[Iterable[int]]):
        fadj = [list(vs) for vs in fadj]
        graph = cls(len(fadj), ndsts)
        for e, vs in enumerate(fadj):
            for v in vs:
                graph.add_edge(e, v)
        return graph

    @property
    def nsrcs(self) -> int:
        return len(self.fadj)

    @property
    def ndsts(self) -> int:
        return len(self.badj)

    @property
    def nedges(self) -> int:
        return sum(len(vs) for vs in self.fadj)

    def src_neighbors(self, e: int) -> list[int]:
        """Variables incident to equation `e`, in increasing order."""
        return self.fadj[e]

    def dst_neighbors(self, v: int) -> list[int]:
        """Equations incident to variable `v`, in increasing order."""
        return self.badj[v]

    def has_edge(self, e: int, v: int) -> bool:
        vs = self.fadj[e]
        i = bisect_left(vs, v)
        return i < len(vs) and vs[i] == v

    def add_edge(self, e: int, v: int) -> bool:
        if self.has_edge(e, v):
            return False
        insort(self.fadj[e], v)
        insort(self.badj[v], e)
        return True

    def rem_edge(self, e: int, v: int) -> bool:
        if not self.has_edge(e, v):
            return False
        self.fadj[e].remove(v)
        self.badj[v].remove(e)
        return True

    def set_neighbors(self, e: int, new_neighbors: Iterable[int]):
        """Replace all the variable edges of equation `e` at once."""
        new_neighbors = sorted(set(new_neighbors))
        for v in self.fadj[e]:
            self.badj[v].remove(e)
        for v in new_neighbors:
            insort(self.badj[v], e)
        self.fadj[e] = new_neighbors

    def edges(self):
        for e, vs in enumerate(self.fadj):
            for v in vs:
                yield e, v

    def copy(self) -> "BipartiteGraph":
        graph = BipartiteGraph(0, 0)
        graph.fadj = [list(vs) for vs in self.fadj]
        graph.badj = [list(es) for es in self.badj]
        return graph

    def to_networkx(
        self,
        eq_filter: Optional[Callable[[int], bool]] = None,
        var_filter: Optional[Callable[[int], bool]] = None,
    ) -> "nx.Graph":
        """
        Export to a networkx graph. Equation nodes are `("eq", i)` with
        bipartite=0, variable nodes are `("var", j)` with bipartite=1. The
        optional filters restrict the exported vertices.
        """
        G = nx.Graph()
        e_nodes = [
            ("eq", e) for e in range(self.nsrcs) if eq_filter is None or eq_filter(e)
        ]
        v_nodes = [
            ("var", v) for v in range(self.ndsts) if var_filter is None or var_filter(v)
        ]
        G.add_nodes_from(e_nodes, bipartite=0)
        G.add_nodes_from(v_nodes, bipartite=1)
        for _, e in e_nodes:
            for v in self.fadj[e]:
                if ("var", v) in G:
                    G.add_edge(("eq", e), ("var", v))
        return G

    def __repr__(self):
        return (
            f"BipartiteGraph(nsrcs={self.nsrcs}, ndsts={self.ndsts}, "
            f"nedges={self.nedges})"
        )


def maximal_matching(
    graph: BipartiteGraph,
    eq_filter: Callable[[int], bool] = lambda e: True,
    var_filter: Callable[[int], bool] = lambda v: True,
) -> list[Optional[int]]:
    """
    Match equations passing `eq_filter` to variables passing `var_filter`.

    Returns `var_to_eq`, where `var_to_eq[v]` is the equation matched to `v`
    or None. Every matched pair is an edge of `graph`.
    """
    var_to_eq: list[Optional[int]] = [None] * graph.ndsts

    G = graph.to_networkx(eq_filter, var_filter)
    if G.number_of_edges() == 0:
        return var_to_eq

    e_nodes = [n for n, d in G.nodes(data=True) if d["bipartite"] == 0]
    mm = bipartite.matching.maximum_matching(G, top_nodes=e_nodes)
    for (kind, v), (_, e) in mm.items():
        if kind == "var":
            var_to_eq[v] = e

    return var_to_eq


class DiffGraph:
    """
    Derivative-successor forest over the variables.

    `var_to_diff[v]` is the variable holding the time derivative of `v`, and
    `diff_to_var[dv]` its inverse. Assigning through `__setitem__` keeps both
    directions injective: the previous successor of `v` and the previous
    predecessor of the new successor are detached.
    """

    def __init__(self, nvars: int):
        self.primal_to_diff: list[Optional[int]] = [None] * nvars
        self.diff_to_primal: list[Optional[int]] = [None] * nvars

    @classmethod
    def from_successors(cls, var_to_diff: Iterable[Optional[int]]):
        var_to_diff = list(var_to_diff)
        dg = cls(len(var_to_diff))
        for v, dv in enumerate(var_to_diff):
            if dv is not None:
                dg[v] = dv
        return dg

    def __len__(self):
        return len(self.primal_to_diff)

    def __getitem__(self, v: int) -> Optional[int]:
        return self.primal_to_diff[v]

    def __setitem__(self, v: int, dv: Optional[int]):
        old_dv = self.primal_to_diff[v]
        if old_dv is not None:
            self.diff_to_primal[old_dv] = None
        if dv is not None:
            old_v = self.diff_to_primal[dv]
            if old_v is not None:
                self.primal_to_diff[old_v] = None
            self.diff_to_primal[dv] = v
        self.primal_to_diff[v] = dv

    def __iter__(self):
        return iter(self.primal_to_diff)

    def diff_to_var(self, dv: int) -> Optional[int]:
        return self.diff_to_primal[dv]

    def is_lowest(self, v: int) -> bool:
        """True when `v` is not the derivative of any other variable."""
        return self.diff_to_primal[v] is None

    def in_forest(self, v: int) -> bool:
        return self.primal_to_diff[v] is not None or self.diff_to_primal[v] is not None

    def copy(self) -> "DiffGraph":
        dg = DiffGraph(0)
        dg.primal_to_diff = list(self.primal_to_diff)
        dg.diff_to_primal = list(self.diff_to_primal)
        return dg

    def __repr__(self):
        pairs = [(v, dv) for v, dv in enumerate(self.primal_to_diff) if dv is not None]
        return f"DiffGraph({pairs})"


def extreme_var(
    var_to_diff: DiffGraph,
    v: int,
    level: Optional[int] = None,
    descend: bool = True,
    callback: Optional[Callable[[int], None]] = None,
):
    """
    Walk the differentiation chain of `v` down to its least differentiated
    member (`descend=True`) or up to its most differentiated one.

    `callback` is called on every visited variable, starting with `v`. When
    `level` is given, it is decremented (or incremented) for every step and
    the pair `(var, level)` is returned instead of the variable alone.
    """
    step = var_to_diff.diff_to_var if descend else var_to_diff.__getitem__
    if callback is not None:
        callback(v)
    nxt = step(v)
    while nxt is not None:
        v = nxt
        if callback is not None:
            callback(v)
        if level is not None:
            level += -1 if descend else 1
        nxt = step(v)
    return v if level is None else (v, level)
