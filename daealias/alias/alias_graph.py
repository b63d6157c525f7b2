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

from typing import Iterator, Optional, Union

from daealias.error import AliasCycleError

# (coeff, representative). coeff is -1 or 1, or 0 with no representative when
# the variable is forced to zero.
Alias = tuple[int, Optional[int]]
ZERO: Alias = (0, None)


class AliasGraph:
    """
    When eliminating variables, keeps track of which variables were eliminated
    in favor of which others.

    Only direct aliases `v = ±r` and `v = 0` are supported. Lookups resolve
    chains `v -> r -> s` and rewrite every entry on the way to point at the
    final representative, so repeated lookups are O(1) and an entry never
    points at an eliminated variable once it has been read.
    """

    def __init__(self, nvars: int):
        self._aliasto: list[Optional[Alias]] = [None] * nvars
        self._eliminated: list[int] = []

    @property
    def nvars(self) -> int:
        return len(self._aliasto)

    def __len__(self):
        return len(self._eliminated)

    def __contains__(self, v) -> bool:
        return (
            isinstance(v, int)
            and 0 <= v < len(self._aliasto)
            and self._aliasto[v] is not None
        )

    def __iter__(self) -> Iterator[int]:
        return iter(list(self._eliminated))

    def keys(self) -> list[int]:
        return list(self._eliminated)

    def __getitem__(self, v: int) -> Alias:
        entry = self._aliasto[v]
        if entry is None:
            raise KeyError(v)
        coeff, rep = entry
        if coeff == 0 or self._aliasto[rep] is None:
            return entry

        # path[i] = signs[i] * path[i + 1], and the last one points at `rep`.
        path, signs = [v], [coeff]
        seen = {v}
        while self._aliasto[rep] is not None:
            if rep in seen:
                raise AliasCycleError(
                    f"Alias chain starting at variable {v} is cyclic", variables=path
                )
            seen.add(rep)
            path.append(rep)
            c, nxt = self._aliasto[rep]
            signs.append(c)
            if c == 0:
                rep = None
                break
            rep = nxt

        # Path compression: every variable on the chain now points at the end.
        suffix = 1
        for u, s in zip(reversed(path), reversed(signs)):
            suffix *= s
            self._aliasto[u] = ZERO if suffix == 0 else (suffix, rep)
        return self._aliasto[v]

    def get(self, v: int, default=None) -> Union[Alias, None]:
        if v not in self:
            return default
        return self[v]

    def __setitem__(self, v: int, value: Union[int, Alias]):
        if value == 0 or value == ZERO:
            value = ZERO
        else:
            coeff, rep = value
            if coeff not in (-1, 1):
                raise ValueError(f"Alias coefficient must be -1 or 1, got {coeff}")
            if rep == v:
                raise AliasCycleError(
                    f"Variable {v} cannot be aliased to itself", variables=[v]
                )
        if self._aliasto[v] is None:
            self._eliminated.append(v)
        self._aliasto[v] = value

    def remove(self, v: int):
        if self._aliasto[v] is not None:
            self._aliasto[v] = None
            self._eliminated.remove(v)

    def items(self) -> Iterator[tuple[int, Alias]]:
        """All eliminated variables with their resolved alias."""
        for v in list(self._eliminated):
            yield v, self[v]

    def copy(self) -> "AliasGraph":
        ag = AliasGraph(self.nvars)
        ag._aliasto = list(self._aliasto)
        ag._eliminated = list(self._eliminated)
        return ag

    def __repr__(self):
        return f"AliasGraph({dict(self.items())})"
