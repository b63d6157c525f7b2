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

from daealias.alias import ZERO, AliasGraph
from daealias.error import AliasCycleError

pytestmark = pytest.mark.minimal


def raw_resolve(entries, v):
    """Follow uncompressed `{v: (coeff, rep)}` entries by hand."""
    coeff = 1
    while v in entries:
        c, v = entries[v]
        coeff *= c
        if c == 0:
            return ZERO
    return coeff, v


class TestAliasGraph:
    def test_empty(self):
        ag = AliasGraph(3)
        assert len(ag) == 0
        assert 0 not in ag
        assert ag.get(0) is None
        with pytest.raises(KeyError):
            ag[0]

    def test_set_and_get(self):
        ag = AliasGraph(4)
        ag[0] = (1, 1)
        ag[3] = 0
        assert ag[0] == (1, 1)
        assert ag[3] == ZERO
        assert 0 in ag and 3 in ag and 1 not in ag
        assert ag.keys() == [0, 3]
        assert len(ag) == 2

    def test_path_compression(self):
        ag = AliasGraph(4)
        ag[0] = (1, 1)
        ag[1] = (-1, 2)
        ag[2] = (-1, 3)
        assert ag[0] == (1, 3)
        # every entry on the chain now points at the representative
        assert ag._aliasto[2] == (-1, 3)
        assert ag._aliasto[1] == (1, 3)
        assert ag._aliasto[0] == (1, 3)
        assert ag[0] == (1, 3)

    def test_compression_through_zero(self):
        ag = AliasGraph(3)
        ag[0] = (-1, 1)
        ag[1] = (1, 2)
        ag[2] = 0
        assert ag[0] == ZERO
        assert ag._aliasto[1] == ZERO

    def test_zero_tuple_is_accepted(self):
        ag = AliasGraph(2)
        ag[1] = ZERO
        assert ag[1] == ZERO

    def test_rejects_self_alias(self):
        ag = AliasGraph(2)
        with pytest.raises(AliasCycleError):
            ag[1] = (1, 1)

    def test_rejects_bad_coefficient(self):
        ag = AliasGraph(2)
        with pytest.raises(ValueError):
            ag[0] = (2, 1)

    def test_cycle_is_detected(self):
        ag = AliasGraph(2)
        ag[0] = (1, 1)
        ag[1] = (1, 0)
        with pytest.raises(AliasCycleError):
            ag[0]

    def test_remove(self):
        ag = AliasGraph(3)
        ag[0] = (1, 1)
        ag.remove(0)
        ag.remove(2)
        assert 0 not in ag
        assert len(ag) == 0

    def test_overwrite_keeps_single_key(self):
        ag = AliasGraph(3)
        ag[0] = (1, 1)
        ag[0] = (-1, 2)
        assert ag.keys() == [0]
        assert ag[0] == (-1, 2)

    def test_copy_is_independent(self):
        ag = AliasGraph(3)
        ag[0] = (1, 1)
        other = ag.copy()
        other[1] = (-1, 2)
        assert 1 not in ag
        assert other[0] == (-1, 2)
        assert ag[0] == (1, 1)

    @pytest.mark.parametrize("seed", range(5))
    def test_lookup_is_idempotent(self, seed):
        rng = np.random.default_rng(seed)
        n = 30
        entries = {}
        ag = AliasGraph(n)
        # aliases only point at lower indices, so they form a forest
        for v in range(1, n):
            r = rng.random()
            if r < 0.1:
                entries[v] = (0, None)
                ag[v] = 0
            elif r < 0.8:
                entry = (int(rng.choice([-1, 1])), int(rng.integers(0, v)))
                entries[v] = entry
                ag[v] = entry

        for v in rng.permutation(n).tolist():
            if v not in ag:
                continue
            first = ag[v]
            assert first == raw_resolve(entries, v)
            assert ag[v] == first
            coeff, rep = first
            if coeff != 0:
                assert rep not in ag

        resolved = dict(ag.items())
        assert set(resolved) == set(entries)
        for v, (coeff, rep) in resolved.items():
            assert rep is None or rep not in ag
