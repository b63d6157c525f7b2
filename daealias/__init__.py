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

from . import _init  # noqa: F401
from .alias import AliasGraph, alias_eliminate_graph
from .error import (
    AliasCycleError,
    EquationCycleError,
    InvalidSystemError,
    NonExactDivisionError,
    StructuralError,
    UnknownVariableError,
)
from .structure import BipartiteGraph, DiffGraph, SparseMatrixCLIL, maximal_matching
from .system import (
    DAESystem,
    TearingState,
    alias_elimination,
    fixpoint_sub,
    rename_promoted,
    substitute_aliases,
)
from .topsort import observed2graph, topsort_equations
from .version import __version__

__all__ = [
    "__version__",
    "AliasGraph",
    "alias_eliminate_graph",
    "BipartiteGraph",
    "DiffGraph",
    "SparseMatrixCLIL",
    "maximal_matching",
    "DAESystem",
    "TearingState",
    "alias_elimination",
    "fixpoint_sub",
    "rename_promoted",
    "substitute_aliases",
    "observed2graph",
    "topsort_equations",
    "StructuralError",
    "InvalidSystemError",
    "EquationCycleError",
    "UnknownVariableError",
    "NonExactDivisionError",
    "AliasCycleError",
]
