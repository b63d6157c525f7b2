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

"""Incidence graphs, derivative forests and exact integer elimination."""

from .bareiss import (
    bareiss,
    bareiss_update_virtual_colswap,
    exactdiv,
    find_first_linear_variable,
    find_masked_pivot,
    find_pivot_any,
)
from .bipartite_graph import BipartiteGraph, DiffGraph, extreme_var, maximal_matching
from .sparse_matrix import (
    CLILRow,
    DenseIntMatrix,
    SparseMatrixCLIL,
    linear_subsystem_matrix,
)

__all__ = [
    "BipartiteGraph",
    "DiffGraph",
    "extreme_var",
    "maximal_matching",
    "CLILRow",
    "DenseIntMatrix",
    "SparseMatrixCLIL",
    "linear_subsystem_matrix",
    "bareiss",
    "bareiss_update_virtual_colswap",
    "exactdiv",
    "find_first_linear_variable",
    "find_masked_pivot",
    "find_pivot_any",
]
