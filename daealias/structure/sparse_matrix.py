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
Integer coefficient matrices of the linear subsystem.

Rows are linear equations and columns are variables. Every row remembers the
equation it came from through `nzrows`, so rows can be permuted freely. All
entries are Python ints, so nothing ever overflows during elimination.

Two storages share the same interface:
- `SparseMatrixCLIL`: compressed "list of index lists", one sorted column list
  and one value list per row. This is what the elimination uses.
- `DenseIntMatrix`: a numpy object array, handy for small systems and tests.
"""

from bisect import bisect_left, bisect_right
from typing import TYPE_CHECKING, Iterable, Mapping, Optional

from daealias.lazy_loader import LazyLoader

if TYPE_CHECKING:
    import numpy as np
    from .bipartite_graph import BipartiteGraph
else:
    np = LazyLoader("np", globals(), "numpy")


class SparseMatrixCLIL:
    def __init__(
        self,
        nparentrows: int,
        ncols: int,
        nzrows: list[int],
        row_cols: list[list[int]],
        row_vals: list[list[int]],
    ):
        if not len(nzrows) == len(row_cols) == len(row_vals):
            raise ValueError("nzrows, row_cols and row_vals must have the same length")
        self.nparentrows = nparentrows
        self.ncols = ncols
        self.nzrows = nzrows
        self.row_cols = row_cols
        self.row_vals = row_vals

    @property
    def nrows(self) -> int:
        return len(self.nzrows)

    @property
    def shape(self) -> tuple[int, int]:
        return self.nrows, self.ncols

    def copy(self) -> "SparseMatrixCLIL":
        return SparseMatrixCLIL(
            self.nparentrows,
            self.ncols,
            list(self.nzrows),
            [list(cols) for cols in self.row_cols],
            [list(vals) for vals in self.row_vals],
        )

    def row(self, i: int) -> "CLILRow":
        return CLILRow(self, i)

    def row_nonzeros(self, i: int) -> list[tuple[int, int]]:
        return list(zip(self.row_cols[i], self.row_vals[i]))

    def count_nonzeros(self, i: int) -> int:
        return len(self.row_cols[i])

    def set_row(self, i: int, cols: Iterable[int], vals: Iterable[int]):
        """Overwrite row `i`; `cols` must be increasing, zeros are dropped."""
        pairs = [(c, v) for c, v in zip(cols, vals) if v != 0]
        self.row_cols[i] = [c for c, _ in pairs]
        self.row_vals[i] = [v for _, v in pairs]

    def zero_row(self, i: int):
        self.row_cols[i] = []
        self.row_vals[i] = []

    def swap_rows(self, i: int, j: int):
        self.nzrows[i], self.nzrows[j] = self.nzrows[j], self.nzrows[i]
        self.row_cols[i], self.row_cols[j] = self.row_cols[j], self.row_cols[i]
        self.row_vals[i], self.row_vals[j] = self.row_vals[j], self.row_vals[i]

    def __getitem__(self, index: tuple[int, int]) -> int:
        i, j = index
        return self.row(i)[j]

    def __setitem__(self, index: tuple[int, int], val: int):
        i, j = index
        self.row(i)[j] = val

    def to_dense(self) -> "np.ndarray":
        M = np.zeros((self.nrows, self.ncols), dtype=object)
        for i in range(self.nrows):
            for j, v in self.row_nonzeros(i):
                M[i, j] = v
        return M

    def __repr__(self):
        return (
            f"SparseMatrixCLIL(nrows={self.nrows}, ncols={self.ncols}, "
            f"nzrows={self.nzrows})"
        )


class CLILRow:
    """
    Mutable view of one row of a `SparseMatrixCLIL`.

    Reading a missing column gives 0 and writing 0 removes the entry, so the
    row never stores explicit zeros.
    """

    def __init__(self, matrix: SparseMatrixCLIL, i: int):
        self.matrix = matrix
        self.i = i

    @property
    def cols(self) -> list[int]:
        return self.matrix.row_cols[self.i]

    @property
    def vals(self) -> list[int]:
        return self.matrix.row_vals[self.i]

    def __getitem__(self, col: int) -> int:
        cols = self.cols
        k = bisect_left(cols, col)
        if k < len(cols) and cols[k] == col:
            return self.vals[k]
        return 0

    def __setitem__(self, col: int, val: int):
        cols, vals = self.cols, self.vals
        k = bisect_left(cols, col)
        present = k < len(cols) and cols[k] == col
        if val == 0:
            if present:
                del cols[k]
                del vals[k]
        elif present:
            vals[k] = val
        else:
            cols.insert(k, col)
            vals.insert(k, val)

    def next_nonzero(self, after: int) -> Optional[tuple[int, int]]:
        """First `(col, val)` with `col > after`, looked up in the current
        state of the row, so the row may be edited between calls."""
        cols = self.cols
        k = bisect_right(cols, after)
        if k == len(cols):
            return None
        return cols[k], self.vals[k]

    def nonzeros(self) -> list[tuple[int, int]]:
        return self.matrix.row_nonzeros(self.i)

    def count_nonzeros(self) -> int:
        return len(self.cols)

    def zero(self):
        self.matrix.zero_row(self.i)

    def __len__(self):
        return self.matrix.ncols

    def __repr__(self):
        return f"CLILRow({dict(self.nonzeros())})"


class DenseIntMatrix:
    """Dense variant backed by an object-dtype numpy array of Python ints."""

    def __init__(self, data, nzrows: Optional[list[int]] = None, nparentrows=None):
        self.data = np.array(data, dtype=object)
        if self.data.ndim != 2:
            raise ValueError("DenseIntMatrix expects a 2-d array")
        nrows = self.data.shape[0]
        self.nzrows = list(range(nrows)) if nzrows is None else list(nzrows)
        self.nparentrows = nrows if nparentrows is None else nparentrows

    @property
    def nrows(self) -> int:
        return self.data.shape[0]

    @property
    def ncols(self) -> int:
        return self.data.shape[1]

    @property
    def shape(self) -> tuple[int, int]:
        return self.nrows, self.ncols

    def copy(self) -> "DenseIntMatrix":
        return DenseIntMatrix(self.data.copy(), list(self.nzrows), self.nparentrows)

    def row_nonzeros(self, i: int) -> list[tuple[int, int]]:
        return [(j, int(v)) for j, v in enumerate(self.data[i]) if v != 0]

    def count_nonzeros(self, i: int) -> int:
        return int(np.count_nonzero(self.data[i]))

    def set_row(self, i: int, cols: Iterable[int], vals: Iterable[int]):
        self.data[i, :] = 0
        for c, v in zip(cols, vals):
            self.data[i, c] = v

    def zero_row(self, i: int):
        self.data[i, :] = 0

    def swap_rows(self, i: int, j: int):
        self.nzrows[i], self.nzrows[j] = self.nzrows[j], self.nzrows[i]
        self.data[[i, j]] = self.data[[j, i]]

    def __getitem__(self, index: tuple[int, int]) -> int:
        return self.data[index]

    def __setitem__(self, index: tuple[int, int], val: int):
        self.data[index] = val

    def to_dense(self) -> "np.ndarray":
        return self.data.copy()

    def to_sparse(self) -> SparseMatrixCLIL:
        row_cols, row_vals = [], []
        for i in range(self.nrows):
            nz = self.row_nonzeros(i)
            row_cols.append([j for j, _ in nz])
            row_vals.append([v for _, v in nz])
        return SparseMatrixCLIL(
            self.nparentrows, self.ncols, list(self.nzrows), row_cols, row_vals
        )

    def __repr__(self):
        return f"DenseIntMatrix(shape={self.shape}, nzrows={self.nzrows})"


def linear_subsystem_matrix(
    graph: "BipartiteGraph", coefficients: Mapping[int, Mapping[int, int]]
) -> SparseMatrixCLIL:
    """
    Build the coefficient matrix of the linear equations.

    Parameters
    ----------
    graph : BipartiteGraph
        The incidence graph of the whole system.
    coefficients : dict
        `{eq: {var: coeff}}` for every equation that is linear with integer
        coefficients. Each `var` must be incident to `eq` in `graph`.

    Returns
    -------
    SparseMatrixCLIL
        One row per linear equation, in increasing equation order, and one
        column per variable of the graph.
    """
    nzrows, row_cols, row_vals = [], [], []
    for e in sorted(coefficients):
        row = {v: int(c) for v, c in coefficients[e].items() if c != 0}
        for v in row:
            if not graph.has_edge(e, v):
                raise ValueError(
                    f"Variable {v} has a coefficient in equation {e} but no edge in the graph."
                )
        cols = sorted(row)
        nzrows.append(e)
        row_cols.append(cols)
        row_vals.append([row[v] for v in cols])

    return SparseMatrixCLIL(graph.nsrcs, graph.ndsts, nzrows, row_cols, row_vals)
