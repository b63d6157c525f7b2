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
Fraction-free (Bareiss) elimination on integer matrices.

Bareiss, E.H., 1968. Sylvester's identity and multistep integer-preserving
Gaussian elimination. Mathematics of Computation, 22(103), pp.565-578.

Every step multiplies the remaining rows by the current pivot and divides by
the previous one. The division is always exact, so all entries stay integers
and grow polynomially. Columns are never physically swapped: the pivot
variable of step `k` is removed from every row below `k` and recorded by the
caller instead ("virtual" column swap).
"""

from typing import Callable, Optional, Sequence

from daealias.error import NonExactDivisionError
from daealias.logging import logger

# ((row, col), pivot value)
Pivot = tuple[tuple[int, int], int]


def exactdiv(a: int, b: int) -> int:
    d, r = divmod(a, b)
    if r != 0:
        raise NonExactDivisionError(f"{a} is not divisible by {b}")
    return d


def find_first_linear_variable(
    M,
    rows: range,
    mask: Optional[Sequence[bool]],
    constraint: Callable[[int], bool],
) -> Optional[Pivot]:
    """
    Scan `rows` for the first row whose number of nonzeros satisfies
    `constraint` and that has a nonzero in a column allowed by `mask`.
    Returns the position of that entry and its value.
    """
    for i in rows:
        nz = M.row_nonzeros(i)
        if not constraint(len(nz)):
            continue
        for j, val in nz:
            if mask is None or mask[j]:
                return (i, j), val
    return None


def find_masked_pivot(mask: Optional[Sequence[bool]], M, k: int) -> Optional[Pivot]:
    """
    Pivot search for step `k`: rows with a single nonzero first, then rows
    with two nonzeros, then any row. Low-degree rows give exact `±1` aliases
    directly, so they are used up before the denser ones.
    """
    rows = range(k, M.nrows)
    r = find_first_linear_variable(M, rows, mask, lambda n: n == 1)
    if r is not None:
        return r
    r = find_first_linear_variable(M, rows, mask, lambda n: n == 2)
    if r is not None:
        return r
    return find_first_linear_variable(M, rows, mask, lambda n: n > 0)


def find_pivot_any(M, k: int) -> Optional[Pivot]:
    return find_masked_pivot(None, M, k)


def bareiss_update_virtual_colswap(
    M,
    k: int,
    vpivot: int,
    pivot: int,
    last_pivot: int,
    pivot_equal_optimization: bool = True,
):
    """
    Eliminate column `vpivot` from every row below `k`:

        a_ij <- (pivot * a_ij - a_i,vpivot * a_kj) / last_pivot

    Rows without an entry in the pivot column are only scaled by
    `pivot / last_pivot`; when both pivots are equal that is the identity and
    the row is skipped.
    """
    kcoeffs = dict(M.row_nonzeros(k))
    for ei in range(k + 1, M.nrows):
        icoeffs = dict(M.row_nonzeros(ei))
        coeff = icoeffs.pop(vpivot, 0)
        if coeff == 0 and pivot_equal_optimization and pivot == last_pivot:
            continue

        cols = sorted((set(icoeffs) | set(kcoeffs)) - {vpivot})
        vals = [
            exactdiv(pivot * icoeffs.get(v, 0) - coeff * kcoeffs.get(v, 0), last_pivot)
            for v in cols
        ]
        M.set_row(ei, cols, vals)


def bareiss(
    M,
    find_pivot: Callable[[object, int], Optional[Pivot]] = find_pivot_any,
    swap_rows: Optional[Callable[[int, int], None]] = None,
    pivot_equal_optimization: bool = True,
) -> tuple[int, int]:
    """
    In-place fraction-free elimination of `M`.

    Args:
        M: A `SparseMatrixCLIL` or `DenseIntMatrix`.
        find_pivot: `(M, k) -> ((row, col), value)` or None when no pivot is
            left. It may record the chosen pivots as a side effect.
        swap_rows: Row swap to use, defaults to `M.swap_rows`. Callers that
            keep another matrix in sync with `M` pass their own.
        pivot_equal_optimization: see `bareiss_update_virtual_colswap`.

    Returns:
        `(rank, last_pivot)`. A rank deficient matrix simply gives a smaller
        rank.
    """
    if swap_rows is None:
        swap_rows = M.swap_rows

    last_pivot = 1
    for k in range(M.nrows):
        r = find_pivot(M, k)
        if r is None:
            logger.debug("bareiss: rank %s of %s rows", k, M.nrows)
            return k, last_pivot
        (row, col), pivot = r
        if row != k:
            swap_rows(k, row)
        bareiss_update_virtual_colswap(
            M, k, col, pivot, last_pivot, pivot_equal_optimization
        )
        last_pivot = pivot

    logger.debug("bareiss: full rank %s", M.nrows)
    return M.nrows, last_pivot
