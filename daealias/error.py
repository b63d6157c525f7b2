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

from typing import Iterable, Optional

__all__ = [
    "StructuralError",
    "InvalidSystemError",
    "EquationCycleError",
    "UnknownVariableError",
    "NonExactDivisionError",
    "AliasCycleError",
]


class StructuralError(Exception):
    """Base class for all errors raised during structural simplification.

    Only `message` is a positional argument, all others are keyword arguments.

    Args:
        message: A custom error message, defaults to the error class name.
        variables: Variables related to the error. Either integer handles or
            symbolic objects, they are only used for display.
        equations: Equations related to the error, same as above.
    """

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        variables: Optional[Iterable] = None,
        equations: Optional[Iterable] = None,
    ):
        super().__init__(message)
        self.message = message
        self.variables = list(variables) if variables is not None else None
        self.equations = list(equations) if equations is not None else None

    def __str__(self):
        message = self.message or self.default_message
        return f"{message}{self._context_info()}"

    def _context_info(self) -> str:
        strbuf = []
        if self.equations:
            equations_str = "\n\t".join(str(e) for e in self.equations)
            strbuf.append(f"\nRelated equations:\n\t{equations_str}")
        if self.variables:
            variables_str = ", ".join(str(v) for v in self.variables)
            strbuf.append(f"\nRelated variables:\n\t{variables_str}")
        if self.__cause__ is not None:
            strbuf.append(f"\nCaused by: {self.__cause__}")

        return "".join(strbuf)

    @property
    def default_message(self):
        return type(self).__name__


class InvalidSystemError(StructuralError):
    """The system was constructed in a way the simplification cannot handle,
    e.g. a differentiation chain must be extended but there is no independent
    variable to differentiate with respect to."""


class EquationCycleError(StructuralError, ValueError):
    """The defining equations cannot be evaluated in any sequential order."""


class UnknownVariableError(StructuralError, ValueError):
    """An observed equation defines a variable that is not among the states."""


class NonExactDivisionError(StructuralError, ArithmeticError):
    """A fraction-free elimination step produced a fractional entry."""


class AliasCycleError(StructuralError):
    """Following the alias graph from a variable led back to itself."""
