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

import functools
import logging
import sys
import time
from logging import CRITICAL, DEBUG, ERROR, INFO, WARNING

BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
BLUE = "\033[34m"
YELLOW = "\033[33m"
LIGHTGREY = "\033[37m"
RESET = "\033[0m"

__all__ = [
    "logger",
    "logdata",
    "set_log_level",
    "set_file_handler",
    "set_stream_handler",
    "unset_stream_handler",
    "scope_logging",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

packages = [__package__]


class ColorFormatter(logging.Formatter):
    """Terminal formatter that highlights the level and prints `extras` as
    `key=value` pairs after the message."""

    @staticmethod
    def _level_color(level):
        if level >= ERROR:
            return RED
        if level >= WARNING:
            return YELLOW
        if level >= INFO:
            return GREEN
        return BLUE

    def format(self, record):
        extras: dict | None = record.__dict__.get("extras")
        color = self._level_color(record.levelno)

        ftime = time.strftime("%H:%M:%S", time.localtime(record.created))
        s = f"{ftime} - {BOLD}[{record.name}][{color}{record.levelname}{RESET}]: {record.getMessage()}{RESET}"

        if extras:
            s += " " + " ".join(f"{LIGHTGREY}{k}{RESET}={v}" for k, v in extras.items())

        return s


class _ExtrasFormatter(logging.Formatter):
    def format(self, record):
        s = super().format(record)
        extras: dict | None = record.__dict__.get("extras")
        if extras:
            s += " " + " ".join(f"{k}={v}" for k, v in extras.items())
        return s


__fmt = "%(name)s:%(levelname)s %(message)s"
__formatter = _ExtrasFormatter(fmt=__fmt)
__stream_handler = logging.StreamHandler()
__stream_handler.setFormatter(ColorFormatter() if sys.stderr.isatty() else __formatter)


def set_file_handler(file, formatter=None):
    """Send the records of all packages to `file` as well."""
    if formatter is None:
        formatter = __formatter
    fh = logging.FileHandler(file, mode="w")
    fh.setFormatter(formatter)
    for package in packages:
        logging.getLogger(package).addHandler(fh)


def set_stream_handler(handler=None):
    """Attach the stream handler to all packages."""
    for package in packages:
        logger_ = logging.getLogger(package)
        logger_.addHandler(handler if handler else __stream_handler)


def unset_stream_handler():
    """Detach the default stream handler from all packages."""
    for package in packages:
        logging.getLogger(package).removeHandler(__stream_handler)


def set_log_level(level, pkg: str | None = None):
    """Set the log level for the specified or all packages.

    Args:
        level: The log level to set, either a number or a level name.
        pkg: If set, apply the log level only to the specified package.
    """
    if isinstance(level, str):
        level = level.upper()

    if pkg is not None:
        logging.getLogger(pkg).setLevel(level)
        return

    for package in packages:
        logging.getLogger(package).setLevel(level)


def scope_logging(func):
    """Decorator to log function entry and exit."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger_ = logging.getLogger(__package__)
        logger_.debug("*** Entering %s ***", func.__qualname__)
        result = func(*args, **kwargs)
        logger_.debug("*** Exiting %s ***", func.__qualname__)
        return result

    return wrapper


def logdata(**kwargs):
    """Attach structured fields to a record:

    logger.debug("new alias", **logdata(var=v, alias=a))
    """
    if not kwargs:
        return {}
    return {"extra": {"extras": kwargs}}


logger = logging.getLogger(__package__)
