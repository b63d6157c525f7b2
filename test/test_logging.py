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

import logging

import pytest

from daealias import logging as daealias_logging
from daealias.logging import ColorFormatter, logdata, logger, scope_logging

pytestmark = pytest.mark.minimal


class TestLogging:
    def test_set_log_level(self):
        level = logger.level
        try:
            daealias_logging.set_log_level("debug")
            assert logger.level == logging.DEBUG
            daealias_logging.set_log_level(logging.WARNING, pkg="daealias")
            assert logger.level == logging.WARNING
        finally:
            logger.setLevel(level)

    def test_logdata(self):
        assert logdata() == {}
        assert logdata(var=1) == {"extra": {"extras": {"var": 1}}}

    def test_color_formatter(self):
        record = logger.makeRecord(
            logger.name,
            logging.INFO,
            __file__,
            0,
            "found %s",
            (3,),
            None,
            extra={"extras": {"var": 7}},
        )
        s = ColorFormatter().format(record)
        assert "found 3" in s
        assert "var" in s and "=7" in s

    def test_scope_logging(self, caplog):
        @scope_logging
        def double(x):
            """Twice x."""
            return 2 * x

        assert double.__name__ == "double"
        assert double.__doc__ == "Twice x."
        assert double.__wrapped__(3) == 6
        with caplog.at_level(logging.DEBUG, logger="daealias"):
            assert double(2) == 4
        messages = [r.getMessage() for r in caplog.records]
        assert any("Entering" in m and "double" in m for m in messages)
        assert any("Exiting" in m and "double" in m for m in messages)

    def test_file_handler(self, tmp_path):
        path = tmp_path / "daealias.log"
        daealias_logging.set_file_handler(path)
        try:
            logger.warning("alias found", **logdata(var=4))
        finally:
            for handler in list(logger.handlers):
                if isinstance(handler, logging.FileHandler):
                    logger.removeHandler(handler)
                    handler.close()
        text = path.read_text()
        assert "daealias:WARNING alias found var=4" in text
