"""
Unit tests for the component logger.
"""

import logging
import pytest

from threadmem.core.logger import Logger, ROOT_LOGGER


class TestLogger:

    @pytest.mark.unit
    def test_component_logger_is_namespaced(self):
        log = Logger("Merger")
        assert log.logger.name == "threadmem.Merger"

    @pytest.mark.unit
    def test_handlers_attached_once_to_root(self):
        Logger("A")
        Logger("B")
        root = logging.getLogger(ROOT_LOGGER)
        assert len([h for h in root.handlers if isinstance(h, logging.StreamHandler)
                    and not isinstance(h, logging.FileHandler)]) == 1
        assert logging.getLogger("threadmem.A").handlers == []

    @pytest.mark.unit
    def test_error_records_exception(self, caplog):
        log = Logger("Errors")
        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            with caplog.at_level(logging.ERROR, logger="threadmem.Errors"):
                log.error("failed", e)
        record = caplog.records[-1]
        assert record.getMessage() == "failed"
        assert record.exc_info[0] is RuntimeError
