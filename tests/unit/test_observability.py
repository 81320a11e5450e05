"""Unit tests for logging setup and request correlation ids."""

import logging

from backend.observability import (
    CorrelationIdFilter,
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_correlation_id,
)


class TestRequestContext:
    def teardown_method(self) -> None:
        clear_request_context()

    def test_uses_given_correlation_id(self) -> None:
        correlation_id = bind_request_context("req-1")

        assert correlation_id == "req-1"
        assert get_correlation_id() == "req-1"

    def test_generates_correlation_id(self) -> None:
        correlation_id = bind_request_context(None)

        assert len(correlation_id) == 36
        assert get_correlation_id() == correlation_id

    def test_clear_resets_to_placeholder(self) -> None:
        bind_request_context("req-1")
        clear_request_context()

        assert get_correlation_id() == "-"


class TestCorrelationIdFilter:
    def teardown_method(self) -> None:
        clear_request_context()

    def test_stamps_record(self) -> None:
        bind_request_context("req-7")
        record = logging.LogRecord("backend.ledger", logging.INFO, __file__, 1, "sent", None, None)

        assert CorrelationIdFilter().filter(record) is True
        assert record.correlation_id == "req-7"


class TestConfigureLogging:
    def setup_method(self) -> None:
        root = logging.getLogger()
        self._handlers = root.handlers[:]
        self._level = root.level

    def teardown_method(self) -> None:
        root = logging.getLogger()
        root.handlers = self._handlers
        root.setLevel(self._level)
        clear_request_context()

    def test_lines_carry_correlation_id(self, capsys) -> None:
        configure_logging("INFO")
        bind_request_context("req-9")

        logging.getLogger("backend.coordinators").info("Vote from 0xabc cast")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        assert "[req-9]" in line
        assert "INFO" in line
        assert "backend.coordinators: Vote from 0xabc cast" in line

    def test_level_filters(self, capsys) -> None:
        configure_logging("WARNING")

        logging.getLogger("backend.ledger").info("castVote sent")

        assert capsys.readouterr().err == ""
