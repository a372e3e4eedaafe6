"""
Tests for CORS events and the logging observer.
"""

import logging

import pytest

from corsmachine import (
    CORS,
    CORSEvent,
    EventKind,
    HeadersNotAllowed,
    LoggingObserver,
    MethodNotAllowed,
    OriginNotAllowed,
    Request,
    RequestType,
    Response,
    attach_default_handler,
)
from corsmachine.telemetry import notify

LOGGER = "corsmachine.telemetry"


def event(kind, request_type=RequestType.SIMPLE, reason=None, origin="http://a.com"):
    headers = {"Origin": origin} if origin else {}
    return CORSEvent(kind, request_type, Request("GET", "/", headers), reason)


class TestCORSEvent:
    """Test the event value."""

    def test_origin_from_request(self):
        assert event(EventKind.ACCEPTED).origin == "http://a.com"
        assert event(EventKind.INVALID, origin=None).origin is None

    def test_equality_ignores_request(self):
        first = event(EventKind.REJECTED, reason=OriginNotAllowed(), origin="http://a.com")
        second = event(EventKind.REJECTED, reason=OriginNotAllowed(), origin="http://b.com")

        assert first == second

    def test_reason_codes(self):
        assert OriginNotAllowed.code == "origin_not_allowed"
        assert MethodNotAllowed("PUT").code == "method_not_allowed"
        assert HeadersNotAllowed(("x-foo",)).code == "headers_not_allowed"


class TestNotify:
    """Test delivery to observers."""

    def test_every_observer_receives_event(self):
        first, second = [], []

        notify([first.append, second.append], event(EventKind.ACCEPTED))

        assert len(first) == 1
        assert len(second) == 1

    def test_failing_observer_is_logged_and_skipped(self, caplog):
        received = []

        def broken(e):
            raise ValueError("boom")

        with caplog.at_level(logging.WARNING, logger=LOGGER):
            notify([broken, received.append], event(EventKind.ACCEPTED))

        assert len(received) == 1
        assert "boom" in caplog.text
        assert caplog.records[0].exc_info is not None


class TestLoggingObserver:
    """Test log levels and messages."""

    def test_default_levels(self, caplog):
        observer = LoggingObserver()

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            observer(event(EventKind.ACCEPTED))
            observer(event(EventKind.INVALID, origin=None))
            observer(event(EventKind.REJECTED, reason=OriginNotAllowed()))

        assert [r.levelno for r in caplog.records] == [logging.DEBUG, logging.DEBUG, logging.WARNING]

    def test_accepted_message(self):
        message = LoggingObserver().format(event(EventKind.ACCEPTED, RequestType.PREFLIGHT))

        assert message == 'Preflight CORS request from Origin "http://a.com" is allowed'

    def test_preflight_origin_rejected_message(self):
        message = LoggingObserver().format(event(EventKind.REJECTED, RequestType.PREFLIGHT, OriginNotAllowed()))

        assert message == (
            'Preflight CORS request from Origin "http://a.com" is not allowed because its origin is not allowed'
        )

    def test_accepted_without_origin_message(self):
        message = LoggingObserver().format(event(EventKind.ACCEPTED, origin=None))

        assert message == "Simple CORS request without an Origin header is allowed"
        assert "None" not in message

    def test_invalid_messages(self):
        observer = LoggingObserver()

        assert "no Origin header" in observer.format(event(EventKind.INVALID, origin=None))
        assert "not a preflight" in observer.format(event(EventKind.INVALID, RequestType.PREFLIGHT))

    def test_rejected_messages(self):
        observer = LoggingObserver()

        origin = observer.format(event(EventKind.REJECTED, reason=OriginNotAllowed()))
        method = observer.format(event(EventKind.REJECTED, RequestType.PREFLIGHT, MethodNotAllowed("DELETE")))
        headers = observer.format(
            event(EventKind.REJECTED, RequestType.PREFLIGHT, HeadersNotAllowed(("x-foo", "x-bar")))
        )

        assert origin == 'Simple CORS request from Origin "http://a.com" is not allowed'
        assert "'DELETE'" in method
        assert headers.endswith("x-foo, x-bar")

    def test_level_overrides(self, caplog):
        observer = LoggingObserver(levels={"rejected": "ERROR", EventKind.ACCEPTED: None})

        with caplog.at_level(logging.DEBUG, logger=LOGGER):
            observer(event(EventKind.ACCEPTED))
            observer(event(EventKind.REJECTED, reason=OriginNotAllowed()))

        assert [r.levelno for r in caplog.records] == [logging.ERROR]

    def test_unknown_level_rejected(self):
        with pytest.raises(ValueError, match="Unknown log level"):
            LoggingObserver(levels={"accepted": "LOUD"})

    def test_attach_default_handler_with_cors(self, caplog):
        cors = CORS(origins="http://a.com", observers=[attach_default_handler()])

        with caplog.at_level(logging.WARNING, logger=LOGGER):
            cors.handle(Request("GET", "/", {"Origin": "http://evil.com"}), Response())

        assert len(caplog.records) == 1
        assert 'Origin "http://evil.com"' in caplog.records[0].getMessage()
