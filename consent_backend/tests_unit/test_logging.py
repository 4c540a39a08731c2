"""
Tests for structlog setup (core.logging).
"""
import logging

import structlog

from consent_backend.app.core.logging import (
    QUIET_LOGGERS,
    SERVICE_NAME,
    _add_service,
    bind_request_context,
    clear_request_context,
    setup_logging,
)


def test_service_name_added():
    assert _add_service(None, "info", {"event": "x"})["service"] == SERVICE_NAME


def test_service_name_not_overridden():
    assert _add_service(None, "info", {"event": "x", "service": "worker"})["service"] == "worker"


def test_quiet_loggers_stay_at_warning():
    setup_logging(log_level="DEBUG", json_format=True)
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING

    setup_logging(log_level="ERROR", json_format=False)
    for name in QUIET_LOGGERS:
        assert logging.getLogger(name).level == logging.ERROR


def test_request_context_bind_and_clear():
    clear_request_context()
    bind_request_context(user_id="u1")
    assert structlog.contextvars.get_contextvars() == {"user_id": "u1"}

    clear_request_context()
    assert structlog.contextvars.get_contextvars() == {}
