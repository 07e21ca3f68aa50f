"""Tests for the shared structlog setup."""

import pytest
import structlog

from live_shared.log import configure_logging


def test_rejects_unknown_format():
    with pytest.raises(ValueError):
        configure_logging("info", "xml")


def test_binds_context(capsys):
    configure_logging("info", "json", service="hub")
    structlog.get_logger().info("hub.starting")
    out = capsys.readouterr().out
    assert '"service": "hub"' in out
    assert '"event": "hub.starting"' in out
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()
