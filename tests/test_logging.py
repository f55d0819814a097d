"""Tests for the structlog processor chain."""

from aegis.logging import _redact_secrets


def test_credentials_are_masked() -> None:
    event = {
        "event": "trade_dispatch",
        "api_key": "live-key",
        "secret_key": "live-secret",
        "symbol": "BTCUSDT",
    }

    result = _redact_secrets(None, "info", event)

    assert result["api_key"] == "***"
    assert result["secret_key"] == "***"
    assert result["symbol"] == "BTCUSDT"


def test_empty_credentials_left_alone() -> None:
    assert _redact_secrets(None, "info", {"api_key": ""})["api_key"] == ""
