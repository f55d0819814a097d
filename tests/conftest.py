"""Shared test fixtures for the Aegis trading agent."""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from aegis.config import (
    AppSettings,
    ExchangeSettings,
    OracleSettings,
    StorageSettings,
    TradingSettings,
)
from aegis.exchange.client import ExchangeClient
from aegis.ledger import EventLedger
from aegis.models import MarketSnapshot, PricePoint, Ticker
from aegis.oracle.base import DecisionOracle
from aegis.store import Session, SettingsStore


@pytest.fixture
def mock_settings(tmp_path) -> AppSettings:
    """Return AppSettings with test defaults (simulation mode, dummy API keys)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            secret_key="test-secret-key",  # type: ignore[arg-type]
        ),
        oracle=OracleSettings(
            provider="gemini",
            gemini_api_key="test-gemini-key",  # type: ignore[arg-type]
        ),
        trading=TradingSettings(symbol="BTCUSDT", leverage=10, risk_percent=2),
        storage=StorageSettings(db_path=str(tmp_path / "aegis.db")),
    )


@pytest.fixture
def ledger() -> EventLedger:
    return EventLedger()


@pytest.fixture
def store(mock_settings: AppSettings, ledger: EventLedger) -> SettingsStore:
    return SettingsStore(mock_settings, ledger=ledger)


@pytest.fixture
def session(store: SettingsStore, ledger: EventLedger) -> Session:
    """A session that is already logged in."""
    session = Session(store, ledger=ledger)
    session.login("admin", "666666")
    return session


@pytest.fixture
def mock_exchange() -> AsyncMock:
    exchange = AsyncMock(spec=ExchangeClient)
    exchange.fetch_ticker.return_value = Ticker(
        symbol="BTCUSDT", price=Decimal("50000"), change_24h=Decimal("1.5")
    )
    return exchange


@pytest.fixture
def mock_oracle() -> AsyncMock:
    return AsyncMock(spec=DecisionOracle)


@pytest.fixture
def market_snapshot() -> MarketSnapshot:
    return MarketSnapshot(
        symbol="BTCUSDT",
        price=Decimal("50000"),
        change_24h=Decimal("1.5"),
        history=tuple(
            PricePoint(timestamp=1_700_000_000 + i * 5, price=Decimal(49_900 + i * 10))
            for i in range(10)
        ),
    )
