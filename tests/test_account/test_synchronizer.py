"""Tests for AccountSynchronizer.

Verifies:
- No fetch and no ERROR entry without credentials or session
- Success swaps AccountState, sets CONNECTED and a SUCCESS entry
- Failure keeps the previous AccountState, sets ERROR and an ERROR entry
- Restart on session/credential change (timer stops on logout)
- Forced refresh during an in-flight sync runs exactly one follow-up
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from aegis.account.synchronizer import AccountSynchronizer
from aegis.exceptions import TransientFetchError
from aegis.ledger import EventLedger
from aegis.models import (
    AccountState,
    Balance,
    ConnectionStatus,
    LogCategory,
    Position,
    PositionSide,
)
from aegis.store import Session, SettingsStore

ACCOUNT = AccountState(
    spot_balances=(Balance(asset="USDT", total=Decimal("1000"), available=Decimal("900")),),
    positions=(
        Position(
            symbol="BTC/USDT:USDT",
            side=PositionSide.LONG,
            leverage=10,
            entry_price=Decimal("49000"),
            current_price=Decimal("50000"),
            pnl=Decimal("12.5"),
            size=Decimal("3"),
        ),
    ),
    synced_at=1_700_000_000.0,
)


@pytest.fixture
def synchronizer(
    mock_exchange: AsyncMock,
    store: SettingsStore,
    session: Session,
    ledger: EventLedger,
) -> AccountSynchronizer:
    mock_exchange.fetch_account.return_value = ACCOUNT
    return AccountSynchronizer(
        mock_exchange, store, session, ledger, sync_interval=60.0, call_timeout=1.0
    )


def _errors(ledger: EventLedger) -> list[str]:
    return [e.message for e in ledger.entries() if e.category is LogCategory.ERROR]


class TestPreconditions:
    @pytest.mark.asyncio
    async def test_empty_credentials_never_fetch(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        store: SettingsStore,
        ledger: EventLedger,
    ) -> None:
        store.update(exchange={"api_key": "", "secret_key": ""})

        await synchronizer.start()
        assert await synchronizer.request_refresh() is False
        await synchronizer.stop()

        mock_exchange.fetch_account.assert_not_awaited()
        assert synchronizer.status is ConnectionStatus.DISCONNECTED
        assert synchronizer.is_scheduled is False
        assert _errors(ledger) == []

    @pytest.mark.asyncio
    async def test_whitespace_credentials_count_as_empty(
        self, synchronizer: AccountSynchronizer, store: SettingsStore
    ) -> None:
        store.update(exchange={"api_key": "  ", "secret_key": "secret"})
        assert synchronizer.preconditions_met() is False

    @pytest.mark.asyncio
    async def test_logged_out_never_fetches(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        session: Session,
    ) -> None:
        session.logout()

        await synchronizer.start()
        await asyncio.sleep(0.01)
        await synchronizer.stop()

        mock_exchange.fetch_account.assert_not_awaited()
        assert synchronizer.status is ConnectionStatus.DISCONNECTED


class TestSyncOutcome:
    @pytest.mark.asyncio
    async def test_success_replaces_state(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        ledger: EventLedger,
    ) -> None:
        assert synchronizer.state == AccountState()

        assert await synchronizer.request_refresh() is True

        assert synchronizer.state is ACCOUNT
        assert synchronizer.status is ConnectionStatus.CONNECTED
        assert ledger.entries()[0].category is LogCategory.SUCCESS
        assert ledger.entries()[0].message == "MEXC account synced successfully"
        mock_exchange.fetch_account.assert_awaited_once_with(
            "test-api-key", "test-secret-key", "BTCUSDT"
        )

    @pytest.mark.asyncio
    async def test_failure_keeps_previous_state(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        ledger: EventLedger,
    ) -> None:
        await synchronizer.request_refresh()
        before = synchronizer.state

        mock_exchange.fetch_account.side_effect = TransientFetchError("Invalid signature")
        assert await synchronizer.request_refresh() is False

        assert synchronizer.state is before
        assert synchronizer.status is ConnectionStatus.ERROR
        assert _errors(ledger) == ["MEXC sync error: Invalid signature"]

    @pytest.mark.asyncio
    async def test_timeout_is_a_failure(
        self,
        mock_exchange: AsyncMock,
        store: SettingsStore,
        session: Session,
        ledger: EventLedger,
    ) -> None:
        async def hang(*args, **kwargs) -> AccountState:
            await asyncio.sleep(1)
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = hang
        synchronizer = AccountSynchronizer(
            mock_exchange, store, session, ledger, call_timeout=0.01
        )

        assert await synchronizer.request_refresh() is False
        assert synchronizer.state == AccountState()
        assert synchronizer.status is ConnectionStatus.ERROR
        assert len(_errors(ledger)) == 1


class TestCadence:
    @pytest.mark.asyncio
    async def test_start_syncs_immediately(
        self, synchronizer: AccountSynchronizer, mock_exchange: AsyncMock
    ) -> None:
        await synchronizer.start()
        await asyncio.sleep(0.01)

        assert synchronizer.is_scheduled is True
        assert mock_exchange.fetch_account.await_count == 1
        assert synchronizer.status is ConnectionStatus.CONNECTED

        await synchronizer.stop()
        assert synchronizer.is_scheduled is False

    @pytest.mark.asyncio
    async def test_runs_on_fixed_cadence(
        self,
        mock_exchange: AsyncMock,
        store: SettingsStore,
        session: Session,
        ledger: EventLedger,
    ) -> None:
        mock_exchange.fetch_account.return_value = ACCOUNT
        synchronizer = AccountSynchronizer(
            mock_exchange, store, session, ledger, sync_interval=0.01
        )

        await synchronizer.start()
        await asyncio.sleep(0.06)
        await synchronizer.stop()

        assert mock_exchange.fetch_account.await_count >= 3

    @pytest.mark.asyncio
    async def test_logout_stops_timer(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        session: Session,
    ) -> None:
        await synchronizer.start()
        await asyncio.sleep(0.01)
        assert synchronizer.is_scheduled is True

        session.logout()
        synchronizer.restart()

        assert synchronizer.is_scheduled is False
        assert synchronizer.status is ConnectionStatus.DISCONNECTED
        calls = mock_exchange.fetch_account.await_count
        await asyncio.sleep(0.02)
        assert mock_exchange.fetch_account.await_count == calls

        await synchronizer.stop()

    @pytest.mark.asyncio
    async def test_login_restarts_with_immediate_sync(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        session: Session,
    ) -> None:
        session.logout()
        await synchronizer.start()
        assert synchronizer.is_scheduled is False

        session.login("admin", "666666")
        synchronizer.restart()
        await asyncio.sleep(0.01)

        assert synchronizer.is_scheduled is True
        assert mock_exchange.fetch_account.await_count == 1

        await synchronizer.stop()

    @pytest.mark.asyncio
    async def test_credential_change_mid_sync_chains_fresh_sync(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        store: SettingsStore,
        ledger: EventLedger,
    ) -> None:
        release = asyncio.Event()
        keys: list[str] = []

        async def fetch(api_key: str, secret_key: str, symbol: str) -> AccountState:
            keys.append(api_key)
            if len(keys) == 1:
                await release.wait()
                raise TransientFetchError("Invalid API key")
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = fetch
        await synchronizer.start()
        await asyncio.sleep(0.01)
        assert keys == ["test-api-key"]

        store.update(exchange={"api_key": "new-key"})
        synchronizer.restart()
        await asyncio.sleep(0.01)
        # The fresh run waits for the stale one instead of overlapping it.
        assert keys == ["test-api-key"]

        release.set()
        await asyncio.sleep(0.01)

        assert keys == ["test-api-key", "new-key"]
        assert synchronizer.status is ConnectionStatus.CONNECTED
        assert synchronizer.state == ACCOUNT
        assert _errors(ledger) == []

        await synchronizer.stop()

    @pytest.mark.asyncio
    async def test_logout_mid_sync_discards_result(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
        session: Session,
        ledger: EventLedger,
    ) -> None:
        release = asyncio.Event()

        async def slow_fetch(*args, **kwargs) -> AccountState:
            await release.wait()
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = slow_fetch
        await synchronizer.start()
        await asyncio.sleep(0.01)

        session.logout()
        synchronizer.restart()
        assert synchronizer.status is ConnectionStatus.DISCONNECTED

        release.set()
        await asyncio.sleep(0.01)

        assert mock_exchange.fetch_account.await_count == 1
        assert synchronizer.status is ConnectionStatus.DISCONNECTED
        assert synchronizer.state == AccountState()
        assert not [e for e in ledger.entries() if e.category is LogCategory.SUCCESS]

        await synchronizer.stop()

    @pytest.mark.asyncio
    async def test_restart_before_start_does_nothing(
        self, synchronizer: AccountSynchronizer, mock_exchange: AsyncMock
    ) -> None:
        synchronizer.restart()
        await asyncio.sleep(0.01)

        assert synchronizer.is_scheduled is False
        mock_exchange.fetch_account.assert_not_awaited()


class TestForcedRefresh:
    @pytest.mark.asyncio
    async def test_refresh_during_inflight_runs_one_followup(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
    ) -> None:
        release = asyncio.Event()

        async def slow_fetch(*args, **kwargs) -> AccountState:
            await release.wait()
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = slow_fetch

        first = synchronizer.request_refresh()
        await asyncio.sleep(0)
        second = synchronizer.request_refresh()
        third = synchronizer.request_refresh()

        assert second is not first
        assert third is second

        release.set()
        assert await first is True
        assert await second is True
        assert mock_exchange.fetch_account.await_count == 2

    @pytest.mark.asyncio
    async def test_followup_starts_after_inflight_completes(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
    ) -> None:
        release = asyncio.Event()
        events: list[str] = []

        async def tracked_fetch(*args, **kwargs) -> AccountState:
            events.append("start")
            await release.wait()
            events.append("end")
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = tracked_fetch

        synchronizer.request_refresh()
        await asyncio.sleep(0)
        followup = synchronizer.request_refresh()
        await asyncio.sleep(0.01)
        assert events == ["start"]

        release.set()
        await followup

        assert events == ["start", "end", "start", "end"]

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_runs(
        self,
        synchronizer: AccountSynchronizer,
        mock_exchange: AsyncMock,
    ) -> None:
        async def hang(*args, **kwargs) -> AccountState:
            await asyncio.sleep(10)
            return ACCOUNT

        mock_exchange.fetch_account.side_effect = hang
        await synchronizer.start()
        await asyncio.sleep(0)
        synchronizer.request_refresh()

        await synchronizer.stop()

        assert synchronizer.is_scheduled is False
        assert synchronizer.state == AccountState()
