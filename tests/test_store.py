"""Tests for the Session & Config Store and settings persistence.

Verifies:
- update() publishes a new immutable snapshot and notifies listeners
- Invalid or unknown values are rejected without touching the snapshot
- save()/load() round trip through the aiosqlite repository
- Login/logout toggle the session and notify listeners only on change
"""

from unittest.mock import MagicMock

import pytest

from aegis.config import AppSettings
from aegis.exceptions import AuthenticationError, ConfigurationError
from aegis.ledger import EventLedger
from aegis.models import LogCategory
from aegis.persistence import SETTINGS_STORAGE_KEY, SettingsRepository
from aegis.store import Session, SettingsStore


class TestSettingsUpdate:
    def test_update_publishes_new_snapshot(self, store: SettingsStore) -> None:
        old = store.settings

        new = store.update(trading={"leverage": 20, "interval_minutes": 5})

        assert new is store.settings
        assert new is not old
        assert new.trading.leverage == 20
        assert new.trading.interval_minutes == 5
        # The old snapshot is untouched
        assert old.trading.leverage == 10

    def test_update_keeps_other_fields(self, store: SettingsStore) -> None:
        new = store.update(trading={"symbol": "ETHUSDT"})
        assert new.trading.leverage == 10
        assert new.exchange.api_key.get_secret_value() == "test-api-key"

    def test_listeners_receive_old_and_new(self, store: SettingsStore) -> None:
        listener = MagicMock()
        store.add_listener(listener)
        old = store.settings

        new = store.update(trading={"is_auto_trading": True})

        listener.assert_called_once_with(old, new)

    def test_invalid_value_rejected(self, store: SettingsStore) -> None:
        listener = MagicMock()
        store.add_listener(listener)
        before = store.settings

        with pytest.raises(ConfigurationError):
            store.update(trading={"leverage": 500})

        assert store.settings is before
        listener.assert_not_called()

    def test_unknown_group_rejected(self, store: SettingsStore) -> None:
        with pytest.raises(ConfigurationError, match="Unknown settings group"):
            store.update(polling={"market_interval": 1})

    def test_unknown_field_rejected(self, store: SettingsStore) -> None:
        with pytest.raises(ConfigurationError, match="bogus"):
            store.update(trading={"bogus": 1})

    def test_failing_listener_does_not_block_update(self, store: SettingsStore) -> None:
        store.add_listener(MagicMock(side_effect=RuntimeError("listener bug")))
        second = MagicMock()
        store.add_listener(second)

        store.update(trading={"leverage": 5})

        assert store.settings.trading.leverage == 5
        second.assert_called_once()

    def test_secret_update(self, store: SettingsStore) -> None:
        new = store.update(exchange={"api_key": "", "secret_key": ""})
        assert new.exchange.has_credentials is False


class TestSettingsPersistence:
    @pytest.mark.asyncio
    async def test_save_and_load_round_trip(
        self, mock_settings: AppSettings, ledger: EventLedger, tmp_path
    ) -> None:
        db_path = str(tmp_path / "settings.db")

        async with SettingsRepository(db_path) as repo:
            store = SettingsStore(mock_settings, repository=repo, ledger=ledger)
            store.update(
                trading={"symbol": "ETHUSDT", "leverage": 25, "is_live_mode": True},
                oracle={"provider": "deepseek", "deepseek_api_key": "ds-key"},
            )
            await store.save()

        assert ledger.entries()[0].message == "Configuration saved locally."
        assert ledger.entries()[0].category is LogCategory.SUCCESS

        async with SettingsRepository(db_path) as repo:
            fresh = SettingsStore(AppSettings(), repository=repo)
            assert await fresh.load() is True

        settings = fresh.settings
        assert settings.trading.symbol == "ETHUSDT"
        assert settings.trading.leverage == 25
        assert settings.trading.is_live_mode is True
        assert settings.oracle.provider == "deepseek"
        assert settings.oracle.credential_for() == "ds-key"
        assert settings.exchange.api_key.get_secret_value() == "test-api-key"

    @pytest.mark.asyncio
    async def test_load_without_record_returns_false(
        self, mock_settings: AppSettings, tmp_path
    ) -> None:
        async with SettingsRepository(str(tmp_path / "empty.db")) as repo:
            store = SettingsStore(mock_settings, repository=repo)
            assert await store.load() is False
            assert store.settings is mock_settings

    @pytest.mark.asyncio
    async def test_other_storage_key_is_not_loaded(self, tmp_path) -> None:
        db_path = str(tmp_path / "settings.db")
        async with SettingsRepository(db_path, storage_key="aegis_ai_settings_v9") as old:
            await old.save({"trading": {"symbol": "ETHUSDT"}})

        async with SettingsRepository(db_path) as repo:
            assert repo.storage_key == SETTINGS_STORAGE_KEY
            assert await repo.load() is None

    @pytest.mark.asyncio
    async def test_invalid_persisted_record_is_ignored(
        self, mock_settings: AppSettings, tmp_path
    ) -> None:
        async with SettingsRepository(str(tmp_path / "settings.db")) as repo:
            await repo.save({"trading": {"leverage": 9999}})
            store = SettingsStore(mock_settings, repository=repo)

            assert await store.load() is False
            assert store.settings is mock_settings

    @pytest.mark.asyncio
    async def test_save_without_repository_raises(self, store: SettingsStore) -> None:
        with pytest.raises(ConfigurationError):
            await store.save()

    def test_repository_requires_connect(self, tmp_path) -> None:
        repo = SettingsRepository(str(tmp_path / "x.db"))
        with pytest.raises(RuntimeError, match="not connected"):
            _ = repo.db


class TestSession:
    def test_login_success(self, store: SettingsStore, ledger: EventLedger) -> None:
        session = Session(store, ledger=ledger)

        session.login("admin", "666666")

        assert session.is_authenticated is True
        assert ledger.entries()[0].category is LogCategory.SUCCESS

    def test_login_wrong_password(self, store: SettingsStore) -> None:
        session = Session(store)
        with pytest.raises(AuthenticationError, match="Invalid credentials"):
            session.login("admin", "wrong")
        assert session.is_authenticated is False

    def test_logout(self, session: Session) -> None:
        session.logout()
        assert session.is_authenticated is False

    def test_listener_called_only_on_change(self, store: SettingsStore) -> None:
        session = Session(store)
        listener = MagicMock()
        session.add_listener(listener)

        session.login("admin", "666666")
        session.login("admin", "666666")
        session.logout()
        session.logout()

        assert [c.args for c in listener.call_args_list] == [(True,), (False,)]
