"""Session & Config Store.

Holds the current settings snapshot and the operator session flag. Settings
are immutable; every change validates and publishes a whole new
``AppSettings`` object and then notifies listeners with ``(old, new)``.
Tasks read ``store.settings`` once at the start of a cycle and use that
object for the rest of it, so a change only ever lands on the next cycle.
"""

from __future__ import annotations

import hmac
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, SecretStr, ValidationError

from aegis.config import USER_EDITABLE_GROUPS, AppSettings
from aegis.exceptions import AuthenticationError, ConfigurationError
from aegis.logging import get_logger

if TYPE_CHECKING:
    from aegis.ledger import EventLedger
    from aegis.persistence import SettingsRepository

logger = get_logger(__name__)

SettingsListener = Callable[[AppSettings, AppSettings], None]
SessionListener = Callable[[bool], None]


def _dump_group(group: BaseModel) -> dict[str, Any]:
    """Serialize a settings group with secrets revealed (for persistence)."""
    data = {}
    for name in type(group).model_fields:
        value = getattr(group, name)
        data[name] = value.get_secret_value() if isinstance(value, SecretStr) else value
    return data


class SettingsStore:
    """Single owner of the live settings snapshot.

    Args:
        settings: Initial settings (usually loaded from env / .env).
        repository: Optional persistence backend used by save()/load().
        ledger: Optional Event Ledger for operator-visible save messages.
    """

    def __init__(
        self,
        settings: AppSettings,
        repository: SettingsRepository | None = None,
        ledger: EventLedger | None = None,
    ) -> None:
        self._settings = settings
        self._repository = repository
        self._ledger = ledger
        self._listeners: list[SettingsListener] = []

    @property
    def settings(self) -> AppSettings:
        """The current immutable snapshot."""
        return self._settings

    def add_listener(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def update(self, **changes: dict[str, Any]) -> AppSettings:
        """Apply field changes per group and publish a new snapshot.

        Example:
            store.update(trading={"is_auto_trading": True, "interval_minutes": 5})

        Raises:
            ConfigurationError: Unknown group or a value fails validation.
                The current snapshot is left untouched.
        """
        old = self._settings
        replacements: dict[str, BaseModel] = {}
        for group_name, fields in changes.items():
            group_cls = USER_EDITABLE_GROUPS.get(group_name)
            if group_cls is None:
                raise ConfigurationError(f"Unknown settings group: {group_name}")
            current = getattr(old, group_name)
            unknown = set(fields) - set(group_cls.model_fields)
            if unknown:
                raise ConfigurationError(
                    f"Unknown {group_name} setting(s): {', '.join(sorted(unknown))}"
                )
            try:
                replacements[group_name] = group_cls(
                    **{**_dump_group(current), **fields}
                )
            except ValidationError as e:
                raise ConfigurationError(
                    f"Invalid {group_name} settings: {e.error_count()} error(s)"
                ) from e

        if not replacements:
            return old

        new = old.model_copy(update=replacements)
        self._settings = new
        logger.info("settings_updated", groups=sorted(replacements))

        for listener in list(self._listeners):
            try:
                listener(old, new)
            except Exception:
                logger.error("settings_listener_failed", exc_info=True)
        return new

    def to_payload(self) -> dict[str, Any]:
        """Serialize every user-editable group for persistence."""
        return {
            name: _dump_group(getattr(self._settings, name))
            for name in USER_EDITABLE_GROUPS
        }

    async def save(self) -> None:
        """Persist the current snapshot under the versioned storage key."""
        if self._repository is None:
            raise ConfigurationError("No settings repository configured")
        await self._repository.save(self.to_payload())
        if self._ledger is not None:
            self._ledger.success("Configuration saved locally.")

    async def load(self) -> bool:
        """Load the persisted snapshot, if any. Returns True when applied.

        A record that no longer validates is ignored rather than half-applied.
        """
        if self._repository is None:
            return False
        payload = await self._repository.load()
        if not payload:
            return False
        changes = {
            name: fields
            for name, fields in payload.items()
            if name in USER_EDITABLE_GROUPS and isinstance(fields, dict)
        }
        try:
            self.update(**changes)
        except ConfigurationError as e:
            logger.warning("persisted_settings_rejected", error=str(e))
            return False
        logger.info("persisted_settings_loaded", groups=sorted(changes))
        return True


class Session:
    """Operator session flag gated by a plain credential check.

    The check is not security-grade; credential storage and authentication
    for a real deployment belong to a hardened external service.
    """

    def __init__(self, store: SettingsStore, ledger: EventLedger | None = None) -> None:
        self._store = store
        self._ledger = ledger
        self._authenticated = False
        self._listeners: list[SessionListener] = []

    @property
    def is_authenticated(self) -> bool:
        return self._authenticated

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def login(self, username: str, password: str) -> None:
        """Authenticate the operator.

        Raises:
            AuthenticationError: Username or password does not match.
        """
        expected = self._store.settings.session
        user_ok = hmac.compare_digest(username.encode(), expected.username.encode())
        pass_ok = hmac.compare_digest(
            password.encode(), expected.password.get_secret_value().encode()
        )
        if not (user_ok and pass_ok):
            logger.warning("login_rejected", username=username)
            raise AuthenticationError("Invalid credentials.")

        self._set(True)
        if self._ledger is not None:
            self._ledger.success("Login successful")

    def logout(self) -> None:
        self._set(False)
        if self._ledger is not None:
            self._ledger.info("Signed out")

    def _set(self, value: bool) -> None:
        changed = value != self._authenticated
        self._authenticated = value
        logger.info("session_changed", authenticated=value)
        if not changed:
            return
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.error("session_listener_failed", exc_info=True)
