"""Custom exceptions for the Aegis trading agent.

Every task catches these at its own boundary and turns them into Event
Ledger entries or connection status changes. None of them is fatal.
"""


class AegisError(Exception):
    """Base exception for all agent errors."""


class TransientFetchError(AegisError):
    """Ticker or account fetch failed; the previous snapshot stays in place."""


class OracleError(AegisError):
    """The decision oracle failed or returned an unusable answer."""


class ExecutionError(AegisError):
    """Order submission to the exchange failed."""


class ConfigurationError(AegisError):
    """Credentials or settings are missing or invalid for the requested task."""


class AuthenticationError(AegisError):
    """Operator login was rejected."""


class CloudSyncError(AegisError):
    """The cloud-sync endpoint could not be reached or rejected the key."""
