"""Account layer -- credential-gated account state synchronization."""

from aegis.account.synchronizer import AccountSynchronizer

__all__ = ["AccountSynchronizer"]
