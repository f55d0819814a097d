"""Abstract exchange client interface.

Defines the contract the polling tasks and the Trade Executor consume.
Exchange-specific details (ccxt, symbol formats, payload parsing) stay in
the concrete implementation.
"""

from abc import ABC, abstractmethod

from aegis.models import AccountState, OrderRequest, OrderResult, Ticker


class ExchangeClient(ABC):
    """Abstract base class for exchange API clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize connection and load markets."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Ticker:
        """Fetch current price and 24h change for a symbol.

        Raises:
            TransientFetchError: The ticker could not be fetched.
        """
        ...

    @abstractmethod
    async def fetch_account(
        self, api_key: str, secret_key: str, symbol: str
    ) -> AccountState:
        """Fetch balances, positions, open orders and trade history.

        The returned state is complete; partial results are never returned.

        Raises:
            TransientFetchError: Any part of the account could not be fetched.
        """
        ...

    @abstractmethod
    async def submit_order(self, request: OrderRequest) -> tuple[OrderResult, ...]:
        """Submit the order(s) implementing one non-WAIT action.

        Raises:
            ExecutionError: The exchange rejected or failed the submission.
        """
        ...
