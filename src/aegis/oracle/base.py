"""Abstract decision oracle interface.

The scheduler treats the oracle as an opaque ``(context) -> Decision`` call
that may fail. Implementations must either return a fully validated
Decision or raise OracleError -- never a partially built one.
"""

from abc import ABC, abstractmethod

from aegis.models import Decision, DecisionContext


class DecisionOracle(ABC):
    """Abstract base class for decision oracles."""

    @abstractmethod
    async def decide(self, context: DecisionContext) -> Decision:
        """Return the oracle's verdict for the given market context.

        Raises:
            OracleError: The oracle could not be reached or answered badly.
        """
        ...

    async def close(self) -> None:
        """Release any underlying HTTP resources."""
        return None
