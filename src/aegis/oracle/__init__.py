"""Decision oracle layer -- opaque (context) -> Decision providers."""

from aegis.oracle.base import DecisionOracle
from aegis.oracle.llm_oracle import LLMDecisionOracle
from aegis.oracle.parser import parse_decision

__all__ = ["DecisionOracle", "LLMDecisionOracle", "parse_decision"]
