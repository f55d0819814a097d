"""Decision layer -- the auto-trading cycle scheduler."""

from aegis.decision.scheduler import DecisionScheduler

__all__ = ["DecisionScheduler"]
