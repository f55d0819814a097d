"""Execution layer -- serialized order dispatch."""

from aegis.execution.executor import TradeExecutor

__all__ = ["TradeExecutor"]
