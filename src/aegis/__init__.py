"""Aegis -- unattended multi-cadence market polling and decision agent."""

__version__ = "0.1.0"
