"""Operator dashboard -- JSON API and WebSocket status feed."""
