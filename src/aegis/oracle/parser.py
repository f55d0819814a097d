"""Parsing and validation of raw oracle responses into Decision objects.

Unlike a forced-hold fallback, any invalid field raises OracleError: the
scheduler must keep the previous Decision rather than act on a guess.
"""

import json
from typing import Any

from aegis.exceptions import OracleError
from aegis.models import Decision, TradeAction

_MAX_REASON_LENGTH = 500


def _strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code block (```json ... ```)."""
    cleaned = text.strip()
    if not cleaned.startswith("```"):
        return cleaned
    lines = cleaned.split("\n")
    lines = lines[1:]
    if lines and lines[-1].strip() == "```":
        lines = lines[:-1]
    return "\n".join(lines).strip()


def parse_decision(raw: str | dict[str, Any], provider: str = "") -> Decision:
    """Build a Decision from a JSON string or an already-decoded object.

    Expected shape: ``{"action": "LONG", "confidence": 80, "reason": "..."}``.
    ``action`` is case-insensitive; ``confidence`` may be 0-100 or a 0-1
    fraction.

    Raises:
        OracleError: Malformed JSON, unknown action, or confidence out of range.
    """
    if isinstance(raw, str):
        try:
            data = json.loads(_strip_code_fence(raw))
        except json.JSONDecodeError as e:
            raise OracleError(f"Oracle returned invalid JSON: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise OracleError(f"Oracle returned {type(data).__name__}, expected an object")

    action_raw = str(data.get("action", "")).strip().upper()
    try:
        action = TradeAction(action_raw)
    except ValueError as e:
        allowed = ", ".join(a.value for a in TradeAction)
        raise OracleError(
            f"Oracle returned unknown action {action_raw!r} (allowed: {allowed})"
        ) from e

    confidence_raw = data.get("confidence")
    if isinstance(confidence_raw, bool) or not isinstance(confidence_raw, (int, float, str)):
        raise OracleError(f"Oracle confidence is not numeric: {confidence_raw!r}")
    try:
        confidence = float(confidence_raw)
    except ValueError as e:
        raise OracleError(f"Oracle confidence is not numeric: {confidence_raw!r}") from e
    if 0 < confidence < 1:
        confidence *= 100
    if not 0 <= confidence <= 100:
        raise OracleError(f"Oracle confidence {confidence} out of range [0, 100]")

    reason = data.get("reason", data.get("rationale", ""))
    if not isinstance(reason, str):
        reason = str(reason)

    return Decision(
        action=action,
        confidence=round(confidence),
        reason=reason.strip()[:_MAX_REASON_LENGTH],
        provider=provider,
    )
