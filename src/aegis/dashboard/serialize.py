"""JSON conversion helpers for dashboard payloads."""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from enum import Enum
from typing import Any


def to_jsonable(obj: Any) -> Any:
    """Recursively convert dataclasses, Decimals, enums and tuples for JSON."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {
            f.name: to_jsonable(getattr(obj, f.name)) for f in dataclasses.fields(obj)
        }
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, dict):
        return {k: to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(item) for item in obj]
    return obj


def settings_view(settings: Any) -> dict[str, Any]:
    """Settings as shown to the operator: secrets reduced to an is-set flag."""
    view: dict[str, Any] = {}
    for group_name in ("exchange", "oracle", "trading", "cloud"):
        group = getattr(settings, group_name)
        fields: dict[str, Any] = {}
        for name in type(group).model_fields:
            value = getattr(group, name)
            if hasattr(value, "get_secret_value"):
                fields[f"{name}_set"] = bool(value.get_secret_value())
            else:
                fields[name] = value
        view[group_name] = fields
    return view
