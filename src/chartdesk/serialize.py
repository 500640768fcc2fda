"""Convert patient records to and from nested dicts.

The dict form uses camelCase keys (the dashboard's field names), ISO-8601
timestamps and decimal amounts as strings, so it can be written as JSON or
YAML and read back without loss. Absent optional fields are omitted.
Charges carry a derived "status" key on output; on input it is checked
against the balance and otherwise ignored.
"""

from __future__ import annotations

import json
import logging
import types
from dataclasses import MISSING, fields, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Union, get_args, get_origin, get_type_hints

from chartdesk.core.utils import (
    parse_calendar_date,
    parse_timestamp,
    snake_to_camel,
    to_iso,
    to_money,
)
from chartdesk.models import Charge, PatientRecord

logger = logging.getLogger(__name__)

_HINTS: dict[type, dict[str, Any]] = {}


def _type_hints(cls: type) -> dict[str, Any]:
    if cls not in _HINTS:
        _HINTS[cls] = get_type_hints(cls)
    return _HINTS[cls]


def to_dict(obj) -> Any:
    """Encode a dataclass tree (or any value inside one) as plain data."""
    if is_dataclass(obj) and not isinstance(obj, type):
        out: dict[str, Any] = {}
        for f in fields(obj):
            value = getattr(obj, f.name)
            if value is None:
                continue
            out[snake_to_camel(f.name)] = to_dict(value)
        if isinstance(obj, Charge):
            out["status"] = obj.status.value
        return out
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, datetime):
        return to_iso(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    if isinstance(obj, (tuple, list)):
        return [to_dict(v) for v in obj]
    if isinstance(obj, dict):
        return {k: to_dict(v) for k, v in obj.items()}
    return obj


def _decode(tp, value):
    if value is None:
        return None
    origin = get_origin(tp)
    if origin in (Union, types.UnionType):
        # Only "X | None" unions appear in the model
        inner = [a for a in get_args(tp) if a is not type(None)]
        return _decode(inner[0], value)
    if origin is tuple:
        item_tp = get_args(tp)[0]
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise ValueError(f"Expected a list, got {value!r}")
        return tuple(_decode(item_tp, v) for v in value)
    if tp is Any:
        return value
    if tp is dict or origin is dict:
        if not isinstance(value, dict):
            raise ValueError(f"Expected a mapping, got {value!r}")
        return dict(value)
    if is_dataclass(tp):
        return from_dict(tp, value)
    if isinstance(tp, type) and issubclass(tp, Enum):
        return tp(value)
    if tp is Decimal:
        return to_money(value)
    if tp is datetime:
        return parse_timestamp(value)
    if tp is date:
        return parse_calendar_date(value)
    if tp is bool:
        if isinstance(value, str):
            return value.strip().lower() in ("true", "1", "yes")
        return bool(value)
    if tp is int:
        return int(value)
    if tp is str:
        return str(value)
    return value


def from_dict(cls: type, data: dict):
    """Decode one dataclass from a dict, accepting camelCase or snake_case keys.

    Unknown keys are ignored. Raises ValueError on malformed or missing data.
    """
    if not isinstance(data, dict):
        raise ValueError(f"{cls.__name__}: expected a mapping, got {type(data).__name__}")
    hints = _type_hints(cls)
    kwargs = {}
    for f in fields(cls):
        keys = (snake_to_camel(f.name), f.name, *f.metadata.get("aliases", ()))
        key = next((k for k in keys if k in data), None)
        if key is None or data[key] is None:
            if f.default is MISSING and f.default_factory is MISSING:
                raise ValueError(f"{cls.__name__}: missing required field '{keys[0]}'")
            continue
        try:
            kwargs[f.name] = _decode(hints[f.name], data[key])
        except (TypeError, ValueError) as e:
            raise ValueError(f"{cls.__name__}.{keys[0]}: {e}") from e
    obj = cls(**kwargs)
    if isinstance(obj, Charge):
        _check_charge_status(obj, data.get("status"))
    return obj


def _check_charge_status(charge: Charge, stated) -> None:
    if stated and stated != charge.status.value:
        logger.warning(
            "Charge %s: stated status %s does not match balance, using %s",
            charge.id,
            stated,
            charge.status.value,
        )


def record_to_dict(record: PatientRecord) -> dict:
    return to_dict(record)


def record_from_dict(data: dict) -> PatientRecord:
    return from_dict(PatientRecord, data)


def record_to_json(record: PatientRecord, indent: int | None = None) -> str:
    """Serialize a record to JSON with sorted keys (stable for hashing)."""
    return json.dumps(record_to_dict(record), sort_keys=True, indent=indent)
