"""Input validation; everything here runs before the store is touched."""

from __future__ import annotations

import math
from typing import Any, Mapping

from .errors import ValidationError
from .transactions import Scalar, TransactionQuery

MAX_USER_ID_LENGTH = 256

# Largest integer a Redis Lua number (a double) holds exactly; balances and
# amounts above it would drift between the cached balance and the log.
MAX_CREDITS = 2**53 - 1


def validate_user_id(user_id: Any) -> str:
    if not isinstance(user_id, str) or not user_id:
        raise ValidationError("user_id is required and must be a string")
    trimmed = user_id.strip()
    if not trimmed:
        raise ValidationError("user_id cannot be empty or whitespace")
    if len(trimmed) > MAX_USER_ID_LENGTH:
        raise ValidationError(f"user_id cannot exceed {MAX_USER_ID_LENGTH} characters")
    if "\n" in user_id or "\r" in user_id:
        raise ValidationError("user_id cannot contain line breaks")
    return user_id


def _as_integer(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{name} must be a number, got {type(value).__name__}")
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{name} must be a finite number")
        if not value.is_integer():
            raise ValidationError(f"{name} must be a whole number of credits, got {value}")
        value = int(value)
    if abs(value) > MAX_CREDITS:
        raise ValidationError(f"{name} cannot exceed {MAX_CREDITS} in magnitude")
    return value


def validate_amount(amount: Any, name: str = "amount") -> int:
    value = _as_integer(amount, name)
    if value <= 0:
        raise ValidationError(f"{name} must be positive and non-zero")
    return value


def validate_starting_balance(starting_balance: Any) -> int:
    value = _as_integer(starting_balance, "starting_balance")
    if value < 0:
        raise ValidationError("starting_balance must be non-negative")
    return value


def validate_action(action: Any) -> str:
    if not isinstance(action, str) or not action.strip():
        raise ValidationError("action is required and must be a non-empty string")
    return action


def validate_metadata(metadata: Mapping[str, Any] | None) -> dict[str, Scalar] | None:
    if metadata is None:
        return None
    if not isinstance(metadata, Mapping):
        raise ValidationError("metadata must be a mapping")
    out: dict[str, Scalar] = {}
    for key, value in metadata.items():
        if not isinstance(key, str):
            raise ValidationError(f"metadata keys must be strings, got {key!r}")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise ValidationError(f"metadata value for '{key}' must be a scalar")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValidationError(f"metadata value for '{key}' must be finite")
        out[key] = value
    return out


def _validate_timestamp(value: Any, name: str) -> int | None:
    if value is None:
        return None
    ts = _as_integer(value, name)
    if ts < 0:
        raise ValidationError(f"{name} must be non-negative")
    return ts


def validate_query(
    limit: Any,
    start_time: Any,
    end_time: Any,
    *,
    max_limit: int,
) -> TransactionQuery:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError("limit must be a positive integer")
    start = _validate_timestamp(start_time, "start_time")
    end = _validate_timestamp(end_time, "end_time")
    if start is not None and end is not None and start > end:
        raise ValidationError("start_time must not be after end_time")
    return TransactionQuery(limit=min(limit, max_limit), start_time=start, end_time=end)
