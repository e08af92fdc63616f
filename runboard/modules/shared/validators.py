"""
Runboard Domain Validators

Purpose
-------
Raise-on-error checks shared by the engine's services. Each validator
accepts the value to check, raises `ValidationError` on failure, and returns
the normalized value on success so call sites can validate and assign in one
step.

Usage
-----
    from runboard.modules.shared.validators import require_text, validate_range

    actor_id = require_text(actor_id, "actor_id")
    validate_range(limit, "limit", 1, 100)
"""

from __future__ import annotations

import math
from typing import Any

from .exceptions import ValidationError


def require_text(value: Any, name: str) -> str:
    """
    Validate that `value` is a non-blank string.

    Returns the value unchanged; identifiers are opaque, so surrounding
    whitespace is rejected rather than stripped.

    Raises:
        ValidationError: If value is None, not a string, or blank
    """
    if value is None:
        raise ValidationError(name, f"{name} is required")
    if not isinstance(value, str):
        raise ValidationError(name, f"{name} must be a string, got {type(value).__name__}")
    if not value.strip():
        raise ValidationError(name, f"{name} must not be blank")
    return value


def validate_positive_number(value: Any, name: str) -> float:
    """
    Validate that `value` is a finite number greater than zero.

    Raises:
        ValidationError: If value is not numeric, not finite, or <= 0
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(name, f"{name} must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise ValidationError(name, f"{name} must be finite, got {value}")
    if value <= 0:
        raise ValidationError(name, f"{name} must be greater than 0, got {value}")
    return float(value)


def validate_range(value: Any, name: str, min_val: int, max_val: int) -> int:
    """
    Validate that an integer lies within [min_val, max_val].

    Raises:
        ValidationError: If value is not an int or is out of range
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(name, f"{name} must be an integer, got {type(value).__name__}")
    if not (min_val <= value <= max_val):
        raise ValidationError(
            name, f"{name} must be between {min_val} and {max_val}, got {value}"
        )
    return value
