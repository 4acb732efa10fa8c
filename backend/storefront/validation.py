from __future__ import annotations

from typing import Any

from .errors import ValidationError


def clean_text(value: Any, field_name: str, *, required: bool = True, lower: bool = False) -> str | None:
    """
    Strip a client-supplied text field.

    Non-string values are a ValidationError, never an AttributeError.
    Blank input is an error when required, otherwise None.
    """
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"{field_name} must be text")
    text = (value or "").strip()
    if lower:
        text = text.lower()
    if not text:
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    return text


def coerce_int(value: Any, field_name: str) -> int:
    # Integers, or strings of plain digits; bools and floats are rejected
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        digits = stripped[1:] if stripped.startswith("-") else stripped
        if digits.isdigit():
            return int(stripped)
    raise ValidationError(f"{field_name} must be an integer")
