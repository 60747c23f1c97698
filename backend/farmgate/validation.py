from __future__ import annotations

import re

from .permissions import is_valid_role, ALL_ROLES


PIN_PATTERN = re.compile(r"^[0-9]{6}$")
PHONE_PATTERN = re.compile(r"^[0-9]{10}$")

# Identity classes sharing the credential scheme
KIND_STAFF = "staff"
KIND_CUSTOMER = "customer"
IDENTITY_KINDS = {KIND_STAFF, KIND_CUSTOMER}


class ValidationError(ValueError):
    """400-level input problem."""


def validate_pin(pin, *, field: str = "PIN") -> str:
    """
    PIN contract: exactly 6 ASCII decimal digits.

    Checked at every entry point before hashing or touching any store.
    str.isdigit() is not used because it accepts non-ASCII digits.
    """
    if not isinstance(pin, str) or not PIN_PATTERN.fullmatch(pin):
        raise ValidationError(f"{field} must be exactly 6 digits")
    return pin


def validate_phone(phone) -> str:
    """Phone numbers are 10 ASCII digits; surrounding whitespace is ignored."""
    if not isinstance(phone, str):
        raise ValidationError("Phone number must be 10 digits")
    phone = phone.strip()
    if not PHONE_PATTERN.fullmatch(phone):
        raise ValidationError("Phone number must be 10 digits")
    return phone


def validate_role(role) -> str:
    if not is_valid_role(role):
        raise ValidationError(f"Invalid role. Must be one of: {', '.join(ALL_ROLES)}")
    return role


def validate_identity_kind(kind) -> str:
    if kind not in IDENTITY_KINDS:
        raise ValidationError(f"Invalid identity kind '{kind}'")
    return kind


def validate_full_name(full_name) -> str:
    if not isinstance(full_name, str) or not full_name.strip():
        raise ValidationError("Full name is required")
    full_name = full_name.strip()
    if len(full_name) > 255:
        raise ValidationError("Full name must be at most 255 characters")
    return full_name


def mask_phone(phone) -> str:
    """Log-safe phone rendering: last four digits only."""
    if not phone:
        return "N/A"
    return f"******{str(phone)[-4:]}"
