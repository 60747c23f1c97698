# Overview: One-way salted PIN hashing and verification.

"""
PIN Hashing Service

WHY: A 6-digit PIN has only a million possible values, so the digest must be
expensive to brute force offline. Uses bcrypt (adaptive cost, random salt
per call). Plaintext PINs are never persisted.

PIN format (exactly 6 digits) is enforced by callers before hashing.
"""

from __future__ import annotations

import secrets

import bcrypt
from flask import current_app, has_app_context


DEFAULT_ROUNDS = 12

_dummy_digests: dict[int, bytes] = {}


def _configured_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("PIN_HASH_ROUNDS", DEFAULT_ROUNDS))
    return DEFAULT_ROUNDS


def _dummy_digest() -> bytes:
    """bcrypt digest of a random secret at the configured cost; matches no PIN."""
    rounds = _configured_rounds()
    digest = _dummy_digests.get(rounds)
    if digest is None:
        digest = bcrypt.hashpw(secrets.token_hex(16).encode("utf-8"), bcrypt.gensalt(rounds=rounds))
        _dummy_digests[rounds] = digest
    return digest


def hash_pin(pin: str, *, rounds: int | None = None) -> str:
    """
    Hash a PIN with bcrypt and a fresh salt.

    Two calls with the same PIN return different digests.
    """
    salt = bcrypt.gensalt(rounds=rounds or _configured_rounds())
    hashed = bcrypt.hashpw(pin.encode("utf-8"), salt)
    return hashed.decode("utf-8")  # Store as string in database


def verify_pin(pin: str, pin_hash: str | None) -> bool:
    """
    Verify a PIN against a bcrypt digest.

    Returns False for a missing digest (PIN cleared on deactivation) or a
    digest that is not valid bcrypt. bcrypt.checkpw compares in constant time.

    A missing digest still costs one bcrypt check against a dummy digest so
    the response time does not tell a stored PIN from none.
    """
    if not pin_hash:
        bcrypt.checkpw((pin or "").encode("utf-8"), _dummy_digest())
        return False
    if not pin:
        return False

    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        # Malformed digest (e.g. legacy or truncated value)
        return False
