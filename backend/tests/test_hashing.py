"""PIN hashing and PIN/phone input contracts."""

import pytest

from farmgate.services import hashing_service
from farmgate.services.hashing_service import hash_pin, verify_pin
from farmgate.validation import ValidationError, validate_phone, validate_pin, mask_phone


@pytest.mark.parametrize("pin", ["000000", "123456", "987654", "999999"])
def test_verify_accepts_own_hash(pin):
    assert verify_pin(pin, hash_pin(pin, rounds=4))


def test_verify_rejects_other_pin():
    digest = hash_pin("123456", rounds=4)
    assert not verify_pin("123457", digest)
    assert not verify_pin("000000", digest)


def test_fresh_salt_per_call():
    first = hash_pin("123456", rounds=4)
    second = hash_pin("123456", rounds=4)
    assert first != second
    assert verify_pin("123456", first) and verify_pin("123456", second)


def test_plaintext_not_in_digest():
    assert "123456" not in hash_pin("123456", rounds=4)


@pytest.mark.parametrize("digest", [None, "", "not-a-bcrypt-digest"])
def test_missing_or_malformed_digest_never_verifies(digest):
    assert verify_pin("123456", digest) is False


def test_missing_digest_still_runs_bcrypt(monkeypatch):
    calls = []
    real_checkpw = hashing_service.bcrypt.checkpw

    def _counting(password, hashed):
        calls.append(hashed)
        return real_checkpw(password, hashed)

    monkeypatch.setattr(hashing_service.bcrypt, "checkpw", _counting)

    assert verify_pin("123456", None) is False
    assert verify_pin("123456", "") is False
    assert len(calls) == 2
    # Generated once, reused
    assert calls[0] == calls[1]


@pytest.mark.parametrize(
    "pin",
    ["12345", "1234567", "12a456", "", None, 123456, " 123456", "١٢٣٤٥٦"],
)
def test_pin_contract_rejects(pin):
    with pytest.raises(ValidationError):
        validate_pin(pin)


def test_phone_contract():
    assert validate_phone(" 9876543210 ") == "9876543210"
    for bad in ["987654321", "98765432100", "98765-4321", None]:
        with pytest.raises(ValidationError):
            validate_phone(bad)


def test_mask_phone_keeps_last_four():
    assert mask_phone("9876543210") == "******3210"
    assert mask_phone(None) == "N/A"
