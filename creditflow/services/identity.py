"""Synthetic identity generation for provisioned accounts.

Emails are unique per (task run, slot): millisecond timestamp, slot number
and a random suffix. Passwords come from `secrets` and always contain an
uppercase letter, a lowercase letter, a digit and a special character.
"""

import secrets
import string
import time
from dataclasses import dataclass, field

EMAIL_DOMAIN = "temp.local"
EMAIL_PREFIX = "acct"
PASSWORD_LENGTH = 16
PASSWORD_SPECIALS = "!@#$%^&*"

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits
_PASSWORD_ALPHABET = string.ascii_letters + string.digits + PASSWORD_SPECIALS
_REQUIRED_CLASSES = (
    string.ascii_uppercase,
    string.ascii_lowercase,
    string.digits,
    PASSWORD_SPECIALS,
)


@dataclass(frozen=True)
class SyntheticIdentity:
    """Credentials for one account slot. The password is never persisted."""

    account_number: int
    email: str
    password: str = field(repr=False)


def generate_email(account_number: int, *, timestamp_ms: int | None = None) -> str:
    """Build a unique throwaway email for a slot.

    Args:
        account_number: Slot number within the task.
        timestamp_ms: Override for the millisecond timestamp (tests).

    Returns:
        e.g. ``acct_1729350000000_3_k2j9xq@temp.local``.
    """
    if timestamp_ms is None:
        timestamp_ms = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"{EMAIL_PREFIX}_{timestamp_ms}_{account_number}_{suffix}@{EMAIL_DOMAIN}"


def generate_password(length: int = PASSWORD_LENGTH) -> str:
    """Generate a password holding every required character class.

    Raises:
        ValueError: If length cannot fit one character of each class.
    """
    if length < len(_REQUIRED_CLASSES):
        raise ValueError(f"Password length must be at least {len(_REQUIRED_CLASSES)}")
    chars = [secrets.choice(charset) for charset in _REQUIRED_CLASSES]
    chars.extend(
        secrets.choice(_PASSWORD_ALPHABET)
        for _ in range(length - len(_REQUIRED_CLASSES))
    )
    # Fisher-Yates shuffle over the CSPRNG.
    for i in range(len(chars) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        chars[i], chars[j] = chars[j], chars[i]
    return "".join(chars)


def generate_identities(quantity: int) -> list[SyntheticIdentity]:
    """One identity per slot, numbered 1..quantity."""
    timestamp_ms = time.time_ns() // 1_000_000
    return [
        SyntheticIdentity(
            account_number=i,
            email=generate_email(i, timestamp_ms=timestamp_ms),
            password=generate_password(),
        )
        for i in range(1, quantity + 1)
    ]
