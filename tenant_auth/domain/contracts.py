"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import InvalidInputError

MIN_PASSWORD_LENGTH = 12

_EMAIL_PATTERN = re.compile(r"^\S+@\S+\.\S+$")


def normalize_email(email: str) -> str:
    """Return the canonical (trimmed, lowercased) form used as the store key."""
    return email.strip().lower()


@dataclass(slots=True)
class Credentials:
    """Validated email/password pair submitted to register or authenticate."""

    email: str
    password: str

    @classmethod
    def parse(cls, email: str | None, password: str | None) -> "Credentials":
        """Normalise the email and reject empty or ill-formed values."""
        if not email or not password:
            raise InvalidInputError("email and password are required")
        normalized = normalize_email(email)
        if not _EMAIL_PATTERN.match(normalized):
            raise InvalidInputError("a valid email address is required")
        return cls(email=normalized, password=password)
