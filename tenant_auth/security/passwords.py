"""Salted one-way password hashing built on bcrypt."""

from __future__ import annotations

import logging
from functools import cached_property

import bcrypt

from ..domain.contracts import MIN_PASSWORD_LENGTH
from ..domain.errors import InvalidInputError, WeakInputError

logger = logging.getLogger(__name__)

# Cost 12 lands around 100-250ms per hash on current server CPUs.
BCRYPT_ROUNDS = 12

# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Hash and verify passwords with a fixed bcrypt work factor."""

    def __init__(self, rounds: int = BCRYPT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self._rounds = rounds

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, plaintext: str) -> str:
        """Return a salted bcrypt hash for ``plaintext``.

        Raises
        ------
        WeakInputError
            When the password is shorter than the minimum length.
        InvalidInputError
            When the encoded password exceeds bcrypt's input limit.
        """
        if len(plaintext) < MIN_PASSWORD_LENGTH:
            raise WeakInputError()
        encoded = plaintext.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise InvalidInputError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, plaintext: str, password_hash: str) -> bool:
        """Return ``True`` when ``plaintext`` matches ``password_hash``; never raises."""
        if not isinstance(plaintext, str) or not isinstance(password_hash, str):
            return False
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError as exc:
            logger.debug("password verification rejected malformed input: %s", exc)
            return False

    @cached_property
    def dummy_hash(self) -> str:
        """Hash of a throwaway secret, verified against when an email is unknown."""
        return bcrypt.hashpw(b"timing-equalisation-only", bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")
