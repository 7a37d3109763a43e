"""
auth/passwords.py -- One-way password hashing with bcrypt.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

There is no decode path. matches() re-hashes the candidate with the salt and
cost embedded in the stored hash and compares the results.

bcrypt only reads the first 72 bytes of its input. encode() refuses longer
passwords rather than truncating them, so two passwords that share a 72-byte
prefix can never verify against each other's hash.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72
DEFAULT_ROUNDS = 10


class BcryptPasswordEncoder:
    """Salted, adaptive password encoder.

    rounds is the bcrypt cost factor (log2 of the iteration count).
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds

    def encode(self, raw: str) -> str:
        """Return a bcrypt hash of the given plaintext password.

        Raises ValueError for passwords longer than 72 UTF-8 bytes.
        """
        if not isinstance(raw, str):
            raise TypeError("password must be a string")
        data = raw.encode("utf-8")
        if len(data) > MAX_PASSWORD_BYTES:
            raise ValueError(f"password cannot be more than {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(data, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def matches(self, raw: str | None, encoded: str | None) -> bool:
        """Return True if the plaintext password matches the bcrypt hash.

        A missing or malformed hash, or an over-long candidate, returns False
        instead of raising.
        """
        if raw is None or not encoded:
            return False
        data = raw.encode("utf-8")
        if len(data) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(data, encoded.encode("utf-8"))
        except ValueError:
            return False
