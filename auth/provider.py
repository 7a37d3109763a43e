"""
auth/provider.py -- Username/password authentication provider.

AuthenticationProvider binds one user lookup to one password encoder. Both
are passed to the constructor; there is no setter and no default, so a
provider that exists is always fully wired.

Timing equalization:
  authenticate() always runs one bcrypt comparison, even when the username
  does not exist. The unknown-user branch compares against a dummy hash made
  with the same cost factor as real hashes, so response time does not reveal
  whether a username is registered.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import logging
from typing import Protocol

from auth.errors import BadCredentials, UserNotFound
from auth.models import User
from auth.passwords import BcryptPasswordEncoder

logger = logging.getLogger("stocksim.auth")

_DUMMY_PASSWORD = "stocksim_timing_dummy"


class UserLookup(Protocol):
    def find_by_username(self, username: str) -> User | None: ...


class AuthenticationProvider:
    """Verifies a (username, password) pair against a lookup and an encoder.

    Usage:
        provider = AuthenticationProvider(user_store, BcryptPasswordEncoder())
        user = provider.authenticate("alice", "secret")  # raises on failure
    """

    def __init__(self, user_lookup: UserLookup, password_encoder: BcryptPasswordEncoder) -> None:
        if user_lookup is None:
            raise ValueError("AuthenticationProvider requires a user lookup")
        if password_encoder is None:
            raise ValueError("AuthenticationProvider requires a password encoder")
        self.user_lookup = user_lookup
        self.password_encoder = password_encoder
        # Hashed once at wiring time so the first unknown-user attempt is not
        # measurably slower than later ones.
        self._dummy_hash = password_encoder.encode(_DUMMY_PASSWORD)

    def authenticate(self, username: str, password: str) -> User:
        """Return the matching User or raise an AuthenticationError subclass.

        Raises:
            UserNotFound:   no record for username.
            BadCredentials: record found, password does not match.
            StorageFault:   propagated from the lookup unchanged.
        """
        user = self.user_lookup.find_by_username(username)
        if user is None:
            # Equalize timing -- do NOT return early before running bcrypt.
            self.password_encoder.matches(password, self._dummy_hash)
            raise UserNotFound(username)
        if not self.password_encoder.matches(password, user.hashed_password):
            raise BadCredentials(username)
        return user
