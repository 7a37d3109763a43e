"""
auth/errors.py -- Exception taxonomy for the login flow.

AuthenticationError subclasses describe a rejected credential pair. Routes
treat every subclass the same way so the response never reveals which check
failed. StorageFault wraps a failure in the persistence layer and is meant to
propagate to the application exception handler, never to be swallowed.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations


class AuthenticationError(Exception):
    """Base class for a failed login attempt."""

    code = "authentication_failed"


class UserNotFound(AuthenticationError):
    """No user record matches the supplied username."""

    code = "user_not_found"


class BadCredentials(AuthenticationError):
    """The user exists but the password does not match the stored hash."""

    code = "bad_credentials"


class StorageFault(Exception):
    """The user store could not complete a query.

    The original driver exception is kept as __cause__.
    """

    code = "storage_fault"


class UsernameTaken(Exception):
    """A user with this username (under the configured collation) already exists."""

    code = "username_taken"

    def __init__(self, username: str) -> None:
        super().__init__(f"username {username!r} is already registered")
        self.username = username
