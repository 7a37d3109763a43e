"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A registered identity that can open a session.

    hashed_password is always a bcrypt string; the plaintext is never stored.
    id and created_at are assigned by UserStore.create_user().
    """

    username: str
    hashed_password: str
    id: int | None = None
    created_at: str | None = None
