"""
auth/passwords.py -- bcrypt password hashing.

Security design decisions:
  bcrypt is used directly (no passlib wrapper). The cost factor comes from
  Settings.bcrypt_rounds so tests can run at the minimum of 4 while
  production stays at 12.

  bcrypt only reads the first 72 bytes of input. Longer passwords are
  rejected by the service layer rather than silently truncated; hash()
  refuses them as well so no caller can bypass that rule.

  The dummy hash enables timing equalization for unknown emails: the login
  path always pays for one bcrypt check, so response time does not reveal
  whether an account exists.

Never log plaintext passwords or digests.

Layer rule: no imports from api/ or league/.
"""

from __future__ import annotations

import bcrypt

MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way password hashing with a fixed work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self.rounds = rounds
        self._dummy_hash: str | None = None

    def hash(self, plain: str) -> str:
        """Return a bcrypt digest (salt and cost are embedded in the string)."""
        encoded = plain.encode("utf-8")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password exceeds {MAX_PASSWORD_BYTES} bytes.")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self.rounds)).decode("utf-8")

    def verify(self, plain: str, digest: str) -> bool:
        """Return True if plain matches digest. Malformed digests verify False."""
        try:
            return bcrypt.checkpw(plain.encode("utf-8"), digest.encode("utf-8"))
        except ValueError:
            return False

    def verify_dummy(self, plain: str) -> None:
        """Burn one bcrypt check against a throwaway digest."""
        if self._dummy_hash is None:
            self._dummy_hash = self.hash("courtstats_timing_dummy")
        self.verify(plain, self._dummy_hash)
