"""Admin password verification and per-client login rate limiting."""

from __future__ import annotations

import hashlib
import hmac
import logging
import math
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from config.settings import (
    LOCKOUT_DURATION_SECONDS,
    MAX_LOGIN_ATTEMPTS,
    PBKDF2_DIGEST,
    PBKDF2_ITERATIONS,
    PBKDF2_KEY_LENGTH,
    SALT_BYTES,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    """Stored admin secret. Without a salt ``secret`` is legacy plain text."""

    secret: str
    salt: Optional[str] = None

    @property
    def is_hashed(self) -> bool:
        return bool(self.salt)


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    migrated_credential: Optional[Credential] = None


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining_minutes: Optional[int] = None


@dataclass
class AttemptWindow:
    count: int
    window_start: float


def generate_salt() -> str:
    return secrets.token_hex(SALT_BYTES)


def hash_password(password: str, salt: str) -> str:
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_DIGEST,
        str(password or "").encode("utf-8"),
        str(salt or "").encode("utf-8"),
        PBKDF2_ITERATIONS,
        dklen=PBKDF2_KEY_LENGTH,
    )
    return derived.hex()


def verify_password(password: str, credential: Credential) -> VerifyResult:
    """Check ``password`` against ``credential``.

    A correct password against a plain-text credential yields a salted replacement in
    ``migrated_credential``; persisting it is left to the caller. If that write fails the
    stored credential is still plain text and the next login migrates again.
    """
    candidate = str(password or "")
    if credential.is_hashed:
        expected = hash_password(candidate, credential.salt)
        return VerifyResult(valid=hmac.compare_digest(expected, credential.secret))

    if not hmac.compare_digest(candidate.encode("utf-8"), str(credential.secret).encode("utf-8")):
        return VerifyResult(valid=False)

    salt = generate_salt()
    migrated = Credential(secret=hash_password(candidate, salt), salt=salt)
    logger.info("Plain-text admin credential verified; salted hash prepared for storage")
    return VerifyResult(valid=True, migrated_credential=migrated)


class LoginRateLimiter:
    """Sliding-window lockout of failed logins, keyed by client identifier.

    One instance is shared by all request handlers; every read-check-write sequence runs
    under a single lock.
    """

    def __init__(
        self,
        *,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        lockout_seconds: float = LOCKOUT_DURATION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.max_attempts = int(max_attempts)
        self.lockout_seconds = float(lockout_seconds)
        self._clock = clock
        self._windows: dict[str, AttemptWindow] = {}
        self._lock = threading.Lock()

    def _expired(self, window: AttemptWindow, now: float) -> bool:
        return now - window.window_start > self.lockout_seconds

    def check(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        with self._lock:
            return self._check_locked(identifier, now)

    def _check_locked(self, identifier: str, now: float) -> RateLimitResult:
        window = self._windows.get(identifier)
        if window is None:
            return RateLimitResult(allowed=True)
        if self._expired(window, now):
            del self._windows[identifier]
            return RateLimitResult(allowed=True)
        if window.count >= self.max_attempts:
            elapsed = now - window.window_start
            remaining = math.ceil((self.lockout_seconds - elapsed) / 60)
            # Floor of one minute: a locked client is never told to retry in 0 minutes.
            return RateLimitResult(allowed=False, remaining_minutes=max(1, remaining))
        return RateLimitResult(allowed=True)

    def _record_failure_locked(self, identifier: str, now: float) -> None:
        window = self._windows.get(identifier)
        if window is None or self._expired(window, now):
            self._windows[identifier] = AttemptWindow(count=1, window_start=now)
            return
        window.count += 1
        if window.count == self.max_attempts:
            logger.warning("Login locked for %s after %d failed attempts", identifier, window.count)

    def record_failure(self, identifier: str) -> None:
        now = self._clock()
        with self._lock:
            self._record_failure_locked(identifier, now)

    def reserve(self, identifier: str) -> RateLimitResult:
        """Check the limit and, when allowed, count this attempt as a failure in one step.

        Concurrent logins each take a slot before the password is verified, so no more
        than ``max_attempts`` of them can be in flight. A successful login calls
        :meth:`clear`, which also drops the reservation.
        """
        now = self._clock()
        with self._lock:
            result = self._check_locked(identifier, now)
            if result.allowed:
                self._record_failure_locked(identifier, now)
            return result

    def clear(self, identifier: str) -> None:
        with self._lock:
            self._windows.pop(identifier, None)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def attempts(self, identifier: str) -> int:
        with self._lock:
            window = self._windows.get(identifier)
            return window.count if window else 0
