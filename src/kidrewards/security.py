"""Credential, password and login-throttling helpers for Kid Rewards."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Deque, Dict, Optional

import jwt
from werkzeug.security import check_password_hash, generate_password_hash

from .exceptions import ConfigurationError, UnauthenticatedError
from .models import IssuedCredential, KidPrincipal, ParentPrincipal, Principal, Role, utcnow

JWT_ALGORITHM = "HS256"
MIN_SECRET_BYTES = 32
DEFAULT_TOKEN_TTL = timedelta(hours=8)
DEFAULT_CLOCK_SKEW = timedelta(minutes=1)


class PasswordHasher:
    """Hash and verify parent passwords with werkzeug's salted PBKDF2-SHA256."""

    def __init__(self, *, iterations: int = 600_000) -> None:
        self._method = f"pbkdf2:sha256:{iterations}"

    @property
    def method(self) -> str:
        return self._method

    def hash(self, password: str) -> str:
        return generate_password_hash(password, method=self._method)

    def verify(self, stored_hash: str, candidate: str) -> bool:
        """Return ``True`` when ``candidate`` matches ``stored_hash``."""

        if not stored_hash or not isinstance(stored_hash, str):
            return False
        try:
            return check_password_hash(stored_hash, candidate)
        except ValueError:
            # Unknown hash method or unparsable iteration count.
            return False


class CredentialCodec:
    """Issue and validate the signed bearer tokens used by parents and kids.

    Parent tokens carry ``sub`` and ``role``. Kid tokens additionally carry
    ``kidId`` and the ``parentId`` of the parent who minted them. The codec is
    stateless: everything needed to authorise a request lives in the token.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = DEFAULT_TOKEN_TTL,
        clock_skew: timedelta = DEFAULT_CLOCK_SKEW,
    ) -> None:
        if not secret:
            raise ConfigurationError("A signing secret is required to issue credentials.")
        if len(secret.encode("utf-8")) < MIN_SECRET_BYTES:
            raise ConfigurationError(f"The signing secret must be at least {MIN_SECRET_BYTES} bytes long.")
        if ttl <= timedelta(0):
            raise ConfigurationError("Credential lifetime must be positive.")
        self._secret = secret
        self._ttl = ttl
        self._clock_skew = clock_skew

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue_parent(self, user_id: str, *, at: Optional[datetime] = None) -> IssuedCredential:
        return self._issue(user_id, Role.PARENT, {}, at)

    def issue_kid(self, kid_id: str, parent_id: str, *, at: Optional[datetime] = None) -> IssuedCredential:
        return self._issue(kid_id, Role.KID, {"kidId": kid_id, "parentId": parent_id}, at)

    def _issue(self, subject_id: str, role: Role, claims: Dict[str, Any], at: Optional[datetime]) -> IssuedCredential:
        now = at or utcnow()
        payload = {
            "sub": subject_id,
            "role": role.value,
            "iat": now,
            "exp": now + self._ttl,
            **claims,
        }
        token = jwt.encode(payload, self._secret, algorithm=JWT_ALGORITHM)
        return IssuedCredential(token=token, role=role)

    def decode(self, token: str) -> Principal:
        """Validate ``token`` and return the principal it identifies."""

        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                leeway=self._clock_skew,
                options={"require": ["exp", "sub", "role"]},
            )
        except jwt.ExpiredSignatureError as exc:
            raise UnauthenticatedError("Credential has expired.") from exc
        except jwt.InvalidTokenError as exc:
            raise UnauthenticatedError("Invalid credential.") from exc

        try:
            role = Role(claims["role"])
        except ValueError as exc:
            raise UnauthenticatedError("Invalid credential.") from exc

        subject = str(claims["sub"])
        if role is Role.PARENT:
            return ParentPrincipal(user_id=subject)
        if role is Role.KID:
            kid_id = claims.get("kidId")
            if not kid_id or str(kid_id) != subject:
                raise UnauthenticatedError("Invalid credential.")
            return KidPrincipal(kid_id=str(kid_id), parent_id=claims.get("parentId"))
        raise UnauthenticatedError("Invalid credential.")  # pragma: no cover - Role is closed


class LoginThrottle:
    """Lock a username out after repeated failed password attempts.

    Buckets are dropped once a successful login clears them or their last
    failure falls out of the lockout window, so unknown usernames do not
    accumulate.
    """

    def __init__(self, *, max_attempts: int = 5, lockout_minutes: int = 15) -> None:
        self._max_attempts = max_attempts
        self._lockout_window = timedelta(minutes=lockout_minutes)
        self._attempts: Dict[str, Deque[datetime]] = {}
        self._lock = Lock()

    @property
    def tracked_usernames(self) -> int:
        return len(self._attempts)

    def record_attempt(self, username: str, *, success: bool, at: Optional[datetime] = None) -> bool:
        """Record a login attempt and return whether further attempts are allowed."""

        now = at or utcnow()
        with self._lock:
            self._sweep(now)
            if success:
                self._attempts.pop(username, None)
                return True
            bucket = self._attempts.setdefault(username, deque())
            bucket.append(now)
            return len(bucket) < self._max_attempts

    def is_locked(self, username: str, *, at: Optional[datetime] = None) -> bool:
        with self._lock:
            bucket = self._attempts.get(username)
            if bucket is None:
                return False
            self._prune(bucket, at or utcnow())
            if not bucket:
                del self._attempts[username]
                return False
            return len(bucket) >= self._max_attempts

    def _prune(self, bucket: Deque[datetime], now: datetime) -> None:
        while bucket and now - bucket[0] > self._lockout_window:
            bucket.popleft()

    def _sweep(self, now: datetime) -> None:
        expired = [name for name, bucket in self._attempts.items() if now - bucket[-1] > self._lockout_window]
        for name in expired:
            del self._attempts[name]


__all__ = [
    "CredentialCodec",
    "DEFAULT_TOKEN_TTL",
    "JWT_ALGORITHM",
    "LoginThrottle",
    "MIN_SECRET_BYTES",
    "PasswordHasher",
]
