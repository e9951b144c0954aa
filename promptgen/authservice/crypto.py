from __future__ import annotations
import logging
import time
import uuid
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

import bcrypt
import jwt

from promptgen.runtimemode import RuntimeFlags
from .contracts import PasswordHasherPort, TokenClaims, TokenManagerPort, TokenPair, User
from .errors import ConfigError, InvalidToken, PasswordTooLong

log = logging.getLogger("promptgen.authservice")

TimeFn = Callable[[], float]

BCRYPT_MAX_PASSWORD_BYTES = 72
JWT_ALGORITHM = "HS256"
# Only reachable from the local process, so a fixed key is acceptable in local mode.
LOCAL_SIGNING_KEY = "promptgen-local-mode-signing-key-not-a-secret"


class BcryptPasswordHasher(PasswordHasherPort):
    """
    bcrypt at the library's default cost. The encoded hash carries its own
    salt and cost, so verify needs nothing but the hash.
    """

    def hash(self, password: str) -> str:
        raw = password.encode("utf-8")
        if len(raw) > BCRYPT_MAX_PASSWORD_BYTES:
            raise PasswordTooLong(f"password exceeds {BCRYPT_MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(raw, bcrypt.gensalt()).decode("ascii")

    def verify(self, encoded: str, password: str) -> bool:
        raw = password.encode("utf-8")
        if len(raw) > BCRYPT_MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(raw, encoded.encode("utf-8"))
        except ValueError:
            # malformed or deliberately unusable hash
            return False


class JWTTokenManager(TokenManagerPort):
    """HS256 access/refresh pairs. Key and TTLs are immutable after construction."""

    def __init__(
        self,
        secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        *,
        now: Optional[TimeFn] = None,
    ):
        if not secret or not secret.strip():
            raise ConfigError("JWT signing secret is not configured")
        if access_ttl <= timedelta(0) or refresh_ttl <= timedelta(0):
            raise ConfigError("token TTLs must be positive")
        self._secret = secret
        self._access_ttl = access_ttl
        self._refresh_ttl = refresh_ttl
        self._now = now or time.time

    @classmethod
    def for_runtime(
        cls,
        flags: RuntimeFlags,
        secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        *,
        now: Optional[TimeFn] = None,
    ) -> "JWTTokenManager":
        if flags.is_local and not (secret or "").strip():
            log.info("token.manager using local signing key mode=%s", flags.mode)
            secret = LOCAL_SIGNING_KEY
        return cls(secret, access_ttl, refresh_ttl, now=now)

    @property
    def access_ttl_seconds(self) -> int:
        return int(self._access_ttl.total_seconds())

    async def generate_tokens(self, user: User) -> TokenPair:
        now = int(self._now())
        access = self._build(user, "access", now, self._access_ttl)
        refresh = self._build(user, "refresh", now, self._refresh_ttl)
        return TokenPair(access_token=access, refresh_token=refresh, expires_in=self.access_ttl_seconds)

    def verify(self, token: str, expected_type: str = "access") -> TokenClaims:
        try:
            payload: Dict[str, Any] = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "exp", "iat"], "verify_exp": False, "verify_iat": False},
            )
            if int(payload["exp"]) <= int(self._now()):
                raise jwt.ExpiredSignatureError("Signature has expired")
            claims = TokenClaims.model_validate(payload)
        except jwt.InvalidTokenError as ex:
            raise InvalidToken(f"invalid token: {ex}") from ex
        except (TypeError, ValueError) as ex:  # malformed exp, or pydantic validation error on the claims
            raise InvalidToken("invalid token claims") from ex
        if claims.typ != expected_type:
            raise InvalidToken(f"expected {expected_type} token")
        return claims

    # --------- Helpers ----------
    def _build(self, user: User, typ: str, now: int, ttl: timedelta) -> str:
        claims = TokenClaims(
            sub=str(user.id),
            username=user.username,
            adm=user.is_admin,
            typ=typ,
            iat=now,
            exp=now + int(ttl.total_seconds()),
            jti=uuid.uuid4().hex,
        )
        return jwt.encode(claims.model_dump(), self._secret, algorithm=JWT_ALGORITHM)
