from __future__ import annotations
import logging
from typing import Optional, Protocol, Union

from promptgen.runtimemode import LocalRuntime, RuntimeFlags
from .contracts import AuthResult, Principal, User
from .crypto import JWTTokenManager
from .errors import InvalidToken

log = logging.getLogger("promptgen.authservice")


class AuthProvider(Protocol):
    """Turns the Authorization header of a request into a Principal."""
    mode: str

    def authenticate(self, authorization: Optional[str]) -> Principal: ...


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise InvalidToken("missing or invalid Authorization header")
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise InvalidToken("missing or invalid Authorization header")
    return token


class JWTAuthProvider:
    mode = "online"

    def __init__(self, tokens: JWTTokenManager):
        self.tokens = tokens

    def authenticate(self, authorization: Optional[str]) -> Principal:
        claims = self.tokens.verify(bearer_token(authorization), expected_type="access")
        try:
            user_id = int(claims.sub)
        except ValueError as ex:
            raise InvalidToken("invalid token subject") from ex
        return Principal(user_id=user_id, username=claims.username, is_admin=claims.adm, mode="online")


class LocalAuthProvider:
    """
    Offline mode: every request acts as the single pre-seeded user.
    Token checks are skipped entirely.
    """
    mode = "local"

    def __init__(self, local: LocalRuntime, tokens: JWTTokenManager):
        self.local = local
        self.tokens = tokens

    @property
    def user(self) -> User:
        return User(
            id=self.local.user_id,
            username=self.local.username,
            email=self.local.email,
            is_admin=self.local.is_admin,
        )

    def authenticate(self, authorization: Optional[str]) -> Principal:
        return Principal(
            user_id=self.local.user_id,
            username=self.local.username,
            is_admin=self.local.is_admin,
            mode="local",
        )

    async def issue_session(self, user: Optional[User] = None) -> AuthResult:
        """Mint tokens for the fixed identity (stored row when given)."""
        user = user or self.user
        tokens = await self.tokens.generate_tokens(user)
        log.info("auth.local_session ok user_id=%s", user.id)
        return AuthResult(user=user, tokens=tokens)


def build_auth_provider(flags: RuntimeFlags, tokens: JWTTokenManager) -> Union[JWTAuthProvider, LocalAuthProvider]:
    if flags.is_local:
        return LocalAuthProvider(flags.local, tokens)
    return JWTAuthProvider(tokens)
