from __future__ import annotations
import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Optional, TypeVar

from .contracts import (
    AuthResult, ClockPort, LoginRequest, PasswordHasherPort, RefreshRequest, RegisterRequest,
    TokenManagerPort, UserRecord, UserRepoPort,
)
from .crypto import BcryptPasswordHasher
from .errors import (
    AuthInternalError, DuplicateUserError, EmailTaken, InvalidLogin, InvalidToken, UsernameTaken, taken_error_for,
)

log = logging.getLogger("promptgen.authservice")

T = TypeVar("T")


class SystemClock(ClockPort):
    def now_utc(self) -> datetime:
        return datetime.now(timezone.utc)


class AuthService:
    """
    Registration, login and token refresh. The only place that decides
    whether a caller may obtain tokens, and for which identity.

    Holds no per-request state; one instance serves concurrent calls.
    Cancellation and timeouts propagate unchanged, they are never turned
    into domain or internal errors.
    """

    def __init__(
        self,
        *,
        user_repo: UserRepoPort,
        tokens: TokenManagerPort,
        hasher: Optional[PasswordHasherPort] = None,
        clock: Optional[ClockPort] = None,
    ):
        self.user_repo = user_repo
        self.tokens = tokens
        self.hasher = hasher or BcryptPasswordHasher()
        self.clock = clock or SystemClock()

    # --------- Core operations ----------
    async def register(self, req: RegisterRequest, *, timeout: Optional[float] = None) -> AuthResult:
        return await _with_timeout(self._register(req), timeout)

    async def login(self, req: LoginRequest, *, timeout: Optional[float] = None) -> AuthResult:
        return await _with_timeout(self._login(req), timeout)

    async def refresh(self, req: RefreshRequest, *, timeout: Optional[float] = None) -> AuthResult:
        """Exchange a refresh token for a new pair. Old tokens stay valid until they expire."""
        return await _with_timeout(self._refresh(req), timeout)

    async def _register(self, req: RegisterRequest) -> AuthResult:
        # advisory pre-checks; the repository's unique constraint is authoritative
        if await self._step("find user by email", self.user_repo.find_by_email(req.email)) is not None:
            raise EmailTaken()
        if await self._step("find user by username", self.user_repo.find_by_username(req.username)) is not None:
            raise UsernameTaken()

        pw_hash = await self._step("hash password", asyncio.to_thread(self.hasher.hash, req.password))
        record = UserRecord(username=req.username, email=req.email, password_hash=pw_hash)
        try:
            created = await self._step("create user", self.user_repo.create(record))
        except AuthInternalError as ex:
            # a concurrent registration won the race between pre-check and insert
            if isinstance(ex.__cause__, DuplicateUserError):
                log.info("auth.register conflict field=%s", ex.__cause__.field)
                raise taken_error_for(ex.__cause__.field) from ex.__cause__
            raise

        user = created.to_public()
        tokens = await self._step("generate tokens", self.tokens.generate_tokens(user))
        log.info("auth.register ok user_id=%s", user.id)
        return AuthResult(user=user, tokens=tokens)

    async def _login(self, req: LoginRequest) -> AuthResult:
        record = await self._step("find user by email", self.user_repo.find_by_email(req.email))
        if record is None:
            log.info("auth.login rejected")
            raise InvalidLogin()

        ok = await self._step("verify password", asyncio.to_thread(self.hasher.verify, record.password_hash, req.password))
        if not ok:
            log.info("auth.login rejected")
            raise InvalidLogin()

        record = record.model_copy(update={"last_login_at": self.clock.now_utc()})
        await self._step("update last login", self.user_repo.update(record))

        user = record.to_public()
        tokens = await self._step("generate tokens", self.tokens.generate_tokens(user))
        log.info("auth.login ok user_id=%s", user.id)
        return AuthResult(user=user, tokens=tokens)

    async def _refresh(self, req: RefreshRequest) -> AuthResult:
        claims = self.tokens.verify(req.refresh_token, expected_type="refresh")
        try:
            user_id = int(claims.sub)
        except ValueError as ex:
            raise InvalidToken("invalid token subject") from ex

        record = await self._step("find user by id", self.user_repo.find_by_id(user_id))
        if record is None:
            log.info("auth.refresh rejected user_id=%s", user_id)
            raise InvalidToken("unknown user")

        user = record.to_public()
        tokens = await self._step("generate tokens", self.tokens.generate_tokens(user))
        log.info("auth.refresh ok user_id=%s", user.id)
        return AuthResult(user=user, tokens=tokens)

    # --------- Helpers ----------
    async def _step(self, op: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except asyncio.TimeoutError:
            raise
        except Exception as ex:
            if not isinstance(ex, DuplicateUserError):
                log.exception("auth.%s err", op.replace(" ", "_"))
            raise AuthInternalError(op) from ex


async def _with_timeout(coro: Awaitable[T], timeout: Optional[float]) -> T:
    if timeout is None:
        return await coro
    return await asyncio.wait_for(coro, timeout)
