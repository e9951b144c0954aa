from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from promptgen.authservice.config import AuthSettings
from promptgen.authservice.contracts import ClockPort, PasswordHasherPort, User, UserRecord, UserRepoPort
from promptgen.authservice.crypto import JWTTokenManager, TimeFn
from promptgen.authservice.errors import ConfigError, DuplicateUserError
from promptgen.authservice.providers import JWTAuthProvider, LocalAuthProvider, build_auth_provider
from promptgen.authservice.repository import SQLiteUserRepo
from promptgen.authservice.service import AuthService
from promptgen.runtimemode import LocalRuntime, RuntimeFlags, normalise_path, resolve_runtime_flags

log = logging.getLogger("promptgen.bootstrap")

# bcrypt never produces this, so the seeded local account cannot log in with a password
UNUSABLE_PASSWORD_HASH = "!"


@dataclass(frozen=True)
class AuthContainer:
    """Everything the auth core needs for the lifetime of the process."""
    flags: RuntimeFlags
    settings: AuthSettings
    users: UserRepoPort
    tokens: JWTTokenManager
    service: AuthService
    provider: Union[JWTAuthProvider, LocalAuthProvider]

    @property
    def mode(self) -> str:
        return self.flags.mode


def build_container(
    env: Mapping[str, str],
    *,
    users: Optional[UserRepoPort] = None,
    hasher: Optional[PasswordHasherPort] = None,
    clock: Optional[ClockPort] = None,
    now: Optional[TimeFn] = None,
) -> AuthContainer:
    """
    Assemble the auth core from an already-loaded configuration mapping.

    Raises ConfigError when the process must not start, e.g. no signing
    secret outside local mode.
    """
    flags = resolve_runtime_flags(env)
    settings = AuthSettings.from_env(env)

    try:
        tokens = JWTTokenManager.for_runtime(
            flags, settings.JWT_SECRET, settings.access_ttl, settings.refresh_ttl, now=now,
        )
    except ConfigError:
        log.critical("bootstrap.tokens err mode=%s: JWT_SECRET not configured", flags.mode)
        raise

    if users is None:
        db_path = flags.local.db_path if flags.is_local else normalise_path(settings.USER_DB_PATH)
        users = SQLiteUserRepo(db_path)

    service = AuthService(user_repo=users, tokens=tokens, hasher=hasher, clock=clock)
    provider = build_auth_provider(flags, tokens)
    log.info(
        "bootstrap.auth ok mode=%s access_ttl=%ss refresh_ttl=%ss",
        flags.mode, int(settings.access_ttl.total_seconds()), int(settings.refresh_ttl.total_seconds()),
    )
    return AuthContainer(flags=flags, settings=settings, users=users, tokens=tokens, service=service, provider=provider)


async def ensure_local_user(users: UserRepoPort, local: LocalRuntime) -> User:
    """
    Make sure the fixed offline identity exists, creating it on first start
    and re-applying the configured username/email/admin flag afterwards.

    When LOCAL_USER_ID changed since the row was seeded, the row matching the
    configured email (or username) is moved to the new id instead of adding a
    second identity. Raises ConfigError if the configured identity clashes
    with rows that cannot be reconciled.
    """
    try:
        return await _ensure_local_user(users, local)
    except DuplicateUserError as ex:
        log.critical("bootstrap.local_user err user_id=%s field=%s", local.user_id, ex.field)
        raise ConfigError(
            f"local identity (id={local.user_id}) conflicts with an existing user on {ex.field}"
        ) from ex


async def _ensure_local_user(users: UserRepoPort, local: LocalRuntime) -> User:
    existing = await users.find_by_id(local.user_id)
    if existing is None:
        stale = await users.find_by_email(local.email) or await users.find_by_username(local.username)
        if stale is not None:
            await users.change_id(stale.id, local.user_id)
            log.warning("bootstrap.local_user rekeyed from=%s to=%s", stale.id, local.user_id)
            existing = stale.model_copy(update={"id": local.user_id})

    if existing is None:
        created = await users.create(
            UserRecord(
                id=local.user_id,
                username=local.username,
                email=local.email,
                password_hash=UNUSABLE_PASSWORD_HASH,
                is_admin=local.is_admin,
            )
        )
        log.info("bootstrap.local_user created user_id=%s", created.id)
        return created.to_public()

    wanted = {"username": local.username, "email": local.email, "is_admin": local.is_admin}
    if any(getattr(existing, k) != v for k, v in wanted.items()):
        existing = existing.model_copy(update=wanted)
        await users.update(existing)
        log.info("bootstrap.local_user updated user_id=%s", existing.id)
    return existing.to_public()


async def prepare(container: AuthContainer) -> Optional[User]:
    """Startup hook: seeds the local identity in local mode, no-op otherwise."""
    if not container.flags.is_local:
        return None
    return await ensure_local_user(container.users, container.flags.local)
