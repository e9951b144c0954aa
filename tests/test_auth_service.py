import asyncio
from datetime import datetime, timezone

import pytest

from promptgen.authservice import (
    AuthInternalError, AuthService, EmailTaken, InMemoryUserRepo, InvalidLogin, InvalidToken,
    LoginRequest, PasswordTooLong, RefreshRequest, RegisterRequest, UserRecord, UsernameTaken,
)
from promptgen.authservice.errors import DuplicateUserError, RepositoryError


def reg(username="alice", email="alice@x.com", password="Secret123!"):
    return RegisterRequest(username=username, email=email, password=password)


class RecordingTokens:
    """Wraps a real token manager and records every call."""
    def __init__(self, inner, fail=False):
        self.inner = inner
        self.fail = fail
        self.calls = []

    async def generate_tokens(self, user):
        self.calls.append(user.id)
        if self.fail:
            raise RuntimeError("signer unavailable")
        return await self.inner.generate_tokens(user)


class BlindRepo(InMemoryUserRepo):
    """Lookups see nothing, as if a concurrent insert landed after the pre-check."""
    async def find_by_email(self, email):
        return None

    async def find_by_username(self, username):
        return None


class SlowRepo(InMemoryUserRepo):
    async def find_by_email(self, email):
        await asyncio.sleep(10)
        return None


@pytest.mark.asyncio
async def test_register_then_login(service, repo):
    registered = await service.register(reg())
    assert registered.user.username == "alice"
    assert registered.user.email == "alice@x.com"
    assert registered.user.id is not None
    assert registered.user.last_login_at is None
    assert registered.tokens.expires_in == 900
    assert not hasattr(registered.user, "password_hash")

    stored = await repo.find_by_email("alice@x.com")
    assert stored.password_hash != "Secret123!"
    assert stored.last_login_at is None

    before = datetime.now(timezone.utc)
    logged_in = await service.login(LoginRequest(email="alice@x.com", password="Secret123!"))
    assert logged_in.user.id == registered.user.id
    assert logged_in.tokens.expires_in == 900
    assert logged_in.user.last_login_at is not None
    assert logged_in.user.last_login_at >= before
    assert (await repo.find_by_email("alice@x.com")).last_login_at == logged_in.user.last_login_at


@pytest.mark.asyncio
async def test_duplicate_email_and_username(service):
    await service.register(reg())
    with pytest.raises(EmailTaken):
        await service.register(reg(username="alice2"))
    with pytest.raises(UsernameTaken):
        await service.register(reg(email="other@x.com"))


@pytest.mark.asyncio
async def test_login_failures_are_indistinguishable(service):
    await service.register(reg())
    with pytest.raises(InvalidLogin) as unknown:
        await service.login(LoginRequest(email="nobody@x.com", password="Secret123!"))
    with pytest.raises(InvalidLogin) as wrong:
        await service.login(LoginRequest(email="alice@x.com", password="wrong-password"))
    assert type(unknown.value) is type(wrong.value)
    assert unknown.value.payload == wrong.value.payload
    assert unknown.value.status_code == wrong.value.status_code == 401


@pytest.mark.asyncio
async def test_login_uses_injected_clock(repo, tokens, fixed_clock):
    svc = AuthService(user_repo=repo, tokens=tokens, clock=fixed_clock)
    await svc.register(reg())
    result = await svc.login(LoginRequest(email="alice@x.com", password="Secret123!"))
    assert result.user.last_login_at == fixed_clock.when


@pytest.mark.parametrize("field,expected", [("email", EmailTaken), ("username", UsernameTaken)])
@pytest.mark.asyncio
async def test_late_constraint_violation_maps_to_taken(tokens, field, expected):
    repo = BlindRepo()
    await repo.create(UserRecord(username="alice", email="alice@x.com", password_hash="x"))
    svc = AuthService(user_repo=repo, tokens=tokens)
    clash = reg(username="bob") if field == "email" else reg(email="bob@x.com")
    with pytest.raises(expected) as info:
        await svc.register(clash)
    assert isinstance(info.value.__cause__, DuplicateUserError)


@pytest.mark.asyncio
async def test_concurrent_registrations_exactly_one_wins(service):
    results = await asyncio.gather(
        service.register(reg(username="alice")),
        service.register(reg(username="alice-twin")),
        return_exceptions=True,
    )
    wins = [r for r in results if not isinstance(r, Exception)]
    losses = [r for r in results if isinstance(r, Exception)]
    assert len(wins) == 1
    assert len(losses) == 1
    assert isinstance(losses[0], EmailTaken)


@pytest.mark.asyncio
async def test_hash_failure_is_internal_and_nothing_persisted(service, repo):
    with pytest.raises(AuthInternalError) as info:
        await service.register(reg(password="p" * 100))
    assert info.value.op == "hash password"
    assert isinstance(info.value.__cause__, PasswordTooLong)
    assert info.value.payload.message == "internal error"
    assert await repo.find_by_email("alice@x.com") is None


@pytest.mark.asyncio
async def test_persistence_failure_is_internal_and_no_tokens(tokens):
    class BrokenRepo(InMemoryUserRepo):
        async def create(self, user):
            raise RepositoryError("disk full")

    recording = RecordingTokens(tokens)
    svc = AuthService(user_repo=BrokenRepo(), tokens=recording)
    with pytest.raises(AuthInternalError) as info:
        await svc.register(reg())
    assert info.value.op == "create user"
    assert recording.calls == []


@pytest.mark.asyncio
async def test_token_failure_after_persistence(repo, tokens):
    svc = AuthService(user_repo=repo, tokens=RecordingTokens(tokens, fail=True))
    with pytest.raises(AuthInternalError) as info:
        await svc.register(reg())
    assert info.value.op == "generate tokens"
    assert await repo.find_by_email("alice@x.com") is not None


@pytest.mark.asyncio
async def test_login_update_failure_is_internal(tokens):
    class NoUpdateRepo(InMemoryUserRepo):
        async def update(self, user):
            raise RepositoryError("read-only database")

    svc = AuthService(user_repo=NoUpdateRepo(), tokens=tokens)
    await svc.register(reg())
    with pytest.raises(AuthInternalError) as info:
        await svc.login(LoginRequest(email="alice@x.com", password="Secret123!"))
    assert info.value.op == "update last login"


@pytest.mark.asyncio
async def test_lookup_failure_is_internal_not_invalid_login(tokens):
    class DownRepo(InMemoryUserRepo):
        async def find_by_email(self, email):
            raise RepositoryError("connection refused")

    svc = AuthService(user_repo=DownRepo(), tokens=tokens)
    with pytest.raises(AuthInternalError):
        await svc.login(LoginRequest(email="alice@x.com", password="Secret123!"))


@pytest.mark.asyncio
async def test_timeout_propagates_as_timeout(tokens):
    svc = AuthService(user_repo=SlowRepo(), tokens=tokens)
    with pytest.raises(asyncio.TimeoutError):
        await svc.register(reg(), timeout=0.05)
    with pytest.raises(asyncio.TimeoutError):
        await svc.login(LoginRequest(email="alice@x.com", password="x"), timeout=0.05)


@pytest.mark.asyncio
async def test_cancellation_propagates_as_cancellation(tokens):
    svc = AuthService(user_repo=SlowRepo(), tokens=tokens)
    task = asyncio.create_task(svc.login(LoginRequest(email="alice@x.com", password="x")))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


# ---------- refresh ----------
@pytest.mark.asyncio
async def test_refresh_issues_a_new_pair_for_the_same_user(service, tokens):
    registered = await service.register(reg())
    refreshed = await service.refresh(RefreshRequest(refresh_token=registered.tokens.refresh_token))
    assert refreshed.user.id == registered.user.id
    assert refreshed.user.username == "alice"
    assert refreshed.tokens.expires_in == 900
    assert tokens.verify(refreshed.tokens.access_token).sub == str(registered.user.id)
    assert refreshed.tokens.refresh_token != registered.tokens.refresh_token


@pytest.mark.asyncio
async def test_refresh_rejects_access_tokens_and_garbage(service):
    registered = await service.register(reg())
    with pytest.raises(InvalidToken):
        await service.refresh(RefreshRequest(refresh_token=registered.tokens.access_token))
    with pytest.raises(InvalidToken):
        await service.refresh(RefreshRequest(refresh_token="not.a.token"))


@pytest.mark.asyncio
async def test_refresh_for_unknown_user_is_invalid_token(tokens):
    issuer = AuthService(user_repo=InMemoryUserRepo(), tokens=tokens)
    registered = await issuer.register(reg())
    other = AuthService(user_repo=InMemoryUserRepo(), tokens=tokens)
    with pytest.raises(InvalidToken):
        await other.refresh(RefreshRequest(refresh_token=registered.tokens.refresh_token))


@pytest.mark.asyncio
async def test_refresh_lookup_failure_is_internal(tokens):
    class DownRepo(InMemoryUserRepo):
        async def find_by_id(self, user_id):
            raise RepositoryError("connection refused")

    pair = await tokens.generate_tokens(UserRecord(id=3, username="c", email="c@x.com", password_hash="x").to_public())
    svc = AuthService(user_repo=DownRepo(), tokens=tokens)
    with pytest.raises(AuthInternalError) as info:
        await svc.refresh(RefreshRequest(refresh_token=pair.refresh_token))
    assert info.value.op == "find user by id"
