from datetime import datetime, timedelta, timezone

import pytest

from promptgen.authservice import AuthService, InMemoryUserRepo, JWTTokenManager

# long enough for HS256 key-length checks
TEST_SECRET = "test-secret-for-promptgen-auth-0123456789"


class FixedClock:
    def __init__(self, when: datetime):
        self.when = when

    def now_utc(self) -> datetime:
        return self.when


def make_clock(start=1_700_000_000.0):
    t = {"now": float(start)}
    def now():
        return t["now"]
    def advance(dt):
        t["now"] += float(dt)
    return now, advance


@pytest.fixture
def repo():
    return InMemoryUserRepo()


@pytest.fixture
def tokens():
    return JWTTokenManager(TEST_SECRET, timedelta(minutes=15), timedelta(days=7))


@pytest.fixture
def service(repo, tokens):
    return AuthService(user_repo=repo, tokens=tokens)


@pytest.fixture
def online_env(tmp_path):
    return {
        "CONFIG_SKIP_ENV_LOAD": "1",
        "JWT_SECRET": TEST_SECRET,
        "USER_DB_PATH": str(tmp_path / "online" / "users.db"),
    }


@pytest.fixture
def local_env(tmp_path):
    return {
        "CONFIG_SKIP_ENV_LOAD": "1",
        "APP_MODE": "local",
        "LOCAL_SQLITE_PATH": str(tmp_path / "local" / "promptgen-local.db"),
    }


@pytest.fixture
def fixed_clock():
    return FixedClock(datetime(2026, 1, 12, 12, 0, 0, tzinfo=timezone.utc))
