import asyncio
from datetime import datetime, timezone

import pytest

from promptgen.authservice import DuplicateUserError, InMemoryUserRepo, SQLiteUserRepo, UserRecord
from promptgen.authservice.errors import RepositoryError


def rec(username="alice", email="alice@x.com", **kw):
    return UserRecord(username=username, email=email, password_hash="$2b$hash", **kw)


@pytest.fixture(params=["memory", "sqlite"])
def any_repo(request, tmp_path):
    if request.param == "memory":
        return InMemoryUserRepo()
    return SQLiteUserRepo(str(tmp_path / "nested" / "dir" / "users.db"))


@pytest.mark.asyncio
async def test_create_assigns_ids_and_finds(any_repo):
    a = await any_repo.create(rec())
    b = await any_repo.create(rec(username="bob", email="bob@x.com"))
    assert a.id is not None and b.id is not None and a.id != b.id
    assert a.created_at is not None

    assert (await any_repo.find_by_email("alice@x.com")).id == a.id
    assert (await any_repo.find_by_username("bob")).id == b.id
    assert (await any_repo.find_by_id(a.id)).email == "alice@x.com"
    assert await any_repo.find_by_email("nobody@x.com") is None
    assert await any_repo.find_by_username("nobody") is None
    assert await any_repo.find_by_id(999) is None


@pytest.mark.asyncio
async def test_unique_constraints(any_repo):
    await any_repo.create(rec())
    with pytest.raises(DuplicateUserError) as dup_email:
        await any_repo.create(rec(username="other"))
    assert dup_email.value.field == "email"
    with pytest.raises(DuplicateUserError) as dup_name:
        await any_repo.create(rec(email="other@x.com"))
    assert dup_name.value.field == "username"


@pytest.mark.asyncio
async def test_preset_id_is_kept(any_repo):
    created = await any_repo.create(rec(id=42, is_admin=True))
    assert created.id == 42
    found = await any_repo.find_by_id(42)
    assert found.is_admin is True
    with pytest.raises(DuplicateUserError):
        await any_repo.create(rec(id=42, username="x", email="x@x.com"))


@pytest.mark.asyncio
async def test_update_persists_last_login(any_repo):
    created = await any_repo.create(rec())
    when = datetime(2026, 1, 12, 12, 0, tzinfo=timezone.utc)
    await any_repo.update(created.model_copy(update={"last_login_at": when}))
    assert (await any_repo.find_by_email("alice@x.com")).last_login_at == when


@pytest.mark.asyncio
async def test_update_unknown_user_fails(any_repo):
    with pytest.raises(RepositoryError):
        await any_repo.update(rec(id=404))


@pytest.mark.asyncio
async def test_concurrent_inserts_one_survives(any_repo):
    results = await asyncio.gather(
        *(any_repo.create(rec(username=f"user{i}")) for i in range(5)),
        return_exceptions=True,
    )
    created = [r for r in results if isinstance(r, UserRecord)]
    dupes = [r for r in results if isinstance(r, DuplicateUserError)]
    assert len(created) == 1
    assert len(dupes) == 4
    assert all(d.field == "email" for d in dupes)


def test_sqlite_creates_parent_directories(tmp_path):
    path = tmp_path / "a" / "b" / "users.db"
    SQLiteUserRepo(str(path)).ensure_schema()
    assert path.exists()


def test_record_repr_hides_hash():
    assert "$2b$hash" not in repr(rec())


@pytest.mark.asyncio
async def test_change_id_moves_the_row(any_repo):
    created = await any_repo.create(rec())
    await any_repo.change_id(created.id, 50)
    assert await any_repo.find_by_id(created.id) is None
    assert (await any_repo.find_by_email("alice@x.com")).id == 50
    assert (await any_repo.find_by_username("alice")).id == 50
    assert (await any_repo.create(rec(username="bob", email="bob@x.com"))).id != 50


@pytest.mark.asyncio
async def test_change_id_rejects_taken_and_unknown_ids(any_repo):
    a = await any_repo.create(rec())
    b = await any_repo.create(rec(username="bob", email="bob@x.com"))
    with pytest.raises(DuplicateUserError) as dup:
        await any_repo.change_id(a.id, b.id)
    assert dup.value.field == "id"
    with pytest.raises(RepositoryError):
        await any_repo.change_id(404, 405)
