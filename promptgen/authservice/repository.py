from __future__ import annotations
import asyncio
import logging
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .contracts import UserRecord, UserRepoPort
from .errors import DuplicateUserError, RepositoryError

log = logging.getLogger("promptgen.authservice")


class InMemoryUserRepo(UserRepoPort):
    """
    Test/dummy repo. Keys by id, with unique indexes on email and username.
    Thread-safe with a coarse lock, like a single-process dev store.
    """

    def __init__(self):
        self._by_id: Dict[int, UserRecord] = {}
        self._id_by_email: Dict[str, int] = {}
        self._id_by_username: Dict[str, int] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        with self._lock:
            uid = self._id_by_email.get(email)
            return self._copy(uid)

    async def find_by_username(self, username: str) -> Optional[UserRecord]:
        with self._lock:
            uid = self._id_by_username.get(username)
            return self._copy(uid)

    async def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        with self._lock:
            return self._copy(user_id)

    async def create(self, user: UserRecord) -> UserRecord:
        with self._lock:
            if user.email in self._id_by_email:
                raise DuplicateUserError("email")
            if user.username in self._id_by_username:
                raise DuplicateUserError("username")
            uid = user.id if user.id is not None else self._next_id
            if uid in self._by_id:
                raise DuplicateUserError("id")
            self._next_id = max(self._next_id, uid + 1)
            stored = user.model_copy(update={"id": uid, "created_at": user.created_at or _utcnow()})
            self._by_id[uid] = stored
            self._id_by_email[stored.email] = uid
            self._id_by_username[stored.username] = uid
            return stored.model_copy()

    async def update(self, user: UserRecord) -> None:
        with self._lock:
            current = self._by_id.get(user.id) if user.id is not None else None
            if current is None:
                raise RepositoryError(f"user {user.id} not found")
            owner = self._id_by_email.get(user.email)
            if owner is not None and owner != user.id:
                raise DuplicateUserError("email")
            owner = self._id_by_username.get(user.username)
            if owner is not None and owner != user.id:
                raise DuplicateUserError("username")
            del self._id_by_email[current.email]
            del self._id_by_username[current.username]
            self._by_id[user.id] = user.model_copy()
            self._id_by_email[user.email] = user.id
            self._id_by_username[user.username] = user.id

    async def change_id(self, user_id: int, new_id: int) -> None:
        with self._lock:
            current = self._by_id.get(user_id)
            if current is None:
                raise RepositoryError(f"user {user_id} not found")
            if new_id in self._by_id:
                raise DuplicateUserError("id")
            del self._by_id[user_id]
            self._by_id[new_id] = current.model_copy(update={"id": new_id})
            self._id_by_email[current.email] = new_id
            self._id_by_username[current.username] = new_id
            self._next_id = max(self._next_id, new_id + 1)

    def _copy(self, uid: Optional[int]) -> Optional[UserRecord]:
        if uid is None:
            return None
        rec = self._by_id.get(uid)
        return rec.model_copy() if rec else None


_SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    is_admin INTEGER NOT NULL DEFAULT 0,
    last_login_at TEXT,
    created_at TEXT NOT NULL
)
"""

_COLUMNS = "id, username, email, password_hash, is_admin, last_login_at, created_at"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_record(row: Dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=row["id"],
        username=row["username"],
        email=row["email"],
        password_hash=row["password_hash"],
        is_admin=bool(row["is_admin"]),
        last_login_at=datetime.fromisoformat(row["last_login_at"]) if row["last_login_at"] else None,
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
    )


def _dict_factory(cursor: sqlite3.Cursor, row: Any) -> Dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def _duplicate_field(ex: sqlite3.IntegrityError) -> Optional[str]:
    # e.g. "UNIQUE constraint failed: users.email"
    msg = str(ex)
    if "UNIQUE" not in msg:
        return None
    for field in ("email", "username", "id"):
        if f"users.{field}" in msg:
            return field
    return None


class SQLiteUserRepo(UserRepoPort):
    """
    SQLite-backed users table. The UNIQUE columns are the authority on
    uniqueness; violations come back as DuplicateUserError.
    One connection per call, run in a worker thread.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        conn.row_factory = _dict_factory
        return conn

    def ensure_schema(self) -> None:
        with self._schema_lock:
            if self._schema_ready:
                return
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            conn = self._get_conn()
            try:
                conn.execute(_SCHEMA)
                conn.commit()
            finally:
                conn.close()
            self._schema_ready = True
            log.info("users.schema ok path=%s", self.db_path)

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        return await asyncio.to_thread(self._find_one, "email", email)

    async def find_by_username(self, username: str) -> Optional[UserRecord]:
        return await asyncio.to_thread(self._find_one, "username", username)

    async def find_by_id(self, user_id: int) -> Optional[UserRecord]:
        return await asyncio.to_thread(self._find_one, "id", user_id)

    async def create(self, user: UserRecord) -> UserRecord:
        return await asyncio.to_thread(self._create_sync, user)

    async def update(self, user: UserRecord) -> None:
        await asyncio.to_thread(self._update_sync, user)

    async def change_id(self, user_id: int, new_id: int) -> None:
        await asyncio.to_thread(self._change_id_sync, user_id, new_id)

    # --------- sync internals ----------
    def _find_one(self, column: str, value: Any) -> Optional[UserRecord]:
        self.ensure_schema()
        conn = self._get_conn()
        try:
            row = conn.execute(f"SELECT {_COLUMNS} FROM users WHERE {column} = ?", (value,)).fetchone()
        except sqlite3.Error as ex:
            raise RepositoryError(f"find user by {column}: {ex}") from ex
        finally:
            conn.close()
        return _row_to_record(row) if row else None

    def _create_sync(self, user: UserRecord) -> UserRecord:
        self.ensure_schema()
        created_at = user.created_at or _utcnow()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "INSERT INTO users (id, username, email, password_hash, is_admin, last_login_at, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    user.id,
                    user.username,
                    user.email,
                    user.password_hash,
                    int(user.is_admin),
                    user.last_login_at.isoformat() if user.last_login_at else None,
                    created_at.isoformat(),
                ),
            )
            conn.commit()
            new_id = cur.lastrowid if user.id is None else user.id
        except sqlite3.IntegrityError as ex:
            field = _duplicate_field(ex)
            if field:
                raise DuplicateUserError(field) from ex
            raise RepositoryError(f"create user: {ex}") from ex
        except sqlite3.Error as ex:
            raise RepositoryError(f"create user: {ex}") from ex
        finally:
            conn.close()
        return user.model_copy(update={"id": new_id, "created_at": created_at})

    def _update_sync(self, user: UserRecord) -> None:
        if user.id is None:
            raise RepositoryError("update user: record has no id")
        self.ensure_schema()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE users SET username = ?, email = ?, password_hash = ?, is_admin = ?, last_login_at = ? "
                "WHERE id = ?",
                (
                    user.username,
                    user.email,
                    user.password_hash,
                    int(user.is_admin),
                    user.last_login_at.isoformat() if user.last_login_at else None,
                    user.id,
                ),
            )
            conn.commit()
            if cur.rowcount == 0:
                raise RepositoryError(f"user {user.id} not found")
        except sqlite3.IntegrityError as ex:
            field = _duplicate_field(ex)
            if field:
                raise DuplicateUserError(field) from ex
            raise RepositoryError(f"update user: {ex}") from ex
        except sqlite3.Error as ex:
            raise RepositoryError(f"update user: {ex}") from ex
        finally:
            conn.close()

    def _change_id_sync(self, user_id: int, new_id: int) -> None:
        self.ensure_schema()
        conn = self._get_conn()
        try:
            cur = conn.execute("UPDATE users SET id = ? WHERE id = ?", (new_id, user_id))
            conn.commit()
            if cur.rowcount == 0:
                raise RepositoryError(f"user {user_id} not found")
        except sqlite3.IntegrityError as ex:
            field = _duplicate_field(ex)
            if field:
                raise DuplicateUserError(field) from ex
            raise RepositoryError(f"change user id: {ex}") from ex
        except sqlite3.Error as ex:
            raise RepositoryError(f"change user id: {ex}") from ex
        finally:
            conn.close()
