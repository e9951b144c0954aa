from __future__ import annotations
from typing import Literal
from pydantic import BaseModel, ConfigDict

MODE_ONLINE = "online"
MODE_LOCAL = "local"

DEFAULT_LOCAL_USER_ID = 1
DEFAULT_LOCAL_USERNAME = "离线用户"
DEFAULT_LOCAL_EMAIL = "offline@localhost"
DEFAULT_LOCAL_DB_REL_PATH = "data/promptgen-local.db"

# ---------- Env keys ----------
ENV_APP_MODE = "APP_MODE"
ENV_LOCAL_SQLITE_PATH = "LOCAL_SQLITE_PATH"
ENV_LOCAL_USER_ID = "LOCAL_USER_ID"
ENV_LOCAL_USER_USERNAME = "LOCAL_USER_USERNAME"
ENV_LOCAL_USER_EMAIL = "LOCAL_USER_EMAIL"
ENV_LOCAL_USER_ADMIN = "LOCAL_USER_ADMIN"


class LocalRuntime(BaseModel):
    """Fixed identity and storage location used when running offline."""
    model_config = ConfigDict(frozen=True)

    db_path: str
    user_id: int = DEFAULT_LOCAL_USER_ID
    username: str = DEFAULT_LOCAL_USERNAME
    email: str = DEFAULT_LOCAL_EMAIL
    is_admin: bool = True


class RuntimeFlags(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: Literal["online", "local"] = MODE_ONLINE
    local: LocalRuntime

    @property
    def is_local(self) -> bool:
        return self.mode == MODE_LOCAL
