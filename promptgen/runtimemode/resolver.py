from __future__ import annotations
import logging
import os
from typing import Mapping, Optional

from .contracts import (
    DEFAULT_LOCAL_DB_REL_PATH, DEFAULT_LOCAL_EMAIL, DEFAULT_LOCAL_USER_ID, DEFAULT_LOCAL_USERNAME,
    ENV_APP_MODE, ENV_LOCAL_SQLITE_PATH, ENV_LOCAL_USER_ADMIN, ENV_LOCAL_USER_EMAIL,
    ENV_LOCAL_USER_ID, ENV_LOCAL_USER_USERNAME, MODE_LOCAL, MODE_ONLINE,
    LocalRuntime, RuntimeFlags,
)

log = logging.getLogger("promptgen.runtimemode")

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _get(env: Mapping[str, str], key: str) -> str:
    return (env.get(key) or "").strip()


def parse_bool(raw: str) -> Optional[bool]:
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    return None


def parse_positive_int(raw: str) -> Optional[int]:
    try:
        value = int(raw, 10)
    except ValueError:
        return None
    return value if value > 0 else None


def normalise_path(raw: str) -> str:
    """Expand a leading ``~`` and make the path absolute. Never raises."""
    if not raw:
        return raw
    if raw.startswith("~"):
        try:
            raw = os.path.expanduser(raw)
        except RuntimeError:
            # no resolvable home directory; keep the literal
            pass
    if os.path.isabs(raw):
        return raw
    return os.path.abspath(raw)


def resolve_runtime_flags(env: Mapping[str, str]) -> RuntimeFlags:
    """
    Derive the operating mode and the local identity from configuration.

    Mode is ``local`` only when APP_MODE matches "local" case-insensitively;
    anything else, including an unset value, selects ``online``. Each local
    field can be overridden on its own. Values that fail to parse are ignored
    and the default stays in place, so this never raises.
    """
    mode = MODE_LOCAL if _get(env, ENV_APP_MODE).lower() == MODE_LOCAL else MODE_ONLINE

    db_path = normalise_path(DEFAULT_LOCAL_DB_REL_PATH)
    user_id = DEFAULT_LOCAL_USER_ID
    username = DEFAULT_LOCAL_USERNAME
    email = DEFAULT_LOCAL_EMAIL
    is_admin = True

    raw_path = _get(env, ENV_LOCAL_SQLITE_PATH)
    if raw_path:
        db_path = normalise_path(raw_path)

    raw_id = _get(env, ENV_LOCAL_USER_ID)
    if raw_id:
        parsed_id = parse_positive_int(raw_id)
        if parsed_id is None:
            log.warning("runtime.flags ignored key=%s value=%r", ENV_LOCAL_USER_ID, raw_id)
        else:
            user_id = parsed_id

    username = _get(env, ENV_LOCAL_USER_USERNAME) or username
    email = _get(env, ENV_LOCAL_USER_EMAIL) or email

    raw_admin = _get(env, ENV_LOCAL_USER_ADMIN)
    if raw_admin:
        parsed_admin = parse_bool(raw_admin)
        if parsed_admin is None:
            log.warning("runtime.flags ignored key=%s value=%r", ENV_LOCAL_USER_ADMIN, raw_admin)
        else:
            is_admin = parsed_admin

    flags = RuntimeFlags(
        mode=mode,
        local=LocalRuntime(db_path=db_path, user_id=user_id, username=username, email=email, is_admin=is_admin),
    )
    log.info("runtime.flags mode=%s", flags.mode)
    return flags
