from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values

log = logging.getLogger("promptgen.runtimemode")

ENV_FILE_NAMES = (".env", ".env.local")  # later entries win
SKIP_ENV_LOAD_KEY = "CONFIG_SKIP_ENV_LOAD"


def find_env_file(name: str, start_dir: Union[str, Path]) -> Optional[Path]:
    """Walk from start_dir up to the filesystem root looking for ``name``."""
    current = Path(start_dir).resolve()
    for directory in (current, *current.parents):
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


def load_environment(
    base: Optional[Mapping[str, str]] = None,
    start_dir: Union[str, Path, None] = None,
) -> Dict[str, str]:
    """
    Build the process configuration mapping.

    Called once at startup; the returned dict is handed to whatever needs
    configuration. ``os.environ`` is only read (as the default ``base``),
    never written. Values from ``.env`` override ``base`` and values from
    ``.env.local`` override both.
    """
    env: Dict[str, str] = dict(os.environ if base is None else base)
    if env.get(SKIP_ENV_LOAD_KEY, "").strip() == "1":
        return env

    root = Path.cwd() if start_dir is None else Path(start_dir)
    for name in ENV_FILE_NAMES:
        path = find_env_file(name, root)
        if path is None:
            continue
        values = {k: v for k, v in dotenv_values(path).items() if v is not None}
        env.update(values)
        log.info("config.envfile loaded path=%s keys=%d", path, len(values))
    return env
