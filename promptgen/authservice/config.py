from __future__ import annotations
import logging
import math
import re
from datetime import timedelta
from typing import Mapping, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

log = logging.getLogger("promptgen.authservice")

DEFAULT_ACCESS_TTL = timedelta(minutes=15)
DEFAULT_REFRESH_TTL = timedelta(days=7)

_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(raw: str) -> Optional[timedelta]:
    """
    Parse a duration such as ``15m``, ``1h30m`` or ``1.5h``.
    Returns None when the text is not a valid duration or does not fit in
    a timedelta.
    """
    text = raw.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if not text:
        return None
    if text == "0":
        return timedelta(0)

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            return None
        total += float(match.group(1)) * _UNITS[match.group(2)]
        if not math.isfinite(total):
            return None
        pos = match.end()
    if pos != len(text):
        return None
    try:
        return timedelta(seconds=sign * total)
    except OverflowError:
        return None


def duration_or_default(key: str, raw: str, default: timedelta) -> timedelta:
    if not raw or not raw.strip():
        return default
    value = parse_duration(raw)
    if value is None or value <= timedelta(0):
        log.warning("config.duration fallback key=%s value=%r default=%s", key, raw, default)
        return default
    return value


class AuthSettings(BaseSettings):
    JWT_SECRET: str = ""
    JWT_ACCESS_TTL: str = "15m"
    JWT_REFRESH_TTL: str = "168h"
    USER_DB_PATH: str = "data/promptgen.db"  # online mode store
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")

    @classmethod
    def settings_customise_sources(cls, settings_cls, init_settings, env_settings,
                                   dotenv_settings, file_secret_settings):
        # values arrive through from_env(); the process environment is not read here
        return (init_settings,)

    @classmethod
    def from_env(cls, env: Mapping[str, str]) -> "AuthSettings":
        return cls(**{name: env[name] for name in cls.model_fields if name in env})

    @property
    def access_ttl(self) -> timedelta:
        return duration_or_default("JWT_ACCESS_TTL", self.JWT_ACCESS_TTL, DEFAULT_ACCESS_TTL)

    @property
    def refresh_ttl(self) -> timedelta:
        return duration_or_default("JWT_REFRESH_TTL", self.JWT_REFRESH_TTL, DEFAULT_REFRESH_TTL)
