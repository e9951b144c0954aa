from .contracts import LocalRuntime, RuntimeFlags, MODE_LOCAL, MODE_ONLINE
from .resolver import resolve_runtime_flags, normalise_path
from .envfiles import load_environment

__all__ = [
    "LocalRuntime",
    "RuntimeFlags",
    "MODE_LOCAL",
    "MODE_ONLINE",
    "resolve_runtime_flags",
    "normalise_path",
    "load_environment",
]
