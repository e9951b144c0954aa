from .wiring import AuthContainer, build_container, ensure_local_user, prepare
from .app import create_app

__all__ = ["AuthContainer", "build_container", "ensure_local_user", "prepare", "create_app"]
