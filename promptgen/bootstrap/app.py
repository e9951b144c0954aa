from __future__ import annotations
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Mapping, Optional, Union

from fastapi import FastAPI, Request

from promptgen.authservice.contracts import PasswordHasherPort, UserRepoPort
from promptgen.authservice.errors import AuthServiceException
from promptgen.authservice.routes import error_response, router_for_mode
from promptgen.runtimemode import load_environment
from .observability import RequestContextMiddleware, configure_logging
from .wiring import AuthContainer, build_container, prepare

APP_NAME = "promptgen-auth"
APP_VERSION = "0.1.0"

log = logging.getLogger("promptgen.bootstrap")


def create_app(
    env: Optional[Mapping[str, str]] = None,
    *,
    start_dir: Union[str, Path, None] = None,
    users: Optional[UserRepoPort] = None,
    hasher: Optional[PasswordHasherPort] = None,
) -> FastAPI:
    """
    App factory. Configuration is loaded here, once, and handed down as data.
    Pass ``env`` to use it instead of the process environment (tests do,
    together with CONFIG_SKIP_ENV_LOAD=1 to ignore .env files).
    A missing signing secret outside local mode raises ConfigError, so the
    process never starts half-configured.
    """
    config = load_environment(env, start_dir=start_dir)
    container = build_container(config, users=users, hasher=hasher)
    configure_logging(container.settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        seeded = await prepare(container)
        if seeded is not None:
            log.info("bootstrap.ready mode=%s local_user_id=%s", container.mode, seeded.id)
        else:
            log.info("bootstrap.ready mode=%s", container.mode)
        yield

    app = FastAPI(title=APP_NAME, version=APP_VERSION, lifespan=lifespan)
    app.add_middleware(RequestContextMiddleware)
    _attach(app, container)

    @app.exception_handler(AuthServiceException)
    async def _auth_error(request: Request, ex: AuthServiceException):
        return error_response(request, ex)

    @app.get("/healthz")
    def healthz():
        return {"ok": True, "mode": container.mode}

    app.include_router(router_for_mode(container.mode))
    return app


def _attach(app: FastAPI, container: AuthContainer) -> None:
    app.state.container = container
    app.state.mode = container.mode
    app.state.auth_service = container.service
    app.state.auth_users = container.users
    app.state.auth_provider = container.provider
