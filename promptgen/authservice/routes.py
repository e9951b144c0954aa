from __future__ import annotations
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from .contracts import LoginRequest, MeResponse, MetaPayload, Principal, RefreshRequest, RegisterRequest, UWFResponse
from .deps import get_auth_provider, get_auth_service, get_principal, get_user_repo
from .errors import AuthInternalError, AuthServiceException

log = logging.getLogger("promptgen.http")

T = TypeVar("T")


def _meta(request: Request) -> MetaPayload:
    return MetaPayload(
        request_id=getattr(request.state, "request_id", None),
        trace_id=getattr(request.state, "trace_id", None),
        mode=getattr(request.app.state, "mode", None),
    )


def error_response(request: Request, ex: AuthServiceException) -> JSONResponse:
    if ex.status_code >= 500:
        # details stay in the log; callers get the opaque payload
        log.error("http.auth err path=%s detail=%s", request.url.path, ex)
    body = UWFResponse(ok=False, error=ex.payload, meta=_meta(request))
    return JSONResponse(status_code=ex.status_code, content=body.model_dump(mode="json"))


async def _guarded(op: str, awaitable: Awaitable[T]) -> T:
    # failures below the handler surface as enveloped internal errors
    try:
        return await awaitable
    except Exception as ex:
        raise AuthInternalError(op) from ex


async def me(request: Request, principal: Principal = Depends(get_principal), users=Depends(get_user_repo)):
    record = await _guarded("find user by id", users.find_by_id(principal.user_id))
    result = MeResponse(principal=principal, user=record.to_public() if record else None)
    return UWFResponse(ok=True, result=result, meta=_meta(request))


# ---------- online mode ----------
online_router = APIRouter(prefix="/auth", tags=["auth"])

@online_router.post("/register", response_model=UWFResponse, status_code=201)
async def register(req: RegisterRequest, request: Request, svc=Depends(get_auth_service)):
    try:
        result = await svc.register(req)
    except AuthServiceException as ex:
        return error_response(request, ex)
    return UWFResponse(ok=True, result=result, meta=_meta(request))

@online_router.post("/login", response_model=UWFResponse)
async def login(req: LoginRequest, request: Request, svc=Depends(get_auth_service)):
    try:
        result = await svc.login(req)
    except AuthServiceException as ex:
        return error_response(request, ex)
    return UWFResponse(ok=True, result=result, meta=_meta(request))

@online_router.post("/refresh", response_model=UWFResponse)
async def refresh(req: RefreshRequest, request: Request, svc=Depends(get_auth_service)):
    try:
        result = await svc.refresh(req)
    except AuthServiceException as ex:
        return error_response(request, ex)
    return UWFResponse(ok=True, result=result, meta=_meta(request))

online_router.add_api_route("/me", me, methods=["GET"], response_model=UWFResponse)


# ---------- local mode ----------
local_router = APIRouter(prefix="/auth", tags=["auth"])

@local_router.post("/session", response_model=UWFResponse)
async def local_session(request: Request, provider=Depends(get_auth_provider), users=Depends(get_user_repo)):
    record = await _guarded("find user by id", users.find_by_id(provider.local.user_id))
    result = await _guarded("issue session", provider.issue_session(record.to_public() if record else None))
    return UWFResponse(ok=True, result=result, meta=_meta(request))

local_router.add_api_route("/me", me, methods=["GET"], response_model=UWFResponse)


def router_for_mode(mode: str) -> APIRouter:
    return local_router if mode == "local" else online_router
