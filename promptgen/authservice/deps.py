from typing import Optional

from fastapi import Depends, Header, Request

from .contracts import Principal, UserRepoPort
from .providers import AuthProvider
from .service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_user_repo(request: Request) -> UserRepoPort:
    return request.app.state.auth_users


def get_auth_provider(request: Request) -> AuthProvider:
    return request.app.state.auth_provider


def get_authorization_header(authorization: Optional[str] = Header(default=None, alias="Authorization")) -> Optional[str]:
    """
    Raw Authorization header, e.g. "Bearer <token>". Absent means None.
    """
    return authorization


def get_principal(
    provider: AuthProvider = Depends(get_auth_provider),
    authorization: Optional[str] = Depends(get_authorization_header),
) -> Principal:
    """
    Resolve the caller. Raises InvalidToken, which the app maps to 401.
    In local mode the provider ignores the header and returns the fixed user.
    """
    return provider.authenticate(authorization)
