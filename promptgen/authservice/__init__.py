from .service import AuthService, SystemClock
from .crypto import BcryptPasswordHasher, JWTTokenManager
from .repository import InMemoryUserRepo, SQLiteUserRepo
from .config import AuthSettings, parse_duration
from .providers import JWTAuthProvider, LocalAuthProvider, build_auth_provider
from .contracts import AuthResult, LoginRequest, Principal, RefreshRequest, RegisterRequest, TokenPair, User, UserRecord
from .errors import (
    AuthServiceException, AuthInternalError, ConfigError, DuplicateUserError,
    EmailTaken, InvalidLogin, InvalidToken, PasswordTooLong, UsernameTaken,
)

__all__ = [
    "AuthService",
    "SystemClock",
    "BcryptPasswordHasher",
    "JWTTokenManager",
    "InMemoryUserRepo",
    "SQLiteUserRepo",
    "AuthSettings",
    "parse_duration",
    "JWTAuthProvider",
    "LocalAuthProvider",
    "build_auth_provider",
    "AuthResult",
    "LoginRequest",
    "RefreshRequest",
    "Principal",
    "RegisterRequest",
    "TokenPair",
    "User",
    "UserRecord",
    "AuthServiceException",
    "AuthInternalError",
    "ConfigError",
    "DuplicateUserError",
    "EmailTaken",
    "InvalidLogin",
    "InvalidToken",
    "PasswordTooLong",
    "UsernameTaken",
]
