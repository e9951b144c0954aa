from __future__ import annotations
from typing import Optional
from .contracts import AuthErrorCodes, ErrorPayload

class AuthServiceException(Exception):
    """Base for errors the auth core hands back to its callers."""
    type: str = "AUTH_ERROR"
    code: str = AuthErrorCodes.INTERNAL
    message: str = "Authentication error"
    status_code: int = 400

    def __init__(self, message: Optional[str] = None, *, details: Optional[dict] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        self.details = details

    @property
    def payload(self) -> ErrorPayload:
        return ErrorPayload(type=self.type, code=self.code, message=self.message, details=self.details)

class EmailTaken(AuthServiceException):
    type = "CONFLICT"
    code = AuthErrorCodes.EMAIL_TAKEN
    message = "email already registered"
    status_code = 409

class UsernameTaken(AuthServiceException):
    type = "CONFLICT"
    code = AuthErrorCodes.USERNAME_TAKEN
    message = "username already taken"
    status_code = 409

class InvalidLogin(AuthServiceException):
    # same message whether the email is unknown or the password is wrong
    code = AuthErrorCodes.INVALID_LOGIN
    message = "invalid email or password"
    status_code = 401

class InvalidToken(AuthServiceException):
    code = AuthErrorCodes.INVALID_TOKEN
    message = "invalid token"
    status_code = 401

class AuthInternalError(AuthServiceException):
    """Hashing, persistence or token failure. The cause is chained, never shown."""
    type = "INTERNAL"
    code = AuthErrorCodes.INTERNAL
    message = "internal error"
    status_code = 500

    def __init__(self, op: str):
        super().__init__()
        self.op = op

    def __str__(self) -> str:
        return f"{self.op}: {self.__cause__!r}" if self.__cause__ else self.op

class PasswordTooLong(ValueError):
    """Password exceeds the hash algorithm's input ceiling."""

# ---------- Repository ----------
class RepositoryError(Exception):
    """Base class for user repository failures."""

class DuplicateUserError(RepositoryError):
    def __init__(self, field: str):
        super().__init__(f"duplicate user {field}")
        self.field = field

# ---------- Startup ----------
class ConfigError(RuntimeError):
    """Configuration the process cannot start with."""

def taken_error_for(field: str) -> AuthServiceException:
    return UsernameTaken() if field == "username" else EmailTaken()
