from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Protocol
from pydantic import BaseModel, ConfigDict, Field, constr

# ---------- Unified Wire Format (UWF) ----------
class ErrorPayload(BaseModel):
    type: Literal["AUTH_ERROR", "VALIDATION", "CONFLICT", "INTERNAL"]
    code: constr(strip_whitespace=True, min_length=1)
    message: constr(strip_whitespace=True, min_length=1)
    details: Optional[Dict[str, Any]] = None

class MetaPayload(BaseModel):
    trace_id: Optional[str] = None
    request_id: Optional[str] = None
    mode: Optional[str] = None

class UWFResponse(BaseModel):
    ok: bool
    result: Optional[Any] = None
    error: Optional[ErrorPayload] = None
    meta: MetaPayload = Field(default_factory=MetaPayload)

# ---------- Domain Models ----------
class User(BaseModel):
    """Safe-to-expose view of a user. Never carries the password hash."""
    id: int
    username: str
    email: str
    is_admin: bool = False
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

class UserRecord(BaseModel):
    """Persisted user row. Only repositories and the auth service handle it."""
    id: Optional[int] = None  # assigned by storage on create
    username: str
    email: str
    password_hash: str = Field(repr=False)
    is_admin: bool = False
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def to_public(self) -> User:
        if self.id is None:
            raise ValueError("user record has not been persisted")
        return User(
            id=self.id,
            username=self.username,
            email=self.email,
            is_admin=self.is_admin,
            last_login_at=self.last_login_at,
            created_at=self.created_at,
        )

class TokenPair(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    refresh_token: str
    token_type: Literal["Bearer"] = "Bearer"
    expires_in: int  # seconds

class AuthResult(BaseModel):
    user: User
    tokens: TokenPair

class Principal(BaseModel):
    """Identity attached to an authenticated request."""
    model_config = ConfigDict(frozen=True)

    user_id: int
    username: Optional[str] = None
    is_admin: bool = False
    mode: Literal["online", "local"] = "online"

class TokenClaims(BaseModel):
    sub: str
    username: str
    adm: bool = False
    typ: Literal["access", "refresh"]
    iat: int
    exp: int
    jti: str

# ---------- Ports (Contracts) ----------
class PasswordHasherPort(Protocol):
    def hash(self, password: str) -> str: ...
    def verify(self, encoded: str, password: str) -> bool: ...

class TokenManagerPort(Protocol):
    """
    Issues an access/refresh pair for an existing user.
    TTLs and keys are fixed at construction, never per call.
    """
    async def generate_tokens(self, user: User) -> TokenPair: ...
    def verify(self, token: str, expected_type: str = "access") -> TokenClaims: ...

class UserRepoPort(Protocol):
    """
    User persistence. Lookups return None when nothing matches.
    ``create`` assigns the id and raises DuplicateUserError when a unique
    constraint rejects the row.
    """
    async def find_by_email(self, email: str) -> Optional[UserRecord]: ...
    async def find_by_username(self, username: str) -> Optional[UserRecord]: ...
    async def find_by_id(self, user_id: int) -> Optional[UserRecord]: ...
    async def create(self, user: UserRecord) -> UserRecord: ...
    async def update(self, user: UserRecord) -> None: ...
    async def change_id(self, user_id: int, new_id: int) -> None: ...

class ClockPort(Protocol):
    def now_utc(self) -> datetime: ...

# ---------- Service I/O ----------
class RegisterRequest(BaseModel):
    username: constr(strip_whitespace=True, min_length=1, max_length=64)
    email: constr(strip_whitespace=True, min_length=3, max_length=255)
    password: str = Field(min_length=1, repr=False)

class LoginRequest(BaseModel):
    email: constr(strip_whitespace=True, min_length=1)
    password: str = Field(min_length=1, repr=False)

class RefreshRequest(BaseModel):
    refresh_token: str = Field(min_length=1, repr=False)

class MeResponse(BaseModel):
    principal: Principal
    user: Optional[User] = None

# ---------- Errors ----------
class AuthErrorCodes:
    EMAIL_TAKEN = "EMAIL_TAKEN"
    USERNAME_TAKEN = "USERNAME_TAKEN"
    INVALID_LOGIN = "INVALID_LOGIN"
    INVALID_TOKEN = "INVALID_TOKEN"
    INTERNAL = "INTERNAL"
