# auth.py - Session authentication and ownership for Productitask
# Features:
# - bcrypt password hashing (cost from settings)
# - Signed HS256 session tokens with a JTI for revocation
# - Token delivered as an HttpOnly cookie; Authorization: Bearer also accepted
# - Password policy enforcement (min 8 chars, a letter and a digit)
# - Brute force protection on login
# - owned_resource() dependency factory for per-user resources

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import EmailStr, Field, field_validator

from config import Settings
from entities import Services
from errors import RateLimitError, UnauthorizedError, UniqueConstraintError
from logging_system import LogCategory, StructuredLogger, get_current_context
from rate_limit import SlidingWindowRateLimiter
from storage import Record
from validation import ApiModel

ALGORITHM = "HS256"
TOKEN_TYPE = "session"
MIN_PASSWORD_LENGTH = 8

bearer_scheme = HTTPBearer(auto_error=False)


# ============================================================
# PYDANTIC SCHEMAS
# ============================================================

class UserRegister(ApiModel):
    email: EmailStr
    password: str = Field(..., max_length=128)
    name: Optional[str] = Field(None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        if len(v) < MIN_PASSWORD_LENGTH:
            raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
        if not any(c.isalpha() for c in v):
            raise ValueError("Password must contain at least one letter")
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one digit")
        return v


class UserLogin(ApiModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserOut(ApiModel):
    id: str
    email: str
    name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


@dataclass
class Session:
    """The authenticated caller of the current request."""
    user: Record
    claims: Dict[str, Any]

    @property
    def jti(self) -> str:
        return self.claims["jti"]

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.claims["exp"], tz=timezone.utc)


# ============================================================
# AUTH SERVICE
# ============================================================

class AuthService:
    """Registration, login, session tokens and revocation."""

    def __init__(self, settings: Settings, services: Services, logger: StructuredLogger):
        self.settings = settings
        self.services = services
        self.logger = logger
        self.login_attempts = SlidingWindowRateLimiter(
            settings.login_max_attempts, settings.login_lockout_minutes * 60,
        )

    # --- passwords ---

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self.settings.bcrypt_rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))

    # --- tokens ---

    def create_session_token(self, user_id: str) -> Tuple[str, Dict[str, Any]]:
        now = datetime.now(timezone.utc)
        claims = {
            "sub": user_id,
            "jti": str(uuid.uuid4()),
            "type": TOKEN_TYPE,
            "iat": now,
            "exp": now + timedelta(minutes=self.settings.session_max_age_minutes),
        }
        return jwt.encode(claims, self.settings.session_secret, algorithm=ALGORITHM), claims

    def verify_token(self, token: str) -> Dict[str, Any]:
        try:
            payload = jwt.decode(token, self.settings.session_secret, algorithms=[ALGORITHM])
        except ExpiredSignatureError:
            raise UnauthorizedError("Session expired")
        except JWTError:
            raise UnauthorizedError("Invalid session")
        if payload.get("type") != TOKEN_TYPE or not payload.get("sub") or not payload.get("jti"):
            raise UnauthorizedError("Invalid session")
        return payload

    async def is_token_revoked(self, jti: str) -> bool:
        return await self.services.revoked_tokens.find_by_id(jti) is not None

    async def revoke(self, session: Session) -> None:
        if await self.is_token_revoked(session.jti):
            return
        await self.services.revoked_tokens.create(None, {
            "id": session.jti,
            "user_id": session.user["id"],
            "expires_at": session.expires_at,
        })
        self.logger.info("Session revoked", category=LogCategory.AUTH, user_id=session.user["id"])
        await self.purge_expired_revocations()

    async def purge_expired_revocations(self, now: Optional[datetime] = None) -> int:
        """Drop revocations whose tokens are past their expiry."""
        now = now or datetime.now(timezone.utc)
        expired = [r["id"] for r in await self.services.revoked_tokens.find() if r["expires_at"] <= now]
        removed = await self.services.revoked_tokens.delete_many(expired)
        if removed:
            self.logger.debug("Expired revocations purged", category=LogCategory.AUTH, metadata={"count": removed})
        return removed

    async def resolve_session(self, token: str) -> Session:
        claims = self.verify_token(token)
        if await self.is_token_revoked(claims["jti"]):
            raise UnauthorizedError("Session has been revoked")
        user = await self.services.users.find_by_id(claims["sub"])
        if user is None:
            raise UnauthorizedError("User not found")
        return Session(user=user, claims=claims)

    # --- accounts ---

    async def register_user(self, data: UserRegister) -> Record:
        email = data.email.lower()
        if await self.services.users.find_one(email=email):
            raise UniqueConstraintError("email")
        user = await self.services.users.create(None, {
            "email": email,
            "name": data.name or email.split("@")[0],
            "password_hash": self.hash_password(data.password),
        })
        self.logger.info("User registered", category=LogCategory.AUTH, user_id=user["id"])
        return user

    async def authenticate_user(self, email: str, password: str) -> Record:
        key = email.lower()
        state = self.login_attempts.check(key)
        if not state.allowed:
            self.logger.security_event("login_locked", metadata={"email": key})
            raise RateLimitError(
                f"Too many login attempts. Try again in {self.settings.login_lockout_minutes} minutes.",
                retry_after=state.retry_after,
            )

        user = await self.services.users.find_one(email=key)
        if user is None or not self.verify_password(password, user["password_hash"]):
            self.login_attempts.record(key)
            self.logger.security_event("login_failed", metadata={"email": key})
            raise UnauthorizedError("Invalid email or password")

        self.login_attempts.reset(key)
        self.logger.info("User logged in", category=LogCategory.AUTH, user_id=user["id"])
        return user

    # --- cookies ---

    def set_session_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            key=self.settings.session_cookie_name,
            value=token,
            max_age=self.settings.session_max_age_minutes * 60,
            httponly=True,
            samesite="lax",
            secure=self.settings.is_production,
            path="/",
        )

    def clear_session_cookie(self, response: Response) -> None:
        response.delete_cookie(
            key=self.settings.session_cookie_name,
            httponly=True,
            samesite="lax",
            secure=self.settings.is_production,
            path="/",
        )


# ============================================================
# FASTAPI DEPENDENCIES
# ============================================================

def get_services(request: Request) -> Services:
    return request.app.state.services


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


async def get_current_session(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    auth: AuthService = Depends(get_auth_service),
) -> Session:
    token = credentials.credentials if credentials else request.cookies.get(auth.settings.session_cookie_name)
    if not token:
        raise UnauthorizedError()
    session = await auth.resolve_session(token)
    context = get_current_context()
    if context is not None:
        context.user_id = session.user["id"]
    return session


async def get_current_user(session: Session = Depends(get_current_session)) -> Record:
    return session.user


def owned_resource(entity: str, param: str = "id"):
    """Dependency factory: load ``entity`` named by the path parameter, answering
    404 unless the caller owns it."""
    async def _load(
        request: Request,
        user: Record = Depends(get_current_user),
        services: Services = Depends(get_services),
    ) -> Record:
        return await services.for_entity(entity).get_owned(request.path_params[param], user["id"])
    return _load
