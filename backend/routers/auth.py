# routers/auth.py - Session endpoints: register, login, logout, current user
from fastapi import APIRouter, Depends, Response

from auth import (
    AuthService, Session, UserLogin, UserOut, UserRegister,
    get_auth_service, get_current_session, get_current_user,
)
from responses import Envelope, MessageOut, ok
from storage import Record

router = APIRouter(prefix="/api/auth", tags=["Authentication"])


@router.post("/register", response_model=Envelope[UserOut], status_code=201)
async def register(
    data: UserRegister,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    """Create an account and start a session"""
    user = await auth.register_user(data)
    token, _ = auth.create_session_token(user["id"])
    auth.set_session_cookie(response, token)
    return ok(user)


@router.post("/login", response_model=Envelope[UserOut])
async def login(
    credentials: UserLogin,
    response: Response,
    auth: AuthService = Depends(get_auth_service),
):
    user = await auth.authenticate_user(credentials.email, credentials.password)
    token, _ = auth.create_session_token(user["id"])
    auth.set_session_cookie(response, token)
    return ok(user)


@router.post("/logout", response_model=Envelope[MessageOut])
async def logout(
    response: Response,
    session: Session = Depends(get_current_session),
    auth: AuthService = Depends(get_auth_service),
):
    """Revoke the current session token and clear the cookie"""
    await auth.revoke(session)
    auth.clear_session_cookie(response)
    return ok({"message": "Logged out"})


@router.get("/user", response_model=Envelope[UserOut])
async def current_user(user: Record = Depends(get_current_user)):
    return ok(user)
