# meter_dashboard/routes/auth.py
import logging
from fastapi import APIRouter, Depends, HTTPException, Response
from typing import Dict
from ..config import Settings
from ..db import get_settings
from ..models import LoginIn, RegisterIn
from ..schemas import UserOut
from ..services.auth import current_user, hash_password, issue_session_token, verify_password
from ..services.users import UserStore, get_user_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(body: RegisterIn, users: UserStore = Depends(get_user_store)):
    """
    Create an account. 409 when the email is taken.
    """
    user = await users.create(body.email, body.name, hash_password(body.password))
    logger.info("registered user id=%s", user["id"])
    return {"user": UserOut(**user)}


@router.post("/login")
async def login(
    body: LoginIn,
    response: Response,
    users: UserStore = Depends(get_user_store),
    cfg: Settings = Depends(get_settings),
):
    user = await users.get_by_email(body.email)
    if not user or not verify_password(body.password, user["password_hash"]):
        logger.info("failed sign-in for %s", body.email)
        raise HTTPException(status_code=401, detail="Invalid email or password")

    token = issue_session_token(user, cfg)
    response.set_cookie(
        cfg.SESSION_COOKIE_NAME,
        token,
        max_age=cfg.SESSION_TTL_HOURS * 3600,
        httponly=True,
        samesite="lax",
    )
    return {"user": UserOut(id=user["id"], email=user["email"], name=user.get("name")), "token": token}


@router.post("/logout")
async def logout(response: Response, cfg: Settings = Depends(get_settings)):
    response.delete_cookie(cfg.SESSION_COOKIE_NAME)
    return {"status": "ok"}


@router.get("/me")
async def me(user: Dict = Depends(current_user)):
    return {"user": user}
