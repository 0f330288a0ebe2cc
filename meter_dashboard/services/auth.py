# meter_dashboard/services/auth.py
import base64
import hashlib
import hmac
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request

from ..config import Settings
from ..db import get_settings

HASH_ALGORITHM = "pbkdf2_sha256"
HASH_ITERATIONS = 390000
JWT_ALGORITHM = "HS256"


def hash_password(password: str, iterations: int = HASH_ITERATIONS) -> str:
    salt = secrets.token_bytes(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, iterations)
    return "$".join([
        HASH_ALGORITHM,
        str(iterations),
        base64.b64encode(salt).decode("ascii"),
        base64.b64encode(digest).decode("ascii"),
    ])


def verify_password(password: str, password_hash: str) -> bool:
    try:
        algorithm, iterations, salt_b64, digest_b64 = password_hash.split("$")
        salt = base64.b64decode(salt_b64)
        expected = base64.b64decode(digest_b64)
        rounds = int(iterations)
    except (ValueError, TypeError, AttributeError):
        return False
    if algorithm != HASH_ALGORITHM:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, rounds)
    return hmac.compare_digest(digest, expected)


def issue_session_token(user: Dict, cfg: Settings) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": str(user["id"]),
            "email": user["email"],
            "name": user.get("name"),
            "iat": now,
            "exp": now + timedelta(hours=cfg.SESSION_TTL_HOURS),
        },
        cfg.SESSION_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def decode_session_token(token: str, cfg: Settings) -> Optional[Dict]:
    try:
        payload = jwt.decode(token, cfg.SESSION_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    return {"id": payload["sub"], "email": payload.get("email"), "name": payload.get("name")}


def _token_from_request(request: Request, cfg: Settings) -> Optional[str]:
    token = request.cookies.get(cfg.SESSION_COOKIE_NAME)
    if token:
        return token
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return None


async def current_user(request: Request, cfg: Settings = Depends(get_settings)) -> Dict:
    """Session user for protected routes; 401 when signed out."""
    token = _token_from_request(request, cfg)
    user = decode_session_token(token, cfg) if token else None
    if not user or not user.get("id"):
        raise HTTPException(status_code=401, detail="Not signed in")
    return user
