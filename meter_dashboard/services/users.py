# meter_dashboard/services/users.py
import logging
from typing import Dict, Optional
from fastapi import Depends
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..db import Stores, get_stores
from ..errors import ConflictError, UpstreamStoreError

logger = logging.getLogger(__name__)


class UserStore:
    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def get_by_email(self, email: str) -> Optional[Dict]:
        try:
            async with self.engine.connect() as conn:
                res = await conn.execute(
                    text("SELECT id, email, name, password_hash FROM users WHERE email = :email LIMIT 1"),
                    {"email": email},
                )
                row = res.mappings().first()
        except SQLAlchemyError as exc:
            raise UpstreamStoreError(f"user lookup failed: {exc}") from exc
        return dict(row) if row else None

    async def create(self, email: str, name: Optional[str], password_hash: str) -> Dict:
        """
        Insert a user. The UNIQUE constraint on email settles concurrent
        registrations; its violation surfaces as ConflictError.
        """
        if await self.get_by_email(email):
            raise ConflictError("Email already registered")
        try:
            async with self.engine.begin() as conn:
                res = await conn.execute(
                    text(
                        "INSERT INTO users (email, name, password_hash) "
                        "VALUES (:email, :name, :password_hash) "
                        "RETURNING id, email, name, created_at"
                    ),
                    {"email": email, "name": name, "password_hash": password_hash},
                )
                row = res.mappings().one()
        except IntegrityError as exc:
            logger.info("duplicate registration for %s lost the insert race", email)
            raise ConflictError("Email already registered") from exc
        except SQLAlchemyError as exc:
            raise UpstreamStoreError(f"user insert failed: {exc}") from exc
        return dict(row)


def get_user_store(stores: Stores = Depends(get_stores)) -> UserStore:
    return UserStore(stores.engine)
