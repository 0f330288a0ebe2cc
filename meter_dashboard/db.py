# meter_dashboard/db.py
from dataclasses import dataclass
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from .config import Settings, settings


@dataclass
class Stores:
    """Process-wide store handles, opened once in the app lifespan."""
    engine: AsyncEngine
    mongo: AsyncIOMotorClient
    db: AsyncIOMotorDatabase
    settings: Settings

    @property
    def audio_items(self):
        return self.db[self.settings.AUDIO_EVENTS_COLLECTION]


USERS_DDL = """
CREATE TABLE IF NOT EXISTS users (
    id SERIAL PRIMARY KEY,
    email TEXT UNIQUE NOT NULL,
    name TEXT,
    password_hash TEXT NOT NULL,
    created_at TIMESTAMPTZ DEFAULT NOW()
)
"""


def open_stores(cfg: Settings = settings) -> Stores:
    engine = create_async_engine(cfg.DATABASE_URL, pool_pre_ping=True)
    client = AsyncIOMotorClient(cfg.MONGODB_URI)
    return Stores(engine=engine, mongo=client, db=client[cfg.DATABASE_NAME], settings=cfg)


async def close_stores(stores: Stores) -> None:
    await stores.engine.dispose()
    stores.mongo.close()


async def create_tables(stores: Stores) -> None:
    # event tables are owned by the ingestion pipelines; only users lives here
    async with stores.engine.begin() as conn:
        await conn.execute(text(USERS_DDL))


def get_stores(request: Request) -> Stores:
    return request.app.state.stores


def get_settings() -> Settings:
    return settings
