# meter_dashboard/main.py
import logging
import uvicorn
from fastapi import FastAPI
from contextlib import asynccontextmanager
from .db import open_stores, close_stores, create_tables
from .config import settings
from .errors import register_error_handlers
from .routes import audio_events, auth, events
from .utils.logger import setup_logger
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

setup_logger(level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup
    app.state.stores = open_stores(settings)
    await create_tables(app.state.stores)
    logger.info("stores ready (postgres + mongo db=%s)", settings.DATABASE_NAME)
    yield
    # shutdown
    await close_stores(app.state.stores)
    logger.info("stores closed")

app = FastAPI(title="Meter Events Dashboard", version="1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(auth.router)
app.include_router(events.router)
app.include_router(audio_events.router)


@app.get("/health")
async def health():
    return JSONResponse({"status": "ok"})

if __name__ == "__main__":
    uvicorn.run("meter_dashboard.main:app", host=settings.HOST, port=settings.PORT, reload=True)
