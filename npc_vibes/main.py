"""FastAPI application entrypoint."""

import asyncio
import contextlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from npc_vibes.api.health import router as health_router
from npc_vibes.api.host import router as host_router
from npc_vibes.api.vibes import router as vibes_router
from npc_vibes.config import settings
from npc_vibes.core.errors import StoreWriteError
from npc_vibes.core.logging import get_logger, setup_logging
from npc_vibes.db.database import SessionLocal, init_db
from npc_vibes.runtime import VibeRuntime, build_runtime

setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


def flush_once(runtime: VibeRuntime) -> bool:
    """pump 1회. 어떤 예외든 로그만 남기고 False."""
    try:
        return runtime.store.pump()
    except Exception:
        logger.exception("Background flush failed")
        return False


async def flush_loop(runtime: VibeRuntime, interval: float) -> None:
    """주기적으로 저장소 pump. 조용한 구간 판단은 저장소가 한다."""
    while True:
        await asyncio.sleep(interval)
        flush_once(runtime)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    logger.info("Creating database tables...")
    init_db()
    logger.info("Database tables created.")

    logger.info("Building vibes runtime...")
    db_session = SessionLocal()
    runtime = build_runtime(settings, db_session=db_session)
    app.state.runtime = runtime
    logger.info("Vibes runtime initialized.")

    flusher = asyncio.create_task(
        flush_loop(runtime, settings.FLUSH_INTERVAL_SECONDS)
    )

    yield

    logger.info("Shutting down...")
    flusher.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await flusher
    try:
        runtime.shutdown()
    except StoreWriteError as e:
        logger.error(f"Final save failed: {e}")
    finally:
        db_session.close()


app = FastAPI(title="NPC Vibes", lifespan=lifespan)

app.include_router(health_router)
app.include_router(host_router)
app.include_router(vibes_router)
