import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import FastAPI

from app.config import settings
from app.database import SessionLocal, engine, init_db
from app.fetcher import FetcherService
from app.routes.articles import router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    logger.info("Creating database tables if they don't exist...")
    init_db(engine)

    task = None
    if settings.ENABLE_BACKGROUND_FETCH:
        logger.info("Starting background RSS fetcher...")
        task = asyncio.create_task(FetcherService().run(SessionLocal))

    yield

    # --- Shutdown ---
    if task is not None:
        logger.info("Shutting down background fetcher...")
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    engine.dispose()


app = FastAPI(
    title="News Recommendation API",
    description="Ranks RSS articles by a decaying profile of the reader's clicks and votes.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(router)
