# newsfeed/lifespan.py
from contextlib import asynccontextmanager
from fastapi import FastAPI

from .events import bus
from .feed import SessionRegistry
from .logging_setup import get_logger
from .recommender import Recommender
from .scheduler import create_scheduler, start_scheduler, shutdown_scheduler
from .store import init_db

logger = get_logger("newsfeed.lifespan")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ---- Startup ----
    logger.info("APP STARTUP")
    init_db()

    scheduler = create_scheduler()
    start_scheduler(scheduler)
    recommender = Recommender()
    app.state.scheduler = scheduler
    app.state.recommender = recommender
    app.state.sessions = SessionRegistry(recommender.feed_fetcher, scheduler=scheduler, bus=bus)
    logger.info("Scheduler started")

    # Hand control to the application
    yield

    # ---- Shutdown ----
    logger.info("APP SHUTDOWN")
    await app.state.sessions.close_all()
    logger.info("Stopping scheduler")
    shutdown_scheduler(scheduler, wait=False)
