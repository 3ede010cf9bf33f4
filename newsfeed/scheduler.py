# newsfeed/scheduler.py
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
import pytz

from .config import TIMEZONE
from .logging_setup import get_logger

logger = get_logger("newsfeed.scheduler")


def _job_listener(event):
    if event.exception:
        # APScheduler already captures traceback; this logs it via our logger too.
        logger.exception(
            "JOB_ERROR",
            extra={"handled": False, "job_id": event.job_id, "run_time": str(event.scheduled_run_time)}
        )
    else:
        # one AutoRefresh job per open feed session, so successes stay at debug
        logger.debug(
            "JOB_OK",
            extra={"job_id": event.job_id, "run_time": str(event.scheduled_run_time)}
        )


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler for this app instance. It binds to the running event
    loop on start(), so it is created inside the lifespan rather than at import.
    """
    scheduler = AsyncIOScheduler(timezone=pytz.timezone(TIMEZONE))
    scheduler.add_listener(_job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
    return scheduler


def start_scheduler(scheduler: AsyncIOScheduler):
    if not scheduler.running:
        scheduler.start()
        logger.info("APScheduler started")


def shutdown_scheduler(scheduler: AsyncIOScheduler, wait: bool = False):
    if scheduler.running:
        scheduler.shutdown(wait=wait)
        logger.info("APScheduler stopped")
