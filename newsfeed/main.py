# newsfeed/main.py
from fastapi import FastAPI

from .logging_setup import setup_logging, get_logger
from .middleware import RequestContextMiddleware
from .exception_handling import register_exception_handlers
from .lifespan import lifespan

from .routers import articles, digest, feed, feedback, health, mood, recommendations

setup_logging()  # <-- set up logging ASAP
logger = get_logger("newsfeed.main")

app = FastAPI(title="Newsfeed", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestContextMiddleware)

register_exception_handlers(app)

# Include routers
app.include_router(health.router)
app.include_router(articles.router)
app.include_router(feedback.router)
app.include_router(recommendations.router)
app.include_router(mood.router)
app.include_router(feed.router)
app.include_router(digest.router)
