# newsfeed/exception_handling.py
from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from .errors import NewsfeedError
from .logging_setup import get_logger

# Keep a separate logger namespace for exceptions
logger = get_logger("newsfeed.exceptions")


async def newsfeed_error_handler(request: Request, exc: NewsfeedError):
    # 4xx are caller problems; only server-side failures get a traceback
    fields = {"handled": True, "path": str(request.url.path), "status_code": exc.status_code, "error": type(exc).__name__}
    if exc.status_code >= 500:
        logger.exception("NEWSFEED_ERROR", extra=fields)
    else:
        logger.warning("NEWSFEED_ERROR", extra=fields)
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "HTTP_EXCEPTION",
        extra={"handled": True, "path": str(request.url.path), "status_code": exc.status_code},
    )
    return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(
        "UNHANDLED_EXCEPTION",
        extra={"handled": False, "path": str(request.url.path)},
    )
    return JSONResponse({"detail": "Internal Server Error"}, status_code=500)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register all exception handlers in one place.
    Call from newsfeed/main.py after creating the FastAPI app.
    """
    app.add_exception_handler(NewsfeedError, newsfeed_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
