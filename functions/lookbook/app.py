"""
FastAPI application entry point.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lookbook.config import get_settings
from lookbook.groups import GROUP_COLLECTIONS
from lookbook.routes import debug_router, passthrough_router, router

logger = logging.getLogger(__name__)

# First path segment under the API prefix -> error envelope of that collection.
_BARE_ERROR_SEGMENTS = ("aicards",) + GROUP_COLLECTIONS
_SUCCESS_ERROR_SEGMENTS = ("categories",)


def _error_content(path: str, message: str) -> dict:
    """Error body in the envelope the endpoint at `path` uses."""
    if path.rstrip("/") == "/addJsonData":
        return {"success": False, "error": message}
    prefix = get_settings().api_prefix.rstrip("/")
    if path.startswith(prefix + "/"):
        segment = path[len(prefix) + 1 :].split("/", 1)[0]
        if segment in _BARE_ERROR_SEGMENTS:
            return {"error": message}
        if segment in _SUCCESS_ERROR_SEGMENTS:
            return {"success": False, "error": message}
    return {"ok": False, "error": message}


async def _invalid_request(request: Request, exc: RequestValidationError):
    logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc.errors())
    return JSONResponse(
        status_code=400,
        content=_error_content(request.url.path, "Invalid request body"),
    )


async def _unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_content(request.url.path, "Internal server error"),
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)

    app = FastAPI(title="Lookbook API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, _invalid_request)
    app.add_exception_handler(Exception, _unexpected_error)

    app.include_router(router, prefix=settings.api_prefix)
    if settings.enable_debug_routes:
        app.include_router(debug_router, prefix=settings.api_prefix)
    app.include_router(passthrough_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=get_settings().port)
