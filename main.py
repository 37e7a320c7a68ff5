import os
import time
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException

from config import Settings, configure_logging
from context import AppContext
from errors import ApiError, error_envelope, field_errors
from routers import api_router

logger = structlog.get_logger(__name__)


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    if context is None:
        settings = Settings.from_env()
        configure_logging(settings.log_level, settings.log_json)
        context = AppContext(settings)
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        context.connect()
        yield
        context.close()

    app = FastAPI(title="VidShare API", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Uploaded media is served straight from the upload directory
    os.makedirs(settings.upload_dir, exist_ok=True)
    app.mount(settings.media_base_url, StaticFiles(directory=settings.upload_dir), name="static")

    register_error_handlers(app)
    app.middleware("http")(log_requests)
    app.include_router(api_router)

    @app.get("/")
    def read_root():
        return {"message": "VidShare backend is running"}

    return app


async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status=response.status_code,
        duration_ms=round((time.perf_counter() - start) * 1000, 2),
    )
    return response


# -------------------- Error handlers --------------------

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.status_code, exc.message, exc.errors),
        )

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content=error_envelope(400, "Validation failed", field_errors(exc.errors())),
        )

    @app.exception_handler(PyMongoError)
    async def database_error_handler(request: Request, exc: PyMongoError):
        logger.error("database_error", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content=error_envelope(500, "Database operation failed"))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.error("unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
        return JSONResponse(status_code=500, content=error_envelope(500, "Internal server error"))


if __name__ == "__main__":
    import uvicorn
    app_settings = Settings.from_env()
    configure_logging(app_settings.log_level, app_settings.log_json)
    uvicorn.run(create_app(AppContext(app_settings)), host="0.0.0.0", port=app_settings.port)
