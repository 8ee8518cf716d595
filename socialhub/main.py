"""
SocialHub API application factory.

Routes:
    /api/auth   register, login, current account, admin status toggle
    /api/users  profiles, follow graph, pictures, search, admin listing/roles
    /api/post   posts, likes, comments, timeline, search
    /uploads    uploaded images (static)
    /health     liveness check
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

from .config import settings
from .database import close_client, ensure_indexes, get_db
from .exceptions import DatabaseError, SocialHubError
from .middleware.logging import RequestLoggingMiddleware
from .middleware.request_id import RequestIDMiddleware, request_id_var
from .routes import auth, posts, users
from .utils.uploads import URL_PREFIX

logger = logging.getLogger(__name__)


def setup_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # both log every request / heartbeat on their own
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("pymongo").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging()
    logger.info("SocialHub API starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))

    Path(settings.upload_dir).mkdir(parents=True, exist_ok=True)
    ensure_indexes(get_db())
    logger.info("Upload directory: %s", Path(settings.upload_dir).resolve())

    yield

    logger.info("SocialHub API shutting down...")
    close_client()


def _error_response(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    content = {"error": error, "message": message, "request_id": request_id_var.get("")}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SocialHubError)
    async def handle_app_error(request: Request, exc: SocialHubError):
        if exc.status_code >= 500:
            logger.error("[%s] %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
            return _error_response(
                exc.status_code,
                exc.error_code,
                "An internal error occurred. Please try again later.",
            )
        if exc.status_code == 400:
            return _error_response(exc.status_code, exc.error_code, exc.message, details=exc.context)
        return _error_response(exc.status_code, exc.error_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = [
            {"loc": [str(part) for part in err.get("loc", ())], "msg": err.get("msg", "")}
            for err in exc.errors()
        ]
        message = errors[0]["msg"] if errors else "Validation failed"
        return _error_response(400, "validation_error", message, details={"errors": errors})

    @app.exception_handler(PyMongoError)
    async def handle_database_error(request: Request, exc: PyMongoError):
        logger.error("[%s] Database error: %s", request_id_var.get(""), exc, exc_info=True)
        error = DatabaseError()
        return _error_response(error.status_code, error.error_code, error.message)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True)
        return _error_response(
            500, "internal_server_error", "An unexpected error occurred. Please try again later."
        )


def create_app() -> FastAPI:
    app = FastAPI(
        title="SocialHub API",
        description="Accounts, follow graph, posts, likes and comments.",
        version="1.0.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials="*" not in settings.cors_origins_list,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(posts.router)
    app.mount(URL_PREFIX, StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    @app.get("/health")
    def health_check():
        return {"status": "ok"}

    return app


app = create_app()
