import logging
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse

from taskmanager import config
from taskmanager.database import describe_database, init_db
from taskmanager.errors import register_exception_handlers
from taskmanager.logging_config import configure_logging, install_excepthook
from taskmanager.middleware import (
    FixedWindowRateLimiter,
    RateLimitMiddleware,
    RateLimits,
    RequestLoggingMiddleware,
    SecurityHeadersMiddleware,
)
from taskmanager.routers import auth, tasks
from taskmanager.utils.responses import success

logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"

ENDPOINTS = {
    "auth": {
        "register": "POST /api/auth/register",
        "login": "POST /api/auth/login",
        "profile": "GET /api/auth/profile",
        "updateProfile": "PUT /api/auth/profile",
        "changePassword": "PUT /api/auth/change-password",
    },
    "tasks": {
        "getTasks": "GET /api/tasks",
        "getTask": "GET /api/tasks/:id",
        "createTask": "POST /api/tasks",
        "updateTask": "PUT /api/tasks/:id",
        "deleteTask": "DELETE /api/tasks/:id",
        "toggleTask": "PATCH /api/tasks/:id/toggle",
        "getStats": "GET /api/tasks/stats",
    },
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    init_db()
    logger.info(
        "Task Management API started env=%s port=%s database=%s",
        config.APP_ENV,
        config.PORT,
        describe_database(),
    )
    if not config.JWT_SECRET:
        logger.critical("JWT_SECRET is not set; every token operation will fail")
    yield
    logger.info("Task Management API shutting down")


def create_app(
    rate_limit_max: int = None,
    auth_rate_limit_max: int = None,
    rate_limit_window_seconds: float = None,
) -> FastAPI:
    app = FastAPI(title="Task Management API", version=API_VERSION, lifespan=lifespan)
    app.state.started_at = time.monotonic()

    window = rate_limit_window_seconds or config.RATE_LIMIT_WINDOW_SECONDS
    app.state.rate_limits = RateLimits(
        general=FixedWindowRateLimiter(rate_limit_max or config.RATE_LIMIT_MAX, window),
        auth=FixedWindowRateLimiter(auth_rate_limit_max or config.AUTH_RATE_LIMIT_MAX, window),
    )

    # last added runs first
    app.add_middleware(RateLimitMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials="*" not in config.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    # API routers
    app.include_router(auth.router)
    app.include_router(tasks.router)

    @app.get("/health", tags=["system"])
    def health(request: Request):
        return {
            **success(message="Server is running successfully"),
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "uptime": round(time.monotonic() - request.app.state.started_at, 3),
            "environment": config.APP_ENV,
        }

    @app.get("/api", tags=["system"])
    def api_index():
        return success(
            {"version": API_VERSION, "endpoints": ENDPOINTS, "documentation": "/docs"},
            "Task Management API",
        )

    @app.get("/", response_class=PlainTextResponse, include_in_schema=False)
    def root():
        return "Hello from the Task Management API!"

    return app


app = create_app()


def run():
    configure_logging()
    install_excepthook()
    try:
        uvicorn.run(app, host=config.HOST, port=config.PORT, log_config=None)
    except Exception:
        logger.critical("server stopped on an unexpected error", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
