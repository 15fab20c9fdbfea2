import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import StoreFailure, TaskManagerError
from .logging_setup import setup_logging
from .notifications import get_notifier
from .repositories import get_task_repository, get_user_repository
from .routers import auth as auth_router
from .routers import tasks as tasks_router
from .scheduler import run_reminder_scheduler
from .settings import get_settings, uses_default_jwt_secret

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "auth", "description": "Registration, login and password reset."},
    {
        "name": "tasks",
        "description": "Owner-scoped task lifecycle: create, edit, complete, archive/restore, delete.",
    },
]

_settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Configure logging and run the daily reminder scheduler for the lifetime
    of the app.
    """
    settings = get_settings()
    setup_logging(level=settings.log_level, log_file=settings.log_file)
    if uses_default_jwt_secret(settings):
        logger.warning("JWT_SECRET is not set; using the built-in development secret")

    scheduler = None
    if settings.enable_reminders:
        scheduler = asyncio.create_task(
            run_reminder_scheduler(
                get_task_repository(),
                get_user_repository(),
                get_notifier(),
                hour=settings.reminder_hour,
                minute=settings.reminder_minute,
                tz=settings.tzinfo,
                run_on_startup=settings.reminder_run_on_startup,
            )
        )
    app.state.reminder_scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await scheduler
            logger.info("Reminder scheduler stopped")


app = FastAPI(
    title="Task Manager Backend",
    description="Personal task tracking API with due date reminders.",
    version="0.1.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers for consistent JSON on validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": _jsonable_errors(exc),
        },
    )


def _jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the raised ValueError in ctx, which is not JSON serializable
    out = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        out.append(err)
    return out


@app.exception_handler(TaskManagerError)
async def domain_exception_handler(request: Request, exc: TaskManagerError) -> JSONResponse:
    """
    Render domain errors as {"error": <class name>, "message": <text>}.
    """
    if isinstance(exc, StoreFailure):
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": type(exc).__name__, "message": exc.message},
        headers=headers,
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(auth_router.router)
app.include_router(tasks_router.router)
