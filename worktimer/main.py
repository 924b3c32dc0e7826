"""Application factory and top-level wiring.

``create_app`` assembles configuration, logging, database schema, the timer
registry and the API routers. The module-level ``app`` is what uvicorn serves
(``uvicorn worktimer.main:app``).
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import AppSettings, settings as default_settings
from .core.errors import (
    TimerError,
    http_exception_handler,
    timer_error_handler,
    validation_exception_handler,
)
from .core.logging import configure_logging
from .db.migrate import run_migrations
from .db.session import (
    Base,
    SessionLocal,
    build_engine,
    engine as default_engine,
    get_db,
    make_session_factory,
)
from .middlewares import RequestIdMiddleware

# Importing the models registers them with ``Base.metadata``.
from .models import activity as _activity  # noqa: F401
from .models import owner as _owner  # noqa: F401
from .models import task as _task  # noqa: F401
from .models import time_entry as _time_entry  # noqa: F401
from .routers import (
    api_activity,
    api_auth,
    api_owners,
    api_tasks,
    api_time_entries,
    api_timers,
)
from .services.activity import ActivityFeedSink, LoggingEventSink
from .services.registry import TimerRegistry
from .services.session_store import SqlSessionStore


def create_app(
    settings: AppSettings | None = None,
    *,
    engine: Engine | None = None,
    session_factory: Callable[[], Session] | None = None,
    metrics: bool = True,
) -> FastAPI:
    settings = settings or default_settings
    if engine is None:
        if settings.database_url == default_settings.database_url:
            engine = default_engine
        else:
            engine = build_engine(settings.database_url)
    if session_factory is None:
        session_factory = SessionLocal if engine is default_engine else make_session_factory(engine)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(bind=engine)
        run_migrations(engine)
        store = SqlSessionStore(session_factory)
        sink = ActivityFeedSink(session_factory) if settings.ACTIVITY_FEED_ENABLED else LoggingEventSink()
        app.state.event_sink = sink
        app.state.timer_registry = TimerRegistry(store, sink, tick_seconds=settings.TIMER_TICK_SECONDS)
        try:
            yield
        finally:
            await app.state.timer_registry.aclose()

    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.add_middleware(RequestIdMiddleware)
    if settings.ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.ALLOWED_ORIGINS,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    if session_factory is not SessionLocal:
        # Routers depend on ``get_db``; point it at the injected factory.
        def _get_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db

    app.include_router(api_auth.router)
    app.include_router(api_owners.router)
    app.include_router(api_tasks.router)
    app.include_router(api_timers.router)
    app.include_router(api_time_entries.router)
    app.include_router(api_activity.router)

    app.add_exception_handler(TimerError, timer_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    @app.get("/health")
    async def health() -> dict[str, bool]:
        return {"ok": True}

    if metrics:
        Instrumentator().instrument(app).expose(app)

    return app


configure_logging()
app = create_app()
