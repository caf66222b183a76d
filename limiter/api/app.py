"""
FastAPI application — local distraction limiter API.
Runs on http://127.0.0.1:8766 by default.

Singletons (store, catalog, tracker, orchestrator, bridge) live on app.state
so that each call to create_app() produces a fully independent instance with
no shared module-level globals. Tests pass their own Config pointing at a
temporary data directory.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import Config, config as default_config
from ..core.daily_reset import DailyReset
from ..core.detector import DistractionDetector
from ..core.orchestrator import BlockingOrchestrator
from ..core.tracker import SessionTracker
from ..errors import ErrorType, LimiterError
from ..host.bridge import ExtensionBridge
from ..host.events import EventDispatcher
from ..storage.catalog import Catalog
from ..storage.extensions import ExtensionRepository
from ..storage.notes import NoteRepository
from ..storage.store import DocumentStore
from ..storage.usage import UsageRepository

log = logging.getLogger("limiter.api")

_STATUS_BY_ERROR = {
    ErrorType.VALIDATION: 422,
    ErrorType.NOT_FOUND: 404,
    ErrorType.STORAGE: 503,
    ErrorType.SYSTEM: 500,
}


# ---------------------------------------------------------------------------
# Background daily reset loop
# ---------------------------------------------------------------------------

async def _daily_reset_loop(reset: DailyReset) -> None:
    try:
        await reset.run_forever()
    except asyncio.CancelledError:
        raise
    except Exception:
        log.exception("Daily reset loop crashed")


# ---------------------------------------------------------------------------
# Lifespan — initialises and tears down all per-app state
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    cfg: Config = app.state.config
    clock: Callable[[], float] = app.state.clock

    store = DocumentStore(
        cfg.store_path,
        retry_attempts=cfg.store_retry_attempts,
        retry_backoff_s=cfg.store_retry_backoff_s,
    )
    app.state.store = store
    app.state.catalog = Catalog(store)
    app.state.usage = UsageRepository(store)
    app.state.extensions = ExtensionRepository(store)
    app.state.notes = NoteRepository(store)

    app.state.bridge = ExtensionBridge(clock=clock)
    app.state.detector = DistractionDetector(store)
    app.state.tracker = SessionTracker(
        store, app.state.usage, clock=clock, stale_after_s=cfg.session_stale_s
    )
    app.state.daily_reset = DailyReset(store, clock=clock)
    app.state.orchestrator = BlockingOrchestrator(
        app.state.detector,
        app.state.tracker,
        app.state.catalog,
        app.state.usage,
        app.state.extensions,
        app.state.bridge,
        daily_reset=app.state.daily_reset,
        clock=clock,
        interstitial_url=cfg.interstitial_url,
        tick_interval_s=cfg.tick_interval_s,
        max_restore_notifications=cfg.max_restore_notifications,
    )
    app.state.dispatcher = EventDispatcher(app.state.orchestrator, app.state.bridge)

    # same path as an extension start: load, resume, self-heal
    await app.state.orchestrator.handle_installed("startup")

    reset_task = asyncio.create_task(_daily_reset_loop(app.state.daily_reset))

    yield

    reset_task.cancel()
    try:
        await reset_task
    except asyncio.CancelledError:
        pass
    await app.state.orchestrator.shutdown()


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(cfg: Optional[Config] = None, clock: Callable[[], float] = time.time) -> FastAPI:
    app = FastAPI(
        title="Distraction Limiter",
        description="Local-first usage tracking and daily limit enforcement for distracting sites",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.config = cfg or default_config
    app.state.clock = clock

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["null"],
        allow_origin_regex=r"^(moz-extension|chrome-extension)://.*$",
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LimiterError)
    async def limiter_error(request: Request, exc: LimiterError):
        status = _STATUS_BY_ERROR.get(exc.error_type, 500)
        if status >= 500:
            log.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=status, content={"detail": exc.to_dict()})

    from .routers import events, extensions, groups, host, notes, preferences, sites, state

    app.include_router(state.router)
    app.include_router(events.router)
    app.include_router(host.router)
    app.include_router(sites.router)
    app.include_router(groups.router)
    app.include_router(extensions.router)
    app.include_router(notes.router)
    app.include_router(preferences.router)

    @app.get("/health")
    def health(request: Request):
        detector = getattr(request.app.state, "detector", None)
        tracker = getattr(request.app.state, "tracker", None)
        return {
            "status": "ok",
            "version": "0.1.0",
            "detectorLoaded": bool(detector and detector.loaded),
            "tracking": bool(tracker and tracker.is_tracking()),
        }

    return app


app = create_app()
