"""FastAPI server for the status/settings API and the static UI."""

import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware

from .models import PushStatus, camel_to_snake
from .settings_store import coerce_bool
from .status_parser import extract_status_text, parse_usage_line

logger = logging.getLogger(__name__)

# Bookkeeping fields are written by the dispatcher only
BOOKKEEPING_FIELDS = {"last_push_ms", "last_push_status"}


class RequestTimingMiddleware(BaseHTTPMiddleware):
    """Log slow requests and mark every response as uncacheable."""

    def __init__(self, app, config: Optional[dict] = None):
        super().__init__(app)
        self.config = config or {}

        server_timeouts = self.config.get("timeouts", {}).get("server", {})
        self.slow_threshold = server_timeouts.get("slow_request_threshold_seconds", 1.0)

    async def dispatch(self, request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        elapsed = time.monotonic() - start

        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Content-Type-Options"] = "nosniff"

        if elapsed > self.slow_threshold:
            logger.warning(
                f"SLOW REQUEST: {request.method} {request.url.path} "
                f"took {elapsed:.2f}s"
            )
        return response


class StatusResponse(BaseModel):
    """Cached poll outcome plus the current policy."""
    ok: bool
    last_checked_ms: int
    next_check_ms: int
    error: Optional[str] = None
    status: Optional[Dict[str, Any]] = None
    usage: Optional[Dict[str, Any]] = None
    settings: Dict[str, Any]
    check_every_ms: int
    scheduler_state: str


class PushResponse(BaseModel):
    ok: bool = True
    push_enabled: bool
    settings: Dict[str, Any]


class SettingsResponse(BaseModel):
    ok: bool = True
    settings: Dict[str, Any]
    outcomes: Dict[str, str] = {}
    next_check_ms: Optional[int] = None


class ForcedSendResponse(BaseModel):
    ok: bool
    message: Optional[str] = None
    error: Optional[str] = None


async def _read_json_object(request: Request) -> dict:
    """Request body as a dict; anything that isn't a JSON object reads as {}."""
    try:
        payload = await request.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def create_app(
    settings=None,
    dispatcher=None,
    scheduler=None,
    config: Optional[dict] = None,
    lifespan=None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        settings: SettingsStore instance
        dispatcher: NotificationDispatcher instance
        scheduler: PollScheduler instance
        config: Configuration dictionary
        lifespan: Optional ASGI lifespan context manager

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Codex Limits",
        description="Poll Codex usage limits and relay them to a messaging channel",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.config = config or {}
    app.add_middleware(RequestTimingMiddleware, config=config)

    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.scheduler = scheduler

    def _require_settings():
        if not app.state.settings:
            raise HTTPException(status_code=503, detail="Settings store not configured")
        return app.state.settings

    def _require_dispatcher():
        if not app.state.dispatcher:
            raise HTTPException(status_code=503, detail="Dispatcher not configured")
        return app.state.dispatcher

    def _min_wait() -> float:
        return app.state.scheduler.min_wait_seconds if app.state.scheduler else 0

    static_dir = app.state.config.get("paths", {}).get("static_dir")
    serve_static = bool(static_dir) and Path(static_dir).expanduser().is_dir()

    if not serve_static:
        @app.get("/")
        async def root():
            """Health check endpoint."""
            return {"status": "ok", "service": "codex-limits"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.get("/api/status", response_model=StatusResponse)
    async def get_status():
        """
        Return the cached poll result immediately.

        If the cache is older than twice the interval, a background poll is
        started as well; it may overlap the timer-driven poll, in which case
        the dispatcher drops it.
        """
        dispatcher = _require_dispatcher()
        scheduler = app.state.scheduler

        if scheduler and dispatcher.is_stale(min_wait_seconds=_min_wait()):
            scheduler.request_poll("stale", reschedule=False)

        cache = dispatcher.cache
        parsed = parse_usage_line(extract_status_text(cache.status_json)) if cache.status_json else None

        return StatusResponse(
            ok=cache.ok,
            last_checked_ms=cache.last_checked_ms,
            next_check_ms=cache.next_check_ms,
            error=cache.error,
            status=cache.status_json,
            usage=parsed.to_dict() if parsed else None,
            settings=dispatcher.settings.policy.to_dict(),
            check_every_ms=dispatcher.interval_ms(_min_wait()),
            scheduler_state=scheduler.state.value if scheduler else "idle",
        )

    @app.post("/api/push", response_model=PushResponse)
    async def set_push(request: Request):
        """Enable or disable push notifications."""
        settings = _require_settings()
        payload = await _read_json_object(request)
        enabled = coerce_bool(payload.get("enabled"), default=False)

        policy = settings.save({
            "push_enabled": enabled,
            "last_push_status": PushStatus.ENABLED if enabled else PushStatus.DISABLED,
        })
        logger.info(f"Push {'enabled' if enabled else 'disabled'}")
        return PushResponse(push_enabled=policy.push_enabled, settings=policy.to_dict())

    @app.get("/api/settings", response_model=SettingsResponse)
    async def get_settings():
        """Return the current notification policy."""
        settings = _require_settings()
        return SettingsResponse(settings=settings.policy.to_dict())

    @app.post("/api/settings", response_model=SettingsResponse)
    async def update_settings(request: Request):
        """
        Apply a partial policy update.

        Bad values never fail the request; each field's outcome is reported
        as accepted, clamped or rejected. The poll timer is re-armed so an
        interval change applies from the next cycle.
        """
        settings = _require_settings()
        payload = await _read_json_object(request)
        patch = {
            key: value for key, value in payload.items()
            if camel_to_snake(key) not in BOOKKEEPING_FIELDS
        }

        result = settings.apply(patch)
        if result.outcomes:
            logger.info(f"Settings updated: {result.outcome_values()}")

        next_check_ms = None
        if app.state.scheduler:
            app.state.scheduler.schedule_next("settings")
            next_check_ms = app.state.dispatcher.cache.next_check_ms if app.state.dispatcher else None

        return SettingsResponse(
            settings=result.policy.to_dict(),
            outcomes=result.outcome_values(),
            next_check_ms=next_check_ms,
        )

    @app.post("/api/poll-now")
    async def poll_now():
        """Poll immediately and restart the timer chain."""
        if not app.state.scheduler:
            raise HTTPException(status_code=503, detail="Scheduler not configured")
        app.state.scheduler.request_poll("manual")
        return {"ok": True}

    @app.post("/api/test-notification", response_model=ForcedSendResponse)
    async def test_notification():
        """Send the current summary now, bypassing the gate."""
        dispatcher = _require_dispatcher()
        result = await dispatcher.send_test_notification()
        return ForcedSendResponse(**result)

    if serve_static:
        app.mount("/", StaticFiles(directory=str(Path(static_dir).expanduser()), html=True), name="static")

    return app
