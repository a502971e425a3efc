"""FastAPI HTTP server for the sanctuary backend.

Endpoints (JSON in/out, CORS open to any origin):

    GET  /health                  -> {"status": "ok", ...}
    GET  /quota/{user_id}         -> today's allowance for a user
    GET  /embed?url=...           -> embeddable player URL for a content URL
    POST /sessions                <- {"user_id": "...", "search_query": "..."}
    POST /sessions/{id}/duration  <- {"elapsed_seconds": 30}
    POST /sessions/{id}/end       <- {"elapsed_seconds": 95, "was_auto_stopped": false}
    POST /fallback                <- {"url": "...", "user_id": "...", "remaining_seconds": 600}
    POST /browser                 <- {"action": "scrape", "url": "...", "selectors": [...]}
"""

from __future__ import annotations

import base64
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import AsyncIterator, Iterator

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sanctuary import quota
from sanctuary.browser.base import BrowserError, HeadlessBrowser
from sanctuary.config.settings import ConfigurationError, Settings
from sanctuary.domain.models import (
    BrowserAction,
    Downloaded,
    Error,
    FallbackOutcome,
    ScrapeSelector,
    ScreenshotOnly,
    Unavailable,
)
from sanctuary.embed import is_known_embeddable, resolve_embed_url
from sanctuary.fallback.messages import MSG_ALLOWANCE_USED
from sanctuary.fallback.service import FallbackService
from sanctuary.ledger.base import (
    LedgerError,
    ProfileNotFoundError,
    SessionClosedError,
    SessionLedger,
    SessionNotFoundError,
)
from sanctuary.ledger.tracker import ViewingSessionTracker
from sanctuary.storage.base import ObjectStorage
from sanctuary.storage.memory import MemoryStorage

logger = logging.getLogger(__name__)

MSG_LEDGER_UNAVAILABLE = "We couldn't save your session just now. Please try again in a moment."


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class SessionStartRequest(BaseModel):
    user_id: str = Field(min_length=1)
    search_query: str = Field(default="")


class SessionStartResponse(BaseModel):
    can_watch: bool
    session_id: str | None = None
    remaining_seconds: int = 0
    reply: str = ""


class DurationRequest(BaseModel):
    elapsed_seconds: int = Field(ge=0)


class SessionEndRequest(BaseModel):
    elapsed_seconds: int = Field(ge=0)
    was_auto_stopped: bool = False


class QuotaResponse(BaseModel):
    user_id: str
    current_day: int
    allowed_minutes: int
    used_seconds: int
    remaining_seconds: int
    remaining_minutes: int
    program_complete: bool


class EmbedResponse(BaseModel):
    url: str
    embed_url: str
    known_embeddable: bool


class FallbackRequest(BaseModel):
    url: str = Field(default="")
    user_id: str = Field(default="")
    remaining_seconds: int | None = Field(default=None, description="Client's view; informational only")


class FallbackResponse(BaseModel):
    can_watch: bool
    type: str
    reply: str
    remaining_minutes: int | None = None
    play_url: str | None = None
    expires_in: int | None = None
    screenshot_url: str | None = None
    error_code: str | None = None


class BrowserRequest(BaseModel):
    action: str
    url: str
    selectors: list[ScrapeSelector] | None = None
    waitFor: str | None = None


class HealthResponse(BaseModel):
    status: str = "ok"
    fallback_configured: bool = False


ERROR_STATUS = {
    "invalid_request": 400,
    "profile_not_found": 404,
    "not_configured": 503,
}


def to_fallback_response(outcome: FallbackOutcome) -> FallbackResponse:
    """Flatten a fallback outcome into the client-facing JSON shape."""
    if isinstance(outcome, Downloaded):
        return FallbackResponse(
            can_watch=True,
            type=outcome.kind,
            reply=outcome.message,
            remaining_minutes=_minutes(outcome.remaining_seconds),
            play_url=outcome.play_url,
            expires_in=outcome.expires_in_seconds,
        )
    if isinstance(outcome, ScreenshotOnly):
        return FallbackResponse(
            can_watch=False,
            type=outcome.kind,
            reply=outcome.message,
            remaining_minutes=_minutes(outcome.remaining_seconds),
            screenshot_url=outcome.screenshot_url,
        )
    if isinstance(outcome, Unavailable):
        return FallbackResponse(
            can_watch=False,
            type=outcome.kind,
            reply=outcome.message,
            remaining_minutes=_minutes(outcome.remaining_seconds),
        )
    return FallbackResponse(can_watch=False, type=outcome.kind, reply=outcome.message, error_code=outcome.code)


def _minutes(seconds: int) -> int:
    return -(-seconds // 60)


# ---------------------------------------------------------------------------
# Collaborator construction
# ---------------------------------------------------------------------------

def build_ledger(settings: Settings) -> SessionLedger:
    from sanctuary.ledger.sql import SqlSessionLedger

    return SqlSessionLedger.from_url(settings.database.url, echo=settings.database.echo)


def build_storage(settings: Settings) -> ObjectStorage:
    """Create the configured storage backend.

    Raises:
        ConfigurationError: If Supabase is selected without URL and key.
    """
    if settings.storage.backend == "memory":
        logger.warning("Using in-memory object storage; signed URLs are not servable")
        return MemoryStorage(bucket=settings.storage.bucket)
    service_key = settings.supabase_service_key.get_secret_value()
    if not settings.storage.supabase_url or not service_key:
        raise ConfigurationError("Supabase storage requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY")
    from sanctuary.storage.supabase import SupabaseStorage

    return SupabaseStorage(
        project_url=settings.storage.supabase_url,
        service_key=service_key,
        bucket=settings.storage.bucket,
        timeout=settings.storage.timeout,
    )


def build_browser(settings: Settings) -> HeadlessBrowser | None:
    """Create the headless browser, or None when no credential is set."""
    api_key = settings.browserless_api_key.get_secret_value()
    if not api_key:
        logger.error("BROWSERLESS_API_KEY is not configured; fallback viewing is disabled")
        return None
    from sanctuary.browser.browserless import BrowserlessBrowser

    return BrowserlessBrowser(
        api_key=api_key,
        base_url=settings.browser.base_url,
        timeout=settings.browser.request_timeout,
        navigation_timeout_ms=settings.browser.navigation_timeout_ms,
        wait_for_ms=settings.browser.wait_for_ms,
    )


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Settings | None = None,
    ledger: SessionLedger | None = None,
    storage: ObjectStorage | None = None,
    browser: HeadlessBrowser | None = None,
    fallback: FallbackService | None = None,
) -> FastAPI:
    """Create the API application.

    Collaborators not passed in are built from ``settings``; required
    configuration is validated here, once, rather than per request.

    Args:
        settings: Application settings. Defaults to ``Settings()``.
        ledger: Optional pre-built ledger (for testing).
        storage: Optional pre-built object storage (for testing).
        browser: Optional pre-built headless browser (for testing).
        fallback: Optional pre-built fallback service (for testing).
    """
    settings = settings or Settings()
    if ledger is None:
        ledger = build_ledger(settings)
    if fallback is None:
        if storage is None:
            storage = build_storage(settings)
        if browser is None:
            browser = build_browser(settings)
        fallback = FallbackService(
            browser=browser,
            storage=storage,
            ledger=ledger,
            config=settings.fallback,
            browser_timeout=settings.browser.request_timeout,
        )
    tracker = ViewingSessionTracker(
        ledger,
        persist_interval=settings.timer.persist_interval,
        warning_threshold=settings.timer.warning_threshold,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("API started (fallback configured: %s)", app.state.fallback.is_configured)
        yield
        await app.state.fallback.aclose()
        if app.state.browser is not None:
            await app.state.browser.disconnect()
        if app.state.storage is not None:
            await app.state.storage.close()
        logger.info("API stopped")

    app = FastAPI(
        title="sanctuary API",
        description="Viewing allowance, session ledger and fallback delivery",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.settings = settings
    app.state.ledger = ledger
    app.state.storage = storage
    app.state.browser = browser
    app.state.fallback = fallback
    app.state.tracker = tracker

    @app.get("/health")
    async def health_check() -> HealthResponse:
        return HealthResponse(status="ok", fallback_configured=app.state.fallback.is_configured)

    @app.get("/quota/{user_id}")
    def get_quota(user_id: str) -> QuotaResponse:
        try:
            profile = app.state.ledger.get_profile(user_id)
        except ProfileNotFoundError:
            raise HTTPException(status_code=404, detail="Profile not found")
        except LedgerError as e:
            logger.warning("Quota lookup failed for %s: %s", user_id, e)
            raise HTTPException(status_code=503, detail=MSG_LEDGER_UNAVAILABLE)
        used = profile.total_watch_time_today_seconds
        return QuotaResponse(
            user_id=user_id,
            current_day=quota.clamp_day(profile.current_day),
            allowed_minutes=quota.allowed_minutes(profile.current_day),
            used_seconds=used,
            remaining_seconds=quota.remaining_seconds(profile.current_day, used),
            remaining_minutes=quota.remaining_minutes(profile.current_day, used),
            program_complete=quota.is_program_complete(profile.current_day),
        )

    @app.get("/embed")
    async def get_embed(url: str) -> EmbedResponse:
        return EmbedResponse(url=url, embed_url=resolve_embed_url(url), known_embeddable=is_known_embeddable(url))

    @app.post("/sessions")
    def start_session(request: SessionStartRequest) -> SessionStartResponse:
        t: ViewingSessionTracker = app.state.tracker
        try:
            remaining = t.remaining_seconds(request.user_id)
            if remaining <= 0:
                return SessionStartResponse(can_watch=False, reply=MSG_ALLOWANCE_USED)
            session_id = t.ledger.create_session(request.user_id, request.search_query)
        except ProfileNotFoundError:
            raise HTTPException(status_code=404, detail="Profile not found")
        except LedgerError as e:
            logger.warning("Could not open session for %s: %s", request.user_id, e)
            raise HTTPException(status_code=503, detail=MSG_LEDGER_UNAVAILABLE)
        return SessionStartResponse(can_watch=True, session_id=session_id, remaining_seconds=remaining)

    @app.post("/sessions/{session_id}/duration")
    def update_duration(session_id: str, request: DurationRequest) -> dict[str, str]:
        with _ledger_errors(session_id):
            app.state.ledger.update_duration(session_id, request.elapsed_seconds)
        return {"status": "ok"}

    @app.post("/sessions/{session_id}/end")
    def end_session(session_id: str, request: SessionEndRequest) -> dict[str, str | int]:
        t: ViewingSessionTracker = app.state.tracker
        with _ledger_errors(session_id):
            total = t.record_end(session_id, request.elapsed_seconds, request.was_auto_stopped)
        return {"status": "ok", "total_watch_time_today": total}

    @app.post("/fallback")
    async def acquire_fallback(request: FallbackRequest) -> JSONResponse:
        try:
            outcome = await app.state.fallback.acquire(
                request.url, request.user_id, request.remaining_seconds
            )
        except LedgerError as e:
            logger.warning("Fallback quota check failed: %s", e)
            raise HTTPException(status_code=503, detail=MSG_LEDGER_UNAVAILABLE)
        status = ERROR_STATUS.get(outcome.code, 500) if isinstance(outcome, Error) else 200
        return JSONResponse(status_code=status, content=to_fallback_response(outcome).model_dump())

    @app.post("/browser")
    async def browser_action(request: BrowserRequest) -> JSONResponse:
        b: HeadlessBrowser | None = app.state.browser
        try:
            action = BrowserAction(request.action)
        except ValueError:
            return JSONResponse(
                status_code=400,
                content={"success": False, "error": f"Unknown action: {request.action}"},
            )
        if b is None:
            return JSONResponse(
                status_code=503,
                content={"success": False, "error": "Headless browser is not configured"},
            )
        try:
            if action is BrowserAction.SCREENSHOT:
                png = await b.screenshot(request.url)
                encoded = base64.b64encode(png).decode("ascii")
                return JSONResponse({"success": True, "screenshot": f"data:image/png;base64,{encoded}"})
            if action is BrowserAction.CONTENT:
                return JSONResponse({"success": True, "html": await b.content(request.url)})
            elements = await b.scrape(request.url, request.selectors, wait_for=request.waitFor)
            return JSONResponse({"success": True, "data": [e.model_dump() for e in elements]})
        except BrowserError as e:
            logger.warning("Browser %s for %s failed: %s", action.value, request.url, e)
            return JSONResponse(status_code=502, content={"success": False, "error": str(e)})

    return app


@contextmanager
def _ledger_errors(session_id: str) -> Iterator[None]:
    """Map ledger exceptions for a session route onto HTTP errors."""
    try:
        yield
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail="Session not found") from e
    except SessionClosedError as e:
        raise HTTPException(status_code=409, detail="Session already ended") from e
    except LedgerError as e:
        logger.warning("Ledger write for session %s failed: %s", session_id, e)
        raise HTTPException(status_code=503, detail=MSG_LEDGER_UNAVAILABLE) from e


def main() -> None:
    """Entry point for running the API server standalone."""
    from sanctuary.config.settings import load_settings
    from sanctuary.utils.logging import setup_logging

    settings = load_settings()
    setup_logging(settings.logging)
    app = create_app(settings)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port)


if __name__ == "__main__":
    main()
