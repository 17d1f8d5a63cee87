"""
FormSentry API

FastAPI application exposing:
- GET /health → service status
- GET /honeypot → decoy field name to render as a hidden input
- GET /badge → optional "protected by" badge markup
- GET {FORMSENTRY_JS_PREFIX}/formsentry.js → client script for guarded pages
- POST /evaluate → verdict for a JSON request snapshot
- POST /check → verdict for the live form submission itself
- /admin/... → keyword and flag management plus audit statistics
  (requires the X-Admin-Token header)
"""

import asyncio
from contextlib import asynccontextmanager
import hmac
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Header, HTTPException, Query, status, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from redis.exceptions import RedisError

import formsentry
from formsentry.config import LATIN_ONLY_KEY, ConfigProvider, FormSentryConfig, env_number, parse_bool
from formsentry.orchestrator import JS_COOKIE_NAME, RateCounter, ScoringEngine
from formsentry.schemas.inputs import ConfigUpdate, KeywordUpdate, RequestSnapshot
from formsentry.schemas.outputs import (
    EvaluationResult,
    HourStat,
    OriginStat,
    ReasonStat,
    UserAgentStat,
)
from formsentry.state_manager import RateLimiter
from persistence.audit_logger import AuditLogger
from persistence.config_store import RedisConfigStore
from persistence.connection import close_redis_client, get_redis_client
from persistence.rate_store import RedisRateLimiter
from persistence.stats_store import AuditStats, StatsUnavailableError


load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

STATIC_DIR = Path(formsentry.__file__).resolve().parent / "static"
DEFAULT_JS_PREFIX = "/static/js"
JS_PREFIX = "/" + (os.getenv("FORMSENTRY_JS_PREFIX", DEFAULT_JS_PREFIX).strip("/") or DEFAULT_JS_PREFIX.strip("/"))

ADMIN_TOKEN_HEADER = "X-Admin-Token"
ADMIN_CONFIG_KEYS = {LATIN_ONLY_KEY}


# =============================================================================
# Application State
# =============================================================================

class AppState:
    """Application state container."""
    engine: Optional[ScoringEngine] = None
    config_store: Optional[RedisConfigStore] = None
    audit: Optional[AuditLogger] = None
    stats: Optional[AuditStats] = None
    sweeper: Optional[asyncio.Task] = None


state = AppState()


def build_engine() -> ScoringEngine:
    """Wire the engine to Redis/Supabase collaborators when they are reachable."""
    config = FormSentryConfig.from_env()
    config_provider: Optional[ConfigProvider] = None
    rate_limiter: Optional[RateCounter] = None
    state.config_store = None

    try:
        client = get_redis_client()
        store = RedisConfigStore(client)
        store.seed_defaults(latin_only=config.latin_only)
        state.config_store = config_provider = store
        if parse_bool(os.getenv("FORMSENTRY_SHARED_RATE_LIMIT"), False):
            rate_limiter = RedisRateLimiter(window=config.rate_limit_window, client=client)
    except (ValueError, RedisError) as e:
        logger.warning(f"Redis unavailable, using static configuration: {e}")

    state.audit = AuditLogger()
    engine = ScoringEngine(
        config=config,
        config_provider=config_provider,
        audit=state.audit,
        rate_limiter=rate_limiter,
    )
    state.stats = AuditStats(client=state.audit.client, threshold=engine.threshold)
    return engine


# =============================================================================
# Rate Limiter Housekeeping
# =============================================================================

def sweep_rate_limiter(engine: ScoringEngine) -> int:
    """Drop idle origins from the in-memory limiter. Returns how many were removed."""
    if not isinstance(engine.rate_limiter, RateLimiter):
        return 0
    removed = engine.rate_limiter.sweep()
    if removed:
        logger.debug(f"Rate limiter sweep removed {removed} idle origins")
    return removed


async def run_sweeper(engine: ScoringEngine, interval: float) -> None:
    """Sweep periodically until cancelled."""
    while True:
        await asyncio.sleep(interval)
        try:
            sweep_rate_limiter(engine)
        except Exception as e:
            logger.error(f"Rate limiter sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info("Starting FormSentry API...")
    state.engine = build_engine()
    if isinstance(state.engine.rate_limiter, RateLimiter):
        interval = env_number("FORMSENTRY_SWEEP_INTERVAL", state.engine.config.rate_limit_window, float)
        if not interval > 0:
            interval = state.engine.config.rate_limit_window
        state.sweeper = asyncio.create_task(run_sweeper(state.engine, interval))
    logger.info("FormSentry ready")

    yield

    # Shutdown
    logger.info("Shutting down FormSentry API...")
    if state.sweeper is not None:
        state.sweeper.cancel()
        try:
            await state.sweeper
        except asyncio.CancelledError:
            pass
        state.sweeper = None
    if state.audit is not None:
        state.audit.close()
    close_redis_client()


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="FormSentry",
    description="Inline bot classifier for form submissions",
    version=VERSION,
    lifespan=lifespan,
)

app.mount(JS_PREFIX, StaticFiles(directory=STATIC_DIR), name="formsentry-js")


# =============================================================================
# Request Capture
# =============================================================================

def _multi_dict(items) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for key, value in items:
        if isinstance(value, str):
            out.setdefault(key, []).append(value)
    return out


async def capture_snapshot(request: Request) -> RequestSnapshot:
    """Freeze the parts of a live request the engine looks at."""
    form = await request.form()
    headers = request.headers
    return RequestSnapshot(
        origin=request.client.host if request.client else "",
        user_agent=headers.get("user-agent", ""),
        referer=headers.get("referer", ""),
        host=headers.get("host", ""),
        method=request.method,
        path=request.url.path,
        query=_multi_dict(request.query_params.multi_items()),
        form=_multi_dict(form.multi_items()),
        cookie=request.cookies.get(JS_COOKIE_NAME),
        accept=headers.get("accept", ""),
        accept_language=headers.get("accept-language", ""),
        sec_fetch_site=headers.get("sec-fetch-site", ""),
        sec_fetch_mode=headers.get("sec-fetch-mode", ""),
    )


# =============================================================================
# Admin Access
# =============================================================================

def require_admin(x_admin_token: str = Header("", alias=ADMIN_TOKEN_HEADER)) -> None:
    """Reject admin calls unless the header matches FORMSENTRY_ADMIN_TOKEN."""
    expected = os.getenv("FORMSENTRY_ADMIN_TOKEN", "")
    if not expected:
        # No token configured: admin endpoints stay closed
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API disabled"
        )
    if not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        logger.warning("Rejected admin request with invalid token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token"
        )


def _config_store() -> RedisConfigStore:
    if state.config_store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Config store unavailable"
        )
    return state.config_store


def _stats() -> AuditStats:
    if state.stats is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="storage not enabled"
        )
    return state.stats


def _run_stats(query, *args):
    try:
        return query(*args)
    except StatsUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except Exception as e:
        logger.error(f"Stats query failed: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error during stats query"
        )


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "version": VERSION}


@app.get("/honeypot")
async def honeypot():
    """Name of the hidden decoy input for form rendering."""
    return {"field": state.engine.honeypot_field}


@app.get("/badge", response_class=HTMLResponse)
async def badge():
    """Badge markup to embed in guarded pages; empty when disabled."""
    return HTMLResponse(state.engine.badge_html())


@app.post("/evaluate", response_model=EvaluationResult)
def evaluate(snapshot: RequestSnapshot):
    """
    Score a captured request snapshot.

    - Returns blocked, score and the ordered reason list
    - Never fails on malformed signals; they lower the score instead
    """
    try:
        return state.engine.evaluate(snapshot)
    except Exception as e:
        logger.error(f"Evaluate error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error during evaluation"
        )


@app.post("/check", response_model=EvaluationResult)
async def check(request: Request):
    """Score the submitted form itself (form-encoded body)."""
    try:
        snapshot = await capture_snapshot(request)
    except Exception as e:
        logger.warning(f"Unparseable form submission: {e}")
        # Malformed bodies are treated as automated
        return EvaluationResult(blocked=True, score=0, reasons=["malformed_form"])

    try:
        # evaluate() blocks on Redis config reads
        return await run_in_threadpool(state.engine.evaluate, snapshot)
    except Exception as e:
        logger.error(f"Check error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal error during evaluation"
        )


# -----------------------------------------------------------------------------
# Admin: runtime configuration
# -----------------------------------------------------------------------------

@app.get("/admin/keywords", dependencies=[Depends(require_admin)])
def list_keywords():
    """Stored spam keywords (empty when the seed list is in use)."""
    return {"keywords": _config_store().list_keywords()}


@app.post("/admin/keywords", dependencies=[Depends(require_admin)])
def add_keywords(update: KeywordUpdate):
    """Add keywords; returns how many were new."""
    return {"added": _config_store().add_keywords(update.keywords)}


@app.delete("/admin/keywords/{keyword}", dependencies=[Depends(require_admin)])
def remove_keyword(keyword: str):
    if not _config_store().remove_keyword(keyword):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Keyword not found")
    return {"removed": keyword.strip().lower()}


@app.put("/admin/config/{key}", dependencies=[Depends(require_admin)])
def set_config(key: str, update: ConfigUpdate):
    """Set a runtime flag; takes effect on the next evaluation."""
    if key not in ADMIN_CONFIG_KEYS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown config key: {key}")
    if not _config_store().set_config(key, "1" if update.value else "0"):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Config write failed"
        )
    return {"key": key, "value": update.value}


# -----------------------------------------------------------------------------
# Admin: audit statistics
# -----------------------------------------------------------------------------

@app.get("/admin/stats/origins", response_model=List[OriginStat], dependencies=[Depends(require_admin)])
def stats_origins(limit: int = Query(10), spam_only: bool = Query(False)):
    return _run_stats(_stats().top_origins, limit, spam_only)


@app.get("/admin/stats/user-agents", response_model=List[UserAgentStat], dependencies=[Depends(require_admin)])
def stats_user_agents(limit: int = Query(10), spam_only: bool = Query(False)):
    return _run_stats(_stats().top_user_agents, limit, spam_only)


@app.get("/admin/stats/hours", response_model=List[HourStat], dependencies=[Depends(require_admin)])
def stats_hours(limit: int = Query(5), spam_only: bool = Query(False)):
    return _run_stats(_stats().top_hours, limit, spam_only)


@app.get("/admin/stats/hourly", dependencies=[Depends(require_admin)])
def stats_hourly(spam_only: bool = Query(False)):
    """Counts for hours 0..23 (UTC)."""
    return {"counts": _run_stats(_stats().hourly_counts, spam_only)}


@app.get("/admin/stats/reasons", response_model=List[ReasonStat], dependencies=[Depends(require_admin)])
def stats_reasons(limit: int = Query(10), spam_only: bool = Query(False)):
    return _run_stats(_stats().top_reasons, limit, spam_only)


# =============================================================================
# Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
