"""FastAPI app: dashboard, email detail, priority queue, analytics and settings endpoints."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import triage_core

from . import config
from .data_reader import get_file_info, load_json
from .item_store import ItemStore
from .kpi_engine import compute_dashboard, compute_distribution, format_received_human
from .queue_engine import ProcessingScheduler, QueueSnapshot
from .runner import QueueRunner
from .settings_store import SETTING_KEYS, load_settings, update_setting

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)

_store = ItemStore()
_engine: ProcessingScheduler | None = None
_runner: QueueRunner | None = None


def get_engine() -> ProcessingScheduler:
    """Return the process-wide engine, building it on first use."""
    global _engine
    if _engine is None:
        settings = load_settings()
        _engine = ProcessingScheduler(
            _store.queue_items,
            cadence_seconds=settings.cadence_seconds,
            process_seconds=settings.process_seconds,
        )
    return _engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _runner
    engine = get_engine()
    if config.AUTO_START:
        engine.start()
    _runner = QueueRunner(engine)
    _runner.start()
    try:
        yield
    finally:
        _runner.stop()
        _runner = None


app = FastAPI(title="Support Triage Dashboard API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


# Disable caching for all responses
@app.middleware("http")
async def disable_cache(request: Request, call_next):
    response = await call_next(request)
    response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
    response.headers["Pragma"] = "no-cache"
    response.headers["Expires"] = "0"
    return response


# ── Global exception handler ──
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s", request.url)
    return JSONResponse(
        status_code=500,
        content={"error": str(exc), "detail": "Internal server error"},
    )


# ── Queue payload ──

def _queue_row(engine: ProcessingScheduler, row) -> dict[str, Any]:
    email = engine.get_item(row.id)
    return {
        "id": row.id,
        "subject": email.subject if email else "",
        "sender": email.sender if email else "",
        "received_at": email.received_at.isoformat() if email else None,
        "received_display": format_received_human(email.received_at) if email else "",
        "priority": row.priority.value,
        "status": row.status.value,
        "position": row.position,
    }


def _queue_payload(engine: ProcessingScheduler) -> dict[str, Any]:
    # Catch up on anything due since the runner's last poll
    engine.advance()
    snap: QueueSnapshot = engine.snapshot()
    payload = snap.to_dict()
    rows = [_queue_row(engine, row) for row in snap.rows]
    payload["urgent"] = [r for r in rows if r["priority"] == "urgent"]
    payload["normal"] = [r for r in rows if r["priority"] == "normal"]
    payload["cadence_seconds"] = engine.cadence_seconds
    payload["process_seconds"] = engine.process_seconds
    return payload


# ── Endpoints ──

@app.get("/api/dashboard")
async def dashboard_endpoint(search: str | None = None, priority: str | None = "all",
                             sentiment: str | None = "all"):
    """Headline stats plus the filtered email list.

    Query params:
        search:    substring of subject or sender (optional)
        priority:  all | urgent | normal
        sentiment: all | positive | negative | neutral
    """
    emails = _store.all()
    try:
        payload = compute_dashboard(emails, search=search, priority=priority, sentiment=sentiment)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if _store.last_error:
        payload["warning"] = _store.last_error
    return payload


@app.get("/api/emails/{email_id}")
async def email_detail(email_id: str):
    email = _store.get(email_id)
    if email is None:
        raise HTTPException(status_code=404, detail=f"Email not found: {email_id}")
    payload = email.to_dict()
    payload["received_display"] = format_received_human(email.received_at)
    engine = get_engine()
    if engine.get_item(email_id) is not None:
        payload["queue"] = {
            "status": engine.status_of(email_id).value,
            "position": engine.queue_position(email_id),
        }
    else:
        payload["queue"] = None
    return payload


@app.get("/api/queue")
async def queue_state():
    return _queue_payload(get_engine())


@app.post("/api/queue/start")
async def queue_start():
    engine = get_engine()
    engine.start()
    return _queue_payload(engine)


@app.post("/api/queue/pause")
async def queue_pause():
    engine = get_engine()
    engine.advance()
    engine.pause()
    return _queue_payload(engine)


@app.post("/api/queue/resume")
async def queue_resume():
    engine = get_engine()
    engine.resume()
    return _queue_payload(engine)


@app.post("/api/queue/toggle")
async def queue_toggle():
    engine = get_engine()
    engine.advance()
    engine.toggle()
    return _queue_payload(engine)


@app.post("/api/queue/reset")
async def queue_reset():
    engine = get_engine()
    engine.reset()
    logger.info("Queue reset via API")
    return _queue_payload(engine)


@app.get("/api/analytics")
async def analytics_endpoint():
    emails = _store.all()
    volume_df = triage_core.load_volume_csv(config.EMAIL_VOLUME_CSV)
    volume_err = volume_df.attrs.get("error")
    if volume_err:
        logger.warning("Volume CSV unavailable: %s", volume_err)
    volume = triage_core.compute_volume_summary(volume_df)

    reported, err = load_json(config.ANALYTICS_JSON)
    if not isinstance(reported, dict):
        reported = {}
    payload = {
        "volume": volume,
        "sentiment": reported.get("sentiment_distribution") or compute_distribution(emails, "sentiment"),
        "categories": reported.get("category_distribution") or compute_distribution(emails, "category"),
        "live": {
            "sentiment": compute_distribution(emails, "sentiment"),
            "categories": compute_distribution(emails, "category"),
        },
    }
    warnings = [w for w in (volume_err, err) if w]
    if warnings:
        payload["warning"] = "; ".join(warnings)
    return payload


@app.get("/api/health")
async def health():
    engine = get_engine()
    return {
        "status": "ok",
        "emails_json": get_file_info(config.EMAILS_JSON),
        "email_volume_csv": get_file_info(config.EMAIL_VOLUME_CSV),
        "settings_overrides": get_file_info(config.SETTINGS_OVERRIDES_JSON),
        "queue_state": engine.state.value,
        "runner_running": bool(_runner and _runner.running),
    }


@app.get("/api/settings")
async def get_settings():
    return load_settings().model_dump()


class SettingUpdate(BaseModel):
    key: str
    value: Any


@app.post("/api/settings")
async def post_setting(body: SettingUpdate):
    if body.key not in SETTING_KEYS:
        raise HTTPException(status_code=400, detail="Invalid setting key")
    try:
        settings = update_setting(body.key, body.value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error("Failed to save settings: %s", e)
        raise HTTPException(status_code=500, detail=str(e) or "Failed to save settings")

    if body.key in ("cadence_seconds", "process_seconds"):
        get_engine().configure(**{body.key: getattr(settings, body.key)})
    return {"message": f"Updated {body.key}", "settings": settings.model_dump()}


def main():
    logger.info("Starting Triage Dashboard on http://localhost:%s", config.PORT)
    logger.info("Emails path: %s", config.EMAILS_JSON)
    uvicorn.run(app, host=config.HOST, port=config.PORT, log_level="info")


if __name__ == "__main__":
    # Allow running as `python -m triage.backend.server` or directly
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))
    main()
