import asyncio
import logging

from fastapi import FastAPI

from .db import Base, SessionLocal, engine, ensure_schema
from .deps import call_platform_for, sheets_for
from .reconcile import SyncJob, build_policy
from .settings import settings
from .routers import auth
from .routers import generate
from .routers import notify
from .routers import questions
from .routers import results
from .routers import subjects
from .routers import sync
from .routers import topics
from .routers import webhook

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="AI Viva Admin API")
app.include_router(auth.router)
app.include_router(webhook.router)
app.include_router(results.router)
app.include_router(sync.router)
app.include_router(subjects.router)
app.include_router(topics.router)
app.include_router(questions.router)
app.include_router(generate.router)
app.include_router(notify.router)


@app.get("/info")
def root():
	return {
		"status": "ok",
		"sheets_configured": bool(settings.google_sheet_id),
		"sync_policy": settings.sync_policy,
		"gemini_configured": bool(settings.gemini_api_key),
	}


def _remember_sync(report) -> None:
	app.state.last_sync = report


def _sync_policy():
	return build_policy(
		settings.sync_policy,
		sheets=sheets_for(app.state),
		call_platform=call_platform_for(app.state),
	)


@app.on_event("startup")
async def startup_event():
	# Initialize DB schema
	Base.metadata.create_all(bind=engine)
	# Apply lightweight migrations
	try:
		ensure_schema()
	except Exception:
		logger.exception("Schema migration failed")
	if settings.sync_enabled:
		job = SyncJob(_sync_policy, SessionLocal, on_report=_remember_sync)
		app.state.sync_task = asyncio.create_task(job.run_forever(run_at_start=settings.sync_on_startup))
		logger.info("Reconciliation job started (%s every %ss)", settings.sync_policy, job.interval)


@app.on_event("shutdown")
async def shutdown_event():
	task = getattr(app.state, "sync_task", None)
	if task is not None:
		task.cancel()
	for name in ("sheets", "call_platform"):
		client = getattr(app.state, name, None)
		if client is not None:
			await client.aclose()
