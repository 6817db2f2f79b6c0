from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..call_platform import CallPlatformClient
from ..catalog import sync_catalog
from ..db import get_db
from ..deps import get_call_platform, get_sheets, get_teacher_sheets, require_sheets
from ..reconcile import SyncAborted, build_policy
from ..repository import sync_status
from ..settings import settings
from ..sheets import SheetsClient, SheetsConfigError
from ..timestamps import format_iso
from .auth import Teacher, get_current_teacher

router = APIRouter(tags=["sync"])


@router.get("/sync-results")
def get_sync_status(request: Request, db: Session = Depends(get_db)):
	try:
		count, last = sync_status(db)
	except SQLAlchemyError:
		raise HTTPException(status_code=500, detail="Failed to get sync status")
	last_sync = getattr(request.app.state, "last_sync", None)
	return {
		"count": count,
		"lastResult": format_iso(last) if last else None,
		"lastSync": last_sync.to_dict() if last_sync else None,
		"policy": settings.sync_policy,
		"message": "Use POST to trigger a sync",
	}


@router.post("/sync-results")
async def trigger_sync(
	request: Request,
	db: Session = Depends(get_db),
	sheets: Optional[SheetsClient] = Depends(get_sheets),
	call_platform: Optional[CallPlatformClient] = Depends(get_call_platform),
):
	try:
		policy = build_policy(settings.sync_policy, sheets=sheets, call_platform=call_platform)
	except (SheetsConfigError, ValueError) as e:
		raise HTTPException(status_code=500, detail=str(e))
	try:
		report = await policy.run(db)
	except SyncAborted as e:
		request.app.state.last_sync = e.report
		raise HTTPException(status_code=502, detail=e.report.message)
	request.app.state.last_sync = report
	return {
		"success": True,
		"synced": report.synced,
		"skipped": [{"row": s.row, "reason": s.reason} for s in report.skipped],
		"message": report.message,
	}


@router.post("/sync-catalog")
async def trigger_catalog_sync(
	db: Session = Depends(get_db),
	sheets: SheetsClient = Depends(require_sheets),
	teacher_sheets: Optional[SheetsClient] = Depends(get_teacher_sheets),
	teacher: Teacher = Depends(get_current_teacher),
):
	counts = await sync_catalog(sheets, db, teacher_sheets=teacher_sheets)
	return {"success": True, "synced": counts}
