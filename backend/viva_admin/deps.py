from __future__ import annotations
import logging
from typing import Optional

from fastapi import Depends, HTTPException, Request

from .call_platform import CallPlatformClient
from .settings import settings
from .sheets import SheetsClient, SheetsConfigError, build_sheets_client

logger = logging.getLogger(__name__)


def sheets_for(state) -> Optional[SheetsClient]:
	"""Shared Sheets client stored on ``app.state``, or None when unconfigured."""
	if not hasattr(state, "sheets"):
		try:
			state.sheets = build_sheets_client()
			state.sheets_error = None
		except SheetsConfigError as err:
			logger.warning("%s", err)
			state.sheets = None
			state.sheets_error = str(err)
	return state.sheets


def call_platform_for(state) -> Optional[CallPlatformClient]:
	if not hasattr(state, "call_platform"):
		state.call_platform = CallPlatformClient() if settings.vapi_api_key else None
	return state.call_platform


def get_sheets(request: Request) -> Optional[SheetsClient]:
	return sheets_for(request.app.state)


def require_sheets(request: Request, sheets: Optional[SheetsClient] = Depends(get_sheets)) -> SheetsClient:
	if sheets is None:
		detail = getattr(request.app.state, "sheets_error", None) or "Google Sheets not configured"
		raise HTTPException(status_code=500, detail=detail)
	return sheets


def get_teacher_sheets(sheets: Optional[SheetsClient] = Depends(get_sheets)) -> Optional[SheetsClient]:
	if sheets is None or not settings.teacher_sheet_id:
		return None
	return sheets.for_spreadsheet(settings.teacher_sheet_id)


def get_call_platform(request: Request) -> Optional[CallPlatformClient]:
	return call_platform_for(request.app.state)
