from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .parsing import clean_text
from .records import RESULTS_APPEND_RANGE, VivaResultRecord, from_payload
from .repository import save_result
from .sheets import SheetsClient, SheetsError

logger = logging.getLogger(__name__)


class InvalidPayload(ValueError):
	pass


@dataclass
class IngestionOutcome:
	record: VivaResultRecord
	saved_to_database: bool
	saved_to_sheet: bool

	@property
	def message(self) -> str:
		if not (self.saved_to_database or self.saved_to_sheet):
			return "Result received but could not be saved to either store"
		parts = []
		if self.saved_to_database:
			parts.append("to database")
		if self.saved_to_sheet:
			parts.append("to Google Sheets")
		return "Result saved " + " and ".join(parts)


def _write_row(db: Session, record: VivaResultRecord) -> None:
	try:
		save_result(db, record, origin="webhook")
	except SQLAlchemyError:
		db.rollback()
		raise


async def save_to_database(db: Session, record: VivaResultRecord) -> bool:
	try:
		await asyncio.to_thread(_write_row, db, record)
		return True
	except SQLAlchemyError:
		logger.exception("Failed to save viva result for %s to database", record.student_name)
		return False


async def append_to_sheet(sheets: Optional[SheetsClient], record: VivaResultRecord) -> bool:
	if sheets is None:
		logger.warning("Google Sheets not configured; result for %s not appended", record.student_name)
		return False
	try:
		await sheets.append_values(RESULTS_APPEND_RANGE, [record.to_sheet_row()])
		return True
	except SheetsError:
		logger.exception("Failed to append viva result for %s to Google Sheets", record.student_name)
		return False


async def ingest_result(
	payload: Dict[str, Any],
	db: Session,
	sheets: Optional[SheetsClient],
) -> IngestionOutcome:
	"""Validate one result and write it to both stores concurrently.

	Neither write waits on or undoes the other; each outcome is only reported.
	"""
	if not isinstance(payload, dict) or not clean_text(payload.get("studentName")):
		raise InvalidPayload("Student name is required")
	# Same instant in both stores so the row keys line up at the next full sync
	record = from_payload(payload, datetime.now(timezone.utc))
	saved_db, saved_sheet = await asyncio.gather(
		save_to_database(db, record),
		append_to_sheet(sheets, record),
	)
	logger.info(
		"Ingested viva result for %s (database=%s, sheet=%s)",
		record.student_name,
		saved_db,
		saved_sheet,
	)
	return IngestionOutcome(record=record, saved_to_database=saved_db, saved_to_sheet=saved_sheet)
