"""Reconciliation of the relational ``viva_results`` mirror.

Two policies exist and are kept separate because they lose data differently:

``FullReplacePolicy``
    Treats the ``Viva Results`` sheet as the system of record. The sheet is read
    before anything is touched; the delete and the re-insert then happen in one
    transaction, so a failed cycle leaves the previous mirror in place. Rows
    written by the webhook inside the grace window that the sheet does not show
    yet are kept, which closes the race between a fresh webhook insert and the
    next replace.

``CallPlatformUpsertPolicy``
    Treats the external call platform as the source. Calls are matched on their
    call id and updated or inserted; nothing is ever deleted.
"""
from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .call_platform import CallPlatformClient, CallPlatformError, UnusableCall, call_to_record
from .models import VivaResult
from .records import COL_STUDENT_NAME, COL_TIMESTAMP, RESULTS_RANGE, cell, from_sheet_row
from .repository import apply_record, find_by_call_id, new_row
from .settings import settings
from .sheets import SheetsClient, SheetsConfigError, SheetsError

logger = logging.getLogger(__name__)


@dataclass
class SkippedRow:
	row: Union[int, str]
	reason: str


@dataclass
class SyncReport:
	policy: str
	started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
	finished_at: Optional[datetime] = None
	success: bool = False
	synced: int = 0
	inserted: int = 0
	updated: int = 0
	preserved: int = 0
	timestamp_fallbacks: int = 0
	skipped: List[SkippedRow] = field(default_factory=list)
	message: str = ""

	def finish(self, success: bool, message: str) -> "SyncReport":
		self.success = success
		self.message = message
		self.finished_at = datetime.now(timezone.utc)
		return self

	def to_dict(self) -> Dict[str, Any]:
		return {
			"policy": self.policy,
			"success": self.success,
			"synced": self.synced,
			"inserted": self.inserted,
			"updated": self.updated,
			"preserved": self.preserved,
			"timestampFallbacks": self.timestamp_fallbacks,
			"skipped": [{"row": s.row, "reason": s.reason} for s in self.skipped],
			"message": self.message,
			"startedAt": self.started_at.isoformat(),
			"finishedAt": self.finished_at.isoformat() if self.finished_at else None,
		}


class SyncAborted(Exception):
	"""The cycle stopped before committing; the mirror is unchanged."""

	def __init__(self, report: SyncReport) -> None:
		super().__init__(report.message)
		self.report = report


class ReconciliationPolicy:
	name = "base"

	async def run(self, db: Session) -> SyncReport:
		raise NotImplementedError


class FullReplacePolicy(ReconciliationPolicy):
	name = "full_replace"

	def __init__(self, sheets: SheetsClient, *, grace_seconds: Optional[int] = None, tz=None) -> None:
		self.sheets = sheets
		self.grace = timedelta(seconds=settings.sync_pending_grace_seconds if grace_seconds is None else grace_seconds)
		self.tz = tz

	async def run(self, db: Session) -> SyncReport:
		report = SyncReport(policy=self.name)
		try:
			rows = await self.sheets.get_values(RESULTS_RANGE)
		except SheetsError as err:
			logger.error("Full sync aborted, could not read Viva Results: %s", err)
			raise SyncAborted(report.finish(False, f"Failed to read Viva Results sheet: {err}")) from err

		records = []
		for index, row in enumerate(rows):
			sheet_row = index + 2
			if not cell(row, COL_STUDENT_NAME):
				report.skipped.append(SkippedRow(sheet_row, "missing student name"))
				continue
			record = from_sheet_row(row, index, self.tz)
			if record.timestamp_fallback:
				report.timestamp_fallbacks += 1
				logger.warning("Row %s has unparseable timestamp %r; using current time", sheet_row, cell(row, COL_TIMESTAMP))
			records.append(record)

		pulled_keys = {r.row_key for r in records}
		cutoff = datetime.utcnow() - self.grace
		try:
			pending = (
				db.query(VivaResult.id, VivaResult.row_key)
				.filter(VivaResult.origin == "webhook", VivaResult.created_at >= cutoff)
				.all()
			)
			keep_ids = [row_id for row_id, key in pending if key not in pulled_keys]
			stmt = delete(VivaResult)
			if keep_ids:
				stmt = stmt.where(VivaResult.id.notin_(keep_ids))
			db.execute(stmt)
			for record in records:
				db.add(new_row(record, "sheet"))
			db.commit()
		except SQLAlchemyError as err:
			db.rollback()
			logger.exception("Full sync rolled back")
			raise SyncAborted(report.finish(False, f"Database write failed, previous rows kept: {err}")) from err

		report.synced = report.inserted = len(records)
		report.preserved = len(keep_ids)
		for skipped in report.skipped:
			logger.warning("Skipped sheet row %s: %s", skipped.row, skipped.reason)
		logger.info("Full sync replaced viva_results with %d rows (%d pending webhook rows kept)", report.synced, report.preserved)
		return report.finish(True, f"Synced {report.synced} viva results from Google Sheets to database")


class CallPlatformUpsertPolicy(ReconciliationPolicy):
	name = "call_platform"

	def __init__(self, platform: CallPlatformClient) -> None:
		self.platform = platform

	async def run(self, db: Session) -> SyncReport:
		report = SyncReport(policy=self.name)
		try:
			calls = await self.platform.list_calls()
		except CallPlatformError as err:
			logger.error("Call platform sync aborted: %s", err)
			raise SyncAborted(report.finish(False, str(err))) from err

		seen = set()
		try:
			for index, call in enumerate(calls):
				try:
					record = call_to_record(call)
				except UnusableCall as err:
					report.skipped.append(SkippedRow(call.get("id") or index, str(err)))
					continue
				if record.vapi_call_id in seen:
					report.skipped.append(SkippedRow(record.vapi_call_id, "duplicate call id in pull"))
					continue
				seen.add(record.vapi_call_id)
				row = find_by_call_id(db, record.vapi_call_id)
				if row is None:
					db.add(new_row(record, "call_platform"))
					report.inserted += 1
				else:
					apply_record(row, record)
					report.updated += 1
				report.synced += 1
			db.commit()
		except SQLAlchemyError as err:
			db.rollback()
			logger.exception("Call platform sync rolled back")
			raise SyncAborted(report.finish(False, f"Database write failed: {err}")) from err

		for skipped in report.skipped:
			logger.warning("Skipped call %s: %s", skipped.row, skipped.reason)
		logger.info("Call platform sync: %d inserted, %d updated", report.inserted, report.updated)
		return report.finish(True, f"Synced {report.synced} calls ({report.inserted} new, {report.updated} updated)")


def build_policy(
	name: str,
	*,
	sheets: Optional[SheetsClient] = None,
	call_platform: Optional[CallPlatformClient] = None,
) -> ReconciliationPolicy:
	if name == FullReplacePolicy.name:
		if sheets is None:
			raise SheetsConfigError("Full sync requires Google Sheets credentials and GOOGLE_SHEET_ID")
		return FullReplacePolicy(sheets)
	if name == CallPlatformUpsertPolicy.name:
		if call_platform is None:
			raise ValueError("Call platform sync requires VAPI_API_KEY")
		return CallPlatformUpsertPolicy(call_platform)
	raise ValueError(f"Unknown sync policy {name!r}")


class SyncJob:
	"""Runs a policy on a fixed interval; a cycle never overlaps the next one."""

	def __init__(
		self,
		policy_factory: Callable[[], ReconciliationPolicy],
		session_factory: Callable[[], Session],
		*,
		interval_seconds: Optional[int] = None,
		on_report: Optional[Callable[[SyncReport], None]] = None,
	) -> None:
		self.policy_factory = policy_factory
		self.session_factory = session_factory
		self.interval = interval_seconds or settings.sync_interval_seconds
		self.on_report = on_report

	async def run_once(self) -> Optional[SyncReport]:
		try:
			policy = self.policy_factory()
		except (SheetsConfigError, ValueError) as err:
			logger.warning("Sync skipped: %s", err)
			return None
		db = self.session_factory()
		try:
			report = await policy.run(db)
		except SyncAborted as err:
			report = err.report
		finally:
			db.close()
		if self.on_report is not None:
			self.on_report(report)
		return report

	async def _guarded_run(self) -> None:
		try:
			await self.run_once()
		except Exception:
			# keep the loop alive; the next tick starts a fresh cycle
			logger.exception("Sync cycle failed")

	async def run_forever(self, *, run_at_start: bool = True) -> None:
		if run_at_start:
			await self._guarded_run()
		while True:
			await asyncio.sleep(self.interval)
			await self._guarded_run()
