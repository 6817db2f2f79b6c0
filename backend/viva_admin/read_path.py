from __future__ import annotations
import logging
import math
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import repository
from .records import PASSING_SCORE, RESULTS_RANGE, VivaResultRecord, from_sheet_row, sort_newest_first
from .sheets import SheetsClient, SheetsError, SheetsNotFound
from .timestamps import format_iso

logger = logging.getLogger(__name__)

SOURCE_DATABASE = "database"
SOURCE_SHEETS = "google_sheets"


class ResultsUnavailable(Exception):
	"""Neither store could produce results."""


def round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


class ResultsReader:
	"""Relational mirror first, live sheet read when the mirror is empty or down."""

	def __init__(self, db: Session, sheets: Optional[SheetsClient], *, tz=None) -> None:
		self.db = db
		self.sheets = sheets
		self.tz = tz

	def _from_database(self) -> Optional[List[VivaResultRecord]]:
		try:
			return repository.list_results(self.db)
		except SQLAlchemyError:
			logger.exception("Database read failed, falling back to Google Sheets")
			self.db.rollback()
			return None

	async def _from_sheets(self) -> List[VivaResultRecord]:
		try:
			rows = await self.sheets.get_values(RESULTS_RANGE)
		except SheetsNotFound:
			logger.warning("Viva Results sheet not found; treating as empty")
			return []
		records = []
		for index, row in enumerate(rows):
			if not any(str(v).strip() for v in row):
				continue
			records.append(from_sheet_row(row, index, self.tz))
		return records

	async def list_results(self) -> Tuple[List[VivaResultRecord], str]:
		records = self._from_database()
		if records:
			return sort_newest_first(records), SOURCE_DATABASE
		database_ok = records is not None
		if self.sheets is None:
			if database_ok:
				return [], SOURCE_DATABASE
			raise ResultsUnavailable("Database unavailable and Google Sheets is not configured")
		try:
			sheet_records = await self._from_sheets()
		except SheetsError as err:
			logger.error("Google Sheets read failed: %s", err)
			if database_ok:
				return [], SOURCE_DATABASE
			raise ResultsUnavailable(f"Database unavailable and Google Sheets read failed: {err}") from err
		return sort_newest_first(sheet_records), SOURCE_SHEETS


def compute_stats(results: List[VivaResultRecord], *, recent: int = 5) -> Dict[str, Any]:
	total = len(results)
	passed = 0
	score_sum = 0
	subjects: Dict[str, Dict[str, int]] = {}
	for r in results:
		score_sum += r.score
		is_pass = r.score >= PASSING_SCORE
		passed += is_pass
		bucket = subjects.setdefault(r.subject, {"count": 0, "scoreSum": 0, "passed": 0})
		bucket["count"] += 1
		bucket["scoreSum"] += r.score
		bucket["passed"] += is_pass
	subject_stats = {
		name: {
			"count": b["count"],
			"avgScore": round_half_up(b["scoreSum"] / b["count"]),
			"passRate": round_half_up(b["passed"] / b["count"] * 100),
		}
		for name, b in subjects.items()
	}
	return {
		"totalVivas": total,
		"totalPassed": passed,
		"totalFailed": total - passed,
		"avgScore": round_half_up(score_sum / total) if total else 0,
		"subjectStats": subject_stats,
		"recentResults": [r.to_api() for r in results[:recent]],
	}


def student_status(vivas_completed: int, average: int) -> str:
	"""``pending`` for a student with no results yet (a roster entry), else by average."""
	if vivas_completed == 0:
		return "pending"
	if average < PASSING_SCORE:
		return "at_risk"
	return "active"


def summarize_students(results: List[VivaResultRecord]) -> List[Dict[str, Any]]:
	# Groups come from results, so every student here has completed at least one viva
	groups: Dict[str, Dict[str, Any]] = {}
	for r in results:
		key = r.student_email.strip().lower()
		group = groups.get(key)
		if group is None:
			group = groups[key] = {
				"name": r.student_name,
				"email": r.student_email,
				"scores": [],
				"subjects": [],
				"last": None,
			}
		group["scores"].append(r.score)
		if r.subject not in group["subjects"]:
			group["subjects"].append(r.subject)
		if group["last"] is None or r.timestamp > group["last"]:
			group["last"] = r.timestamp

	students = []
	for data in groups.values():
		scores = data["scores"]
		average = round_half_up(sum(scores) / len(scores)) if scores else 0
		status = student_status(len(scores), average)
		students.append({
			"name": data["name"],
			"email": data["email"],
			"vivasCompleted": len(scores),
			"averageScore": average,
			"subjects": data["subjects"],
			"lastVivaDate": data["last"],
			"status": status,
		})

	students.sort(key=lambda s: s["lastVivaDate"].timestamp() if s["lastVivaDate"] else float("-inf"), reverse=True)
	for index, student in enumerate(students):
		student["id"] = f"STU{index + 1:03d}"
		if student["lastVivaDate"] is not None:
			student["lastVivaDate"] = format_iso(student["lastVivaDate"])
	return students
