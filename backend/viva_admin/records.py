from __future__ import annotations
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, PrivateAttr, field_serializer
from pydantic.alias_generators import to_camel

from . import models
from .parsing import clean_text, first_int, join_topics, parse_evaluation
from .timestamps import as_utc, format_iso, normalize_timestamp, parse_timestamp


PASSING_SCORE = 50

RESULTS_SHEET = "Viva Results"
RESULTS_RANGE = f"'{RESULTS_SHEET}'!A2:K"
RESULTS_APPEND_RANGE = f"'{RESULTS_SHEET}'!A:K"
RESULTS_HEADER = [
	"Date & Time", "Student Name", "Email", "Subject", "Topics", "Questions Answered",
	"Score", "Overall Feedback", "Transcript", "Recording URL", "Evaluation JSON",
]

# Column positions in the Viva Results sheet (A..K)
COL_TIMESTAMP = 0
COL_STUDENT_NAME = 1
COL_STUDENT_EMAIL = 2
COL_SUBJECT = 3
COL_TOPICS = 4
COL_QUESTIONS_ANSWERED = 5
COL_SCORE = 6
COL_OVERALL_FEEDBACK = 7
COL_TRANSCRIPT = 8
COL_RECORDING_URL = 9
COL_EVALUATION = 10
RESULT_COLUMN_COUNT = 11


def cell(row: Sequence[Any], index: int) -> str:
	if index < len(row) and row[index] is not None:
		return str(row[index]).strip()
	return ""


class VivaResultRecord(BaseModel):
	"""One viva attempt, independent of which store it was read from."""

	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

	id: str = ""
	timestamp: datetime
	student_name: str
	student_email: str = ""
	subject: str = ""
	topics: str = ""
	questions_answered: int = 0
	score: int = 0
	overall_feedback: str = ""
	transcript: str = ""
	recording_url: Optional[str] = None
	evaluation: Optional[Dict[str, Any]] = None
	vapi_call_id: Optional[str] = None

	_timestamp_fallback: bool = PrivateAttr(default=False)

	@field_serializer("timestamp")
	def _serialize_timestamp(self, value: datetime) -> str:
		return format_iso(value)

	@property
	def status(self) -> str:
		return "passed" if self.score >= PASSING_SCORE else "failed"

	@property
	def timestamp_fallback(self) -> bool:
		return self._timestamp_fallback

	@property
	def row_key(self) -> str:
		stamp = as_utc(self.timestamp).replace(microsecond=0).isoformat()
		raw = f"{stamp}|{self.student_email.strip().lower()}|{self.student_name.strip()}"
		return hashlib.sha1(raw.encode("utf-8")).hexdigest()

	def to_api(self) -> Dict[str, Any]:
		data = self.model_dump(mode="json", by_alias=True, exclude_none=True)
		data["status"] = self.status
		return data

	def to_sheet_row(self) -> List[str]:
		row = [""] * RESULT_COLUMN_COUNT
		row[COL_TIMESTAMP] = format_iso(self.timestamp)
		row[COL_STUDENT_NAME] = self.student_name
		row[COL_STUDENT_EMAIL] = self.student_email
		row[COL_SUBJECT] = self.subject
		row[COL_TOPICS] = self.topics
		row[COL_QUESTIONS_ANSWERED] = str(self.questions_answered)
		row[COL_SCORE] = str(self.score)
		row[COL_OVERALL_FEEDBACK] = self.overall_feedback
		row[COL_TRANSCRIPT] = self.transcript
		row[COL_RECORDING_URL] = self.recording_url or ""
		row[COL_EVALUATION] = json.dumps(self.evaluation) if self.evaluation else ""
		return row

	def to_model_fields(self) -> Dict[str, Any]:
		return {
			"timestamp": as_utc(self.timestamp),
			"student_name": self.student_name,
			"student_email": self.student_email,
			"subject": self.subject,
			"topics": self.topics,
			"questions_answered": self.questions_answered,
			"score": self.score,
			"overall_feedback": self.overall_feedback,
			"transcript": self.transcript,
			"recording_url": self.recording_url,
			"evaluation": self.evaluation,
			"vapi_call_id": self.vapi_call_id,
			"row_key": self.row_key,
		}


def from_sheet_row(row: Sequence[Any], index: int, tz=None) -> VivaResultRecord:
	"""Build a record from a ``Viva Results`` row; ``index`` is the 0-based data row."""
	raw_timestamp = cell(row, COL_TIMESTAMP)
	parsed = parse_timestamp(raw_timestamp, tz)
	record = VivaResultRecord(
		id=f"VIVA{index + 1:04d}",
		timestamp=parsed or normalize_timestamp(None),
		student_name=cell(row, COL_STUDENT_NAME) or "Unknown",
		student_email=cell(row, COL_STUDENT_EMAIL),
		subject=cell(row, COL_SUBJECT) or "Unknown Subject",
		topics=join_topics(cell(row, COL_TOPICS)),
		questions_answered=first_int(cell(row, COL_QUESTIONS_ANSWERED)),
		score=first_int(cell(row, COL_SCORE)),
		overall_feedback=cell(row, COL_OVERALL_FEEDBACK),
		transcript=cell(row, COL_TRANSCRIPT),
		recording_url=cell(row, COL_RECORDING_URL) or None,
		evaluation=parse_evaluation(cell(row, COL_EVALUATION)),
	)
	record._timestamp_fallback = parsed is None
	return record


def from_model(row: models.VivaResult) -> VivaResultRecord:
	return VivaResultRecord(
		id=str(row.id),
		timestamp=as_utc(row.timestamp),
		student_name=row.student_name or "Unknown",
		student_email=row.student_email or "",
		subject=row.subject or "Unknown Subject",
		topics=row.topics or "",
		questions_answered=row.questions_answered or 0,
		score=row.score or 0,
		overall_feedback=row.overall_feedback or "",
		transcript=row.transcript or "",
		recording_url=row.recording_url or None,
		evaluation=parse_evaluation(row.evaluation),
		vapi_call_id=row.vapi_call_id,
	)


def from_payload(payload: Dict[str, Any], timestamp: datetime) -> VivaResultRecord:
	"""Coerce a webhook body; numeric text such as "72/100" is reduced to its integer."""
	return VivaResultRecord(
		timestamp=timestamp,
		student_name=clean_text(payload.get("studentName")),
		student_email=clean_text(payload.get("studentEmail")),
		subject=clean_text(payload.get("subject")) or "Unknown Subject",
		topics=join_topics(payload.get("topics")),
		questions_answered=first_int(payload.get("questionsAnswered")),
		score=first_int(payload.get("score")),
		overall_feedback=clean_text(payload.get("overallFeedback")),
		transcript=clean_text(payload.get("transcript")),
		recording_url=clean_text(payload.get("recordingUrl")) or None,
		evaluation=parse_evaluation(payload.get("evaluation")),
		vapi_call_id=clean_text(payload.get("vapiCallId")) or None,
	)


def sort_newest_first(records: List[VivaResultRecord]) -> List[VivaResultRecord]:
	return sorted(records, key=lambda r: as_utc(r.timestamp), reverse=True)
