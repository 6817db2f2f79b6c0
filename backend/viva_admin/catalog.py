from __future__ import annotations
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from .models import Subject, Teacher, Topic, VivaQuestion
from .records import cell
from .sheets import SheetsClient, SheetsError, SheetsNotFound
from .timestamps import as_utc, parse_timestamp

logger = logging.getLogger(__name__)

SUBJECTS_SHEET = "Subjects"
SUBJECTS_HEADER = ["Name", "Code", "Status"]
TOPICS_SHEET = "Topics"
TOPICS_HEADER = ["Subject", "Topic", "Status"]
QUESTIONS_SHEET = "Viva Questions"
QUESTIONS_HEADER = ["Subject", "Topics", "Question", "Expected Answer", "Difficulty", "Created At", "Active"]
DIFFICULTIES = ("easy", "medium", "hard")


def normalize_difficulty(value: Optional[str]) -> str:
	value = (value or "").strip().lower()
	return value if value in DIFFICULTIES else "medium"


def upsert_subject(db: Session, name: str, code: str = "", status: str = "active") -> Subject:
	row = db.query(Subject).filter(Subject.name == name).first()
	if row is None:
		row = Subject(name=name)
		db.add(row)
		db.flush()
	row.code = code or ""
	row.status = status or "active"
	return row


def upsert_topic(db: Session, subject_name: str, name: str, status: str = "active") -> Topic:
	row = db.query(Topic).filter(Topic.subject_name == subject_name, Topic.name == name).first()
	if row is None:
		row = Topic(subject_name=subject_name, name=name)
		db.add(row)
		db.flush()
	row.status = status or "active"
	return row


def _sync_subjects(rows: List[List[str]], db: Session) -> int:
	count = 0
	for row in rows:
		name = cell(row, 0)
		if not name:
			continue
		upsert_subject(db, name, cell(row, 1), cell(row, 2) or "active")
		count += 1
	return count


def _sync_topics(rows: List[List[str]], db: Session) -> int:
	count = 0
	for row in rows:
		subject_name, name = cell(row, 0), cell(row, 1)
		if not (subject_name and name):
			continue
		upsert_topic(db, subject_name, name, cell(row, 2) or "active")
		count += 1
	return count


def _sync_questions(rows: List[List[str]], db: Session) -> int:
	count = 0
	for row in rows:
		subject, question = cell(row, 0), cell(row, 2)
		if not (subject and question):
			continue
		existing = (
			db.query(VivaQuestion)
			.filter(VivaQuestion.subject == subject, VivaQuestion.question == question)
			.first()
		)
		if existing is None:
			existing = VivaQuestion(subject=subject, question=question)
			created = parse_timestamp(cell(row, 5))
			if created is not None:
				existing.created_at = as_utc(created).replace(tzinfo=None)
			db.add(existing)
			db.flush()
		existing.topics = cell(row, 1)
		existing.expected_answer = cell(row, 3)
		existing.difficulty = normalize_difficulty(cell(row, 4))
		existing.active = cell(row, 6).upper() != "FALSE"
		count += 1
	return count


def _sync_teachers(rows: List[List[str]], db: Session) -> int:
	count = 0
	for row in rows:
		email = cell(row, 0).lower()
		password_hash = cell(row, 1)
		if not (email and password_hash):
			continue
		teacher = db.get(Teacher, email)
		if teacher is None:
			teacher = Teacher(email=email, password_hash=password_hash)
			db.add(teacher)
			db.flush()
		teacher.password_hash = password_hash
		teacher.name = f"{cell(row, 2)} {cell(row, 3)}".strip()
		teacher.status = "active"
		count += 1
	return count


async def read_teacher_rows(teacher_sheets: SheetsClient) -> List[List[str]]:
	"""Credential rows (email, password hash, first name, last name) from the first tab."""
	titles = await teacher_sheets.get_sheet_titles()
	title = titles[0] if titles else "Sheet1"
	return await teacher_sheets.get_values(f"'{title}'!A2:D")


async def sync_catalog(
	sheets: SheetsClient,
	db: Session,
	*,
	teacher_sheets: Optional[SheetsClient] = None,
) -> Dict[str, Optional[int]]:
	"""Upsert subjects, topics, questions and teachers from the spreadsheet.

	A missing tab counts as zero rows; any other read failure leaves that entity
	untouched and reports ``None`` for it.
	"""
	counts: Dict[str, Optional[int]] = {}
	sections = [
		("subjects", sheets, f"'{SUBJECTS_SHEET}'!A2:C", _sync_subjects),
		("topics", sheets, f"'{TOPICS_SHEET}'!A2:C", _sync_topics),
		("questions", sheets, f"'{QUESTIONS_SHEET}'!A2:G", _sync_questions),
	]
	for name, client, a1_range, apply in sections:
		try:
			rows = await client.get_values(a1_range)
		except SheetsNotFound:
			logger.info("No %s sheet found", name)
			counts[name] = 0
			continue
		except SheetsError as err:
			logger.error("Error syncing %s: %s", name, err)
			counts[name] = None
			continue
		counts[name] = apply(rows, db)
		db.commit()
		logger.info("Synced %d %s", counts[name], name)

	if teacher_sheets is not None:
		try:
			rows = await read_teacher_rows(teacher_sheets)
			counts["teachers"] = _sync_teachers(rows, db)
			db.commit()
			logger.info("Synced %d teachers", counts["teachers"])
		except SheetsError as err:
			logger.error("Error syncing teachers: %s", err)
			counts["teachers"] = None
	return counts
