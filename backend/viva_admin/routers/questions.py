from typing import Any, Dict, List, Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..catalog import QUESTIONS_HEADER, QUESTIONS_SHEET, normalize_difficulty, upsert_subject
from ..db import get_db
from ..deps import get_sheets
from ..models import VivaQuestion
from ..parsing import join_topics
from ..sheets import SheetsClient, SheetsError
from ..timestamps import format_iso, as_utc
from .auth import Teacher, get_current_teacher
from .subjects import mirror_subject_to_sheet

router = APIRouter(tags=["questions"])

logger = logging.getLogger(__name__)


class QuestionIn(BaseModel):
	question: str
	expectedAnswer: str = ""
	difficulty: str = "medium"


class SaveQuestionsRequest(BaseModel):
	subject: str
	topics: Any = None
	questions: List[QuestionIn]


def _serialize(row: VivaQuestion) -> dict:
	return {
		"id": row.id,
		"subject": row.subject,
		"topics": row.topics,
		"question": row.question,
		"expectedAnswer": row.expected_answer,
		"difficulty": row.difficulty,
		"active": row.active,
		"createdAt": format_iso(row.created_at) if row.created_at else None,
	}


@router.get("/questions")
def list_questions(subject: Optional[str] = None, db: Session = Depends(get_db)):
	q = db.query(VivaQuestion).filter(VivaQuestion.active.is_(True))
	if subject:
		q = q.filter(func.lower(VivaQuestion.subject) == subject.strip().lower())
	rows = q.order_by(VivaQuestion.created_at.desc(), VivaQuestion.id.desc()).all()
	if subject:
		return {"success": True, "subject": subject, "questions": [_serialize(r) for r in rows], "count": len(rows)}
	grouped: Dict[str, List[dict]] = {}
	for r in rows:
		grouped.setdefault(r.subject, []).append(_serialize(r))
	return {"success": True, "data": grouped}


@router.post("/save-questions", status_code=201)
async def save_questions(
	req: SaveQuestionsRequest,
	db: Session = Depends(get_db),
	sheets: Optional[SheetsClient] = Depends(get_sheets),
	teacher: Teacher = Depends(get_current_teacher),
):
	subject = req.subject.strip()
	if not subject:
		raise HTTPException(status_code=400, detail="Subject is required")
	questions = [q for q in req.questions if q.question.strip()]
	if not questions:
		raise HTTPException(status_code=400, detail="At least one question is required")
	topics = join_topics(req.topics)

	upsert_subject(db, subject)
	saved = []
	for q in questions:
		row = VivaQuestion(
			subject=subject,
			topics=topics,
			question=q.question.strip(),
			expected_answer=q.expectedAnswer.strip(),
			difficulty=normalize_difficulty(q.difficulty),
			active=True,
		)
		db.add(row)
		saved.append(row)
	db.commit()
	for row in saved:
		db.refresh(row)

	saved_to_sheet = False
	if sheets is not None:
		try:
			await sheets.ensure_sheet(QUESTIONS_SHEET, QUESTIONS_HEADER)
			await sheets.append_values(
				f"'{QUESTIONS_SHEET}'!A:G",
				[[r.subject, r.topics, r.question, r.expected_answer, r.difficulty, format_iso(as_utc(r.created_at)), "TRUE"] for r in saved],
			)
			saved_to_sheet = True
		except SheetsError:
			logger.exception("Failed to append %d questions to Google Sheets", len(saved))
		await mirror_subject_to_sheet(sheets, subject)

	return {
		"success": True,
		"questions": [_serialize(r) for r in saved],
		"count": len(saved),
		"savedToSheet": saved_to_sheet,
	}
