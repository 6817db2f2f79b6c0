from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..catalog import SUBJECTS_HEADER, SUBJECTS_SHEET, upsert_subject
from ..db import get_db
from ..deps import get_sheets
from ..models import Subject, Topic
from ..sheets import SheetsClient, SheetsError
from .auth import Teacher, get_current_teacher

router = APIRouter(prefix="/subjects", tags=["subjects"])

logger = logging.getLogger(__name__)


class SubjectCreate(BaseModel):
	name: str
	code: str = ""


class SubjectUpdate(BaseModel):
	oldName: str
	newName: str
	code: Optional[str] = None


def _serialize(row: Subject) -> dict:
	return {"id": row.id, "name": row.name, "code": row.code, "status": row.status}


async def mirror_subject_to_sheet(sheets: Optional[SheetsClient], name: str, code: str = "") -> bool:
	"""Append ``name`` to the Subjects tab unless it is already listed."""
	if sheets is None:
		return False
	try:
		await sheets.ensure_sheet(SUBJECTS_SHEET, SUBJECTS_HEADER)
		existing = await sheets.get_values(f"'{SUBJECTS_SHEET}'!A2:A")
		if any(row and row[0].strip().lower() == name.lower() for row in existing):
			return True
		await sheets.append_values(f"'{SUBJECTS_SHEET}'!A:C", [[name, code, "active"]])
		return True
	except SheetsError:
		logger.exception("Failed to mirror subject %r to Google Sheets", name)
		return False


@router.get("")
def list_subjects(db: Session = Depends(get_db)):
	rows = db.query(Subject).filter(Subject.status == "active").order_by(Subject.name).all()
	return {"success": True, "subjects": [_serialize(r) for r in rows]}


@router.post("", status_code=201)
async def create_subject(
	req: SubjectCreate,
	db: Session = Depends(get_db),
	sheets: Optional[SheetsClient] = Depends(get_sheets),
	teacher: Teacher = Depends(get_current_teacher),
):
	name = req.name.strip()
	if not name:
		raise HTTPException(status_code=400, detail="Subject name is required")
	row = upsert_subject(db, name, req.code.strip())
	db.commit()
	db.refresh(row)
	saved_to_sheet = await mirror_subject_to_sheet(sheets, name, req.code.strip())
	return {"success": True, "subject": _serialize(row), "savedToSheet": saved_to_sheet}


@router.put("")
def update_subject(req: SubjectUpdate, db: Session = Depends(get_db), teacher: Teacher = Depends(get_current_teacher)):
	new_name = req.newName.strip()
	if not new_name:
		raise HTTPException(status_code=400, detail="Subject name is required")
	row = db.query(Subject).filter(Subject.name == req.oldName).first()
	if row is None:
		raise HTTPException(status_code=404, detail="Subject not found")
	if new_name != row.name and db.query(Subject).filter(Subject.name == new_name).first() is not None:
		raise HTTPException(status_code=409, detail=f"Subject {new_name!r} already exists")
	row.name = new_name
	if req.code is not None:
		row.code = req.code
	# Topics reference subjects by name
	db.query(Topic).filter(Topic.subject_name == req.oldName).update(
		{Topic.subject_name: new_name}, synchronize_session=False
	)
	db.commit()
	db.refresh(row)
	return {"success": True, "subject": _serialize(row)}


@router.delete("")
def delete_subject(name: str, db: Session = Depends(get_db), teacher: Teacher = Depends(get_current_teacher)):
	removed = db.query(Subject).filter(Subject.name == name).delete(synchronize_session=False)
	db.commit()
	if not removed:
		raise HTTPException(status_code=404, detail="Subject not found")
	return {"success": True}
