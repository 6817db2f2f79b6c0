from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db import get_db
from ..models import Topic
from .auth import Teacher, get_current_teacher

router = APIRouter(prefix="/topics", tags=["topics"])


class TopicCreate(BaseModel):
	subjectName: str
	name: str


class TopicUpdate(BaseModel):
	oldSubject: str
	oldName: str
	newSubject: str
	newName: str


def _serialize(row: Topic) -> dict:
	return {"id": row.id, "subjectName": row.subject_name, "name": row.name, "status": row.status}


def _match(db: Session, subject_name: str, name: str):
	# Topic lookups are case-insensitive on both parts of the key
	return db.query(Topic).filter(
		func.lower(Topic.subject_name) == subject_name.strip().lower(),
		func.lower(Topic.name) == name.strip().lower(),
	)


@router.get("")
def list_topics(subject: Optional[str] = None, db: Session = Depends(get_db)):
	q = db.query(Topic).filter(Topic.status == "active")
	if subject:
		q = q.filter(func.lower(Topic.subject_name) == subject.strip().lower())
	rows = q.order_by(Topic.subject_name, Topic.name).all()
	return {"success": True, "topics": [_serialize(r) for r in rows]}


@router.post("", status_code=201)
def create_topic(req: TopicCreate, db: Session = Depends(get_db), teacher: Teacher = Depends(get_current_teacher)):
	subject_name, name = req.subjectName.strip(), req.name.strip()
	if not subject_name or not name:
		raise HTTPException(status_code=400, detail="Subject and topic name are required")
	existing = _match(db, subject_name, name).first()
	if existing is not None:
		return {"success": True, "topic": _serialize(existing), "created": False}
	row = Topic(subject_name=subject_name, name=name, status="active")
	db.add(row)
	db.commit()
	db.refresh(row)
	return {"success": True, "topic": _serialize(row), "created": True}


@router.put("")
def update_topic(req: TopicUpdate, db: Session = Depends(get_db), teacher: Teacher = Depends(get_current_teacher)):
	row = _match(db, req.oldSubject, req.oldName).first()
	if row is None:
		raise HTTPException(status_code=404, detail="Topic not found")
	new_subject, new_name = req.newSubject.strip(), req.newName.strip()
	if not new_subject or not new_name:
		raise HTTPException(status_code=400, detail="Subject and topic name are required")
	clash = _match(db, new_subject, new_name).first()
	if clash is not None and clash.id != row.id:
		raise HTTPException(status_code=409, detail="Topic already exists for this subject")
	row.subject_name = new_subject
	row.name = new_name
	db.commit()
	db.refresh(row)
	return {"success": True, "topic": _serialize(row)}


@router.delete("")
def delete_topic(subject: str, name: str, db: Session = Depends(get_db), teacher: Teacher = Depends(get_current_teacher)):
	removed = _match(db, subject, name).delete(synchronize_session=False)
	db.commit()
	if not removed:
		raise HTTPException(status_code=404, detail="Topic not found")
	return {"success": True}
