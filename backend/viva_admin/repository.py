from __future__ import annotations
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import VivaResult
from .records import VivaResultRecord, from_model
from .timestamps import as_utc


def apply_record(row: VivaResult, record: VivaResultRecord) -> VivaResult:
	for key, value in record.to_model_fields().items():
		setattr(row, key, value)
	return row


def new_row(record: VivaResultRecord, origin: str) -> VivaResult:
	return apply_record(VivaResult(origin=origin), record)


def insert_result(db: Session, record: VivaResultRecord, *, origin: str = "webhook") -> VivaResult:
	row = new_row(record, origin)
	db.add(row)
	db.commit()
	db.refresh(row)
	return row


def save_result(db: Session, record: VivaResultRecord, *, origin: str = "webhook") -> VivaResult:
	"""Insert ``record``, or update the row already holding its call id."""
	if not record.vapi_call_id:
		return insert_result(db, record, origin=origin)
	row = find_by_call_id(db, record.vapi_call_id)
	if row is None:
		return insert_result(db, record, origin=origin)
	apply_record(row, record)
	db.commit()
	db.refresh(row)
	return row


def list_results(db: Session) -> List[VivaResultRecord]:
	rows = db.query(VivaResult).order_by(VivaResult.timestamp.desc(), VivaResult.id.desc()).all()
	return [from_model(r) for r in rows]


def find_by_call_id(db: Session, call_id: str) -> Optional[VivaResult]:
	return db.query(VivaResult).filter(VivaResult.vapi_call_id == call_id).first()


def sync_status(db: Session) -> Tuple[int, Optional[datetime]]:
	count, last = db.query(func.count(VivaResult.id), func.max(VivaResult.timestamp)).one()
	return int(count or 0), as_utc(last) if last is not None else None
