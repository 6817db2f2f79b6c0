from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_sheets
from ..read_path import ResultsReader, ResultsUnavailable, compute_stats, summarize_students
from ..sheets import SheetsClient

router = APIRouter(tags=["results"])


async def _load(db: Session, sheets: Optional[SheetsClient]):
	try:
		return await ResultsReader(db, sheets).list_results()
	except ResultsUnavailable as e:
		raise HTTPException(status_code=503, detail=str(e))


@router.get("/results")
@router.get("/viva-results")
async def list_results(db: Session = Depends(get_db), sheets: Optional[SheetsClient] = Depends(get_sheets)):
	results, source = await _load(db, sheets)
	return {
		"success": True,
		"data": [r.to_api() for r in results],
		"count": len(results),
		"source": source,
	}


@router.get("/stats")
async def get_stats(db: Session = Depends(get_db), sheets: Optional[SheetsClient] = Depends(get_sheets)):
	results, source = await _load(db, sheets)
	return {"success": True, "data": compute_stats(results), "source": source}


@router.get("/students")
async def list_students(db: Session = Depends(get_db), sheets: Optional[SheetsClient] = Depends(get_sheets)):
	results, source = await _load(db, sheets)
	students = summarize_students(results)
	return {"success": True, "data": students, "count": len(students), "source": source}
