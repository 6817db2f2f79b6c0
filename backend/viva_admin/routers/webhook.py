from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_sheets
from ..ingestion import InvalidPayload, ingest_result
from ..sheets import SheetsClient

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/viva-result")
async def receive_viva_result(
	payload: Dict[str, Any] = Body(...),
	db: Session = Depends(get_db),
	sheets: Optional[SheetsClient] = Depends(get_sheets),
):
	try:
		outcome = await ingest_result(payload, db, sheets)
	except InvalidPayload as e:
		raise HTTPException(status_code=400, detail=str(e))
	return {
		"success": True,
		"savedToDatabase": outcome.saved_to_database,
		"savedToSheet": outcome.saved_to_sheet,
		"message": outcome.message,
	}
