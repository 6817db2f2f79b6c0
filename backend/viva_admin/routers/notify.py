from __future__ import annotations
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..mailer import MailerError, ResendMailer, render_result_email
from ..records import from_payload
from ..timestamps import normalize_timestamp
from .auth import Teacher, get_current_teacher

router = APIRouter(tags=["notify"])


class ResultEmailRequest(BaseModel):
	to: str
	result: Dict[str, Any]


async def get_mailer():
	try:
		mailer = ResendMailer()
	except ValueError as e:
		raise HTTPException(status_code=500, detail=f"{e}. Result emails are unavailable.")
	try:
		yield mailer
	finally:
		await mailer.aclose()


@router.post("/send-result-email")
async def send_result_email(
	req: ResultEmailRequest,
	mailer: ResendMailer = Depends(get_mailer),
	teacher: Teacher = Depends(get_current_teacher),
):
	to = req.to.strip()
	if "@" not in to:
		raise HTTPException(status_code=400, detail="A valid recipient email is required")
	if not str(req.result.get("studentName") or "").strip():
		raise HTTPException(status_code=400, detail="Result is missing studentName")
	record = from_payload(req.result, normalize_timestamp(req.result.get("timestamp")))
	try:
		sent = await mailer.send(to, f"Your viva result: {record.subject}", render_result_email(record))
	except MailerError as e:
		raise HTTPException(status_code=502, detail=str(e))
	return {"success": True, "id": sent.get("id"), "message": f"Result email sent to {to}"}
