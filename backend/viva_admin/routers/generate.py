from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..llm_client import GeminiClient, LLMError, generate_viva_questions
from .auth import Teacher, get_current_teacher

router = APIRouter(tags=["generate"])

TEXT_SUFFIXES = (".txt", ".md")


async def get_question_client():
	try:
		client = GeminiClient()
	except ValueError as e:
		raise HTTPException(status_code=500, detail=f"{e}. Question generation is unavailable.")
	try:
		yield client
	finally:
		await client.aclose()


async def _read_document(document: Optional[UploadFile]) -> Optional[str]:
	if document is None or not document.filename:
		return None
	name = document.filename.lower()
	if not (name.endswith(TEXT_SUFFIXES) or document.content_type == "text/plain"):
		raise HTTPException(
			status_code=400,
			detail="Unsupported file format. Upload a TXT or MD file, paste the text, or use Topic Only mode.",
		)
	content = await document.read()
	text = content.decode("utf-8", errors="ignore").strip()
	return text or None


@router.post("/generate-viva")
async def generate_viva(
	subject: str = Form("General"),
	difficulty: str = Form("mixed"),
	topics: Optional[str] = Form(None),
	textContent: Optional[str] = Form(None),
	topicOnly: bool = Form(False),
	document: Optional[UploadFile] = File(None),
	client: GeminiClient = Depends(get_question_client),
	teacher: Teacher = Depends(get_current_teacher),
):
	document_text = None
	if not topicOnly:
		document_text = await _read_document(document) or (textContent or "").strip() or None
	try:
		result = await generate_viva_questions(client, subject, difficulty, topics, document_text)
	except LLMError as e:
		raise HTTPException(status_code=502, detail=str(e))
	if not result["questions"]:
		raise HTTPException(status_code=502, detail="AI response contained no questions")
	return {"success": True, **result}
