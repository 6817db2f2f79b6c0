from __future__ import annotations
import json
import re
from typing import Any, Dict, List, Optional

import httpx

from .settings import settings


class LLMError(RuntimeError):
	pass


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		# Google AI Studio (Generative Language API), key in query string
		self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
		self._client = httpx.AsyncClient(timeout=60)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._openrouter_api_key = settings.openrouter_api_key
		if self._openrouter_api_key:
			self._fallback_client = httpx.AsyncClient(timeout=60)

	async def generate(self, prompt: str, *, system: Optional[str] = None, json_output: bool = False) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
		if system:
			payload["systemInstruction"] = {"parts": [{"text": system}]}
		if json_output:
			payload["generationConfig"] = {"responseMimeType": "application/json", "temperature": 0.7}
		last_error: Optional[Exception] = None
		try:
			r = await self._client.post(self.base_url, params={"key": self.api_key}, json=payload)
			r.raise_for_status()
			data = r.json()
			return data["candidates"][0]["content"]["parts"][0]["text"]
		except httpx.HTTPError as err:
			last_error = err
		except (KeyError, IndexError, ValueError):
			last_error = LLMError(f"Unexpected Gemini response: {r.text}")
		if self._fallback_client is None:
			raise LLMError(f"Gemini call failed and no fallback configured: {last_error}") from last_error
		return await self._fallback_generate(prompt, system, last_error)

	async def _fallback_generate(self, prompt: str, system: Optional[str], primary_error: Optional[Exception]) -> str:
		messages = []
		if system:
			messages.append({"role": "system", "content": system})
		messages.append({"role": "user", "content": prompt})
		try:
			r = await self._fallback_client.post(
				settings.openrouter_base_url,
				headers={"Authorization": f"Bearer {self._openrouter_api_key}", "Content-Type": "application/json"},
				json={"model": settings.openrouter_model, "messages": messages},
			)
			r.raise_for_status()
			return r.json()["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			raise LLMError(
				f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
			) from fallback_err

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()


SYSTEM_PROMPT = (
	"You are an expert teacher and examiner who writes viva (oral examination) questions. "
	"Respond with JSON only: {\"documentSummary\": string, \"topics\": [string], "
	"\"questions\": [{\"id\": int, \"question\": string, \"expectedAnswer\": string, "
	"\"difficulty\": \"easy\"|\"medium\"|\"hard\", \"topic\": string}]}. "
	"Generate exactly 5 open-ended questions with a mix of difficulty levels."
)


def build_question_prompt(subject: str, difficulty: str, topics: Optional[str], document_text: Optional[str]) -> str:
	lines = [f"Subject: {subject}"]
	if topics:
		lines.append(f"Focus topics: {topics}")
	lines.append(f"Preferred difficulty: {difficulty}")
	if document_text:
		lines.append("")
		lines.append("Document content:")
		lines.append(document_text[:15000])
	return "\n".join(lines)


def _strip_fences(text: str) -> str:
	match = re.search(r"```(?:json)?\s*(.*?)```", text, re.DOTALL)
	return match.group(1) if match else text


def parse_generated(text: str) -> Dict[str, Any]:
	try:
		data = json.loads(_strip_fences(text).strip())
	except ValueError as err:
		raise LLMError("Failed to parse AI response") from err
	if not isinstance(data, dict):
		raise LLMError("Failed to parse AI response")
	questions: List[Dict[str, Any]] = []
	for index, q in enumerate(data.get("questions") or []):
		if not isinstance(q, dict) or not str(q.get("question") or "").strip():
			continue
		difficulty = str(q.get("difficulty") or "medium").lower()
		questions.append({
			"id": index + 1,
			"question": str(q["question"]).strip(),
			"expectedAnswer": str(q.get("expectedAnswer") or "").strip(),
			"difficulty": difficulty if difficulty in ("easy", "medium", "hard") else "medium",
			"topic": str(q.get("topic") or "").strip(),
		})
	return {
		"questions": questions,
		"documentSummary": str(data.get("documentSummary") or ""),
		"topics": [str(t) for t in data.get("topics") or []],
	}


async def generate_viva_questions(
	client: GeminiClient,
	subject: str,
	difficulty: str = "mixed",
	topics: Optional[str] = None,
	document_text: Optional[str] = None,
) -> Dict[str, Any]:
	prompt = build_question_prompt(subject, difficulty, topics, document_text)
	text = await client.generate(prompt, system=SYSTEM_PROMPT, json_output=True)
	return parse_generated(text)
