from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

import httpx

from .parsing import clean_text, first_int, join_topics, parse_evaluation
from .records import VivaResultRecord
from .settings import settings
from .timestamps import parse_timestamp

logger = logging.getLogger(__name__)


class CallPlatformError(Exception):
	pass


class UnusableCall(ValueError):
	"""A call record that cannot become a viva result (reason in ``args[0]``)."""


class CallPlatformClient:
	"""Lists completed calls from the Vapi REST API."""

	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		assistant_id: Optional[str] = None,
		client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.api_key = api_key or settings.vapi_api_key
		if not self.api_key:
			raise ValueError("VAPI_API_KEY is not configured")
		self.base_url = (base_url or settings.vapi_base_url).rstrip("/")
		self.assistant_id = assistant_id or settings.vapi_assistant_id
		self._client = client or httpx.AsyncClient(timeout=30)

	async def list_calls(self, *, limit: int = 1000) -> List[Dict[str, Any]]:
		params: Dict[str, Any] = {"limit": limit}
		if self.assistant_id:
			params["assistantId"] = self.assistant_id
		try:
			r = await self._client.get(
				f"{self.base_url}/call",
				params=params,
				headers={"Authorization": f"Bearer {self.api_key}"},
			)
			r.raise_for_status()
			data = r.json()
		except httpx.HTTPStatusError as err:
			raise CallPlatformError(f"Call platform returned {err.response.status_code}: {err.response.text}") from err
		except (httpx.RequestError, ValueError) as err:
			raise CallPlatformError(f"Call platform request failed: {err}") from err
		if isinstance(data, dict):
			data = data.get("results") or data.get("data") or []
		return [c for c in data if isinstance(c, dict)]

	async def aclose(self) -> None:
		await self._client.aclose()


def call_to_record(call: Dict[str, Any]) -> VivaResultRecord:
	call_id = clean_text(call.get("id"))
	if not call_id:
		raise UnusableCall("missing call id")
	analysis = call.get("analysis") or {}
	artifact = call.get("artifact") or {}
	structured = analysis.get("structuredData") or {}
	variables = ((call.get("assistantOverrides") or {}).get("variableValues")) or {}
	customer = call.get("customer") or {}

	def pick(key: str) -> Any:
		value = structured.get(key)
		if value in (None, ""):
			value = variables.get(key)
		return value

	student_name = clean_text(pick("studentName") or customer.get("name"))
	if not student_name:
		raise UnusableCall("missing student name")
	stamp_text = call.get("endedAt") or call.get("startedAt") or call.get("createdAt")
	timestamp = parse_timestamp(stamp_text)
	if timestamp is None:
		raise UnusableCall(f"unparseable call time {stamp_text!r}")
	return VivaResultRecord(
		id=call_id,
		timestamp=timestamp,
		student_name=student_name,
		student_email=clean_text(pick("studentEmail") or customer.get("email")),
		subject=clean_text(pick("subject")) or "Unknown Subject",
		topics=join_topics(pick("topics")),
		questions_answered=first_int(pick("questionsAnswered")),
		score=first_int(pick("score")),
		overall_feedback=clean_text(pick("overallFeedback") or analysis.get("summary")),
		transcript=clean_text(artifact.get("transcript") or call.get("transcript")),
		recording_url=clean_text(artifact.get("recordingUrl") or call.get("recordingUrl")) or None,
		evaluation=parse_evaluation(pick("evaluation")),
		vapi_call_id=call_id,
	)
