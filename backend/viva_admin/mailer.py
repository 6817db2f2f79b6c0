from __future__ import annotations
import html
from typing import Any, Dict, List, Optional

import httpx

from .records import PASSING_SCORE, VivaResultRecord
from .settings import settings
from .timestamps import as_utc


class MailerError(RuntimeError):
	pass


def parse_transcript(transcript: str) -> List[Dict[str, str]]:
	"""Split ``AI:`` / ``Student:`` prefixed lines into turns; other lines are ignored."""
	turns = []
	for line in (transcript or "").splitlines():
		line = line.strip()
		if line.startswith("AI:") or line.startswith("Student:"):
			role, _, content = line.partition(":")
			turns.append({"role": role.strip(), "content": content.strip()})
	return turns


def render_result_email(result: VivaResultRecord) -> str:
	passed = result.score >= PASSING_SCORE
	color = ("#10b981" if result.score >= 80 else "#f59e0b") if passed else "#ef4444"
	when = as_utc(result.timestamp).strftime("%d %b %Y, %H:%M UTC")
	esc = html.escape
	rows = []
	evaluation = result.evaluation or {}
	feedback_by_number = {f.get("questionNumber"): f for f in evaluation.get("feedback") or [] if isinstance(f, dict)}
	for mark in evaluation.get("marks") or []:
		if not isinstance(mark, dict):
			continue
		fb = feedback_by_number.get(mark.get("questionNumber")) or {}
		rows.append(
			f"<tr><td>Q{esc(str(mark.get('questionNumber', '')))}: {esc(str(mark.get('question', '')))}</td>"
			f"<td>{esc(str(mark.get('marks', 0)))}/{esc(str(mark.get('maxMarks', 0)))}</td>"
			f"<td>{esc(str(fb.get('feedback', '')))}</td></tr>"
		)
	turns = "".join(
		f"<p><strong>{esc(t['role'])}:</strong> {esc(t['content'])}</p>" for t in parse_transcript(result.transcript)
	)
	breakdown = f"<table>{''.join(rows)}</table>" if rows else ""
	return (
		f"<h2>Viva result: {esc(result.subject)}</h2>"
		f"<p>{esc(result.student_name)}, {esc(when)}</p>"
		f"<p>Topics: {esc(result.topics)}</p>"
		f"<p style=\"color:{color};font-size:24px\">Score: {result.score}/100 ({'Passed' if passed else 'Needs improvement'})</p>"
		f"<p>Questions answered: {result.questions_answered}</p>"
		f"<h3>Overall feedback</h3><p>{esc(result.overall_feedback)}</p>"
		f"{breakdown}"
		f"{'<h3>Transcript</h3>' + turns if turns else ''}"
	)


class ResendMailer:
	def __init__(self, api_key: Optional[str] = None, *, client: Optional[httpx.AsyncClient] = None) -> None:
		self.api_key = api_key or settings.resend_api_key
		if not self.api_key:
			raise ValueError("RESEND_API_KEY is not configured")
		self._client = client or httpx.AsyncClient(timeout=30)

	async def send(self, to: str, subject: str, body_html: str) -> Dict[str, Any]:
		try:
			r = await self._client.post(
				f"{settings.resend_base_url.rstrip('/')}/emails",
				headers={"Authorization": f"Bearer {self.api_key}"},
				json={"from": settings.result_email_from, "to": [to], "subject": subject, "html": body_html},
			)
			r.raise_for_status()
			return r.json()
		except httpx.HTTPStatusError as err:
			raise MailerError(f"Email API returned {err.response.status_code}: {err.response.text}") from err
		except (httpx.RequestError, ValueError) as err:
			raise MailerError(f"Email API request failed: {err}") from err

	async def aclose(self) -> None:
		await self._client.aclose()
