from __future__ import annotations
import json
import re
from typing import Any, Dict, Optional

_INT_RE = re.compile(r"(\d+)")


def first_int(value: Any) -> int:
	"""First run of digits in ``value`` ("75/100" -> 75, "8 questions" -> 8), else 0."""
	if value is None or isinstance(value, bool):
		return 0
	if isinstance(value, int):
		return max(value, 0)
	if isinstance(value, float):
		return max(int(value), 0)
	match = _INT_RE.search(str(value))
	return int(match.group(1)) if match else 0


def parse_evaluation(value: Any) -> Optional[Dict[str, Any]]:
	"""Best-effort decode of the evaluation column; anything malformed is dropped."""
	if value is None:
		return None
	if isinstance(value, dict):
		return value
	text = str(value).strip()
	if not text.startswith("{"):
		return None
	try:
		data = json.loads(text)
	except (TypeError, ValueError):
		return None
	return data if isinstance(data, dict) else None


def join_topics(value: Any) -> str:
	# The student app sends either a list or an already comma-joined string
	if value is None:
		return ""
	if isinstance(value, str) and value.strip().startswith("["):
		try:
			decoded = json.loads(value)
		except ValueError:
			decoded = None
		if isinstance(decoded, list):
			value = decoded
	if isinstance(value, (list, tuple)):
		return ", ".join(str(v).strip() for v in value if str(v).strip())
	return str(value).strip()


def clean_text(value: Any) -> str:
	if value is None:
		return ""
	return str(value).strip()
