"""Normalization of the timestamp text found in result rows.

The student app has written several formats into the ``Viva Results`` sheet over
time: ISO-8601 instants (``2026-01-15T10:11:35.724Z``), display strings
(``15 Jan 2026, 3:38 pm``) and bare slash dates (``1/15/2026``). Everything that
sorts or stores results goes through :func:`normalize_timestamp` so ordering is
by instant, never by string.
"""
from __future__ import annotations

import re
from datetime import datetime, timezone, tzinfo
from email.utils import parsedate_to_datetime
from typing import Optional
from zoneinfo import ZoneInfo

from .settings import settings


MONTHS = {
	"jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
	"jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_DISPLAY_RE = re.compile(
	r"(\d{1,2})\s+(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)\s+(\d{4}),?\s*"
	r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(am|pm)?",
	re.IGNORECASE,
)
_SLASH_RE = re.compile(r"(\d{1,2})/(\d{1,2})/(\d{2,4})")

_GENERIC_FORMATS = (
	"%Y-%m-%d %H:%M:%S",
	"%Y-%m-%d %H:%M",
	"%Y-%m-%d",
	"%d %B %Y",
	"%d %b %Y",
	"%B %d, %Y",
	"%b %d, %Y",
	"%d-%m-%Y",
	"%b %d, %Y %I:%M %p",
)


def local_zone() -> tzinfo:
	"""Zone used for timestamps that carry no offset of their own."""
	if settings.viva_timezone:
		return ZoneInfo(settings.viva_timezone)
	return datetime.now().astimezone().tzinfo or timezone.utc


def _parse_iso(text: str) -> Optional[datetime]:
	candidate = text.strip()
	if candidate.endswith("Z") or candidate.endswith("z"):
		candidate = candidate[:-1] + "+00:00"
	try:
		return datetime.fromisoformat(candidate)
	except ValueError:
		pass
	# fromisoformat on older interpreters rejects fractions that are not 3 or 6 digits
	match = re.match(r"^(.*T\d{2}:\d{2}:\d{2})\.(\d+)(.*)$", candidate)
	if match:
		head, fraction, tail = match.groups()
		try:
			return datetime.fromisoformat(f"{head}.{fraction[:6].ljust(6, '0')}{tail}")
		except ValueError:
			return None
	return None


def _parse_display(text: str, zone: tzinfo) -> Optional[datetime]:
	match = _DISPLAY_RE.search(text)
	if not match:
		return None
	day, month, year, hour, minute, second, ampm = match.groups()
	hour24 = int(hour)
	if ampm:
		ampm = ampm.lower()
		if ampm == "pm" and hour24 != 12:
			hour24 += 12
		elif ampm == "am" and hour24 == 12:
			hour24 = 0
	try:
		return datetime(
			int(year),
			MONTHS[month.lower()],
			int(day),
			hour24,
			int(minute),
			int(second or 0),
			tzinfo=zone,
		)
	except ValueError:
		return None


def _parse_slash(text: str, zone: tzinfo) -> Optional[datetime]:
	match = _SLASH_RE.search(text)
	if not match:
		return None
	month, day, year = match.groups()
	full_year = 2000 + int(year) if len(year) == 2 else int(year)
	try:
		return datetime(full_year, int(month), int(day), tzinfo=zone)
	except ValueError:
		return None


def _parse_generic(text: str, zone: tzinfo) -> Optional[datetime]:
	parsed = _parse_iso(text)
	if parsed is None:
		try:
			parsed = parsedate_to_datetime(text)
		except (TypeError, ValueError, IndexError):
			parsed = None
	if parsed is None:
		for fmt in _GENERIC_FORMATS:
			try:
				parsed = datetime.strptime(text, fmt)
				break
			except ValueError:
				continue
	if parsed is None:
		return None
	if parsed.tzinfo is None:
		parsed = parsed.replace(tzinfo=zone)
	return parsed


def parse_timestamp(text: Optional[str], tz: Optional[tzinfo] = None) -> Optional[datetime]:
	"""Parse ``text`` into an aware datetime, or ``None`` when no format applies."""
	if text is None:
		return None
	if isinstance(text, datetime):
		return text if text.tzinfo else text.replace(tzinfo=tz or local_zone())
	text = str(text).strip()
	if not text:
		return None
	zone = tz or local_zone()
	if "T" in text and ("Z" in text or "+" in text):
		parsed = _parse_iso(text)
		if parsed is not None and parsed.tzinfo is not None:
			return parsed
	return _parse_display(text, zone) or _parse_slash(text, zone) or _parse_generic(text, zone)


def normalize_timestamp(text: Optional[str], tz: Optional[tzinfo] = None) -> datetime:
	"""Like :func:`parse_timestamp` but falls back to the current instant."""
	parsed = parse_timestamp(text, tz)
	if parsed is None:
		return datetime.now(timezone.utc)
	return parsed


def as_utc(value: datetime) -> datetime:
	# SQLite hands back naive datetimes; everything is stored as UTC
	if value.tzinfo is None:
		return value.replace(tzinfo=timezone.utc)
	return value.astimezone(timezone.utc)


def format_iso(value: datetime) -> str:
	return as_utc(value).isoformat(timespec="milliseconds").replace("+00:00", "Z")
