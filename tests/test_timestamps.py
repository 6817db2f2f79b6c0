from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from viva_admin.timestamps import format_iso, normalize_timestamp, parse_timestamp

UTC = timezone.utc


def test_iso_with_z_is_parsed_as_utc():
	assert normalize_timestamp("2026-01-15T10:11:35.724Z") == datetime(2026, 1, 15, 10, 11, 35, 724000, tzinfo=UTC)


def test_iso_with_offset_keeps_offset():
	dt = normalize_timestamp("2026-01-15T15:41:35+05:30")
	assert dt.utcoffset() == timedelta(hours=5, minutes=30)
	assert dt.astimezone(UTC).hour == 10


@pytest.mark.parametrize(
	"text, expected",
	[
		("15 Jan 2026, 10:41 am", datetime(2026, 1, 15, 10, 41)),
		("15 Jan 2026, 3:38 pm", datetime(2026, 1, 15, 15, 38)),
		("15 jan 2026 03:37 PM", datetime(2026, 1, 15, 15, 37)),
		("1 Feb 2026, 12:05 am", datetime(2026, 2, 1, 0, 5)),
		("1 Feb 2026, 12:30 pm", datetime(2026, 2, 1, 12, 30)),
		("9 Mar 2026, 08:15:42 am", datetime(2026, 3, 9, 8, 15, 42)),
		("9 Mar 2026, 18:15", datetime(2026, 3, 9, 18, 15)),
	],
)
def test_display_format_keeps_literal_fields(text, expected):
	assert normalize_timestamp(text, UTC) == expected.replace(tzinfo=UTC)


def test_display_format_uses_configured_zone():
	zone = ZoneInfo("Asia/Kolkata")
	dt = normalize_timestamp("15 Jan 2026, 3:38 pm", zone)
	assert (dt.year, dt.month, dt.day, dt.hour, dt.minute) == (2026, 1, 15, 15, 38)
	assert dt.utcoffset() == timedelta(hours=5, minutes=30)


@pytest.mark.parametrize(
	"text, expected",
	[
		("1/15/2026", datetime(2026, 1, 15)),
		("12/3/2025", datetime(2025, 12, 3)),
		("3/4/26", datetime(2026, 3, 4)),
	],
)
def test_slash_dates_are_month_first(text, expected):
	assert normalize_timestamp(text, UTC) == expected.replace(tzinfo=UTC)


def test_generic_fallback_formats():
	assert normalize_timestamp("2026-01-15 09:30", UTC) == datetime(2026, 1, 15, 9, 30, tzinfo=UTC)
	assert normalize_timestamp("Thu, 15 Jan 2026 09:30:00 +0000", UTC) == datetime(2026, 1, 15, 9, 30, tzinfo=UTC)


@pytest.mark.parametrize("text", ["", None, "   ", "not a date", "31 Feb 2026, 10:00 am", "13/45/2026"])
def test_unparseable_text_falls_back_to_now(text):
	assert parse_timestamp(text, UTC) is None
	before = datetime.now(UTC)
	dt = normalize_timestamp(text, UTC)
	assert dt.tzinfo is not None
	assert before - timedelta(seconds=1) <= dt <= datetime.now(UTC) + timedelta(seconds=1)


def test_normalization_is_deterministic():
	for text in ("15 Jan 2026, 3:38 pm", "2026-01-15T10:11:35.724Z", "1/15/2026"):
		assert normalize_timestamp(text, UTC) == normalize_timestamp(text, UTC)


def test_mixed_formats_order_by_instant_not_text():
	texts = ["2026-01-15T10:11:35.724Z", "15 Jan 2026, 10:41 am", "15 Jan 2026, 03:38 pm", "15 Jan 2026, 03:37 pm"]
	ordered = sorted(texts, key=lambda t: normalize_timestamp(t, UTC), reverse=True)
	assert ordered == ["15 Jan 2026, 03:38 pm", "15 Jan 2026, 03:37 pm", "15 Jan 2026, 10:41 am", "2026-01-15T10:11:35.724Z"]


def test_format_iso_uses_z_suffix_and_milliseconds():
	assert format_iso(datetime(2026, 1, 15, 10, 11, 35, 724000, tzinfo=UTC)) == "2026-01-15T10:11:35.724Z"
	# naive values come back from SQLite and are UTC
	assert format_iso(datetime(2026, 1, 15, 10, 11)) == "2026-01-15T10:11:00.000Z"
