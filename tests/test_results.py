from datetime import datetime, timezone

from viva_admin.db import get_db
from viva_admin.deps import get_sheets
from viva_admin.main import app
from viva_admin.read_path import compute_stats, round_half_up, student_status, summarize_students
from viva_admin.records import from_payload
from viva_admin.repository import insert_result

from conftest import result_row

UTC = timezone.utc


def _use_broken_db(session):
	def _broken_db():
		yield session

	app.dependency_overrides[get_db] = _broken_db


def test_empty_database_falls_back_to_sheet(client, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "Asha"),
		result_row("14 Jan 2026, 10:41 am", "Ravi"),
		["", "", ""],
		result_row("13 Jan 2026, 10:41 am", "Meena"),
	]
	r = client.get("/results")
	body = r.json()
	assert r.status_code == 200
	assert body["source"] == "google_sheets"
	assert body["count"] == 3
	assert [d["studentName"] for d in body["data"]] == ["Asha", "Ravi", "Meena"]


def test_mixed_formats_are_ordered_by_instant(client, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "A"),
		result_row("2026-01-15T10:11:35.724Z", "B"),
		result_row("15 Jan 2026, 03:38 pm", "C"),
		result_row("15 Jan 2026, 03:37 pm", "D"),
	]
	data = client.get("/viva-results").json()["data"]
	assert [d["studentName"] for d in data] == ["C", "D", "A", "B"]
	stamps = [datetime.fromisoformat(d["timestamp"].replace("Z", "+00:00")) for d in data]
	assert all(a > b for a, b in zip(stamps, stamps[1:]))


def test_malformed_evaluation_is_omitted(client, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "Asha", evaluation="{not json"),
		result_row("15 Jan 2026, 10:40 am", "Ravi", evaluation='{"clarity": 9}'),
	]
	r = client.get("/results")
	assert r.status_code == 200
	asha, ravi = r.json()["data"]
	assert "evaluation" not in asha
	assert ravi["evaluation"] == {"clarity": 9}


def test_database_rows_take_priority(client, db_session, sheets):
	insert_result(db_session, from_payload({"studentName": "Stored", "score": 61}, datetime(2026, 1, 10, tzinfo=UTC)))
	sheets.tabs["Viva Results"] = [result_row("15 Jan 2026, 10:41 am", "Sheet Only")]
	body = client.get("/results").json()
	assert body["source"] == "database"
	assert [d["studentName"] for d in body["data"]] == ["Stored"]
	assert body["data"][0]["status"] == "passed"
	assert sheets.reads == []


def test_database_outage_falls_back_to_sheet(client, broken_session, sheets):
	_use_broken_db(broken_session)
	sheets.tabs["Viva Results"] = [result_row("15 Jan 2026, 10:41 am", "Asha")]
	body = client.get("/results").json()
	assert body["source"] == "google_sheets"
	assert body["count"] == 1


def test_both_stores_down_is_unavailable(client, broken_session, sheets):
	_use_broken_db(broken_session)
	sheets.fail_reads = True
	assert client.get("/results").status_code == 503


def test_empty_database_and_failed_sheet_returns_empty(client, sheets):
	sheets.fail_reads = True
	body = client.get("/results").json()
	assert body == {"success": True, "data": [], "count": 0, "source": "database"}


def test_missing_results_tab_is_empty(client, sheets):
	del sheets.tabs["Viva Results"]
	body = client.get("/results").json()
	assert body["count"] == 0
	assert body["source"] == "google_sheets"


def test_unconfigured_sheets_with_empty_database(client):
	app.dependency_overrides[get_sheets] = lambda: None
	body = client.get("/results").json()
	assert body["count"] == 0
	assert body["source"] == "database"


def test_stats_endpoint(client, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "A", subject="Physics", score="50"),
		result_row("14 Jan 2026, 10:41 am", "B", subject="Physics", score="49"),
		result_row("13 Jan 2026, 10:41 am", "C", subject="Chemistry", score="90/100"),
	]
	data = client.get("/stats").json()["data"]
	assert data["totalVivas"] == 3
	assert data["totalPassed"] == 2
	assert data["totalFailed"] == 1
	assert data["avgScore"] == 63
	assert data["subjectStats"]["Physics"] == {"count": 2, "avgScore": 50, "passRate": 50}
	assert data["subjectStats"]["Chemistry"] == {"count": 1, "avgScore": 90, "passRate": 100}
	assert [r["studentName"] for r in data["recentResults"]] == ["A", "B", "C"]


def test_stats_on_no_results():
	assert compute_stats([]) == {
		"totalVivas": 0,
		"totalPassed": 0,
		"totalFailed": 0,
		"avgScore": 0,
		"subjectStats": {},
		"recentResults": [],
	}


def test_round_half_up():
	assert round_half_up(62.5) == 63
	assert round_half_up(0.5) == 1
	assert round_half_up(49.49) == 49


def test_students_are_grouped_by_email():
	def rec(name, email, score, day, subject="Physics"):
		return from_payload(
			{"studentName": name, "studentEmail": email, "score": score, "subject": subject},
			datetime(2026, 1, day, 9, 0, tzinfo=UTC),
		)

	students = summarize_students([
		rec("Asha", "asha@school.edu", 40, 10),
		rec("Asha R", "ASHA@school.edu", 51, 12, subject="Chemistry"),
		rec("Ravi", "ravi@school.edu", 80, 14),
	])
	assert [s["name"] for s in students] == ["Ravi", "Asha"]
	ravi, asha = students
	assert ravi["id"] == "STU001"
	assert ravi["status"] == "active"
	assert asha["vivasCompleted"] == 2
	assert asha["averageScore"] == 46
	assert asha["status"] == "at_risk"
	assert asha["subjects"] == ["Physics", "Chemistry"]
	assert asha["lastVivaDate"] == "2026-01-12T09:00:00.000Z"


def test_students_endpoint(client, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "Asha", email="asha@school.edu", score="75"),
		result_row("14 Jan 2026, 10:41 am", "Asha", email="asha@school.edu", score="25"),
	]
	body = client.get("/students").json()
	assert body["count"] == 1
	assert body["data"][0]["averageScore"] == 50
	assert body["data"][0]["status"] == "active"
	assert body["source"] == "google_sheets"


def test_unusable_sheet_credentials_with_database_down(client, broken_session, misconfigured_sheets):
	_use_broken_db(broken_session)
	app.dependency_overrides[get_sheets] = lambda: misconfigured_sheets
	assert client.get("/results").status_code == 503


def test_unusable_sheet_credentials_with_empty_database(client, misconfigured_sheets):
	app.dependency_overrides[get_sheets] = lambda: misconfigured_sheets
	body = client.get("/results").json()
	assert body["count"] == 0
	assert body["source"] == "database"


def test_student_status_rules():
	assert student_status(0, 0) == "pending"
	assert student_status(2, 49) == "at_risk"
	assert student_status(1, 50) == "active"
