from datetime import datetime, timezone

from viva_admin.deps import get_sheets
from viva_admin.main import app
from viva_admin.models import Subject, Teacher, Topic, VivaQuestion
from viva_admin.records import from_payload
from viva_admin.repository import insert_result

from conftest import FakeSheets, result_row


def test_status_before_any_sync(client, db_session):
	insert_result(db_session, from_payload({"studentName": "Asha"}, datetime(2026, 1, 15, 10, 0, tzinfo=timezone.utc)))
	body = client.get("/sync-results").json()
	assert body["count"] == 1
	assert body["lastResult"] == "2026-01-15T10:00:00.000Z"
	assert body["lastSync"] is None
	assert body["policy"] == "full_replace"


def test_manual_sync_replaces_mirror(client, db_session, sheets):
	sheets.tabs["Viva Results"] = [
		result_row("15 Jan 2026, 10:41 am", "Asha"),
		result_row("15 Jan 2026, 10:42 am", ""),
	]
	r = client.post("/sync-results")
	body = r.json()
	assert r.status_code == 200
	assert body["success"] is True
	assert body["synced"] == 1
	assert body["skipped"] == [{"row": 3, "reason": "missing student name"}]

	status = client.get("/sync-results").json()
	assert status["count"] == 1
	assert status["lastSync"]["success"] is True
	assert status["lastSync"]["synced"] == 1


def test_manual_sync_failure_leaves_mirror(client, db_session, sheets):
	insert_result(db_session, from_payload({"studentName": "Kept"}, datetime(2026, 1, 1, tzinfo=timezone.utc)), origin="sheet")
	sheets.fail_reads = True
	r = client.post("/sync-results")
	assert r.status_code == 502
	assert client.get("/sync-results").json()["count"] == 1
	assert client.get("/sync-results").json()["lastSync"]["success"] is False


def test_manual_sync_without_sheets_is_a_config_error(client):
	app.dependency_overrides[get_sheets] = lambda: None
	assert client.post("/sync-results").status_code == 500


def test_catalog_sync_requires_login(client):
	assert client.post("/sync-catalog").status_code == 401


def test_catalog_sync(client, db_session, sheets, auth_headers):
	sheets.tabs.update({
		"Subjects": [["Physics", "PHY", "active"], ["", "X"], ["Chemistry", "CHE", ""]],
		"Topics": [["Physics", "Optics", "active"], ["Physics", ""]],
		"Viva Questions": [
			["Physics", "Optics", "What is refraction?", "Bending of light", "Hard", "2026-01-10T09:00:00Z", "TRUE"],
			["Physics", "Optics", "What is refraction?", "Bending of light", "easy", "", "FALSE"],
			["Physics", "Optics", "Define focal length", "", "impossible", "", ""],
		],
	})
	r = client.post("/sync-catalog", headers=auth_headers)
	assert r.status_code == 200
	assert r.json()["synced"] == {"subjects": 2, "topics": 1, "questions": 3}
	assert {s.name for s in db_session.query(Subject).all()} == {"Physics", "Chemistry"}
	assert db_session.query(Topic).one().name == "Optics"
	questions = {q.question: q for q in db_session.query(VivaQuestion).all()}
	assert len(questions) == 2
	assert questions["What is refraction?"].difficulty == "easy"
	assert questions["What is refraction?"].active is False
	assert questions["Define focal length"].difficulty == "medium"


def test_catalog_sync_tolerates_missing_tabs_and_reads_teachers(db_session):
	import asyncio

	from viva_admin.catalog import sync_catalog

	sheets = FakeSheets({"Subjects": [["Physics", "PHY"]]})
	teachers = FakeSheets({"Sheet1": [["Meera@School.edu", "$pbkdf2-sha256$stub", "Meera", "Iyer"], ["", "x"]]})
	counts = asyncio.run(sync_catalog(sheets, db_session, teacher_sheets=teachers))
	assert counts == {"subjects": 1, "topics": 0, "questions": 0, "teachers": 1}
	teacher = db_session.get(Teacher, "meera@school.edu")
	assert teacher.name == "Meera Iyer"


def test_catalog_sync_reports_failed_sections(db_session):
	import asyncio

	from viva_admin.catalog import sync_catalog

	sheets = FakeSheets({"Subjects": [["Physics"]]})
	sheets.fail_reads = True
	counts = asyncio.run(sync_catalog(sheets, db_session))
	assert counts == {"subjects": None, "topics": None, "questions": None}
	assert db_session.query(Subject).count() == 0


def test_manual_sync_with_unusable_credentials_is_a_bad_gateway(client, db_session, misconfigured_sheets):
	insert_result(db_session, from_payload({"studentName": "Kept"}, datetime(2026, 1, 1, tzinfo=timezone.utc)), origin="sheet")
	app.dependency_overrides[get_sheets] = lambda: misconfigured_sheets
	r = client.post("/sync-results")
	assert r.status_code == 502
	assert client.get("/sync-results").json()["count"] == 1
