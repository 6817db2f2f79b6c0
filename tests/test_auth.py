from datetime import timedelta

from viva_admin.deps import get_teacher_sheets
from viva_admin.main import app
from viva_admin.models import Teacher
from viva_admin.routers.auth import create_access_token, hash_password, verify_password

from conftest import FakeSheets


def _add_teacher(db, email="meera@school.edu", password="s3cret!", status="active", password_hash=None):
	db.add(Teacher(email=email, name="Meera Iyer", password_hash=password_hash or hash_password(password), status=status))
	db.commit()


def test_login_with_stored_hash(client, db_session):
	_add_teacher(db_session)
	r = client.post("/auth/login", json={"email": " Meera@School.edu ", "password": "s3cret!"})
	assert r.status_code == 200
	body = r.json()
	assert body["teacher"] == {"email": "meera@school.edu", "name": "Meera Iyer"}
	assert body["token_type"] == "bearer"

	me = client.get("/auth/get-teacher", headers={"Authorization": f"Bearer {body['access_token']}"})
	assert me.status_code == 200
	assert me.json()["teacher"]["email"] == "meera@school.edu"


def test_wrong_password_is_unauthorized(client, db_session):
	_add_teacher(db_session)
	r = client.post("/auth/login", json={"email": "meera@school.edu", "password": "guess"})
	assert r.status_code == 401


def test_inactive_teacher_cannot_log_in(client, db_session):
	_add_teacher(db_session, status="inactive")
	r = client.post("/auth/login", json={"email": "meera@school.edu", "password": "s3cret!"})
	assert r.status_code == 401


def test_plaintext_credentials_never_match(client, db_session):
	_add_teacher(db_session, password_hash="s3cret!")
	r = client.post("/auth/login", json={"email": "meera@school.edu", "password": "s3cret!"})
	assert r.status_code == 401
	assert verify_password("s3cret!", "s3cret!") is False


def test_blank_credentials_are_a_bad_request(client):
	assert client.post("/auth/login", json={"email": "", "password": "x"}).status_code == 400


def test_credential_sheet_is_read_when_no_teachers_are_mirrored(client):
	teachers = FakeSheets({"Staff": [["meera@school.edu", hash_password("s3cret!"), "Meera", "Iyer"]]})
	app.dependency_overrides[get_teacher_sheets] = lambda: teachers
	r = client.post("/auth/login", json={"email": "meera@school.edu", "password": "s3cret!"})
	assert r.status_code == 200
	assert r.json()["teacher"]["name"] == "Meera Iyer"
	assert teachers.reads == ["'Staff'!A2:D"]


def test_credential_sheet_permission_error(client):
	teachers = FakeSheets({"Staff": []})
	teachers.fail_reads = True
	app.dependency_overrides[get_teacher_sheets] = lambda: teachers
	r = client.post("/auth/login", json={"email": "meera@school.edu", "password": "s3cret!"})
	assert r.status_code == 500


def test_expired_or_missing_token_is_rejected(client):
	assert client.get("/auth/get-teacher").status_code == 401
	expired = create_access_token({"sub": "meera@school.edu"}, expires_delta=timedelta(minutes=-5))
	r = client.get("/auth/get-teacher", headers={"Authorization": f"Bearer {expired}"})
	assert r.status_code == 401
