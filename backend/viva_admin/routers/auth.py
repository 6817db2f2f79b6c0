from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel
import logging

from ..catalog import read_teacher_rows
from ..settings import settings
from sqlalchemy.orm import Session
from ..db import get_db
from ..deps import get_teacher_sheets
from ..models import Teacher as TeacherRow
from ..records import cell
from ..sheets import SheetsClient, SheetsError

router = APIRouter(prefix="/auth", tags=["auth"])

logger = logging.getLogger(__name__)
logging.getLogger('passlib').setLevel(logging.ERROR)
# New hashes use pbkdf2; bcrypt hashes already in the credential sheet still verify
pwd_context = CryptContext(schemes=["pbkdf2_sha256", "bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


class LoginRequest(BaseModel):
	email: str
	password: str


class Teacher(BaseModel):
	email: str
	name: str = ""


def hash_password(password: str) -> str:
	return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
	try:
		return pwd_context.verify(plain_password, hashed_password)
	except ValueError:
		# Plaintext or unknown formats are never compared directly
		logger.warning("Stored teacher credential is not a recognised password hash")
		return False


async def authenticate_teacher(
	db: Session,
	teacher_sheets: Optional[SheetsClient],
	email: str,
	password: str,
) -> Optional[Teacher]:
	email = email.strip().lower()
	row = db.get(TeacherRow, email)
	if row is not None:
		if row.status == "active" and verify_password(password, row.password_hash):
			return Teacher(email=row.email, name=row.name)
		return None
	# Mirror not populated yet: read the credential sheet directly
	if teacher_sheets is None or db.query(TeacherRow).first() is not None:
		return None
	rows = await read_teacher_rows(teacher_sheets)
	for sheet_row in rows:
		if cell(sheet_row, 0).lower() == email and verify_password(password, cell(sheet_row, 1)):
			return Teacher(email=email, name=f"{cell(sheet_row, 2)} {cell(sheet_row, 3)}".strip())
	return None


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
	to_encode = data.copy()
	delta = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
	to_encode.update({"exp": datetime.now(timezone.utc) + delta})
	return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


@router.post("/login")
async def login(
	req: LoginRequest,
	db: Session = Depends(get_db),
	teacher_sheets: Optional[SheetsClient] = Depends(get_teacher_sheets),
):
	if not req.email.strip() or not req.password:
		raise HTTPException(status_code=400, detail="Email and password are required")
	try:
		teacher = await authenticate_teacher(db, teacher_sheets, req.email, req.password)
	except SheetsError as e:
		logger.error("Failed to fetch teacher credentials: %s", e)
		status = 403 if e.status_code == 403 else 500
		raise HTTPException(status_code=status, detail=str(e))
	if not teacher:
		raise HTTPException(status_code=401, detail="Invalid email or password")
	access_token = create_access_token({"sub": teacher.email, "name": teacher.name})
	return {
		"success": True,
		"message": "Authentication successful",
		"teacher": teacher.model_dump(),
		"access_token": access_token,
		"token_type": "bearer",
	}


def get_current_teacher(token: str = Depends(oauth2_scheme)) -> Teacher:
	credentials_exception = HTTPException(status_code=401, detail="Could not validate credentials")
	try:
		payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
		email: str | None = payload.get("sub")
		if email is None:
			raise credentials_exception
	except JWTError:
		raise credentials_exception
	return Teacher(email=email, name=payload.get("name") or "")


@router.get("/get-teacher")
async def get_teacher(teacher: Teacher = Depends(get_current_teacher)):
	return {"success": True, "teacher": teacher.model_dump()}
