from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./viva.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for mirrors created before the sync columns existed
def ensure_schema(bind=None) -> None:
	bind = bind or engine
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	if "viva_results" in tables:
		cols = {c["name"] for c in inspector.get_columns("viva_results")}
		with bind.begin() as conn:
			if "vapi_call_id" not in cols:
				conn.exec_driver_sql("ALTER TABLE viva_results ADD COLUMN vapi_call_id VARCHAR(128)")
			if "row_key" not in cols:
				conn.exec_driver_sql("ALTER TABLE viva_results ADD COLUMN row_key VARCHAR(64)")
			if "origin" not in cols:
				conn.exec_driver_sql("ALTER TABLE viva_results ADD COLUMN origin VARCHAR(16) DEFAULT 'sheet' NOT NULL")
