from __future__ import annotations
from datetime import datetime
from sqlalchemy import Boolean, Column, String, DateTime, Integer, Text, JSON, UniqueConstraint
from .db import Base


class Subject(Base):
	__tablename__ = "subjects"
	id = Column(Integer, primary_key=True, autoincrement=True)
	name = Column(String(256), unique=True, nullable=False, index=True)
	code = Column(String(64), default="", nullable=False)
	status = Column(String(16), default="active", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class Topic(Base):
	__tablename__ = "topics"
	__table_args__ = (UniqueConstraint("subject_name", "name", name="uq_topics_subject_name"),)
	id = Column(Integer, primary_key=True, autoincrement=True)
	subject_name = Column(String(256), nullable=False, index=True)
	name = Column(String(256), nullable=False)
	status = Column(String(16), default="active", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class VivaResult(Base):
	__tablename__ = "viva_results"
	id = Column(Integer, primary_key=True, autoincrement=True)
	timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
	student_name = Column(String(256), nullable=False)
	student_email = Column(String(256), default="", nullable=False)
	subject = Column(String(256), default="", nullable=False)
	topics = Column(Text, default="", nullable=False)
	questions_answered = Column(Integer, default=0, nullable=False)
	score = Column(Integer, default=0, nullable=False)
	overall_feedback = Column(Text, default="", nullable=False)
	transcript = Column(Text, default="", nullable=False)
	recording_url = Column(Text, nullable=True)
	evaluation = Column(JSON, nullable=True)
	# Natural key from the call platform; only set by the upsert sync and webhook
	vapi_call_id = Column(String(128), unique=True, nullable=True)
	# sha1 of timestamp/email/name, used to match webhook rows against sheet rows
	row_key = Column(String(64), nullable=True, index=True)
	# "webhook", "sheet" or "call_platform"
	origin = Column(String(16), default="sheet", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class VivaQuestion(Base):
	__tablename__ = "viva_questions"
	id = Column(Integer, primary_key=True, autoincrement=True)
	subject = Column(String(256), nullable=False, index=True)
	topics = Column(Text, default="", nullable=False)
	question = Column(Text, nullable=False)
	expected_answer = Column(Text, default="", nullable=False)
	difficulty = Column(String(16), default="medium", nullable=False)
	active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Teacher(Base):
	__tablename__ = "teachers"
	# Primary key is the login email (stored lower-case)
	email = Column(String(256), primary_key=True, index=True)
	name = Column(String(256), default="", nullable=False)
	password_hash = Column(String(256), nullable=False)
	status = Column(String(16), default="active", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
