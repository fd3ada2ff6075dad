"""SQLAlchemy tables for uploaded files, runs, and extractions."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import declarative_base

from docstruct.models import RunStatus

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class FileRecord(Base):
    __tablename__ = "files"

    file_id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(512), nullable=False)
    mime_type = Column(String(128), nullable=True)
    size = Column(Integer, nullable=False, default=0)
    storage_uri = Column(String(1024), nullable=True)
    pages = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class RunRecord(Base):
    __tablename__ = "runs"

    run_id = Column(String(36), primary_key=True, default=_new_id)
    file_id = Column(String(36), nullable=False, index=True)
    status = Column(String(16), nullable=False, default=RunStatus.QUEUED.value)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    error = Column(String(4000), nullable=True)


class ExtractionRecord(Base):
    __tablename__ = "extractions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_id = Column(String(36), nullable=False, unique=True, index=True)
    document_type = Column(String(128), nullable=True)
    result_json = Column(Text, nullable=False)
    avg_confidence = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
