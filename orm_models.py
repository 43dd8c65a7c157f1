"""SQLAlchemy ORM models for watermark state and run history.

Used by `watermark.SqlWatermarkStore` and `loader.record_run` when a database is
configured (DATABASE_URL or PG_* variables). Postgres goes through psycopg2;
tests use SQLite.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class WatermarkState(Base):
    __tablename__ = "bookmark_watermarks"

    name = Column(String, primary_key=True)
    value = Column(BigInteger, nullable=False)
    previous_value = Column(BigInteger)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class RunRecord(Base):
    __tablename__ = "bookmark_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    finished_at = Column(DateTime, default=datetime.utcnow, index=True)
    mode = Column(String)
    planned_batches = Column(Integer)
    processed_batches = Column(Integer)
    failed_batches = Column(Integer)
    processed_records = Column(Integer)
    skipped_records = Column(Integer)
    committed = Column(Boolean, default=False)
    watermark = Column(BigInteger)
