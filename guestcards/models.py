from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, SQLModel, create_engine, Session

from . import config


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class BatchStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETE = "COMPLETE"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Batch(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    template_name: str
    status: BatchStatus = Field(default=BatchStatus.RUNNING)
    names_count: int = 0
    total_jobs: int = 0
    succeeded: int = 0
    failed: int = 0
    fail_detail: Optional[str] = None
    parent_batch_id: Optional[int] = Field(default=None, foreign_key="batch.id")
    created_at: datetime = Field(default_factory=_utcnow)


class JobRecord(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    batch_id: int = Field(foreign_key="batch.id", index=True)
    job_id: str
    output_id: str = Field(index=True)
    raw_name: str
    page_number: int
    status: str
    error_reason: Optional[str] = None
    error_detail: Optional[str] = None


class Artifact(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    batch_id: int = Field(foreign_key="batch.id")
    type: str
    path: str
    created_at: datetime = Field(default_factory=_utcnow)


engine = create_engine(f"sqlite:///{config.DB_PATH}")


def reset_engine() -> None:
    global engine
    engine.dispose()
    engine = create_engine(f"sqlite:///{config.DB_PATH}")


def init_db() -> None:
    config.OUT_DIR.mkdir(parents=True, exist_ok=True)
    SQLModel.metadata.create_all(engine)
    _migrate_db()


def _migrate_db() -> None:
    """Add columns introduced after a database was first created."""
    try:
        inspector = inspect(engine)
        if "batch" not in inspector.get_table_names():
            return
        columns = {col["name"] for col in inspector.get_columns("batch")}
        if "parent_batch_id" not in columns:
            with engine.begin() as conn:
                conn.execute(text("ALTER TABLE batch ADD COLUMN parent_batch_id INTEGER"))
    except SQLAlchemyError:
        logger.warning("Schema migration skipped", exc_info=True)


def get_session() -> Session:
    return Session(engine, expire_on_commit=False)
