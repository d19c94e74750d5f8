"""SQLAlchemy database models."""

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class CaseDB(Base):
    """SQLAlchemy model for cases table."""

    __tablename__ = "cases"

    id = Column(String(36), primary_key=True)
    casenumber = Column(String(200), nullable=False, index=True)
    department = Column(String(20), nullable=False, index=True)

    # Stored as midnight UTC of the due date
    due = Column(DateTime(timezone=True), nullable=False, index=True)

    priority = Column(Boolean, nullable=False, default=False)
    completed = Column(Boolean, nullable=False, default=False)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    modifiers = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )


class CaseHistoryDB(Base):
    """SQLAlchemy model for the append-only case_history table.

    ``case_id`` is a plain reference: history outlives deleted and purged cases.
    """

    __tablename__ = "case_history"

    id = Column(String(36), primary_key=True)
    case_id = Column(String(36), nullable=False, index=True)
    action = Column(Text, nullable=False)
    user_name = Column(String(100), nullable=False, default="")
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )


class ActiveDeviceDB(Base):
    """SQLAlchemy model for presence records, one per user name."""

    __tablename__ = "active_devices"

    user_name = Column(String(100), primary_key=True)
    app_version = Column(String(50), nullable=False)
    last_seen = Column(DateTime(timezone=True), nullable=False)
