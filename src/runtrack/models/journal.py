"""Durable key-value slot used by the crash-recovery journal."""
from datetime import datetime

from sqlmodel import Field, SQLModel


class JournalSlot(SQLModel, table=True):
    """One row per well-known key; writes overwrite, never append."""

    key: str = Field(primary_key=True)
    value: str
    updated_at: datetime = Field(default_factory=datetime.utcnow)
