from datetime import datetime, timezone
from sqlmodel import SQLModel, Field
from sqlalchemy import Column, Text


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class KeyValueEntry(SQLModel, table=True):
    """One persisted key holding a JSON-encoded string, overwritten on every write."""
    __tablename__ = "kv_entries"
    key: str = Field(primary_key=True, max_length=128)
    value: str = Field(sa_column=Column(Text, nullable=False))
    updatedAt: datetime = Field(default_factory=utc_now, sa_column_kwargs={"name": "updated_at"})
