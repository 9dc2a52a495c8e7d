"""
Injectable key-value stores for the recovery journal.

The journal only ever touches one well-known key, but it goes through
this small get/set/delete interface so tests can use the in-memory store
and the app can use the SQLite-backed one. No process-wide globals.
"""
from datetime import datetime
from typing import Dict, Optional, Protocol

from sqlmodel import Session

from runtrack.models.journal import JournalSlot


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryKeyValueStore:
    """Dict-backed store. Survives nothing; for tests and replays."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SqlKeyValueStore:
    """Store backed by the `journalslot` table."""

    def __init__(self, engine):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
        """
        self.engine = engine

    def get(self, key: str) -> Optional[str]:
        with Session(self.engine) as s:
            row = s.get(JournalSlot, key)
            return row.value if row else None

    def set(self, key: str, value: str) -> None:
        with Session(self.engine) as s:
            row = s.get(JournalSlot, key)
            if row:
                row.value = value
                row.updated_at = datetime.utcnow()
            else:
                row = JournalSlot(key=key, value=value)
            s.add(row)
            s.commit()

    def delete(self, key: str) -> None:
        """Remove the key (does not raise if already absent)."""
        with Session(self.engine) as s:
            row = s.get(JournalSlot, key)
            if row:
                s.delete(row)
                s.commit()
