"""
Key/value store abstraction: a single table of (key, value) pairs where the
value is an arbitrary JSON record and keys are namespaced by prefix.
"""

from __future__ import annotations

import copy
import threading
from typing import Dict, Iterable, Optional, Protocol

from sqlalchemy import JSON, Column, String, create_engine, delete, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker


class KeyValueStore(Protocol):
    """Operations the services need from the key/value table."""

    def get(self, key: str) -> Optional[dict]:
        ...

    def set(self, key: str, value: dict) -> None:
        ...

    def set_many(self, items: Dict[str, dict]) -> None:
        """Write all items or none of them."""
        ...

    def delete(self, key: str) -> None:
        ...

    def get_by_prefix(self, prefix: str) -> list[dict]:
        """Return every value whose key starts with prefix, in no particular order."""
        ...


class InMemoryKeyValueStore:
    """Dictionary-backed store for development and tests."""

    def __init__(self):
        self.items: Dict[str, dict] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[dict]:
        with self._lock:
            value = self.items.get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: dict) -> None:
        with self._lock:
            self.items[key] = copy.deepcopy(value)

    def set_many(self, items: Dict[str, dict]) -> None:
        with self._lock:
            for key, value in items.items():
                self.items[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self.items.pop(key, None)

    def get_by_prefix(self, prefix: str) -> list[dict]:
        with self._lock:
            return [
                copy.deepcopy(value)
                for key, value in self.items.items()
                if key.startswith(prefix)
            ]

    def clear(self) -> None:
        with self._lock:
            self.items.clear()


KvBase = declarative_base()


class KvRow(KvBase):
    __tablename__ = "kv_store"

    key = Column(String, primary_key=True)
    value = Column(JSON, nullable=False)


class SqlKeyValueStore:
    """
    SQLAlchemy-backed key/value table. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlKeyValueStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        KvBase.metadata.create_all(self.engine)

    def get(self, key: str) -> Optional[dict]:
        with self.Session() as session:
            row = session.get(KvRow, key)
            return row.value if row else None

    def set(self, key: str, value: dict) -> None:
        self.set_many({key: value})

    def set_many(self, items: Dict[str, dict]) -> None:
        with self.Session() as session:
            for key, value in items.items():
                row = session.get(KvRow, key)
                if row:
                    row.value = value
                else:
                    session.add(KvRow(key=key, value=value))
            session.commit()

    def delete(self, key: str) -> None:
        with self.Session() as session:
            session.execute(delete(KvRow).where(KvRow.key == key))
            session.commit()

    def get_by_prefix(self, prefix: str) -> list[dict]:
        with self.Session() as session:
            stmt = select(KvRow).where(KvRow.key.startswith(prefix, autoescape=True))
            rows: Iterable[KvRow] = session.execute(stmt).scalars().all()
            return [row.value for row in rows]
