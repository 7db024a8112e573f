"""
Entity record store with a SQLAlchemy implementation and an in-memory test
implementation.

Records are plain dicts keyed by ``id`` with ``created_date`` and
``updated_date`` timestamps, grouped by entity name (``Pedido``, ``Port``...).
"""

from __future__ import annotations

import copy
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Protocol

from sqlalchemy import JSON, Column, Integer, String, create_engine, select
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from gestao.types import Entity

Criteria = Mapping[str, Any]


class RecordNotFound(LookupError):
    """Raised when an update/delete targets a record that does not exist."""

    def __init__(self, entity: str, record_id: str):
        super().__init__(f"{entity} {record_id} não encontrado")
        self.entity = entity
        self.record_id = record_id


class EntityStore(Protocol):
    """Interface for entity persistence."""

    def list(self, entity: str) -> list[dict]:
        ...

    def filter(self, entity: str, criteria: Criteria) -> list[dict]:
        ...

    def get(self, entity: str, record_id: str) -> Optional[dict]:
        ...

    def create(self, entity: str, data: Mapping[str, Any]) -> dict:
        ...

    def update(self, entity: str, record_id: str, changes: Mapping[str, Any]) -> dict:
        ...

    def delete(self, entity: str, record_id: str) -> None:
        ...


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _entity_name(entity: Any) -> str:
    return entity.value if isinstance(entity, Entity) else str(entity)


def _values_equal(value: Any, expected: Any) -> bool:
    if value == expected:
        return True
    if value is None or expected is None:
        return False
    # Ids and codes arrive both as numbers and strings.
    if isinstance(value, str) or isinstance(expected, str):
        return str(value) == str(expected)
    return False


def matches(record: Mapping[str, Any], criteria: Criteria) -> bool:
    """Return True when the record satisfies every criterion."""
    for field_name, expected in criteria.items():
        value = record.get(field_name)
        if isinstance(expected, Mapping) and "$in" in expected:
            if not any(_values_equal(value, option) for option in expected["$in"] or []):
                return False
        elif not _values_equal(value, expected):
            return False
    return True


def _new_record(data: Mapping[str, Any]) -> dict:
    now = utcnow_iso()
    record = dict(copy.deepcopy(dict(data)))
    record["id"] = record.get("id") or uuid.uuid4().hex
    record.setdefault("created_date", now)
    record.setdefault("updated_date", record["created_date"])
    return record


def _merge(record: Mapping[str, Any], changes: Mapping[str, Any]) -> dict:
    merged = dict(record)
    merged.update(copy.deepcopy(dict(changes)))
    merged["id"] = record["id"]
    if "updated_date" not in changes:
        merged["updated_date"] = utcnow_iso()
    return merged


class InMemoryEntityStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.records: Dict[str, Dict[str, dict]] = {}

    def _bucket(self, entity: Any) -> Dict[str, dict]:
        return self.records.setdefault(_entity_name(entity), {})

    def list(self, entity: str) -> list[dict]:
        return [copy.deepcopy(r) for r in self._bucket(entity).values()]

    def filter(self, entity: str, criteria: Criteria) -> list[dict]:
        return [
            copy.deepcopy(r)
            for r in self._bucket(entity).values()
            if matches(r, criteria)
        ]

    def get(self, entity: str, record_id: str) -> Optional[dict]:
        if record_id is None:
            return None
        record = self._bucket(entity).get(str(record_id))
        return copy.deepcopy(record) if record else None

    def create(self, entity: str, data: Mapping[str, Any]) -> dict:
        record = _new_record(data)
        self._bucket(entity)[record["id"]] = record
        return copy.deepcopy(record)

    def update(self, entity: str, record_id: str, changes: Mapping[str, Any]) -> dict:
        bucket = self._bucket(entity)
        record = bucket.get(str(record_id))
        if record is None:
            raise RecordNotFound(_entity_name(entity), str(record_id))
        merged = _merge(record, changes)
        bucket[merged["id"]] = merged
        return copy.deepcopy(merged)

    def delete(self, entity: str, record_id: str) -> None:
        if self._bucket(entity).pop(str(record_id), None) is None:
            raise RecordNotFound(_entity_name(entity), str(record_id))

    def seed(self, entity: str, records: Iterable[Mapping[str, Any]]) -> list[dict]:
        return [self.create(entity, r) for r in records]

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.records.clear()


class SqlEntityStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlEntityStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _rows(self, session: Session, entity: Any) -> list["EntityRow"]:
        stmt = (
            select(EntityRow)
            .where(EntityRow.entity == _entity_name(entity))
            .order_by(EntityRow.seq.asc())
        )
        return list(session.execute(stmt).scalars())

    def _row(self, session: Session, entity: Any, record_id: str) -> Optional["EntityRow"]:
        stmt = select(EntityRow).where(
            EntityRow.entity == _entity_name(entity),
            EntityRow.record_id == str(record_id),
        )
        return session.execute(stmt).scalar_one_or_none()

    def list(self, entity: str) -> list[dict]:
        with self.Session() as session:
            return [copy.deepcopy(row.data) for row in self._rows(session, entity)]

    def filter(self, entity: str, criteria: Criteria) -> list[dict]:
        with self.Session() as session:
            return [
                copy.deepcopy(row.data)
                for row in self._rows(session, entity)
                if matches(row.data, criteria)
            ]

    def get(self, entity: str, record_id: str) -> Optional[dict]:
        if record_id is None:
            return None
        with self.Session() as session:
            row = self._row(session, entity, record_id)
            return copy.deepcopy(row.data) if row else None

    def create(self, entity: str, data: Mapping[str, Any]) -> dict:
        record = _new_record(data)
        with self.Session() as session:
            session.add(
                EntityRow(
                    entity=_entity_name(entity),
                    record_id=record["id"],
                    data=record,
                    created_date=record["created_date"],
                    updated_date=record["updated_date"],
                )
            )
            session.commit()
        return copy.deepcopy(record)

    def update(self, entity: str, record_id: str, changes: Mapping[str, Any]) -> dict:
        with self.Session() as session:
            row = self._row(session, entity, record_id)
            if row is None:
                raise RecordNotFound(_entity_name(entity), str(record_id))
            merged = _merge(row.data, changes)
            # Reassign so the JSON column is flagged dirty.
            row.data = merged
            row.updated_date = merged["updated_date"]
            session.commit()
            return copy.deepcopy(merged)

    def delete(self, entity: str, record_id: str) -> None:
        with self.Session() as session:
            row = self._row(session, entity, record_id)
            if row is None:
                raise RecordNotFound(_entity_name(entity), str(record_id))
            session.delete(row)
            session.commit()


Base = declarative_base()


class EntityRow(Base):
    __tablename__ = "entity_records"

    seq = Column(Integer, primary_key=True, autoincrement=True)
    entity = Column(String, nullable=False, index=True)
    record_id = Column(String, nullable=False, unique=True, index=True)
    data = Column(JSON, nullable=False)
    created_date = Column(String, nullable=False)
    updated_date = Column(String, nullable=False)
