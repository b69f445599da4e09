"""
Document store abstraction: an in-memory implementation for development and
tests, and a SQLAlchemy-backed implementation for any SQL database.

Every collection holds owner-scoped JSON documents. The SQL store mirrors the
fields used for filtering and grouping into real columns so aggregations run
inside the database.
"""

from __future__ import annotations

import copy
import threading
import uuid
from collections import Counter, defaultdict
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional, Protocol

from sqlalchemy import (
    JSON,
    Column,
    Float,
    String,
    and_,
    create_engine,
    delete,
    func,
    or_,
    select,
)
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

CLASSES = "classes"
TRANSACTIONS = "transactions"
TASKS = "tasks"
COLLECTIONS = (CLASSES, TRANSACTIONS, TASKS)

INCOME = "Income"
EXPENSE = "Expense"

TASK_STATUSES = ("todo", "inprogress", "done")

# Default ordering of `find` per collection: (document field, descending).
DEFAULT_SORT: Dict[str, Optional[tuple[str, bool]]] = {
    CLASSES: None,
    TRANSACTIONS: ("date", True),
    TASKS: ("createdAt", True),
}


def to_iso(value: datetime) -> str:
    """Format a datetime as the UTC ISO string stored in documents."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def utc_now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


class UnknownCollectionError(KeyError):
    pass


@dataclass
class InsertResult:
    inserted_id: str

    def as_dict(self) -> dict:
        return {"acknowledged": True, "insertedId": self.inserted_id}


@dataclass
class UpdateResult:
    matched_count: int
    modified_count: int

    def as_dict(self) -> dict:
        return {
            "acknowledged": True,
            "matchedCount": self.matched_count,
            "modifiedCount": self.modified_count,
        }


@dataclass
class DeleteResult:
    deleted_count: int

    def as_dict(self) -> dict:
        return {"acknowledged": True, "deletedCount": self.deleted_count}


class DocumentStore(Protocol):
    """Interface for the three owner-scoped collections."""

    def insert(self, collection: str, document: dict) -> InsertResult:
        ...

    def find(self, collection: str, *, email: Optional[str] = None) -> list[dict]:
        ...

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        ...

    def update(self, collection: str, doc_id: str, fields: dict) -> UpdateResult:
        ...

    def delete(self, collection: str, doc_id: str) -> DeleteResult:
        ...

    def count(self, collection: str, email: str) -> int:
        ...

    def task_status_counts(
        self, email: str, window_start: str, window_end: str
    ) -> dict[str, int]:
        ...

    def task_priority_counts(self, email: str) -> list[tuple[str, int]]:
        ...

    def completed_tasks_per_day(
        self, email: str, since: str
    ) -> list[tuple[str, int]]:
        ...

    def transaction_totals_by_type(self, email: str) -> dict[str, float]:
        ...

    def transaction_total(self, email: str, type_: str) -> Optional[float]:
        ...

    def class_counts_by_subject(self, email: str) -> list[tuple[str, int]]:
        ...

    def expense_totals_by_category(self, email: str) -> list[tuple[str, float]]:
        ...

    def monthly_transaction_totals(
        self, email: str
    ) -> list[tuple[str, str, float]]:
        ...


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise UnknownCollectionError(collection)


def _in_window(value: Optional[str], start: str, end: str) -> bool:
    return value is not None and start <= value <= end


class InMemoryDocumentStore:
    """Simple in-memory document store for development and tests."""

    def __init__(self):
        self.collections: Dict[str, Dict[str, dict]] = {
            name: {} for name in COLLECTIONS
        }

    def _docs(self, collection: str) -> Dict[str, dict]:
        _check_collection(collection)
        return self.collections[collection]

    def _owned(self, collection: str, email: str) -> list[dict]:
        return [d for d in self._docs(collection).values() if d.get("email") == email]

    def insert(self, collection: str, document: dict) -> InsertResult:
        doc_id = uuid.uuid4().hex
        stored = copy.deepcopy(document)
        stored["_id"] = doc_id
        self._docs(collection)[doc_id] = stored
        return InsertResult(inserted_id=doc_id)

    def find(self, collection: str, *, email: Optional[str] = None) -> list[dict]:
        docs = [
            copy.deepcopy(d)
            for d in self._docs(collection).values()
            if email is None or d.get("email") == email
        ]
        sort = DEFAULT_SORT[collection]
        if sort:
            field_name, descending = sort
            docs.sort(key=lambda d: d.get(field_name) or "", reverse=descending)
        return docs

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        doc = self._docs(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def update(self, collection: str, doc_id: str, fields: dict) -> UpdateResult:
        doc = self._docs(collection).get(doc_id)
        if doc is None:
            return UpdateResult(matched_count=0, modified_count=0)
        changed = any(doc.get(k) != v for k, v in fields.items())
        doc.update(copy.deepcopy(fields))
        return UpdateResult(matched_count=1, modified_count=int(changed))

    def delete(self, collection: str, doc_id: str) -> DeleteResult:
        removed = self._docs(collection).pop(doc_id, None)
        return DeleteResult(deleted_count=0 if removed is None else 1)

    def count(self, collection: str, email: str) -> int:
        return len(self._owned(collection, email))

    def task_status_counts(
        self, email: str, window_start: str, window_end: str
    ) -> dict[str, int]:
        counts: Counter = Counter()
        for task in self._owned(TASKS, email):
            if _in_window(task.get("deadline"), window_start, window_end) or (
                task.get("status") in TASK_STATUSES
            ):
                counts[task.get("status")] += 1
        return dict(counts)

    def task_priority_counts(self, email: str) -> list[tuple[str, int]]:
        counts = Counter(t.get("priority") for t in self._owned(TASKS, email))
        return list(counts.items())

    def completed_tasks_per_day(
        self, email: str, since: str
    ) -> list[tuple[str, int]]:
        counts: Counter = Counter()
        for task in self._owned(TASKS, email):
            updated_at = task.get("updatedAt")
            if task.get("status") == "done" and updated_at and updated_at >= since:
                counts[updated_at[:10]] += 1
        return sorted(counts.items())

    def transaction_totals_by_type(self, email: str) -> dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for txn in self._owned(TRANSACTIONS, email):
            totals[txn.get("type")] += txn.get("amount") or 0
        return dict(totals)

    def transaction_total(self, email: str, type_: str) -> Optional[float]:
        amounts = [
            t.get("amount") or 0
            for t in self._owned(TRANSACTIONS, email)
            if t.get("type") == type_
        ]
        return sum(amounts) if amounts else None

    def class_counts_by_subject(self, email: str) -> list[tuple[str, int]]:
        counts = Counter(c.get("subject") for c in self._owned(CLASSES, email))
        return list(counts.items())

    def expense_totals_by_category(self, email: str) -> list[tuple[str, float]]:
        totals: Dict[str, float] = defaultdict(float)
        for txn in self._owned(TRANSACTIONS, email):
            if txn.get("type") == EXPENSE:
                totals[txn.get("category")] += txn.get("amount") or 0
        return list(totals.items())

    def monthly_transaction_totals(
        self, email: str
    ) -> list[tuple[str, str, float]]:
        totals: Dict[tuple[str, str], float] = defaultdict(float)
        for txn in self._owned(TRANSACTIONS, email):
            month = (txn.get("date") or "")[:7]
            totals[(month, txn.get("type"))] += txn.get("amount") or 0
        return [(month, type_, total) for (month, type_), total in totals.items()]


Base = declarative_base()


class ClassRow(Base):
    __tablename__ = "classes"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    subject = Column(String, nullable=True)
    data = Column("document", JSON, nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    type = Column(String, nullable=True)
    amount = Column(Float, nullable=True)
    category = Column(String, nullable=True)
    date = Column(String, nullable=True)
    data = Column("document", JSON, nullable=False)


class TaskRow(Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    status = Column(String, nullable=True, index=True)
    priority = Column(String, nullable=True)
    deadline = Column(String, nullable=True)
    created_at = Column(String, nullable=True)
    updated_at = Column(String, nullable=True)
    data = Column("document", JSON, nullable=False)


ROW_TYPES = {CLASSES: ClassRow, TRANSACTIONS: TransactionRow, TASKS: TaskRow}

# Document fields mirrored into columns, keyed by document field name.
MIRRORED_FIELDS = {
    CLASSES: {"email": "email", "subject": "subject"},
    TRANSACTIONS: {
        "email": "email",
        "type": "type",
        "amount": "amount",
        "category": "category",
        "date": "date",
    },
    TASKS: {
        "email": "email",
        "status": "status",
        "priority": "priority",
        "deadline": "deadline",
        "createdAt": "created_at",
        "updatedAt": "updated_at",
    },
}


def _sync_columns(collection: str, row, document: dict) -> None:
    for field_name, column in MIRRORED_FIELDS[collection].items():
        value = document.get(field_name)
        if column == "amount" and value is not None:
            value = float(value)
        setattr(row, column, value)


def _to_document(row) -> dict:
    document = dict(row.data or {})
    document["_id"] = row.id
    return document


class SqlDocumentStore:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDocumentStore")
        engine_kwargs: dict = {"future": True, "pool_pre_ping": True}
        self._lock: Optional[threading.Lock] = None
        if database_url.startswith("sqlite"):
            # Stats queries run on worker threads.
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url:
                # One shared connection, otherwise each thread sees an empty database.
                engine_kwargs["poolclass"] = StaticPool
                # The shared sqlite3 connection allows one session at a time.
                self._lock = threading.Lock()
        else:
            engine_kwargs["pool_recycle"] = 1800
        self.engine = create_engine(database_url, **engine_kwargs)
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock or nullcontext():
            with self.Session() as session:
                yield session

    def _row_type(self, collection: str):
        _check_collection(collection)
        return ROW_TYPES[collection]

    def insert(self, collection: str, document: dict) -> InsertResult:
        row_type = self._row_type(collection)
        doc_id = uuid.uuid4().hex
        with self._session() as session:
            row = row_type(id=doc_id, data=copy.deepcopy(document))
            _sync_columns(collection, row, document)
            session.add(row)
            session.commit()
        return InsertResult(inserted_id=doc_id)

    def find(self, collection: str, *, email: Optional[str] = None) -> list[dict]:
        row_type = self._row_type(collection)
        stmt = select(row_type)
        if email is not None:
            stmt = stmt.where(row_type.email == email)
        sort = DEFAULT_SORT[collection]
        if sort:
            field_name, descending = sort
            column = getattr(row_type, MIRRORED_FIELDS[collection][field_name])
            stmt = stmt.order_by(column.desc() if descending else column.asc())
        with self._session() as session:
            return [_to_document(row) for row in session.execute(stmt).scalars()]

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        row_type = self._row_type(collection)
        with self._session() as session:
            row = session.get(row_type, doc_id)
            return _to_document(row) if row else None

    def update(self, collection: str, doc_id: str, fields: dict) -> UpdateResult:
        row_type = self._row_type(collection)
        with self._session() as session:
            row = session.get(row_type, doc_id)
            if not row:
                return UpdateResult(matched_count=0, modified_count=0)
            current = dict(row.data or {})
            changed = any(current.get(k) != v for k, v in fields.items())
            current.update(copy.deepcopy(fields))
            row.data = current
            _sync_columns(collection, row, current)
            session.commit()
            return UpdateResult(matched_count=1, modified_count=int(changed))

    def delete(self, collection: str, doc_id: str) -> DeleteResult:
        row_type = self._row_type(collection)
        with self._session() as session:
            result = session.execute(delete(row_type).where(row_type.id == doc_id))
            session.commit()
            return DeleteResult(deleted_count=result.rowcount or 0)

    def count(self, collection: str, email: str) -> int:
        row_type = self._row_type(collection)
        stmt = select(func.count()).select_from(row_type).where(row_type.email == email)
        with self._session() as session:
            return session.execute(stmt).scalar_one()

    def task_status_counts(
        self, email: str, window_start: str, window_end: str
    ) -> dict[str, int]:
        stmt = (
            select(TaskRow.status, func.count())
            .where(
                TaskRow.email == email,
                or_(
                    and_(
                        TaskRow.deadline >= window_start,
                        TaskRow.deadline <= window_end,
                    ),
                    TaskRow.status.in_(TASK_STATUSES),
                ),
            )
            .group_by(TaskRow.status)
        )
        with self._session() as session:
            return {status: count for status, count in session.execute(stmt)}

    def task_priority_counts(self, email: str) -> list[tuple[str, int]]:
        stmt = (
            select(TaskRow.priority, func.count())
            .where(TaskRow.email == email)
            .group_by(TaskRow.priority)
        )
        with self._session() as session:
            return [(priority, count) for priority, count in session.execute(stmt)]

    def completed_tasks_per_day(
        self, email: str, since: str
    ) -> list[tuple[str, int]]:
        day = func.substr(TaskRow.updated_at, 1, 10)
        stmt = (
            select(day, func.count())
            .where(
                TaskRow.email == email,
                TaskRow.status == "done",
                TaskRow.updated_at >= since,
            )
            .group_by(day)
            .order_by(day.asc())
        )
        with self._session() as session:
            return [(date, count) for date, count in session.execute(stmt)]

    def transaction_totals_by_type(self, email: str) -> dict[str, float]:
        stmt = (
            select(TransactionRow.type, func.sum(TransactionRow.amount))
            .where(TransactionRow.email == email)
            .group_by(TransactionRow.type)
        )
        with self._session() as session:
            return {type_: total or 0 for type_, total in session.execute(stmt)}

    def transaction_total(self, email: str, type_: str) -> Optional[float]:
        stmt = select(func.sum(TransactionRow.amount)).where(
            TransactionRow.email == email, TransactionRow.type == type_
        )
        with self._session() as session:
            return session.execute(stmt).scalar_one()

    def class_counts_by_subject(self, email: str) -> list[tuple[str, int]]:
        stmt = (
            select(ClassRow.subject, func.count())
            .where(ClassRow.email == email)
            .group_by(ClassRow.subject)
        )
        with self._session() as session:
            return [(subject, count) for subject, count in session.execute(stmt)]

    def expense_totals_by_category(self, email: str) -> list[tuple[str, float]]:
        stmt = (
            select(TransactionRow.category, func.sum(TransactionRow.amount))
            .where(TransactionRow.email == email, TransactionRow.type == EXPENSE)
            .group_by(TransactionRow.category)
        )
        with self._session() as session:
            return [(category, total or 0) for category, total in session.execute(stmt)]

    def monthly_transaction_totals(
        self, email: str
    ) -> list[tuple[str, str, float]]:
        month = func.substr(TransactionRow.date, 1, 7)
        stmt = (
            select(month, TransactionRow.type, func.sum(TransactionRow.amount))
            .where(TransactionRow.email == email)
            .group_by(month, TransactionRow.type)
        )
        with self._session() as session:
            return [
                (month_value or "", type_, total or 0)
                for month_value, type_, total in session.execute(stmt)
            ]
