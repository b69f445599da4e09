"""
Pydantic schemas for the StudyDesk API request bodies.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from studydesk.db import EXPENSE, INCOME, to_iso

TaskStatus = Literal["todo", "inprogress", "done"]
TransactionType = Literal["Income", "Expense"]

TIMESTAMP_FIELDS = ("deadline", "scheduledAt")


def _canonical_type(value):
    # Lowercase "income"/"expense" from older clients map to the stored casing.
    if isinstance(value, str) and value.lower() in (INCOME.lower(), EXPENSE.lower()):
        return value.capitalize()
    return value


class DocumentModel(BaseModel):
    """Base for request bodies that are stored as documents."""

    def to_document(self, *, partial: bool = False) -> dict:
        document = self.model_dump(exclude_unset=partial)
        # Ids are assigned by the store and never taken from a body.
        document.pop("_id", None)
        for key in TIMESTAMP_FIELDS:
            if isinstance(document.get(key), datetime):
                document[key] = to_iso(document[key])
        return document


class ClassCreate(DocumentModel):
    model_config = ConfigDict(extra="allow")

    email: str
    subject: str


class ClassUpdate(DocumentModel):
    model_config = ConfigDict(extra="allow")

    email: Optional[str] = None
    subject: Optional[str] = None


class TransactionCreate(DocumentModel):
    email: str
    type: TransactionType
    amount: float
    category: str = ""
    date: str
    notes: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return _canonical_type(value)


class TransactionUpdate(DocumentModel):
    email: Optional[str] = None
    type: Optional[TransactionType] = None
    amount: Optional[float] = None
    category: Optional[str] = None
    date: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return _canonical_type(value)


class TaskCreate(DocumentModel):
    email: str
    title: str
    subject: str = ""
    topic: str = ""
    priority: str = "medium"
    status: TaskStatus = "todo"
    deadline: Optional[datetime] = None
    scheduledAt: Optional[datetime] = None
    durationMinutes: int = Field(default=60, ge=0)


class TaskUpdate(DocumentModel):
    title: Optional[str] = None
    subject: Optional[str] = None
    topic: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[TaskStatus] = None
    deadline: Optional[datetime] = None
    scheduledAt: Optional[datetime] = None
    durationMinutes: Optional[int] = Field(default=None, ge=0)


class TaskStatusUpdate(BaseModel):
    status: Optional[TaskStatus] = None
