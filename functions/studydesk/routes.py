"""
HTTP routes for the StudyDesk API.
"""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from studydesk.auth import (
    check_owner,
    owner_filter,
    require_owner_email,
    require_verified_user,
)
from studydesk.config import Settings
from studydesk.db import CLASSES, TASKS, TRANSACTIONS, DocumentStore, utc_now_iso
from studydesk.dependencies import get_app_settings, get_stats_engine, get_store
from studydesk.errors import store_errors
from studydesk.schemas import (
    ClassCreate,
    ClassUpdate,
    TaskCreate,
    TaskStatusUpdate,
    TaskUpdate,
    TransactionCreate,
    TransactionUpdate,
)
from studydesk.stats import DEFAULT_TREND_DAYS, StatsEngine

HEALTH_MESSAGE = "Students are focusing on their studies"

health_router = APIRouter()
router = APIRouter(dependencies=[Depends(require_verified_user)])


@health_router.get("/", response_class=PlainTextResponse)
def health() -> str:
    return HEALTH_MESSAGE


# Classes


@router.get("/classes")
def list_classes(
    email: Optional[str] = Depends(owner_filter),
    store: DocumentStore = Depends(get_store),
):
    with store_errors("fetch classes"):
        return store.find(CLASSES, email=email)


@router.post("/classes")
def create_class(
    payload: ClassCreate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    check_owner(request, payload.email, settings)
    with store_errors("add class"):
        return store.insert(CLASSES, payload.to_document()).as_dict()


@router.put("/classes/{class_id}")
def update_class(
    class_id: str,
    payload: ClassUpdate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    check_owner(request, payload.email, settings)
    with store_errors("update class"):
        return store.update(CLASSES, class_id, payload.to_document(partial=True)).as_dict()


@router.delete("/classes/{class_id}")
def delete_class(class_id: str, store: DocumentStore = Depends(get_store)):
    with store_errors("delete class"):
        return store.delete(CLASSES, class_id).as_dict()


# Transactions


@router.get("/transactions")
def list_transactions(
    email: Optional[str] = Depends(owner_filter),
    store: DocumentStore = Depends(get_store),
):
    with store_errors("fetch transactions"):
        return store.find(TRANSACTIONS, email=email)


@router.post("/transactions")
def create_transaction(
    payload: TransactionCreate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    check_owner(request, payload.email, settings)
    with store_errors("add transaction"):
        return store.insert(TRANSACTIONS, payload.to_document()).as_dict()


@router.put("/transactions/{transaction_id}")
def update_transaction(
    transaction_id: str,
    payload: TransactionUpdate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    check_owner(request, payload.email, settings)
    with store_errors("update transaction"):
        result = store.update(
            TRANSACTIONS, transaction_id, payload.to_document(partial=True)
        )
        return result.as_dict()


@router.delete("/transactions/{transaction_id}")
def delete_transaction(transaction_id: str, store: DocumentStore = Depends(get_store)):
    with store_errors("delete transaction"):
        return store.delete(TRANSACTIONS, transaction_id).as_dict()


# Tasks


@router.post("/tasks")
def create_task(
    payload: TaskCreate,
    request: Request,
    store: DocumentStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
):
    check_owner(request, payload.email, settings)
    document = payload.to_document()
    now = utc_now_iso()
    document["createdAt"] = now
    document["updatedAt"] = now
    with store_errors("create task"):
        return store.insert(TASKS, document).as_dict()


@router.get("/tasks")
def list_tasks(
    email: Optional[str] = Depends(owner_filter),
    store: DocumentStore = Depends(get_store),
):
    """Tasks newest first, optionally for one owner."""
    with store_errors("fetch tasks"):
        return store.find(TASKS, email=email)


@router.get("/tasks/{task_id}")
def get_task(task_id: str, store: DocumentStore = Depends(get_store)):
    with store_errors("fetch task"):
        task = store.get(TASKS, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.put("/tasks/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdate,
    store: DocumentStore = Depends(get_store),
):
    fields = payload.to_document(partial=True)
    fields["updatedAt"] = utc_now_iso()
    with store_errors("update task"):
        return store.update(TASKS, task_id, fields).as_dict()


@router.patch("/tasks/{task_id}/status")
def update_task_status(
    task_id: str,
    payload: TaskStatusUpdate,
    store: DocumentStore = Depends(get_store),
):
    if payload.status is None:
        raise HTTPException(status_code=400, detail="status is required")
    fields = {"status": payload.status, "updatedAt": utc_now_iso()}
    with store_errors("update task status"):
        return store.update(TASKS, task_id, fields).as_dict()


@router.delete("/tasks/{task_id}")
def delete_task(task_id: str, store: DocumentStore = Depends(get_store)):
    with store_errors("delete task"):
        return store.delete(TASKS, task_id).as_dict()


# Stats


@router.get("/stats/weekly")
def weekly_stats(
    start: Optional[date] = Query(None, description="First day of the week"),
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute weekly stats"):
        return stats.weekly_progress(email, start)


@router.get("/stats/tasks/priority")
def task_priority_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute priority stats"):
        return stats.priority_breakdown(email)


@router.get("/stats/tasks/daily")
def task_daily_stats(
    days: int = Query(DEFAULT_TREND_DAYS, ge=1, le=3650),
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute daily stats"):
        return stats.daily_completions(email, days)


@router.get("/stats/transactions")
def transaction_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute transaction stats"):
        return stats.transaction_summary(email)


@router.get("/stats/classes")
def class_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute class stats"):
        return stats.classes_by_subject(email)


@router.get("/stats/overview")
def overview_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute overview"):
        return stats.overview(email)


@router.get("/stats/expense-by-category")
def expense_by_category_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute expense breakdown"):
        return stats.expense_by_category(email)


@router.get("/stats/transactions-trend")
def transactions_trend_stats(
    email: str = Depends(require_owner_email),
    stats: StatsEngine = Depends(get_stats_engine),
):
    with store_errors("compute transactions trend"):
        return stats.transactions_trend(email)
