"""
Read-only statistics over a single owner's classes, transactions and tasks.

Grouping and summing happen in the document store; this module only picks
the query window and shapes store results into response payloads.
"""

from __future__ import annotations

import concurrent.futures
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from studydesk.db import (
    CLASSES,
    EXPENSE,
    INCOME,
    TASKS,
    TRANSACTIONS,
    DocumentStore,
    to_iso,
)

WEEK_DAYS = 7
DEFAULT_TREND_DAYS = 7


def weekly_window(start: Optional[date] = None) -> tuple[str, str]:
    """
    Returns the inclusive window from `start` 00:00:00 through the end of the
    seventh day after it.
    """
    start = start or datetime.now(timezone.utc).date()
    window_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
    window_end = datetime.combine(
        start + timedelta(days=WEEK_DAYS), time(23, 59, 59), tzinfo=timezone.utc
    )
    return to_iso(window_start), to_iso(window_end)


def completion_percent(done: int, total: int) -> int:
    if total == 0:
        return 0
    # Halves round up: 1 of 8 done is 13 percent.
    return math.floor(100 * done / total + 0.5)


class StatsEngine:
    """Owner-scoped summaries computed by the document store."""

    def __init__(self, store: DocumentStore, max_workers: int = 5):
        self.store = store
        self.max_workers = max_workers

    def weekly_progress(self, email: str, start: Optional[date] = None) -> dict:
        window_start, window_end = weekly_window(start)
        counts = self.store.task_status_counts(email, window_start, window_end)
        done = counts.get("done", 0)
        in_progress = counts.get("inprogress", 0)
        todo = counts.get("todo", 0)
        total = sum(counts.values())
        return {
            "total": total,
            "done": done,
            "inProgress": in_progress,
            "todo": todo,
            "percent": completion_percent(done, total),
        }

    def priority_breakdown(self, email: str) -> list[dict]:
        return [
            {"priority": priority, "count": count}
            for priority, count in self.store.task_priority_counts(email)
        ]

    def daily_completions(
        self, email: str, days: int = DEFAULT_TREND_DAYS
    ) -> list[dict]:
        since = to_iso(datetime.now(timezone.utc) - timedelta(days=days))
        rows = self.store.completed_tasks_per_day(email, since)
        return [
            {"date": day, "count": count}
            for day, count in sorted(rows, key=lambda row: row[0])
        ]

    def transaction_summary(self, email: str) -> dict:
        totals = self.store.transaction_totals_by_type(email)
        income = totals.get(INCOME, 0)
        expense = totals.get(EXPENSE, 0)
        return {"income": income, "expense": expense, "balance": income - expense}

    def classes_by_subject(self, email: str) -> list[dict]:
        return [
            {"subject": subject, "total": total}
            for subject, total in self.store.class_counts_by_subject(email)
        ]

    def overview(self, email: str) -> dict:
        """
        Counts all three collections and sums income and expense. The five
        reads run concurrently on a thread pool and are joined before returning.
        """
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_workers
        ) as executor:
            futures = {
                "totalTransactions": executor.submit(
                    self.store.count, TRANSACTIONS, email
                ),
                "totalClasses": executor.submit(self.store.count, CLASSES, email),
                "totalTasks": executor.submit(self.store.count, TASKS, email),
                "income": executor.submit(
                    self.store.transaction_total, email, INCOME
                ),
                "expense": executor.submit(
                    self.store.transaction_total, email, EXPENSE
                ),
            }
            results = {key: future.result() for key, future in futures.items()}
        results["income"] = results["income"] or 0
        results["expense"] = results["expense"] or 0
        return results

    def expense_by_category(self, email: str) -> list[dict]:
        rows = sorted(
            self.store.expense_totals_by_category(email),
            key=lambda row: row[1],
            reverse=True,
        )
        return [{"category": category, "total": total} for category, total in rows]

    def transactions_trend(self, email: str) -> list[dict]:
        by_month: dict[str, dict] = {}
        for month, type_, total in self.store.monthly_transaction_totals(email):
            bucket = by_month.setdefault(
                month, {"month": month, "income": 0, "expense": 0}
            )
            if type_ == INCOME:
                bucket["income"] += total
            elif type_ == EXPENSE:
                bucket["expense"] += total
        return [by_month[month] for month in sorted(by_month)]
