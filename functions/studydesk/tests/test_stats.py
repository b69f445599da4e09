import tempfile
import unittest
from datetime import date, datetime, timedelta, timezone

from studydesk.db import (
    CLASSES,
    TASKS,
    TRANSACTIONS,
    InMemoryDocumentStore,
    SqlDocumentStore,
    to_iso,
)
from studydesk.stats import StatsEngine, completion_percent, weekly_window

OWNER = "a@x.com"
OTHER = "b@x.com"


class WeeklyWindowTests(unittest.TestCase):
    def test_window_spans_start_through_seventh_day(self):
        start, end = weekly_window(date(2026, 10, 5))
        self.assertEqual(start, "2026-10-05T00:00:00.000000Z")
        self.assertEqual(end, "2026-10-12T23:59:59.000000Z")

    def test_percent(self):
        self.assertEqual(completion_percent(0, 0), 0)
        self.assertEqual(completion_percent(2, 4), 50)
        self.assertEqual(completion_percent(1, 3), 33)
        self.assertEqual(completion_percent(2, 3), 67)

    def test_percent_rounds_halves_up(self):
        for done, expected in ((1, 13), (3, 38), (5, 63), (7, 88)):
            self.assertEqual(completion_percent(done, 8), expected, done)


class StatsEngineCases:
    """Shared cases run against each store implementation."""

    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.store = self.make_store()
        self.stats = StatsEngine(self.store, max_workers=3)

    def add_task(self, status, email=OWNER, **fields):
        document = {"email": email, "title": "t", "status": status, "priority": "medium"}
        document.update(fields)
        return self.store.insert(TASKS, document).inserted_id

    def add_txn(self, type_, amount, email=OWNER, category="Misc", date="2026-01-01"):
        self.store.insert(
            TRANSACTIONS,
            {
                "email": email,
                "type": type_,
                "amount": amount,
                "category": category,
                "date": date,
                "notes": "",
            },
        )

    def test_weekly_progress_example(self):
        for status in ("done", "done", "todo", "inprogress"):
            self.add_task(status)
        self.add_task("done", email=OTHER)

        self.assertEqual(
            self.stats.weekly_progress(OWNER),
            {"total": 4, "done": 2, "inProgress": 1, "todo": 1, "percent": 50},
        )

    def test_weekly_progress_empty(self):
        self.assertEqual(
            self.stats.weekly_progress(OWNER),
            {"total": 0, "done": 0, "inProgress": 0, "todo": 0, "percent": 0},
        )

    def test_weekly_progress_deadline_clause(self):
        self.add_task("done")
        self.add_task("archived", deadline="2026-10-07T12:00:00.000000Z")
        self.add_task("archived", deadline="2026-11-30T12:00:00.000000Z")

        result = self.stats.weekly_progress(OWNER, date(2026, 10, 5))
        self.assertEqual(result["total"], 2)
        self.assertEqual(result["done"], 1)
        self.assertEqual(result["percent"], 50)

    def test_priority_breakdown_sums_to_task_count(self):
        for priority in ("high", "high", "low", "medium"):
            self.add_task("todo", priority=priority)
        self.add_task("todo", email=OTHER, priority="urgent")

        breakdown = self.stats.priority_breakdown(OWNER)
        self.assertEqual(
            sorted((row["priority"], row["count"]) for row in breakdown),
            [("high", 2), ("low", 1), ("medium", 1)],
        )
        self.assertEqual(sum(row["count"] for row in breakdown), 4)

    def test_daily_completions(self):
        now = datetime.now(timezone.utc)
        recent = to_iso(now - timedelta(hours=1))
        older = to_iso(now - timedelta(days=2))
        self.add_task("done", updatedAt=recent)
        self.add_task("done", updatedAt=recent)
        self.add_task("done", updatedAt=older)
        self.add_task("done", updatedAt=to_iso(now - timedelta(days=10)))
        self.add_task("todo", updatedAt=recent)

        self.assertEqual(
            self.stats.daily_completions(OWNER, days=7),
            [
                {"date": older[:10], "count": 1},
                {"date": recent[:10], "count": 2},
            ],
        )
        self.assertEqual(
            self.stats.daily_completions(OWNER, days=30)[0],
            {"date": to_iso(now - timedelta(days=10))[:10], "count": 1},
        )

    def test_transaction_summary_example(self):
        self.add_txn("Income", 100)
        self.add_txn("Expense", 30)
        self.add_txn("income", 999)
        self.add_txn("Income", 5, email=OTHER)

        self.assertEqual(
            self.stats.transaction_summary(OWNER),
            {"income": 100, "expense": 30, "balance": 70},
        )

    def test_classes_by_subject(self):
        for subject in ("Math", "Math", "Physics"):
            self.store.insert(CLASSES, {"email": OWNER, "subject": subject})
        self.store.insert(CLASSES, {"email": OTHER, "subject": "Math"})

        self.assertEqual(
            sorted((r["subject"], r["total"]) for r in self.stats.classes_by_subject(OWNER)),
            [("Math", 2), ("Physics", 1)],
        )

    def test_overview_counts(self):
        self.add_txn("Income", 40)
        self.add_txn("Expense", 15)
        self.add_txn("Expense", 5)
        self.add_task("todo")
        self.store.insert(CLASSES, {"email": OWNER, "subject": "Art"})
        self.store.insert(CLASSES, {"email": OTHER, "subject": "Art"})

        self.assertEqual(
            self.stats.overview(OWNER),
            {
                "totalTransactions": 3,
                "totalClasses": 1,
                "totalTasks": 1,
                "income": 40,
                "expense": 20,
            },
        )

    def test_overview_empty(self):
        self.assertEqual(
            self.stats.overview(OWNER),
            {
                "totalTransactions": 0,
                "totalClasses": 0,
                "totalTasks": 0,
                "income": 0,
                "expense": 0,
            },
        )

    def test_expense_by_category_sorted_descending(self):
        self.add_txn("Expense", 10, category="Food")
        self.add_txn("Expense", 50, category="Books")
        self.add_txn("Expense", 15, category="Food")
        self.add_txn("Income", 500, category="Salary")

        self.assertEqual(
            self.stats.expense_by_category(OWNER),
            [{"category": "Books", "total": 50}, {"category": "Food", "total": 25}],
        )

    def test_transactions_trend(self):
        self.add_txn("Income", 100, date="2026-02-03")
        self.add_txn("Expense", 20, date="2026-01-20")
        self.add_txn("Expense", 5, date="2026-02-28T10:00:00Z")
        self.add_txn("Income", 60, date="2026-01-05")

        self.assertEqual(
            self.stats.transactions_trend(OWNER),
            [
                {"month": "2026-01", "income": 60, "expense": 20},
                {"month": "2026-02", "income": 100, "expense": 5},
            ],
        )


class InMemoryStatsEngineTests(StatsEngineCases, unittest.TestCase):
    def make_store(self):
        return InMemoryDocumentStore()


class SqlStatsEngineTests(StatsEngineCases, unittest.TestCase):
    def make_store(self):
        # File-backed so the overview thread pool gets one connection per thread.
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        store = SqlDocumentStore(f"sqlite+pysqlite:///{tmp.name}/studydesk.db")
        self.addCleanup(store.engine.dispose)
        return store


if __name__ == "__main__":
    unittest.main()
