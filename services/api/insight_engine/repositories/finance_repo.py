"""Sqlite access to a user's financial records.

The module-level write helpers (`insert_transaction`, `upsert_budget`,
`upsert_goal`, `upsert_recurring_expense`) are ingestion entry points for
import jobs and fixtures; no HTTP route writes these records. Callers that
change a user's records should call `insights_service.invalidate(user_id)`
afterwards so the next insight read regenerates.
"""
from __future__ import annotations

import json
import sqlite3
from typing import Any, Dict, List, Optional

from ..models import Budget, Goal, Profile, RecurringExpense, Transaction


def ensure_user(conn: sqlite3.Connection, user_id: str) -> None:
    conn.execute("INSERT OR IGNORE INTO users (id) VALUES (?)", (user_id,))


def insert_transaction(conn: sqlite3.Connection, user_id: str, row: Dict[str, Any]) -> bool:
    """Insert a transaction row. Returns True if inserted, False if ignored (duplicate by PK)."""
    ensure_user(conn, user_id)
    tx = Transaction.from_dict(row)
    pre = conn.total_changes
    conn.execute(
        """
        INSERT OR IGNORE INTO transactions (
            id, user_id, date, amount, type, description, category, target, target_model
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            tx.id, user_id, tx.date.isoformat(), tx.amount, tx.type, tx.description,
            tx.category, tx.target, tx.target_model,
        ),
    )
    return conn.total_changes > pre


def upsert_budget(conn: sqlite3.Connection, user_id: str, row: Dict[str, Any]) -> None:
    ensure_user(conn, user_id)
    b = Budget.from_dict(row)
    conn.execute(
        """
        INSERT OR REPLACE INTO budgets (id, user_id, name, amount, spent, period) VALUES (?, ?, ?, ?, ?, ?)
        """,
        (b.id, user_id, b.name, b.amount, b.spent, b.period),
    )


def upsert_goal(conn: sqlite3.Connection, user_id: str, row: Dict[str, Any]) -> None:
    ensure_user(conn, user_id)
    g = Goal.from_dict(row)
    conn.execute(
        """
        INSERT OR REPLACE INTO goals (id, user_id, name, target, current) VALUES (?, ?, ?, ?, ?)
        """,
        (g.id, user_id, g.name, g.target, g.current),
    )


def upsert_recurring_expense(conn: sqlite3.Connection, user_id: str, row: Dict[str, Any]) -> None:
    ensure_user(conn, user_id)
    r = RecurringExpense.from_dict(row)
    conn.execute(
        """
        INSERT OR REPLACE INTO recurring_expenses (id, user_id, name, amount, frequency, next_expected_date)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (r.id, user_id, r.name, r.amount, r.frequency, r.next_expected_date.isoformat()),
    )


class FinanceRepository:
    """Read access to one user's records, returned as model dataclasses."""

    def __init__(self, conn: sqlite3.Connection, user_id: str):
        self.conn = conn
        self.user_id = user_id

    def transactions(self) -> List[Transaction]:
        rows = self.conn.execute(
            """
            SELECT id, date, amount, type, description, category, target, target_model
            FROM transactions WHERE user_id = ? ORDER BY date ASC, id ASC
            """,
            (self.user_id,),
        ).fetchall()
        return [Transaction.from_dict(dict(r)) for r in rows]

    def budgets(self) -> List[Budget]:
        rows = self.conn.execute(
            "SELECT id, name, amount, spent, period FROM budgets WHERE user_id = ? ORDER BY id",
            (self.user_id,),
        ).fetchall()
        return [Budget.from_dict(dict(r)) for r in rows]

    def goals(self) -> List[Goal]:
        rows = self.conn.execute(
            "SELECT id, name, target, current FROM goals WHERE user_id = ? ORDER BY id",
            (self.user_id,),
        ).fetchall()
        return [Goal.from_dict(dict(r)) for r in rows]

    def recurring_expenses(self) -> List[RecurringExpense]:
        rows = self.conn.execute(
            """
            SELECT id, name, amount, frequency, next_expected_date
            FROM recurring_expenses WHERE user_id = ? ORDER BY next_expected_date
            """,
            (self.user_id,),
        ).fetchall()
        return [RecurringExpense.from_dict(dict(r)) for r in rows]

    def profile(self) -> Optional[Profile]:
        row = self.conn.execute(
            """
            SELECT monthly_income, savings, debt, expenses_json, first_name, last_name
            FROM profiles WHERE user_id = ?
            """,
            (self.user_id,),
        ).fetchone()
        if not row:
            return None
        d = dict(row)
        d["expenses"] = json.loads(d.pop("expenses_json") or "{}")
        return Profile.from_dict(d)

    def upsert_profile(self, profile: Profile) -> None:
        ensure_user(self.conn, self.user_id)
        self.conn.execute(
            """
            INSERT OR REPLACE INTO profiles (user_id, monthly_income, savings, debt, expenses_json, first_name, last_name, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (
                self.user_id, profile.monthly_income, profile.savings, profile.debt,
                json.dumps(profile.expenses), profile.first_name, profile.last_name,
            ),
        )
