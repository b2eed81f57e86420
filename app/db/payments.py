from __future__ import annotations

import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime

from app.db.store import execute, fetch_all, fetch_one, from_iso, to_iso, utc_now


@dataclass(frozen=True)
class Payment:
    id: str
    user_id: str
    provider: str
    transaction_id: str
    amount: int
    currency: str
    plan_id: str
    status: str
    created_at: datetime
    completed_at: datetime | None = None
    provider_reference: str | None = None
    refund_reason: str | None = None
    refunded_at: datetime | None = None

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Payment":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            provider=row["provider"],
            transaction_id=row["transaction_id"],
            amount=int(row["amount"]),
            currency=row["currency"],
            plan_id=row["plan_id"],
            status=row["status"],
            created_at=from_iso(row["created_at"]) or utc_now(),
            completed_at=from_iso(row["completed_at"]),
            provider_reference=row["provider_reference"],
            refund_reason=row["refund_reason"],
            refunded_at=from_iso(row["refunded_at"]),
        )


def create_payment(
    *,
    user_id: str,
    provider: str,
    transaction_id: str,
    amount: int,
    currency: str,
    plan_id: str,
    status: str = "pending",
) -> Payment:
    payment_id = uuid.uuid4().hex
    now_iso = to_iso(utc_now())
    execute(
        """
        INSERT INTO payments (
            id, user_id, provider, transaction_id, amount, currency, plan_id, status,
            created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (payment_id, user_id, provider, transaction_id, amount, currency, plan_id, status, now_iso, now_iso),
    )
    payment = get_payment(payment_id)
    if payment is None:
        raise RuntimeError(f"Payment {payment_id} vanished after insert")
    return payment


def get_payment(payment_id: str) -> Payment | None:
    row = fetch_one("SELECT * FROM payments WHERE id = ?", (payment_id,))
    return Payment.from_row(row) if row else None


def get_payment_by_transaction(provider: str, transaction_id: str) -> Payment | None:
    row = fetch_one(
        "SELECT * FROM payments WHERE provider = ? AND transaction_id = ?",
        (provider, transaction_id),
    )
    return Payment.from_row(row) if row else None


def list_payments(user_id: str, *, limit: int = 50) -> list[Payment]:
    rows = fetch_all(
        "SELECT * FROM payments WHERE user_id = ? ORDER BY created_at DESC LIMIT ?",
        (user_id, limit),
    )
    return [Payment.from_row(row) for row in rows]


def latest_completed_payment(user_id: str) -> Payment | None:
    row = fetch_one(
        """
        SELECT * FROM payments
        WHERE user_id = ? AND status = 'completed'
        ORDER BY completed_at DESC
        LIMIT 1
        """,
        (user_id,),
    )
    return Payment.from_row(row) if row else None


def mark_completed(payment_id: str, *, reference: str | None = None) -> bool:
    """Move a pending payment to completed; False when it was already settled."""
    now_iso = to_iso(utc_now())
    changed = execute(
        """
        UPDATE payments
        SET status = 'completed', completed_at = ?, provider_reference = COALESCE(?, provider_reference),
            updated_at = ?
        WHERE id = ? AND status = 'pending'
        """,
        (now_iso, reference, now_iso, payment_id),
    )
    return changed == 1


def mark_failed(payment_id: str) -> bool:
    changed = execute(
        "UPDATE payments SET status = 'failed', updated_at = ? WHERE id = ? AND status = 'pending'",
        (to_iso(utc_now()), payment_id),
    )
    return changed == 1


def mark_refunded(payment_id: str, *, reason: str) -> bool:
    now_iso = to_iso(utc_now())
    changed = execute(
        """
        UPDATE payments
        SET status = 'refunded', refund_reason = ?, refunded_at = ?, updated_at = ?
        WHERE id = ? AND status = 'completed'
        """,
        (reason, now_iso, now_iso, payment_id),
    )
    return changed == 1


def status_counts(*, since: datetime | None = None) -> dict[str, int]:
    if since is None:
        rows = fetch_all("SELECT status, COUNT(1) AS total FROM payments GROUP BY status")
    else:
        rows = fetch_all(
            "SELECT status, COUNT(1) AS total FROM payments WHERE created_at >= ? GROUP BY status",
            (to_iso(since),),
        )
    return {row["status"]: int(row["total"]) for row in rows}
