# Overview: Durable per-operator cart storage backed by the cart_entries table.

from __future__ import annotations

import json
import time

from sqlalchemy.exc import IntegrityError, OperationalError

from ..extensions import db
from ..models import CART_STATUS_OPEN, CART_STATUS_SUBMITTING, CartEntry
from .cart_service import CartConflictError, CartSubmittingError, StoredCart
from .session_service import OperatorContext


def lock_for_update(query):
    """
    Apply row-level locking for cart writes.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on lock contention.

    SQLite raises OperationalError ("database is locked") when two requests
    write at once; the write is simply retried after a short backoff.
    """
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


class SQLCartStore:
    """
    Key-value store for serialized carts.

    Writes are guarded by the row's status and revision: a SUBMITTING row
    refuses every save, and a save must present the revision it loaded.
    """

    def _query(self, key: str):
        return db.session.query(CartEntry).filter_by(storage_key=key)

    def load(self, key: str) -> StoredCart | None:
        entry = self._query(key).first()
        if entry is None:
            return None
        try:
            payload = json.loads(entry.payload or "{}")
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        return StoredCart(
            payload=payload,
            revision=entry.revision or 0,
            submitting=entry.status == CART_STATUS_SUBMITTING,
        )

    def save(
        self,
        key: str,
        operator: OperatorContext | None,
        payload: dict,
        *,
        revision: int = 0,
    ) -> int:
        """Write the cart; returns the new revision."""
        def _op():
            entry = lock_for_update(self._query(key)).first()
            if entry is None:
                if revision:
                    db.session.rollback()
                    raise CartConflictError("Cart was cleared by another request; reload it")
                entry = CartEntry(storage_key=key, status=CART_STATUS_OPEN, revision=0)
                db.session.add(entry)
            elif entry.status == CART_STATUS_SUBMITTING:
                db.session.rollback()
                raise CartSubmittingError()
            elif entry.revision != revision:
                db.session.rollback()
                raise CartConflictError(
                    "Cart was changed by another request; reload it",
                    details={"expected_revision": revision},
                )
            if operator is not None:
                entry.operator_id = operator.id
                entry.operator_username = operator.username
            entry.payload = json.dumps(payload, separators=(",", ":"))
            entry.line_count = len(payload.get("lines") or [])
            entry.revision = revision + 1
            try:
                db.session.commit()
            except IntegrityError:
                # Another request created the row first
                db.session.rollback()
                raise CartConflictError("Cart was changed by another request; reload it")
            return revision + 1

        return run_with_retry(_op)

    def delete(self, key: str) -> bool:
        def _op():
            deleted = self._query(key).delete()
            db.session.commit()
            return bool(deleted)

        return run_with_retry(_op)

    def begin_submit(self, key: str, revision: int) -> None:
        """
        Flip the row to SUBMITTING, committed before the sale goes out.

        The flip is a single conditional UPDATE (OPEN and at the caller's
        revision), so two checkouts racing for the same cart cannot both win
        even on SQLite.
        """
        def _op():
            flipped = (
                self._query(key)
                .filter_by(status=CART_STATUS_OPEN, revision=revision)
                .update({"status": CART_STATUS_SUBMITTING}, synchronize_session=False)
            )
            if flipped:
                db.session.commit()
                return
            entry = lock_for_update(self._query(key)).first()
            status = entry.status if entry is not None else None
            db.session.rollback()
            if status == CART_STATUS_SUBMITTING:
                raise CartSubmittingError("A sale for this cart is already being submitted")
            raise CartConflictError("Cart was changed by another request; reload it")

        run_with_retry(_op)

    def end_submit(self, key: str) -> None:
        """Reopen the row after a failed sale (no-op once the sale deleted it)."""
        def _op():
            self._query(key).filter_by(status=CART_STATUS_SUBMITTING).update(
                {"status": CART_STATUS_OPEN}, synchronize_session=False
            )
            db.session.commit()

        run_with_retry(_op)

    def list_entries(self) -> list[CartEntry]:
        return db.session.query(CartEntry).order_by(CartEntry.updated_at.desc()).all()
