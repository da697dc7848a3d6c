"""Persistence gateway for accepted scan results."""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from datetime import date
from pathlib import Path

from ..errors import PersistenceError
from ..models import NewItem, StoredItem
from .schema import ensure_schema


class InventoryGateway(ABC):
    """Contract the scan coordinator uses to save accepted results."""

    @abstractmethod
    async def add_item(self, item: NewItem) -> StoredItem:
        """Persist an item and return the stored row.

        Saving the same ``idempotency_key`` twice must not create a second row.

        Raises:
            PersistenceError: If the item could not be saved.
        """
        ...


class InventoryDB(InventoryGateway):
    """Manages the inventory table."""

    def __init__(
        self, db_path: str | Path = "~/.config/expiry-scanner/inventory.db"
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def add_item(self, item: NewItem) -> StoredItem:
        try:
            conn = self._get_conn()
            conn.execute(
                """INSERT INTO inventory
                   (user_id, barcode, product_name, category,
                    expiry_date, ai_confidence, idempotency_key)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(idempotency_key) DO NOTHING""",
                (
                    item.user_id,
                    item.code,
                    item.product_name,
                    item.category,
                    item.expiry_date.isoformat(),
                    item.confidence_score,
                    item.idempotency_key,
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM inventory WHERE idempotency_key = ?",
                (item.idempotency_key,),
            ).fetchone()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Failed to add inventory item: {e}") from e

        return _row_to_item(row)

    def get_items(self, user_id: str | None = None) -> list[StoredItem]:
        """Return stored items, soonest expiry first."""
        conn = self._get_conn()
        if user_id is None:
            rows = conn.execute(
                "SELECT * FROM inventory ORDER BY expiry_date, id"
            ).fetchall()
        else:
            rows = conn.execute(
                "SELECT * FROM inventory WHERE user_id = ? ORDER BY expiry_date, id",
                (user_id,),
            ).fetchall()
        return [_row_to_item(r) for r in rows]


def _row_to_item(row: sqlite3.Row) -> StoredItem:
    return StoredItem(
        id=row["id"],
        code=row["barcode"] or "",
        product_name=row["product_name"] or "",
        category=row["category"] or "",
        expiry_date=date.fromisoformat(row["expiry_date"]),
        confidence_score=row["ai_confidence"] or 0.0,
        idempotency_key=row["idempotency_key"],
        user_id=row["user_id"],
        created_at=row["created_at"],
    )
