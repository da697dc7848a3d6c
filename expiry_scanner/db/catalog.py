"""Reference product catalog backed by SQLite."""

from __future__ import annotations

import csv
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable

from ..errors import CatalogLookupError
from ..models import CatalogEntry
from .schema import ensure_schema


class CatalogStore(ABC):
    """Read-only view of the reference catalog used by the resolver."""

    @abstractmethod
    def get(self, code: str) -> CatalogEntry | None:
        """Return the entry whose code matches exactly, or None.

        Raises:
            CatalogLookupError: If the store cannot be queried.
        """
        ...


class CatalogDB(CatalogStore):
    """Manages the product_master_list table."""

    def __init__(self, db_path: str | Path) -> None:
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

    def get(self, code: str) -> CatalogEntry | None:
        try:
            row = self._get_conn().execute(
                """SELECT code, name, category, shelf_life_days
                   FROM product_master_list WHERE code = ?""",
                (code,),
            ).fetchone()
        except (sqlite3.Error, OSError) as e:
            raise CatalogLookupError(f"Catalog query failed: {e}") from e

        if row is None:
            return None
        return CatalogEntry(
            code=row["code"],
            name=row["name"],
            category=row["category"],
            shelf_life_days=row["shelf_life_days"],
        )

    def upsert_entries(self, entries: Iterable[CatalogEntry]) -> int:
        """Insert or replace catalog entries.

        Returns:
            Number of rows written.
        """
        conn = self._get_conn()
        count = 0
        for entry in entries:
            conn.execute(
                """INSERT INTO product_master_list
                   (code, name, category, shelf_life_days)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(code) DO UPDATE SET
                     name=excluded.name,
                     category=excluded.category,
                     shelf_life_days=excluded.shelf_life_days""",
                (entry.code, entry.name, entry.category, entry.shelf_life_days),
            )
            count += 1
        conn.commit()
        return count


def read_catalog_csv(path: str | Path) -> list[CatalogEntry]:
    """Read catalog entries from a CSV file.

    Expected header: ``code,name,category,shelf_life_days``. Blank category
    and shelf life cells become None.

    Raises:
        ValueError: If a row lacks a code or name, or has a non-integer shelf life.
    """
    entries: list[CatalogEntry] = []
    with open(Path(path).expanduser(), newline="", encoding="utf-8") as f:
        for lineno, row in enumerate(csv.DictReader(f), start=2):
            code = (row.get("code") or "").strip()
            name = (row.get("name") or "").strip()
            if not code or not name:
                raise ValueError(f"line {lineno}: code and name are required")

            category = (row.get("category") or "").strip() or None
            raw_days = (row.get("shelf_life_days") or "").strip()
            try:
                shelf_life_days = int(raw_days) if raw_days else None
            except ValueError:
                raise ValueError(
                    f"line {lineno}: shelf_life_days must be an integer, got {raw_days!r}"
                ) from None

            entries.append(
                CatalogEntry(
                    code=code,
                    name=name,
                    category=category,
                    shelf_life_days=shelf_life_days,
                )
            )
    return entries
