"""
Stock document store.

Stocks are kept as plain JSON-able documents keyed by id, one document per
(productName, warehouse). Each insert/update replaces a whole document, so a
write is atomic per stock. Concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from threading import RLock
from typing import Optional, Protocol

from tile_inventory.errors import PersistenceError
from tile_inventory.models import Stock

logger = logging.getLogger(__name__)


class StockStore(Protocol):
    """What the import pipeline and the API need from a stock store."""

    def find_one(self, product_name: str, warehouse_id: Optional[str]) -> Stock | None: ...

    def get(self, stock_id: str) -> Stock | None: ...

    def insert(self, stock: Stock) -> Stock: ...

    def update(self, stock: Stock) -> Stock: ...

    def delete(self, stock_id: str) -> bool: ...

    def list(
        self,
        warehouse: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Stock]: ...


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:24]


def validate_document(doc: dict) -> None:
    """Reject documents that would break the stock schema."""
    if not str(doc.get("productName") or "").strip():
        raise PersistenceError("Stock validation failed: productName is required")
    price = doc.get("price")
    if price is not None and price < 0:
        raise PersistenceError("Stock validation failed: price must be >= 0")
    for color in doc.get("colors") or []:
        if not str(color.get("colorName") or "").strip():
            raise PersistenceError("Stock validation failed: colorName is required")
        for lot in color.get("lots") or []:
            if not str(lot.get("lotNo") or "").strip():
                raise PersistenceError("Stock validation failed: lotNo is required")
            if lot.get("date") is None:
                raise PersistenceError("Stock validation failed: lot date is required")
            for key in ("received", "pcs", "sqft"):
                if (lot.get(key) or 0) < 0:
                    raise PersistenceError(f"Stock validation failed: lot {key} must be >= 0")


class MemoryStockStore:
    """In-process document store."""

    def __init__(self, documents: Optional[dict[str, dict]] = None):
        self._docs: dict[str, dict] = dict(documents or {})
        self._lock = RLock()

    def _commit(self) -> None:
        """Hook for stores that need to persist after every write."""

    def _put(self, stock_id: str, doc: Optional[dict]) -> None:
        # caller holds the lock; the in-memory copy is rolled back if commit fails
        previous = self._docs.get(stock_id)
        if doc is None:
            self._docs.pop(stock_id, None)
        else:
            self._docs[stock_id] = doc
        try:
            self._commit()
        except PersistenceError:
            if previous is None:
                self._docs.pop(stock_id, None)
            else:
                self._docs[stock_id] = previous
            raise

    def find_one(self, product_name: str, warehouse_id: Optional[str]) -> Stock | None:
        with self._lock:
            for doc in self._docs.values():
                if doc.get("productName") == product_name and doc.get("warehouse") == warehouse_id:
                    return Stock.from_dict(doc)
        return None

    def get(self, stock_id: str) -> Stock | None:
        with self._lock:
            doc = self._docs.get(stock_id)
            return Stock.from_dict(doc) if doc else None

    def insert(self, stock: Stock) -> Stock:
        now = _now()
        saved = replace(
            stock,
            id=stock.id or _new_id(),
            created_at=stock.created_at or now,
            updated_at=now,
        )
        doc = saved.to_dict()
        validate_document(doc)
        with self._lock:
            if saved.id in self._docs:
                raise PersistenceError(f"Stock {saved.id} already exists")
            self._put(saved.id, doc)
        logger.debug("Inserted stock %s (%s)", saved.id, saved.product_name)
        return saved

    def update(self, stock: Stock) -> Stock:
        if not stock.id:
            raise PersistenceError("Cannot update a stock without an id")
        saved = replace(stock, updated_at=_now())
        doc = saved.to_dict()
        validate_document(doc)
        with self._lock:
            if stock.id not in self._docs:
                raise PersistenceError(f"Stock {stock.id} not found")
            self._put(stock.id, doc)
        logger.debug("Updated stock %s (%s)", saved.id, saved.product_name)
        return saved

    def delete(self, stock_id: str) -> bool:
        with self._lock:
            if stock_id not in self._docs:
                return False
            self._put(stock_id, None)
        return True

    def list(
        self,
        warehouse: Optional[str] = None,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> list[Stock]:
        needle = (search or "").strip().lower()
        with self._lock:
            docs = list(self._docs.values())
        found = []
        # newest first; insertion order breaks createdAt ties
        for seq, doc in enumerate(docs):
            if warehouse and doc.get("warehouse") != warehouse:
                continue
            if category and doc.get("category") != category:
                continue
            if needle:
                haystack = f"{doc.get('productName') or ''} {doc.get('productCode') or ''}".lower()
                if needle not in haystack:
                    continue
            found.append((doc.get("createdAt") or "", seq, doc))
        found.sort(key=lambda item: item[:2], reverse=True)
        return [Stock.from_dict(doc) for _, _, doc in found]


class JsonStockStore(MemoryStockStore):
    """Document store kept in a single JSON file, rewritten on every write."""

    def __init__(self, path: Path):
        self.path = Path(path)
        super().__init__(self._load())

    def _load(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read stock file {self.path}: {e}") from e
        if not isinstance(raw, dict):
            raise PersistenceError(f"Stock file {self.path} is not a JSON object")
        return raw

    def _commit(self) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(self._docs, ensure_ascii=False, indent=2), encoding="utf-8")
            tmp.replace(self.path)
        except OSError as e:
            raise PersistenceError(f"Cannot write stock file {self.path}: {e}") from e


__all__ = [
    "JsonStockStore",
    "MemoryStockStore",
    "StockStore",
    "validate_document",
]
