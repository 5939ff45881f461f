"""
Stock data model: product -> colours -> lots.

Persisted documents use the camelCase field names the web and mobile
clients already read (productName, colorName, lotNo, totalPcs, ...).
Colour totals are always derived from the lots, never stored on their own.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Optional


def _iso(value):
    return value.isoformat() if value is not None else None


def _parse_dt(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _num(value):
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


# ─────────────────────────────────────────────────────────────
# PERSISTED AGGREGATE
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Lot:
    """One receiving event for a colour."""
    date: datetime
    lot_no: str
    received: float = 0.0
    pcs: float = 0.0
    sqft: float = 0.0

    def to_dict(self) -> dict:
        return {
            "date":     _iso(self.date),
            "lotNo":    self.lot_no,
            "received": self.received,
            "pcs":      self.pcs,
            "sqft":     self.sqft,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Lot:
        return cls(
            date=_parse_dt(data.get("date")),
            lot_no=str(data.get("lotNo") or ""),
            received=_num(data.get("received")),
            pcs=_num(data.get("pcs")),
            sqft=_num(data.get("sqft")),
        )


@dataclass(frozen=True)
class Color:
    color_name: str
    lots: tuple[Lot, ...] = ()

    @property
    def total_pcs(self) -> float:
        return sum(lot.pcs for lot in self.lots)

    @property
    def total_sqft(self) -> float:
        return sum(lot.sqft for lot in self.lots)

    def matches(self, name: str) -> bool:
        """Colour names are compared case-insensitively."""
        return self.color_name.strip().lower() == (name or "").strip().lower()

    def with_lots(self, lots) -> Color:
        """Return a copy with ``lots`` appended after the existing ones."""
        return replace(self, lots=self.lots + tuple(lots))

    def to_dict(self) -> dict:
        return {
            "colorName": self.color_name,
            "lots":      [lot.to_dict() for lot in self.lots],
            "totalPcs":  self.total_pcs,
            "totalSqft": self.total_sqft,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Color:
        # totalPcs / totalSqft in the document are ignored: they are recomputed
        return cls(
            color_name=str(data.get("colorName") or ""),
            lots=tuple(Lot.from_dict(lot) for lot in data.get("lots") or []),
        )


@dataclass(frozen=True)
class Stock:
    """One product held in one warehouse."""
    product_name: str
    warehouse: Optional[str] = None
    colors: tuple[Color, ...] = ()
    product_code: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    price: Optional[float] = None
    unit: str = "pieces"
    description: Optional[str] = None
    id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def total_stock(self) -> float:
        return sum(color.total_pcs for color in self.colors)

    @property
    def total_lots(self) -> int:
        return sum(len(color.lots) for color in self.colors)

    def find_color(self, name: str) -> Optional[Color]:
        for color in self.colors:
            if color.matches(name):
                return color
        return None

    def to_dict(self) -> dict:
        return {
            "id":          self.id,
            "warehouse":   self.warehouse,
            "productName": self.product_name,
            "productCode": self.product_code,
            "category":    self.category,
            "size":        self.size,
            "price":       self.price,
            "unit":        self.unit,
            "description": self.description,
            "colors":      [color.to_dict() for color in self.colors],
            "createdBy":   self.created_by,
            "createdAt":   _iso(self.created_at),
            "updatedAt":   _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: dict) -> Stock:
        price = data.get("price")
        return cls(
            id=data.get("id"),
            warehouse=data.get("warehouse"),
            product_name=str(data.get("productName") or ""),
            product_code=data.get("productCode"),
            category=data.get("category"),
            size=data.get("size"),
            price=float(price) if price is not None else None,
            unit=data.get("unit") or "pieces",
            description=data.get("description"),
            colors=tuple(Color.from_dict(c) for c in data.get("colors") or []),
            created_by=data.get("createdBy"),
            created_at=_parse_dt(data.get("createdAt")),
            updated_at=_parse_dt(data.get("updatedAt")),
        )


# ─────────────────────────────────────────────────────────────
# PARSER OUTPUT (transient, never persisted directly)
# ─────────────────────────────────────────────────────────────

@dataclass
class ParsedColorBlock:
    """Colour name and lots recovered from one table of the sheet."""
    color_name: str
    lots: list[Lot] = field(default_factory=list)


@dataclass
class ParsedProduct:
    """Everything extracted from the product sheet of one workbook."""
    product_name: str
    colors: list[ParsedColorBlock] = field(default_factory=list)
