"""
Stock HTTP routes.
Mounted at /api/stocks. Caller identity comes from the auth layer in front
of this service as X-User-Id / X-User-Role headers.
"""

from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, HTTPException, Query, UploadFile
from pydantic import BaseModel, Field

from tile_inventory.config import load_settings, setup_logging
from tile_inventory.errors import AuthorizationError, FormatError, NoDataError, PersistenceError
from tile_inventory.importer import ADMIN_ROLE, import_stock_file
from tile_inventory.models import Color, Lot, Stock
from tile_inventory.reconciler import merge_colors
from tile_inventory.store import JsonStockStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/stocks")

_store = None


def get_store():
    global _store
    if _store is None:
        _store = JsonStockStore(load_settings().stock_file)
    return _store


def get_upload_dir() -> Path:
    return load_settings().upload_dir


# Pydantic Models
class LotIn(BaseModel):
    date: datetime
    lotNo: str = Field(..., min_length=1)
    received: float = Field(0, ge=0)
    pcs: float = Field(0, ge=0)
    sqft: float = Field(0, ge=0)


class ColorIn(BaseModel):
    colorName: str = Field(..., min_length=1)
    lots: List[LotIn] = []


class StockCreate(BaseModel):
    """Manual stock creation"""
    warehouse: Optional[str] = None
    productName: str = Field(..., min_length=1)
    productCode: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    unit: str = "pieces"
    description: Optional[str] = None
    colors: List[ColorIn] = []


class StockUpdate(BaseModel):
    """Update descriptive fields; colours are replaced only when given"""
    productName: Optional[str] = Field(None, min_length=1)
    productCode: Optional[str] = None
    category: Optional[str] = None
    size: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    unit: Optional[str] = None
    description: Optional[str] = None
    colors: Optional[List[ColorIn]] = None


_UPDATE_FIELDS = {
    "productName": "product_name",
    "productCode": "product_code",
    "category":    "category",
    "size":        "size",
    "price":       "price",
    "unit":        "unit",
    "description": "description",
}


def _colors_from(payload: List[ColorIn]) -> tuple:
    # same-name colours (ignoring case) are folded together
    return merge_colors((), [
        Color(
            color_name=c.colorName.strip(),
            lots=tuple(
                Lot(date=lot.date, lot_no=lot.lotNo.strip(), received=lot.received, pcs=lot.pcs, sqft=lot.sqft)
                for lot in c.lots
            ),
        )
        for c in payload
    ])


def _stock_payload(stock: Stock) -> Dict[str, Any]:
    body = stock.to_dict()
    body["totalStock"] = stock.total_stock
    return body


# Identity
def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> Optional[Dict[str, Any]]:
    if not x_user_id:
        return None
    return {"id": x_user_id, "role": (x_user_role or "").strip().lower()}


def require_user(user: Optional[Dict[str, Any]] = Depends(get_current_user)) -> Dict[str, Any]:
    if not user:
        raise HTTPException(status_code=401, detail="Authentication required")
    return user


def require_admin(user: Dict[str, Any] = Depends(require_user)) -> Dict[str, Any]:
    if user.get("role") != ADMIN_ROLE:
        raise HTTPException(status_code=403, detail="Admin role required")
    return user


# Import
def _spool_upload(file: UploadFile, upload_dir: Path) -> str:
    upload_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(file.filename or "").suffix or ".xlsx"
    with tempfile.NamedTemporaryFile(dir=upload_dir, suffix=suffix, delete=False) as out:
        shutil.copyfileobj(file.file, out)
        return out.name


def _run_import(file, warehouse_id, store, upload_dir, user, require_admin_role):
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file uploaded")

    path = _spool_upload(file, upload_dir)
    try:
        return import_stock_file(
            path,
            warehouse_id=(warehouse_id or "").strip() or None,
            store=store,
            user=user,
            require_admin=require_admin_role,
        )
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except (FormatError, NoDataError) as e:
        logger.info("Stock import rejected: %s", e)
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/import-excel")
def import_excel(
    file: Optional[UploadFile] = File(None),
    warehouseId: Optional[str] = Form(None),
    user: Dict[str, Any] = Depends(require_admin),
    store=Depends(get_store),
    upload_dir: Path = Depends(get_upload_dir),
):
    """Import a stock workbook (admin only)."""
    return _run_import(file, warehouseId, store, upload_dir, user, True)


@router.post("/import-excel-test")
def import_excel_test(
    file: Optional[UploadFile] = File(None),
    warehouseId: Optional[str] = Form(None),
    store=Depends(get_store),
    upload_dir: Path = Depends(get_upload_dir),
):
    """Public import path used to try out workbooks without signing in."""
    return _run_import(file, warehouseId, store, upload_dir, None, False)


# CRUD
@router.get("/")
def list_stocks(
    warehouse: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    user: Dict[str, Any] = Depends(require_user),
    store=Depends(get_store),
):
    return [_stock_payload(s) for s in store.list(warehouse=warehouse, category=category, search=search)]


@router.get("/{stock_id}")
def get_stock(
    stock_id: str,
    user: Dict[str, Any] = Depends(require_user),
    store=Depends(get_store),
):
    stock = store.get(stock_id)
    if stock is None:
        raise HTTPException(status_code=404, detail="Stock not found")
    return _stock_payload(stock)


@router.post("/", status_code=201)
def create_stock(
    body: StockCreate,
    user: Dict[str, Any] = Depends(require_admin),
    store=Depends(get_store),
):
    stock = Stock(
        product_name=body.productName.strip(),
        warehouse=body.warehouse,
        product_code=body.productCode,
        category=body.category,
        size=body.size,
        price=body.price,
        unit=body.unit,
        description=body.description,
        colors=_colors_from(body.colors),
        created_by=user["id"],
    )
    try:
        stock = store.insert(stock)
    except PersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _stock_payload(stock)


@router.put("/{stock_id}")
def update_stock(
    stock_id: str,
    body: StockUpdate,
    user: Dict[str, Any] = Depends(require_admin),
    store=Depends(get_store),
):
    stock = store.get(stock_id)
    if stock is None:
        raise HTTPException(status_code=404, detail="Stock not found")

    changes = {
        _UPDATE_FIELDS[key]: value
        for key, value in body.model_dump(exclude_unset=True, exclude={"colors"}).items()
    }
    if body.colors is not None:
        changes["colors"] = _colors_from(body.colors)

    try:
        stock = store.update(replace(stock, **changes))
    except PersistenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _stock_payload(stock)


@router.delete("/{stock_id}")
def delete_stock(
    stock_id: str,
    user: Dict[str, Any] = Depends(require_admin),
    store=Depends(get_store),
):
    if not store.delete(stock_id):
        raise HTTPException(status_code=404, detail="Stock not found")
    return {"message": "Stock deleted successfully"}


def create_app() -> FastAPI:
    """Application factory: uvicorn tile_inventory.api:create_app --factory"""
    setup_logging()
    app = FastAPI(title="Tile stock service")
    app.include_router(router)
    return app
