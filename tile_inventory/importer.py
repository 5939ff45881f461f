"""
Stock import service.
Takes one uploaded workbook (already saved to disk), extracts the product
table, reconciles each product against the store and returns the JSON
summary shown to the admin.

Workbook-level failures abort the import. Product-level failures are
collected in ``errors`` and the remaining products are still saved.
The uploaded file is removed whatever happens.
"""

import logging
from pathlib import Path

from tile_inventory.errors import (
    AuthorizationError,
    NoDataError,
    PersistenceError,
    ValidationError,
)
from tile_inventory.reconciler import reconcile
from tile_inventory.stock_parser import extract_products, read_workbook

logger = logging.getLogger(__name__)

ADMIN_ROLE = 'admin'


def check_admin(user):
    """Only administrators may import stock."""
    if not user:
        raise AuthorizationError("Authentication required")
    if user.get('role') != ADMIN_ROLE:
        raise AuthorizationError("Admin role required to import stock")


def discard_upload(path):
    """Remove the uploaded temp file. Missing files are fine."""
    if not path:
        return
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove uploaded file %s: %s", path, e)


def import_stock_file(path, warehouse_id, store, user=None, require_admin=True, now=None):
    """
    Import one uploaded workbook.
    Raises AuthorizationError, FormatError or NoDataError for whole-file
    failures; otherwise returns the summary dict.
    """
    try:
        if require_admin:
            check_admin(user)

        sheets = read_workbook(path)
        products = extract_products(sheets, now=now)
        if not products:
            raise NoDataError(
                "No stock tables found in sheet 2. Each table needs a "
                "DATE / LOTNO / RECIVED / PCS / SQFT header row."
            )

        summary = save_products(products, warehouse_id, store)
        summary['debug'] = {
            'sheetNames':   [name for name, _ in sheets],
            'productSheet': sheets[1][0],
            'blocksFound':  sum(len(p.colors) for p in products),
            'colorNames':   [c.color_name for p in products for c in p.colors],
            'warehouse':    warehouse_id,
        }
        return summary
    finally:
        discard_upload(path)


def save_products(products, warehouse_id, store):
    """
    Reconcile and persist products one by one.
    Returns the summary dict (without debug info).
    """
    saved, errors = [], []

    for product in products:
        try:
            stock = reconcile(store.find_one, warehouse_id, product)
            if stock.id is None:
                stock = store.insert(stock)
            else:
                stock = store.update(stock)
        except (ValidationError, PersistenceError) as e:
            logger.warning("Stock import skipped product '%s': %s", product.product_name, e)
            errors.append({'product': product.product_name, 'error': str(e)})
            continue

        saved.append({
            'id':          stock.id,
            'productName': stock.product_name,
            'colorsCount': len(stock.colors),
            'totalLots':   stock.total_lots,
        })

    logger.info("Stock import: %d products saved, %d failed", len(saved), len(errors))

    summary = {
        'message':  f"Imported {len(saved)} products successfully",
        'imported': len(saved),
        'products': saved,
    }
    if errors:
        summary['errors'] = errors
    return summary
