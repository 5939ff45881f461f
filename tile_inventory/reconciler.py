"""
Stock reconciliation: fold freshly parsed colour tables into the stock
document for (productName, warehouse), or build a new one.

Everything here is pure. Nothing is read or written except through the
``lookup`` callable handed to ``reconcile``; saving the result is the
caller's job.
"""

import logging
from dataclasses import replace

from tile_inventory.errors import ValidationError
from tile_inventory.models import Color, Stock

logger = logging.getLogger(__name__)


def valid_colors(blocks):
    """Drop colour blocks with an empty name or no lots."""
    return [b for b in blocks if (b.color_name or '').strip() and b.lots]


def merge_colors(colors, blocks):
    """
    Merge parsed blocks into a sequence of colours and return the new tuple.
    A block whose name matches an existing colour (ignoring case) has its
    lots appended to that colour; any other block becomes a new colour.
    Lots are never de-duplicated.
    """
    merged = list(colors)
    for block in blocks:
        name = block.color_name.strip()
        for i, color in enumerate(merged):
            if color.matches(name):
                merged[i] = color.with_lots(block.lots)
                break
        else:
            merged.append(Color(color_name=name, lots=tuple(block.lots)))
    return tuple(merged)


def merge_stock(existing, blocks):
    """Return a copy of ``existing`` with ``blocks`` merged in."""
    return replace(existing, colors=merge_colors(existing.colors, blocks))


def build_stock(warehouse_id, product_name, blocks):
    """Fresh stock aggregate for a product seen for the first time."""
    return Stock(
        product_name=product_name,
        warehouse=warehouse_id,
        colors=merge_colors((), blocks),
    )


def reconcile(lookup, warehouse_id, parsed_product):
    """
    Reconcile one parsed product against the store.

    ``lookup(product_name, warehouse_id)`` returns the existing Stock or None.
    Returns the Stock to save: a merged copy of the existing document
    (its ``id`` set) or a new one (``id`` is None).
    Raises ValidationError when no usable colour is left.
    """
    blocks = valid_colors(parsed_product.colors)
    if not blocks:
        raise ValidationError(
            f"No valid colors found for product '{parsed_product.product_name}'"
        )

    if warehouse_id is None:
        logger.warning("Stock '%s' is being reconciled without a warehouse", parsed_product.product_name)

    existing = lookup(parsed_product.product_name, warehouse_id)
    if existing is None:
        return build_stock(warehouse_id, parsed_product.product_name, blocks)

    logger.debug(
        "Merging %d colours into existing stock '%s' (%s)",
        len(blocks), existing.product_name, existing.id,
    )
    return merge_stock(existing, blocks)
