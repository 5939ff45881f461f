"""
Tabular views of stock documents for the admin dashboard.
"""

import pandas as pd


def stock_summary(stocks):
    """
    One row per (product, colour).
    Returns (df, error) with columns: Product, Code, Warehouse, Color, Lots, Pcs, Sqft.
    """
    if not stocks:
        return pd.DataFrame(), "No stock records."
    rows = []
    for stock in stocks:
        for color in stock.colors:
            rows.append({
                'Product':   stock.product_name,
                'Code':      stock.product_code or '',
                'Warehouse': stock.warehouse or '-',
                'Color':     color.color_name,
                'Lots':      len(color.lots),
                'Pcs':       color.total_pcs,
                'Sqft':      color.total_sqft,
            })
    if not rows:
        return pd.DataFrame(), "Stock records have no colours yet."
    df = pd.DataFrame(rows)
    return df.sort_values(['Product', 'Color']).reset_index(drop=True), None


def lot_table(stock):
    """
    Every lot of one stock document, oldest first.
    Returns (df, error) with columns: Color, Date, Lot No, Received, Pcs, Sqft.
    """
    rows = [
        {
            'Color':    color.color_name,
            'Date':     lot.date,
            'Lot No':   lot.lot_no,
            'Received': lot.received,
            'Pcs':      lot.pcs,
            'Sqft':     lot.sqft,
        }
        for color in stock.colors
        for lot in color.lots
    ]
    if not rows:
        return pd.DataFrame(), f"{stock.product_name}: no lots."
    df = pd.DataFrame(rows)
    df['Date'] = pd.to_datetime(df['Date'], errors='coerce', utc=True)
    return df.sort_values('Date', kind='stable').reset_index(drop=True), None
