"""
Tile Stock Console
Streamlit admin page for stock workbook imports.
Supports: two-sheet stock workbooks (.xlsx / .xls), one product per workbook,
one table per colour on sheet 2.
"""

import tempfile
from pathlib import Path

import streamlit as st

from tile_inventory.config import load_settings, setup_logging
from tile_inventory.errors import StockImportError
from tile_inventory.importer import import_stock_file
from tile_inventory.stock_report import lot_table, stock_summary
from tile_inventory.store import JsonStockStore

SETTINGS = load_settings()
setup_logging(SETTINGS.log_level)


# ── Page Config ───────────────────────────────────────────────
st.set_page_config(
    page_title="Tile Stock Console",
    page_icon="🧱",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ── CSS ───────────────────────────────────────────────────────
try:
    with open("style.css") as f:
        st.markdown(f"<style>{f.read()}</style>", unsafe_allow_html=True)
except FileNotFoundError:
    pass

# ── Session State ─────────────────────────────────────────────
_keys = ["last_summary", "last_error", "warehouse"]
for k in _keys:
    if k not in st.session_state:
        st.session_state[k] = None

store = JsonStockStore(SETTINGS.stock_file)


def _save_upload(uploaded):
    """Write the uploaded workbook to the upload dir; the importer removes it."""
    SETTINGS.upload_dir.mkdir(parents=True, exist_ok=True)
    suffix = Path(uploaded.name).suffix or ".xlsx"
    with tempfile.NamedTemporaryFile(dir=SETTINGS.upload_dir, suffix=suffix, delete=False) as out:
        out.write(uploaded.getvalue())
        return out.name


# ── Sidebar ───────────────────────────────────────────────────
with st.sidebar:
    st.markdown("## 🧱 Stock Import")
    st.markdown("---")

    st.caption("Sheet 1 is ignored. Sheet 2 is named after the product and holds one "
               "DATE / LOTNO / RECIVED / PCS / SQFT table per colour.")
    workbook = st.file_uploader("Upload Stock Workbook", type=["xlsx", "xls"], key="stock_up")
    warehouse = st.text_input("Warehouse ID", key="warehouse_in",
                              help="Leave empty to import without a warehouse.")

    st.markdown("---")
    run_btn = st.button("▶ Import Stock", use_container_width=True)

    if run_btn:
        if not workbook:
            st.error("No file uploaded.")
        else:
            with st.spinner("Reading workbook..."):
                try:
                    summary = import_stock_file(
                        _save_upload(workbook),
                        warehouse_id=warehouse.strip() or None,
                        store=store,
                        require_admin=False,
                    )
                    st.session_state.last_summary = summary
                    st.session_state.last_error = None
                    st.session_state.warehouse = warehouse.strip() or None
                    st.success(f"✅ {summary['message']}")
                    for e in summary.get('errors', []):
                        st.warning(f"⚠ {e['product']}: {e['error']}")
                except StockImportError as e:
                    st.session_state.last_summary = None
                    st.session_state.last_error = str(e)
                    st.error(f"Import failed: {e}")

# ── Main Dashboard ────────────────────────────────────────────
st.markdown("# 🧱 Tile Stock Dashboard")
st.markdown("*Products, colours and lots per warehouse.*")
st.markdown("---")

col_import, col_stock = st.columns([1, 2])

# ─── Column 1: Last Import ────────────────────────────────────
with col_import:
    st.markdown("### 📥 Last Import")
    summary = st.session_state.last_summary
    if summary:
        st.metric("Products Imported", summary['imported'])
        for p in summary['products']:
            st.metric(p['productName'], f"{p['colorsCount']} colours", f"{p['totalLots']} lots")
        with st.expander("Import details"):
            st.json(summary)
    elif st.session_state.last_error:
        st.error(st.session_state.last_error)
    else:
        st.info("Upload a stock workbook from the sidebar.")

# ─── Column 2: Stock Status ───────────────────────────────────
with col_stock:
    st.markdown("### 📦 Stock Status")
    wh = st.session_state.warehouse
    stocks = store.list(warehouse=wh)
    if wh:
        st.caption(f"Warehouse: {wh}")

    df, err = stock_summary(stocks)
    if err:
        st.info(err)
    else:
        st.metric("Products", len(stocks))
        st.metric("Total Pcs", f"{df['Pcs'].sum():,.0f}")
        st.dataframe(df.style.format({'Pcs': '{:,.0f}', 'Sqft': '{:,.2f}'}),
                     use_container_width=True, height=360)

        names = {f"{s.product_name} ({s.warehouse or '-'})": s for s in stocks}
        picked = st.selectbox("Lots for product", list(names))
        if picked:
            lots, lerr = lot_table(names[picked])
            if lerr:
                st.info(lerr)
            else:
                st.dataframe(lots, use_container_width=True, height=300)
