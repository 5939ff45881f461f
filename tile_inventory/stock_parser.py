"""
Stock workbook parser for hand-typed tile stock sheets.
The first sheet is a cover page and is ignored. The second sheet holds
one product (the sheet name is the product name) with a small table per
colour stacked vertically, the colour name typed a line or two above
each table's header row.

The parser works by:
1. Reading every sheet into a plain grid (list of rows of raw cell values).
2. Scanning the product sheet row by row for header rows
   (DATE / LOTNO / RECIVED / PCS / SQFT, spelling variants allowed).
3. Looking at the rows ABOVE each header for the colour name.
4. Collecting the rows BELOW the header as lots until a blank row or
   the next header row.
"""

import io
import logging
import math
import re
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import Path

import openpyxl
import pandas as pd

from tile_inventory.errors import FormatError
from tile_inventory.models import Lot, ParsedColorBlock, ParsedProduct

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
# HEADER VOCABULARY
# Canonical field -> accepted header spellings (upper-case).
# "RECIVED" is how the stock sheets have always spelt it.
# ─────────────────────────────────────────────────────────────

HEADER_SYNONYMS = {
    'date':     ('DATE',),
    'lotNo':    ('LOTNO', 'LOT NO', 'LOT'),
    'received': ('RECIVED', 'RECEIVED'),
    'pcs':      ('PCS', 'PIECES'),
    'sqft':     ('SQFT', 'SQ FT', 'SQUARE FEET'),
}

# Column order assumed when a field cannot be located in the header row
HEADER_FIELDS = tuple(HEADER_SYNONYMS)

HEADER_KEYWORDS = {v for variants in HEADER_SYNONYMS.values() for v in variants}

COLOR_LOOKBACK_ROWS = 3
COLOR_NAME_MAX_LEN  = 50

# Day zero of spreadsheet serial dates
EXCEL_EPOCH = datetime(1899, 12, 30)


# ─────────────────────────────────────────────────────────────
# CELL HELPERS
# ─────────────────────────────────────────────────────────────

def _cell(v):
    """Clean cell value to a trimmed string ('' for empty cells)."""
    if v is None:
        return ''
    if isinstance(v, float):
        if pd.isna(v):
            return ''
        if v.is_integer():
            return str(int(v))
    s = str(v).strip()
    if s.lower() in ('nan', 'none'):
        return ''
    return s


def _is_number(s):
    try:
        float(s.replace(',', ''))
        return True
    except ValueError:
        return False


def _clean_num(v):
    """
    Parse a quantity cell. Thousands separators and any parenthesised
    suffix are dropped. Anything unreadable, infinite or negative counts as 0.
    """
    if v is None or isinstance(v, bool):
        return 0.0
    if isinstance(v, (int, float)):
        n = float(v)
    else:
        s = re.sub(r'\(.*?\)', '', str(v)).replace(',', '').strip()
        try:
            n = float(s)
        except ValueError:
            return 0.0
    if not math.isfinite(n) or n < 0:
        return 0.0
    return n


def _parse_date(v, now):
    """
    Native dates are kept, numbers are spreadsheet serial days,
    strings are parsed by pandas. Falls back to ``now``.
    """
    if isinstance(v, datetime):
        return v
    if isinstance(v, date):
        return datetime(v.year, v.month, v.day)
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        if pd.isna(v):
            return now
        try:
            return EXCEL_EPOCH + timedelta(days=float(v))
        except OverflowError:
            return now
    s = _cell(v)
    if not s:
        return now
    ts = pd.to_datetime(s, errors='coerce')
    if pd.isna(ts):
        ts = pd.to_datetime(s, errors='coerce', dayfirst=True)
    if pd.isna(ts):
        return now
    return ts.to_pydatetime()


def _row_text(row):
    return ' '.join(_cell(c).upper() for c in row)


def is_blank_row(row):
    """Return True if every cell of the row is empty after trimming."""
    return all(_cell(c) == '' for c in row)


def is_header_row(row):
    """Return True if the row names all five stock columns."""
    text = _row_text(row)
    return all(
        any(variant in text for variant in variants)
        for variants in HEADER_SYNONYMS.values()
    )


def build_column_map(row):
    """
    Map canonical fields to column indexes of a header row.
    Exact cell matches win, then cells containing a variant, then the
    canonical column order.
    """
    cells = [_cell(c).upper() for c in row]
    mapped = {}

    for field, variants in HEADER_SYNONYMS.items():
        for idx, value in enumerate(cells):
            if value in variants and idx not in mapped.values():
                mapped[field] = idx
                break

    for field, variants in HEADER_SYNONYMS.items():
        if field in mapped:
            continue
        for idx, value in enumerate(cells):
            if idx in mapped.values():
                continue
            if any(variant in value for variant in variants):
                mapped[field] = idx
                break

    for pos, field in enumerate(HEADER_FIELDS):
        mapped.setdefault(field, pos)
    return mapped


def _color_candidate(v):
    """Return the colour name held in this cell, or '' if it cannot be one."""
    if not isinstance(v, str):
        return ''
    s = v.strip()
    if not s or len(s) >= COLOR_NAME_MAX_LEN:
        return ''
    if _is_number(s) or s.upper() in HEADER_KEYWORDS:
        return ''
    return s


# ─────────────────────────────────────────────────────────────
# TABLE SCANNER (state machine)
# ─────────────────────────────────────────────────────────────

class ScanState(Enum):
    SCANNING = 'scanning'
    IN_TABLE = 'in_table'


class Transition(Enum):
    HEADER_FOUND    = 'header_found'
    ADJACENT_HEADER = 'adjacent_header'
    BLANK_ROW       = 'blank_row'
    DATA_ROW        = 'data_row'
    OUTSIDE_TABLE   = 'outside_table'


def classify_row(row, state):
    """Decide which transition a row triggers from the given state."""
    if is_blank_row(row):
        return Transition.BLANK_ROW
    if is_header_row(row):
        if state is ScanState.IN_TABLE:
            return Transition.ADJACENT_HEADER
        return Transition.HEADER_FOUND
    if state is ScanState.IN_TABLE:
        return Transition.DATA_ROW
    return Transition.OUTSIDE_TABLE


class TableScanner:
    """
    Walks one sheet grid and collects a ParsedColorBlock per colour table.

    Rows already used by a previous table (its header and lot rows) are
    never looked at again when searching for the next colour name.
    """

    def __init__(self, grid, now=None):
        self.grid = grid
        self.now = now or datetime.now()
        self.state = ScanState.SCANNING
        self.blocks = []
        self.current = None
        self.column_map = {}
        self.header_row = None
        self.last_table_row = -1

    def run(self):
        for idx, row in enumerate(self.grid):
            self.step(idx, list(row or []))
        self._flush()
        return self.blocks

    def step(self, idx, row):
        transition = classify_row(row, self.state)
        if transition in (Transition.HEADER_FOUND, Transition.ADJACENT_HEADER):
            self._start_table(idx, row)
        elif transition is Transition.BLANK_ROW:
            self._flush()
            self._reset()
        elif transition is Transition.DATA_ROW:
            self._add_row(idx, row)
        return transition

    def _start_table(self, idx, row):
        self._flush()
        self.column_map = build_column_map(row)
        self.current = ParsedColorBlock(color_name=self._resolve_color_name(idx, row))
        self.header_row = idx
        self.last_table_row = idx
        self.state = ScanState.IN_TABLE

    def _resolve_color_name(self, idx, row):
        first = max(idx - COLOR_LOOKBACK_ROWS, self.last_table_row + 1, 0)
        for r in range(idx - 1, first - 1, -1):
            for v in self.grid[r] or []:
                name = _color_candidate(v)
                if name:
                    return name
        if row:
            name = _color_candidate(row[0])
            if name:
                return name
        return f'Color-{len(self.blocks) + 1}'

    def _add_row(self, idx, row):
        lot, meaningful = row_to_lot(row, self.column_map, idx, self.now)
        if meaningful:
            self.current.lots.append(lot)
            self.last_table_row = idx

    def _flush(self):
        if self.current is not None and self.current.lots:
            logger.debug("Colour table '%s': %d lots", self.current.color_name, len(self.current.lots))
            self.blocks.append(self.current)
        self.current = None

    def _reset(self):
        self.column_map = {}
        self.header_row = None
        self.state = ScanState.SCANNING


def row_to_lot(row, column_map, row_index, now):
    """
    Build a Lot from one data row.
    Returns (lot, meaningful) - blank-ish rows come back with meaningful=False.
    """
    def pick(field):
        idx = column_map.get(field)
        if idx is None or idx >= len(row):
            return None
        return row[idx]

    lot_no = _cell(pick('lotNo'))
    synthetic = not lot_no
    if synthetic:
        lot_no = f'LOT-{row_index}'

    lot = Lot(
        date=_parse_date(pick('date'), now),
        lot_no=lot_no,
        received=_clean_num(pick('received')),
        pcs=_clean_num(pick('pcs')),
        sqft=_clean_num(pick('sqft')),
    )
    meaningful = (not synthetic) or lot.pcs > 0 or lot.sqft > 0 or lot.received > 0
    return lot, meaningful


def extract(grid, now=None):
    """Extract colour blocks from one sheet grid. Never raises on bad rows."""
    return TableScanner(grid, now=now).run()


# ─────────────────────────────────────────────────────────────
# WORKBOOK READING
# ─────────────────────────────────────────────────────────────

def _load_bytes(source):
    if isinstance(source, (bytes, bytearray)):
        return bytes(source)
    return Path(source).read_bytes()


def read_workbook(source):
    """
    Read a workbook (path or raw bytes) into [(sheet_name, grid), ...]
    in workbook order. openpyxl handles .xlsx, pandas/xlrd handles .xls.
    """
    try:
        raw = _load_bytes(source)
    except OSError as e:
        raise FormatError(f"Cannot open workbook: {e}") from e

    try:
        wb = openpyxl.load_workbook(io.BytesIO(raw), data_only=True)
    except Exception as xlsx_err:
        logger.debug("openpyxl could not read workbook (%s), trying xlrd", xlsx_err)
        try:
            frames = pd.read_excel(io.BytesIO(raw), sheet_name=None, header=None, engine='xlrd')
        except Exception as e:
            raise FormatError(f"Cannot open workbook: {e}") from e
        return [
            (name, [[None if pd.isna(v) else v for v in row] for row in df.itertuples(index=False)])
            for name, df in frames.items()
        ]

    try:
        return [
            (ws.title, [list(row) for row in ws.iter_rows(values_only=True)])
            for ws in wb.worksheets
        ]
    finally:
        wb.close()


def extract_products(sheets, now=None):
    """
    Apply the two-sheet convention and extract the product table.
    Returns [ParsedProduct] or [] when the product sheet holds no tables.
    """
    if len(sheets) < 2:
        raise FormatError(
            "Workbook must contain at least 2 sheets; the product table is read from sheet 2."
        )
    sheet_name, grid = sheets[1]
    blocks = extract(grid, now=now)
    logger.debug("Sheet '%s': %d colour tables", sheet_name, len(blocks))
    if not blocks:
        return []
    return [ParsedProduct(product_name=sheet_name, colors=blocks)]
