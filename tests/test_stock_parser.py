"""Stock sheet parser unit tests."""

import io
from datetime import date, datetime
from pathlib import Path

import openpyxl
import pytest

from tile_inventory.errors import FormatError
from tile_inventory.stock_parser import (
    ScanState,
    TableScanner,
    Transition,
    build_column_map,
    classify_row,
    extract,
    extract_products,
    is_blank_row,
    is_header_row,
    read_workbook,
    row_to_lot,
    _clean_num,
    _parse_date,
)

NOW = datetime(2025, 6, 1, 12, 0)
LEGACY_XLS = Path(__file__).parent / "data" / "stock_legacy.xls"
HEADER = ["DATE", "LOTNO", "RECIVED", "PCS", "SQFT"]

SCENARIO_A = [
    ["Beige"],
    HEADER,
    ["2024-01-01", "L1", 100, 90, 450.5],
    [],
    ["Gray"],
    HEADER,
    ["2024-01-02", "L2", 50, 48, 200],
]


class TestHeaderDetection:
    """Header rows are recognised through the synonym table."""

    def test_misspelt_received(self):
        assert is_header_row(HEADER) is True

    def test_correct_spelling(self):
        assert is_header_row(["Date", "Lot No", "Received", "Pcs", "Sq Ft"]) is True

    def test_synonyms_with_padding(self):
        assert is_header_row(["  date ", None, "lot", "RECEIVED", "Pieces", "Square Feet"]) is True

    def test_missing_token(self):
        assert is_header_row(["DATE", "LOTNO", "PCS", "SQFT"]) is False

    def test_data_row_is_not_header(self):
        assert is_header_row(["2024-01-01", "L1", 100, 90, 450.5]) is False

    def test_column_map_follows_header_positions(self):
        mapped = build_column_map(["", "SQFT", "PCS", "LOT NO", "DATE", "RECIVED"])
        assert mapped == {"sqft": 1, "pcs": 2, "lotNo": 3, "date": 4, "received": 5}

    def test_column_map_lot_variants(self):
        mapped = build_column_map(["Date", "Lot", "Received", "Pieces", "Sq Ft"])
        assert mapped == {"date": 0, "lotNo": 1, "received": 2, "pcs": 3, "sqft": 4}


class TestRowClassification:
    """Named transitions of the scanner."""

    def test_header_while_scanning(self):
        assert classify_row(HEADER, ScanState.SCANNING) is Transition.HEADER_FOUND

    def test_header_inside_table(self):
        assert classify_row(HEADER, ScanState.IN_TABLE) is Transition.ADJACENT_HEADER

    def test_blank_row(self):
        assert classify_row(["", None, "  "], ScanState.IN_TABLE) is Transition.BLANK_ROW
        assert is_blank_row([]) is True

    def test_data_row(self):
        assert classify_row(["2024-01-01", "L1"], ScanState.IN_TABLE) is Transition.DATA_ROW

    def test_text_outside_table(self):
        assert classify_row(["Beige"], ScanState.SCANNING) is Transition.OUTSIDE_TABLE

    def test_blank_row_resets_scanner(self):
        scanner = TableScanner([], now=NOW)
        scanner.step(0, HEADER)
        assert scanner.state is ScanState.IN_TABLE
        scanner.step(1, [])
        assert scanner.state is ScanState.SCANNING
        assert scanner.column_map == {}
        assert scanner.current is None


class TestCellParsing:
    def test_thousands_separator(self):
        assert _clean_num("1,200") == 1200.0

    def test_parenthesised_suffix(self):
        assert _clean_num("45 (approx)") == 45.0

    def test_parenthesised_negative_is_zero(self):
        assert _clean_num("(12)") == 0.0

    def test_garbage_and_empty(self):
        assert _clean_num("abc") == 0.0
        assert _clean_num(None) == 0.0
        assert _clean_num(-5) == 0.0

    def test_non_finite_is_zero(self):
        assert _clean_num("inf") == 0.0
        assert _clean_num("Infinity") == 0.0
        assert _clean_num("1e400") == 0.0
        assert _clean_num("nan") == 0.0
        assert _clean_num(float("inf")) == 0.0

    def test_non_finite_row_keeps_other_quantities(self):
        grid = [["Beige"], HEADER, ["2024-01-01", "L1", "1,000", "inf", "1e400"]]
        lot = extract(grid, now=NOW)[0].lots[0]
        assert (lot.received, lot.pcs, lot.sqft) == (1000.0, 0.0, 0.0)

    def test_native_dates_kept(self):
        assert _parse_date(datetime(2024, 2, 3, 10, 30), NOW) == datetime(2024, 2, 3, 10, 30)
        assert _parse_date(date(2024, 2, 3), NOW) == datetime(2024, 2, 3)

    def test_serial_date(self):
        assert _parse_date(45292, NOW) == datetime(2024, 1, 1)

    def test_string_date(self):
        assert _parse_date("2024-03-05", NOW) == datetime(2024, 3, 5)

    def test_unparseable_date_uses_now(self):
        assert _parse_date("not a date", NOW) == NOW
        assert _parse_date(None, NOW) == NOW

    def test_blank_lot_number_gets_placeholder(self):
        lot, meaningful = row_to_lot(["2024-01-01", "", 0, 5, 0], build_column_map(HEADER), 7, NOW)
        assert lot.lot_no == "LOT-7"
        assert meaningful is True

    def test_numeric_lot_number(self):
        lot, _ = row_to_lot(["2024-01-01", 1234.0, 1, 1, 1], build_column_map(HEADER), 2, NOW)
        assert lot.lot_no == "1234"

    def test_empty_row_not_meaningful(self):
        _, meaningful = row_to_lot(["2024-01-01", "", 0, 0, 0], build_column_map(HEADER), 3, NOW)
        assert meaningful is False


class TestExtract:
    """Colour tables recovered from a sheet grid."""

    def test_scenario_a(self):
        blocks = extract(SCENARIO_A, now=NOW)
        assert [b.color_name for b in blocks] == ["Beige", "Gray"]

        beige = blocks[0].lots
        assert len(beige) == 1
        assert beige[0].lot_no == "L1"
        assert beige[0].date == datetime(2024, 1, 1)
        assert (beige[0].received, beige[0].pcs, beige[0].sqft) == (100, 90, 450.5)

        gray = blocks[1].lots
        assert [(lot.lot_no, lot.received, lot.pcs, lot.sqft) for lot in gray] == [("L2", 50, 48, 200)]

    def test_single_block_sums(self):
        grid = [
            ["Ivory"],
            HEADER,
            ["2024-01-01", "A1", 10, 8, 40],
            ["2024-01-02", "A2", 12, 11, 55.25],
            ["2024-01-03", "A3", 5, 5, 25],
        ]
        blocks = extract(grid, now=NOW)
        assert len(blocks) == 1
        assert sum(lot.pcs for lot in blocks[0].lots) == 24
        assert sum(lot.sqft for lot in blocks[0].lots) == 120.25

    def test_blank_row_boundary_no_leakage(self):
        blocks = extract(SCENARIO_A, now=NOW)
        assert {lot.lot_no for lot in blocks[0].lots} == {"L1"}
        assert {lot.lot_no for lot in blocks[1].lots} == {"L2"}

    def test_adjacent_headers_split(self):
        grid = [
            ["Beige"],
            HEADER,
            ["2024-01-01", "L1", 100, 90, 450.5],
            ["Gray"],
            HEADER,
            ["2024-01-02", "L2", 50, 48, 200],
        ]
        blocks = extract(grid, now=NOW)
        assert [b.color_name for b in blocks] == ["Beige", "Gray"]
        assert [lot.lot_no for lot in blocks[0].lots] == ["L1"]
        assert [lot.lot_no for lot in blocks[1].lots] == ["L2"]

    def test_adjacent_headers_without_names(self):
        grid = [
            HEADER,
            ["2024-01-01", "L1", 1, 1, 1],
            HEADER,
            ["2024-01-02", "L2", 2, 2, 2],
        ]
        blocks = extract(grid, now=NOW)
        assert [b.color_name for b in blocks] == ["Color-1", "Color-2"]

    def test_scenario_d_empty_row_skipped(self):
        grid = [
            ["Beige"],
            HEADER,
            ["2024-01-01", "L1", 10, 9, 45],
            ["2024-01-02", "", 0, 0, 0],
            ["2024-01-03", "L3", 20, 18, 90],
        ]
        blocks = extract(grid, now=NOW)
        assert len(blocks) == 1
        assert [lot.lot_no for lot in blocks[0].lots] == ["L1", "L3"]

    def test_color_name_from_header_row(self):
        grid = [
            ["Walnut", "DATE", "LOTNO", "RECIVED", "PCS", "SQFT"],
            ["", "2024-01-01", "W1", 3, 3, 15],
        ]
        blocks = extract(grid, now=NOW)
        assert blocks[0].color_name == "Walnut"
        assert blocks[0].lots[0].lot_no == "W1"

    def test_lookback_skips_numbers_and_long_text(self):
        grid = [
            ["Gray"],
            [123],
            ["x" * 60],
            HEADER,
            ["2024-01-01", "G1", 1, 1, 1],
        ]
        assert extract(grid, now=NOW)[0].color_name == "Gray"

    def test_lookback_window_is_three_rows(self):
        grid = [
            ["Gray"],
            [1],
            [2],
            [3],
            HEADER,
            ["2024-01-01", "G1", 1, 1, 1],
        ]
        assert extract(grid, now=NOW)[0].color_name == "Color-1"

    def test_nearest_name_wins(self):
        grid = [
            ["Stock Report"],
            ["Beige"],
            HEADER,
            ["2024-01-01", "B1", 1, 1, 1],
        ]
        assert extract(grid, now=NOW)[0].color_name == "Beige"

    def test_headerless_and_empty_tables_yield_nothing(self):
        assert extract([["just", "text"], [1, 2, 3]], now=NOW) == []
        assert extract([["Beige"], HEADER, []], now=NOW) == []
        assert extract([], now=NOW) == []


class TestExtractProducts:
    def test_product_named_after_second_sheet(self):
        products = extract_products([("Cover", [["Stock"]]), ("TileModelX", SCENARIO_A)], now=NOW)
        assert len(products) == 1
        assert products[0].product_name == "TileModelX"
        assert [c.color_name for c in products[0].colors] == ["Beige", "Gray"]

    def test_single_sheet_is_format_error(self):
        with pytest.raises(FormatError):
            extract_products([("TileModelX", SCENARIO_A)])

    def test_no_tables_no_product(self):
        assert extract_products([("Cover", []), ("Empty", [["nothing here"]])]) == []


class TestReadWorkbook:
    def test_reads_sheets_in_order(self, tmp_path):
        wb = openpyxl.Workbook()
        wb.active.title = "Cover"
        ws = wb.create_sheet("TileModelX")
        ws.append(["Beige"])
        ws.append(HEADER)
        ws.append([datetime(2024, 1, 1), "L1", 100, 90, 450.5])
        path = tmp_path / "stock.xlsx"
        wb.save(path)

        sheets = read_workbook(path)
        assert [name for name, _ in sheets] == ["Cover", "TileModelX"]
        grid = sheets[1][1]
        assert grid[0][0] == "Beige"
        assert grid[2][0] == datetime(2024, 1, 1)

    def test_reads_bytes(self):
        wb = openpyxl.Workbook()
        wb.create_sheet("Second")
        buf = io.BytesIO()
        wb.save(buf)
        assert len(read_workbook(buf.getvalue())) == 2

    def test_garbage_is_format_error(self):
        with pytest.raises(FormatError):
            read_workbook(b"definitely not a workbook")

    def test_missing_file_is_format_error(self, tmp_path):
        with pytest.raises(FormatError):
            read_workbook(tmp_path / "missing.xlsx")

    def test_legacy_xls(self):
        sheets = read_workbook(LEGACY_XLS)
        assert [name for name, _ in sheets] == ["Cover", "TileModelX"]
        assert sheets[0][1] == [["Stock report"]]

        grid = sheets[1][1]
        assert len(grid) == 7
        assert grid[0] == ["Beige", None, None, None, None]
        assert grid[3] == [None] * 5
        assert grid[2][:2] == ["2024-01-01", "L1"]

        blocks = extract(grid, now=NOW)
        assert [b.color_name for b in blocks] == ["Beige", "Gray"]
        assert [(lot.lot_no, lot.pcs, lot.sqft) for lot in blocks[0].lots] == [("L1", 90, 450.5)]
        assert [(lot.lot_no, lot.pcs, lot.sqft) for lot in blocks[1].lots] == [("L2", 48, 200)]

    def test_legacy_xls_bytes(self):
        sheets = read_workbook(LEGACY_XLS.read_bytes())
        assert extract_products(sheets, now=NOW)[0].product_name == "TileModelX"
