"""
Tests for spreadsheet parsing and workbook writing
"""

import io

import pandas as pd
import pytest

from xcel_dashboard.models import FileType
from xcel_dashboard.services.column_analysis import data_quality_score, format_number, to_number
from xcel_dashboard.services.file_parser import ParseError, detect_file_type, parse_bytes, write_xlsx


class TestFileParser:

    def test_detect_file_type(self):
        assert detect_file_type("Report.XLSX") == FileType.XLSX
        assert detect_file_type("legacy.xls") == FileType.XLS
        assert detect_file_type("export.csv") == FileType.CSV

    def test_detect_unsupported(self):
        with pytest.raises(ParseError):
            detect_file_type("slides.pptx")
        with pytest.raises(ParseError):
            detect_file_type("README")

    def test_blank_rows_are_dropped(self):
        content = b"Name,Amount\nA,1\n,\nB,2\n"

        headers, rows = parse_bytes(content, FileType.CSV)

        assert headers == ["Name", "Amount"]
        assert [r["Name"] for r in rows] == ["A", "B"]

    def test_blank_and_duplicate_headers(self):
        content = b"Name,,Name\nA,1,B\n"

        headers, rows = parse_bytes(content, FileType.CSV)

        assert headers == ["Name", "Column2", "Name_2"]
        assert rows == [{"Name": "A", "Column2": "1", "Name_2": "B"}]

    def test_empty_file(self):
        with pytest.raises(ParseError, match="No data found in file"):
            parse_bytes(b"", FileType.CSV)

    def test_write_xlsx_round_trips_headers(self):
        content = write_xlsx(["Name", "Total"], [{"Name": "A", "Total": 3}, {"Name": "B", "Total": None}])

        frame = pd.read_excel(io.BytesIO(content), engine="openpyxl")

        assert list(frame.columns) == ["Name", "Total"]
        assert len(frame) == 2

    def test_corrupt_workbook(self):
        with pytest.raises(ParseError):
            parse_bytes(b"not a workbook", FileType.XLSX)


class TestColumnAnalysis:

    def test_to_number(self):
        assert to_number("$1,234.50") == 1234.5
        assert to_number("N/A") is None
        assert to_number(True) is None
        assert to_number(7) == 7.0

    def test_format_number(self):
        assert format_number(1234567.0) == "1,234,567"
        assert format_number(1234.5) == "1,234.50"
        assert format_number(None) == "N/A"

    def test_quality_score(self):
        rows = [{"A": 1, "B": None}, {"A": 1, "B": None}]
        # 50% complete, 50% unique
        assert data_quality_score(["A", "B"], rows) == 50
