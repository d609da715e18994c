"""Tests for spreadsheet and CSV parsing."""

import json

import pytest

from conftest import SALES_ROWS, workbook_bytes
from parsers.file_parser import FileParserFactory, ParseError, parse_upload


class TestExcelParser:

    def test_parses_every_sheet_in_order(self, sales_xlsx):
        sheets = parse_upload(sales_xlsx, 'sales.xlsx')
        assert [s['name'] for s in sheets] == ['Sales', 'Regions']

        sales = sheets[0]
        assert sales['headers'] == ['Month', 'Revenue', 'Units']
        assert sales['total_rows'] == 4
        assert sales['data'][0] == ['Jan', 100, 10]
        assert sales['data'][2] == ['Mar', 0, 9]

    def test_header_is_first_non_empty_row(self):
        content = workbook_bytes({'Data': [[None, None], ['Name', 'Score'], ['Ann', 3]]})
        sheet = parse_upload(content, 'scores.xlsx')[0]
        assert sheet['headers'] == ['Name', 'Score']
        assert sheet['data'] == [['Ann', 3]]

    def test_blank_and_duplicate_headers(self):
        content = workbook_bytes({'Data': [['Name', None, 'Name'], ['Ann', 1, 'x'], ['Bob', 2, 'y']]})
        sheet = parse_upload(content, 'dupes.xlsx')[0]
        assert sheet['headers'] == ['Name', 'Column_2', 'Name_2']

    def test_generated_names_never_collide(self):
        content = workbook_bytes({'Data': [['Name', 'Name', 'Name_2'], ['Ann', 'x', 'y']]})
        sheet = parse_upload(content, 'collide.xlsx')[0]
        assert sheet['headers'] == ['Name', 'Name_2', 'Name_2_2']
        assert len(set(sheet['headers'])) == 3

    def test_empty_sheet(self):
        content = workbook_bytes({'Empty': [], 'Data': SALES_ROWS})
        sheets = parse_upload(content, 'mixed.xlsx')
        assert sheets[0] == {'name': 'Empty', 'headers': [], 'data': [], 'total_rows': 0}
        assert sheets[1]['total_rows'] == 4

    def test_corrupt_workbook(self):
        with pytest.raises(ParseError):
            parse_upload(b'this is not a workbook', 'broken.xlsx')


class TestCSVParser:

    def test_comma_separated(self):
        content = b'Month,Revenue\nJan,100\nFeb,150\n'
        sheets = parse_upload(content, 'monthly.csv')
        assert len(sheets) == 1
        assert sheets[0]['name'] == 'monthly'
        assert sheets[0]['headers'] == ['Month', 'Revenue']
        assert sheets[0]['data'] == [['Jan', 100], ['Feb', 150]]

    def test_semicolon_separated(self):
        content = b'City;Population\nOslo;700000\nBergen;285000\n'
        sheet = parse_upload(content, 'cities.csv')[0]
        assert sheet['headers'] == ['City', 'Population']
        assert sheet['total_rows'] == 2

    def test_null_markers_become_none(self):
        content = b'Name,Score\nAnn,N/A\nBob,7\n'
        sheet = parse_upload(content, 'scores.csv')[0]
        assert sheet['data'][0] == ['Ann', None]

    def test_infinite_cells_become_null(self):
        content = b'Label,Value\na,1\nb,inf\nc,-inf\n'
        sheet = parse_upload(content, 'values.csv')[0]
        assert sheet['data'] == [['a', 1], ['b', None], ['c', None]]
        json.dumps(sheet, allow_nan=False)

    def test_latin1_content(self):
        content = 'Name,City\nJosé,Málaga\n'.encode('latin-1')
        sheet = parse_upload(content, 'people.csv')[0]
        assert sheet['data'][0] == ['José', 'Málaga']


class TestFileParserFactory:

    def test_supported_types(self):
        assert FileParserFactory().supported_types == {'csv', 'xls', 'xlsx'}

    def test_unknown_extension(self):
        with pytest.raises(ParseError):
            FileParserFactory().get_parser('pdf')

    def test_parse_upload_without_extension(self):
        with pytest.raises(ParseError):
            parse_upload(b'a,b\n1,2\n', 'noextension')
