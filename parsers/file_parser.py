import logging
from abc import ABC, abstractmethod

import pandas as pd

from models import make_json_serializable

NULL_MARKERS = ['nan', 'NaN', 'NULL', 'null', 'N/A', 'n/a']


class ParseError(Exception):
    """Raised when an uploaded file cannot be turned into sheets"""


class BaseParser(ABC):
    """Abstract base class for file parsers"""

    @abstractmethod
    def parse(self, content, filename):
        """Parse raw file bytes and return a list of sheet dicts"""
        pass

    def frame_to_sheet(self, df, name):
        """Turn a header-less DataFrame grid into ``{name, headers, data, total_rows}``.

        The first non-empty row becomes the header row; blank headers are named
        ``Column_<n>``. Completely empty rows and columns are dropped.
        """
        df = self._clean_dataframe(df)
        if df.empty:
            return {'name': str(name), 'headers': [], 'data': [], 'total_rows': 0}

        records = [
            [make_json_serializable(value) for value in row]
            for row in df.itertuples(index=False, name=None)
        ]
        header_row, data = records[0], records[1:]
        headers = [
            f'Column_{i + 1}' if header is None or str(header).strip() == '' else str(header).strip()
            for i, header in enumerate(header_row)
        ]
        return {
            'name': str(name),
            'headers': self._dedupe(headers),
            'data': data,
            'total_rows': len(data),
        }

    def _dedupe(self, headers):
        """Suffix repeated header names (``Name``, ``Name_2``) so columns stay addressable"""
        taken = set()
        unique = []
        for header in headers:
            name, count = header, 1
            while name in taken:
                count += 1
                name = f'{header}_{count}'
            taken.add(name)
            unique.append(name)
        return unique

    def _clean_dataframe(self, df):
        """Clean and standardize the DataFrame"""
        # Strip whitespace from string cells
        df = df.apply(lambda col: col.map(lambda v: v.strip() if isinstance(v, str) else v))

        # Replace common null representations
        df = df.replace(NULL_MARKERS + [''], pd.NA)

        # Remove completely empty rows and columns
        return df.dropna(how='all').dropna(axis=1, how='all')


class FileParserFactory:
    """Factory class to get appropriate parser for file type"""

    def __init__(self):
        from .csv_parser import CSVParser
        from .excel_parser import ExcelParser

        self.parsers = {
            'csv': CSVParser(),
            'xls': ExcelParser(),
            'xlsx': ExcelParser(),
        }

    @property
    def supported_types(self):
        return set(self.parsers)

    def get_parser(self, file_type):
        """Get parser for specific file type"""
        parser = self.parsers.get((file_type or '').lower())
        if not parser:
            raise ParseError(f"Unsupported file type: {file_type}")
        return parser


def parse_upload(content, filename):
    """Parse an uploaded file by its extension and return its sheets"""
    file_type = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    parser = FileParserFactory().get_parser(file_type)
    sheets = parser.parse(content, filename)
    logging.info(f"Parsed {filename}: {len(sheets)} sheet(s)")
    return sheets
