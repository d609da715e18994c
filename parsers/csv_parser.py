import io
import logging
import os

import pandas as pd

from .file_parser import BaseParser, ParseError


class CSVParser(BaseParser):
    """Parser for CSV files"""

    encodings = ['utf-8', 'latin-1', 'cp1252']
    separators = [',', ';', '\t', '|']

    def parse(self, content, filename):
        """Parse CSV bytes into a single sheet named after the file"""
        df = self._read(content, filename)
        df = self._coerce_numeric_columns(self._clean_dataframe(df))
        sheet_name = os.path.splitext(os.path.basename(filename))[0] or 'Sheet1'
        return [self.frame_to_sheet(df, sheet_name)]

    def _read(self, content, filename):
        # Try different encodings and separators
        for encoding in self.encodings:
            for sep in self.separators:
                try:
                    df = pd.read_csv(io.BytesIO(content), encoding=encoding, sep=sep,
                                     header=None, dtype=str, skip_blank_lines=True)
                except Exception:
                    continue

                # A wrong separator usually collapses everything into one column
                if len(df.columns) > 1:
                    logging.info(f"Parsed CSV {filename} with encoding={encoding}, separator='{sep}'")
                    return df

        try:
            return pd.read_csv(io.BytesIO(content), header=None, dtype=str)
        except Exception as e:
            logging.error(f"Error parsing CSV file {filename}: {str(e)}")
            raise ParseError(f"Failed to parse CSV file: {str(e)}")

    def _coerce_numeric_columns(self, df):
        """Convert columns whose data cells are all numeric, leaving the header row as text"""
        if len(df) < 2:
            return df
        df = df.astype(object)
        for col in df.columns:
            values = df[col].iloc[1:]
            converted = pd.to_numeric(values, errors='coerce')
            if values.notna().sum() > 0 and converted.notna().sum() == values.notna().sum():
                df[col] = pd.concat([df[col].iloc[:1], converted.astype(object)])
        return df
