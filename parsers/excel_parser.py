import io
import logging

import pandas as pd

from .file_parser import BaseParser, ParseError


class ExcelParser(BaseParser):
    """Parser for Excel workbooks (.xls and .xlsx)"""

    def parse(self, content, filename):
        """Parse every sheet of the workbook, keeping workbook order"""
        try:
            excel_file = pd.ExcelFile(io.BytesIO(content))
        except Exception as e:
            logging.error(f"Error opening Excel file {filename}: {str(e)}")
            raise ParseError(f"Failed to parse Excel file: {str(e)}")

        sheets = []
        with excel_file:
            for sheet_name in excel_file.sheet_names:
                try:
                    df = excel_file.parse(sheet_name=sheet_name, header=None)
                except Exception as e:
                    logging.warning(f"Could not read sheet '{sheet_name}': {str(e)}")
                    continue
                sheets.append(self.frame_to_sheet(df, sheet_name))

        if not sheets:
            raise ParseError("Workbook contains no readable sheets")

        logging.info(f"Read {len(sheets)} sheet(s) from {filename}: "
                     + ", ".join(f"'{s['name']}' ({s['total_rows']} rows)" for s in sheets))
        return sheets
