import logging

import pandas as pd

from models import make_json_serializable


def sheet_to_frame(sheet):
    """Build a DataFrame from a stored sheet, padding short rows"""
    headers = sheet.get('headers') or []
    rows = [list(row[:len(headers)]) + [None] * (len(headers) - len(row)) for row in sheet.get('data') or []]
    return pd.DataFrame(rows, columns=headers)


class ColumnProfiler:
    """Classifies the columns of a parsed sheet so the UI can suggest chart axes"""

    def __init__(self):
        self.date_patterns = [
            r'^\d{4}-\d{2}-\d{2}',  # YYYY-MM-DD, ISO timestamps
            r'^\d{2}/\d{2}/\d{4}$',  # MM/DD/YYYY
            r'^\d{2}-\d{2}-\d{4}$',  # MM-DD-YYYY
            r'^\d{2}\.\d{2}\.\d{4}$',  # DD.MM.YYYY
        ]

    def profile(self, sheet):
        """Return one profile dict per header, in column order"""
        df = sheet_to_frame(sheet)
        profiles = [self._profile_column(df.iloc[:, i], str(column)) for i, column in enumerate(df.columns)]
        logging.debug(f"Profiled {len(profiles)} column(s) of sheet '{sheet.get('name')}'")
        return profiles

    def _profile_column(self, series, column_name):
        total = len(series)
        non_null = series.dropna()
        profile = {
            'name': column_name,
            'inferred_type': 'empty',
            'null_count': int(total - len(non_null)),
            'unique_count': int(non_null.astype(str).nunique()),
            'total_count': total,
            'sample_values': make_json_serializable(non_null.head(5).tolist()),
            'is_numeric': False,
        }
        if len(non_null) == 0:
            return profile

        numeric = pd.to_numeric(non_null, errors='coerce').dropna()
        if len(numeric) / len(non_null) > 0.8:
            is_integer = bool((numeric == numeric.round()).all())
            profile['inferred_type'] = 'integer' if is_integer else 'float'
            profile['min'] = make_json_serializable(numeric.min())
            profile['max'] = make_json_serializable(numeric.max())
            profile['mean'] = make_json_serializable(numeric.mean())
        elif self._looks_like_dates(non_null):
            profile['inferred_type'] = 'date'
        elif non_null.map(lambda v: isinstance(v, bool) or str(v).lower() in ('true', 'false')).all():
            profile['inferred_type'] = 'boolean'
        elif profile['unique_count'] / len(non_null) < 0.5:
            profile['inferred_type'] = 'categorical'
        else:
            profile['inferred_type'] = 'text'

        profile['is_numeric'] = profile['inferred_type'] in ('integer', 'float')
        return profile

    def _looks_like_dates(self, series):
        str_series = series.astype(str)
        for pattern in self.date_patterns:
            if str_series.str.match(pattern).mean() > 0.8:
                return True
        return False
