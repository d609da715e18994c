import logging
import math

BAR_COLOR = 'rgba(59, 130, 246, 0.5)'
BORDER_COLOR = 'rgba(59, 130, 246, 1)'
POINT_COLOR = 'rgba(59, 130, 246, 0.6)'
PIE_PALETTE = [
    'rgba(255, 99, 132, 0.8)',
    'rgba(54, 162, 235, 0.8)',
    'rgba(255, 206, 86, 0.8)',
    'rgba(75, 192, 192, 0.8)',
    'rgba(153, 102, 255, 0.8)',
    'rgba(255, 159, 64, 0.8)',
]
DEFAULT_BUBBLE_RADIUS = 5


class ChartProjectionError(ValueError):
    """Raised for unknown columns or chart types"""


def to_number(value):
    """Best-effort numeric conversion; anything unparseable counts as 0"""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    try:
        number = float(str(value).strip().replace(',', ''))
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def _present(value):
    return value is not None and not (isinstance(value, str) and value.strip() == '')


class ChartProjector:
    """Projects two columns of a stored sheet into Chart.js-ready data"""

    SERIES_TYPES = ('bar', 'line', 'area', 'radar')
    SLICE_TYPES = ('pie', 'doughnut')
    POINT_TYPES = ('scatter', 'bubble')

    @property
    def supported_types(self):
        return self.SERIES_TYPES + self.SLICE_TYPES + self.POINT_TYPES

    def project(self, sheet, chart_type, x_axis, y_axis, z_axis=None):
        headers = sheet.get('headers') or []
        rows = sheet.get('data') or []

        if chart_type not in self.supported_types:
            raise ChartProjectionError(f"Unsupported chart type: {chart_type}")

        x_index = self._column_index(headers, x_axis)
        y_index = self._column_index(headers, y_axis)
        z_index = self._column_index(headers, z_axis) if chart_type == 'bubble' and z_axis else None

        pairs = [
            row for row in rows
            if len(row) > max(x_index, y_index) and _present(row[x_index]) and _present(row[y_index])
        ]
        logging.info(f"Projecting {chart_type} chart: {x_axis} vs {y_axis}, "
                     f"{len(pairs)} of {len(rows)} rows usable")

        if chart_type in self.SERIES_TYPES:
            return self._series(pairs, x_index, y_index, y_axis, fill=chart_type == 'area')
        if chart_type in self.SLICE_TYPES:
            return self._slices(pairs, x_index, y_index)
        return self._points(pairs, x_index, y_index, z_index, bubble=chart_type == 'bubble')

    def _column_index(self, headers, column):
        try:
            return headers.index(column)
        except ValueError:
            raise ChartProjectionError(f"Selected column not found: {column}")

    def _series(self, rows, x_index, y_index, label, fill=False):
        dataset = {
            'label': label or 'Data',
            'data': [to_number(row[y_index]) for row in rows],
            'backgroundColor': BAR_COLOR,
            'borderColor': BORDER_COLOR,
            'borderWidth': 1,
        }
        if fill:
            dataset['fill'] = True
        return {
            'labels': [str(row[x_index]) for row in rows],
            'datasets': [dataset],
        }

    def _slices(self, rows, x_index, y_index):
        return {
            'labels': [str(row[x_index]) for row in rows],
            'datasets': [{
                'data': [to_number(row[y_index]) for row in rows],
                'backgroundColor': PIE_PALETTE,
            }],
        }

    def _points(self, rows, x_index, y_index, z_index, bubble=False):
        points = []
        for row in rows:
            point = {'x': to_number(row[x_index]), 'y': to_number(row[y_index])}
            if bubble:
                radius = to_number(row[z_index]) if z_index is not None and z_index < len(row) else 0
                point['r'] = radius if radius > 0 else DEFAULT_BUBBLE_RADIUS
            points.append(point)
        return {
            'datasets': [{
                'label': 'Data Points',
                'data': points,
                'backgroundColor': POINT_COLOR,
                'borderColor': BORDER_COLOR,
                'pointRadius': 6,
            }],
        }
