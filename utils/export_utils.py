import csv
import io
import logging
from datetime import datetime

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from analyzers.chart_projector import to_number

IMAGE_FORMATS = {'png': 'image/png', 'jpg': 'image/jpeg'}


class ExportError(ValueError):
    """Raised when export input is incomplete or in an unsupported format"""


class ExportUtils:
    """Utility class for exporting sheet data and chart projections as downloadable bytes"""

    def to_csv(self, headers, rows, selected_columns=None):
        """Export rows as CSV, optionally restricted to ``selected_columns`` (in that order)"""
        if selected_columns:
            missing = [c for c in selected_columns if c not in headers]
            if missing:
                raise ExportError(f"Selected columns not found: {', '.join(missing)}")
            indices = [headers.index(c) for c in selected_columns]
        else:
            indices = list(range(len(headers)))

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([headers[i] for i in indices])
        for row in rows:
            writer.writerow(['' if i >= len(row) or row[i] is None else row[i] for i in indices])
        return buffer.getvalue().encode('utf-8')

    def chart_image(self, chart_data, chart_type, fmt='png'):
        """Render a Chart.js-style projection to a PNG/JPEG image"""
        fmt = (fmt or 'png').lower()
        if fmt == 'jpeg':
            fmt = 'jpg'
        if fmt not in IMAGE_FORMATS:
            raise ExportError(f"Unsupported image format: {fmt}")
        if not isinstance(chart_data, dict):
            raise ExportError("Chart data must be an object")
        datasets = chart_data.get('datasets') or []
        if not isinstance(datasets, list) or not datasets or not isinstance(datasets[0], dict):
            raise ExportError("Chart data has no datasets")

        fig, ax = plt.subplots(figsize=(10, 6))
        try:
            self._draw(ax, chart_data, chart_type)
            fig.tight_layout()
            buffer = io.BytesIO()
            fig.savefig(buffer, format='jpeg' if fmt == 'jpg' else 'png', dpi=120)
        finally:
            plt.close(fig)
        return buffer.getvalue()

    def _draw(self, ax, chart_data, chart_type):
        labels = [str(label) for label in chart_data.get('labels') or []]
        dataset = chart_data['datasets'][0]
        values = dataset.get('data') or []
        if not isinstance(values, list):
            raise ExportError("Chart dataset values must be a list")
        title = dataset.get('label') or chart_type

        if chart_type in ('pie', 'doughnut'):
            numbers = [max(to_number(v), 0) for v in values]
            if sum(numbers) == 0:
                raise ExportError("Pie chart needs at least one positive value")
            wedge = {'width': 0.4} if chart_type == 'doughnut' else None
            ax.pie(numbers, labels=labels or None, autopct='%1.1f%%', wedgeprops=wedge)
            ax.axis('equal')
        elif chart_type in ('scatter', 'bubble'):
            if not all(isinstance(p, dict) for p in values):
                raise ExportError("Scatter and bubble points must be objects with x and y")
            xs = [to_number(p.get('x')) for p in values]
            ys = [to_number(p.get('y')) for p in values]
            sizes = [to_number(p.get('r', 3)) ** 2 * 4 for p in values]
            ax.scatter(xs, ys, s=sizes if chart_type == 'bubble' else 36, alpha=0.6)
        else:
            numbers = [to_number(v) for v in values]
            positions = range(len(numbers))
            if chart_type == 'line':
                ax.plot(positions, numbers, marker='o')
            elif chart_type == 'area':
                ax.fill_between(positions, numbers, alpha=0.4)
                ax.plot(positions, numbers)
            else:
                ax.bar(positions, numbers)
            ax.set_xticks(list(positions))
            ax.set_xticklabels(labels, rotation=45, ha='right', fontsize=8)
        ax.set_title(title)

    def to_pdf(self, title, file_stats=None, analysis_data=None, chart_data=None, chart_type='bar'):
        """Build an analysis report: file statistics, analysis summary and the chart"""
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(buffer, pagesize=A4, title=title,
                                leftMargin=2 * cm, rightMargin=2 * cm, topMargin=2 * cm, bottomMargin=2 * cm)
        styles = getSampleStyleSheet()
        story = [
            Paragraph(f"Analysis Report: {self._escape(title)}", styles['Title']),
            Paragraph(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}", styles['Normal']),
            Spacer(1, 0.5 * cm),
        ]

        if file_stats:
            story.append(Paragraph("File Statistics", styles['Heading2']))
            rows = [[self._label(key), str(value)] for key, value in file_stats.items()]
            table = Table(rows, colWidths=[6 * cm, 10 * cm])
            table.setStyle(TableStyle([
                ('GRID', (0, 0), (-1, -1), 0.5, colors.grey),
                ('BACKGROUND', (0, 0), (0, -1), colors.whitesmoke),
                ('FONTSIZE', (0, 0), (-1, -1), 9),
            ]))
            story.extend([table, Spacer(1, 0.5 * cm)])

        if analysis_data:
            story.append(Paragraph("Analysis", styles['Heading2']))
            if analysis_data.get('summary'):
                story.append(Paragraph(self._escape(str(analysis_data['summary'])), styles['Normal']))
            for insight in analysis_data.get('insights') or []:
                story.append(Paragraph(f"&bull; {self._escape(str(insight))}", styles['Normal']))
            story.append(Spacer(1, 0.5 * cm))

        if isinstance(chart_data, dict) and chart_data.get('datasets'):
            try:
                image_bytes = self.chart_image(chart_data, chart_type, 'png')
            except ExportError as e:
                logging.warning(f"Chart omitted from PDF: {str(e)}")
            else:
                story.append(Paragraph("Chart", styles['Heading2']))
                story.append(Image(io.BytesIO(image_bytes), width=16 * cm, height=9.6 * cm))

        doc.build(story)
        return buffer.getvalue()

    def _label(self, key):
        return str(key).replace('_', ' ').title()

    def _escape(self, text):
        return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;')
