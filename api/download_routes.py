import io
import logging
import os
import time

from flask import g, request, send_file

from api.analysis_routes import load_file_and_sheet, file_stats
from models import db
from auth import token_required
from utils.activity_log import log_activity, record_history
from utils.export_utils import ExportUtils, ExportError, IMAGE_FORMATS
from utils.http import error_response


def download_name(uploaded_file, requested_name, suffix, extension):
    """``<base>_<suffix>_<millis>.<ext>``; base defaults to the upload's name without extension"""
    base = requested_name or os.path.splitext(uploaded_file.original_name)[0]
    return f"{base}_{suffix}_{int(time.time() * 1000)}.{extension}"


def _send(content, mimetype, filename):
    response = send_file(io.BytesIO(content), mimetype=mimetype, as_attachment=True, download_name=filename)
    response.headers['Content-Length'] = str(len(content))
    return response


def _record_download(uploaded_file, action, fmt, filename, size, tags, chart_type=None, counts=None):
    user_id = g.current_user.id
    record_history(
        user_id, action, uploaded_file,
        download_format=fmt,
        download_file_name=filename,
        download_size=size,
        download_url=f"/downloads/{filename}",
        chart_type=chart_type,
        tags=tags,
        metadata=dict(counts or {}, download_count=1, time_spent=0),
    )
    log_activity(user_id, 'download', f"{filename} downloaded", file_id=uploaded_file.id,
                 metadata={'format': fmt, 'size': size})
    db.session.commit()


def register_download_routes(app):

    @app.route('/api/download/pdf', methods=['POST'])
    @token_required
    def api_download_pdf():
        data = request.get_json(silent=True) or {}
        uploaded_file, _, error = load_file_and_sheet(data.get('fileId'))
        if error:
            return error

        chart_data = data.get('chartData')
        chart_type = data.get('chartType') or 'bar'
        try:
            content = ExportUtils().to_pdf(
                data.get('fileName') or uploaded_file.original_name,
                file_stats=file_stats(uploaded_file),
                analysis_data=data.get('analysisData'),
                chart_data=chart_data,
                chart_type=chart_type,
            )
            filename = download_name(uploaded_file, data.get('fileName'), 'analysis', 'pdf')
            _record_download(uploaded_file, 'analysis_downloaded', 'pdf', filename, len(content),
                             ['pdf_download', 'analysis_export'], chart_type=data.get('chartType'),
                             counts={'chart_count': 1 if chart_data else 0, 'analysis_count': 1})
        except Exception as e:
            db.session.rollback()
            logging.error(f"PDF download error: {str(e)}")
            return error_response(f'Export failed: {str(e)}', 500)

        return _send(content, 'application/pdf', filename)

    @app.route('/api/download/csv', methods=['POST'])
    @token_required
    def api_download_csv():
        data = request.get_json(silent=True) or {}
        uploaded_file, sheet, error = load_file_and_sheet(data.get('fileId'), data.get('sheet'))
        if error:
            return error

        try:
            content = ExportUtils().to_csv(sheet['headers'], sheet['data'], data.get('selectedColumns'))
        except ExportError as e:
            return error_response(str(e), 400)

        try:
            filename = download_name(uploaded_file, data.get('fileName'), 'export', 'csv')
            _record_download(uploaded_file, 'csv_exported', 'csv', filename, len(content),
                             ['csv_export', 'data_export'])
        except Exception as e:
            db.session.rollback()
            logging.error(f"CSV download error: {str(e)}")
            return error_response(f'Export failed: {str(e)}', 500)

        return _send(content, 'text/csv', filename)

    @app.route('/api/download/chart', methods=['POST'])
    @token_required
    def api_download_chart():
        data = request.get_json(silent=True) or {}
        uploaded_file, _, error = load_file_and_sheet(data.get('fileId'))
        if error:
            return error

        chart_type = data.get('chartType') or 'bar'
        fmt = (data.get('format') or 'png').lower()
        try:
            content = ExportUtils().chart_image(data.get('chartData'), chart_type, fmt)
        except ExportError as e:
            return error_response(str(e), 400)

        if fmt == 'jpeg':
            fmt = 'jpg'
        try:
            filename = download_name(uploaded_file, data.get('fileName'), f'{chart_type}_chart', fmt)
            _record_download(uploaded_file, 'analysis_downloaded', fmt, filename, len(content),
                             ['chart_download', f'{fmt}_export', chart_type], chart_type=chart_type,
                             counts={'chart_count': 1, 'analysis_count': 1})
        except Exception as e:
            db.session.rollback()
            logging.error(f"Chart download error: {str(e)}")
            return error_response(f'Export failed: {str(e)}', 500)

        return _send(content, IMAGE_FORMATS[fmt], filename)
