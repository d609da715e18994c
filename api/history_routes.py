import logging
import math
from datetime import datetime, timedelta

from flask import g, jsonify, request
from sqlalchemy import case, func

from auth import token_required
from models import (
    db, FileHistory, UploadedFile,
    HISTORY_ACTIONS, DOWNLOAD_ACTIONS, CHART_TYPES, ANALYSIS_TYPES, DOWNLOAD_FORMATS, HISTORY_STATUSES,
)
from utils.activity_log import record_history, history_counts
from utils.http import error_response, parse_int

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
RECENT_DAYS = 7

# Query-string filter -> (column, allowed values)
EXACT_FILTERS = {
    'action': (FileHistory.action, HISTORY_ACTIONS),
    'chartType': (FileHistory.chart_type, CHART_TYPES),
    'downloadFormat': (FileHistory.download_format, DOWNLOAD_FORMATS),
    'analysisType': (FileHistory.analysis_type, ANALYSIS_TYPES),
}


class FilterError(ValueError):
    pass


def _parse_day(value, name):
    try:
        return datetime.strptime(value, '%Y-%m-%d')
    except (TypeError, ValueError):
        raise FilterError(f'{name} must be a date in YYYY-MM-DD format')


def build_history_query(user_id, args):
    """Apply the history browser's filters; dates cover whole days, inclusive"""
    query = FileHistory.query.filter(FileHistory.user_id == user_id)

    for param, (column, allowed) in EXACT_FILTERS.items():
        value = args.get(param)
        if value:
            if value not in allowed:
                raise FilterError(f'Unknown {param}: {value}')
            query = query.filter(column == value)

    file_name = (args.get('fileName') or '').strip()
    if file_name:
        query = query.filter(FileHistory.file_name.ilike(f'%{file_name}%'))

    if args.get('dateFrom'):
        query = query.filter(FileHistory.created_at >= _parse_day(args['dateFrom'], 'dateFrom'))
    if args.get('dateTo'):
        day_after = _parse_day(args['dateTo'], 'dateTo') + timedelta(days=1)
        query = query.filter(FileHistory.created_at < day_after)

    return query


def group_by_day(entries):
    grouped = {}
    for entry in entries:
        grouped.setdefault(entry.created_at.date().isoformat(), []).append(entry.to_dict())
    return grouped


def _breakdown(user_id, column):
    rows = db.session.query(column, func.count(FileHistory.id)) \
        .filter(FileHistory.user_id == user_id, column.isnot(None)) \
        .group_by(column).order_by(func.count(FileHistory.id).desc()).all()
    return [{'id': value, 'count': count} for value, count in rows]


def _optional_choice(data, key, allowed):
    value = data.get(key)
    if value is not None and value not in allowed:
        raise FilterError(f'Unknown {key}: {value}')
    return value


def register_history_routes(app):

    @app.route('/api/history/user')
    @token_required
    def api_user_history():
        """Filtered, paginated history grouped by calendar day"""
        page = parse_int(request.args.get('page'), 1, minimum=1)
        limit = parse_int(request.args.get('limit'), DEFAULT_PAGE_SIZE, minimum=1, maximum=MAX_PAGE_SIZE)

        try:
            query = build_history_query(g.current_user.id, request.args)
        except FilterError as e:
            return error_response(str(e), 400)

        total = query.count()
        entries = query.order_by(FileHistory.created_at.desc(), FileHistory.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return jsonify({
            'status': 'success',
            'history': group_by_day(entries),
            'pagination': {
                'current_page': page,
                'total_pages': math.ceil(total / limit),
                'total_items': total,
                'items_per_page': limit,
            },
            'filters': {key: request.args.get(key) for key in
                        ('action', 'chartType', 'dateFrom', 'dateTo', 'fileName', 'downloadFormat', 'analysisType')},
        })

    @app.route('/api/history/stats')
    @token_required
    def api_history_stats():
        user_id = g.current_user.id
        base = FileHistory.query.filter(FileHistory.user_id == user_id)

        is_chart = case((FileHistory.action == 'chart_created', 1), else_=0)
        is_download = case((FileHistory.action.in_(DOWNLOAD_ACTIONS), 1), else_=0)
        is_analysis = case((FileHistory.action == 'analysis', 1), else_=0)

        file_summary = db.session.query(
            FileHistory.file_id,
            func.min(FileHistory.file_name),
            func.count(FileHistory.id),
            func.sum(is_chart),
            func.sum(is_download),
            func.sum(is_analysis),
            func.max(FileHistory.created_at),
        ).filter(FileHistory.user_id == user_id) \
            .group_by(FileHistory.file_id) \
            .order_by(func.max(FileHistory.created_at).desc()).limit(5).all()

        recent = base.filter(FileHistory.created_at >= datetime.utcnow() - timedelta(days=RECENT_DAYS)) \
            .order_by(FileHistory.created_at.desc(), FileHistory.id.desc()).limit(10).all()

        return jsonify({
            'status': 'success',
            'total_actions': base.count(),
            'total_files': db.session.query(func.count(func.distinct(FileHistory.file_id)))
                .filter(FileHistory.user_id == user_id).scalar(),
            'total_charts': base.filter(FileHistory.action == 'chart_created').count(),
            'total_downloads': base.filter(FileHistory.action.in_(DOWNLOAD_ACTIONS)).count(),
            'total_analyses': base.filter(FileHistory.action == 'analysis').count(),
            'action_breakdown': _breakdown(user_id, FileHistory.action),
            'chart_type_breakdown': _breakdown(user_id, FileHistory.chart_type),
            'download_format_breakdown': _breakdown(user_id, FileHistory.download_format),
            'analysis_type_breakdown': _breakdown(user_id, FileHistory.analysis_type),
            'recent_activity': [entry.to_dict() for entry in recent],
            'file_activity_summary': [{
                'file_id': file_id,
                'file_name': file_name,
                'total_actions': total,
                'chart_count': int(charts or 0),
                'download_count': int(downloads or 0),
                'analysis_count': int(analyses or 0),
                'last_activity': last.isoformat() if last else None,
            } for file_id, file_name, total, charts, downloads, analyses, last in file_summary],
        })

    @app.route('/api/history', methods=['POST'])
    @token_required
    def api_create_history():
        """Record a client-side action (e.g. a chart exported by the browser)"""
        user_id = g.current_user.id
        data = request.get_json(silent=True) or {}

        action = data.get('action')
        if action not in HISTORY_ACTIONS:
            return error_response(f'Unknown action: {action}', 400)

        file_id = data.get('fileId')
        try:
            file_id = int(file_id)
        except (TypeError, ValueError):
            return error_response('fileId is required', 400)

        uploaded_file = db.session.get(UploadedFile, file_id)
        if uploaded_file is not None and uploaded_file.user_id != user_id:
            return error_response('File not found', 404)
        file_name = data.get('fileName') or (uploaded_file.original_name if uploaded_file else None)
        if not file_name:
            return error_response('fileName is required', 400)

        try:
            fields = {
                'chart_type': _optional_choice(data, 'chartType', CHART_TYPES),
                'analysis_type': _optional_choice(data, 'analysisType', ANALYSIS_TYPES),
                'download_format': _optional_choice(data, 'downloadFormat', DOWNLOAD_FORMATS),
                'status': _optional_choice(data, 'status', HISTORY_STATUSES),
            }
            related = [int(i) for i in data.get('relatedActivities') or []]
        except FilterError as e:
            return error_response(str(e), 400)
        except (TypeError, ValueError):
            return error_response('relatedActivities must be a list of ids', 400)

        try:
            entry = record_history(
                user_id, action,
                uploaded_file=uploaded_file,
                file_id=file_id,
                file_name=file_name,
                related_activities=related,
                selected_axes=data.get('selectedAxes'),
                chart_config=data.get('chartConfig'),
                chart_id=data.get('chartId'),
                analysis_results=data.get('analysisResults'),
                analysis_id=data.get('analysisId'),
                download_url=data.get('downloadUrl'),
                download_file_name=data.get('downloadFileName'),
                download_size=data.get('downloadSize'),
                session_id=data.get('sessionId'),
                tags=data.get('tags'),
                error_message=data.get('errorMessage'),
                **fields,
            )
            if uploaded_file is None:
                entry.file_size = data.get('fileSize')
                entry.row_count = data.get('rowCount')
                entry.column_count = data.get('columnCount')
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Error creating history entry: {str(e)}")
            return error_response('Server error', 500)

        return jsonify({'status': 'success', 'entry': entry.to_dict()}), 201

    @app.route('/api/history/<int:entry_id>')
    @token_required
    def api_get_history_entry(entry_id):
        entry = FileHistory.query.filter_by(id=entry_id, user_id=g.current_user.id).first()
        if entry is None:
            return error_response('History entry not found', 404)
        uploaded_file = UploadedFile.query.filter_by(id=entry.file_id, user_id=g.current_user.id).first()
        return jsonify({
            'status': 'success',
            'entry': entry.to_dict(),
            'file': uploaded_file.summary_dict() if uploaded_file else None,
        })

    @app.route('/api/history/<int:entry_id>', methods=['DELETE'])
    @token_required
    def api_delete_history_entry(entry_id):
        entry = FileHistory.query.filter_by(id=entry_id, user_id=g.current_user.id).first()
        if entry is None:
            return error_response('History entry not found', 404)
        db.session.delete(entry)
        db.session.commit()
        return jsonify({'status': 'success', 'message': 'History entry deleted successfully'})

    @app.route('/api/history/file/<int:file_id>')
    @token_required
    def api_file_timeline(file_id):
        """Chronological timeline of one file, including entries after its deletion"""
        entries = FileHistory.query.filter_by(file_id=file_id, user_id=g.current_user.id) \
            .order_by(FileHistory.created_at.asc(), FileHistory.id.asc()).all()
        if not entries:
            return error_response('No history found for this file', 404)

        activity_summary = {
            'uploads': [e.to_dict() for e in entries if e.action == 'upload'],
            'analyses': [e.to_dict() for e in entries if e.action == 'analysis'],
            'charts': [e.to_dict() for e in entries if e.action == 'chart_created'],
            'downloads': [e.to_dict() for e in entries if e.action in DOWNLOAD_ACTIONS],
            'deletions': [e.to_dict() for e in entries if e.action == 'file_deleted'],
        }
        counts = history_counts(entries)
        return jsonify({
            'status': 'success',
            'file_history': [e.to_dict() for e in entries],
            'activity_summary': activity_summary,
            'total_actions': len(entries),
            'chart_count': counts['chart_count'],
            'download_count': counts['download_count'],
            'analysis_count': counts['analysis_count'],
        })
