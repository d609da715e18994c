import logging
import uuid
from collections import Counter
from datetime import datetime

from flask import g, jsonify, request
from sqlalchemy.orm.attributes import flag_modified

from analyzers.chart_projector import ChartProjector, ChartProjectionError
from analyzers.stats_analyzer import StatsAnalyzer, AnalysisError
from api.upload_routes import owned_file_or_404
from auth import token_required
from models import db, Activity, UploadedFile, CHART_TYPES
from utils.activity_log import log_activity, record_history
from utils.http import error_response

PDF_CHART_HISTORY_LIMIT = 20


def load_file_and_sheet(file_id, sheet_name=None):
    """Resolve an owned file and one of its sheets; returns (file, sheet, error)"""
    if file_id is None:
        return None, None, error_response('fileId is required', 400)
    try:
        file_id = int(file_id)
    except (TypeError, ValueError):
        return None, None, error_response('fileId must be an integer', 400)

    uploaded_file, error = owned_file_or_404(file_id)
    if error:
        return None, None, error

    sheet = uploaded_file.get_sheet(sheet_name)
    if sheet is None:
        return uploaded_file, None, error_response(f'Sheet not found: {sheet_name}', 404)
    return uploaded_file, sheet, None


def _analysis_activities(user_id, file_id):
    return Activity.query.filter_by(user_id=user_id, file_id=file_id, type='analysis') \
        .order_by(Activity.created_at.desc(), Activity.id.desc())


def register_analysis_routes(app):

    @app.route('/api/analysis/chart', methods=['POST'])
    @token_required
    def api_generate_chart():
        """Project two columns of a stored sheet into chart data"""
        user = g.current_user
        data = request.get_json(silent=True) or {}
        chart_type = data.get('chartType')
        x_axis, y_axis, z_axis = data.get('xAxis'), data.get('yAxis'), data.get('zAxis')

        uploaded_file, sheet, error = load_file_and_sheet(data.get('fileId'), data.get('sheet'))
        if error:
            return error
        if not x_axis or not y_axis:
            return error_response('xAxis and yAxis are required', 400)

        try:
            chart_data = ChartProjector().project(sheet, chart_type, x_axis, y_axis, z_axis)
        except ChartProjectionError as e:
            return error_response(str(e), 400)

        try:
            chart_id = uuid.uuid4().hex
            chart_record = {
                'chart_id': chart_id,
                'chart_type': chart_type,
                'sheet': sheet['name'],
                'x_axis': x_axis,
                'y_axis': y_axis,
                'z_axis': z_axis,
                'data': chart_data,
                'created_at': datetime.utcnow().isoformat(),
            }
            uploaded_file.charts = list(uploaded_file.charts or []) + [chart_record]

            log_activity(
                user.id, 'analysis',
                f"{chart_type} chart generated for {uploaded_file.original_name} ({x_axis} vs {y_axis})",
                file_id=uploaded_file.id,
                metadata={'chartType': chart_type, 'xAxis': x_axis, 'yAxis': y_axis, 'chartId': chart_id},
            )
            record_history(
                user.id, 'chart_created', uploaded_file,
                chart_type=chart_type,
                chart_id=chart_id,
                selected_axes={'xAxis': x_axis, 'yAxis': y_axis, 'zAxis': z_axis},
                chart_config=data.get('chartConfig'),
                tags=['chart', chart_type],
                metadata={'chart_count': len(uploaded_file.charts)},
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Chart generation error: {str(e)}")
            return error_response('Error generating chart', 500)

        return jsonify({
            'status': 'success',
            'message': f'{chart_type} chart generated successfully',
            'chart_id': chart_id,
            'chart_data': chart_data,
        })

    @app.route('/api/analysis/stats', methods=['POST'])
    @token_required
    def api_run_analysis():
        """Run a statistical analysis over a sheet and keep the result on the file"""
        user = g.current_user
        data = request.get_json(silent=True) or {}
        analysis_type = data.get('analysisType', 'basic_stats')

        uploaded_file, sheet, error = load_file_and_sheet(data.get('fileId'), data.get('sheet'))
        if error:
            return error

        try:
            results = StatsAnalyzer().analyze(sheet, analysis_type, data.get('columns'))
        except AnalysisError as e:
            return error_response(str(e), 400)

        try:
            analysis_id = uuid.uuid4().hex
            analysis_data = dict(uploaded_file.analysis_data or {})
            analysis_data['analyses'] = list(analysis_data.get('analyses') or []) + [{
                'analysis_id': analysis_id,
                'analysis_type': analysis_type,
                'sheet': sheet['name'],
                'results': results,
                'created_at': datetime.utcnow().isoformat(),
            }]
            uploaded_file.analysis_data = analysis_data
            flag_modified(uploaded_file, 'analysis_data')

            log_activity(user.id, 'analysis',
                         f"{analysis_type} analysis run on {uploaded_file.original_name}",
                         file_id=uploaded_file.id,
                         metadata={'analysisType': analysis_type, 'analysisId': analysis_id})
            record_history(
                user.id, 'analysis', uploaded_file,
                analysis_type=analysis_type,
                analysis_id=analysis_id,
                analysis_results=results,
                tags=['analysis', analysis_type],
            )
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Analysis error: {str(e)}")
            return error_response(f'Analysis failed: {str(e)}', 500)

        return jsonify({'status': 'success', 'analysis_id': analysis_id, 'results': results})

    @app.route('/api/analysis/<int:file_id>')
    @token_required
    def api_analysis_file(file_id):
        """File metadata plus the parsed rows of one sheet"""
        uploaded_file, sheet, error = load_file_and_sheet(file_id, request.args.get('sheet'))
        if error:
            return error

        columns = (uploaded_file.analysis_data or {}).get('columns', {})
        return jsonify({
            'status': 'success',
            'file': {
                'id': uploaded_file.id,
                'filename': uploaded_file.original_name,
                'metadata': {
                    'sheet_name': sheet['name'],
                    'sheets': [s['name'] for s in uploaded_file.sheets or []],
                    'rows': sheet['total_rows'],
                    'columns': len(sheet['headers']),
                    'headers': sheet['headers'],
                    'column_profiles': columns.get(sheet['name'], []),
                },
                'parsed_data': sheet['data'],
            },
            'chart_types': list(CHART_TYPES),
            'analysis_types': list(StatsAnalyzer().supported_types),
        })

    @app.route('/api/analysis/history/<int:file_id>')
    @token_required
    def api_analysis_history(file_id):
        uploaded_file, error = owned_file_or_404(file_id)
        if error:
            return error
        analyses = _analysis_activities(g.current_user.id, uploaded_file.id).all()
        return jsonify({'status': 'success', 'analyses': [a.to_dict() for a in analyses]})

    @app.route('/api/analysis/file/<int:file_id>/charts')
    @token_required
    def api_file_charts(file_id):
        uploaded_file, error = owned_file_or_404(file_id)
        if error:
            return error
        charts = sorted(uploaded_file.charts or [], key=lambda c: c.get('created_at') or '', reverse=True)
        return jsonify({'status': 'success', 'charts': charts, 'file_name': uploaded_file.original_name})

    @app.route('/api/analysis/save-chart', methods=['POST'])
    @token_required
    def api_save_chart():
        user = g.current_user
        data = request.get_json(silent=True) or {}

        uploaded_file, _, error = load_file_and_sheet(data.get('fileId'))
        if error:
            return error

        log_activity(
            user.id, 'analysis', f"Chart analysis saved for {uploaded_file.original_name}",
            file_id=uploaded_file.id,
            metadata={
                'chartType': data.get('chartType'),
                'chartData': data.get('chartData'),
                'chartConfig': data.get('chartConfig'),
            },
        )
        db.session.commit()
        return jsonify({'status': 'success', 'message': 'Chart analysis saved successfully'})

    @app.route('/api/analysis/pdf-data/<int:file_id>')
    @token_required
    def api_pdf_data(file_id):
        """Everything the client needs to lay out a PDF report for one file"""
        user = g.current_user
        uploaded_file, error = owned_file_or_404(file_id)
        if error:
            return error

        analyses = _analysis_activities(user.id, uploaded_file.id).all()
        chart_history = [a for a in analyses if (a.meta or {}).get('chartType')][:PDF_CHART_HISTORY_LIMIT]
        chart_type_counts = Counter(a.meta['chartType'] for a in chart_history)

        return jsonify({
            'status': 'success',
            'file': {
                'id': uploaded_file.id,
                'original_name': uploaded_file.original_name,
                'stats': file_stats(uploaded_file),
                'all_sheets': uploaded_file.sheets or [],
            },
            'analyses': [a.to_dict() for a in analyses],
            'chart_history': [a.to_dict() for a in chart_history],
            'analysis_stats': {
                'total_analyses': len(analyses),
                'chart_types': sorted(chart_type_counts),
                'last_analysis': analyses[0].created_at.isoformat() if analyses else None,
                'chart_type_counts': dict(chart_type_counts),
                'most_used_chart_type': chart_type_counts.most_common(1)[0][0] if chart_type_counts else None,
            },
            'generated_at': datetime.utcnow().isoformat(),
        })


def file_stats(uploaded_file: UploadedFile):
    return {
        'total_rows': uploaded_file.row_count,
        'total_columns': uploaded_file.column_count,
        'total_sheets': len(uploaded_file.sheets or []),
        'file_size': uploaded_file.file_size,
        'upload_date': uploaded_file.created_at.isoformat() if uploaded_file.created_at else None,
        'last_modified': uploaded_file.updated_at.isoformat() if uploaded_file.updated_at else None,
    }
