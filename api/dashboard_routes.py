from datetime import datetime

from flask import g, jsonify
from sqlalchemy import func

from auth import token_required
from models import db, Activity, UploadedFile

RECENT_ACTIVITY_LIMIT = 5


def start_of_today():
    return datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)


def register_dashboard_routes(app):

    @app.route('/api/dashboard/stats')
    @token_required
    def api_dashboard_stats():
        """Counters and the recent-activity feed for the home page"""
        user_id = g.current_user.id

        total_files, total_size, total_rows = db.session.query(
            func.count(UploadedFile.id),
            func.coalesce(func.sum(UploadedFile.file_size), 0),
            func.coalesce(func.sum(UploadedFile.row_count), 0),
        ).filter(UploadedFile.user_id == user_id).one()

        files_today = UploadedFile.query.filter(
            UploadedFile.user_id == user_id,
            UploadedFile.created_at >= start_of_today(),
        ).count()

        recent_activities = Activity.query.filter_by(user_id=user_id) \
            .order_by(Activity.created_at.desc(), Activity.id.desc()) \
            .limit(RECENT_ACTIVITY_LIMIT).all()

        return jsonify({
            'status': 'success',
            'total_files': total_files,
            'files_today': files_today,
            'processed_today': files_today,
            'total_rows': int(total_rows),
            'storage_used': int(total_size),
            'recent_activity': [{
                'type': activity.type,
                'description': activity.description,
                'created_at': activity.created_at.isoformat(),
            } for activity in recent_activities],
        })

    @app.route('/api/dashboard/files')
    @token_required
    def api_dashboard_files():
        files = UploadedFile.query.filter_by(user_id=g.current_user.id) \
            .order_by(UploadedFile.created_at.desc(), UploadedFile.id.desc()).all()
        return jsonify({'status': 'success', 'files': [{
            'id': f.id,
            'original_name': f.original_name,
            'row_count': f.row_count,
            'column_count': f.column_count,
            'created_at': f.created_at.isoformat(),
        } for f in files]})
