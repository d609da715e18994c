import logging

from flask import g, jsonify, request
from sqlalchemy import func

from api.dashboard_routes import start_of_today
from auth import admin_required
from models import db, User, UploadedFile, Activity
from utils.http import error_response

USER_STATUSES = ('active', 'blocked')
STATUS_ACTIONS = {'block': 'blocked', 'unblock': 'active'}
ADMIN_ACTIVITY_LIMIT = 50


def _set_status(user_id, status):
    if status not in USER_STATUSES:
        return error_response(f'Unknown status: {status}', 400)

    user = db.session.get(User, user_id)
    if user is None:
        return error_response('User not found', 404)
    if user.id == g.current_user.id and status == 'blocked':
        return error_response('Administrators cannot block themselves', 400)

    user.status = status
    db.session.commit()
    logging.info(f"Admin {g.current_user.id} set user {user.id} status to {status}")
    return jsonify({'status': 'success', 'user': user.to_dict()})


def register_admin_routes(app):

    @app.route('/api/admin/stats')
    @admin_required
    def api_admin_stats():
        today = start_of_today()
        return jsonify({
            'status': 'success',
            'total_users': User.query.count(),
            'total_files': UploadedFile.query.count(),
            'total_activities': Activity.query.count(),
            'new_users_today': User.query.filter(User.created_at >= today).count(),
            'files_uploaded_today': UploadedFile.query.filter(UploadedFile.created_at >= today).count(),
            'total_storage': int(db.session.query(func.coalesce(func.sum(UploadedFile.file_size), 0)).scalar()),
        })

    @app.route('/api/admin/users')
    @admin_required
    def api_admin_users():
        users = User.query.order_by(User.created_at.desc(), User.id.desc()).all()
        file_counts = dict(db.session.query(UploadedFile.user_id, func.count(UploadedFile.id))
                           .group_by(UploadedFile.user_id).all())
        return jsonify({'status': 'success', 'users': [
            dict(user.to_dict(), file_count=file_counts.get(user.id, 0)) for user in users
        ]})

    @app.route('/api/admin/users/<int:user_id>', methods=['PUT'])
    @admin_required
    def api_admin_update_user(user_id):
        data = request.get_json(silent=True) or {}
        return _set_status(user_id, data.get('status'))

    @app.route('/api/admin/users/<int:user_id>/<action>', methods=['POST'])
    @admin_required
    def api_admin_user_action(user_id, action):
        if action not in STATUS_ACTIONS:
            return error_response(f'Unknown action: {action}', 400)
        return _set_status(user_id, STATUS_ACTIONS[action])

    @app.route('/api/admin/activities')
    @admin_required
    def api_admin_activities():
        activities = Activity.query.order_by(Activity.created_at.desc(), Activity.id.desc()) \
            .limit(ADMIN_ACTIVITY_LIMIT).all()
        return jsonify({'status': 'success', 'activities': [
            dict(activity.to_dict(), user_email=activity.user.email if activity.user else None)
            for activity in activities
        ]})
