import logging
from datetime import datetime

from email_validator import EmailNotValidError, validate_email
from flask import g, jsonify, request

from auth import issue_token, token_required
from models import db, User, UploadedFile, Activity, FileHistory
from utils.activity_log import log_activity
from utils.http import error_response
from utils.storage import delete_stored, stored_object

MIN_PASSWORD_LENGTH = 6


def normalize_email(raw_email):
    """Validate syntax and return the lower-cased address (raises EmailNotValidError)"""
    result = validate_email((raw_email or '').strip(), check_deliverability=False)
    return result.normalized.lower()


def _auth_payload(user):
    return {
        'status': 'success',
        'token': issue_token(user),
        'user': user.to_dict(),
    }


def register_auth_routes(app):

    @app.route('/api/auth/register', methods=['POST'])
    def api_register():
        data = request.get_json(silent=True) or {}
        password = data.get('password') or ''

        try:
            email = normalize_email(data.get('email'))
        except EmailNotValidError as e:
            return error_response(f'Invalid email: {str(e)}', 400)

        if len(password) < MIN_PASSWORD_LENGTH:
            return error_response(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)

        if User.query.filter_by(email=email).first():
            return error_response('User already exists', 400)

        try:
            user = User(email=email, name=(data.get('name') or '').strip())
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Registration error: {str(e)}")
            return error_response('Server error', 500)

        logging.info(f"Registered user {user.id}")
        return jsonify(_auth_payload(user)), 201

    @app.route('/api/auth/login', methods=['POST'])
    def api_login():
        data = request.get_json(silent=True) or {}
        email = (data.get('email') or '').strip().lower()

        user = User.query.filter_by(email=email).first()
        if not user:
            return error_response('Invalid credentials', 400)

        if user.is_blocked:
            return error_response('Account has been blocked. Please contact administrator.', 403)

        if not user.check_password(data.get('password')):
            return error_response('Invalid credentials', 400)

        user.last_login = datetime.utcnow()
        db.session.commit()
        return jsonify(_auth_payload(user))

    @app.route('/api/auth/me')
    @app.route('/api/auth/profile')
    @token_required
    def api_profile():
        return jsonify({'status': 'success', 'user': g.current_user.to_dict()})

    @app.route('/api/auth/profile', methods=['PUT'])
    @token_required
    def api_update_profile():
        user = g.current_user
        data = request.get_json(silent=True) or {}
        changes = []

        if 'name' in data:
            name = (data.get('name') or '').strip()
            if not name:
                return error_response('Name is required', 400)
            if name != user.name:
                user.name = name
                changes.append('name')

        if 'email' in data:
            try:
                email = normalize_email(data.get('email'))
            except EmailNotValidError as e:
                return error_response(f'Invalid email: {str(e)}', 400)
            if email != user.email:
                if User.query.filter(User.email == email, User.id != user.id).first():
                    return error_response('Email is already in use', 400)
                user.email = email
                changes.append('email')

        if changes:
            log_activity(user.id, 'profile', f"Profile updated ({', '.join(changes)})",
                         metadata={'fields': changes})
        db.session.commit()
        return jsonify({'status': 'success', 'message': 'Profile updated', 'user': user.to_dict()})

    @app.route('/api/auth/password', methods=['PUT'])
    @token_required
    def api_change_password():
        user = g.current_user
        data = request.get_json(silent=True) or {}
        current_password = data.get('currentPassword') or ''
        new_password = data.get('newPassword') or ''

        if not current_password or not new_password:
            return error_response('Current and new password are required', 400)
        if not user.check_password(current_password):
            return error_response('Current password is incorrect', 400)
        if len(new_password) < MIN_PASSWORD_LENGTH:
            return error_response(f'Password must be at least {MIN_PASSWORD_LENGTH} characters', 400)
        if current_password == new_password:
            return error_response('New password must be different from current password', 400)

        user.set_password(new_password)
        log_activity(user.id, 'profile', 'Password changed')
        db.session.commit()
        return jsonify({'status': 'success', 'message': 'Password updated successfully'})

    @app.route('/api/auth/account', methods=['DELETE'])
    @token_required
    def api_delete_account():
        user = g.current_user
        data = request.get_json(silent=True) or {}

        if not user.check_password(data.get('password')):
            return error_response('Password is incorrect', 400)

        try:
            files = UploadedFile.query.filter_by(user_id=user.id).all()
            stored = [stored_object(uploaded_file) for uploaded_file in files]

            Activity.query.filter_by(user_id=user.id).delete()
            FileHistory.query.filter_by(user_id=user.id).delete()
            db.session.delete(user)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Account deletion error for user {user.id}: {str(e)}")
            return error_response('Failed to delete account', 500)

        for stored_copy in stored:
            delete_stored(stored_copy)

        logging.info(f"Deleted account {user.id} with {len(files)} file(s)")
        return jsonify({'status': 'success', 'message': 'Account deleted successfully', 'deleted_files': len(files)})
