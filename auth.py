"""
Bearer-token authentication.

Tokens are HS256 JWTs whose ``sub`` claim carries the user id. Every protected
route is wrapped in ``token_required`` (or ``admin_required``), which resolves the
token to a live, non-blocked ``User`` and exposes it as ``g.current_user``.
"""

import logging
from datetime import datetime, timedelta
from functools import wraps

from flask import current_app, g, request
from jose import JWTError, jwt

from models import db, User
from utils.http import error_response

ALGORITHM = "HS256"


def issue_token(user):
    """Sign an access token for ``user``."""
    expires = datetime.utcnow() + timedelta(hours=current_app.config['JWT_EXPIRES_HOURS'])
    claims = {
        'sub': str(user.id),
        'user': {'id': user.id, 'email': user.email, 'role': user.role},
        'exp': expires,
    }
    return jwt.encode(claims, current_app.config['JWT_SECRET'], algorithm=ALGORITHM)


def decode_token(token):
    """Return the token's claims, or None when the token is invalid or expired."""
    try:
        claims = jwt.decode(token, current_app.config['JWT_SECRET'], algorithms=[ALGORITHM])
    except JWTError as e:
        logging.info(f"Rejected token: {str(e)}")
        return None
    if not claims.get('sub'):
        return None
    return claims


def _extract_token():
    token = request.headers.get('x-auth-token')
    if token:
        return token.strip()
    auth_header = request.headers.get('Authorization', '')
    if auth_header.startswith('Bearer '):
        return auth_header[7:].strip()
    return None


def _authenticate():
    """Resolve the request's token to a user; returns (user, error_response)."""
    token = _extract_token()
    if not token:
        return None, error_response('No token, authorization denied', 401)

    claims = decode_token(token)
    if claims is None:
        return None, error_response('Token is not valid', 401)

    try:
        user_id = int(claims['sub'])
    except (TypeError, ValueError):
        return None, error_response('Token is not valid', 401)

    user = db.session.get(User, user_id)
    if user is None:
        return None, error_response('User not found', 401)
    if user.is_blocked:
        return None, error_response('Account has been blocked. Please contact administrator.', 403)
    return user, None


def token_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        user, error = _authenticate()
        if error is not None:
            return error
        g.current_user = user
        return view(*args, **kwargs)
    return wrapper


def admin_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        user, error = _authenticate()
        if error is not None:
            return error
        if not user.is_admin:
            return error_response('Access denied. Admin only.', 403)
        g.current_user = user
        return view(*args, **kwargs)
    return wrapper
