import math
from datetime import datetime

import numpy as np
import pandas as pd
from flask_sqlalchemy import SQLAlchemy
from werkzeug.security import generate_password_hash, check_password_hash

db = SQLAlchemy()

ACTIVITY_TYPES = ('upload', 'analysis', 'delete', 'download', 'profile', 'error')

HISTORY_ACTIONS = (
    'upload', 'analysis', 'chart_created', 'pdf_downloaded',
    'csv_exported', 'file_deleted', 'analysis_downloaded'
)
DOWNLOAD_ACTIONS = ('pdf_downloaded', 'csv_exported', 'analysis_downloaded')
CHART_TYPES = ('bar', 'line', 'pie', 'scatter', 'doughnut', 'area', 'radar', 'bubble')
ANALYSIS_TYPES = ('basic_stats', 'correlation', 'trend_analysis', 'outlier_detection', 'custom')
DOWNLOAD_FORMATS = ('pdf', 'csv', 'excel', 'png', 'jpg')
HISTORY_STATUSES = ('completed', 'in_progress', 'failed', 'cancelled')


def make_json_serializable(obj):
    """Convert numpy types and other non-serializable objects to JSON-compatible types"""
    if isinstance(obj, dict):
        return {str(key): make_json_serializable(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [make_json_serializable(item) for item in obj]
    elif isinstance(obj, (np.bool_, bool)):
        return bool(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.floating):
        return float(obj) if math.isfinite(obj) else None
    elif isinstance(obj, np.ndarray):
        return [make_json_serializable(item) for item in obj.tolist()]
    elif obj is None or obj is pd.NaT:
        return None
    elif isinstance(obj, float) and not math.isfinite(obj):
        return None
    elif hasattr(obj, 'isoformat'):  # datetime objects
        return obj.isoformat()
    elif isinstance(obj, (str, int, float)):
        return obj
    elif pd.isna(obj):
        return None
    elif hasattr(obj, 'item'):  # numpy scalars
        return obj.item()
    else:
        return str(obj)


def _iso(value):
    return value.isoformat() if value else None


class User(db.Model):
    """Registered account"""
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    name = db.Column(db.String(120), default='')
    role = db.Column(db.String(20), nullable=False, default='user')
    status = db.Column(db.String(20), nullable=False, default='active')
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = db.Column(db.DateTime)

    files = db.relationship('UploadedFile', backref='owner', lazy=True, cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password or '')

    @property
    def is_admin(self):
        return self.role == 'admin'

    @property
    def is_blocked(self):
        return self.status == 'blocked'

    def to_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'name': self.name or '',
            'role': self.role,
            'status': self.status,
            'created_at': _iso(self.created_at),
            'last_login': _iso(self.last_login),
        }

    def __repr__(self):
        return f'<User {self.email}>'


class UploadedFile(db.Model):
    """Uploaded spreadsheet together with its parsed sheets"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    original_name = db.Column(db.String(255), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(10), nullable=False)
    mime_type = db.Column(db.String(120))
    file_size = db.Column(db.Integer, nullable=False, default=0)
    storage_backend = db.Column(db.String(20), nullable=False, default='local')
    storage_path = db.Column(db.String(500))
    storage_public_id = db.Column(db.String(255))
    row_count = db.Column(db.Integer, default=0)
    column_count = db.Column(db.Integer, default=0)
    column_headers = db.Column(db.JSON, default=list)
    sample_data = db.Column(db.JSON, default=list)
    sheets = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default='uploaded')
    analysis_data = db.Column(db.JSON, default=dict)
    charts = db.Column(db.JSON, default=list)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def get_sheet(self, name=None):
        """Return the named sheet, or the first one when no name is given"""
        sheets = self.sheets or []
        if not sheets:
            return None
        if name is None:
            return sheets[0]
        return next((sheet for sheet in sheets if sheet.get('name') == name), None)

    def summary_dict(self):
        return {
            'id': self.id,
            'original_name': self.original_name,
            'filename': self.filename,
            'file_type': self.file_type,
            'file_size': self.file_size,
            'row_count': self.row_count,
            'column_count': self.column_count,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }

    def to_dict(self):
        data = self.summary_dict()
        data.update({
            'column_headers': self.column_headers or [],
            'sample_data': self.sample_data or [],
            'all_sheets': self.sheets or [],
            'storage_backend': self.storage_backend,
            'storage_url': self.storage_path if self.storage_backend != 'local' else None,
            'analysis_data': self.analysis_data or {},
            'stats': {
                'row_count': self.row_count,
                'column_count': self.column_count,
                'sheet_count': len(self.sheets or []),
            },
            'updated_at': _iso(self.updated_at),
        })
        return data


class Activity(db.Model):
    """Lightweight append-only feed entry for dashboards"""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.String(500), nullable=False)
    file_id = db.Column(db.Integer, index=True)
    meta = db.Column('metadata', db.JSON, default=dict)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('activities', lazy=True))

    __table_args__ = (db.Index('ix_activity_user_created', 'user_id', 'created_at'),)

    def to_dict(self):
        return {
            'id': self.id,
            'type': self.type,
            'description': self.description,
            'file_id': self.file_id,
            'metadata': self.meta or {},
            'created_at': _iso(self.created_at),
        }


class FileHistory(db.Model):
    """Audit trail entry with chart, analysis and download details"""
    __tablename__ = 'file_history'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    # Plain column: entries outlive the file they describe.
    file_id = db.Column(db.Integer, nullable=False, index=True)
    file_name = db.Column(db.String(255), nullable=False)
    action = db.Column(db.String(30), nullable=False, index=True)

    chart_type = db.Column(db.String(20))
    selected_axes = db.Column(db.JSON)
    chart_config = db.Column(db.JSON)
    chart_id = db.Column(db.String(64))

    analysis_type = db.Column(db.String(30))
    analysis_results = db.Column(db.JSON)
    analysis_id = db.Column(db.String(64))

    download_format = db.Column(db.String(10))
    download_url = db.Column(db.String(500))
    download_file_name = db.Column(db.String(255))
    download_size = db.Column(db.Integer)

    file_size = db.Column(db.Integer)
    row_count = db.Column(db.Integer)
    column_count = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    analysis_time = db.Column(db.DateTime)
    download_time = db.Column(db.DateTime)
    chart_creation_time = db.Column(db.DateTime)

    session_id = db.Column(db.String(100))
    meta = db.Column('metadata', db.JSON, default=dict)
    related_activities = db.Column(db.JSON, default=list)
    tags = db.Column(db.JSON, default=list)
    status = db.Column(db.String(20), nullable=False, default='completed')
    error_message = db.Column(db.Text)

    __table_args__ = (db.Index('ix_file_history_user_created', 'user_id', 'created_at'),)

    def to_dict(self):
        return {
            'id': self.id,
            'file_id': self.file_id,
            'file_name': self.file_name,
            'action': self.action,
            'chart_type': self.chart_type,
            'selected_axes': self.selected_axes,
            'chart_config': self.chart_config,
            'chart_id': self.chart_id,
            'analysis_type': self.analysis_type,
            'analysis_results': self.analysis_results,
            'analysis_id': self.analysis_id,
            'download_format': self.download_format,
            'download_url': self.download_url,
            'download_file_name': self.download_file_name,
            'download_size': self.download_size,
            'file_size': self.file_size,
            'row_count': self.row_count,
            'column_count': self.column_count,
            'created_at': _iso(self.created_at),
            'analysis_time': _iso(self.analysis_time),
            'download_time': _iso(self.download_time),
            'chart_creation_time': _iso(self.chart_creation_time),
            'formatted_created_at': self.created_at.strftime('%Y-%m-%d %H:%M:%S') if self.created_at else None,
            'session_id': self.session_id,
            'metadata': self.meta or {},
            'related_activities': self.related_activities or [],
            'tags': self.tags or [],
            'status': self.status,
            'error_message': self.error_message,
        }
