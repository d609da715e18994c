"""
Activity feed and file-history recording.

Both logs are append-only. ``record_history`` is the single place that stamps
action-specific times and request metadata onto a ``FileHistory`` row, so every
route records the same shape of entry.
"""

import logging
import time
from datetime import datetime

from flask import has_request_context, request
from sqlalchemy.orm.attributes import flag_modified

from models import db, Activity, FileHistory, ACTIVITY_TYPES, HISTORY_ACTIONS, DOWNLOAD_ACTIONS

# Columns a caller may set through record_history(**fields)
HISTORY_FIELDS = (
    'chart_type', 'selected_axes', 'chart_config', 'chart_id',
    'analysis_type', 'analysis_results', 'analysis_id',
    'download_format', 'download_url', 'download_file_name', 'download_size',
    'session_id', 'tags', 'status', 'error_message',
)


def log_activity(user_id, activity_type, description, file_id=None, metadata=None):
    """Append an entry to the user's activity feed"""
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")
    activity = Activity(
        user_id=user_id,
        type=activity_type,
        description=description,
        file_id=file_id,
        meta=metadata or {},
    )
    db.session.add(activity)
    return activity


def request_metadata():
    """Client details captured with each history entry"""
    if not has_request_context():
        return {}
    width = request.headers.get('sec-ch-viewport-width')
    height = request.headers.get('sec-ch-viewport-height')
    return {
        'browser': request.headers.get('User-Agent'),
        'user_agent': request.headers.get('User-Agent'),
        'ip_address': request.headers.get('X-Forwarded-For', request.remote_addr),
        'screen_resolution': f"{width}x{height}" if width else 'Unknown',
    }


def record_history(user_id, action, uploaded_file=None, file_id=None, file_name=None,
                   related_activities=None, metadata=None, **fields):
    """Append a ``FileHistory`` entry and back-link it from its related entries.

    ``uploaded_file`` supplies the id, name and size/row/column snapshot; a bare
    ``file_id``/``file_name`` pair is accepted for files that no longer exist.
    """
    if action not in HISTORY_ACTIONS:
        raise ValueError(f"Unknown history action: {action}")

    unknown = set(fields) - set(HISTORY_FIELDS)
    if unknown:
        raise TypeError(f"Unexpected history fields: {', '.join(sorted(unknown))}")

    now = datetime.utcnow()
    entry = FileHistory(
        user_id=user_id,
        action=action,
        file_id=uploaded_file.id if uploaded_file is not None else file_id,
        file_name=uploaded_file.original_name if uploaded_file is not None else file_name,
        related_activities=list(related_activities or []),
        created_at=now,
    )
    if uploaded_file is not None:
        entry.file_size = uploaded_file.file_size
        entry.row_count = uploaded_file.row_count
        entry.column_count = uploaded_file.column_count

    for key, value in fields.items():
        if value is not None:
            setattr(entry, key, value)
    if not entry.session_id:
        entry.session_id = f"session_{int(time.time() * 1000)}"
    if not entry.status:
        entry.status = 'completed'

    if action == 'analysis':
        entry.analysis_time = now
    elif action == 'chart_created':
        entry.chart_creation_time = now
    elif action in DOWNLOAD_ACTIONS:
        entry.download_time = now

    meta = request_metadata()
    meta.update(metadata or {})
    entry.meta = meta

    db.session.add(entry)
    db.session.flush()

    if entry.related_activities:
        link_related(entry, entry.related_activities)

    logging.info(f"History: user={user_id} action={action} file={entry.file_id}")
    return entry


def link_related(entry, related_ids):
    """Append ``entry.id`` to the ``related_activities`` of the user's entries in ``related_ids``"""
    related = FileHistory.query.filter(
        FileHistory.id.in_(related_ids),
        FileHistory.user_id == entry.user_id,
    ).all()
    for other in related:
        other.related_activities = list(other.related_activities or []) + [entry.id]
        flag_modified(other, 'related_activities')
    return related


def history_counts(entries):
    """Chart/download/analysis counters for a set of history entries"""
    return {
        'chart_count': sum(1 for h in entries if h.action == 'chart_created'),
        'download_count': sum(1 for h in entries if h.action in DOWNLOAD_ACTIONS),
        'analysis_count': sum(1 for h in entries if h.action == 'analysis'),
    }
