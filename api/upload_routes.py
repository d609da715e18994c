import logging

from flask import g, jsonify, request, current_app

from analyzers.column_profiler import ColumnProfiler
from auth import token_required
from models import db, UploadedFile, FileHistory
from parsers.file_parser import FileParserFactory, ParseError, parse_upload
from utils.activity_log import log_activity, record_history, history_counts
from utils.http import error_response
from utils.storage import StorageError, store_upload, delete_stored, stored_object

SAMPLE_ROWS = 10

MIME_TYPES = {
    'xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    'xls': 'application/vnd.ms-excel',
    'csv': 'text/csv',
}


def allowed_file(filename):
    """Check if file extension is allowed"""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in FileParserFactory().supported_types


def owned_file_or_404(file_id):
    """The current user's file with ``file_id``; (file, None) or (None, error response)"""
    uploaded_file = UploadedFile.query.filter_by(id=file_id, user_id=g.current_user.id).first()
    if uploaded_file is None:
        return None, error_response('File not found', 404)
    return uploaded_file, None


def build_file_record(user_id, original_name, content, sheets, stored):
    """Assemble an ``UploadedFile`` with summary counts taken from the first sheet"""
    primary = sheets[0]
    file_type = original_name.rsplit('.', 1)[1].lower()
    profiler = ColumnProfiler()
    return UploadedFile(
        user_id=user_id,
        original_name=original_name,
        filename=stored.filename,
        file_type=file_type,
        mime_type=MIME_TYPES.get(file_type),
        file_size=len(content),
        storage_backend=stored.backend,
        storage_path=stored.path,
        storage_public_id=stored.public_id,
        row_count=primary['total_rows'],
        column_count=len(primary['headers']),
        column_headers=primary['headers'],
        sample_data=primary['data'][:SAMPLE_ROWS],
        sheets=sheets,
        status='completed',
        analysis_data={
            'columns': {sheet['name']: profiler.profile(sheet) for sheet in sheets},
            'analyses': [],
        },
        charts=[],
    )


def register_upload_routes(app):

    @app.route('/api/upload/excel', methods=['POST'])
    @token_required
    def api_upload_file():
        """Accept one spreadsheet, parse it and persist the parsed sheets"""
        user = g.current_user
        file = request.files.get('file')

        if not file or not file.filename:
            return error_response('No file uploaded', 400)
        if not allowed_file(file.filename):
            return error_response('Invalid file format. Upload an .xlsx, .xls or .csv file', 400)

        original_name = file.filename
        content = file.read()
        if not content:
            return error_response('Uploaded file is empty', 400)
        if len(content) > current_app.config['MAX_UPLOAD_SIZE']:
            return error_response('File too large', 413)

        try:
            sheets = parse_upload(content, original_name)
        except ParseError as e:
            log_activity(user.id, 'error', f"{original_name} could not be parsed",
                         metadata={'filename': original_name, 'error': str(e)})
            db.session.commit()
            return error_response(str(e), 400)

        stored = None
        try:
            stored = store_upload(content, original_name)
            uploaded_file = build_file_record(user.id, original_name, content, sheets, stored)
            db.session.add(uploaded_file)
            db.session.flush()

            log_activity(
                user.id, 'upload',
                f"{original_name} uploaded successfully "
                f"({uploaded_file.row_count} rows, {uploaded_file.column_count} columns)",
                file_id=uploaded_file.id,
                metadata={
                    'filename': original_name,
                    'size': uploaded_file.file_size,
                    'rows': uploaded_file.row_count,
                    'columns': uploaded_file.column_count,
                },
            )
            record_history(user.id, 'upload', uploaded_file, tags=['upload', uploaded_file.file_type])
            db.session.commit()
        except StorageError as e:
            db.session.rollback()
            logging.error(f"Storage error for {original_name}: {str(e)}")
            return error_response(f'Upload failed: {str(e)}', 500)
        except Exception as e:
            db.session.rollback()
            delete_stored(stored)
            logging.error(f"Upload error: {str(e)}")
            return error_response(f'Upload failed: {str(e)}', 500)

        logging.info(f"Stored {original_name} as file {uploaded_file.id} ({uploaded_file.storage_backend})")
        return jsonify({
            'status': 'success',
            'message': 'File uploaded and parsed successfully',
            'file': original_name,
            'file_id': uploaded_file.id,
            'data': {
                'rows': uploaded_file.row_count,
                'columns': uploaded_file.column_count,
                'headers': uploaded_file.column_headers,
                'sheets': [sheet['name'] for sheet in sheets],
            },
        }), 201

    @app.route('/api/upload/files')
    @token_required
    def api_list_files():
        files = UploadedFile.query.filter_by(user_id=g.current_user.id) \
            .order_by(UploadedFile.created_at.desc(), UploadedFile.id.desc()).all()
        return jsonify({'status': 'success', 'files': [f.summary_dict() for f in files]})

    @app.route('/api/upload/file/<int:file_id>')
    @token_required
    def api_get_file(file_id):
        uploaded_file, error = owned_file_or_404(file_id)
        if error:
            return error
        return jsonify({'status': 'success', 'file': uploaded_file.to_dict()})

    @app.route('/api/upload/file/<int:file_id>', methods=['DELETE'])
    @token_required
    def api_delete_file(file_id):
        """Delete a file, its stored copy, and record the deletion in its history"""
        user = g.current_user
        uploaded_file, error = owned_file_or_404(file_id)
        if error:
            return error

        try:
            related = FileHistory.query.filter_by(file_id=uploaded_file.id, user_id=user.id).all()
            counts = history_counts(related)
            history_entry = record_history(
                user.id, 'file_deleted', uploaded_file,
                related_activities=[h.id for h in related],
                tags=['file_deletion', 'permanent_removal'],
                metadata=dict(counts, time_spent=0),
            )

            log_activity(user.id, 'delete', f"{uploaded_file.original_name} deleted",
                         file_id=uploaded_file.id,
                         metadata={'filename': uploaded_file.original_name, 'size': uploaded_file.file_size})

            stored = stored_object(uploaded_file)
            history_id = history_entry.id
            deleted = {
                'id': uploaded_file.id,
                'name': uploaded_file.original_name,
                'size': uploaded_file.file_size,
                'related_activities': len(related),
            }
            db.session.delete(uploaded_file)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logging.error(f"Delete file error: {str(e)}")
            return error_response(f'Delete failed: {str(e)}', 500)

        # Bytes go only once the row is gone
        deleted['storage_removed'] = delete_stored(stored)

        return jsonify({
            'status': 'success',
            'message': 'File deleted successfully',
            'deleted_file': deleted,
            'history_id': history_id,
        })
