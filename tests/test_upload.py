"""Tests for the upload pipeline and file management endpoints."""

import os

from conftest import workbook_bytes
from models import db, Activity, FileHistory, UploadedFile


class TestUpload:

    def test_upload_workbook(self, app, auth_headers, upload_file, sales_xlsx):
        response = upload_file(auth_headers, sales_xlsx)
        assert response.status_code == 201
        body = response.get_json()
        assert body['status'] == 'success'
        assert body['file'] == 'sales.xlsx'
        assert body['data'] == {
            'rows': 4,
            'columns': 3,
            'headers': ['Month', 'Revenue', 'Units'],
            'sheets': ['Sales', 'Regions'],
        }

        with app.app_context():
            uploaded = db.session.get(UploadedFile, body['file_id'])
            assert uploaded.storage_backend == 'local'
            assert os.path.exists(uploaded.storage_path)
            assert uploaded.sample_data[0] == ['Jan', 100, 10]
            assert set(uploaded.analysis_data['columns']) == {'Sales', 'Regions'}
            assert Activity.query.filter_by(type='upload').count() == 1
            assert FileHistory.query.filter_by(action='upload', file_id=uploaded.id).count() == 1

    def test_upload_csv(self, auth_headers, upload_file):
        response = upload_file(auth_headers, b'City,Stores\nOslo,3\nBergen,5\n', 'cities.csv')
        assert response.status_code == 201
        assert response.get_json()['data']['sheets'] == ['cities']

    def test_missing_file(self, client, auth_headers):
        response = client.post('/api/upload/excel', headers=auth_headers, data={},
                               content_type='multipart/form-data')
        assert response.status_code == 400
        assert response.get_json()['message'] == 'No file uploaded'

    def test_wrong_extension(self, auth_headers, upload_file):
        response = upload_file(auth_headers, b'%PDF-1.4', 'report.pdf')
        assert response.status_code == 400

    def test_empty_file(self, auth_headers, upload_file):
        assert upload_file(auth_headers, b'', 'sales.xlsx').status_code == 400

    def test_unparseable_file_logs_error(self, app, auth_headers, upload_file):
        response = upload_file(auth_headers, b'not really excel', 'broken.xlsx')
        assert response.status_code == 400
        with app.app_context():
            assert Activity.query.filter_by(type='error').count() == 1
            assert UploadedFile.query.count() == 0

    def test_file_too_large(self, app, auth_headers, upload_file, sales_xlsx):
        app.config['MAX_UPLOAD_SIZE'] = 100
        assert upload_file(auth_headers, sales_xlsx).status_code == 413

    def test_requires_token(self, upload_file, sales_xlsx):
        assert upload_file({}, sales_xlsx).status_code == 401


class TestFiles:

    def test_list_and_get(self, client, auth_headers, uploaded_id):
        files = client.get('/api/upload/files', headers=auth_headers).get_json()['files']
        assert [f['id'] for f in files] == [uploaded_id]
        assert files[0]['row_count'] == 4

        detail = client.get(f'/api/upload/file/{uploaded_id}', headers=auth_headers).get_json()['file']
        assert [s['name'] for s in detail['all_sheets']] == ['Sales', 'Regions']
        assert detail['stats']['sheet_count'] == 2

    def test_files_are_private(self, client, register_user, uploaded_id):
        other = register_user(email='bob@acme.com')
        assert client.get(f'/api/upload/file/{uploaded_id}', headers=other).status_code == 404
        assert client.delete(f'/api/upload/file/{uploaded_id}', headers=other).status_code == 404
        assert client.get('/api/upload/files', headers=other).get_json()['files'] == []

    def test_delete_file_keeps_history(self, app, client, auth_headers, uploaded_id):
        with app.app_context():
            path = db.session.get(UploadedFile, uploaded_id).storage_path

        response = client.delete(f'/api/upload/file/{uploaded_id}', headers=auth_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body['deleted_file']['related_activities'] == 1
        assert body['deleted_file']['storage_removed'] is True
        assert not os.path.exists(path)

        assert client.get(f'/api/upload/file/{uploaded_id}', headers=auth_headers).status_code == 404
        timeline = client.get(f'/api/history/file/{uploaded_id}', headers=auth_headers).get_json()
        assert [e['action'] for e in timeline['file_history']] == ['upload', 'file_deleted']

        with app.app_context():
            upload_entry = FileHistory.query.filter_by(action='upload').first()
            assert upload_entry.related_activities == [body['history_id']]

    def test_upload_multiple_sheets_summary_from_first(self, auth_headers, upload_file):
        content = workbook_bytes({'Small': [['a'], [1]], 'Big': [['b', 'c']] + [[i, i] for i in range(9)]})
        data = upload_file(auth_headers, content, 'multi.xlsx').get_json()['data']
        assert data['rows'] == 1
        assert data['columns'] == 1


def _failing_commit():
    raise RuntimeError('database unavailable')


class TestStorageConsistency:

    def test_failed_upload_removes_stored_copy(self, app, auth_headers, upload_file, sales_xlsx, monkeypatch):
        monkeypatch.setattr(db.session, 'commit', _failing_commit)
        response = upload_file(auth_headers, sales_xlsx)
        monkeypatch.undo()

        assert response.status_code == 500
        assert os.listdir(app.config['UPLOAD_FOLDER']) == []
        with app.app_context():
            assert UploadedFile.query.count() == 0

    def test_failed_delete_keeps_stored_copy(self, app, client, auth_headers, uploaded_id, monkeypatch):
        with app.app_context():
            path = db.session.get(UploadedFile, uploaded_id).storage_path

        monkeypatch.setattr(db.session, 'commit', _failing_commit)
        response = client.delete(f'/api/upload/file/{uploaded_id}', headers=auth_headers)
        monkeypatch.undo()

        assert response.status_code == 500
        assert os.path.exists(path)
        assert client.get(f'/api/upload/file/{uploaded_id}', headers=auth_headers).status_code == 200
