"""Tests for the per-user file history log."""

from datetime import datetime, timedelta

from models import db, FileHistory


def _chart(client, headers, file_id, chart_type='bar'):
    return client.post('/api/analysis/chart', headers=headers, json={
        'fileId': file_id, 'chartType': chart_type, 'xAxis': 'Month', 'yAxis': 'Units'})


class TestUserHistory:

    def test_grouped_by_day(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id)
        body = client.get('/api/history/user', headers=auth_headers).get_json()

        today = datetime.utcnow().date().isoformat()
        assert list(body['history']) == [today]
        assert [e['action'] for e in body['history'][today]] == ['chart_created', 'upload']
        assert body['pagination'] == {'current_page': 1, 'total_pages': 1, 'total_items': 2, 'items_per_page': 20}

    def test_pagination(self, client, auth_headers, uploaded_id):
        for _ in range(4):
            _chart(client, auth_headers, uploaded_id)
        body = client.get('/api/history/user?page=2&limit=2', headers=auth_headers).get_json()
        assert body['pagination']['total_items'] == 5
        assert body['pagination']['total_pages'] == 3
        assert sum(len(v) for v in body['history'].values()) == 2

    def test_limit_is_capped(self, client, auth_headers, uploaded_id):
        body = client.get('/api/history/user?limit=500', headers=auth_headers).get_json()
        assert body['pagination']['items_per_page'] == 100

    def test_filters(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id, 'pie')
        _chart(client, auth_headers, uploaded_id, 'line')

        def total(query):
            return client.get(f'/api/history/user?{query}', headers=auth_headers).get_json()['pagination']['total_items']

        assert total('action=chart_created') == 2
        assert total('chartType=pie') == 1
        assert total('fileName=SALES') == 3
        assert total('fileName=other') == 0

    def test_date_range_is_inclusive(self, app, client, auth_headers, uploaded_id):
        with app.app_context():
            old = FileHistory.query.filter_by(action='upload').one()
            old.created_at = datetime.utcnow() - timedelta(days=10)
            db.session.commit()
        _chart(client, auth_headers, uploaded_id)

        today = datetime.utcnow().date().isoformat()
        body = client.get(f'/api/history/user?dateFrom={today}&dateTo={today}', headers=auth_headers).get_json()
        assert body['pagination']['total_items'] == 1

    def test_invalid_filters(self, client, auth_headers):
        assert client.get('/api/history/user?action=explode', headers=auth_headers).status_code == 400
        assert client.get('/api/history/user?dateFrom=yesterday', headers=auth_headers).status_code == 400


class TestHistoryStats:

    def test_stats(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id, 'bar')
        _chart(client, auth_headers, uploaded_id, 'bar')
        client.post('/api/download/csv', headers=auth_headers, json={'fileId': uploaded_id})

        body = client.get('/api/history/stats', headers=auth_headers).get_json()
        assert body['total_actions'] == 4
        assert body['total_files'] == 1
        assert body['total_charts'] == 2
        assert body['total_downloads'] == 1
        assert body['chart_type_breakdown'] == [{'id': 'bar', 'count': 2}]
        summary = body['file_activity_summary'][0]
        assert summary['file_id'] == uploaded_id
        assert summary['chart_count'] == 2
        assert summary['download_count'] == 1


class TestHistoryEntries:

    def test_create_entry(self, client, auth_headers, uploaded_id):
        response = client.post('/api/history', headers=auth_headers, json={
            'fileId': uploaded_id,
            'action': 'analysis_downloaded',
            'downloadFormat': 'png',
            'chartType': 'bar',
            'tags': ['client_export'],
        })
        assert response.status_code == 201
        entry = response.get_json()['entry']
        assert entry['file_name'] == 'sales.xlsx'
        assert entry['row_count'] == 4
        assert entry['download_time'] is not None
        assert entry['session_id'].startswith('session_')

    def test_create_entry_validation(self, client, auth_headers, register_user, uploaded_id):
        assert client.post('/api/history', headers=auth_headers,
                           json={'fileId': uploaded_id, 'action': 'explode'}).status_code == 400
        assert client.post('/api/history', headers=auth_headers,
                           json={'action': 'upload'}).status_code == 400
        assert client.post('/api/history', headers=auth_headers,
                           json={'fileId': uploaded_id, 'action': 'upload', 'chartType': 'heatmap'}).status_code == 400
        other = register_user(email='bob@acme.com')
        assert client.post('/api/history', headers=other,
                           json={'fileId': uploaded_id, 'action': 'upload'}).status_code == 404

    def test_get_and_delete_entry(self, client, auth_headers, register_user, uploaded_id):
        entries = client.get('/api/history/user', headers=auth_headers).get_json()['history']
        entry_id = next(iter(entries.values()))[0]['id']

        body = client.get(f'/api/history/{entry_id}', headers=auth_headers).get_json()
        assert body['entry']['action'] == 'upload'
        assert body['file']['id'] == uploaded_id

        other = register_user(email='bob@acme.com')
        assert client.get(f'/api/history/{entry_id}', headers=other).status_code == 404
        assert client.delete(f'/api/history/{entry_id}', headers=other).status_code == 404

        assert client.delete(f'/api/history/{entry_id}', headers=auth_headers).status_code == 200
        assert client.get(f'/api/history/{entry_id}', headers=auth_headers).status_code == 404

    def test_file_timeline(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id)
        body = client.get(f'/api/history/file/{uploaded_id}', headers=auth_headers).get_json()
        assert body['total_actions'] == 2
        assert body['chart_count'] == 1
        assert len(body['activity_summary']['uploads']) == 1
        assert client.get('/api/history/file/999', headers=auth_headers).status_code == 404
