"""Tests for chart generation, statistics and per-file analysis views."""

import json

from models import db, Activity, FileHistory, UploadedFile


def _chart(client, headers, file_id, **overrides):
    payload = {'fileId': file_id, 'chartType': 'bar', 'xAxis': 'Month', 'yAxis': 'Revenue'}
    payload.update(overrides)
    return client.post('/api/analysis/chart', headers=headers, json=payload)


class TestChart:

    def test_generate_chart(self, app, client, auth_headers, uploaded_id):
        response = _chart(client, auth_headers, uploaded_id)
        assert response.status_code == 200
        body = response.get_json()
        assert body['chart_data']['labels'] == ['Jan', 'Feb', 'Mar', 'Apr']
        assert body['chart_data']['datasets'][0]['data'] == [100, 150, 0, 200]

        with app.app_context():
            uploaded = db.session.get(UploadedFile, uploaded_id)
            assert [c['chart_id'] for c in uploaded.charts] == [body['chart_id']]
            activity = Activity.query.filter_by(type='analysis').one()
            assert activity.meta['chartType'] == 'bar'
            entry = FileHistory.query.filter_by(action='chart_created').one()
            assert entry.chart_type == 'bar'
            assert entry.selected_axes['xAxis'] == 'Month'
            assert entry.chart_creation_time is not None

    def test_chart_on_second_sheet(self, client, auth_headers, uploaded_id):
        response = _chart(client, auth_headers, uploaded_id, sheet='Regions', chartType='pie',
                          xAxis='Region', yAxis='Stores')
        assert response.get_json()['chart_data']['labels'] == ['North', 'South']

    def test_chart_validation(self, client, auth_headers, uploaded_id):
        assert _chart(client, auth_headers, uploaded_id, yAxis=None).status_code == 400
        assert _chart(client, auth_headers, uploaded_id, yAxis='Profit').status_code == 400
        assert _chart(client, auth_headers, uploaded_id, chartType='heatmap').status_code == 400
        assert _chart(client, auth_headers, uploaded_id, sheet='Missing').status_code == 404
        assert _chart(client, auth_headers, None).status_code == 400
        assert _chart(client, auth_headers, 999).status_code == 404

    def test_chart_on_other_users_file(self, client, register_user, uploaded_id):
        other = register_user(email='bob@acme.com')
        assert _chart(client, other, uploaded_id).status_code == 404

    def test_list_charts(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id)
        _chart(client, auth_headers, uploaded_id, chartType='line')
        body = client.get(f'/api/analysis/file/{uploaded_id}/charts', headers=auth_headers).get_json()
        assert body['file_name'] == 'sales.xlsx'
        assert {c['chart_type'] for c in body['charts']} == {'bar', 'line'}


class TestStats:

    def test_run_analysis(self, app, client, auth_headers, uploaded_id):
        response = client.post('/api/analysis/stats', headers=auth_headers,
                               json={'fileId': uploaded_id, 'analysisType': 'basic_stats'})
        assert response.status_code == 200
        results = response.get_json()['results']
        assert results['statistics']['Revenue']['sum'] == 450

        with app.app_context():
            uploaded = db.session.get(UploadedFile, uploaded_id)
            assert uploaded.analysis_data['analyses'][0]['analysis_type'] == 'basic_stats'
            entry = FileHistory.query.filter_by(action='analysis').one()
            assert entry.analysis_type == 'basic_stats'
            assert entry.analysis_time is not None

    def test_unsupported_analysis(self, client, auth_headers, uploaded_id):
        response = client.post('/api/analysis/stats', headers=auth_headers,
                               json={'fileId': uploaded_id, 'analysisType': 'forecast'})
        assert response.status_code == 400


class TestFileViews:

    def test_analysis_view(self, client, auth_headers, uploaded_id):
        body = client.get(f'/api/analysis/{uploaded_id}?sheet=Regions', headers=auth_headers).get_json()
        metadata = body['file']['metadata']
        assert metadata['sheet_name'] == 'Regions'
        assert metadata['sheets'] == ['Sales', 'Regions']
        assert metadata['rows'] == 2
        assert body['file']['parsed_data'] == [['North', 4], ['South', 7]]
        assert 'bubble' in body['chart_types']
        assert [p['name'] for p in metadata['column_profiles']] == ['Region', 'Stores']

    def test_analysis_history_and_pdf_data(self, client, auth_headers, uploaded_id):
        _chart(client, auth_headers, uploaded_id)
        _chart(client, auth_headers, uploaded_id)
        _chart(client, auth_headers, uploaded_id, chartType='line')

        history = client.get(f'/api/analysis/history/{uploaded_id}', headers=auth_headers).get_json()
        assert len(history['analyses']) == 3

        pdf_data = client.get(f'/api/analysis/pdf-data/{uploaded_id}', headers=auth_headers).get_json()
        assert pdf_data['file']['stats']['total_rows'] == 4
        assert pdf_data['file']['stats']['total_sheets'] == 2
        assert pdf_data['analysis_stats']['total_analyses'] == 3
        assert pdf_data['analysis_stats']['most_used_chart_type'] == 'bar'
        assert pdf_data['analysis_stats']['chart_type_counts'] == {'bar': 2, 'line': 1}

    def test_save_chart(self, app, client, auth_headers, uploaded_id):
        response = client.post('/api/analysis/save-chart', headers=auth_headers,
                               json={'fileId': uploaded_id, 'chartType': 'radar', 'chartData': {'labels': []}})
        assert response.status_code == 200
        with app.app_context():
            assert Activity.query.filter_by(type='analysis').one().meta['chartType'] == 'radar'


def _strict_json(response):
    def reject(token):
        raise ValueError(f'non-standard JSON constant {token}')
    return json.loads(response.get_data(as_text=True), parse_constant=reject)


class TestUnusualCells:

    def test_infinite_cells_stay_valid_json(self, client, auth_headers, upload_file):
        response = upload_file(auth_headers, b'Label,Value\na,1\nb,inf\nc,3\n', 'values.csv')
        file_id = response.get_json()['file_id']

        detail = _strict_json(client.get(f'/api/upload/file/{file_id}', headers=auth_headers))
        assert detail['file']['all_sheets'][0]['data'][1] == ['b', None]
        profile = detail['file']['analysis_data']['columns']['values'][1]
        assert profile['max'] == 3

        chart = _strict_json(_chart(client, auth_headers, file_id, xAxis='Label', yAxis='Value'))
        assert chart['chart_data']['labels'] == ['a', 'c']
        assert chart['chart_data']['datasets'][0]['data'] == [1, 3]

    def test_stats_on_repeated_headers(self, client, auth_headers, upload_file):
        response = upload_file(auth_headers, b'v,v,v_2\n1,2,3\n4,5,6\n7,8,10\n', 'repeats.csv')
        file_id = response.get_json()['file_id']
        assert response.get_json()['data']['headers'] == ['v', 'v_2', 'v_2_2']

        stats = client.post('/api/analysis/stats', headers=auth_headers,
                            json={'fileId': file_id, 'analysisType': 'basic_stats'})
        assert stats.status_code == 200
        assert set(stats.get_json()['results']['statistics']) == {'v', 'v_2', 'v_2_2'}

        chart = _chart(client, auth_headers, file_id, xAxis='v', yAxis='v_2_2')
        assert chart.get_json()['chart_data']['datasets'][0]['data'] == [3, 6, 10]
