import io

import pytest
from openpyxl import Workbook

from app import create_app
from models import db

SALES_ROWS = [
    ['Month', 'Revenue', 'Units'],
    ['Jan', 100, 10],
    ['Feb', 150, 15],
    ['Mar', 0, 9],
    ['Apr', 200, 20],
]
REGION_ROWS = [
    ['Region', 'Stores'],
    ['North', 4],
    ['South', 7],
]


def workbook_bytes(sheets):
    """Build an .xlsx file in memory from ``{sheet name: rows}``"""
    workbook = Workbook()
    workbook.remove(workbook.active)
    for name, rows in sheets.items():
        worksheet = workbook.create_sheet(name)
        for row in rows:
            worksheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'test.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
        'STORAGE_BACKEND': 'local',
        'JWT_SECRET': 'test-secret',
    })
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sales_xlsx():
    return workbook_bytes({'Sales': SALES_ROWS, 'Regions': REGION_ROWS})


@pytest.fixture
def register_user(client):
    """Register an account and return its auth headers"""
    def _register(email='alice@acme.com', password='secret123', name='Alice'):
        response = client.post('/api/auth/register', json={'email': email, 'password': password, 'name': name})
        assert response.status_code == 201, response.get_json()
        return {'x-auth-token': response.get_json()['token']}
    return _register


@pytest.fixture
def auth_headers(register_user):
    return register_user()


@pytest.fixture
def upload_file(client):
    def _upload(headers, content, filename='sales.xlsx'):
        return client.post(
            '/api/upload/excel',
            headers=headers,
            data={'file': (io.BytesIO(content), filename)},
            content_type='multipart/form-data',
        )
    return _upload


@pytest.fixture
def uploaded_id(auth_headers, upload_file, sales_xlsx):
    response = upload_file(auth_headers, sales_xlsx)
    assert response.status_code == 201, response.get_json()
    return response.get_json()['file_id']


@pytest.fixture
def admin_headers(app, client):
    runner = app.test_cli_runner()
    result = runner.invoke(args=['create-admin', '--email', 'root@acme.com', '--password', 'adminpass'])
    assert result.exit_code == 0, result.output
    response = client.post('/api/auth/login', json={'email': 'root@acme.com', 'password': 'adminpass'})
    return {'x-auth-token': response.get_json()['token']}
