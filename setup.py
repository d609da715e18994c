"""
SheetScope Setup Instructions

To run this application on your local system:

1. Install Python 3.11+ if not already installed

2. Create a virtual environment:
   python -m venv sheetscope_env

3. Activate the virtual environment:
   - Windows: sheetscope_env\Scripts\activate
   - Mac/Linux: source sheetscope_env/bin/activate

4. Install the application and its dependencies:
   pip install -e .
   pip install -e ".[test]"     # adds pytest

5. Set environment variables (optional, a .env file is read too):
   - SESSION_SECRET=your-secret-key-here
   - JWT_SECRET=your-token-signing-key
   - DATABASE_URL=sqlite:///sheetscope.db (default)
   - STORAGE_BACKEND=local (default) or cloudinary
   - CLOUDINARY_URL=cloudinary://<key>:<secret>@<cloud>
   - UPLOAD_FOLDER=uploads (default)

6. Create an administrator:
   flask --app main create-admin --email admin@example.com

7. Run the application:
   python main.py

   Or with gunicorn:
   gunicorn --bind 0.0.0.0:5000 --reuse-port --reload main:app

8. Open your browser and go to: http://localhost:5000

File Structure:
├── main.py                     # Entry point
├── app.py                      # Flask app factory and CLI commands
├── models.py                   # Database models
├── auth.py                     # Token issuing and route guards
├── routes.py                   # Page routes and error handlers
├── api/                        # JSON endpoints, one module per area
├── analyzers/
│   ├── chart_projector.py      # Column pairs to chart data
│   ├── column_profiler.py      # Per-column type profiles
│   └── stats_analyzer.py       # Statistics, correlation, trends, outliers
├── parsers/
│   ├── file_parser.py          # Base parser and factory
│   ├── csv_parser.py           # CSV parser
│   └── excel_parser.py         # Excel parser
├── utils/
│   ├── activity_log.py         # Activity and history recording
│   ├── export_utils.py         # CSV, PDF and image export
│   ├── http.py                 # JSON response helpers
│   └── storage.py              # Local and Cloudinary storage
├── templates/                  # HTML templates
└── static/                     # CSS and JS files
"""

from setuptools import setup

setup(
    name='sheetscope',
    version='1.0.0',
    description='Multi-user spreadsheet upload, charting and export service',
    python_requires='>=3.10',
    py_modules=['app', 'main', 'models', 'auth', 'routes'],
    packages=['api', 'analyzers', 'parsers', 'utils'],
    data_files=[
        ('templates', [
            'templates/base.html',
            'templates/index.html',
            'templates/login.html',
            'templates/register.html',
            'templates/upload.html',
            'templates/analysis.html',
            'templates/history.html',
            'templates/admin.html',
            'templates/settings.html',
        ]),
        ('static/css', ['static/css/custom.css']),
        ('static/js', ['static/js/api.js']),
    ],
    install_requires=[
        'Flask>=2.3',
        'Flask-SQLAlchemy>=3.0.5',
        'SQLAlchemy>=2.0',
        'Werkzeug>=2.3.7',
        'click>=8.1',
        'gunicorn>=21.2.0',
        'pandas>=2.1.1',
        'numpy>=1.25.2',
        'openpyxl>=3.1.2',
        'xlrd>=2.0.1',
        'scipy>=1.11.3',
        'matplotlib>=3.7',
        'reportlab>=4.0',
        'python-jose[cryptography]>=3.3',
        'email-validator>=2.0.0',
        'python-dotenv>=1.0',
        'cloudinary>=1.36',
        'psycopg2-binary>=2.9.7',
    ],
    extras_require={
        'test': ['pytest>=7.4'],
    },
)
