import logging

from flask import render_template, request

from utils.http import error_response


def register_routes(app):
    """Register all routes with the Flask app"""
    from api.auth_routes import register_auth_routes
    from api.upload_routes import register_upload_routes
    from api.analysis_routes import register_analysis_routes
    from api.dashboard_routes import register_dashboard_routes
    from api.history_routes import register_history_routes
    from api.download_routes import register_download_routes
    from api.admin_routes import register_admin_routes

    # =======================
    # UI ROUTES (Templates Only)
    # =======================
    @app.route('/')
    def index():
        """Home page / dashboard"""
        return render_template('index.html')

    @app.route('/login')
    def login_page():
        return render_template('login.html')

    @app.route('/register')
    def register_page():
        return render_template('register.html')

    @app.route('/upload')
    def upload_page():
        """File upload page"""
        return render_template('upload.html')

    @app.route('/analysis/<int:file_id>')
    def analysis_page(file_id):
        """Chart configuration and export page for one file"""
        return render_template('analysis.html', file_id=file_id)

    @app.route('/history')
    def history_page():
        return render_template('history.html')

    @app.route('/admin')
    def admin_page():
        return render_template('admin.html')

    @app.route('/settings')
    def settings_page():
        return render_template('settings.html')

    # =======================
    # API ROUTES (JSON Only)
    # =======================
    register_auth_routes(app)
    register_upload_routes(app)
    register_analysis_routes(app)
    register_dashboard_routes(app)
    register_history_routes(app)
    register_download_routes(app)
    register_admin_routes(app)

    @app.errorhandler(413)
    def request_too_large(e):
        limit_mb = app.config['MAX_UPLOAD_SIZE'] / (1024 * 1024)
        return error_response(f'File too large (limit {limit_mb:.0f} MB)', 413)

    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith('/api/'):
            return error_response('Not found', 404)
        return render_template('base.html', missing=True), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return error_response('Method not allowed', 405)

    @app.errorhandler(500)
    def internal_error(e):
        logging.error(f"Unhandled error on {request.path}: {str(e)}")
        return error_response('Server error', 500)
