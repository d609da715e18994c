import os
import logging

import click
from dotenv import load_dotenv
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

from models import db, User

# Load environment
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s [%(module)s] %(message)s",
)


def create_app(test_config=None):
    """Application factory pattern"""
    app = Flask(__name__)
    app.secret_key = os.environ.get("SESSION_SECRET", "dev-secret-key-change-in-production")
    app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

    # Configure the database
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get("DATABASE_URL", "sqlite:///sheetscope.db")
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
        "pool_recycle": 300,
        "pool_pre_ping": True,
    }

    # Authentication
    app.config['JWT_SECRET'] = os.environ.get("JWT_SECRET", "dev-jwt-secret-change-in-production")
    app.config['JWT_EXPIRES_HOURS'] = int(os.environ.get("JWT_EXPIRES_HOURS", 24))

    # Configure upload settings
    app.config['MAX_UPLOAD_SIZE'] = int(os.environ.get("MAX_UPLOAD_SIZE", 10 * 1024 * 1024))  # 10MB per file
    app.config['MAX_CONTENT_LENGTH'] = app.config['MAX_UPLOAD_SIZE'] + 1024 * 1024  # multipart overhead
    app.config['UPLOAD_FOLDER'] = os.environ.get("UPLOAD_FOLDER", 'uploads')

    # Object storage: "local" or "cloudinary"
    app.config['STORAGE_BACKEND'] = os.environ.get("STORAGE_BACKEND", "local")
    app.config['CLOUDINARY_URL'] = os.environ.get("CLOUDINARY_URL")
    app.config['CLOUDINARY_FOLDER'] = os.environ.get("CLOUDINARY_FOLDER", "excel-files")

    if test_config:
        app.config.update(test_config)
        if 'MAX_UPLOAD_SIZE' in test_config and 'MAX_CONTENT_LENGTH' not in test_config:
            app.config['MAX_CONTENT_LENGTH'] = test_config['MAX_UPLOAD_SIZE'] + 1024 * 1024

    # Create upload directory if it doesn't exist
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Register routes
    from routes import register_routes
    register_routes(app)

    register_commands(app)

    with app.app_context():
        # Create all database tables
        db.create_all()

    logging.info(f"App ready (database={app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0]}, "
                 f"storage={app.config['STORAGE_BACKEND']})")
    return app


def register_commands(app):
    @app.cli.command('create-admin')
    @click.option('--email', default='admin@excelanalysis.com', show_default=True)
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
    def create_admin(email, password):
        """Create an administrator account (or promote an existing one)"""
        email = email.strip().lower()
        user = User.query.filter_by(email=email).first()
        if user:
            user.role = 'admin'
            user.status = 'active'
            click.echo(f"Promoted existing user {email} to admin")
        else:
            user = User(email=email, role='admin', status='active', name='Administrator')
            user.set_password(password)
            db.session.add(user)
            click.echo(f"Admin user created: {email}")
        db.session.commit()


if __name__ == '__main__':
    app = create_app()
    app.run(host='0.0.0.0', port=int(os.environ.get("PORT", 5000)), debug=True)
