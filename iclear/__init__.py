"""
iClear Application Factory
Clearance workflow engine for students, approving units and reviewers
"""

import os
from flask import Flask
from flask_cors import CORS
from iclear.models import db, init_db
from iclear.routes import student_bp, reviewer_bp, evidence_bp
from iclear.services.evidence_store import init_evidence_store
from iclear.services.registry import UnitRegistry
from iclear.utils import setup_logging, log_info


def create_app(config_name: str = None, registry=None) -> Flask:
    """
    Application factory

    Args:
        config_name: Configuration name (development, production, testing)
        registry: Requirement registry; defaults to the database-backed one

    Returns:
        Flask application instance
    """
    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    # Import and set configuration
    from config import config
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # Initialize extensions
    db.init_app(app)
    CORS(app)

    # Setup logging
    with app.app_context():
        setup_logging()
        log_info("Application initialized")

    app.extensions['iclear_registry'] = registry or UnitRegistry()
    init_evidence_store(app)

    # Register blueprints
    app.register_blueprint(student_bp, url_prefix='/api')
    app.register_blueprint(reviewer_bp, url_prefix='/api')
    app.register_blueprint(evidence_bp, url_prefix='/api')

    # Create database tables
    with app.app_context():
        init_db()
        log_info("Database tables created successfully")

    return app
