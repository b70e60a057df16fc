"""
Database initialization and connection utilities
"""

from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import text

# Initialize SQLAlchemy
db = SQLAlchemy()


def init_db() -> None:
    """Create all tables and the default settings row"""
    from iclear.models.units import SystemSettings

    db.create_all()

    if SystemSettings.query.first() is None:
        db.session.add(SystemSettings())
        db.session.commit()


def check_db_connection() -> bool:
    """Run a trivial query against the configured database"""
    db.session.execute(text('SELECT 1'))
    return True
