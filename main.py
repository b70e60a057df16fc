"""
Main application entry point
"""

import os
import sys

from iclear import create_app
from iclear.models.database import check_db_connection
from iclear.utils import log_info, log_error


def main():
    """Main application entry point"""
    app = create_app()

    # Test database connection
    with app.app_context():
        try:
            check_db_connection()
            log_info("Database connection available")
        except Exception as e:
            log_error("Database connection error", e)
            return False

    debug_mode = os.environ.get('FLASK_DEBUG', 'True').lower() in ['true', '1', 'on']
    port = int(os.environ.get('PORT', 5000))

    with app.app_context():
        log_info(f"Starting server on http://localhost:{port} (debug={'on' if debug_mode else 'off'})")

    app.run(
        host='0.0.0.0',
        port=port,
        debug=debug_mode
    )
    return True


if __name__ == '__main__':
    success = main()
    if not success:
        sys.exit(1)
