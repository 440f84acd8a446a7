from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from flask_cors import CORS
from .models import db
from .config import Config
from .scheduled_reconcile import start_background_scheduler
from .blueprints.dashboard import dashboard_bp
from .blueprints.patients import patients_bp
from .blueprints.appointments import appointments_bp
from .blueprints.calendar import calendar_bp
from .blueprints.procedures import procedures_bp
from .blueprints.treatments import treatments_bp
from .blueprints.registration import registration_bp
from .blueprints.qr import qr_bp
from .blueprints.reminders import reminders_bp
from .blueprints.notifications import notifications_bp
from .blueprints.medical_history import medical_history_bp
import logging


# Configure logging with clinic local time
from logging import Formatter

class ClinicTimezoneFormatter(Formatter):
    """Formatter that converts log timestamps to the clinic's timezone"""
    def formatTime(self, record, datefmt=None):
        from datetime import datetime
        from zoneinfo import ZoneInfo

        dt = datetime.fromtimestamp(record.created, tz=ZoneInfo(Config.CLINIC_TIMEZONE))
        if datefmt:
            return dt.strftime(datefmt)
        else:
            return dt.strftime('%Y-%m-%d %H:%M:%S %Z')

# Set up logging with clinic timezone
handler = logging.StreamHandler()
handler.setFormatter(ClinicTimezoneFormatter(
    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
))

logging.basicConfig(
    level=logging.INFO,
    handlers=[handler]
)
logger = logging.getLogger(__name__)


def create_app(config_overrides=None, api_session=None, storage=None):
    """
    Build the clinic web app

    Args:
        config_overrides: dict applied over ``Config`` (tests set TESTING and
            an in-memory database)
        api_session: ``requests.Session``-like object used for every backend call
        storage: KeyValueStorage to use instead of the ``storage_items`` table
    """
    logger.info("Starting app init...")
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.extensions['api_session'] = api_session
    app.extensions['storage'] = storage
    app.extensions['notification_centers'] = {}

    # Database session cleanup, even on errors
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Ensure database session is properly cleaned up, even on errors"""
        try:
            if exception:
                db.session.rollback()
                logger.warning(f"Database session rolled back due to exception: {exception}")
            db.session.remove()
        except Exception as e:
            logger.error(f"Error during session cleanup: {e}")

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Global exception handler to log errors and clean up the session"""
        if isinstance(e, HTTPException):
            return jsonify({'success': False, 'error': e.description}), e.code
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        try:
            db.session.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback failed: {rollback_error}")
        return jsonify({'success': False, 'error': 'Internal server error', 'message': str(e)}), 500

    app.secret_key = app.config['SECRET_KEY']

    # Initialize database BEFORE registering blueprints
    CORS(app, supports_credentials=True)
    db.init_app(app)
    with app.app_context():
        db.create_all()

    app.register_blueprint(dashboard_bp)
    app.register_blueprint(patients_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(calendar_bp)
    app.register_blueprint(procedures_bp)
    app.register_blueprint(treatments_bp)
    app.register_blueprint(registration_bp)
    app.register_blueprint(qr_bp)
    app.register_blueprint(reminders_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(medical_history_bp)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    if not app.config.get('TESTING'):
        thread, stop_event = start_background_scheduler(
            app.extensions['notification_centers'],
            app.config.get('NOTIFICATION_RECONCILE_MINUTES'),
        )
        app.extensions['reconcile_scheduler'] = (thread, stop_event)
        logger.info("✅ Notification reconcile scheduler running")

    logger.info("✅ App ready")
    return app
