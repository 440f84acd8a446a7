import os
from dotenv import load_dotenv
from datetime import timedelta

# Load .env file from the same directory as this config.py file
_config_dir = os.path.dirname(os.path.abspath(__file__))
_env_path = os.path.join(_config_dir, 'dentalcare.env')
load_dotenv(_env_path)


def _env_int(name, default):
    value = os.getenv(name, '')
    try:
        return int(value) if value.strip() else default
    except ValueError:
        return default


def _env_float(name, default):
    value = os.getenv(name, '')
    try:
        return float(value) if value.strip() else default
    except ValueError:
        return default


class Config:
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Clinic REST backend (the backend-as-a-service API all resources talk to)
    API_BASE_URL = os.getenv('API_BASE_URL', 'http://localhost:3000').rstrip('/')
    # Request timeout in seconds; unset means no timeout
    API_TIMEOUT = _env_float('DENTALCARE_API_TIMEOUT', None)

    # Public URL used in patient-facing registration links
    SITE_URL = os.getenv('SITE_URL', os.getenv('PUBLIC_URL', 'http://localhost:3000')).rstrip('/')

    # Local device storage (drafts, preferences, recent items, search history)
    db_url = os.getenv('DATABASE_URL', '')
    if not db_url:
        _db_path = os.path.join(_config_dir, 'instance', 'dentalcare.db')
        os.makedirs(os.path.dirname(_db_path), exist_ok=True)
        db_url = f'sqlite:///{_db_path}'
    elif db_url.startswith('postgres://'):
        # Fix postgres:// to postgresql:// for SQLAlchemy compatibility
        db_url = db_url.replace('postgres://', 'postgresql://', 1)

    SQLALCHEMY_DATABASE_URI = db_url
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True
    }

    SESSION_COOKIE_HTTPONLY = True
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_NAME = 'dentalcare_session'

    # Backend auth cookie; a new value reloads the caller's notifications
    AUTH_COOKIE_NAME = os.getenv('AUTH_COOKIE_NAME', 'sb-access-token')

    CLINIC_TIMEZONE = os.getenv('CLINIC_TIMEZONE', 'Asia/Manila')

    DRAFT_MAX_AGE_HOURS = _env_int('DRAFT_MAX_AGE_HOURS', 24)
    DRAFT_SAVE_DELAY_SECONDS = _env_int('DRAFT_SAVE_DELAY_SECONDS', 2)

    APPOINTMENT_FETCH_LIMIT = _env_int('APPOINTMENT_FETCH_LIMIT', 100)
    NOTIFICATION_RECONCILE_MINUTES = _env_int('NOTIFICATION_RECONCILE_MINUTES', 5)
    NOTIFICATION_CENTER_IDLE_MINUTES = _env_int('NOTIFICATION_CENTER_IDLE_MINUTES', 30)
    NOTIFICATION_CENTER_LIMIT = _env_int('NOTIFICATION_CENTER_LIMIT', 500)

    BUSINESS_HOURS_START = os.getenv('BUSINESS_HOURS_START', '08:00')
    BUSINESS_HOURS_END = os.getenv('BUSINESS_HOURS_END', '18:00')
