# flask-app/config.py

import os
from datetime import timedelta

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default):
    """Reads a boolean flag from the environment ('1', 'true', 'yes', 'on')."""
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    """Application settings, loaded from environment variables / .env."""

    APP_ENV = os.getenv('APP_ENV', 'development')
    IS_PRODUCTION = APP_ENV == 'production'
    TESTING = APP_ENV == 'testing'
    PORT = int(os.getenv('PORT', '5000'))

    # --- Session ---
    SECRET_KEY = os.getenv('SECRET_KEY') or os.getenv('SESSION_SECRET', 'medichain-secret-key')
    PERMANENT_SESSION_LIFETIME = timedelta(hours=24)
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = IS_PRODUCTION

    # --- Storage ---
    DATA_PATH = os.getenv('DATA_PATH', os.path.join(os.getcwd(), 'data'))
    DATA_FILE = os.getenv('DATA_FILE', 'data.json')
    UPLOADS_PATH = os.getenv('UPLOADS_PATH', os.path.join(os.getcwd(), 'uploads'))

    # --- Uploads ---
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', str(10 * 1024 * 1024)))
    ALLOWED_EXTENSIONS = {'pdf', 'png', 'jpg', 'jpeg', 'gif'}

    # --- Access control ---
    # False keeps expiry as display-only information on grants.
    ENFORCE_GRANT_EXPIRY = _env_flag('ENFORCE_GRANT_EXPIRY', True)
    STRICT_ADDRESS_FORMAT = _env_flag('STRICT_ADDRESS_FORMAT', False)

    # --- Logging ---
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE')


class TestingConfig(Config):
    """Settings used by the test-suite; paths are overridden per test."""

    APP_ENV = 'testing'
    TESTING = True
    IS_PRODUCTION = False
    SECRET_KEY = 'testing-secret-key'
    SESSION_COOKIE_SECURE = False
    LOG_FILE = None
