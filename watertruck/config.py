"""
Configuration settings for different environments
"""
import os
import logging

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return value.strip().lower() in ('true', 'on', '1', 'yes')


def _database_url():
    """Return DATABASE_URL normalised for SQLAlchemy 2.x, or a local SQLite file."""
    url = os.environ.get('DATABASE_URL', '')
    if not url:
        return 'sqlite:///watertruck.db'
    # Fix postgres:// to postgresql:// for SQLAlchemy 2.x
    if url.startswith('postgres://'):
        url = url.replace('postgres://', 'postgresql://', 1)
    return url


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
    }

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')

    # Rate limiting
    RATELIMIT_ENABLED = _env_bool('RATELIMIT_ENABLED', True)
    RATELIMIT_DEFAULT = os.environ.get('RATELIMIT_DEFAULT', '100 per minute')
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL') or 'memory://'

    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1MB

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SENTRY_DSN = os.environ.get('SENTRY_DSN', '')

    # Branding / client config
    APP_NAME = os.environ.get('APP_NAME', 'Water Truck')
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000').rstrip('/')
    APP_LOGO = os.environ.get('APP_LOGO', '/images/logo.png')
    LOCALE_COUNTRY_CODE = os.environ.get('LOCALE_COUNTRY_CODE', '+1')
    LOCALE_COUNTRY_NAME = os.environ.get('LOCALE_COUNTRY_NAME', '')
    LOCALE_PHONE_DIGITS = int(os.environ.get('LOCALE_PHONE_DIGITS', 10))

    # Trucks
    TRUCK_OFFLINE_TIMEOUT_MINUTES = int(os.environ.get('TRUCK_OFFLINE_TIMEOUT_MINUTES', 30))
    TRUCK_MAX_DISTANCE_KM = float(os.environ.get('TRUCK_MAX_DISTANCE_KM', 50))
    TRUCK_DEFAULT_AVG_JOB_MINUTES = int(os.environ.get('TRUCK_DEFAULT_AVG_JOB_MINUTES', 30))
    TRUCK_LOCATION_UPDATE_INTERVAL_SECONDS = int(
        os.environ.get('TRUCK_LOCATION_UPDATE_INTERVAL_SECONDS', 60)
    )

    # Push notifications (Web Push / VAPID)
    NOTIFICATIONS_ENABLED = _env_bool('NOTIFICATIONS_ENABLED', False)
    NOTIFICATIONS_THROTTLE_MINUTES = int(os.environ.get('NOTIFICATIONS_THROTTLE_MINUTES', 15))
    NOTIFICATIONS_PRUNE_EXPIRED = _env_bool('NOTIFICATIONS_PRUNE_EXPIRED', True)
    VAPID_PUBLIC_KEY = os.environ.get('VAPID_PUBLIC_KEY', '')
    VAPID_PRIVATE_KEY = os.environ.get('VAPID_PRIVATE_KEY', '')
    VAPID_SUBJECT = os.environ.get('VAPID_SUBJECT', 'mailto:admin@example.com')
    PUSH_TTL_SECONDS = int(os.environ.get('PUSH_TTL_SECONDS', 3600))
    PUSH_TIMEOUT_SECONDS = float(os.environ.get('PUSH_TIMEOUT_SECONDS', 10))

    # Device identity cookie
    DEVICE_TOKEN_COOKIE_SECURE = _env_bool('DEVICE_TOKEN_COOKIE_SECURE', True)
    DEVICE_TOKEN_COOKIE_DOMAIN = os.environ.get('DEVICE_TOKEN_COOKIE_DOMAIN') or None
    DEVICE_TOKEN_COOKIE_SAMESITE = os.environ.get('DEVICE_TOKEN_COOKIE_SAMESITE', 'Lax')


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False
    DEVICE_TOKEN_COOKIE_SECURE = False


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': 20,
        'max_overflow': 40,
        'pool_recycle': 3600,
        'pool_pre_ping': True,
    }

    def __init__(self):
        if self.SECRET_KEY == 'dev-secret-key-change-in-production':
            logging.getLogger(__name__).warning(
                "SECRET_KEY is using an insecure default. Set it via environment variable!"
            )
        if self.NOTIFICATIONS_ENABLED and not (self.VAPID_PUBLIC_KEY and self.VAPID_PRIVATE_KEY):
            logging.getLogger(__name__).warning(
                "NOTIFICATIONS_ENABLED is set but VAPID keys are missing -- pushes will fail."
            )


class TestingConfig(Config):
    """Testing configuration with isolated database and safe defaults"""
    TESTING = True
    DEBUG = False

    # Use in-memory SQLite for fast tests
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite:///:memory:')
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    LOG_LEVEL = 'WARNING'

    APP_URL = 'http://watertruck.test'
    CORS_ORIGINS = ['http://localhost:5173', 'http://localhost:3000']

    TRUCK_OFFLINE_TIMEOUT_MINUTES = 30
    TRUCK_MAX_DISTANCE_KM = 50.0
    TRUCK_DEFAULT_AVG_JOB_MINUTES = 30

    # Tests swap in a recording notifier, so delivery is always "on"
    NOTIFICATIONS_ENABLED = True
    NOTIFICATIONS_THROTTLE_MINUTES = 15
    NOTIFICATIONS_PRUNE_EXPIRED = True
    VAPID_PUBLIC_KEY = 'test-public-key'
    VAPID_PRIVATE_KEY = 'test-private-key'

    DEVICE_TOKEN_COOKIE_SECURE = False


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
