# config/settings.py
"""
Environment-based configuration for the Exchange Rate Alert service

Values are read from environment variables when this module is imported, so
the .env file (searched from the working directory upwards) is loaded first.
Pick a class with FLASK_ENV / create_app(config_name).
"""

import os
import secrets
from typing import Type
from urllib.parse import quote_plus

from dotenv import find_dotenv, load_dotenv

load_dotenv(find_dotenv(usecwd=True))

from config.security import SecurityConfig  # noqa: E402


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _database_url() -> str:
    """DATABASE_URL wins; otherwise build a MySQL URL from DB_* variables"""
    url = os.environ.get('DATABASE_URL')
    if url:
        return url

    host = os.environ.get('DB_HOST')
    if host:
        user = quote_plus(os.environ.get('DB_USERNAME', ''))
        password = quote_plus(os.environ.get('DB_PASSWORD', ''))
        name = os.environ.get('DB_NAME', 'exchange_alerts')
        return f"mysql+pymysql://{user}:{password}@{host}/{name}"

    return 'sqlite:///exchange_alerts.db'


class BaseConfig(SecurityConfig):
    """Settings shared by every environment"""

    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_urlsafe(32)
    VERSION = os.environ.get('APP_VERSION', '1.0.0')
    PORT = int(os.environ.get('PORT', 3000))
    BEHIND_PROXY = _env_bool('BEHIND_PROXY', False)

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_FILE = os.environ.get('LOG_FILE')

    # Database
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_POOL_SIZE = int(os.environ.get('DB_POOL_SIZE', 10))
    DB_CHECK_ON_STARTUP = True

    # Rate provider
    RATE_API_URL = os.environ.get('RATE_API_URL', 'https://api.freecurrencyapi.com/v1/latest')
    RATE_API_KEY = os.environ.get('RATE_API_KEY', '')
    RATE_API_TIMEOUT = float(os.environ.get('RATE_API_TIMEOUT', 10))
    BASE_CURRENCY = os.environ.get('BASE_CURRENCY', 'USD')
    QUOTE_CURRENCY = os.environ.get('QUOTE_CURRENCY', 'MXN')
    USD_TO_BZD = float(os.environ.get('USD_TO_BZD', 2.01))
    RATE_FORMULA = os.environ.get('RATE_FORMULA', 'bzd_per_mxn')

    # Evaluation
    FAVORABLE_THRESHOLD = float(os.environ.get('FAVORABLE_THRESHOLD', 0.095))
    FAVORABLE_TEXT = os.environ.get('FAVORABLE_TEXT', 'Good time to buy!')
    UNFAVORABLE_TEXT = os.environ.get('UNFAVORABLE_TEXT', 'Bad time to buy.')

    # Scheduling
    ALERT_INTERVAL_SECONDS = float(os.environ.get('ALERT_INTERVAL_SECONDS', 12 * 60 * 60))
    SCHEDULER_ENABLED = _env_bool('SCHEDULER_ENABLED', True)
    SCHEDULER_RUN_ON_START = _env_bool('SCHEDULER_RUN_ON_START', False)
    NOTIFY_WORKERS = int(os.environ.get('NOTIFY_WORKERS', 1))
    REDIS_URL = os.environ.get('REDIS_URL', 'redis://localhost:6379/0')
    ALERT_LOCK_TIMEOUT = int(os.environ.get('ALERT_LOCK_TIMEOUT', 30 * 60))
    # 'redis' when more than one process runs the scheduler
    CYCLE_LOCK_BACKEND = os.environ.get('CYCLE_LOCK_BACKEND', 'local')

    # Email transport
    EMAIL_TRANSPORT = os.environ.get('EMAIL_TRANSPORT', 'log')
    EMAIL_SUBJECT = os.environ.get('EMAIL_SUBJECT', 'BZ ↔ MX Exchange Rate Alert')
    EMAIL_USER = os.environ.get('EMAIL_USER', '')
    EMAIL_FROM_NAME = os.environ.get('EMAIL_FROM_NAME', 'Exchange Rate Alerts')
    FROM_CURRENCY_LABEL = os.environ.get('FROM_CURRENCY_LABEL', 'BZD')
    TO_CURRENCY_LABEL = os.environ.get('TO_CURRENCY_LABEL', 'MXN')
    UNSUBSCRIBE_URL = os.environ.get('UNSUBSCRIBE_URL', '')
    SMTP_HOST = os.environ.get('SMTP_HOST', '')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', 587))
    SMTP_USERNAME = os.environ.get('SMTP_USERNAME', '')
    SMTP_PASSWORD = os.environ.get('SMTP_PASSWORD', '')
    SMTP_TIMEOUT = float(os.environ.get('SMTP_TIMEOUT', 60))
    SMTP2GO_API_KEY = os.environ.get('SMTP2GO_API_KEY', '')
    SMTP2GO_TEMPLATE_ID = os.environ.get('SMTP2GO_TEMPLATE_ID', '')

    # Site
    SITEMAP_URL = os.environ.get('SITEMAP_URL', 'https://ex.holdyah.com/sitemap.xml')


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')
    SESSION_COOKIE_SECURE = False


class TestingConfig(BaseConfig):
    TESTING = True
    CYCLE_LOCK_BACKEND = 'local'
    SECRET_KEY = 'testing-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_ENGINE_OPTIONS = {}
    DB_CHECK_ON_STARTUP = False
    SCHEDULER_ENABLED = False
    EMAIL_TRANSPORT = 'log'
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    SESSION_COOKIE_SECURE = False
    FAVORABLE_THRESHOLD = 0.095
    FAVORABLE_TEXT = 'Good time to buy!'
    UNFAVORABLE_TEXT = 'Bad time to buy.'
    LOG_FILE = None


class ProductionConfig(BaseConfig):
    DEBUG = False
    BEHIND_PROXY = _env_bool('BEHIND_PROXY', True)
    # gunicorn workers each start a scheduler
    CYCLE_LOCK_BACKEND = os.environ.get('CYCLE_LOCK_BACKEND', 'redis')
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': BaseConfig.DB_POOL_SIZE,
        'pool_pre_ping': True,  # Verify connections before use
        'pool_recycle': 3600,
    }


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(name: str = None) -> Type[BaseConfig]:
    name = (name or os.environ.get('FLASK_ENV') or 'production').lower()
    try:
        return CONFIGS[name]
    except KeyError:
        raise ValueError(f"Unknown configuration {name!r}, expected one of {', '.join(CONFIGS)}")
