"""Configuration module for Flask application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class Config:
    """Base configuration class."""

    # Flask
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    DEBUG = os.getenv('FLASK_DEBUG', '1') == '1'
    ENV = os.getenv('FLASK_ENV', 'development')
    JSON_SORT_KEYS = False

    # Database - Support multiple environment variable naming conventions
    # Priority: DATABASE_URL > DB_* > POSTGRES_*
    DATABASE_URL = os.getenv('DATABASE_URL')

    if not DATABASE_URL:
        # Try DB_* variables (Docker style)
        DB_HOST = os.getenv('DB_HOST') or os.getenv('POSTGRES_HOST', 'localhost')
        DB_PORT = os.getenv('DB_PORT') or os.getenv('POSTGRES_PORT', '5432')
        DB_NAME = os.getenv('DB_NAME') or os.getenv('POSTGRES_DB', 'jewelquote')
        DB_USER = os.getenv('DB_USER') or os.getenv('POSTGRES_USER', 'jewelquote')
        DB_PASSWORD = os.getenv('DB_PASSWORD') or os.getenv('POSTGRES_PASSWORD', 'jewelquote')

        DATABASE_URL = (
            f"postgresql+psycopg://{DB_USER}:{DB_PASSWORD}"
            f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
        )

    # SQLAlchemy
    SQLALCHEMY_DATABASE_URI = DATABASE_URL
    SQLALCHEMY_ECHO = os.getenv('SQLALCHEMY_ECHO', 'false').lower() == 'true'
    SQLALCHEMY_EXPIRE_ON_COMMIT = True

    # Business Information (for quote PDFs when no setting row overrides it)
    BUSINESS_NAME = os.getenv('BUSINESS_NAME', 'My Jewellery Business')

    # Quote engine
    QUOTE_VERSION_HISTORY_LIMIT = int(os.getenv('QUOTE_VERSION_HISTORY_LIMIT', '10'))
    QUOTE_NUMBER_MAX_RETRIES = int(os.getenv('QUOTE_NUMBER_MAX_RETRIES', '5'))
    QUOTE_ENFORCE_STATUS_TRANSITIONS = os.getenv('QUOTE_ENFORCE_STATUS_TRANSITIONS', 'false').lower() == 'true'
    VAT_RATE_PCT = float(os.getenv('VAT_RATE_PCT', '15'))

    # Error tracking (production only)
    SENTRY_DSN = os.getenv('SENTRY_DSN')


class TestingConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SQLALCHEMY_DATABASE_URI = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    SQLALCHEMY_ECHO = False
    # avoid DetachedInstanceError once the request teardown removes the session
    SQLALCHEMY_EXPIRE_ON_COMMIT = False
    SENTRY_DSN = None
