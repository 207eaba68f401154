import os


class Config:
    """Base configuration"""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Heroku/Render style URLs still say postgres://
    _db_url = (os.environ.get('DATABASE_URL') or '').replace('postgres://', 'postgresql://')
    SQLALCHEMY_DATABASE_URI = _db_url or 'sqlite:///locationtracker.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CREATE_TABLES = True

    # Logging
    LOG_TO_FILE = True
    LOG_DIR = os.environ.get('LOG_DIR')
    LOG_FILE = 'locationtracker.log'
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'

    # Location submissions
    MAX_OWNER_LENGTH = 100
    MAX_TIMESTAMP_LENGTH = 40

    # Accounts
    MIN_PASSWORD_LENGTH = 8


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    DEBUG = False
    CREATE_TABLES = os.environ.get('CREATE_TABLES', 'true').lower() == 'true'


class TestingConfig(Config):
    TESTING = True
    LOG_TO_FILE = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig,
}
