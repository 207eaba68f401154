import json
import os


class Config:
    """Base configuration"""

    BASE_URL = (os.environ.get('TRACKER_BASE_URL') or 'http://localhost:5000/api').rstrip('/')
    DATA_DIR = os.environ.get('TRACKER_DATA_DIR') or os.path.join(os.path.expanduser('~'), '.locationtracker')
    PREFERENCES_FILE = 'preferences.json'
    CONFIG_FILE = 'config.json'
    LOG_FILE = 'locationtracker.log'
    USERNAME = os.environ.get('TRACKER_USERNAME')
    PASSWORD = os.environ.get('TRACKER_PASSWORD')

    DEBUG = False
    TESTING = False

    # HTTP
    REQUEST_TIMEOUT_SECONDS = float(os.environ.get('TRACKER_REQUEST_TIMEOUT') or 15)
    SYNC_WORKERS = 2

    # Tracking interval bounds (minutes)
    MIN_INTERVAL_MINUTES = 1
    MAX_INTERVAL_MINUTES = 720
    DEFAULT_INTERVAL_MINUTES = 60

    # Location sampling
    LOCATION_MIN_TIME_MS = 10000
    LOCATION_MIN_DISTANCE_M = 10.0

    MAX_OWNER_LENGTH = 100


class DevelopmentConfig(Config):
    DEBUG = True


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    DATA_DIR = None
    BASE_URL = 'http://tracker.test/api'
    REQUEST_TIMEOUT_SECONDS = 2.0


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': ProductionConfig,
}


def get_config(name=None):
    name = name or os.environ.get('TRACKER_ENV') or 'default'
    return config.get(name, config['default'])


def load_overrides(data_dir):
    """Read ``config.json`` from the data directory (best-effort)."""
    if not data_dir:
        return {}
    path = os.path.join(data_dir, Config.CONFIG_FILE)
    if not os.path.exists(path):
        return {}
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f) or {}
    except (OSError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}
