import os
import logging
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify, request
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException, InternalServerError

db = SQLAlchemy()


def _configure_logging(app: Flask) -> None:
    formatter = logging.Formatter('[%(asctime)s] %(levelname)s in %(module)s: %(message)s')

    if app.config.get('LOG_TO_FILE'):
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, 'logs')
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            os.path.join(log_dir, app.config['LOG_FILE']), maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        app.logger.addHandler(file_handler)

    if app.debug:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(formatter)
        app.logger.addHandler(console_handler)

    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))


def _register_error_handlers(app: Flask) -> None:
    # Every error leaves the API as {"error": ..., "status": ...}
    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):  # type: ignore
        return jsonify({"error": error.name, "status": error.code}), error.code

    @app.errorhandler(Exception)
    def unhandled_error(error: Exception):  # type: ignore
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        wrapped = InternalServerError()
        return jsonify({"error": wrapped.name, "status": wrapped.code}), wrapped.code


def _register_request_logging(app: Flask) -> None:
    @app.after_request
    def log_api_call(response):  # type: ignore
        if request.path.startswith('/api'):
            app.logger.info("%s %s -> %s", request.method, request.path, response.status_code)
        return response


def create_app(config_name: str = 'development') -> Flask:
    app = Flask(__name__, instance_relative_config=False)

    from .config import config as config_map
    app.config.from_object(config_map.get(config_name, config_map['default']))

    db.init_app(app)

    from .routes.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    @app.get('/health')
    def health_check():
        return {"status": "ok"}

    _configure_logging(app)
    _register_error_handlers(app)
    _register_request_logging(app)

    if app.config.get('CREATE_TABLES'):
        from . import models  # noqa: F401  (register tables)
        with app.app_context():
            db.create_all()

    app.logger.info("Location tracker API ready (%s)", config_name)
    return app
