import logging
import colorlog
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from config import config
from solarstock.extensions import db, migrate, login_manager
from solarstock.exceptions import StockError

from solarstock import commands


def create_app(config_name='default'):
    """Solar stock application factory"""
    app = Flask(__name__)

    # 1. Configuration
    app.config.from_object(config[config_name])
    config[config_name].init_app(app)

    # 2. Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Every model must be imported before create_all / migrations see the metadata
    from solarstock import models  # noqa: F401

    # 3. Logging
    configure_logging(app)

    # 4. Blueprints
    register_blueprints(app)

    # 5. Error handlers
    register_error_handlers(app)

    # 6. CLI commands
    register_commands(app)

    return app


def register_blueprints(app):
    from solarstock.blueprints.stock import stock_bp
    app.register_blueprint(stock_bp, url_prefix='/api')


def register_error_handlers(app):
    @app.errorhandler(StockError)
    def handle_stock_error(e):
        if e.code >= 500:
            app.logger.error("%s: %s", type(e).__name__, e.message)
        db.session.rollback()
        return jsonify(e.to_dict()), e.code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'success': False, 'code': e.code, 'error': e.name, 'message': e.description}), e.code

    @app.errorhandler(500)
    def internal_server_error(e):
        db.session.rollback()
        return jsonify({'success': False, 'code': 500, 'error': 'InternalServerError',
                        'message': 'Internal server error'}), 500


def register_commands(app):
    app.cli.add_command(commands.forge)
    app.cli.add_command(commands.status)
    app.cli.add_command(commands.reconcile)
    app.cli.add_command(commands.load_opening)


def configure_logging(app):
    """Coloured console logging"""
    level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)

    handler = logging.StreamHandler()
    handler.setLevel(level)
    formatter = colorlog.ColoredFormatter(
        "%(log_color)s[%(asctime)s] %(levelname)-8s%(reset)s %(blue)s%(name)s: %(message)s",
        datefmt="%H:%M:%S",
        reset=True,
        log_colors={
            'DEBUG':    'cyan',
            'INFO':     'green',
            'WARNING':  'yellow',
            'ERROR':    'red',
            'CRITICAL': 'red,bg_white',
        },
        secondary_log_colors={},
        style='%'
    )
    handler.setFormatter(formatter)

    # app.logger is the "solarstock" logger, parent of every service logger
    app.logger.setLevel(level)
    # create_app runs once per test; avoid stacking handlers
    if not any(getattr(h, '_solarstock', False) for h in app.logger.handlers):
        handler._solarstock = True
        app.logger.addHandler(handler)
