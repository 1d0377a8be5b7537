# app.py
"""
Flask Application Factory for the BZ/MX Exchange Rate Alert service

This application factory wires together:
- Environment-based configuration (.env supported)
- Subscriber storage with Flask-SQLAlchemy connection pooling
- Security headers, CSRF protection and per-IP rate limiting
- The exchange rate alert cycle and its recurring scheduler
- Error pages that never expose raw errors
- Health checks and a graceful shutdown path
"""

import atexit
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, render_template, request
from flask_wtf.csrf import CSRFProtect, CSRFError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

from config.settings import get_config
from core.database_models import db
from core.exceptions import StoreError
from core.rate_source import RateSource
from middleware.security import limiter, security_headers
from routes.pages import pages_bp
from routes.subscriptions import subscriptions_bp
from services.context import build_service_context, get_services
from services.notifier import Notifier

csrf = CSRFProtect()


def setup_logging(app: Flask) -> None:
    """
    Configure application logging

    - Detailed stream handler on the root logger so module loggers are captured
    - Optional rotating file handler when LOG_FILE is set
    - Quiet werkzeug request logs outside debug mode
    """
    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-24s %(levelname)-8s %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Avoid duplicate handlers when create_app runs more than once
    if not any(getattr(h, '_rate_alerts', False) for h in root_logger.handlers):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(detailed_formatter)
        stream_handler._rate_alerts = True
        root_logger.addHandler(stream_handler)

        log_file = app.config.get('LOG_FILE')
        if log_file:
            Path(log_file).parent.mkdir(exist_ok=True, parents=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setFormatter(detailed_formatter)
            file_handler._rate_alerts = True
            root_logger.addHandler(file_handler)

    # Let records propagate to the root handlers
    app.logger.handlers.clear()
    app.logger.propagate = True

    if not app.debug:
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)


def configure_database(app: Flask) -> None:
    """
    Initialize Flask-SQLAlchemy, create the subscribers table and check connectivity

    The startup check re-raises: the service cannot take subscriptions without
    its database.
    """
    db.init_app(app)

    with app.app_context():
        db.create_all()

        if app.config.get('DB_CHECK_ON_STARTUP', True):
            try:
                db.session.execute(db.select(1))
            except SQLAlchemyError as e:
                app.logger.error(f"Database connection failed: {e}")
                raise

    uri = app.config['SQLALCHEMY_DATABASE_URI']
    app.logger.info(f"Database configured: {uri.split('@')[-1] if '@' in uri else uri}")


def configure_security(app: Flask) -> None:
    """CSRF protection, rate limiting and response security headers"""
    csrf.init_app(app)
    limiter.init_app(app)
    app.after_request(security_headers)
    app.logger.info("Security features configured")


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(pages_bp)
    app.register_blueprint(subscriptions_bp)


def configure_error_handlers(app: Flask) -> None:
    """
    Render friendly error pages instead of raw errors
    """
    @app.errorhandler(404)
    def not_found(error):
        return render_template('404.html', url=request.path), 404

    @app.errorhandler(CSRFError)
    def csrf_error(error):
        app.logger.warning(f"CSRF validation failed from {request.remote_addr}: {error.description}")
        return render_template(
            'error.html',
            title='Session expired',
            message='Your form session expired. Please reload the page and try again.'
        ), 400

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
        return render_template(
            'error.html',
            title='Too many requests',
            message='Too many requests from this IP, please try again later.'
        ), 429

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return render_template(
            'error.html',
            title='Something went wrong',
            message='An unexpected error occurred. Please try again later.'
        ), 500

    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle unexpected exceptions"""
        if isinstance(e, HTTPException):
            return e

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return internal_error(e)


def configure_health_checks(app: Flask) -> None:
    @app.route('/health')
    @limiter.exempt
    def health_check():
        """Health check with database and scheduler status"""
        services = get_services(app)
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0'),
            'components': {}
        }

        try:
            services.store.ping()
            health_status['components']['database'] = 'healthy'
        except StoreError as e:
            health_status['components']['database'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'unhealthy'

        if services.scheduler is not None:
            health_status['components']['scheduler'] = 'running' if services.scheduler.running else 'stopped'

        report = services.cycle.last_report
        if report is not None:
            health_status['last_cycle'] = {
                'started_at': report.started_at.isoformat(),
                'sent': report.sent,
                'failed': len(report.failed),
                'aborted': report.aborted,
                'skipped': report.skipped,
                'message': report.message.to_dict() if report.message else None,
            }

        status_code = 200 if health_status['status'] == 'healthy' else 503
        return jsonify(health_status), status_code


def create_app(config_name: str = None,
               rate_source: Optional[RateSource] = None,
               notifier: Optional[Notifier] = None,
               start_scheduler: bool = True,
               cycle_lock=None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production' (defaults to FLASK_ENV)
        rate_source: Optional rate source replacing the configured provider
        notifier: Optional email transport replacing the configured one
        start_scheduler: False when cycles are driven externally (Celery beat)
        cycle_lock: Optional cross-process guard replacing the configured one

    Returns:
        Configured Flask application instance
    """
    app = Flask(__name__,
                static_folder='static',
                template_folder='templates')

    config_class = get_config(config_name)
    app.config.from_object(config_class)

    if app.config.get('BEHIND_PROXY'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    setup_logging(app)
    app.logger.info(f"Starting exchange rate alert service with {config_class.__name__}")

    configure_database(app)
    configure_security(app)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app)

    services = build_service_context(app, rate_source=rate_source, notifier=notifier,
                                     cycle_lock=cycle_lock)
    if start_scheduler:
        services.start()
    atexit.register(services.shutdown)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    app = create_app('development')
    # The reloader would start a second scheduler in the child process
    app.run(host='0.0.0.0', port=int(app.config.get('PORT', 3000)), use_reloader=False)
