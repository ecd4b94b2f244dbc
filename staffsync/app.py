"""
Flask Application Factory
Main entry point for the staffsync web application.
"""

import os
from datetime import datetime

from flask import Flask, jsonify, request
from flask_cors import CORS
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from staffsync.config_manager import ConfigManager, CorsConfig
from staffsync.factory import (
    build_alert_evaluator, build_health_probe, build_service_sync, build_sync_orchestrator
)
from staffsync.utils.helpers import get_date_range
from staffsync.utils.logger import setup_logging, get_logger


def _serialize_health(result: dict) -> dict:
    serialized = dict(result)
    if isinstance(serialized.get('last_sync_at'), datetime):
        serialized['last_sync_at'] = serialized['last_sync_at'].isoformat()
    return serialized


def create_app(cors_config: CorsConfig = None) -> Flask:
    """
    Application factory for Flask app.

    Args:
        cors_config: Cross-origin allow-list. Read from configuration when omitted.

    Returns:
        Configured Flask application
    """
    # Setup logging first
    setup_logging()
    logger = get_logger(__name__)

    app = Flask(__name__)

    config = ConfigManager()
    cors_config = cors_config or config.build_cors_config()

    # Flask configuration
    app.config['SECRET_KEY'] = os.getenv('FLASK_SECRET_KEY', 'dev-secret-key-change-in-production')
    app.json.sort_keys = False

    # Enable CORS for the allow-list
    CORS(
        app,
        origins='*' if cors_config.allow_all else cors_config.allowed_origins,
        allow_headers=['authorization', 'content-type', 'x-trigger-source', 'x-user-id']
    )

    @app.before_request
    def reject_disallowed_origin():
        """Refuse cross-origin calls from origins outside the allow-list."""
        origin = request.headers.get('Origin')
        if origin and not cors_config.allow_all and origin not in cors_config.allowed_origins:
            logger.warning(f"Rejected request from disallowed origin {origin}")
            return jsonify({
                'success': False,
                'error': 'Origin not allowed'
            }), 403
        return None

    # Register blueprints
    from staffsync.api.sync_routes import sync_bp
    from staffsync.api.remote_routes import remote_bp
    from staffsync.api.alert_routes import alerts_bp

    app.register_blueprint(sync_bp)
    app.register_blueprint(remote_bp)
    app.register_blueprint(alerts_bp)

    # Health check endpoint
    @app.route('/health', methods=['GET'])
    def health_check():
        """Run the health probe and return its result."""
        try:
            result = build_health_probe().check()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return jsonify({
                'success': False,
                'error': str(e)
            }), 500

        result = _serialize_health(result)
        result['timestamp'] = datetime.utcnow().isoformat()
        return jsonify(result)

    # Root endpoint
    @app.route('/', methods=['GET'])
    def root():
        """Root endpoint with API info."""
        return jsonify({
            'name': 'Staffsync API',
            'version': '1.0.0',
            'endpoints': {
                '/health': 'Health check (GET)',
                '/api/sync': 'Trigger entity sync (POST)',
                '/api/sync/logs': 'Recent sync runs (GET)',
                '/api/sync-services': 'Trigger service catalog sync (POST)',
                '/api/remote-proxy': 'Authenticated remote API pass-through (POST)',
                '/api/test-connection': 'Remote connection test (POST)',
                '/api/evaluate-alerts': 'Evaluate alert rules (POST)',
                '/api/notifications/<id>/read': 'Mark notification read (POST)'
            }
        })

    # Error handlers
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Not found'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'success': False,
            'error': 'Method not allowed'
        }), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({
            'success': False,
            'error': 'Internal server error'
        }), 500

    logger.info("Flask application created")

    return app


def create_scheduler() -> BackgroundScheduler:
    """
    Create and configure the background scheduler.

    Returns:
        Configured scheduler (not started)
    """
    logger = get_logger(__name__)
    config = ConfigManager()
    scheduler_config = config.get_scheduler_config()

    scheduler = BackgroundScheduler(timezone='UTC')

    if str(scheduler_config.get('enabled', False)).lower() not in ('true', '1', 'yes'):
        logger.info("Scheduler is disabled")
        return scheduler

    # Entity sync job
    sync_schedule = scheduler_config.get('sync_schedule', '0 3 * * *')
    sync_days_back = int(scheduler_config.get('sync_days_back', 7))

    @scheduler.scheduled_job(CronTrigger.from_crontab(sync_schedule, timezone='UTC'), id='sync_full')
    def scheduled_sync():
        """Scheduled full sync job."""
        logger.info("Running scheduled sync")
        try:
            start_date, end_date = get_date_range(sync_days_back)
            sync_log = build_sync_orchestrator().run(
                'full',
                start_date=start_date,
                end_date=end_date,
                trigger_source='scheduled',
                triggered_by='scheduler'
            )
            logger.info(f"Scheduled sync finished: {sync_log.status}")
        except Exception as e:
            logger.error(f"Scheduled sync failed: {e}")

    # Service catalog job
    services_schedule = scheduler_config.get('services_schedule', '30 2 * * *')

    @scheduler.scheduled_job(CronTrigger.from_crontab(services_schedule, timezone='UTC'), id='sync_services')
    def scheduled_service_sync():
        """Scheduled service catalog sync job."""
        logger.info("Running scheduled service catalog sync")
        try:
            sync_log = build_service_sync().run(trigger_source='scheduled', triggered_by='scheduler')
            logger.info(f"Scheduled service catalog sync finished: {sync_log.status}")
        except Exception as e:
            logger.error(f"Scheduled service catalog sync failed: {e}")

    # Alert evaluation job
    alerts_schedule = scheduler_config.get('alerts_schedule', '0 * * * *')

    @scheduler.scheduled_job(CronTrigger.from_crontab(alerts_schedule, timezone='UTC'), id='evaluate_alerts')
    def scheduled_alerts():
        """Scheduled alert evaluation job."""
        logger.info("Running scheduled alert evaluation")
        try:
            summary = build_alert_evaluator().evaluate_all()
            logger.info(f"Scheduled alert evaluation: {summary.triggered}/{summary.evaluated} triggered")
        except Exception as e:
            logger.error(f"Scheduled alert evaluation failed: {e}")

    # Health check job
    health_schedule = scheduler_config.get('health_schedule', '*/15 * * * *')

    @scheduler.scheduled_job(CronTrigger.from_crontab(health_schedule, timezone='UTC'), id='health_check')
    def scheduled_health_check():
        """Scheduled health check job."""
        try:
            build_health_probe().check()
        except Exception as e:
            logger.error(f"Scheduled health check failed: {e}")

    return scheduler


if __name__ == '__main__':
    # Development server
    app = create_app()
    scheduler = create_scheduler()
    scheduler.start()

    try:
        app.run(
            host='0.0.0.0',
            port=int(os.getenv('FLASK_PORT', 8080)),
            debug=os.getenv('FLASK_DEBUG', 'false').lower() == 'true'
        )
    except (KeyboardInterrupt, SystemExit):
        scheduler.shutdown()
