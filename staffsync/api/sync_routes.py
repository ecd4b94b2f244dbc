"""
Sync API Blueprint
Provides REST endpoints for triggering and monitoring synchronization runs.
"""

from flask import Blueprint, jsonify, request

from staffsync.database.connection import get_session
from staffsync.database.queries import QueryHelpers
from staffsync.errors import ConfigurationMissing, RunInProgress
from staffsync.factory import build_service_sync, build_sync_orchestrator
from staffsync.sync.orchestrator import SYNC_TYPES
from staffsync.sync.results import authentication_failure_status
from staffsync.utils.helpers import get_date_range, parse_iso_date
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/api')

TRIGGER_SOURCES = ('manual', 'scheduled')


def _bad_request(message: str):
    return jsonify({'success': False, 'error': message}), 400


def _trigger_context():
    trigger_source = request.headers.get('X-Trigger-Source', 'manual').lower()
    if trigger_source not in TRIGGER_SOURCES:
        trigger_source = 'manual'
    return trigger_source, request.headers.get('X-User-Id')


def _isoformat(value):
    return value.isoformat() if value else None


def _serialize_log(sync_log) -> dict:
    return {
        'id': sync_log.id,
        'sync_type': sync_log.sync_type,
        'status': sync_log.status,
        'params': sync_log.params,
        'trigger_source': sync_log.trigger_source,
        'triggered_by': sync_log.triggered_by,
        'started_at': _isoformat(sync_log.started_at),
        'completed_at': _isoformat(sync_log.completed_at),
        'total_rows': sync_log.total_rows,
        'inserted_rows': sync_log.inserted_rows,
        'updated_rows': sync_log.updated_rows,
        'error_rows': sync_log.error_rows,
        'errors': sync_log.errors or []
    }


@sync_bp.route('/sync', methods=['POST'])
def trigger_sync():
    """
    Trigger a synchronization run.

    Body:
        sync_type: employees | schedules | absences | full
        start_date, end_date: 'YYYY-MM-DD' range, or
        days_back: lookback window in days
        centre_code: optional single centre

    Returns:
        JSON with log id, terminal status and counters
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _bad_request('Request body must be a JSON object')

    sync_type = data.get('sync_type')
    if sync_type not in SYNC_TYPES:
        return _bad_request(f"sync_type must be one of: {', '.join(SYNC_TYPES)}")

    if data.get('start_date') and data.get('end_date'):
        start_date = parse_iso_date(data['start_date'])
        end_date = parse_iso_date(data['end_date'])
        if start_date is None or end_date is None:
            return _bad_request('start_date and end_date must be YYYY-MM-DD')
        if start_date > end_date:
            return _bad_request('start_date must not be after end_date')
    elif data.get('days_back') is not None:
        try:
            days_back = int(data['days_back'])
        except (TypeError, ValueError):
            return _bad_request('days_back must be an integer')
        if days_back <= 0:
            return _bad_request('days_back must be positive')
        start_date, end_date = get_date_range(days_back)
    else:
        return _bad_request('Must provide either start_date/end_date or days_back')

    trigger_source, triggered_by = _trigger_context()
    logger.info(f"Sync triggered via API: {sync_type} {start_date}..{end_date} ({trigger_source})")

    try:
        orchestrator = build_sync_orchestrator()
        sync_log = orchestrator.run(
            sync_type,
            start_date=start_date,
            end_date=end_date,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
            centre_code=data.get('centre_code')
        )
    except RunInProgress as e:
        return jsonify({'success': False, 'error': e.message}), 409
    except ConfigurationMissing as e:
        logger.error(f"Sync not configured: {e.message}")
        return jsonify({'success': False, 'error': e.message}), 500
    except Exception as e:
        logger.error(f"Sync run failed: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    body = {
        'success': True,
        'log_id': sync_log.id,
        'status': sync_log.status,
        'summary': {
            'total': sync_log.total_rows,
            'inserted': sync_log.inserted_rows,
            'updated': sync_log.updated_rows,
            'errors': sync_log.error_rows
        }
    }

    auth_status = authentication_failure_status(
        (sync_log.inserted_rows or 0) + (sync_log.updated_rows or 0), sync_log.errors or []
    )
    if auth_status:
        logger.error(f"Sync run {sync_log.id} rejected by the remote API (HTTP {auth_status})")
        body.update({'success': False, 'error': 'Authentication with the remote API failed'})
        return jsonify(body), auth_status

    return jsonify(body)


@sync_bp.route('/sync-services', methods=['POST'])
def trigger_service_sync():
    """Sync the service catalog of every franchisee with a stored key."""
    trigger_source, triggered_by = _trigger_context()
    logger.info(f"Service catalog sync triggered via API ({trigger_source})")

    try:
        service_sync = build_service_sync()
        sync_log = service_sync.run(trigger_source=trigger_source, triggered_by=triggered_by)
    except RunInProgress as e:
        return jsonify({'success': False, 'error': e.message}), 409
    except ConfigurationMissing as e:
        logger.error(f"Service sync not configured: {e.message}")
        return jsonify({'success': False, 'error': e.message}), 500
    except Exception as e:
        logger.error(f"Service sync failed: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500

    body = {
        'success': True,
        'message': (
            f"Synced {sync_log.total_services} services from "
            f"{sync_log.franchisees_succeeded} of {sync_log.total_franchisees} franchisees"
        ),
        'log_id': sync_log.id,
        'status': sync_log.status,
        'stats': {
            'total_services': sync_log.total_services,
            'franchisees_processed': sync_log.total_franchisees,
            'franchisees_succeeded': sync_log.franchisees_succeeded,
            'franchisees_failed': sync_log.franchisees_failed
        },
        'results': sync_log.results or []
    }

    auth_status = authentication_failure_status(
        sync_log.franchisees_succeeded or 0, sync_log.errors or []
    )
    if auth_status:
        logger.error(f"Service sync {sync_log.id} rejected by the remote API (HTTP {auth_status})")
        body.update({'success': False, 'error': 'Authentication with the remote API failed'})
        return jsonify(body), auth_status

    return jsonify(body)


@sync_bp.route('/sync/logs', methods=['GET'])
def get_sync_logs():
    """
    Get recent sync runs.

    Query params:
        limit: Number of runs to return (default 20)
        sync_type: Filter by sync type
    """
    try:
        limit = int(request.args.get('limit', 20))
    except ValueError:
        return _bad_request('limit must be an integer')

    try:
        with get_session() as session:
            logs = QueryHelpers(session).get_recent_syncs(
                limit=limit, sync_type=request.args.get('sync_type')
            )
            result = [_serialize_log(sync_log) for sync_log in logs]

        return jsonify({'success': True, 'logs': result})

    except Exception as e:
        logger.error(f"Failed to get sync logs: {e}")
        return jsonify({'success': False, 'error': str(e)}), 500
