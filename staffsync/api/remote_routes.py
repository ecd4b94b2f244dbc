"""
Remote API Blueprint
Authenticated pass-through to the remote API and connection smoke tests.
"""

from flask import Blueprint, jsonify, request

from staffsync.errors import (
    AuthenticationFailed, ConfigurationMissing, RemoteAPIError, RemoteUnavailable
)
from staffsync.factory import build_remote_client
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

remote_bp = Blueprint('remote', __name__, url_prefix='/api')

ALLOWED_METHODS = ('GET', 'POST', 'PUT', 'PATCH', 'DELETE')


def _remote_error(e: RemoteAPIError):
    """Map a remote failure to the status code returned to the caller."""
    if isinstance(e, AuthenticationFailed):
        status = e.status_code if e.status_code in (401, 403) else 401
    elif isinstance(e, RemoteUnavailable):
        status = e.status_code or 503
    else:
        status = e.status_code or 502

    return jsonify({
        'error': e.message,
        'status': status,
        'details': e.response
    }), status


@remote_bp.route('/remote-proxy', methods=['POST'])
def remote_proxy():
    """
    Forward a request to the remote API.

    Body:
        path: Remote path, e.g. '/api/employees'
        method: HTTP method (default GET)
        query: Query parameters
        body: JSON body
        tenantId: Franchisee whose credential should be used

    Returns:
        The remote JSON plus _metadata, or {error, status, details}
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('path'):
        return jsonify({'error': 'Missing required field: path', 'status': 400}), 400

    method = str(data.get('method') or 'GET').upper()
    if method not in ALLOWED_METHODS:
        return jsonify({'error': f'Unsupported method: {method}', 'status': 400}), 400

    query = data.get('query') or {}
    if not isinstance(query, dict):
        return jsonify({'error': 'query must be an object', 'status': 400}), 400

    tenant_id = data.get('tenantId')
    if tenant_id is not None:
        try:
            tenant_id = int(tenant_id)
        except (TypeError, ValueError):
            return jsonify({'error': 'tenantId must be an integer', 'status': 400}), 400

    try:
        client = build_remote_client(record_latency=True)
        response = client.request(
            data['path'], method=method, query=query, body=data.get('body'), tenant_id=tenant_id
        )
    except ConfigurationMissing as e:
        logger.error(f"Remote proxy not configured: {e.message}")
        return jsonify({'error': e.message, 'status': 500}), 500
    except RemoteAPIError as e:
        logger.error(f"Remote proxy error on {method} {data['path']}: {e.message}")
        return _remote_error(e)

    metadata = {'latency_ms': response.latency_ms, 'auth_method': response.auth_method}
    payload = response.data
    if isinstance(payload, dict):
        payload = dict(payload)
        payload['_metadata'] = metadata
    else:
        payload = {'data': payload, '_metadata': metadata}

    return jsonify(payload)


@remote_bp.route('/test-connection', methods=['POST'])
def test_connection():
    """
    Smoke-test the remote API for one service.

    Body:
        service_id: Remote service id
        business_id: Optional business id

    Returns:
        JSON with success flag and employee count
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data.get('service_id'):
        return jsonify({'success': False, 'error': 'Missing required field: service_id'}), 400

    service_id = str(data['service_id'])
    business_id = data.get('business_id')

    try:
        client = build_remote_client()
        employees = client.list_employees(service_id=service_id, business_id=business_id)
    except ConfigurationMissing as e:
        logger.error(f"Connection test not configured: {e.message}")
        return jsonify({'success': False, 'error': e.message}), 500
    except RemoteAPIError as e:
        logger.warning(f"Connection test failed for service {service_id}: {e.message}")
        return jsonify({
            'success': False,
            'message': f"Connection failed: {e.message}",
            'status': e.status_code
        })

    count = len(employees) if isinstance(employees, list) else 0
    logger.info(f"Connection test for service {service_id}: {count} employees")

    return jsonify({
        'success': True,
        'message': f"Connection successful. Found {count} employees.",
        'employee_count': count
    })
