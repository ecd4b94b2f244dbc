"""
Remote API Client Module
Handles all communication with the remote workforce-management REST API.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests

from staffsync.config_manager import RemoteConfig
from staffsync.errors import (
    AuthenticationFailed, ConfigurationMissing, RemoteAPIError,
    RemoteRejected, RemoteUnavailable
)
from staffsync.remote.auth import AuthDescriptor, ProxyAuthResolver
from staffsync.remote.transport import RetryingTransport
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

BUSINESS_SCOPED_SEGMENT = '/businesses/'


@dataclass
class RemoteResponse:
    """Decoded payload of a successful call plus telemetry."""
    data: Any
    status_code: int
    latency_ms: int
    auth_method: str


# (endpoint, method, status_code, latency_ms, success)
LatencyRecorder = Callable[[str, str, Optional[int], int, bool], None]


def _decode(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        for key in ('message', 'error', 'detail'):
            if body.get(key):
                return str(body[key])
    elif isinstance(body, str) and body:
        return body[:500]
    return default


class RemoteClient:
    """
    Typed client for the remote API, with credential selection and
    retrying transport.
    """

    def __init__(
        self,
        config: RemoteConfig,
        auth_resolver: ProxyAuthResolver,
        transport: RetryingTransport = None,
        latency_recorder: Optional[LatencyRecorder] = None
    ):
        self.config = config
        self.auth_resolver = auth_resolver
        self.transport = transport or RetryingTransport(
            max_attempts=config.max_attempts,
            timeout=config.timeout,
            requests_per_second=config.requests_per_second
        )
        self.latency_recorder = latency_recorder

    def _build_url(self, path: str) -> str:
        if not self.config.base_url:
            raise ConfigurationMissing("Remote base URL is not configured")
        if not path.startswith('/'):
            path = '/' + path
        return f"{self.config.base_url.rstrip('/')}{path}"

    def _scope_query(self, path: str, query: Optional[Dict], auth: AuthDescriptor) -> Dict:
        """Add the business id unless the path already scopes one."""
        query = dict(query or {})
        if BUSINESS_SCOPED_SEGMENT in path or 'businessId' in query:
            return query

        business_id = auth.business_id or self.config.default_business_id
        if business_id:
            query['businessId'] = business_id
        return query

    def _record_latency(self, path: str, method: str, status_code: Optional[int],
                        latency_ms: int, success: bool) -> None:
        if self.latency_recorder is None:
            return
        try:
            self.latency_recorder(path, method, status_code, latency_ms, success)
        except Exception as e:
            logger.warning(f"Failed to record latency for {method} {path}: {e}")

    def request(
        self,
        path: str,
        method: str = 'GET',
        query: Dict = None,
        body: Any = None,
        tenant_id: Optional[int] = None
    ) -> RemoteResponse:
        """
        Make an authenticated request to the remote API.

        Args:
            path: API path, e.g. '/api/employees'
            method: HTTP method
            query: Query parameters
            body: JSON body (ignored for GET)
            tenant_id: Franchisee whose credential should be used

        Returns:
            RemoteResponse with the decoded payload

        Raises:
            ConfigurationMissing: No base URL or no credential
            AuthenticationFailed: 401/403
            RemoteUnavailable: 5xx or network failure after retries
            RemoteRejected: Any other error status
        """
        method = method.upper()
        url = self._build_url(path)
        auth = self.auth_resolver.resolve(tenant_id)
        params = self._scope_query(path, query, auth)
        json_data = body if method != 'GET' else None

        logger.debug(f"Remote request: {method} {path} (auth={auth.method})")

        started = time.monotonic()
        try:
            response = self.transport.request(
                method, url, params=params, json_data=json_data, headers=auth.headers()
            )
        except requests.exceptions.RequestException as e:
            latency_ms = int((time.monotonic() - started) * 1000)
            self._record_latency(path, method, None, latency_ms, False)
            logger.error(f"Remote request failed: {method} {path}: {e}")
            raise RemoteUnavailable(f"Remote API unreachable: {e}")

        latency_ms = int((time.monotonic() - started) * 1000)
        status = response.status_code
        payload = _decode(response)

        self._record_latency(path, method, status, latency_ms, status < 400)

        if status in (401, 403):
            raise AuthenticationFailed(
                _error_message(payload, "Authentication failed with the remote API"),
                status, payload
            )
        if status >= 500:
            raise RemoteUnavailable(
                _error_message(payload, f"Remote API unavailable (HTTP {status})"),
                status, payload
            )
        if status >= 400:
            raise RemoteRejected(
                _error_message(payload, f"Remote API error (HTTP {status})"),
                status, payload
            )

        return RemoteResponse(
            data=payload,
            status_code=status,
            latency_ms=latency_ms,
            auth_method=auth.method
        )

    # ========================================
    # Employee Methods
    # ========================================

    def list_employees(
        self,
        service_id: str = None,
        business_id: str = None,
        tenant_id: int = None,
        limit: int = None
    ) -> List[Dict]:
        """Fetch employees, optionally for one service."""
        query = {}
        if service_id:
            query['serviceId'] = service_id
        if business_id:
            query['businessId'] = business_id
        if limit:
            query['limit'] = limit

        return self.request('/api/employees', query=query, tenant_id=tenant_id).data or []

    # ========================================
    # Assignment (Schedule) Methods
    # ========================================

    def list_assignments(
        self,
        start_date: str,
        end_date: str,
        service_id: str = None,
        employee_id: str = None,
        business_id: str = None,
        tenant_id: int = None
    ) -> List[Dict]:
        """Fetch assignments in a date range."""
        query = {'startDate': start_date, 'endDate': end_date}
        if service_id:
            query['serviceId'] = service_id
        if employee_id:
            query['employeeId'] = employee_id
        if business_id:
            query['businessId'] = business_id

        return self.request('/api/assignments', query=query, tenant_id=tenant_id).data or []

    def upsert_assignment(self, assignment: Dict, tenant_id: int = None) -> Any:
        """Create or update an assignment."""
        return self.request(
            '/api/assignments', method='POST', body=assignment, tenant_id=tenant_id
        ).data

    def delete_assignment(self, assignment_id: str, tenant_id: int = None) -> Any:
        """Delete an assignment."""
        return self.request(
            f'/api/assignments/{assignment_id}', method='DELETE', tenant_id=tenant_id
        ).data

    # ========================================
    # Absence Methods
    # ========================================

    def list_absences(
        self,
        start_date: str,
        end_date: str,
        service_id: str = None,
        employee_id: str = None,
        business_id: str = None,
        tenant_id: int = None
    ) -> List[Dict]:
        """Fetch absences in a date range."""
        query = {'startDate': start_date, 'endDate': end_date}
        if service_id:
            query['serviceId'] = service_id
        if employee_id:
            query['employeeId'] = employee_id
        if business_id:
            query['businessId'] = business_id

        return self.request('/api/absences', query=query, tenant_id=tenant_id).data or []

    # ========================================
    # Service Catalog Methods
    # ========================================

    def list_services(self, business_id: str = None, tenant_id: int = None) -> List[Dict]:
        """Fetch the service catalog of a business."""
        business_id = business_id or self.config.default_business_id
        if not business_id:
            raise ConfigurationMissing("No business id for the service catalog request")

        return self.request(
            f'/importer/api/v2/businesses/{business_id}/services', tenant_id=tenant_id
        ).data or []

    def test_connection(self, service_id: str = None, business_id: str = None) -> bool:
        """Test connection to the remote API."""
        try:
            self.list_employees(service_id=service_id, business_id=business_id, limit=1)
            logger.info("Remote connection test successful")
            return True
        except (RemoteAPIError, ConfigurationMissing) as e:
            logger.error(f"Remote connection test failed: {e.message}")
            return False
