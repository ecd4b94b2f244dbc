"""
Health Probe Module
Checks the local store, the remote API and the last sync run.
"""

import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy import text

from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import SystemHealthLog
from staffsync.database.queries import QueryHelpers
from staffsync.errors import ConfigurationMissing, RemoteAPIError, RemoteUnavailable
from staffsync.remote.client import RemoteClient
from staffsync.sync.results import STATUS_FAILED
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

HEALTHY = 'healthy'
DEGRADED = 'degraded'
DOWN = 'down'

STORE_SLOW_MS = 1000
REMOTE_SLOW_MS = 3000


def _degrade(current: str) -> str:
    return current if current == DOWN else DEGRADED


class HealthProbe:
    """Runs a health check and persists it as a SystemHealthLog."""

    def __init__(self, db: DatabaseConnection, client: Optional[RemoteClient] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.db = db
        self.client = client
        self._clock = clock

    def _elapsed_ms(self, started: float) -> int:
        return int(round((self._clock() - started) * 1000))

    def check(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            'overall_status': HEALTHY,
            'database_status': 'ok',
            'database_latency_ms': None,
            'remote_status': 'ok',
            'remote_latency_ms': None,
            'remote_error': None,
            'last_sync_status': None,
            'last_sync_at': None,
            'employees_count': 0,
            'schedules_count': 0,
            'absences_count': 0,
            'payrolls_count': 0,
            'details': {},
        }

        self._check_database(result)
        self._check_remote(result)

        if result['database_status'] != 'error':
            self._check_last_sync(result)
            self._collect_counts(result)
            self._save(result)

        logger.info(f"Health check completed: {result['overall_status']}")
        return result

    def _check_database(self, result: Dict) -> None:
        started = self._clock()
        try:
            with self.db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            result['database_status'] = 'error'
            result['overall_status'] = DOWN
            result['details']['database_error'] = str(e)
            return

        latency = self._elapsed_ms(started)
        result['database_latency_ms'] = latency
        if latency > STORE_SLOW_MS:
            result['database_status'] = 'slow'
            result['overall_status'] = _degrade(result['overall_status'])

    def _check_remote(self, result: Dict) -> None:
        if self.client is None:
            result['remote_status'] = 'error'
            result['remote_error'] = "Remote client is not configured"
            result['overall_status'] = _degrade(result['overall_status'])
            return

        started = self._clock()
        try:
            self.client.list_employees(limit=1)
        except RemoteUnavailable as e:
            result['remote_status'] = 'error' if e.status_code else 'unreachable'
            result['remote_error'] = e.message
        except (RemoteAPIError, ConfigurationMissing) as e:
            result['remote_status'] = 'error'
            result['remote_error'] = e.message
        result['remote_latency_ms'] = self._elapsed_ms(started)

        if result['remote_error']:
            logger.warning(f"Remote health check failed: {result['remote_error']}")
            result['overall_status'] = _degrade(result['overall_status'])
        elif result['remote_latency_ms'] > REMOTE_SLOW_MS:
            result['remote_status'] = 'slow'
            result['overall_status'] = _degrade(result['overall_status'])

    def _check_last_sync(self, result: Dict) -> None:
        with self.db.session_scope() as session:
            last_sync = QueryHelpers(session).get_last_sync()
            if last_sync is None:
                return
            result['last_sync_status'] = last_sync.status
            result['last_sync_at'] = last_sync.completed_at

        if result['last_sync_status'] == STATUS_FAILED:
            result['overall_status'] = _degrade(result['overall_status'])

    def _collect_counts(self, result: Dict) -> None:
        with self.db.session_scope() as session:
            counts = QueryHelpers(session).get_table_counts()
        for table, count in counts.items():
            result[f'{table}_count'] = count

    def _save(self, result: Dict) -> None:
        try:
            with self.db.session_scope() as session:
                session.add(SystemHealthLog(checked_at=datetime.utcnow(), **result))
        except Exception as e:
            logger.error(f"Error saving health check result: {e}")
