"""
Unit Tests for the Health Probe
"""

import unittest
from datetime import datetime
from unittest.mock import Mock

from staffsync.database.models import SyncLog, SystemHealthLog
from staffsync.errors import AuthenticationFailed, RemoteUnavailable
from staffsync.health import DEGRADED, DOWN, HEALTHY, HealthProbe
from db_support import add_employee, make_db


def clock(*readings):
    return Mock(side_effect=list(readings))


class TestHealthProbe(unittest.TestCase):
    """Test status derivation with a scripted clock."""

    def setUp(self):
        self.db = make_db()
        self.client = Mock()
        self.client.list_employees.return_value = []

    def test_healthy(self):
        add_employee(self.db, 'e1')
        probe = HealthProbe(self.db, self.client, clock=clock(0.0, 0.010, 1.0, 1.2))

        result = probe.check()

        self.assertEqual(result['overall_status'], HEALTHY)
        self.assertEqual(result['database_latency_ms'], 10)
        self.assertEqual(result['remote_latency_ms'], 200)
        self.assertEqual(result['employees_count'], 1)
        self.client.list_employees.assert_called_once_with(limit=1)

    def test_result_is_persisted(self):
        HealthProbe(self.db, self.client, clock=clock(0.0, 0.01, 1.0, 1.1)).check()

        with self.db.session_scope() as session:
            log = session.query(SystemHealthLog).one()
            self.assertEqual(log.overall_status, HEALTHY)
            self.assertEqual(log.remote_latency_ms, 100)

    def test_slow_remote_is_degraded(self):
        probe = HealthProbe(self.db, self.client, clock=clock(0.0, 0.01, 1.0, 4.5))

        result = probe.check()

        self.assertEqual(result['remote_status'], 'slow')
        self.assertEqual(result['overall_status'], DEGRADED)

    def test_slow_database_is_degraded(self):
        probe = HealthProbe(self.db, self.client, clock=clock(0.0, 1.5, 2.0, 2.1))

        result = probe.check()

        self.assertEqual(result['database_status'], 'slow')
        self.assertEqual(result['overall_status'], DEGRADED)

    def test_unreachable_remote(self):
        self.client.list_employees.side_effect = RemoteUnavailable('Remote API unreachable: refused')

        result = HealthProbe(self.db, self.client, clock=clock(0.0, 0.01, 1.0, 1.1)).check()

        self.assertEqual(result['remote_status'], 'unreachable')
        self.assertEqual(result['overall_status'], DEGRADED)
        self.assertIn('refused', result['remote_error'])

    def test_rejected_credentials(self):
        self.client.list_employees.side_effect = AuthenticationFailed('expired', 401)

        result = HealthProbe(self.db, self.client, clock=clock(0.0, 0.01, 1.0, 1.1)).check()

        self.assertEqual(result['remote_status'], 'error')
        self.assertEqual(result['remote_error'], 'expired')

    def test_failed_last_sync_degrades(self):
        with self.db.session_scope() as session:
            session.add(SyncLog(
                sync_type='full', status='failed',
                started_at=datetime(2024, 3, 1, 2, 0), completed_at=datetime(2024, 3, 1, 2, 5)
            ))

        result = HealthProbe(self.db, self.client, clock=clock(0.0, 0.01, 1.0, 1.1)).check()

        self.assertEqual(result['last_sync_status'], 'failed')
        self.assertEqual(result['last_sync_at'], datetime(2024, 3, 1, 2, 5))
        self.assertEqual(result['overall_status'], DEGRADED)

    def test_database_down(self):
        db = Mock()
        db.engine.connect.side_effect = Exception('connection refused')

        result = HealthProbe(db, self.client, clock=clock(0.0, 1.0, 1.1)).check()

        self.assertEqual(result['overall_status'], DOWN)
        self.assertEqual(result['database_status'], 'error')
        db.session_scope.assert_not_called()


if __name__ == '__main__':
    unittest.main()
