"""
Unit Tests for the Sync Orchestrator
Stage ordering, error accumulation, status derivation and run leases.
"""

import unittest
from datetime import date
from unittest.mock import Mock

from staffsync.config_manager import RemoteConfig, SyncConfig
from staffsync.database.models import Absence, Employee, RunLease, Schedule, SyncLog
from staffsync.errors import AuthenticationFailed, ConfigurationMissing, RunInProgress
from staffsync.remote.auth import ProxyAuthResolver
from staffsync.remote.client import RemoteClient
from staffsync.remote.transport import RetryingTransport
from staffsync.sync.lease import CancellationToken, RunLeaseManager, sync_lease_key
from staffsync.sync.orchestrator import (
    ENTITY_ABSENCES, ENTITY_EMPLOYEES, ENTITY_SCHEDULES, SyncOrchestrator
)
from staffsync.sync.results import (
    DUPLICATE_RECORD, EMPLOYEE_NOT_FOUND, INVALID_RECORD, STATUS_COMPLETED, STATUS_FAILED,
    STATUS_PARTIAL, authentication_failure_status
)
from db_support import add_centre, http_response, make_db

START = date(2024, 3, 1)
END = date(2024, 3, 7)

EMPLOYEES = [
    {'id': 'e1', 'firstName': 'Ana', 'lastName': 'Ruiz'},
    {'id': 'e2', 'name': 'Luis Gomez'},
    {'id': 'e3', 'firstName': 'Eva'},
]

ASSIGNMENTS = [
    {'id': 'a1', 'employeeId': 'e1', 'date': '2024-03-01',
     'startTime': '2024-03-01T08:00:00Z', 'endTime': '2024-03-01T16:00:00Z'},
    {'id': 'a2', 'employeeId': 'e2', 'date': '2024-03-01',
     'startTime': '2024-03-01T09:00:00Z', 'endTime': '2024-03-01T13:00:00Z'},
    {'id': 'a3', 'employeeId': 'ghost', 'date': '2024-03-01',
     'startTime': '2024-03-01T09:00:00Z', 'endTime': '2024-03-01T13:00:00Z'},
]

ABSENCES = [
    {'id': 'x1', 'employeeId': 'e3', 'date': '2024-03-02', 'type': 'Sick leave', 'hours': 8},
]


def mock_client():
    client = Mock()
    client.list_employees.return_value = EMPLOYEES
    client.list_assignments.return_value = ASSIGNMENTS
    client.list_absences.return_value = ABSENCES
    return client


class TestSyncOrchestrator(unittest.TestCase):
    """Test sync runs against an in-memory store and a mocked client."""

    def setUp(self):
        self.db = make_db()
        add_centre(self.db, 'C1', service_id='S1')
        self.client = mock_client()
        self.orchestrator = SyncOrchestrator(self.client, self.db, SyncConfig(chunk_size=2))

    def _count(self, model):
        with self.db.session_scope() as session:
            return session.query(model).count()

    def test_employee_sync_inserts_everything(self):
        log = self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(log.status, STATUS_COMPLETED)
        self.assertEqual(log.total_rows, 3)
        self.assertEqual(log.inserted_rows, 3)
        self.assertEqual(log.error_rows, 0)
        self.assertIsNotNone(log.completed_at)
        self.assertEqual(self._count(Employee), 3)

    def test_orphan_assignment_makes_run_partial(self):
        self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        log = self.orchestrator.run(ENTITY_SCHEDULES, START, END)

        self.assertEqual(log.status, STATUS_PARTIAL)
        self.assertEqual(log.total_rows, 3)
        self.assertEqual(log.inserted_rows, 2)
        self.assertEqual(log.error_rows, 1)
        self.assertEqual(log.errors[0]['reason'], EMPLOYEE_NOT_FOUND)
        self.assertEqual(log.errors[0]['id'], 'a3')
        self.assertEqual(self._count(Schedule), 2)

    def test_rerun_updates_instead_of_inserting(self):
        self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        log = self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(log.inserted_rows, 0)
        self.assertEqual(log.updated_rows, 3)
        self.assertEqual(self._count(Employee), 3)

    def test_full_sync_runs_stages_in_order(self):
        calls = []
        self.client.list_employees.side_effect = lambda **kw: calls.append('employees') or EMPLOYEES
        self.client.list_assignments.side_effect = lambda *a, **kw: calls.append('schedules') or ASSIGNMENTS
        self.client.list_absences.side_effect = lambda *a, **kw: calls.append('absences') or ABSENCES

        log = self.orchestrator.run('full', START, END)

        self.assertEqual(calls, ['employees', 'schedules', 'absences'])
        self.assertEqual(log.total_rows, 7)
        self.assertEqual(log.inserted_rows, 6)
        self.assertEqual(log.error_rows, 1)
        self.assertEqual(log.status, STATUS_PARTIAL)
        self.assertEqual(self._count(Absence), 1)

    def test_date_range_is_forwarded(self):
        self.orchestrator.run(ENTITY_ABSENCES, START, END)

        args = self.client.list_absences.call_args
        self.assertEqual(args.args, ('2024-03-01', '2024-03-07'))
        self.assertEqual(args.kwargs['service_id'], 'S1')

    def test_failing_stage_does_not_stop_the_run(self):
        self.client.list_assignments.side_effect = RuntimeError('boom')

        log = self.orchestrator.run('full', START, END)

        self.assertEqual(log.status, STATUS_PARTIAL)
        self.assertEqual(log.error_rows, 1)
        self.assertEqual(log.errors[0]['type'], 'schedule')
        self.client.list_absences.assert_called_once()

    def test_malformed_record_is_isolated(self):
        self.orchestrator.run(ENTITY_EMPLOYEES, START, END)
        self.client.list_absences.return_value = ABSENCES + [
            {'id': 'x2', 'employeeId': 'e1', 'date': '2024-03-03', 'hours': 'half'},
            'not-a-record',
        ]

        log = self.orchestrator.run(ENTITY_ABSENCES, START, END)

        self.assertEqual(log.status, STATUS_PARTIAL)
        self.assertEqual(log.total_rows, 3)
        self.assertEqual(log.inserted_rows, 1)
        self.assertEqual(log.error_rows, 2)
        self.assertEqual([error['reason'] for error in log.errors], [INVALID_RECORD, INVALID_RECORD])
        self.assertEqual(log.errors[0]['id'], 'x2')
        self.assertEqual(self._count(Absence), 1)

    def test_duplicate_remote_records_are_counted(self):
        self.orchestrator.run(ENTITY_EMPLOYEES, START, END)
        self.client.list_assignments.return_value = ASSIGNMENTS[:2] + [
            dict(ASSIGNMENTS[0], id='a1-late', endTime='2024-03-01T17:00:00Z')
        ]

        log = self.orchestrator.run(ENTITY_SCHEDULES, START, END)

        self.assertEqual(log.status, STATUS_PARTIAL)
        self.assertEqual(log.total_rows, 3)
        self.assertEqual(log.inserted_rows + log.updated_rows + log.error_rows, log.total_rows)
        self.assertEqual(log.errors[0]['reason'], DUPLICATE_RECORD)
        with self.db.session_scope() as session:
            self.assertEqual(
                sorted(schedule.planned_hours for schedule in session.query(Schedule).all()),
                [4.0, 9.0]
            )

    def test_rejected_credentials_are_recorded_with_status(self):
        self.client.list_employees.side_effect = AuthenticationFailed('Token expired', 401)

        log = self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(log.status, STATUS_FAILED)
        self.assertEqual(log.errors[0]['reason'], 'AuthenticationFailed')
        self.assertEqual(log.errors[0]['status'], 401)
        self.assertEqual(authentication_failure_status(0, log.errors), 401)

    def test_no_centres_fails_the_run(self):
        with self.assertRaises(ConfigurationMissing):
            self.orchestrator.run(ENTITY_EMPLOYEES, START, END, centre_code='MISSING')

        with self.db.session_scope() as session:
            log = session.query(SyncLog).one()
            self.assertEqual(log.status, STATUS_FAILED)
            self.assertIsNotNone(log.completed_at)
        self.assertEqual(self._count(RunLease), 0)

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            self.orchestrator.run('payroll', START, END)
        with self.assertRaises(ValueError):
            self.orchestrator.run(ENTITY_EMPLOYEES, END, START)

        self.assertEqual(self._count(SyncLog), 0)

    def test_held_lease_rejects_second_run(self):
        lease = RunLeaseManager(self.db)
        lease.acquire(sync_lease_key(ENTITY_EMPLOYEES))

        with self.assertRaises(RunInProgress):
            self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(self._count(SyncLog), 0)
        self.client.list_employees.assert_not_called()

    def test_other_run_kind_is_not_blocked(self):
        RunLeaseManager(self.db).acquire(sync_lease_key(ENTITY_SCHEDULES))

        log = self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(log.status, STATUS_COMPLETED)

    def test_lease_is_released_after_run(self):
        self.orchestrator.run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(self._count(RunLease), 0)

    def test_cancelled_run_is_failed(self):
        token = CancellationToken()
        token.cancel()

        log = self.orchestrator.run('full', START, END, cancel_token=token)

        self.assertEqual(log.status, STATUS_FAILED)
        self.assertEqual(log.errors[-1]['reason'], 'cancelled')
        self.client.list_employees.assert_not_called()

    def test_trigger_metadata_is_recorded(self):
        log = self.orchestrator.run(
            ENTITY_EMPLOYEES, START, END, trigger_source='scheduled', triggered_by='cron'
        )

        self.assertEqual(log.trigger_source, 'scheduled')
        self.assertEqual(log.triggered_by, 'cron')
        self.assertEqual(log.params['start_date'], '2024-03-01')

    def test_build_tasks_orders_stage_then_centre(self):
        add_centre(self.db, 'C2', service_id='S2')

        tasks = self.orchestrator.build_tasks('full')

        self.assertEqual(
            [(task.entity, task.target.centre_code) for task in tasks],
            [('employees', 'C1'), ('employees', 'C2'),
             ('schedules', 'C1'), ('schedules', 'C2'),
             ('absences', 'C1'), ('absences', 'C2')]
        )

    def test_inactive_centre_is_skipped(self):
        add_centre(self.db, 'C3', service_id='S3', active=False)

        tasks = self.orchestrator.build_tasks(ENTITY_EMPLOYEES)

        self.assertEqual([task.target.centre_code for task in tasks], ['C1'])


class TestSyncWithUnavailableRemote(unittest.TestCase):
    """A remote that keeps answering 503 fails the stage after three attempts."""

    def test_unavailable_remote_fails_the_run(self):
        db = make_db()
        add_centre(db, 'C1', service_id='S1')

        http = Mock()
        http.request.return_value = http_response(503, {'message': 'maintenance'})
        sleep = Mock()
        config = RemoteConfig(base_url='https://remote.test', session_id='legacy')
        client = RemoteClient(
            config,
            ProxyAuthResolver(config, db),
            transport=RetryingTransport(session=http, sleep=sleep)
        )

        log = SyncOrchestrator(client, db).run(ENTITY_EMPLOYEES, START, END)

        self.assertEqual(http.request.call_count, 3)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [2.0, 4.0])
        self.assertEqual(log.status, STATUS_FAILED)
        self.assertEqual(log.error_rows, 1)
        self.assertEqual(log.errors[0]['reason'], 'RemoteUnavailable')


if __name__ == '__main__':
    unittest.main()
