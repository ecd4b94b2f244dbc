"""
Sync Orchestrator Module
Runs employee, schedule and absence synchronization from the remote API
into the local store and tracks each run in a SyncLog.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional

from staffsync.config_manager import SyncConfig
from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import Absence, Employee, Schedule, SyncLog
from staffsync.database.queries import QueryHelpers
from staffsync.errors import ConfigurationMissing, RemoteAPIError, RunCancelled, StorageWriteFailed
from staffsync.remote.client import RemoteClient
from staffsync.sync.lease import CancellationToken, RunLeaseManager, sync_lease_key
from staffsync.sync.mapper import ReconciliationMapper, map_guarded
from staffsync.sync.results import (
    DUPLICATE_RECORD, RUN_CANCELLED, STATUS_FAILED, STATUS_RUNNING, StageResult, SyncError,
    derive_status
)
from staffsync.sync.upserter import ChunkedUpserter
from staffsync.utils.helpers import get_date_range
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

ENTITY_EMPLOYEES = 'employees'
ENTITY_SCHEDULES = 'schedules'
ENTITY_ABSENCES = 'absences'
SYNC_FULL = 'full'

STAGE_ORDER = [ENTITY_EMPLOYEES, ENTITY_SCHEDULES, ENTITY_ABSENCES]
SYNC_TYPES = STAGE_ORDER + [SYNC_FULL]

SCHEDULE_KEY = ['employee_id', 'date', 'service_id']
ABSENCE_KEY = ['employee_id', 'date', 'absence_type']
EMPLOYEE_KEY = ['remote_id']


@dataclass(frozen=True)
class SyncTarget:
    """A centre as seen by a run."""
    centre_code: str
    service_id: str
    business_id: Optional[str] = None
    tenant_id: Optional[int] = None


@dataclass(frozen=True)
class SyncTask:
    entity: str
    target: SyncTarget


class SyncOrchestrator:
    """
    Synchronizes remote workforce data into the local store.

    A run is a list of SyncTask executed in order. Record-level and
    stage-level failures are accumulated; configuration failures finalize
    the log and propagate.
    """

    def __init__(
        self,
        client: RemoteClient,
        db: DatabaseConnection,
        sync_config: SyncConfig = None,
        lease_manager: RunLeaseManager = None,
        upserter: ChunkedUpserter = None
    ):
        self.client = client
        self.db = db
        self.sync_config = sync_config or SyncConfig()
        self.lease_manager = lease_manager or RunLeaseManager(
            db, ttl_seconds=self.sync_config.lease_ttl_seconds
        )
        self.upserter = upserter or ChunkedUpserter(self.sync_config.chunk_size)

    # ========================================
    # Run Lifecycle
    # ========================================

    def run(
        self,
        sync_type: str,
        start_date: date = None,
        end_date: date = None,
        trigger_source: str = 'manual',
        triggered_by: str = None,
        centre_code: str = None,
        cancel_token: CancellationToken = None
    ) -> SyncLog:
        """
        Execute one sync run.

        Args:
            sync_type: 'employees', 'schedules', 'absences' or 'full'
            start_date: First day for schedules/absences
            end_date: Last day for schedules/absences
            trigger_source: 'manual' or 'scheduled'
            triggered_by: User id or job name
            centre_code: Restrict the run to one centre
            cancel_token: Checked between tasks

        Returns:
            The finalized SyncLog

        Raises:
            ValueError: Unknown sync type or inverted date range
            RunInProgress: A run of the same kind holds the lease
            ConfigurationMissing: Nothing to sync or no credentials
        """
        if sync_type not in SYNC_TYPES:
            raise ValueError(f"Unknown sync type '{sync_type}'")

        if start_date is None or end_date is None:
            default_start, default_end = get_date_range(self.sync_config.default_days_back)
            start_date = start_date or default_start
            end_date = end_date or default_end
        if start_date > end_date:
            raise ValueError("start_date must not be after end_date")

        lease_key = sync_lease_key(sync_type)
        token = self.lease_manager.acquire(lease_key)
        try:
            log_id = self._create_log(
                sync_type, start_date, end_date, trigger_source, triggered_by, centre_code
            )
            return self._execute(
                log_id, sync_type, start_date, end_date, centre_code, cancel_token
            )
        finally:
            self.lease_manager.release(lease_key, token)

    def _create_log(self, sync_type: str, start_date: date, end_date: date,
                    trigger_source: str, triggered_by: str, centre_code: str) -> int:
        sync_log = SyncLog(
            sync_type=sync_type,
            status=STATUS_RUNNING,
            params={
                'start_date': start_date.isoformat(),
                'end_date': end_date.isoformat(),
                'centre_code': centre_code
            },
            trigger_source=trigger_source,
            triggered_by=triggered_by,
            started_at=datetime.utcnow()
        )
        with self.db.session_scope() as session:
            session.add(sync_log)
            session.flush()
            log_id = sync_log.id

        logger.info(f"Sync run {log_id} started: {sync_type} {start_date}..{end_date}")
        return log_id

    def _execute(self, log_id: int, sync_type: str, start_date: date, end_date: date,
                 centre_code: Optional[str], cancel_token: Optional[CancellationToken]) -> SyncLog:
        result = StageResult()

        try:
            tasks = self.build_tasks(sync_type, centre_code)

            for task in tasks:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                result.merge(self._run_task(task, start_date, end_date))

        except RunCancelled as e:
            logger.warning(f"Sync run {log_id} cancelled")
            result.add_error(SyncError('run', RUN_CANCELLED, e.message))
            return self._finalize(log_id, result, status=STATUS_FAILED)
        except ConfigurationMissing as e:
            result.add_error(SyncError('run', 'ConfigurationMissing', e.message))
            self._finalize(log_id, result, status=STATUS_FAILED)
            raise
        except Exception as e:
            logger.error(f"Sync run {log_id} aborted: {e}")
            result.add_error(SyncError('run', type(e).__name__, str(e)))
            self._finalize(log_id, result, status=STATUS_FAILED)
            raise

        return self._finalize(log_id, result)

    def _finalize(self, log_id: int, result: StageResult, status: str = None) -> SyncLog:
        """Move the log into its terminal state. Called exactly once per run."""
        status = status or derive_status(result.success_count, result.error_count)

        with self.db.session_scope() as session:
            sync_log = session.get(SyncLog, log_id)
            sync_log.status = status
            sync_log.completed_at = datetime.utcnow()
            sync_log.total_rows = result.total
            sync_log.inserted_rows = result.inserted
            sync_log.updated_rows = result.updated
            sync_log.error_rows = result.error_count
            sync_log.errors = [error.to_dict() for error in result.errors]

        logger.info(
            f"Sync run {log_id} finished: {status} "
            f"(total={result.total}, inserted={result.inserted}, "
            f"updated={result.updated}, errors={result.error_count})"
        )
        return sync_log

    # ========================================
    # Task Planning
    # ========================================

    def build_tasks(self, sync_type: str, centre_code: str = None) -> List[SyncTask]:
        """
        Expand a sync type into ordered tasks: stage by stage, centre by centre.

        Raises:
            ConfigurationMissing: No active centre with a remote service id
        """
        with self.db.session_scope() as session:
            centres = QueryHelpers(session).get_sync_centres(centre_code)
            targets = [
                SyncTarget(
                    centre_code=centre.code,
                    service_id=centre.remote_service_id,
                    business_id=centre.remote_business_id,
                    tenant_id=centre.franchisee_id
                )
                for centre in centres
            ]

        if not targets:
            scope = f"centre '{centre_code}'" if centre_code else "any centre"
            raise ConfigurationMissing(f"No active remote service configured for {scope}")

        entities = STAGE_ORDER if sync_type == SYNC_FULL else [sync_type]
        return [SyncTask(entity, target) for entity in entities for target in targets]

    # ========================================
    # Task Execution
    # ========================================

    def _run_task(self, task: SyncTask, start_date: date, end_date: date) -> StageResult:
        """Run one task; a failure of the whole task counts as one error."""
        handlers = {
            ENTITY_EMPLOYEES: self._sync_employees,
            ENTITY_SCHEDULES: self._sync_schedules,
            ENTITY_ABSENCES: self._sync_absences,
        }
        entity_name = task.entity.rstrip('s')
        centre = task.target.centre_code
        logger.info(f"Syncing {task.entity} for centre {centre}")

        try:
            return handlers[task.entity](task.target, start_date, end_date)
        except ConfigurationMissing:
            raise
        except Exception as e:
            logger.error(f"Error syncing {task.entity} for centre {centre}: {e}")
            stage = StageResult()
            stage.add_error(SyncError(
                entity_name, type(e).__name__, str(e), centre=centre,
                status_code=e.status_code if isinstance(e, RemoteAPIError) else None
            ))
            return stage

    def _write(self, entity: str, target: SyncTarget, model, rows: List[Dict],
               key_columns: List[str], stage: StageResult) -> None:
        """Upsert mapped rows; a failed chunk keeps the counts already written."""
        if not rows:
            return
        with self.db.session_scope() as session:
            try:
                stats = self.upserter.upsert(session, model, rows, key_columns)
            except StorageWriteFailed as e:
                # Only the failing chunk's savepoint was rolled back; earlier chunks commit
                stage.inserted += e.inserted
                stage.updated += e.updated
                self._record_duplicates(entity, target, e.duplicate_keys, stage)
                stage.add_error(SyncError(
                    entity, 'StorageWriteFailed', e.message, centre=target.centre_code
                ))
                return
        stage.inserted += stats.inserted
        stage.updated += stats.updated
        self._record_duplicates(entity, target, stats.duplicate_keys, stage)

    def _record_duplicates(self, entity: str, target: SyncTarget, keys: List[tuple],
                           stage: StageResult) -> None:
        """A row superseded by a later one with the same natural key counts as an error."""
        for key in keys:
            stage.add_error(SyncError(
                entity, DUPLICATE_RECORD,
                f"Superseded by a later record with the same key {key}",
                centre=target.centre_code
            ))

    def _map_all(self, entity: str, target: SyncTarget, records: List[Dict], map_one,
                 stage: StageResult) -> List[Dict]:
        rows = []
        for record in records:
            mapped = map_guarded(map_one, record, entity, target.centre_code)
            if isinstance(mapped, SyncError):
                stage.add_error(mapped)
            else:
                rows.append(mapped)
        return rows

    def _employee_map(self, centre_code: str) -> Dict[str, int]:
        with self.db.session_scope() as session:
            return QueryHelpers(session).get_employee_map(centre_code)

    def _sync_employees(self, target: SyncTarget, start_date: date, end_date: date) -> StageResult:
        stage = StageResult()
        records = self.client.list_employees(
            service_id=target.service_id,
            business_id=target.business_id,
            tenant_id=target.tenant_id
        )
        stage.total = len(records)

        mapper = ReconciliationMapper()
        rows = self._map_all(
            'employee', target, records,
            lambda record: mapper.map_employee(record, target.centre_code), stage
        )
        self._write('employee', target, Employee, rows, EMPLOYEE_KEY, stage)
        return stage

    def _sync_schedules(self, target: SyncTarget, start_date: date, end_date: date) -> StageResult:
        stage = StageResult()
        mapper = ReconciliationMapper(self._employee_map(target.centre_code))
        records = self.client.list_assignments(
            start_date.isoformat(),
            end_date.isoformat(),
            service_id=target.service_id,
            business_id=target.business_id,
            tenant_id=target.tenant_id
        )
        stage.total = len(records)

        rows = self._map_all(
            'schedule', target, records,
            lambda record: mapper.map_schedule(record, target.service_id, target.centre_code),
            stage
        )
        self._write('schedule', target, Schedule, rows, SCHEDULE_KEY, stage)
        return stage

    def _sync_absences(self, target: SyncTarget, start_date: date, end_date: date) -> StageResult:
        stage = StageResult()
        mapper = ReconciliationMapper(self._employee_map(target.centre_code))
        records = self.client.list_absences(
            start_date.isoformat(),
            end_date.isoformat(),
            service_id=target.service_id,
            business_id=target.business_id,
            tenant_id=target.tenant_id
        )
        stage.total = len(records)

        rows = self._map_all(
            'absence', target, records,
            lambda record: mapper.map_absence(record, target.centre_code), stage
        )
        self._write('absence', target, Absence, rows, ABSENCE_KEY, stage)
        return stage
