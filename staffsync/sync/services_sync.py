"""
Service Catalog Sync Module
Fans out over every tenant with a stored credential and mirrors its
remote service catalog.
"""

from datetime import datetime
from typing import Dict, List, Optional

from staffsync.config_manager import SyncConfig
from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import RemoteService, ServiceSyncLog
from staffsync.database.queries import QueryHelpers
from staffsync.errors import ConfigurationMissing, RemoteAPIError, RunCancelled, StorageWriteFailed
from staffsync.remote.client import RemoteClient
from staffsync.sync.lease import SERVICES_LEASE_KEY, CancellationToken, RunLeaseManager
from staffsync.sync.mapper import ReconciliationMapper, map_guarded
from staffsync.sync.results import (
    RUN_CANCELLED, STATUS_FAILED, STATUS_RUNNING, SyncError, derive_status
)
from staffsync.sync.upserter import ChunkedUpserter
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)


class ServiceCatalogSync:
    """Mirrors remote services per franchisee; one tenant's failure never stops the rest."""

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
        self.mapper = ReconciliationMapper()

    def run(
        self,
        trigger_source: str = 'manual',
        triggered_by: str = None,
        cancel_token: CancellationToken = None
    ) -> ServiceSyncLog:
        """
        Sync the service catalog of every tenant holding a key.

        Returns:
            The finalized ServiceSyncLog

        Raises:
            RunInProgress: Another catalog sync holds the lease
            ConfigurationMissing: No tenant has a stored key
        """
        with self.lease_manager.hold(SERVICES_LEASE_KEY):
            log_id = self._create_log(trigger_source, triggered_by)
            return self._execute(log_id, cancel_token)

    def _create_log(self, trigger_source: str, triggered_by: str) -> int:
        sync_log = ServiceSyncLog(
            status=STATUS_RUNNING,
            trigger_source=trigger_source,
            triggered_by=triggered_by,
            started_at=datetime.utcnow()
        )
        with self.db.session_scope() as session:
            session.add(sync_log)
            session.flush()
            log_id = sync_log.id

        logger.info(f"Service catalog sync {log_id} started")
        return log_id

    def _execute(self, log_id: int, cancel_token: Optional[CancellationToken]) -> ServiceSyncLog:
        results: List[Dict] = []
        errors: List[SyncError] = []

        try:
            with self.db.session_scope() as session:
                tenants = [
                    (tenant.id, tenant.name, tenant.remote_business_id)
                    for tenant in QueryHelpers(session).get_franchisees_with_key()
                ]

            if not tenants:
                raise ConfigurationMissing("No franchisee has a remote API key configured")

            logger.info(f"Syncing services for {len(tenants)} franchisees")

            for tenant_id, tenant_name, business_id in tenants:
                if cancel_token is not None:
                    cancel_token.raise_if_cancelled()
                results.append(self._sync_tenant(tenant_id, tenant_name, business_id))

        except RunCancelled as e:
            logger.warning(f"Service catalog sync {log_id} cancelled")
            errors.append(SyncError('run', RUN_CANCELLED, e.message))
            return self._finalize(log_id, results, errors, status=STATUS_FAILED)
        except Exception as e:
            errors.append(SyncError('run', type(e).__name__, getattr(e, 'message', str(e))))
            self._finalize(log_id, results, errors, status=STATUS_FAILED)
            raise

        return self._finalize(log_id, results, errors)

    def _sync_tenant(self, tenant_id: int, tenant_name: str, business_id: Optional[str]) -> Dict:
        """Sync one tenant's catalog, returning its result entry."""
        result = {
            'franchisee_id': tenant_id,
            'franchisee_name': tenant_name,
            'success': False,
            'services_count': 0
        }
        try:
            records = self.client.list_services(business_id=business_id, tenant_id=tenant_id)

            rows = []
            invalid = 0
            for record in records:
                mapped = map_guarded(
                    lambda item: self.mapper.map_service(item, franchisee_id=tenant_id),
                    record, 'service'
                )
                if isinstance(mapped, SyncError):
                    invalid += 1
                else:
                    rows.append(mapped)

            duplicates = 0
            if rows:
                with self.db.session_scope() as session:
                    stats = self.upserter.upsert(session, RemoteService, rows, ['remote_id'])
                duplicates = len(stats.duplicate_keys)

            result['success'] = True
            result['services_count'] = len(rows) - duplicates
            if invalid:
                result['skipped'] = invalid
            if duplicates:
                result['duplicates'] = duplicates
            logger.info(f"Franchisee {tenant_name}: {result['services_count']} services synced")

        except RemoteAPIError as e:
            logger.error(f"Franchisee {tenant_name}: {e.message}")
            result['error'] = e.message
            result['reason'] = type(e).__name__
            if e.status_code is not None:
                result['status'] = e.status_code
        except (ConfigurationMissing, StorageWriteFailed) as e:
            logger.error(f"Franchisee {tenant_name}: {e.message}")
            result['error'] = e.message
            result['reason'] = type(e).__name__
        except Exception as e:
            logger.error(f"Franchisee {tenant_name}: service sync failed: {e}")
            result['error'] = str(e)
            result['reason'] = type(e).__name__

        return result

    def _finalize(self, log_id: int, results: List[Dict], errors: List[SyncError],
                  status: str = None) -> ServiceSyncLog:
        succeeded = sum(1 for result in results if result['success'])
        failed = len(results) - succeeded
        status = status or derive_status(succeeded, failed)

        with self.db.session_scope() as session:
            sync_log = session.get(ServiceSyncLog, log_id)
            sync_log.status = status
            sync_log.completed_at = datetime.utcnow()
            sync_log.total_franchisees = len(results)
            sync_log.franchisees_succeeded = succeeded
            sync_log.franchisees_failed = failed
            sync_log.total_services = sum(result['services_count'] for result in results)
            sync_log.results = results
            sync_log.errors = [error.to_dict() for error in errors] + [
                self._tenant_error(result) for result in results if not result['success']
            ]

        logger.info(
            f"Service catalog sync {log_id} finished: {status} "
            f"({succeeded} succeeded, {failed} failed)"
        )
        return sync_log

    def _tenant_error(self, result: Dict) -> Dict:
        error = {'franchisee_id': result['franchisee_id'], 'error': result['error']}
        for key in ('reason', 'status'):
            if key in result:
                error[key] = result[key]
        return error
