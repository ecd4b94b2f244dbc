"""
Sync Module
Synchronization engine: mapping, chunked upserts and run orchestration.
"""

from .lease import CancellationToken, RunLeaseManager
from .mapper import ReconciliationMapper
from .orchestrator import SYNC_TYPES, SyncOrchestrator, SyncTask
from .results import StageResult, SyncError, derive_status
from .services_sync import ServiceCatalogSync
from .upserter import ChunkedUpserter, UpsertStats

__all__ = [
    'CancellationToken',
    'ChunkedUpserter',
    'ReconciliationMapper',
    'RunLeaseManager',
    'SYNC_TYPES',
    'ServiceCatalogSync',
    'StageResult',
    'SyncError',
    'SyncOrchestrator',
    'SyncTask',
    'UpsertStats',
    'derive_status'
]
