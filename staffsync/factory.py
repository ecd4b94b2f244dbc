"""
Component Factory Module
Builds the engine components from configuration, once per invocation.
"""

from staffsync.alerts import AlertEvaluator, EmailSender, NotificationDispatcher, RecipientResolver
from staffsync.config_manager import ConfigManager
from staffsync.database.connection import DatabaseConnection, get_db
from staffsync.database.queries import QueryHelpers
from staffsync.health import HealthProbe
from staffsync.remote import ProxyAuthResolver, RemoteClient
from staffsync.sync import ServiceCatalogSync, SyncOrchestrator


def latency_recorder(db: DatabaseConnection):
    """Callable persisting one RemoteLatencyLog row per remote call."""
    def record(endpoint, method, status_code, latency_ms, success):
        with db.session_scope() as session:
            QueryHelpers(session).record_latency(endpoint, method, status_code, latency_ms, success)
    return record


def build_remote_client(db: DatabaseConnection = None, record_latency: bool = False) -> RemoteClient:
    db = db or get_db()
    remote_config = ConfigManager().build_remote_config()
    return RemoteClient(
        remote_config,
        ProxyAuthResolver(remote_config, db),
        latency_recorder=latency_recorder(db) if record_latency else None
    )


def build_sync_orchestrator(db: DatabaseConnection = None) -> SyncOrchestrator:
    db = db or get_db()
    return SyncOrchestrator(build_remote_client(db), db, ConfigManager().build_sync_config())


def build_service_sync(db: DatabaseConnection = None) -> ServiceCatalogSync:
    db = db or get_db()
    return ServiceCatalogSync(build_remote_client(db), db, ConfigManager().build_sync_config())


def build_alert_evaluator(db: DatabaseConnection = None) -> AlertEvaluator:
    db = db or get_db()
    dispatcher = NotificationDispatcher(
        db,
        RecipientResolver(db),
        EmailSender(ConfigManager().build_email_config())
    )
    return AlertEvaluator(db, dispatcher)


def build_health_probe(db: DatabaseConnection = None) -> HealthProbe:
    db = db or get_db()
    return HealthProbe(db, build_remote_client(db))
