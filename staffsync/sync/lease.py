"""
Run Lease Module
Expiring leases that keep two runs of the same kind from overlapping,
plus cooperative cancellation.
"""

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta

from sqlalchemy.dialects import postgresql, sqlite

from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import RunLease
from staffsync.errors import RunCancelled, RunInProgress
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_LEASE_TTL_SECONDS = 3600


def sync_lease_key(sync_type: str) -> str:
    return f"sync:{sync_type}"


SERVICES_LEASE_KEY = 'sync-services'


class CancellationToken:
    """Flag checked between tasks of a run."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelled("Run was cancelled")


class RunLeaseManager:
    """
    Acquires and releases RunLease rows.

    A lease is taken when no row exists for the key or the existing row has
    expired; anything else means another run is live.
    """

    def __init__(self, db: DatabaseConnection, ttl_seconds: int = DEFAULT_LEASE_TTL_SECONDS):
        self.db = db
        self.ttl_seconds = ttl_seconds

    def acquire(self, key: str) -> str:
        """
        Take the lease for a run kind.

        Returns:
            The lease token, needed to release it

        Raises:
            RunInProgress: A live lease is held by another run
        """
        token = uuid.uuid4().hex
        now = datetime.utcnow()
        expires_at = now + timedelta(seconds=self.ttl_seconds)

        with self.db.session_scope() as session:
            dialect = session.get_bind().dialect.name
            insert = postgresql.insert if dialect == 'postgresql' else sqlite.insert

            stmt = insert(RunLease).values(
                key=key, token=token, acquired_at=now, expires_at=expires_at
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=['key'],
                set_={
                    'token': stmt.excluded.token,
                    'acquired_at': stmt.excluded.acquired_at,
                    'expires_at': stmt.excluded.expires_at
                },
                where=RunLease.__table__.c.expires_at < now
            )
            session.execute(stmt)

            holder = session.get(RunLease, key, populate_existing=True)
            if holder is None or holder.token != token:
                until = holder.expires_at.isoformat() if holder else 'unknown'
                logger.warning(f"Lease '{key}' is held until {until}")
                raise RunInProgress(f"A run of kind '{key}' is already in progress")

        logger.debug(f"Acquired lease '{key}' until {expires_at.isoformat()}")
        return token

    def release(self, key: str, token: str) -> bool:
        """Release a lease if it is still ours."""
        with self.db.session_scope() as session:
            deleted = (
                session.query(RunLease)
                .filter(RunLease.key == key, RunLease.token == token)
                .delete(synchronize_session=False)
            )

        if not deleted:
            logger.warning(f"Lease '{key}' was no longer held at release")
        return bool(deleted)

    @contextmanager
    def hold(self, key: str):
        """Hold a lease for the duration of a block."""
        token = self.acquire(key)
        try:
            yield token
        finally:
            self.release(key, token)
