"""
Sync Result Types
Tagged per-record errors and per-stage accumulators.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

STATUS_RUNNING = 'running'
STATUS_COMPLETED = 'completed'
STATUS_PARTIAL = 'partial'
STATUS_FAILED = 'failed'

# Error reasons
EMPLOYEE_NOT_FOUND = 'EmployeeNotFound'
INVALID_RECORD = 'InvalidRecord'
DUPLICATE_RECORD = 'DuplicateRecord'
AUTHENTICATION_FAILED = 'AuthenticationFailed'
RUN_CANCELLED = 'cancelled'


@dataclass
class SyncError:
    """One accumulated error, either per record or per stage."""
    entity: str
    reason: str
    message: str
    remote_id: Optional[str] = None
    centre: Optional[str] = None
    status_code: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.entity, 'reason': self.reason, 'error': self.message}
        if self.remote_id is not None:
            data['id'] = self.remote_id
        if self.centre is not None:
            data['centre'] = self.centre
        if self.status_code is not None:
            data['status'] = self.status_code
        return data


@dataclass
class StageResult:
    """Counters for one sync stage (or a whole run)."""
    total: int = 0
    inserted: int = 0
    updated: int = 0
    errors: List[SyncError] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def success_count(self) -> int:
        return self.inserted + self.updated

    def add_error(self, error: SyncError) -> None:
        self.errors.append(error)

    def merge(self, other: 'StageResult') -> None:
        self.total += other.total
        self.inserted += other.inserted
        self.updated += other.updated
        self.errors.extend(other.errors)

    def summary(self) -> Dict[str, int]:
        return {
            'total': self.total,
            'inserted': self.inserted,
            'updated': self.updated,
            'errors': self.error_count
        }


def derive_status(success_count: int, error_count: int) -> str:
    """
    Terminal status of a run.

    completed when nothing failed, failed when nothing succeeded but
    something failed, partial otherwise.
    """
    if error_count == 0:
        return STATUS_COMPLETED
    if success_count == 0:
        return STATUS_FAILED
    return STATUS_PARTIAL


def authentication_failure_status(success_count: int, errors: List[Dict]) -> Optional[int]:
    """
    HTTP status for a run that failed on credentials alone.

    Returns 401 or 403 when nothing was written and every recorded error is
    an authentication failure, None otherwise.
    """
    if success_count or not errors:
        return None
    if any(error.get('reason') != AUTHENTICATION_FAILED for error in errors):
        return None
    statuses = {error.get('status') for error in errors}
    return 403 if statuses == {403} else 401
