"""
Database Query Helpers Module
Provides functions for common database queries and alert metric calculations.
"""

from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, desc
from sqlalchemy.orm import Session

from staffsync.database.models import (
    Absence, Centre, DataQualityIssue, Employee, Franchisee, Payroll,
    RemoteLatencyLog, Schedule, SyncLog, User, UserRole
)
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

ROLE_ADMIN = 'admin'
ROLE_MANAGER = 'manager'


class QueryHelpers:
    """Query helper functions for database operations."""

    def __init__(self, session: Session):
        """Initialize with database session."""
        self.session = session

    # ========================================
    # Sync Scope Queries
    # ========================================

    def get_sync_centres(self, centre_code: str = None) -> List[Centre]:
        """Active centres linked to a remote service, optionally a single one."""
        query = (
            self.session.query(Centre)
            .filter(Centre.active.is_(True))
            .filter(Centre.remote_service_id.isnot(None))
            .filter(Centre.remote_service_id != '')
        )
        if centre_code:
            query = query.filter(Centre.code == centre_code)
        return query.order_by(Centre.code).all()

    def get_franchisees_with_key(self) -> List[Franchisee]:
        """Tenants holding a bearer credential."""
        return (
            self.session.query(Franchisee)
            .filter(Franchisee.remote_api_key.isnot(None))
            .filter(Franchisee.remote_api_key != '')
            .order_by(Franchisee.id)
            .all()
        )

    def get_employee_map(self, centre_code: str = None) -> Dict[str, int]:
        """
        Map remote employee ids to local ids.

        Args:
            centre_code: Restrict to employees of one centre

        Returns:
            Dict of remote_id -> local id
        """
        query = self.session.query(Employee.remote_id, Employee.id).filter(
            Employee.remote_id.isnot(None)
        )
        if centre_code:
            query = query.filter(Employee.centre_code == centre_code)
        return {remote_id: local_id for remote_id, local_id in query.all()}

    # ========================================
    # Alert Metrics
    # ========================================

    def get_absenteeism_metrics(self, start: date, end: date,
                                centre_code: str = None) -> Dict:
        """
        Absence hours against planned hours in a date range.

        Returns:
            Dict with absence_hours, planned_hours and rate (percent)
        """
        absence_query = (
            self.session.query(func.coalesce(func.sum(Absence.hours), 0.0))
            .join(Employee, Absence.employee_id == Employee.id)
            .filter(Absence.date >= start, Absence.date <= end)
        )
        planned_query = (
            self.session.query(func.coalesce(func.sum(Schedule.planned_hours), 0.0))
            .join(Employee, Schedule.employee_id == Employee.id)
            .filter(Schedule.date >= start, Schedule.date <= end)
        )
        if centre_code:
            absence_query = absence_query.filter(Employee.centre_code == centre_code)
            planned_query = planned_query.filter(Employee.centre_code == centre_code)

        absence_hours = float(absence_query.scalar() or 0)
        planned_hours = float(planned_query.scalar() or 0)

        return {
            'absence_hours': round(absence_hours, 2),
            'planned_hours': round(planned_hours, 2),
            'rate': round(100 * absence_hours / planned_hours, 2) if planned_hours > 0 else 0.0
        }

    def get_cost_metrics(self, start: date, end: date, centre_code: str = None) -> Dict:
        """
        Actual payroll cost against planned cost in a date range.

        Planned cost prices each employee's planned hours at the hourly cost
        of their payroll rows overlapping the range.

        Returns:
            Dict with actual_cost, planned_cost and deviation (percent, None
            when nothing was planned)
        """
        payroll_query = (
            self.session.query(
                Payroll.employee_id,
                func.coalesce(func.sum(Payroll.total_cost), 0.0),
                func.coalesce(func.sum(Payroll.hours_worked), 0.0)
            )
            .join(Employee, Payroll.employee_id == Employee.id)
            .filter(Payroll.period_start <= end, Payroll.period_end >= start)
            .group_by(Payroll.employee_id)
        )
        planned_query = (
            self.session.query(
                Schedule.employee_id,
                func.coalesce(func.sum(Schedule.planned_hours), 0.0)
            )
            .join(Employee, Schedule.employee_id == Employee.id)
            .filter(Schedule.date >= start, Schedule.date <= end)
            .group_by(Schedule.employee_id)
        )
        if centre_code:
            payroll_query = payroll_query.filter(Employee.centre_code == centre_code)
            planned_query = planned_query.filter(Employee.centre_code == centre_code)

        actual_cost = 0.0
        hourly_cost: Dict[int, float] = {}
        for employee_id, cost, hours in payroll_query.all():
            actual_cost += float(cost or 0)
            if hours and float(hours) > 0:
                hourly_cost[employee_id] = float(cost or 0) / float(hours)

        planned_cost = sum(
            float(hours or 0) * hourly_cost[employee_id]
            for employee_id, hours in planned_query.all()
            if employee_id in hourly_cost
        )

        deviation = None
        if planned_cost > 0:
            deviation = round(100 * (actual_cost - planned_cost) / planned_cost, 2)

        return {
            'actual_cost': round(actual_cost, 2),
            'planned_cost': round(planned_cost, 2),
            'deviation': deviation
        }

    def _critical_dq_query(self, query, since: date, centre_code: str = None):
        query = (
            query
            .filter(DataQualityIssue.severity == 'critical')
            .filter(DataQualityIssue.resolved.is_(False))
            .filter(DataQualityIssue.created_at >= datetime.combine(since, datetime.min.time()))
        )
        if centre_code:
            query = query.filter(DataQualityIssue.centre_code == centre_code)
        return query

    def count_critical_dq_issues(self, since: date, centre_code: str = None) -> int:
        """Unresolved critical data quality issues created since a date."""
        query = self._critical_dq_query(
            self.session.query(func.count(DataQualityIssue.id)), since, centre_code
        )
        return query.scalar() or 0

    def get_critical_dq_issue_samples(self, since: date, centre_code: str = None,
                                      limit: int = 5) -> List[Dict[str, Any]]:
        """Oldest unresolved critical issues, kept on alerts for audit."""
        issues = (
            self._critical_dq_query(self.session.query(DataQualityIssue), since, centre_code)
            .order_by(DataQualityIssue.created_at, DataQualityIssue.id)
            .limit(limit)
            .all()
        )
        return [
            {
                'id': issue.id,
                'issue_type': issue.issue_type,
                'centre_code': issue.centre_code,
                'employee_id': issue.employee_id,
                'created_at': issue.created_at.isoformat()
            }
            for issue in issues
        ]

    def count_scheduled_days(self, start: date, end: date, centre_code: str = None) -> int:
        """Distinct dates with at least one schedule in a range."""
        query = (
            self.session.query(func.count(func.distinct(Schedule.date)))
            .join(Employee, Schedule.employee_id == Employee.id)
            .filter(Schedule.date >= start, Schedule.date <= end)
        )
        if centre_code:
            query = query.filter(Employee.centre_code == centre_code)
        return query.scalar() or 0

    # ========================================
    # Recipient Queries
    # ========================================

    def get_alert_recipients(self, centre_code: str = None) -> List[Tuple[int, Optional[str]]]:
        """
        Admins plus managers of the given centre.

        Returns:
            List of (user_id, email) ordered by user id, without duplicates
        """
        query = self.session.query(User.id, User.email).join(UserRole, UserRole.user_id == User.id)
        if centre_code:
            query = query.filter(
                (UserRole.role == ROLE_ADMIN)
                | ((UserRole.role == ROLE_MANAGER) & (UserRole.centre_code == centre_code))
            )
        else:
            query = query.filter(UserRole.role == ROLE_ADMIN)

        return query.distinct().order_by(User.id).all()

    # ========================================
    # Run & Health Queries
    # ========================================

    def get_last_sync(self) -> Optional[SyncLog]:
        """Most recently started sync run."""
        return self.session.query(SyncLog).order_by(desc(SyncLog.started_at), desc(SyncLog.id)).first()

    def get_recent_syncs(self, limit: int = 20, sync_type: str = None) -> List[SyncLog]:
        """Recent sync runs, newest first."""
        query = self.session.query(SyncLog)
        if sync_type:
            query = query.filter(SyncLog.sync_type == sync_type)
        return query.order_by(desc(SyncLog.started_at), desc(SyncLog.id)).limit(limit).all()

    def get_table_counts(self) -> Dict[str, int]:
        """Row counts of the mirrored tables."""
        return {
            'employees': self.session.query(func.count(Employee.id)).scalar() or 0,
            'schedules': self.session.query(func.count(Schedule.id)).scalar() or 0,
            'absences': self.session.query(func.count(Absence.id)).scalar() or 0,
            'payrolls': self.session.query(func.count(Payroll.id)).scalar() or 0
        }

    def record_latency(self, endpoint: str, method: str, status_code: Optional[int],
                       latency_ms: int, success: bool) -> RemoteLatencyLog:
        """Add a remote latency sample to the session."""
        entry = RemoteLatencyLog(
            endpoint=endpoint[:500],
            method=method,
            status_code=status_code,
            latency_ms=latency_ms,
            success=success
        )
        self.session.add(entry)
        return entry
