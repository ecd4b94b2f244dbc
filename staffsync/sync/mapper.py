"""
Reconciliation Mapper Module
Maps remote records to local rows. Pure functions, no I/O.
"""

from typing import Any, Callable, Dict, Optional, Tuple, Union

from staffsync.sync.results import EMPLOYEE_NOT_FOUND, INVALID_RECORD, SyncError
from staffsync.utils.helpers import (
    calculate_duration_hours, parse_remote_date, parse_remote_datetime,
    safe_get, sanitize_string, to_utc
)

DEFAULT_FIRST_NAME = 'Unnamed'
DEFAULT_ABSENCE_TYPE = 'Absence'
DEFAULT_ABSENCE_HOURS = 8

MapResult = Union[Dict[str, Any], SyncError]


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    """Split a display name on the first space."""
    if not full_name or not str(full_name).strip():
        return DEFAULT_FIRST_NAME, ''
    parts = str(full_name).strip().split(' ', 1)
    return parts[0], parts[1].strip() if len(parts) > 1 else ''


def _remote_id(record: Dict) -> Optional[str]:
    value = record.get('id')
    return str(value) if value is not None else None


class ReconciliationMapper:
    """
    Converts remote employees, assignments, absences and services into
    row dictionaries for the upserter.

    Schedules and absences need the remote -> local employee map; a miss is
    returned as a SyncError instead of a row.
    """

    def __init__(self, employee_map: Dict[str, int] = None):
        self.employee_map = employee_map or {}

    def _resolve_employee(self, entity: str, record: Dict,
                          centre_code: str = None) -> Union[int, SyncError]:
        remote_employee = record.get('employeeId')
        local_id = self.employee_map.get(str(remote_employee)) if remote_employee is not None else None
        if local_id is None:
            return SyncError(
                entity=entity,
                reason=EMPLOYEE_NOT_FOUND,
                message=f"Employee not found: {remote_employee}",
                remote_id=_remote_id(record),
                centre=centre_code
            )
        return local_id

    def map_employee(self, record: Dict, centre_code: str = None) -> MapResult:
        remote_id = _remote_id(record)
        if remote_id is None:
            return SyncError('employee', INVALID_RECORD, "Employee without id", centre=centre_code)

        first_name = record.get('firstName')
        last_name = record.get('lastName') or record.get('surname')
        if not first_name:
            first_name, split_last = split_name(record.get('name'))
            last_name = last_name or split_last

        return {
            'remote_id': remote_id,
            'first_name': sanitize_string(first_name, 255),
            'last_name': sanitize_string(last_name or '', 255),
            'email': record.get('email') or None,
            'centre_code': centre_code,
            'hire_date': parse_remote_date(record.get('startDate')),
            'termination_date': parse_remote_date(record.get('endDate')),
        }

    def map_schedule(self, record: Dict, service_id: str, centre_code: str = None) -> MapResult:
        """
        Map an assignment.

        planned_hours is the wall-clock difference of startTime/endTime;
        times of day are stored in UTC.
        """
        employee_id = self._resolve_employee('schedule', record, centre_code)
        if isinstance(employee_id, SyncError):
            return employee_id

        start = parse_remote_datetime(record.get('startTime'))
        end = parse_remote_datetime(record.get('endTime'))
        if start is None or end is None:
            return SyncError(
                'schedule', INVALID_RECORD, "Assignment without valid start/end time",
                remote_id=_remote_id(record), centre=centre_code
            )

        start_utc = to_utc(start)
        end_utc = to_utc(end)
        shift_date = parse_remote_date(record.get('date')) or start_utc.date()

        return {
            'employee_id': employee_id,
            'date': shift_date,
            'start_time': start_utc.time(),
            'end_time': end_utc.time(),
            'planned_hours': calculate_duration_hours(start_utc, end_utc),
            'service_id': str(service_id),
            'assignment_type': record.get('type') or None,
        }

    def map_absence(self, record: Dict, centre_code: str = None) -> MapResult:
        employee_id = self._resolve_employee('absence', record, centre_code)
        if isinstance(employee_id, SyncError):
            return employee_id

        absence_date = parse_remote_date(record.get('date'))
        if absence_date is None:
            return SyncError(
                'absence', INVALID_RECORD, "Absence without valid date",
                remote_id=_remote_id(record), centre=centre_code
            )

        hours = _to_float(record.get('hours'))
        if hours is None and record.get('hours') not in (None, ''):
            return SyncError(
                'absence', INVALID_RECORD, f"Absence with invalid hours: {record.get('hours')!r}",
                remote_id=_remote_id(record), centre=centre_code
            )
        return {
            'employee_id': employee_id,
            'date': absence_date,
            'absence_type': record.get('type') or DEFAULT_ABSENCE_TYPE,
            'hours': hours or DEFAULT_ABSENCE_HOURS,
            'reason': record.get('reason') or None,
        }

    def map_service(self, record: Dict, franchisee_id: int = None) -> MapResult:
        """Map a service catalog entry; the whole record is kept as payload."""
        remote_id = _remote_id(record)
        if remote_id is None:
            return SyncError('service', INVALID_RECORD, "Service without id")

        return {
            'remote_id': remote_id,
            'name': sanitize_string(record.get('name') or remote_id, 255),
            'time_zone': record.get('timeZone'),
            'latitude': _to_float(record.get('lat', safe_get(record, 'location', 'lat'))),
            'longitude': _to_float(record.get('lon', safe_get(record, 'location', 'lon'))),
            'payload': record,
            'franchisee_id': franchisee_id,
        }


def _to_float(value) -> Optional[float]:
    if value is None or value == '':
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def map_guarded(map_one: Callable[[Dict], MapResult], record, entity: str,
                centre_code: str = None) -> MapResult:
    """Run one mapping; a record that cannot be coerced becomes an InvalidRecord error."""
    try:
        return map_one(record)
    except (TypeError, ValueError, AttributeError) as e:
        return SyncError(
            entity, INVALID_RECORD, f"Invalid {entity} record: {e}",
            remote_id=_remote_id(record) if isinstance(record, dict) else None,
            centre=centre_code
        )
