"""
Alert Rules Module
Rule evaluators for every alert type, plus threshold and period helpers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple, Type

from dateutil.relativedelta import relativedelta

from staffsync.database.models import AlertRule
from staffsync.database.queries import QueryHelpers
from staffsync.utils.helpers import utc_today
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)

SEVERITY_HIGH = 'high'
SEVERITY_CRITICAL = 'critical'

PERIOD_LAST_DAY = 'last_day'
PERIOD_LAST_WEEK = 'last_week'
PERIOD_LAST_MONTH = 'last_month'

ABSENTEEISM_CRITICAL_RATE = 15
COST_CRITICAL_DEVIATION = 20
COVERAGE_CRITICAL_PERCENT = 50

ALL_CENTRES = 'all centres'


def compare(value: float, threshold: Optional[float], operator: str) -> bool:
    """
    Compare a metric with a rule threshold.

    Unknown operators never trigger. A missing threshold counts as 0.
    """
    threshold = threshold or 0
    if operator == '>':
        return value > threshold
    if operator == '<':
        return value < threshold
    if operator == '=':
        return value == threshold

    logger.warning(f"Unknown alert operator '{operator}'")
    return False


def calculate_period(period: Optional[str], today: date = None) -> Tuple[date, date]:
    """
    Date range a rule is evaluated over, ending today (UTC).

    Unknown or empty periods fall back to the last month.
    """
    end = today or utc_today()
    if period == PERIOD_LAST_DAY:
        start = end - timedelta(days=1)
    elif period == PERIOD_LAST_WEEK:
        start = end - timedelta(days=7)
    else:
        start = end - relativedelta(months=1)
    return start, end


@dataclass
class CandidateNotification:
    """Notification content produced by a breached rule, before fan-out."""
    rule_id: Optional[int]
    rule_type: str
    severity: str
    title: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    centre_code: Optional[str] = None


class RuleEvaluator(ABC):
    """
    Abstract base class for alert rule evaluators.

    evaluate() returns a CandidateNotification when the rule is breached
    and None otherwise.
    """

    rule_type: str = ''

    @abstractmethod
    def evaluate(self, queries: QueryHelpers, rule: AlertRule,
                 start: date, end: date) -> Optional[CandidateNotification]:
        pass

    def _candidate(self, rule: AlertRule, severity: str, title: str, message: str,
                   details: Dict[str, Any], start: date, end: date) -> CandidateNotification:
        details = dict(details)
        details['threshold'] = rule.threshold
        details['operator'] = rule.operator
        details['period'] = {'start_date': start.isoformat(), 'end_date': end.isoformat()}
        details['centre_code'] = rule.centre_code

        return CandidateNotification(
            rule_id=rule.id,
            rule_type=self.rule_type,
            severity=severity,
            title=title,
            message=message,
            details=details,
            centre_code=rule.centre_code
        )


class HighAbsenteeismRule(RuleEvaluator):
    """Absence hours as a share of planned hours."""

    rule_type = 'high_absenteeism'

    def evaluate(self, queries, rule, start, end):
        metrics = queries.get_absenteeism_metrics(start, end, rule.centre_code)
        rate = metrics['rate']

        if not compare(rate, rule.threshold, rule.operator):
            return None

        severity = SEVERITY_CRITICAL if rate > ABSENTEEISM_CRITICAL_RATE else SEVERITY_HIGH
        return self._candidate(
            rule,
            severity,
            f"High absenteeism in {rule.centre_code or ALL_CENTRES}",
            f"Absenteeism rate is {rate:.2f}%, breaching the threshold of {rule.threshold}%",
            {
                'current_value': rate,
                'absence_hours': metrics['absence_hours'],
                'planned_hours': metrics['planned_hours']
            },
            start, end
        )


class CostDeviationRule(RuleEvaluator):
    """Actual payroll cost against planned cost; skipped without a plan."""

    rule_type = 'cost_deviation'

    def evaluate(self, queries, rule, start, end):
        metrics = queries.get_cost_metrics(start, end, rule.centre_code)
        deviation = metrics['deviation']

        if deviation is None:
            logger.debug(f"Rule {rule.id}: no planned cost in {start}..{end}, skipped")
            return None
        if not compare(deviation, rule.threshold, rule.operator):
            return None

        severity = SEVERITY_CRITICAL if deviation > COST_CRITICAL_DEVIATION else SEVERITY_HIGH
        return self._candidate(
            rule,
            severity,
            f"Cost deviation in {rule.centre_code or ALL_CENTRES}",
            f"Cost deviation is {deviation:.2f}%, breaching the threshold of {rule.threshold}%",
            {
                'deviation_percent': deviation,
                'planned_cost': metrics['planned_cost'],
                'actual_cost': metrics['actual_cost']
            },
            start, end
        )


class CriticalDataQualityRule(RuleEvaluator):
    """Unresolved critical data quality issues. Always critical."""

    rule_type = 'critical_data_quality'

    def evaluate(self, queries, rule, start, end):
        count = queries.count_critical_dq_issues(start, rule.centre_code)

        if not compare(count, rule.threshold, rule.operator):
            return None

        return self._candidate(
            rule,
            SEVERITY_CRITICAL,
            "Critical data quality issues",
            f"{count} unresolved critical data quality issues detected",
            {
                'total_issues': count,
                'issues': queries.get_critical_dq_issue_samples(start, rule.centre_code)
            },
            start, end
        )


class ScheduleCoverageGapRule(RuleEvaluator):
    """Share of calendar days in the period with at least one schedule."""

    rule_type = 'schedule_coverage_gap'

    def evaluate(self, queries, rule, start, end):
        scheduled_days = queries.count_scheduled_days(start, end, rule.centre_code)
        total_days = (end - start).days + 1
        coverage = round(100 * scheduled_days / total_days, 2) if total_days > 0 else 0.0

        if not compare(coverage, rule.threshold, rule.operator):
            return None

        severity = SEVERITY_CRITICAL if coverage < COVERAGE_CRITICAL_PERCENT else SEVERITY_HIGH
        return self._candidate(
            rule,
            severity,
            f"Incomplete schedule in {rule.centre_code or ALL_CENTRES}",
            f"Only {coverage:.1f}% of days have a schedule",
            {
                'days_with_schedule': scheduled_days,
                'total_days': total_days,
                'coverage_percent': coverage
            },
            start, end
        )


RULE_EVALUATORS: Dict[str, Type[RuleEvaluator]] = {
    evaluator.rule_type: evaluator
    for evaluator in (
        HighAbsenteeismRule,
        CostDeviationRule,
        CriticalDataQualityRule,
        ScheduleCoverageGapRule,
    )
}


def register_rule(evaluator: Type[RuleEvaluator]) -> Type[RuleEvaluator]:
    """Register an evaluator class under its rule_type. Usable as a decorator."""
    if not evaluator.rule_type:
        raise ValueError(f"{evaluator.__name__} has no rule_type")
    RULE_EVALUATORS[evaluator.rule_type] = evaluator
    return evaluator


def get_rule_evaluator(rule_type: str) -> Optional[RuleEvaluator]:
    evaluator = RULE_EVALUATORS.get(rule_type)
    return evaluator() if evaluator else None
