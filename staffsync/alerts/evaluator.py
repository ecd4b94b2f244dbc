"""
Alert Evaluator Module
Evaluates every active alert rule against the local store.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List

from staffsync.alerts.dispatcher import NotificationDispatcher
from staffsync.alerts.rules import calculate_period, get_rule_evaluator
from staffsync.database.connection import DatabaseConnection
from staffsync.database.models import AlertRule
from staffsync.database.queries import QueryHelpers
from staffsync.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class EvaluationSummary:
    evaluated: int = 0
    triggered: int = 0
    notifications: int = 0
    errors: List[Dict] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            'evaluated': self.evaluated,
            'triggered': self.triggered,
            'notifications': self.notifications,
            'errors': self.errors
        }


class AlertEvaluator:
    """Runs one evaluation pass; a failing rule is logged and skipped."""

    def __init__(self, db: DatabaseConnection, dispatcher: NotificationDispatcher,
                 today: date = None):
        self.db = db
        self.dispatcher = dispatcher
        self.today = today

    def _active_rules(self) -> List[AlertRule]:
        with self.db.session_scope() as session:
            return (
                session.query(AlertRule)
                .filter(AlertRule.active.is_(True))
                .order_by(AlertRule.id)
                .all()
            )

    def evaluate_all(self) -> EvaluationSummary:
        """
        Evaluate all active rules.

        Returns:
            EvaluationSummary with evaluated/triggered counts
        """
        summary = EvaluationSummary()
        rules = self._active_rules()
        logger.info(f"Evaluating {len(rules)} active alert rules")

        for rule in rules:
            summary.evaluated += 1
            try:
                notification_ids = self.evaluate_rule(rule)
            except Exception as e:
                logger.error(f"Error evaluating alert rule {rule.id} ({rule.rule_type}): {e}")
                summary.errors.append({'rule_id': rule.id, 'error': str(e)})
                continue

            if notification_ids is not None:
                summary.triggered += 1
                summary.notifications += len(notification_ids)

        logger.info(f"Alert evaluation complete: {summary.triggered}/{summary.evaluated} triggered")
        return summary

    def evaluate_rule(self, rule: AlertRule):
        """
        Evaluate one rule and dispatch on breach.

        Returns:
            Stored notification ids, or None when the rule did not trigger
        """
        evaluator = get_rule_evaluator(rule.rule_type)
        if evaluator is None:
            raise ValueError(f"Unknown alert rule type '{rule.rule_type}'")

        start, end = calculate_period(rule.period, self.today)
        logger.debug(f"Evaluating rule {rule.id} ({rule.rule_type}) for {start}..{end}")

        with self.db.session_scope() as session:
            candidate = evaluator.evaluate(QueryHelpers(session), rule, start, end)

        if candidate is None:
            return None

        return self.dispatcher.dispatch(candidate, rule.channels or [])
