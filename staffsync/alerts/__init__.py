"""
Alerts Module
Alert rule evaluation, recipient resolution and notification delivery.
"""

from .dispatcher import EmailSender, NotificationDispatcher, mark_notification_read
from .evaluator import AlertEvaluator, EvaluationSummary
from .recipients import Recipient, RecipientResolver
from .rules import (
    CandidateNotification,
    CostDeviationRule,
    CriticalDataQualityRule,
    HighAbsenteeismRule,
    RuleEvaluator,
    ScheduleCoverageGapRule,
    calculate_period,
    compare,
    register_rule
)

__all__ = [
    'AlertEvaluator',
    'CandidateNotification',
    'CostDeviationRule',
    'CriticalDataQualityRule',
    'EmailSender',
    'EvaluationSummary',
    'HighAbsenteeismRule',
    'NotificationDispatcher',
    'Recipient',
    'RecipientResolver',
    'RuleEvaluator',
    'ScheduleCoverageGapRule',
    'calculate_period',
    'compare',
    'mark_notification_read',
    'register_rule'
]
