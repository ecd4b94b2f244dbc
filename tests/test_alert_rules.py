"""
Unit Tests for Alert Rule Evaluators
"""

import unittest
from datetime import date, datetime
from unittest.mock import Mock

from staffsync.alerts.rules import (
    SEVERITY_CRITICAL, SEVERITY_HIGH, CostDeviationRule, CriticalDataQualityRule,
    HighAbsenteeismRule, RuleEvaluator, ScheduleCoverageGapRule, calculate_period,
    compare, get_rule_evaluator, register_rule
)
from staffsync.database.models import AlertRule, DataQualityIssue
from staffsync.database.queries import QueryHelpers
from db_support import make_db

START = date(2024, 3, 1)
END = date(2024, 3, 31)


def make_rule(rule_type, threshold=10, operator='>', centre_code='C1'):
    return AlertRule(
        id=1,
        name=f'{rule_type} rule',
        rule_type=rule_type,
        operator=operator,
        threshold=threshold,
        centre_code=centre_code,
        period='last_month',
        active=True
    )


class TestCompare(unittest.TestCase):
    """Threshold comparisons around the boundary."""

    def test_greater_than(self):
        self.assertTrue(compare(10.1, 10, '>'))
        self.assertFalse(compare(10.0, 10, '>'))
        self.assertFalse(compare(9.9, 10, '>'))

    def test_less_than(self):
        self.assertFalse(compare(10.1, 10, '<'))
        self.assertFalse(compare(10.0, 10, '<'))
        self.assertTrue(compare(9.9, 10, '<'))

    def test_equals(self):
        self.assertFalse(compare(10.1, 10, '='))
        self.assertTrue(compare(10.0, 10, '='))
        self.assertFalse(compare(9.9, 10, '='))

    def test_unknown_operator_never_triggers(self):
        self.assertFalse(compare(100, 10, '>='))

    def test_missing_threshold_is_zero(self):
        self.assertTrue(compare(1, None, '>'))
        self.assertFalse(compare(0, None, '>'))


class TestCalculatePeriod(unittest.TestCase):
    """Test evaluation periods."""

    def test_periods(self):
        today = date(2024, 3, 31)

        self.assertEqual(calculate_period('last_day', today), (date(2024, 3, 30), today))
        self.assertEqual(calculate_period('last_week', today), (date(2024, 3, 24), today))
        self.assertEqual(calculate_period('last_month', today), (date(2024, 2, 29), today))

    def test_unknown_period_defaults_to_month(self):
        today = date(2024, 5, 15)

        self.assertEqual(calculate_period(None, today), (date(2024, 4, 15), today))


class TestHighAbsenteeismRule(unittest.TestCase):
    """Test absenteeism evaluation and severity."""

    def setUp(self):
        self.queries = Mock()
        self.rule = HighAbsenteeismRule()

    def _metrics(self, rate):
        self.queries.get_absenteeism_metrics.return_value = {
            'absence_hours': rate, 'planned_hours': 100.0, 'rate': rate
        }

    def test_no_breach(self):
        self._metrics(8.0)

        self.assertIsNone(self.rule.evaluate(self.queries, make_rule('high_absenteeism'), START, END))

    def test_high_severity(self):
        self._metrics(12.0)

        candidate = self.rule.evaluate(self.queries, make_rule('high_absenteeism'), START, END)

        self.assertEqual(candidate.severity, SEVERITY_HIGH)
        self.assertEqual(candidate.details['current_value'], 12.0)
        self.assertEqual(candidate.details['period'], {'start_date': '2024-03-01', 'end_date': '2024-03-31'})
        self.assertEqual(candidate.centre_code, 'C1')
        self.queries.get_absenteeism_metrics.assert_called_once_with(START, END, 'C1')

    def test_escalates_above_fifteen_percent(self):
        self._metrics(17.0)

        candidate = self.rule.evaluate(self.queries, make_rule('high_absenteeism'), START, END)

        self.assertEqual(candidate.severity, SEVERITY_CRITICAL)
        self.assertIn('17.00%', candidate.message)


class TestCostDeviationRule(unittest.TestCase):
    """Test cost deviation evaluation."""

    def setUp(self):
        self.queries = Mock()
        self.rule = CostDeviationRule()

    def test_skipped_without_planned_cost(self):
        self.queries.get_cost_metrics.return_value = {
            'actual_cost': 500.0, 'planned_cost': 0.0, 'deviation': None
        }

        self.assertIsNone(self.rule.evaluate(self.queries, make_rule('cost_deviation'), START, END))

    def test_severity_by_deviation(self):
        self.queries.get_cost_metrics.return_value = {
            'actual_cost': 1150.0, 'planned_cost': 1000.0, 'deviation': 15.0
        }
        high = self.rule.evaluate(self.queries, make_rule('cost_deviation'), START, END)

        self.queries.get_cost_metrics.return_value = {
            'actual_cost': 1250.0, 'planned_cost': 1000.0, 'deviation': 25.0
        }
        critical = self.rule.evaluate(self.queries, make_rule('cost_deviation'), START, END)

        self.assertEqual(high.severity, SEVERITY_HIGH)
        self.assertEqual(critical.severity, SEVERITY_CRITICAL)
        self.assertEqual(critical.details['planned_cost'], 1000.0)


class TestCriticalDataQualityRule(unittest.TestCase):
    """Data quality alerts are always critical."""

    def test_always_critical(self):
        queries = Mock()
        queries.count_critical_dq_issues.return_value = 1
        queries.get_critical_dq_issue_samples.return_value = [{'id': 4, 'issue_type': 'missing_payroll'}]

        candidate = CriticalDataQualityRule().evaluate(
            queries, make_rule('critical_data_quality', threshold=0), START, END
        )

        self.assertEqual(candidate.severity, SEVERITY_CRITICAL)
        self.assertEqual(candidate.details['total_issues'], 1)
        self.assertEqual(candidate.details['issues'], [{'id': 4, 'issue_type': 'missing_payroll'}])
        queries.count_critical_dq_issues.assert_called_once_with(START, 'C1')
        queries.get_critical_dq_issue_samples.assert_called_once_with(START, 'C1')

    def test_samples_are_limited_and_filtered(self):
        db = make_db()
        with db.session_scope() as session:
            for day in range(1, 8):
                session.add(DataQualityIssue(
                    issue_type='missing_payroll', severity='critical', centre_code='C1',
                    created_at=datetime(2024, 3, day, 9, 0)
                ))
            session.add(DataQualityIssue(
                issue_type='duplicate_shift', severity='low', centre_code='C1',
                created_at=datetime(2024, 3, 1, 8, 0)
            ))
            session.add(DataQualityIssue(
                issue_type='missing_payroll', severity='critical', centre_code='C2',
                created_at=datetime(2024, 3, 1, 8, 0)
            ))

        with db.session_scope() as session:
            queries = QueryHelpers(session)
            samples = queries.get_critical_dq_issue_samples(START, 'C1')
            count = queries.count_critical_dq_issues(START, 'C1')

        self.assertEqual(count, 7)
        self.assertEqual(len(samples), 5)
        self.assertEqual(samples[0]['created_at'], '2024-03-01T09:00:00')
        self.assertEqual({sample['centre_code'] for sample in samples}, {'C1'})


class TestScheduleCoverageGapRule(unittest.TestCase):
    """Coverage is the share of days with a schedule."""

    def setUp(self):
        self.queries = Mock()
        self.rule = make_rule('schedule_coverage_gap', threshold=80, operator='<')

    def test_low_coverage_is_critical(self):
        self.queries.count_scheduled_days.return_value = 10

        candidate = ScheduleCoverageGapRule().evaluate(self.queries, self.rule, START, END)

        self.assertEqual(candidate.details['total_days'], 31)
        self.assertEqual(candidate.details['coverage_percent'], 32.26)
        self.assertEqual(candidate.severity, SEVERITY_CRITICAL)

    def test_partial_coverage_is_high(self):
        self.queries.count_scheduled_days.return_value = 20

        candidate = ScheduleCoverageGapRule().evaluate(self.queries, self.rule, START, END)

        self.assertEqual(candidate.severity, SEVERITY_HIGH)

    def test_full_coverage_does_not_trigger(self):
        self.queries.count_scheduled_days.return_value = 31

        self.assertIsNone(ScheduleCoverageGapRule().evaluate(self.queries, self.rule, START, END))


class TestRuleRegistry(unittest.TestCase):
    """Test evaluator lookup and registration."""

    def test_known_and_unknown_types(self):
        self.assertIsInstance(get_rule_evaluator('high_absenteeism'), HighAbsenteeismRule)
        self.assertIsNone(get_rule_evaluator('overtime'))

    def test_register_requires_rule_type(self):
        class Unnamed(RuleEvaluator):
            def evaluate(self, queries, rule, start, end):
                return None

        with self.assertRaises(ValueError):
            register_rule(Unnamed)


if __name__ == '__main__':
    unittest.main()
