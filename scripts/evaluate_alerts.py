#!/usr/bin/env python
"""
Evaluate Alerts Script
Runs one alert evaluation pass from the command line.
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from staffsync.utils.logger import setup_logging, get_logger
from staffsync.factory import build_alert_evaluator


def main():
    """Main entry point for alert evaluation."""
    setup_logging()
    logger = get_logger(__name__)

    try:
        summary = build_alert_evaluator().evaluate_all()

        print(f"\n{'='*50}")
        print("Alert Evaluation Complete")
        print(f"{'='*50}")
        print(f"Rules evaluated: {summary.evaluated}")
        print(f"Rules triggered: {summary.triggered}")
        print(f"Notifications: {summary.notifications}")
        for error in summary.errors:
            print(f"  ! rule {error['rule_id']}: {error['error']}")

    except Exception as e:
        logger.error(f"Alert evaluation failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
