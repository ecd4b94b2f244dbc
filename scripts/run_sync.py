#!/usr/bin/env python
"""
Run Sync Script
Command-line script for synchronization runs.
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from staffsync.utils.logger import setup_logging, get_logger
from staffsync.utils.helpers import get_date_range, parse_iso_date
from staffsync.factory import build_service_sync, build_sync_orchestrator
from staffsync.sync.orchestrator import SYNC_TYPES
from staffsync.sync.results import STATUS_FAILED


def _run_services() -> int:
    sync_log = build_service_sync().run(trigger_source='manual', triggered_by='cli')

    print(f"\n{'='*50}")
    print("Service Catalog Sync Complete")
    print(f"{'='*50}")
    print(f"Run ID: {sync_log.id}")
    print(f"Status: {sync_log.status}")
    print(f"Franchisees: {sync_log.franchisees_succeeded}/{sync_log.total_franchisees} succeeded")
    print(f"Services: {sync_log.total_services}")
    for result in sync_log.results or []:
        if not result['success']:
            print(f"  ! {result['franchisee_name']}: {result.get('error')}")

    return 1 if sync_log.status == STATUS_FAILED else 0


def main():
    """Main entry point for sync script."""
    parser = argparse.ArgumentParser(description='Run staffsync synchronization')
    parser.add_argument(
        'sync_type',
        choices=SYNC_TYPES + ['services'],
        help='What to sync'
    )
    parser.add_argument('--start-date', help='First day (YYYY-MM-DD)')
    parser.add_argument('--end-date', help='Last day (YYYY-MM-DD)')
    parser.add_argument(
        '--days-back',
        type=int,
        default=7,
        help='Lookback window when no date range is given (default: 7)'
    )
    parser.add_argument('--centre', help='Only sync this centre code')

    args = parser.parse_args()

    # Setup logging
    setup_logging()
    logger = get_logger(__name__)

    try:
        if args.sync_type == 'services':
            sys.exit(_run_services())

        if args.start_date and args.end_date:
            start_date = parse_iso_date(args.start_date)
            end_date = parse_iso_date(args.end_date)
            if start_date is None or end_date is None:
                parser.error('dates must be YYYY-MM-DD')
        else:
            start_date, end_date = get_date_range(args.days_back)

        logger.info(f"Starting sync: {args.sync_type} {start_date}..{end_date}")

        sync_log = build_sync_orchestrator().run(
            args.sync_type,
            start_date=start_date,
            end_date=end_date,
            trigger_source='manual',
            triggered_by='cli',
            centre_code=args.centre
        )

        print(f"\n{'='*50}")
        print("Sync Run Complete")
        print(f"{'='*50}")
        print(f"Run ID: {sync_log.id}")
        print(f"Type: {sync_log.sync_type}")
        print(f"Status: {sync_log.status}")
        print(f"Total: {sync_log.total_rows}")
        print(f"Inserted: {sync_log.inserted_rows}")
        print(f"Updated: {sync_log.updated_rows}")
        print(f"Errors: {sync_log.error_rows}")
        print(f"Duration: {(sync_log.completed_at - sync_log.started_at).total_seconds():.2f}s")

        for error in (sync_log.errors or [])[:10]:
            print(f"  ! [{error.get('type')}] {error.get('error')}")

        if sync_log.status == STATUS_FAILED:
            sys.exit(1)

    except Exception as e:
        logger.error(f"Sync failed: {e}")
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
