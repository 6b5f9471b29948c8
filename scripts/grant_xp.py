#!/usr/bin/env python3
"""
Grant XP Script

Issue a manual XP grant on behalf of an administrator, subject to the
stored grant limits.

Usage:
    python grant_xp.py --attendant 42 --type 3 --granter 7 --justification "Covered a shift"
    python grant_xp.py --attendant 42 --type 3 --granter 7 --dry-run

Arguments:
    --attendant INT       Receiving attendant ID (required)
    --type INT            XP type ID (required)
    --granter INT         Administrator ID (required)
    --justification TEXT  Reason for the grant
    --dry-run             Show today's usage for the granter and exit
"""

import argparse
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings as app_settings
from src.attendant_xp.exceptions import GamificationError, LimitExceeded, StorageError
from src.attendant_xp.grants import grant_logic


def main():
    parser = argparse.ArgumentParser(
        description='Issue a manual XP grant',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--attendant', type=int, required=True, help='Attendant ID')
    parser.add_argument('--type', dest='type_id', type=int, required=True, help='XP type ID')
    parser.add_argument('--granter', type=int, required=True, help='Administrator ID')
    parser.add_argument('--justification', type=str, default=None, help='Reason for the grant')
    parser.add_argument('--dry-run', action='store_true',
                        help="Show the granter's daily usage without granting")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if app_settings.DEBUG else logging.INFO,
        format=app_settings.LOG_FORMAT
    )

    try:
        if args.dry_run:
            usage = grant_logic.get_daily_usage(args.granter)
            xp_type = grant_logic.get_xp_type(args.type_id)
            print("DRY RUN - No changes will be made")
            print(f"  Type: {xp_type.name} ({xp_type.points} points, {'active' if xp_type.active else 'inactive'})")
            print(f"  Granter {args.granter} today: {usage.grants} grant(s), {usage.points} point(s)")
            print(f"  Remaining: {usage.remaining_grants} grant(s), {usage.remaining_points} point(s)")
            sys.exit(0)

        result = grant_logic.grant_xp(args.attendant, args.type_id, args.granter, args.justification)
    except LimitExceeded as e:
        retry = f" (retry in {e.retry_after_minutes} min)" if e.retry_after_minutes else ""
        print(f"✗ Limit exceeded [{e.rule}]: {e}{retry}")
        sys.exit(2)
    except (GamificationError, StorageError) as e:
        print(f"✗ {type(e).__name__}: {e}")
        sys.exit(1)

    print(f"✓ Grant {result.grant.id}: {result.grant.points} points ({result.type_name}) "
          f"to attendant {args.attendant}, ledger {result.event.final_points:+d}")
    if result.level_up:
        print(f"  Level {result.level_up.previous_level} → {result.level_up.new_level}")
    for achievement in result.unlocked:
        print(f"  Unlocked '{achievement.title}' (+{achievement.xp_gained} XP)")
    for warning in result.warnings:
        print(f"  ! {warning}")


if __name__ == '__main__':
    main()
