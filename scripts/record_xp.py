#!/usr/bin/env python3
"""
Record XP Script

Append raw ledger XP for attendants. The active season multiplier applies
and achievements are evaluated as for any other ledger write.

Usage:
    python record_xp.py --attendant 42 --points 50 --reason "Evaluation 2024-05"
    python record_xp.py --file attendants.csv --points 10 --reason "Team bonus" --type bonus
    python record_xp.py --attendant 42 --points -20 --reason "Correction" --type correction

Arguments:
    --attendant INT     Single attendant ID
    --file FILE         CSV file with attendant IDs (first column)
    --points INT        Base points, before the season multiplier (required)
    --reason TEXT       Reason stored on the event (required)
    --type TEXT         Event type tag (default: evaluation)
    --related-id TEXT   Id of the entity that caused the XP
    --dry-run           Show what would be done without making changes
"""

import argparse
import csv
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import settings as app_settings
from src.attendant_xp import settings
from src.attendant_xp.exceptions import GamificationError, StorageError
from src.attendant_xp.ledger import ledger_logic


def load_attendant_ids_from_file(filepath: str) -> list:
    """Load attendant IDs from CSV file."""
    attendant_ids = []
    with open(filepath, 'r', encoding='utf-8') as f:
        reader = csv.reader(f)
        for row in reader:
            if row and row[0].strip().isdigit():
                attendant_ids.append(int(row[0].strip()))
    return attendant_ids


def main():
    parser = argparse.ArgumentParser(
        description='Record ledger XP for attendants',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--attendant', type=int, help='Single attendant ID')
    group.add_argument('--file', type=str, help='CSV file with attendant IDs')

    parser.add_argument('--points', type=int, required=True,
                        help='Base points (can be negative)')
    parser.add_argument('--reason', type=str, required=True,
                        help='Reason stored on the event')
    parser.add_argument('--type', dest='xp_type', type=str, default=settings.XP_TYPE_EVALUATION,
                        help=f'Event type tag (default: {settings.XP_TYPE_EVALUATION})')
    parser.add_argument('--related-id', type=str, default=None,
                        help='Id of the related entity')
    parser.add_argument('--dry-run', action='store_true',
                        help='Show what would be done without making changes')

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if app_settings.DEBUG else logging.INFO,
        format=app_settings.LOG_FORMAT
    )

    if args.attendant:
        attendant_ids = [args.attendant]
    else:
        if not os.path.exists(args.file):
            print(f"Error: File not found: {args.file}")
            sys.exit(1)
        attendant_ids = load_attendant_ids_from_file(args.file)

    if not attendant_ids:
        print("No attendants found.")
        sys.exit(0)

    print(f"Recording {args.points} base points for {len(attendant_ids)} attendant(s)")
    print(f"Type: {args.xp_type}")
    print(f"Reason: {args.reason}")
    print()

    if args.dry_run:
        print("DRY RUN - No changes will be made")
        for attendant_id in attendant_ids[:10]:
            print(f"  Would record {args.points} points for attendant {attendant_id}")
        if len(attendant_ids) > 10:
            print(f"  ... and {len(attendant_ids) - 10} more attendants")
        sys.exit(0)

    success_count = 0
    error_count = 0

    for attendant_id in attendant_ids:
        try:
            result = ledger_logic.record_xp(
                attendant_id, args.points, args.reason, args.xp_type, args.related_id
            )
        except (GamificationError, StorageError) as e:
            error_count += 1
            print(f"  ✗ Attendant {attendant_id}: {e}")
            continue

        success_count += 1
        line = f"  ✓ Attendant {attendant_id}: {result.event.final_points:+d} XP (x{result.event.multiplier})"
        if result.level_up:
            line += f", level {result.level_up.previous_level} → {result.level_up.new_level}"
        for achievement in result.unlocked:
            line += f", unlocked '{achievement.title}'"
        print(line)

    print()
    print(f"Summary: {success_count} successful, {error_count} errors")

    if error_count > 0:
        sys.exit(1)


if __name__ == '__main__':
    main()
