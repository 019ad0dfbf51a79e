"""
Export the rounds of a price feed between two timestamps to CSV.

Resolves every round of the feed proxy whose updatedAt falls in
[start, end], stitching across aggregator phases, and writes them to a
CSV file (one row per round, with a scaled price column).

Example:
    python scripts/export_feed_history.py \
        --address 0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419 --chain mainnet \
        --start 2024-01-01 --end 2024-01-02
"""

import os
import sys
import logging
from datetime import datetime, timezone

# Add parent directory to path for imports
SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
PROJECT_ROOT = os.path.abspath(os.path.join(SCRIPT_DIR, '..'))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from config import DATA_DIR, EXPORT_CSV_NAME, ResolverConfig
from logging_setup import setup_logging
from resolver_errors import RoundResolverError
from round_export import export_rounds_csv
from round_resolver import STRATEGIES, run_query

logger = logging.getLogger("export_feed_history")


def parse_time(value: str) -> int:
    """Unix seconds, or an ISO date/datetime (naive values are UTC)."""
    if value.isdigit():
        return int(value)
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def main(argv=None) -> int:
    import argparse
    parser = argparse.ArgumentParser(description='Export price feed rounds in a time range to CSV')
    parser.add_argument('--address', required=True, help='Feed proxy address')
    parser.add_argument('--chain', required=True, help='Chain name, e.g. mainnet')
    parser.add_argument('--start', required=True, type=parse_time,
                        help='Start (unix seconds or ISO date)')
    parser.add_argument('--end', type=parse_time, default=None,
                        help='End (unix seconds or ISO date); defaults to --start')
    parser.add_argument('--strategy', choices=STRATEGIES, default='phased')
    parser.add_argument('--out', default=os.path.join(PROJECT_ROOT, DATA_DIR, EXPORT_CSV_NAME),
                        help='Output CSV path')
    parser.add_argument('--timeout', type=float, default=None,
                        help='Give up after this many seconds')
    parser.add_argument('--verbose', action='store_true')
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    end = args.end if args.end is not None else args.start

    try:
        history = run_query(args.address, args.chain, args.start, end,
                            strategy=args.strategy, config=ResolverConfig.from_env(),
                            timeout=args.timeout)
    except RoundResolverError as e:
        logger.error("%s: %s", e.error_code, e.message)
        return 1

    if not history.rounds:
        logger.warning("No rounds between %s and %s", args.start, end)

    path = export_rounds_csv(args.out, history)
    logger.info("%s: wrote %s round(s) to %s%s", history.description, len(history.rounds), path,
                "" if history.complete else " (partial)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
