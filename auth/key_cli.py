"""Command line tool for issuing API keys."""
import argparse
import os
import sys
from datetime import date, datetime, timedelta
from typing import List, Optional

from auth.api_key import ConfigurationError, generate_api_key

DEFAULT_VALIDITY_DAYS = 30


def parse_expiry(value: str) -> date:
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid expiry date '{value}', expected YYYY-MM-DD")


def main(argv: Optional[List[str]] = None) -> int:
    """
    Print a new API key signed with MASTER_KEY.

    Args:
        argv: Command line arguments (defaults to sys.argv)

    Returns:
        Process exit code
    """
    parser = argparse.ArgumentParser(description="Generate a signed calendar API key")
    parser.add_argument(
        'expiry',
        nargs='?',
        type=parse_expiry,
        default=date.today() + timedelta(days=DEFAULT_VALIDITY_DAYS),
        help="last valid day, YYYY-MM-DD (default: 30 days from today)"
    )
    parser.add_argument(
        '--master-key',
        default=os.environ.get('MASTER_KEY'),
        help="signing secret (default: $MASTER_KEY)"
    )
    args = parser.parse_args(argv)

    try:
        api_key = generate_api_key(args.master_key, args.expiry)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Expires: {args.expiry.isoformat()}", file=sys.stderr)
    print(api_key)
    return 0


if __name__ == '__main__':
    sys.exit(main())
