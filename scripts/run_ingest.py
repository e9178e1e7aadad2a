#!/usr/bin/env python
"""
Entry point for the scheduled ingest run.

Called by the scheduler with the shared secret; prints the trigger response
as JSON and exits non-zero unless the run answered 200.

Usage:
    python scripts/run_ingest.py --secret <secret>
    VEILLE_CRON_SECRET=<secret> python scripts/run_ingest.py
    python scripts/run_ingest.py --secret <secret> --type FEED
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from veille.core.constants import SOURCE_TYPES
from veille.core.logging import setup_logging
from veille.settings import settings
from veille.trigger import trigger_ingest


def main():
    """Run one ingest through the secret-gated trigger."""
    parser = argparse.ArgumentParser(description="Run the opportunity ingestion")
    parser.add_argument(
        "--secret",
        default=os.environ.get("VEILLE_CRON_SECRET"),
        help="Trigger secret (defaults to VEILLE_CRON_SECRET)",
    )
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        choices=SOURCE_TYPES,
        help="Only run sources of this type (repeatable)",
    )
    args = parser.parse_args()

    setup_logging(settings)

    response = trigger_ingest(args.secret, source_types=args.types)
    print(response.model_dump_json(indent=2))

    return 0 if response.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
