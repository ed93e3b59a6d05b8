"""
Initialises the local SQLite database and stores the default settings.
Run this once before first use, or anytime to repair missing tables.

Pass --sync to pull the published price sheet straight away.
"""

import argparse
import sys

from dotenv import load_dotenv

from diamond_calc.config import ROOT_DIR, get_config
from diamond_calc.db import get_connection, init_db
from diamond_calc.logger import setup_logging
from diamond_calc.providers.google_sheet import sync_from_sheet


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Initialise the estimates database.")
    parser.add_argument("--sync", action="store_true", help="Sync settings from the price sheet after init")
    args = parser.parse_args(argv)

    load_dotenv(dotenv_path=ROOT_DIR / ".env")
    setup_logging(get_config().log_level)

    conn = get_connection()
    init_db(conn)
    print(f"Database initialised at {get_config().db_path}.")

    if args.sync:
        result = sync_from_sheet(conn)
        if not result.success:
            print(f"Sync failed: {result.error}", file=sys.stderr)
            return 1
        print(f"Synced {result.stone_type_count} stone types at {result.synced_at}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
