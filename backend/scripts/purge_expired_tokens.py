"""
Purge expired revocation entries, refresh/CSRF/reset tokens and stale login attempts.

Run from backend/: python scripts/purge_expired_tokens.py [--interval SECONDS]
Without --interval it runs once (suitable for cron).
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from farmauth.core.database import SessionLocal  # noqa: E402
from farmauth.services.maintenance_service import purge_expired  # noqa: E402

logger = logging.getLogger("farmauth.purge")


def run_once() -> dict:
    db = SessionLocal()
    try:
        return purge_expired(db)
    finally:
        db.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.strip().splitlines()[0])
    parser.add_argument("--interval", type=int, default=0, help="repeat every N seconds")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    if args.interval <= 0:
        run_once()
        return
    try:
        while True:
            run_once()
            time.sleep(args.interval)
    except KeyboardInterrupt:
        logger.info("Purge loop stopped")


if __name__ == "__main__":
    main()
