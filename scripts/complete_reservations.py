"""
Mark elapsed reservations as completed.

Every PENDING reservation dated before the cut-off (today by default)
becomes COMPLETED. Meant to run once a day from cron.

Usage: python scripts/complete_reservations.py [YYYY-MM-DD]
"""

import sys
import os
import logging
from datetime import date
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shared.database import SessionLocal
from shared.reservations import ReservationEngine

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def main():
    """Complete elapsed reservations."""
    cutoff = date.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else date.today()

    db = SessionLocal()
    try:
        count = ReservationEngine(db, notify=False).complete_elapsed(cutoff)
    finally:
        db.close()

    print(f"Completed {count} reservation(s) dated before {cutoff.isoformat()}")


if __name__ == "__main__":
    main()
