#!/usr/bin/env python3
"""
Delete expired payment challenges. Safe to run from cron at any interval.
Run from the project root: python -m scripts.purge_challenges
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.api.deps import get_challenge_terms
from app.core.logging import configure_logging
from app.db.session import SessionLocal
from app.services.challenges.service import ChallengeService


def main():
    configure_logging()
    db = SessionLocal()
    try:
        deleted = ChallengeService(db, get_challenge_terms()).purge_expired()
        print(f"Expired challenges deleted: {deleted}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
