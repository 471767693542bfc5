#!/usr/bin/env python3
"""
Create all tables (assets, unlock layers, challenges, payments, entitlements).
Run from the project root: python -m scripts.init_db
or: PYTHONPATH=. python scripts/init_db.py
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db.base import Base
from app.db.session import engine
# Register every table on Base.metadata
from app.models import asset, entitlement, payment_challenge, verified_payment  # noqa: F401


def main():
    Base.metadata.create_all(bind=engine)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    main()
