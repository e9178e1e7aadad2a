"""
Database initialization script.

Creates all tables and optionally seeds the source registry with the
default BOAMP dataset source; feeds are added from the dashboard.

Usage:
    python scripts/init_db.py [--seed]
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from veille.core.constants import SOURCE_TYPE_STRUCTURED_API
from veille.db.models import Base, Source
from veille.db.session import get_engine, get_session

DEFAULT_SOURCES = [
    {
        "name": "BOAMP (DILA open data)",
        "type": SOURCE_TYPE_STRUCTURED_API,
        "url": "https://boamp-datadila.opendatasoft.com/api/explore/v2.1/catalog/datasets/boamp/records",
    },
]


def init_database():
    """Create all database tables."""
    print("Creating database tables...")
    Base.metadata.create_all(get_engine())
    print("Tables created successfully.")


def seed_sources() -> int:
    """Insert the default sources that are not registered yet."""
    added = 0
    with get_session() as db:
        for entry in DEFAULT_SOURCES:
            existing = db.query(Source).filter_by(url=entry["url"]).first()
            if existing:
                print(f"Source already registered: {existing.name}")
                continue
            db.add(Source(is_active=True, **entry))
            added += 1
            print(f"Source added: {entry['name']} ({entry['type']})")
    return added


def main():
    parser = argparse.ArgumentParser(description="Create tables and seed sources")
    parser.add_argument("--seed", action="store_true", help="Insert the default sources")
    args = parser.parse_args()

    init_database()
    if args.seed:
        seed_sources()
    return 0


if __name__ == "__main__":
    sys.exit(main())
