#!/usr/bin/env python3
"""
Migration Script - Create missing tables and add new columns

Runs the same idempotent schema sync the API performs at startup:
- creates any missing table
- adds columns introduced after the initial release
- replaces status CHECK constraints

Usage:
    python scripts/migrate_add_columns.py

    # Or via docker:
    docker-compose exec api python scripts/migrate_add_columns.py
"""
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def run_migration():
    """Run all pending schema migrations"""
    try:
        from onkur.db.database import Base, engine
        from onkur.db.migrations import POSTGRES_MIGRATIONS, run_migrations
    except ImportError as e:
        print(f"Error importing database modules: {e}")
        sys.exit(1)

    print("=" * 60)
    print("Onkur Database Migration - Schema Sync")
    print("=" * 60)

    try:
        Base.metadata.create_all(bind=engine)
        print(f"\n→ Tables checked ({len(Base.metadata.tables)} defined)")

        print(f"→ Applying {len(POSTGRES_MIGRATIONS)} column/constraint migrations...")
        applied, failed = run_migrations(engine)

        print("\n" + "=" * 60)
        print("MIGRATION COMPLETE")
        print("=" * 60)
        print(f"  Applied: {applied}")
        print(f"  Errors:  {failed}")
        print()

        return failed == 0

    except Exception as e:
        print(f"\nFatal error: {e}")
        return False


if __name__ == "__main__":
    success = run_migration()
    sys.exit(0 if success else 1)
