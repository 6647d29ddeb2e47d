# scripts/setup/init_db.py
"""
Initialize database — creates the fleet tables.
Run once before first launch, or after adding new models.
Usage: python scripts/setup/init_db.py [--seed-settings EMPRESA_ID]
"""

import argparse
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from app.database import create_tables, engine, SessionLocal
from app.config import settings
from app.models.company_import_settings import CompanyImportSettings
from sqlalchemy import inspect, text


def seed_settings(empresa_id: str):
    """Default import settings row: auto-fill on, empty_only policy."""
    db = SessionLocal()
    try:
        if db.query(CompanyImportSettings).filter(CompanyImportSettings.empresa_id == empresa_id).first():
            print(f"ℹ️  Import settings for {empresa_id} already exist")
            return
        db.add(CompanyImportSettings(empresa_id=empresa_id, auto_fill_enabled=True,
                                     update_policy="empty_only", allowed_fields=[], category_mapping={}))
        db.commit()
        print(f"✅ Import settings created for {empresa_id}")
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(description="Create fleet tables")
    parser.add_argument("--seed-settings", metavar="EMPRESA_ID",
                        help="also create default import settings for this company")
    args = parser.parse_args()

    print("🗄️  Fleet DB Initialization")
    print("=" * 40)
    print(f"📡 Database: {settings.DATABASE_URL}")

    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print("✅ Database connection OK")
    except Exception as e:
        print(f"❌ Cannot connect to database: {e}")
        print("\nMake sure PostgreSQL is running:")
        print("  docker-compose up -d db")
        print("  # or: sudo systemctl start postgresql")
        sys.exit(1)

    print("\n📋 Creating tables...")
    create_tables()
    print("✅ All tables created")

    tables = sorted(inspect(engine).get_table_names())
    print(f"\n📊 Tables in database ({len(tables)} total):")
    for t in tables:
        print(f"   ✓ {t}")

    if args.seed_settings:
        seed_settings(args.seed_settings)

    print("\n🎉 Database ready! You can now start the backend:")
    print("   uvicorn app.main:app --host 0.0.0.0 --port 8080 --reload")


if __name__ == "__main__":
    main()
