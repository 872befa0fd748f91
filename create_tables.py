#!/usr/bin/env python3
# create_tables.py - Create database tables
# ============================================================================

import asyncio
import sys

from app.core.database import engine, init_db


async def create_tables():
    try:
        print("🔄 Creating database tables...")
        await init_db()
        print("✅ Database tables created successfully!")
    except Exception as e:
        print(f"❌ Error creating tables: {e}")
        sys.exit(1)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(create_tables())
