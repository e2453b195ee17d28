"""Apply pending SQL migrations from backend/migrations in version order.

Each file is named ``NNNN_description.sql`` and records its version in
``schema_migrations``; files whose version is already recorded are skipped.
"""

import asyncio
import os
import sys

BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if BACKEND_DIR not in sys.path:
    sys.path.append(BACKEND_DIR)

from app.infra.postgres import close_pool, get_pool

MIGRATION_DIR = os.path.join(BACKEND_DIR, "migrations")


def _version(filename: str) -> str:
    return filename.split("_", 1)[0]


async def _applied_versions(conn) -> set[str]:
    exists = await conn.fetchval("SELECT to_regclass('schema_migrations') IS NOT NULL")
    if not exists:
        return set()
    rows = await conn.fetch("SELECT version FROM schema_migrations")
    return {str(row["version"]) for row in rows}


async def main() -> int:
    if not os.path.isdir(MIGRATION_DIR):
        print("Migrations directory not found.")
        return 1

    files = sorted(f for f in os.listdir(MIGRATION_DIR) if f.endswith(".sql"))
    pool = await get_pool()
    try:
        async with pool.acquire() as conn:
            applied = await _applied_versions(conn)
            for filename in files:
                if _version(filename) in applied:
                    print(f"Skipping {filename} (already applied)")
                    continue
                print(f"Executing {filename}...")
                with open(os.path.join(MIGRATION_DIR, filename), "r", encoding="utf-8") as f:
                    sql = f.read()
                # Each file runs atomically; a failure stops the run.
                async with conn.transaction():
                    await conn.execute(sql)
                print(f"Finished {filename}")
    finally:
        await close_pool()
    return 0


if __name__ == "__main__":
    if sys.platform == "win32":
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())
    sys.exit(asyncio.run(main()))
