"""Script to create the booking tables without running migrations."""

import asyncio

from carebook.database import engine
from carebook.models import metadata


async def init_db() -> None:
    """Create appointments, slot claims and schedule tables."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    await engine.dispose()
    print(f"✓ Created tables: {', '.join(sorted(metadata.tables))}")


if __name__ == "__main__":
    asyncio.run(init_db())
