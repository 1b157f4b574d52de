# create_tables.py
# Local/dev shortcut: create every table straight from the models (production uses alembic).
import asyncio

from orderhub.db import Base, async_engine
from orderhub.db.base import init_models


async def main() -> None:
    init_models()
    async with async_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    await async_engine.dispose()


if __name__ == "__main__":
    print("creating orderhub tables...")
    asyncio.run(main())
    print("done")
