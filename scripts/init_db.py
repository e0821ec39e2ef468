"""
Create the payment tables directly from the models.

Prefer `alembic upgrade head` for managed databases; this is for local setups.
"""

import asyncio
import os
import sys

# Add project root to python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from nepali_payment.database import close_db, engine, init_db


async def main():
    if engine is None:
        print("DATABASE_URL not configured.")
        return

    print("Creating payment tables...")
    await init_db()
    await close_db()
    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
