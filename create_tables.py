#!/usr/bin/env python3
"""Create the portal's tables (requests, addresses, chat, payments, profiles)"""

import asyncio
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError

from curbside.config import settings
from curbside.db.database import create_schema, engine, masked_url

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def create_tables() -> bool:
    logger.info(f"Creating tables on {masked_url(settings.database_url)}")
    try:
        tables = await create_schema(engine)
    except (SQLAlchemyError, OSError) as e:
        logger.error(f"Failed to create tables: {e}")
        return False
    finally:
        await engine.dispose()

    logger.info(f"Tables present: {', '.join(tables)}")
    return True


if __name__ == "__main__":
    success = asyncio.run(create_tables())
    sys.exit(0 if success else 1)
