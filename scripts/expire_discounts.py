#!/usr/bin/env python
"""Deactivate discounts whose end date has passed.

Intended for cron when the in-process expiry loop is disabled
(DISCOUNT_EXPIRY_INTERVAL_SECONDS=0). Running it twice is harmless.

Usage:
    python scripts/expire_discounts.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.discount_service import DiscountService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    """Main entry point for the expiry script."""
    logger.info("Expiring discounts...")

    try:
        expired = await DiscountService().expire_discounts()
    except Exception as e:
        logger.error("Discount expiry failed: %s", e, exc_info=True)
        sys.exit(1)

    logger.info("Deactivated %d discounts", expired)


if __name__ == "__main__":
    asyncio.run(main())
