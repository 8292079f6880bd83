#!/usr/bin/env python3
"""
Run the maintenance batch once: cleanup, then the integrity report.

For deployments without the in-process scheduler, run daily via cron, e.g.:
    0 3 * * * cd /src && python -m scripts.run_maintenance

Exit code is 1 when cleanup failed or the integrity scan found problems.
"""
import asyncio
import json
import sys

from agrimarket.app.core.database import async_session, engine
from agrimarket.app.core.logging import setup_logging
from agrimarket.app.core.settings import get_settings
from agrimarket.app.services.maintenance import run_maintenance


async def main() -> int:
    settings = get_settings()
    setup_logging(log_level=settings.LOG_LEVEL, json_format=settings.is_production)
    try:
        cleanup, report = await run_maintenance(async_session)
    finally:
        await engine.dispose()

    if cleanup is None:
        print("Cleanup failed, nothing was applied.")
    else:
        print(
            f"Cleanup: {cleanup.expired_feed_posts} feed posts deleted, "
            f"{cleanup.archived_conversations} conversations archived, "
            f"{cleanup.cancelled_orders} pending orders cancelled."
        )
    print(json.dumps(report.to_dict(), indent=2, default=str))
    return 1 if cleanup is None or report.has_issues else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
