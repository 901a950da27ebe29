# scheduler/scheduler.py
import asyncio
import os
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dotenv import load_dotenv
from bookstore.db import get_db, get_books_collection, ensure_collection, MONGO_COLLECTION
from bookstore.queries import QueryFacade
from scheduler.reporter import generate_catalog_report

load_dotenv()
REPORT_INTERVAL_MINUTES = int(os.getenv("REPORT_INTERVAL_MINUTES", "1440"))

logger = logging.getLogger("scheduler")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
logger.addHandler(handler)


async def scheduled_report():
    """
    Ensure the collection and its indexes exist, then produce the report.

    Returns:
        list[str]: Paths of the generated report files
    """
    logger.info("Starting scheduled catalog report")
    await ensure_collection(get_db(), MONGO_COLLECTION)
    queries = QueryFacade(get_books_collection())
    await queries.ensure_indexes()
    paths = await generate_catalog_report(queries)
    logger.info(f"Scheduled report finished, {len(paths)} files written")
    return paths


def build_scheduler(interval_minutes=REPORT_INTERVAL_MINUTES):
    """Return an AsyncIOScheduler with the report job registered (not started)."""
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        scheduled_report,
        "interval",
        minutes=interval_minutes,
        id="catalog_report",
    )
    return scheduler


async def async_main():
    scheduler = build_scheduler()
    scheduler.start()
    logger.info(f"Scheduler started (every {REPORT_INTERVAL_MINUTES} min)")
    # Keep program running forever
    await asyncio.Event().wait()


if __name__ == "__main__":
    asyncio.run(async_main())
