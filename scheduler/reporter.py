# scheduler/reporter.py
import os
import json
from datetime import datetime, timezone
from bookstore.db import get_books_collection
from bookstore.queries import QueryFacade
from utils.alerts import send_alert
import pandas as pd
import logging

logger = logging.getLogger("reporter")
logger.setLevel(logging.INFO)

REPORT_DIR = os.getenv("REPORT_DIR", "./reports")


async def collect_catalog_stats(queries):
    """
    Run the catalog aggregations and return them as plain dicts.

    Returns:
        dict: total, genres (avgPrice/count per genre), top_author and
        decades, in the same shape the API returns them
    """
    genres = await queries.average_price_by_genre()
    top = await queries.top_author_by_book_count()
    decades = await queries.count_by_decade()
    return {
        "total": await queries.count_all(),
        "genres": [g.model_dump(by_alias=True) for g in genres],
        "top_author": top.model_dump() if top else None,
        "decades": [d.model_dump() for d in decades],
    }


async def generate_catalog_report(queries=None, report_dir=None):
    """
    Write the catalog statistics report and e-mail it.

    Collects the genre price averages, the top author and the per-decade
    counts, writes them to disk and sends them as attachments.

    Args:
        queries (QueryFacade, optional): Facade to query. Defaults to one
            bound to the configured books collection.
        report_dir (str, optional): Output directory. Defaults to REPORT_DIR.

    Returns:
        list[str]: Paths of the generated files

    Output Files:
        - {report_dir}/catalog_{YYYY-MM-DD}.json
        - {report_dir}/genres_{YYYY-MM-DD}.csv
        - {report_dir}/decades_{YYYY-MM-DD}.csv

    Note:
        Uses UTC dates. An empty collection still produces the files, with
        empty CSVs and a "No books" subject line.
    """
    queries = queries or QueryFacade(get_books_collection())
    report_dir = report_dir or REPORT_DIR
    os.makedirs(report_dir, exist_ok=True)

    stats = await collect_catalog_stats(queries)
    now = datetime.now(timezone.utc)
    stamp = now.date().isoformat()
    stats["generated_at"] = now.isoformat()

    json_path = os.path.join(report_dir, f"catalog_{stamp}.json")
    genres_path = os.path.join(report_dir, f"genres_{stamp}.csv")
    decades_path = os.path.join(report_dir, f"decades_{stamp}.csv")

    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(stats, f, indent=2)

    pd.DataFrame(stats["genres"], columns=["genre", "avgPrice", "count"]).to_csv(
        genres_path, index=False
    )
    pd.DataFrame(stats["decades"], columns=["decade", "count"]).to_csv(
        decades_path, index=False
    )
    logger.info(f"Generated catalog report: {json_path}, {genres_path}, {decades_path}")

    if not stats["total"]:
        subject = "[Bookstore] No books in catalog"
    else:
        subject = f"[Bookstore] Catalog report: {stats['total']} book(s)"

    body = (
        "Catalog statistics\n\n"
        f"Report generated at: {stats['generated_at']}\n"
        f"Total books: {stats['total']}\n"
    )
    if stats["top_author"]:
        body += (
            f"Top author: {stats['top_author']['author']} "
            f"({stats['top_author']['count']} books)\n"
        )
    body += "\nAverage price by genre:\n"
    for row in stats["genres"]:
        avg = "n/a" if row["avgPrice"] is None else f"{row['avgPrice']:.2f}"
        body += f"- {row['genre']}: {avg} over {row['count']} book(s)\n"
    body += "\nAttached are the JSON and CSV reports.\n"

    paths = [json_path, genres_path, decades_path]
    send_alert(subject, body, attachments=paths)
    return paths
