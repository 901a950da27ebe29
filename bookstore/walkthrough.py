# bookstore/walkthrough.py
import asyncio
import json
import os
import logging
from dotenv import load_dotenv
from .db import get_db, get_books_collection, ensure_collection, MONGO_COLLECTION
from .queries import QueryFacade

load_dotenv()
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "5"))

logger = logging.getLogger("walkthrough")
logger.setLevel(logging.INFO)
handler = logging.StreamHandler()
handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
logger.addHandler(handler)


def show(label, data):
    logger.info(label)
    print(json.dumps(data, indent=2, default=str))


async def run(queries, page_size=PAGE_SIZE):
    """
    Run every example query in order and print the results.

    Mirrors the classroom walkthrough: basic CRUD, advanced finds,
    pagination, aggregations, then indexing with explain() before and
    after. The update and delete steps modify the collection.

    The "before" explain is only a baseline on a collection without the
    title index. Once a run has created the indexes, later runs report the
    index scan both times; drop the indexes on a dev/test copy first to
    compare again.
    """
    show("Fantasy books", await queries.find_by_genre("Fantasy").to_list(length=None))
    show(
        "Published after 2015",
        await queries.find_published_after(2015).to_list(length=None),
    )
    show(
        "Books by Maria Njeri",
        await queries.find_by_author("Maria Njeri").to_list(length=None),
    )

    await queries.update_price("The Silent River", 14.99)
    show("After price update", await queries.find_by_title("The Silent River"))

    await queries.delete_by_title("Rust and Roses")
    show("After delete", await queries.find_by_title("Rust and Roses"))

    show(
        "In stock and published after 2010",
        await queries.find_in_stock_after_year(2010).to_list(length=None),
    )
    show("Title, author, price", await queries.project_all().to_list(length=None))
    show("Price ascending", await queries.sort_by_price("asc").to_list(length=None))
    show("Price descending", await queries.sort_by_price("desc").to_list(length=None))

    for page in (1, 2):
        books = await queries.paginate(page, page_size)
        show(f"--- Page {page} ---", [b.model_dump() for b in books])

    genres = await queries.average_price_by_genre()
    show("Average price by genre", [g.model_dump(by_alias=True) for g in genres])
    top = await queries.top_author_by_book_count()
    show("Author with most books", top.model_dump() if top else None)
    decades = await queries.count_by_decade()
    show("Books per decade", [d.model_dump() for d in decades])

    before = await queries.explain_title_lookup("The Silent River")
    show("=== explain BEFORE creating index ===", before.model_dump())
    await queries.ensure_indexes()
    after = await queries.explain_title_lookup("The Silent River")
    show("=== explain AFTER creating index on title ===", after.model_dump())


async def main():
    await ensure_collection(get_db(), MONGO_COLLECTION)
    await run(QueryFacade(get_books_collection()))


if __name__ == "__main__":
    asyncio.run(main())
