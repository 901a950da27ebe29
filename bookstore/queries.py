# bookstore/queries.py
import logging
from .models import (
    AuthorBookCount,
    BookSummary,
    DecadeCount,
    ExplainSummary,
    GenrePriceStats,
    PageRequest,
)
from .pipelines import (
    INDEXES,
    LISTING_PROJECTION,
    PRICE_PROJECTION,
    SUMMARY_PROJECTION,
    author_filter,
    average_price_by_genre_pipeline,
    count_by_decade_pipeline,
    genre_filter,
    in_stock_after_year_filter,
    price_sort,
    published_after_filter,
    title_filter,
    title_sort,
    top_author_pipeline,
)

logger = logging.getLogger("queries")
logger.setLevel(logging.INFO)


def _plan_uses_index(plan):
    """Walk a winning plan tree and report whether any stage is an IXSCAN."""
    if not plan:
        return False
    if plan.get("stage") == "IXSCAN":
        return True
    if _plan_uses_index(plan.get("inputStage")):
        return True
    return any(_plan_uses_index(p) for p in plan.get("inputStages", []))


class QueryFacade:
    """
    Example queries over a books collection.

    The facade holds nothing but the collection handle it was given. Each
    method builds its descriptors, sends one request and hands back what the
    driver returns; errors raised by the driver propagate untouched.

    Finder methods return the Motor cursor itself, so results are lazy and
    every call starts a fresh query. Consume them with
    ``await cursor.to_list(length=None)`` or ``async for``.
    """

    def __init__(self, collection):
        self.collection = collection

    def find_by_genre(self, genre):
        """Books in `genre` (exact match), projected to title, author, price."""
        q = genre_filter(genre)
        logger.debug(f"find {q}")
        return self.collection.find(q, SUMMARY_PROJECTION)

    def find_published_after(self, year):
        """Books with published_year strictly greater than `year`."""
        q = published_after_filter(year)
        logger.debug(f"find {q}")
        return self.collection.find(q, {"_id": 0})

    def find_by_author(self, author):
        q = author_filter(author)
        logger.debug(f"find {q}")
        return self.collection.find(q, {"_id": 0})

    def find_in_stock_after_year(self, year):
        """In-stock books published after `year`, as title/author/published_year."""
        q = in_stock_after_year_filter(year)
        logger.debug(f"find {q}")
        return self.collection.find(q, LISTING_PROJECTION)

    def project_all(self):
        return self.collection.find({}, SUMMARY_PROJECTION)

    def sort_by_price(self, direction="asc"):
        """
        All books as title/price, ordered by price.

        Args:
            direction: "asc"/"desc" or pymongo.ASCENDING/DESCENDING

        Raises:
            ValueError: if `direction` is not a recognised sort direction
        """
        order = price_sort(direction)
        return self.collection.find({}, PRICE_PROJECTION).sort(order)

    async def find_by_title(self, title, projection=PRICE_PROJECTION):
        """
        Look up a single book by title.

        Used to verify the effect of update_price and delete_by_title.

        Args:
            title (str): Exact title
            projection (dict, optional): Fields to return. Defaults to
                title and price; pass None for the whole document.

        Returns:
            dict or None: The first matching document, or None
        """
        return await self.collection.find_one(title_filter(title), projection)

    async def count_all(self):
        return await self.collection.count_documents({})

    async def update_price(self, title, new_price):
        """
        Set the price of the first book with the given title.

        Never inserts: a title with no match leaves the collection unchanged.

        Args:
            title (str): Exact title of the book to update
            new_price (float): New price, must be positive

        Returns:
            int: Number of documents modified (0 or 1)

        Raises:
            ValueError: if new_price is not positive
        """
        if new_price <= 0:
            raise ValueError(f"Price must be positive, got {new_price}")
        res = await self.collection.update_one(
            title_filter(title), {"$set": {"price": new_price}}
        )
        logger.info(f"Updated price of {title!r} to {new_price}: {res.modified_count} modified")
        return res.modified_count

    async def delete_by_title(self, title):
        """Remove at most one book with the given title and return the count."""
        res = await self.collection.delete_one(title_filter(title))
        logger.info(f"Deleted {title!r}: {res.deleted_count} removed")
        return res.deleted_count

    async def paginate(self, page, page_size):
        """
        Return one page of books ordered by title.

        The full result set is projected to title/author/price, sorted by
        title ascending, then windowed to [offset, offset + page_size) where
        offset = (page - 1) * page_size. The last page may be short and pages
        past the end are empty.

        Args:
            page (int): 1-based page number
            page_size (int): Books per page

        Returns:
            list[BookSummary]: At most page_size books

        Raises:
            pydantic.ValidationError: if page < 1 or page_size < 1
        """
        req = PageRequest(page=page, page_size=page_size)
        cursor = (
            self.collection.find({}, SUMMARY_PROJECTION)
            .sort(title_sort())
            .skip(req.offset)
            .limit(req.page_size)
        )
        docs = await cursor.to_list(length=req.page_size)
        logger.debug(f"Page {req.page} (size {req.page_size}): {len(docs)} books")
        return [BookSummary(**d) for d in docs]

    async def average_price_by_genre(self):
        """One row per genre with its mean price and book count, highest mean first."""
        docs = await self.collection.aggregate(
            average_price_by_genre_pipeline()
        ).to_list(length=None)
        return [GenrePriceStats(**d) for d in docs]

    async def top_author_by_book_count(self):
        """
        The author with the most books, or None for an empty collection.

        Exactly one row is returned even when several authors share the top
        count; the alphabetically first one wins.
        """
        docs = await self.collection.aggregate(top_author_pipeline()).to_list(
            length=None
        )
        if not docs:
            return None
        return AuthorBookCount(**docs[0])

    async def count_by_decade(self):
        docs = await self.collection.aggregate(count_by_decade_pipeline()).to_list(
            length=None
        )
        return [DecadeCount(**d) for d in docs]

    async def ensure_indexes(self):
        """
        Create the title index and the (author asc, published_year desc) index.

        create_index is a no-op for an index that already exists with the same
        keys and name, so repeated calls leave a single copy of each.

        Returns:
            list[str]: Names of the ensured indexes
        """
        names = []
        for keys, name in INDEXES:
            names.append(await self.collection.create_index(keys, name=name))
        logger.info(f"Ensured indexes {names}")
        return names

    async def explain_title_lookup(self, title):
        """
        Run explain() on a title lookup and keep the numbers worth comparing.

        Compare the summary before and after ensure_indexes(): with the title
        index in place the winning plan uses an IXSCAN and far fewer documents
        are examined.

        Args:
            title (str): Title to look up

        Returns:
            ExplainSummary: executionTimeMillis, totalDocsExamined,
            totalKeysExamined and whether an index scan was used
        """
        plan = await self.collection.find(title_filter(title)).explain()
        stats = plan.get("executionStats", {})
        winning = plan.get("queryPlanner", {}).get("winningPlan", {})
        winning = winning.get("queryPlan", winning)
        return ExplainSummary(
            execution_time_millis=stats.get("executionTimeMillis"),
            total_docs_examined=stats.get("totalDocsExamined"),
            total_keys_examined=stats.get("totalKeysExamined"),
            index_used=_plan_uses_index(winning),
        )
