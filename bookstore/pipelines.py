# bookstore/pipelines.py
"""
Filter, projection, sort and aggregation descriptors for the books collection.

Every function here is pure: it returns a fresh MongoDB descriptor and never
touches the database. QueryFacade hands the results to the collection.
"""
from pymongo import ASCENDING, DESCENDING

SUMMARY_PROJECTION = {"title": 1, "author": 1, "price": 1, "_id": 0}
PRICE_PROJECTION = {"title": 1, "price": 1, "_id": 0}
LISTING_PROJECTION = {"title": 1, "author": 1, "published_year": 1, "_id": 0}

TITLE_INDEX = ([("title", ASCENDING)], "title_1")
AUTHOR_YEAR_INDEX = (
    [("author", ASCENDING), ("published_year", DESCENDING)],
    "author_1_published_year_-1",
)
INDEXES = [TITLE_INDEX, AUTHOR_YEAR_INDEX]

_DIRECTIONS = {
    "asc": ASCENDING,
    "ascending": ASCENDING,
    "desc": DESCENDING,
    "descending": DESCENDING,
    ASCENDING: ASCENDING,
    DESCENDING: DESCENDING,
}


def parse_direction(direction):
    """
    Normalize a sort direction to pymongo.ASCENDING or pymongo.DESCENDING.

    Accepts "asc"/"ascending"/1 and "desc"/"descending"/-1 (strings are
    case-insensitive).

    Raises:
        ValueError: for anything else
    """
    if isinstance(direction, bool):
        raise ValueError(f"Unknown sort direction: {direction!r}")
    key = direction.lower() if isinstance(direction, str) else direction
    try:
        return _DIRECTIONS[key]
    except (KeyError, TypeError):
        raise ValueError(f"Unknown sort direction: {direction!r}") from None


def genre_filter(genre):
    return {"genre": genre}


def author_filter(author):
    return {"author": author}


def title_filter(title):
    return {"title": title}


def published_after_filter(year):
    """Strictly later than `year`."""
    return {"published_year": {"$gt": year}}


def in_stock_after_year_filter(year):
    return {"in_stock": True, "published_year": {"$gt": year}}


def price_sort(direction):
    """Sort by price, then title so equal prices come back in a stable order."""
    return [("price", parse_direction(direction)), ("title", ASCENDING)]


def title_sort():
    return [("title", ASCENDING)]


def average_price_by_genre_pipeline():
    """
    Average price and book count per genre, highest average first.

    Output rows: {"genre": ..., "avgPrice": ..., "count": ...}. Genres with
    equal averages are ordered by genre name.
    """
    return [
        {
            "$group": {
                "_id": "$genre",
                "avgPrice": {"$avg": "$price"},
                "count": {"$sum": 1},
            }
        },
        {"$sort": {"avgPrice": DESCENDING, "_id": ASCENDING}},
        {"$project": {"_id": 0, "genre": "$_id", "avgPrice": 1, "count": 1}},
    ]


def top_author_pipeline():
    """
    The single author with the most books.

    Ties resolve to the alphabetically first author; the $limit keeps the
    result to one row either way.
    """
    return [
        {"$group": {"_id": "$author", "count": {"$sum": 1}}},
        {"$sort": {"count": DESCENDING, "_id": ASCENDING}},
        {"$limit": 1},
        {"$project": {"_id": 0, "author": "$_id", "count": 1}},
    ]


def count_by_decade_pipeline():
    """
    Book counts per publication decade, oldest decade first.

    decade = published_year - (published_year mod 10), so 2015 -> 2010.
    """
    return [
        {
            "$project": {
                "title": 1,
                "published_year": 1,
                "decade": {
                    "$subtract": [
                        "$published_year",
                        {"$mod": ["$published_year", 10]},
                    ]
                },
            }
        },
        {"$group": {"_id": "$decade", "count": {"$sum": 1}}},
        {"$sort": {"_id": ASCENDING}},
        {"$project": {"_id": 0, "decade": "$_id", "count": 1}},
    ]
