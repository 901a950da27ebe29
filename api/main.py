# api/main.py
from fastapi import FastAPI, Depends, Query, HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import os
from dotenv import load_dotenv
from .auth import get_api_key
from .rate_limit import register_rate_limit, limiter, RATE_LIMIT
from bookstore.db import get_books_collection
from bookstore.models import PriceUpdate
from bookstore.queries import QueryFacade
import logging

load_dotenv()
API_PORT = int(os.getenv("API_PORT", "8000"))
PAGE_SIZE = int(os.getenv("PAGE_SIZE", "5"))

app = FastAPI(title="Bookstore Queries API", version="1.0")

register_rate_limit(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["*"],
)

logger = logging.getLogger("api")
logger.setLevel(logging.INFO)


def get_queries():
    """Build a QueryFacade bound to the configured books collection."""
    return QueryFacade(get_books_collection())


async def collect(cursor):
    return await cursor.to_list(length=None)


@app.get("/books", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_by_genre(request: Request, genre: str = Query(...)):
    """
    List books of one genre as title, author and price.

    Args:
        request (Request): FastAPI request object (required for rate limiting)
        genre (str): Exact genre to match

    Returns:
        dict: {"results": [...]}, empty when nothing matches
    """
    return {"results": await collect(get_queries().find_by_genre(genre))}


@app.get("/books/published-after/{year}", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_published_after(request: Request, year: int):
    return {"results": await collect(get_queries().find_published_after(year))}


@app.get("/books/by-author", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_by_author(request: Request, author: str = Query(...)):
    return {"results": await collect(get_queries().find_by_author(author))}


@app.get("/books/in-stock", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_in_stock(request: Request, after_year: int = Query(...)):
    """In-stock books published after `after_year` (title, author, published_year)."""
    return {"results": await collect(get_queries().find_in_stock_after_year(after_year))}


@app.get("/books/projection", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_projection(request: Request):
    return {"results": await collect(get_queries().project_all())}


@app.get("/books/by-price", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_by_price(request: Request, order: str = Query("asc", pattern="^(asc|desc)$")):
    """
    All books as title and price, sorted by price.

    Args:
        request (Request): FastAPI request object (required for rate limiting)
        order (str): 'asc' (cheapest first) or 'desc'. Defaults to 'asc'

    Returns:
        dict: {"order": ..., "results": [...]}
    """
    return {"order": order, "results": await collect(get_queries().sort_by_price(order))}


@app.get("/books/page", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def books_page(
    request: Request,
    page: int = Query(1, ge=1),
    page_size: int = Query(PAGE_SIZE, ge=1, le=200),
):
    """
    One page of books ordered by title.

    Args:
        request (Request): FastAPI request object (required for rate limiting)
        page (int): Page number, must be >= 1. Defaults to 1
        page_size (int): Books per page, must be 1-200. Defaults to PAGE_SIZE

    Returns:
        JSONResponse: Paginated response containing:
            - page (int): Current page number
            - page_size (int): Number of items per page
            - total (int): Total number of books in the collection
            - results (list[dict]): title, author and price of each book

    Note:
        Pages past the end return an empty results list, not an error.
    """
    queries = get_queries()
    total = await queries.count_all()
    books = await queries.paginate(page, page_size)
    return JSONResponse(
        {
            "page": page,
            "page_size": page_size,
            "total": total,
            "results": [b.model_dump() for b in books],
        }
    )


@app.get("/book", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def book_by_title(request: Request, title: str = Query(...)):
    """
    Retrieve a single book by its exact title.

    The title travels as a query parameter so that any title, including
    ones containing "/" or matching a /books/... route, can be looked up.

    Raises:
        HTTPException: 404 if no book has the given title
    """
    doc = await get_queries().find_by_title(title, projection={"_id": 0})
    if not doc:
        raise HTTPException(status_code=404, detail="Book not found")
    return doc


@app.patch("/book/price", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def update_book_price(
    request: Request, body: PriceUpdate, title: str = Query(...)
):
    """
    Set the price of the book with the given title.

    Args:
        request (Request): FastAPI request object (required for rate limiting)
        title (str): Exact title of the book
        body (PriceUpdate): JSON body {"price": <positive number>}

    Returns:
        dict: {"title": ..., "modified": 0 or 1}

    Note:
        A title with no match is not created; modified is 0 in that case
        and also when the price was already the requested value.
    """
    modified = await get_queries().update_price(title, body.price)
    return {"title": title, "modified": modified}


@app.delete("/book", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def delete_book(request: Request, title: str = Query(...)):
    deleted = await get_queries().delete_by_title(title)
    return {"title": title, "deleted": deleted}


@app.get("/stats/genres", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def stats_genres(request: Request):
    """Average price and count per genre, highest average first."""
    rows = await get_queries().average_price_by_genre()
    return {"results": [r.model_dump(by_alias=True) for r in rows]}


@app.get("/stats/top-author", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def stats_top_author(request: Request):
    """
    The author with the most books.

    Returns:
        dict: {"result": {"author": ..., "count": ...}} or {"result": None}
        for an empty collection
    """
    top = await get_queries().top_author_by_book_count()
    return {"result": top.model_dump() if top else None}


@app.get("/stats/decades", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def stats_decades(request: Request):
    rows = await get_queries().count_by_decade()
    return {"results": [r.model_dump() for r in rows]}


@app.post("/indexes", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def create_indexes(request: Request):
    names = await get_queries().ensure_indexes()
    logger.info(f"Indexes ensured via API: {names}")
    return {"indexes": names}


@app.get("/explain", dependencies=[Depends(get_api_key)])
@limiter.limit(RATE_LIMIT)
async def explain_title(request: Request, title: str = Query(...)):
    """
    Execution statistics for a lookup by title.

    Useful for comparing the plan before and after POST /indexes.

    Returns:
        dict: execution_time_millis, total_docs_examined,
        total_keys_examined and index_used
    """
    summary = await get_queries().explain_title_lookup(title)
    return summary.model_dump()


# Run uvicorn externally or here
if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host="0.0.0.0", port=API_PORT, reload=True)
