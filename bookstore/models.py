# bookstore/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


class Book(BaseModel):
    title: str
    author: Optional[str] = None
    genre: Optional[str] = None
    published_year: Optional[int] = None
    price: Optional[float] = None
    in_stock: Optional[bool] = None


class BookSummary(BaseModel):
    title: str
    author: Optional[str] = None
    price: Optional[float] = None


class BookPrice(BaseModel):
    title: str
    price: Optional[float] = None


class BookListing(BaseModel):
    title: str
    author: Optional[str] = None
    published_year: Optional[int] = None


class PriceUpdate(BaseModel):
    price: float = Field(..., gt=0)


class PageRequest(BaseModel):
    """
    A validated pagination request.

    Pages are 1-based. Constructing a request with page < 1 or
    page_size < 1 raises pydantic.ValidationError instead of producing a
    negative offset.
    """

    page: int = Field(..., ge=1)
    page_size: int = Field(..., ge=1)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class GenrePriceStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    genre: Optional[str] = None
    avg_price: Optional[float] = Field(None, alias="avgPrice")
    count: int


class AuthorBookCount(BaseModel):
    author: Optional[str] = None
    count: int


class DecadeCount(BaseModel):
    decade: Optional[int] = None
    count: int


class ExplainSummary(BaseModel):
    execution_time_millis: Optional[int] = None
    total_docs_examined: Optional[int] = None
    total_keys_examined: Optional[int] = None
    index_used: bool = False
