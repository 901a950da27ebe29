# tests/conftest.py
import sys
import os

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT_DIR)

from bson import ObjectId
import pytest
from typing import List, Dict, Any
from httpx import ASGITransport, AsyncClient
from fastapi import Request, HTTPException

from api.main import app, get_api_key
from bookstore.queries import QueryFacade

TEST_API_KEY = "testapikey"


def _sort_key(value):
    # MongoDB orders missing/null before any other value
    return (value is not None, value if value is not None else 0)


def _sort_docs(docs, order):
    """
    Stable multi-key sort of dicts, mimicking MongoDB's sort().

    Args:
        docs (list[dict]): Documents, sorted in place
        order (list[tuple]): (field, direction) pairs, most significant first
    """
    for field, direction in reversed(list(order)):
        docs.sort(key=lambda d: _sort_key(d.get(field)), reverse=(direction < 0))
    return docs


def _matches(doc, q):
    """
    Evaluate a MongoDB-style filter against one document.

    Supports exact equality and the comparison operators $gt, $gte, $lt and
    $lte. All conditions are ANDed; a missing field never satisfies a
    comparison operator.
    """
    for k, v in (q or {}).items():
        docv = doc.get(k)
        if isinstance(v, dict):
            if docv is None:
                return False
            if "$gt" in v and not docv > v["$gt"]:
                return False
            if "$gte" in v and not docv >= v["$gte"]:
                return False
            if "$lt" in v and not docv < v["$lt"]:
                return False
            if "$lte" in v and not docv <= v["$lte"]:
                return False
        elif docv != v:
            return False
    return True


def _project(doc, projection):
    """
    Apply a find() projection.

    Inclusion mode when any non-_id field is set to 1, exclusion mode
    otherwise. _id is kept unless explicitly excluded.
    """
    if not projection:
        return dict(doc)
    include = [k for k, v in projection.items() if v and k != "_id"]
    if include:
        out = {k: doc[k] for k in include if k in doc}
        if projection.get("_id", 1) and "_id" in doc:
            out["_id"] = doc["_id"]
        return out
    return {k: v for k, v in doc.items() if projection.get(k, 1)}


def _eval(expr, doc):
    """Evaluate the small subset of aggregation expressions the pipelines use."""
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    if isinstance(expr, dict):
        if "$subtract" in expr:
            a, b = (_eval(e, doc) for e in expr["$subtract"])
            return None if a is None or b is None else a - b
        if "$mod" in expr:
            a, b = (_eval(e, doc) for e in expr["$mod"])
            return None if a is None or b is None else a % b
        raise NotImplementedError(f"Unsupported expression {expr}")
    return expr


def _group(docs, spec):
    groups = {}
    for d in docs:
        key = _eval(spec["_id"], d)
        groups.setdefault(key, []).append(d)
    out = []
    for key, members in groups.items():
        row = {"_id": key}
        for name, acc in spec.items():
            if name == "_id":
                continue
            op, arg = next(iter(acc.items()))
            values = [_eval(arg, m) for m in members]
            values = [v for v in values if isinstance(v, (int, float))]
            if op == "$sum":
                row[name] = sum(values)
            elif op == "$avg":
                row[name] = sum(values) / len(values) if values else None
            else:
                raise NotImplementedError(f"Unsupported accumulator {op}")
        out.append(row)
    return out


def _project_stage(doc, spec):
    out = {}
    if spec.get("_id", 1) and "_id" in doc:
        out["_id"] = doc["_id"]
    for k, v in spec.items():
        if k == "_id":
            continue
        if v is True or v == 1:
            if k in doc:
                out[k] = doc[k]
        elif v is False or v == 0:
            continue
        else:
            out[k] = _eval(v, doc)
    return out


def run_pipeline(docs, pipeline):
    """
    Run an aggregation pipeline over in-memory documents.

    Supports the $group ($sum, $avg), $project (inclusion, renaming,
    $subtract, $mod), $sort and $limit stages.
    """
    docs = [dict(d) for d in docs]
    for stage in pipeline:
        (name, spec), = stage.items()
        if name == "$group":
            docs = _group(docs, spec)
        elif name == "$project":
            docs = [_project_stage(d, spec) for d in docs]
        elif name == "$sort":
            docs = _sort_docs(docs, list(spec.items()))
        elif name == "$limit":
            docs = docs[:spec]
        else:
            raise NotImplementedError(f"Unsupported stage {name}")
    return docs


class FakeCursor:
    def __init__(self, docs: List[Dict[str, Any]], projection=None, explain_doc=None):
        self._docs = list(docs)
        self._projection = projection
        self._explain_doc = explain_doc
        self._skip = 0
        self._limit = None

    def sort(self, order):
        """
        Sort the matched documents by one or more (field, direction) pairs.

        Unlike a single-key sort, every pair is honoured, so secondary keys
        break ties the way MongoDB does.

        Returns:
            FakeCursor: The same cursor, for chaining
        """
        _sort_docs(self._docs, order)
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def limit(self, n: int):
        """Cap the number of returned documents; 0 means no limit, as in MongoDB."""
        self._limit = n or None
        return self

    def _results(self):
        start = self._skip
        end = None if self._limit is None else start + self._limit
        return [_project(d, self._projection) for d in self._docs[start:end]]

    async def to_list(self, length=None):
        """
        Return the projected documents after skip() and limit().

        Args:
            length (int or None): Upper bound on returned documents, like
                Motor. None returns everything.

        Returns:
            list[dict]: Copies of the stored documents
        """
        results = self._results()
        return results if length is None else results[:length]

    def __aiter__(self):
        return self._aiter()

    async def _aiter(self):
        for d in self._results():
            yield d

    async def explain(self):
        return self._explain_doc


class FakeCommandCursor:
    def __init__(self, docs):
        self._docs = docs

    async def to_list(self, length=None):
        return list(self._docs) if length is None else list(self._docs[:length])


class FakeResult:
    def __init__(self, **counts):
        self.__dict__.update(counts)


class FakeCollection:
    """
    In-memory stand-in for a Motor collection.

    Covers the subset of the Motor API that QueryFacade uses: find with
    projections and comparison filters, find_one, update_one ($set only, no
    upsert), delete_one, count_documents, aggregate, create_index,
    index_information and cursor explain().
    """

    def __init__(self, docs=None):
        self.docs = [dict(d) for d in docs or []]
        self.indexes = {"_id_": [("_id", 1)]}
        # ensure all docs have _id as string
        for d in self.docs:
            if "_id" not in d:
                d["_id"] = str(ObjectId())

    def _filter(self, q):
        return [d for d in self.docs if _matches(d, q)]

    def _explain(self, q):
        matched = self._filter(q)
        field = next(iter(q or {}), None)
        indexed = any(keys[0][0] == field for keys in self.indexes.values())
        if indexed:
            plan = {"stage": "FETCH", "inputStage": {"stage": "IXSCAN"}}
            stats = {
                "executionTimeMillis": 0,
                "totalDocsExamined": len(matched),
                "totalKeysExamined": len(matched),
            }
        else:
            plan = {"stage": "COLLSCAN"}
            stats = {
                "executionTimeMillis": 1,
                "totalDocsExamined": len(self.docs),
                "totalKeysExamined": 0,
            }
        return {"queryPlanner": {"winningPlan": plan}, "executionStats": stats}

    async def find_one(self, q, projection=None):
        for d in self.docs:
            if _matches(d, q):
                return _project(d, projection)
        return None

    def find(self, q=None, projection=None):
        q = q or {}
        return FakeCursor(self._filter(q), projection, self._explain(q))

    async def update_one(self, q, u):
        """
        Apply $set to the first matching document.

        Returns:
            FakeResult: matched_count and modified_count like pymongo's
            UpdateResult; modified_count is 0 when the values were unchanged
        """
        for d in self.docs:
            if _matches(d, q):
                changes = u.get("$set", {})
                modified = any(d.get(k) != v for k, v in changes.items())
                d.update(changes)
                return FakeResult(matched_count=1, modified_count=int(modified))
        return FakeResult(matched_count=0, modified_count=0)

    async def delete_one(self, q):
        for i, d in enumerate(self.docs):
            if _matches(d, q):
                del self.docs[i]
                return FakeResult(deleted_count=1)
        return FakeResult(deleted_count=0)

    async def count_documents(self, q=None):
        return len(self._filter(q))

    def aggregate(self, pipeline):
        return FakeCommandCursor(run_pipeline(self.docs, pipeline))

    async def create_index(self, keys, name=None):
        keys = list(keys)
        name = name or "_".join(f"{f}_{d}" for f, d in keys)
        existing = self.indexes.get(name)
        if existing is not None and existing != keys:
            raise ValueError(f"Index {name} already exists with different keys")
        self.indexes[name] = keys
        return name

    async def index_information(self):
        return {name: {"key": keys} for name, keys in self.indexes.items()}


class FakeDB:
    def __init__(self, books=None):
        self.collections = {"books": FakeCollection(books or [])}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    async def list_collection_names(self):
        return list(self.collections)

    async def create_collection(self, name):
        if name in self.collections:
            raise ValueError(f"collection {name} already exists")
        self.collections[name] = FakeCollection()
        return self.collections[name]


@pytest.fixture
def sample_books():
    """
    Seven books spread over four genres, four decades and five authors.

    Shape of the data the tests rely on:
        - Genres: Fantasy x3 (avg 16.0), Fiction x2 (avg 14.0),
          Non-Fiction x1 (22.0), Romance x1 (9.99)
        - Decades: 1990 x1, 2000 x2, 2010 x3, 2020 x1
        - Authors: Maria Njeri and Amara Obi tie with two books each
        - Published after 2015: The Silent River, Dragons of the Rift,
          Echoes of Nairobi
    """
    return [
        {
            "_id": "b1",
            "title": "The Silent River",
            "author": "Maria Njeri",
            "genre": "Fiction",
            "published_year": 2018,
            "price": 12.5,
            "in_stock": True,
        },
        {
            "_id": "b2",
            "title": "Rust and Roses",
            "author": "Daniel Otieno",
            "genre": "Romance",
            "published_year": 2012,
            "price": 9.99,
            "in_stock": False,
        },
        {
            "_id": "b3",
            "title": "Dragons of the Rift",
            "author": "Amara Obi",
            "genre": "Fantasy",
            "published_year": 2016,
            "price": 18.0,
            "in_stock": True,
        },
        {
            "_id": "b4",
            "title": "The Glass Forest",
            "author": "Amara Obi",
            "genre": "Fantasy",
            "published_year": 2009,
            "price": 14.0,
            "in_stock": True,
        },
        {
            "_id": "b5",
            "title": "Echoes of Nairobi",
            "author": "Maria Njeri",
            "genre": "Fiction",
            "published_year": 2021,
            "price": 15.5,
            "in_stock": True,
        },
        {
            "_id": "b6",
            "title": "A Quiet Harvest",
            "author": "Peter Kamau",
            "genre": "Non-Fiction",
            "published_year": 1998,
            "price": 22.0,
            "in_stock": False,
        },
        {
            "_id": "b7",
            "title": "Moonlit Archive",
            "author": "Lena Wu",
            "genre": "Fantasy",
            "published_year": 2005,
            "price": 16.0,
            "in_stock": True,
        },
    ]


@pytest.fixture
def books_collection(sample_books):
    return FakeCollection(sample_books)


@pytest.fixture
def fake_db(sample_books):
    return FakeDB(books=sample_books)


@pytest.fixture
def queries(books_collection):
    return QueryFacade(books_collection)


@pytest.fixture
def make_queries():
    """Factory for a QueryFacade over a fresh fake collection holding `docs`."""

    def _make(docs):
        return QueryFacade(FakeCollection(docs))

    return _make


@pytest.fixture
async def client(monkeypatch, books_collection):
    """
    Async test client with the fake collection and a fake API key check.

    Setup:
        - Patches get_books_collection in api.main to return the fake
          collection shared with the books_collection fixture
        - Overrides get_api_key so only TEST_API_KEY is accepted

    Teardown:
        - Clears all dependency overrides
    """
    monkeypatch.setattr("api.main.get_books_collection", lambda: books_collection)

    async def fake_get_api_key(request: Request):
        key = request.headers.get("x-api-key") or request.headers.get("X-API-Key")
        if key != TEST_API_KEY:
            raise HTTPException(status_code=401, detail="Unauthorized")
        return key

    app.dependency_overrides[get_api_key] = fake_get_api_key

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
