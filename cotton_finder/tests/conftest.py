"""Shared test fixtures for the cotton finder test suite."""

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional, Tuple, Union

import pytest

from cotton_finder.catalog import CatalogRepository
from cotton_finder.db import DocumentStore
from cotton_finder.models import Product, RawProductData

PageValue = Union[RawProductData, Exception, None]


class FakeFetcher:
    """In-memory PageFetcher that records how it was used."""

    def __init__(
        self,
        pages: Optional[Dict[str, PageValue]] = None,
        listings: Optional[Dict[Tuple[str, str], List[str]]] = None,
        searches: Optional[Dict[Tuple[str, str], List[str]]] = None,
    ):
        self.pages = pages or {}
        self.listings = listings or {}
        self.searches = searches or {}
        self.sessions_opened = 0
        self.sessions_closed = 0
        self.fetched: List[str] = []
        self.discover_calls: List[Tuple[str, str, int]] = []
        self.search_calls: List[Tuple[str, str, int]] = []
        self.on_fetch = None

    @contextmanager
    def open_session(self) -> Iterator[object]:
        self.sessions_opened += 1
        try:
            yield object()
        finally:
            self.sessions_closed += 1

    def discover_product_urls(self, category, gender, limit, session=None):
        self.discover_calls.append((category, gender, limit))
        return list(self.listings.get((category, gender), []))[:limit]

    def search_product_urls(self, term, section, limit, session=None):
        self.search_calls.append((term, section, limit))
        return list(self.searches.get((term, section), []))[:limit]

    def extract_raw_product(self, url, session=None):
        self.fetched.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)
        value = self.pages.get(url)
        if isinstance(value, Exception):
            raise value
        return value


class FakeClock:
    """Deterministic clock; advances one second per call."""

    def __init__(self, start: datetime = datetime(2024, 5, 1, 12, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + timedelta(seconds=1)
        return current


def raw(name: Optional[str], materials: str = "100% cotton", price: Optional[float] = 29.9) -> RawProductData:
    return RawProductData(name=name, price=price, materials=materials)


def make_product(
    url: str = "https://www.zara.com/ca/en/woman/basic-tee-p100.html",
    name: str = "Basic Tee",
    **overrides,
) -> Product:
    fields = {
        "url": url,
        "product_id": url.rsplit("-p", 1)[-1].split(".")[0],
        "name": name,
        "price": 29.9,
        "category": "tops",
        "gender": "female",
        "composition_raw": "100% cotton",
        "composition_parsed": {"cotton": 100},
        "cotton_percentage": 100,
        "is_cotton_qualified": True,
    }
    fields.update(overrides)
    return Product(**fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(tmp_path):
    """Initialized document store in a temporary directory."""
    doc_store = DocumentStore(str(tmp_path / "catalog.db"))
    doc_store.init()
    return doc_store


@pytest.fixture
def repository(store, clock):
    return CatalogRepository(store, clock=clock)


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    calls: List[float] = []

    def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls  # type: ignore[attr-defined]
    return _sleep
