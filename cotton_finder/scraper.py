"""HTTP page fetcher: listing discovery and product page extraction.

``HttpPageFetcher`` is the production ``PageFetcher``. It owns retry with
exponential backoff; throttling between products is left to the ingestion
pipeline. Failures never escape its public methods: discovery returns an
empty list and extraction returns None.
"""

import random
import time
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional
from urllib.parse import urlencode

import requests  # type: ignore[import-untyped]

from cotton_finder.config import (
    BASE_URL,
    CATEGORY_URLS,
    HEADERS,
    MAX_RETRIES,
    MAX_RETRY_BACKOFF,
    REQUEST_TIMEOUT,
    RETRY_BACKOFF_BASE,
    RETRY_STATUS_CODES,
    SEARCH_URL,
)
from cotton_finder.errors import FetchFailure
from cotton_finder.html_utils import extract_product_links, parse_product_page
from cotton_finder.logging_config import get_logger
from cotton_finder.models import RawProductData
from cotton_finder.url_validation import URLValidationError, validate_url

__all__ = [
    "create_session",
    "fetch_html",
    "HttpPageFetcher",
]

logger = get_logger("scraper")


def create_session() -> requests.Session:
    """Create a requests Session with connection pooling and browser headers."""
    session = requests.Session()
    session.headers.update(HEADERS)
    session.headers.setdefault("Accept-Encoding", "gzip, deflate")
    return session


def _backoff(attempt: int) -> float:
    return min(RETRY_BACKOFF_BASE ** attempt, MAX_RETRY_BACKOFF) + random.uniform(0, 1)


def fetch_html(
    url: str,
    session: requests.Session,
    max_retries: int = MAX_RETRIES,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """HTTP GET with exponential backoff retry.

    Retries on 429/5xx responses, connection errors and timeouts.

    Args:
        url: URL to fetch
        session: Session to issue the request on
        max_retries: Retries after the first attempt
        sleep: Sleep function used for backoff

    Returns:
        HTML content as string

    Raises:
        FetchFailure: If the URL is invalid or the request fails after all retries
    """
    try:
        url = validate_url(url)
    except URLValidationError as e:
        raise FetchFailure(url, f"invalid URL: {e}") from e

    last_exception: Optional[Exception] = None

    for attempt in range(max_retries + 1):
        try:
            resp = session.get(url, timeout=REQUEST_TIMEOUT)

            if resp.status_code in RETRY_STATUS_CODES and attempt < max_retries:
                backoff = _backoff(attempt)
                logger.warning(
                    f"Received {resp.status_code}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                sleep(backoff)
                continue

            resp.raise_for_status()
            return str(resp.text)

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else "unknown"
            raise FetchFailure(url, f"HTTP error {status_code}") from e

        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as e:
            last_exception = e
            if attempt < max_retries:
                backoff = _backoff(attempt)
                logger.warning(
                    f"{type(e).__name__}, backing off {backoff:.1f}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                sleep(backoff)
                continue
            raise FetchFailure(url, str(e)) from e

        except requests.exceptions.RequestException as e:
            raise FetchFailure(url, str(e)) from e

    raise FetchFailure(url, f"gave up after {max_retries} retries") from last_exception


class HttpPageFetcher:
    """PageFetcher backed by plain HTTP requests and BeautifulSoup.

    Args:
        category_urls: category -> gender -> listing URL
        base_url: Base for resolving relative product links
        search_url: Site search endpoint
        sleep: Sleep function used for retry backoff
    """

    def __init__(
        self,
        category_urls: Optional[Dict[str, Dict[str, str]]] = None,
        base_url: str = BASE_URL,
        search_url: str = SEARCH_URL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.category_urls = category_urls if category_urls is not None else CATEGORY_URLS
        self.base_url = base_url
        self.search_url = search_url
        self._sleep = sleep

    @contextmanager
    def open_session(self) -> Iterator[requests.Session]:
        """One HTTP session for a whole batch, closed on every exit path."""
        session = create_session()
        try:
            yield session
        finally:
            session.close()

    def _get(self, url: str, session: Optional[requests.Session]) -> str:
        if session is not None:
            return fetch_html(url, session, sleep=self._sleep)
        with self.open_session() as own_session:
            return fetch_html(url, own_session, sleep=self._sleep)

    def discover_product_urls(
        self,
        category: str,
        gender: str,
        limit: int,
        session: Optional[requests.Session] = None,
    ) -> List[str]:
        """Product URLs from the listing page for (category, gender), up to ``limit``."""
        listing_url = self.category_urls.get(category, {}).get(gender)
        if not listing_url:
            logger.warning(f"No listing URL configured for {gender} {category}")
            return []

        try:
            html = self._get(listing_url, session)
        except FetchFailure as e:
            logger.error(f"Could not load listing page: {e}")
            return []

        links = extract_product_links(html, self.base_url)
        logger.info(f"Found {len(links)} product links for {gender} {category}")
        return links[:limit]

    def search_product_urls(
        self,
        term: str,
        section: str,
        limit: int,
        session: Optional[requests.Session] = None,
    ) -> List[str]:
        """Product URLs from the site search results for ``term`` in one section."""
        search_url = f"{self.search_url}?{urlencode({'searchTerm': term, 'section': section})}"
        try:
            html = self._get(search_url, session)
        except FetchFailure as e:
            logger.error(f"Could not load search results: {e}")
            return []

        links = extract_product_links(html, self.base_url)
        logger.info(f'Found {len(links)} product links searching "{term}" in {section}')
        return links[:limit]

    def extract_raw_product(
        self,
        url: str,
        session: Optional[requests.Session] = None,
    ) -> Optional[RawProductData]:
        """Raw product data for one page, or None if the page could not be fetched."""
        try:
            html = self._get(url, session)
        except FetchFailure as e:
            logger.error(str(e))
            return None
        return parse_product_page(html)
