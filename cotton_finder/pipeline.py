"""Ingestion pipeline: turn a scrape target into a batch of products.

A run resolves its target into candidate product URLs, fetches each page
through a ``PageFetcher`` (one session per run), builds records and
classifies them. URLs are processed one at a time with a randomized delay
between fetches. Per-URL failures are logged and counted, never raised.

The pipeline does not persist anything; see ``workflows`` for the
compositions that upsert a run's accepted products into the catalog.
"""

import logging
import math
import random
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import (
    Any,
    Callable,
    ContextManager,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from cotton_finder.categories import category_from_name, normalize_category
from cotton_finder.config import (
    CATEGORY_URLS,
    COTTON_THRESHOLD,
    CURATED_DELAY_MAX,
    CURATED_DELAY_MIN,
    DEFAULT_SEARCH_LIMIT,
    DELAY_MAX,
    DELAY_MIN,
    SEARCH_SECTIONS,
)
from cotton_finder.errors import ExtractionFailure, IngestionError
from cotton_finder.logging_config import get_logger, log_scrape_event
from cotton_finder.models import Product, RawProductData
from cotton_finder.records import build_product, is_accepted_by_cotton
from cotton_finder.shutdown import CancellationToken
from cotton_finder.url_validation import canonicalize_url

__all__ = [
    "PageFetcher",
    "CategoryTarget",
    "SearchTarget",
    "UrlListTarget",
    "Target",
    "IngestionResult",
    "IngestionPipeline",
    "resolve_search_query",
    "site_search_term",
    "targets_from_counts",
]

logger = get_logger("pipeline")

GENDERS = ("male", "female")

# Candidate URLs requested per wanted product
OVERFETCH_FACTOR = 2

# Categories sampled when a search query names no garment
FALLBACK_SEARCH_CATEGORIES = 3


class PageFetcher(Protocol):
    """External collaborator that finds and reads product pages."""

    def open_session(self) -> ContextManager[Any]:
        ...

    def discover_product_urls(
        self, category: str, gender: str, limit: int, session: Any = None
    ) -> List[str]:
        ...

    def search_product_urls(
        self, term: str, section: str, limit: int, session: Any = None
    ) -> List[str]:
        ...

    def extract_raw_product(self, url: str, session: Any = None) -> Optional[RawProductData]:
        ...


# =============================================================================
# Targets
# =============================================================================

@dataclass(frozen=True)
class CategoryTarget:
    """Scrape ``count`` cotton-qualified products from one category listing."""

    category: str
    gender: str
    count: int


@dataclass(frozen=True)
class SearchTarget:
    """Free-text search.

    Garment keywords resolve to category targets; queries that only ask
    for cotton go through the site search.
    """

    query: str
    limit: int = DEFAULT_SEARCH_LIMIT


@dataclass(frozen=True)
class UrlListTarget:
    """Hand-picked product URLs grouped by intended category."""

    urls_by_category: Dict[str, List[str]]


Target = Union[CategoryTarget, SearchTarget, UrlListTarget]


@dataclass
class IngestionResult:
    """Outcome of an ingestion run."""

    accepted: List[Product] = field(default_factory=list)
    skipped: int = 0
    failed: int = 0
    cancelled: bool = False

    @property
    def attempted(self) -> int:
        return len(self.accepted) + self.skipped + self.failed

    def merge(self, other: "IngestionResult") -> None:
        self.accepted.extend(other.accepted)
        self.skipped += other.skipped
        self.failed += other.failed
        self.cancelled = self.cancelled or other.cancelled

    def by_category(self) -> Dict[str, int]:
        """Accepted counts keyed by ``<gender>_<category>``."""
        counts = Counter(
            f"{p.gender or 'unknown'}_{p.category or 'unknown'}" for p in self.accepted
        )
        return dict(sorted(counts.items()))


# =============================================================================
# Target resolution
# =============================================================================

# (exact queries, substrings, category, genders); first hit wins, so the
# t-shirt terms must come before the generic "shirt"
_SEARCH_KEYWORDS: Tuple[Tuple[Tuple[str, ...], Tuple[str, ...], str, Tuple[str, ...]], ...] = (
    (("t-shirt", "tshirt", "tee", "tees"), ("t-shirt", "tshirt", " tee"), "tshirts", GENDERS),
    ((), ("shirt",), "shirts", GENDERS),
    ((), ("dress",), "dresses", ("female",)),
    ((), ("trouser", "pant"), "pants", GENDERS),
    ((), ("top",), "tops", ("female",)),
    ((), ("skirt",), "skirts", ("female",)),
    ((), ("jacket",), "jackets", GENDERS),
)


def _match_keywords(query_lower: str) -> Optional[Tuple[str, Tuple[str, ...]]]:
    for exact, substrings, category, genders in _SEARCH_KEYWORDS:
        if query_lower in exact or any(s in query_lower for s in substrings):
            return category, genders
    return None


def site_search_term(query: str) -> Optional[str]:
    """Site search term for queries that mention cotton but name no garment."""
    query_lower = (query or "").lower().strip()
    if "cotton" not in query_lower or _match_keywords(query_lower) is not None:
        return None
    return "cotton"


def resolve_search_query(
    query: str,
    limit: int = DEFAULT_SEARCH_LIMIT,
    category_urls: Optional[Dict[str, Dict[str, str]]] = None,
) -> List[CategoryTarget]:
    """Map a free-text query onto category targets.

    The matched category is split across its genders. Queries naming no
    garment sample the first few configured categories instead.
    """
    category_urls = category_urls if category_urls is not None else CATEGORY_URLS
    query_lower = (query or "").lower().strip()

    match = _match_keywords(query_lower)
    if match is not None:
        category, genders = match
        available = [g for g in genders if g in category_urls.get(category, {})]
        if available:
            per_gender = math.ceil(limit / len(genders))
            logger.info(f'Matched "{query}" to category {category} ({", ".join(available)})')
            return [CategoryTarget(category, g, per_gender) for g in available]

    logger.info(f'No category match for "{query}", sampling default categories')
    per_category = math.ceil(limit / FALLBACK_SEARCH_CATEGORIES)
    targets: List[CategoryTarget] = []
    for category in list(category_urls)[:FALLBACK_SEARCH_CATEGORIES]:
        genders = list(category_urls[category])
        per_gender = math.ceil(per_category / len(genders))
        targets.extend(CategoryTarget(category, g, per_gender) for g in genders)
    return targets


def targets_from_counts(counts: Dict[str, int]) -> List[CategoryTarget]:
    """Build category targets from ``<gender>_<category>`` counts.

    Keys without a gender prefix (e.g. ``dresses``) target the female
    listing. Zero counts are dropped.
    """
    targets: List[CategoryTarget] = []
    for key, count in counts.items():
        if not count or count <= 0:
            continue
        gender, _, category = key.partition("_")
        if gender not in GENDERS or not category:
            gender, category = "female", key
        targets.append(CategoryTarget(category, gender, int(count)))
    return targets


# =============================================================================
# Pipeline
# =============================================================================

@dataclass
class _RunContext:
    session: Any
    result: IngestionResult
    cancel_token: Optional[CancellationToken]
    delay_range: Tuple[float, float]
    fetches: int = 0

    def should_stop(self) -> bool:
        if self.cancel_token is not None and self.cancel_token.cancelled:
            self.result.cancelled = True
            return True
        return False


class IngestionPipeline:
    """Sequential, throttled ingestion over a PageFetcher.

    Args:
        fetcher: Page fetcher collaborator.
        threshold: Cotton percentage required for category/search targets.
        delay_range: Random delay bounds between fetches (seconds).
        curated_delay_range: Delay bounds for curated URL lists.
        sleep: Sleep function (tests pass a no-op).
        category_urls: Listing configuration used to resolve search queries.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        threshold: int = COTTON_THRESHOLD,
        delay_range: Tuple[float, float] = (DELAY_MIN, DELAY_MAX),
        curated_delay_range: Tuple[float, float] = (CURATED_DELAY_MIN, CURATED_DELAY_MAX),
        sleep: Callable[[float], None] = time.sleep,
        category_urls: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        self.fetcher = fetcher
        self.threshold = threshold
        self.delay_range = delay_range
        self.curated_delay_range = curated_delay_range
        self._sleep = sleep
        self.category_urls = category_urls if category_urls is not None else CATEGORY_URLS

    def run(self, target: Target, cancel_token: Optional[CancellationToken] = None) -> IngestionResult:
        """Run one target to completion or cancellation.

        Raises:
            IngestionError: If URLs were attempted and every one failed.
        """
        result = IngestionResult()
        delay_range = self.curated_delay_range if isinstance(target, UrlListTarget) else self.delay_range

        log_scrape_event("ingest_start", {
            "message": f"Starting ingestion: {_describe(target)}",
            "target": _describe(target),
        }, logger_name="pipeline")

        with self.fetcher.open_session() as session:
            ctx = _RunContext(session, result, cancel_token, delay_range)
            if isinstance(target, CategoryTarget):
                self._run_category(target, ctx)
            elif isinstance(target, SearchTarget):
                self._run_search(target, ctx)
            elif isinstance(target, UrlListTarget):
                self._run_url_list(target, ctx)
            else:
                raise TypeError(f"Unsupported ingestion target: {target!r}")

        status = "cancelled" if result.cancelled else "complete"
        log_scrape_event("ingest_complete", {
            "message": (
                f"Ingestion {status}: {len(result.accepted)} accepted, "
                f"{result.skipped} skipped, {result.failed} failed"
            ),
            "target": _describe(target),
            "accepted": len(result.accepted),
            "skipped": result.skipped,
            "failed": result.failed,
            "status": status,
        }, logger_name="pipeline")

        _raise_if_all_failed(result, _describe(target))
        return result

    def run_many(
        self,
        targets: Sequence[Target],
        cancel_token: Optional[CancellationToken] = None,
    ) -> IngestionResult:
        """Run targets in order, aggregating their results.

        A target whose URLs all failed does not stop the others.
        """
        total = IngestionResult()
        for target in targets:
            if cancel_token is not None and cancel_token.cancelled:
                total.cancelled = True
                break
            try:
                total.merge(self.run(target, cancel_token))
            except IngestionError as e:
                logger.error(str(e))
                if e.result is not None:
                    total.merge(e.result)

        _raise_if_all_failed(total, f"{len(targets)} targets")
        return total

    # -------------------------------------------------------------------------
    # Per-target loops
    # -------------------------------------------------------------------------

    def _run_category(self, target: CategoryTarget, ctx: _RunContext) -> None:
        if target.count <= 0:
            return

        urls = self._discover(target, ctx)
        accepted_here = self._accept_qualified(urls, target.count, ctx)
        logger.info(f"{target.gender} {target.category}: {accepted_here}/{target.count} accepted")

    def _accept_qualified(self, urls: List[str], count: int, ctx: _RunContext) -> int:
        """Fetch candidates until ``count`` pass the cotton gate."""
        accepted_here = 0
        for url in urls:
            if accepted_here >= count or ctx.should_stop():
                break
            product = self._fetch_and_build(url, ctx)
            if product is None:
                continue
            if is_accepted_by_cotton(product, self.threshold):
                self._accept(product, ctx)
                accepted_here += 1
            else:
                ctx.result.skipped += 1
                log_scrape_event("product_skipped", {
                    "message": f"Below {self.threshold}% cotton: {product.name} ({product.cotton_percentage}%)",
                    "url": product.url,
                    "cotton_percentage": product.cotton_percentage,
                }, logger_name="pipeline")
        return accepted_here

    def _run_search(self, target: SearchTarget, ctx: _RunContext) -> None:
        term = site_search_term(target.query)
        if term is not None and self._run_site_search(term, target.limit, ctx):
            return

        start = len(ctx.result.accepted)
        for category_target in resolve_search_query(target.query, target.limit, self.category_urls):
            if len(ctx.result.accepted) - start >= target.limit or ctx.should_stop():
                break
            remaining = target.limit - (len(ctx.result.accepted) - start)
            self._run_category(
                CategoryTarget(category_target.category, category_target.gender,
                               min(category_target.count, remaining)),
                ctx,
            )

    def _run_site_search(self, term: str, limit: int, ctx: _RunContext) -> bool:
        """Search each site section in turn; False when no section returned URLs."""
        start = len(ctx.result.accepted)
        per_section = math.ceil(limit / len(SEARCH_SECTIONS))
        found_any = False

        for section in SEARCH_SECTIONS.values():
            accepted_so_far = len(ctx.result.accepted) - start
            if accepted_so_far >= limit or ctx.should_stop():
                break
            try:
                urls = self.fetcher.search_product_urls(
                    term, section, limit * OVERFETCH_FACTOR, session=ctx.session
                )
            except Exception as e:
                logger.error(f'Site search for "{term}" failed in {section}: {e}')
                continue
            if not urls:
                logger.warning(f'No search results for "{term}" in {section}')
                continue

            found_any = True
            count = min(per_section, limit - accepted_so_far)
            accepted_here = self._accept_qualified(urls, count, ctx)
            logger.info(f'Search "{term}" in {section}: {accepted_here}/{count} accepted')

        if not found_any:
            logger.info(f'Site search for "{term}" found nothing, falling back to categories')
        return found_any

    def _run_url_list(self, target: UrlListTarget, ctx: _RunContext) -> None:
        for bucket, urls in target.urls_by_category.items():
            for url in urls:
                if ctx.should_stop():
                    return
                try:
                    url = canonicalize_url(url)
                except ValueError as e:
                    self._fail(url, f"malformed URL: {e}", ctx)
                    continue
                product = self._fetch_and_build(url, ctx)
                if product is None:
                    continue
                # The name wins over the bucket so mis-bucketed URLs land correctly
                product.category = category_from_name(product.name) or normalize_category(bucket)
                product.is_curated = True
                self._accept(product, ctx)

    # -------------------------------------------------------------------------
    # Per-URL steps
    # -------------------------------------------------------------------------

    def _discover(self, target: CategoryTarget, ctx: _RunContext) -> List[str]:
        try:
            urls = self.fetcher.discover_product_urls(
                target.category, target.gender, target.count * OVERFETCH_FACTOR, session=ctx.session
            )
        except Exception as e:
            logger.error(f"URL discovery failed for {target.gender} {target.category}: {e}")
            return []
        if not urls:
            logger.warning(f"No product URLs found for {target.gender} {target.category}")
        return list(urls or [])

    def _throttle(self, ctx: _RunContext) -> None:
        if ctx.fetches:
            low, high = ctx.delay_range
            if high > 0:
                self._sleep(random.uniform(low, high))
        ctx.fetches += 1

    def _fetch_and_build(self, url: str, ctx: _RunContext) -> Optional[Product]:
        self._throttle(ctx)
        try:
            raw = self.fetcher.extract_raw_product(url, session=ctx.session)
        except Exception as e:
            self._fail(url, f"fetch raised {type(e).__name__}: {e}", ctx)
            return None

        if raw is None:
            self._fail(url, "no data returned", ctx)
            return None

        try:
            return build_product(raw, url)
        except ExtractionFailure as e:
            self._fail(url, e.reason, ctx)
        except Exception as e:
            self._fail(url, f"build raised {type(e).__name__}: {e}", ctx)
        return None

    def _fail(self, url: str, reason: str, ctx: _RunContext) -> None:
        ctx.result.failed += 1
        log_scrape_event("product_error", {
            "message": f"Skipping {url}: {reason}",
            "url": url,
            "error": reason,
        }, level=logging.WARNING, logger_name="pipeline")

    def _accept(self, product: Product, ctx: _RunContext) -> None:
        ctx.result.accepted.append(product)
        log_scrape_event("product_accepted", {
            "message": f"{product.name} ({product.cotton_percentage}% cotton) - ${product.price}",
            "url": product.url,
            "category": product.category,
            "gender": product.gender,
            "cotton_percentage": product.cotton_percentage,
            "is_curated": product.is_curated,
        }, logger_name="pipeline")


def _describe(target: Target) -> str:
    if isinstance(target, CategoryTarget):
        return f"{target.count} {target.gender} {target.category}"
    if isinstance(target, SearchTarget):
        return f'search "{target.query}" (limit {target.limit})'
    if isinstance(target, UrlListTarget):
        total = sum(len(urls) for urls in target.urls_by_category.values())
        return f"{total} curated URLs"
    return repr(target)


def _raise_if_all_failed(result: IngestionResult, what: str) -> None:
    if result.attempted and result.failed == result.attempted and not result.cancelled:
        raise IngestionError(
            f"All {result.failed} product URLs failed for {what}", result=result
        )
