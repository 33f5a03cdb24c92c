"""High-level ingestion workflows.

Each workflow runs the ingestion pipeline for one kind of target and
persists the accepted products into the catalog straight after the run,
including the partial batch of a cancelled run.
"""

from typing import Any, Dict, List, Optional

from cotton_finder.cache import TTLCache
from cotton_finder.catalog import CatalogRepository
from cotton_finder.config import CURATED_URLS, DEFAULT_SEARCH_LIMIT, DEFAULT_TARGET_COUNTS
from cotton_finder.logging_config import get_logger
from cotton_finder.models import Product
from cotton_finder.pipeline import (
    IngestionPipeline,
    IngestionResult,
    SearchTarget,
    UrlListTarget,
    targets_from_counts,
)
from cotton_finder.shutdown import CancellationToken

__all__ = [
    "search_cache_key",
    "search_and_save",
    "scrape_all_categories",
    "scrape_curated_urls",
    "summarize",
]

logger = get_logger("workflows")


def search_cache_key(query: str, limit: int) -> str:
    return f"{query.strip().lower()}:{limit}"


def summarize(result: IngestionResult) -> Dict[str, Any]:
    """Counts (and the accepted products) for a finished run."""
    return {
        "accepted": len(result.accepted),
        "skipped": result.skipped,
        "failed": result.failed,
        "cancelled": result.cancelled,
        "by_category": result.by_category(),
        "products": result.accepted,
    }


def _persist(repository: CatalogRepository, result: IngestionResult) -> None:
    if not result.accepted:
        return
    repository.upsert_batch(result.accepted)
    status = " (partial, run was cancelled)" if result.cancelled else ""
    logger.info(f"Saved {len(result.accepted)} products to the catalog{status}")


def search_and_save(
    query: str,
    pipeline: IngestionPipeline,
    repository: CatalogRepository,
    cache: Optional[TTLCache] = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
    cancel_token: Optional[CancellationToken] = None,
) -> List[Product]:
    """Scrape products for a search query and save them.

    Results are cached per (query, limit); empty or cancelled runs are not.
    The cache only pays off for long-lived callers that keep one TTLCache
    across searches; one-shot callers such as the CLI pass none.

    Returns:
        The accepted products.
    """
    key = search_cache_key(query, limit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.info(f'Returning cached results for "{query}"')
            return list(cached)

    result = pipeline.run(SearchTarget(query, limit), cancel_token)
    _persist(repository, result)

    if cache is not None and result.accepted and not result.cancelled:
        cache.set(key, list(result.accepted))
    return result.accepted


def scrape_all_categories(
    pipeline: IngestionPipeline,
    repository: CatalogRepository,
    target_counts: Optional[Dict[str, int]] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """Scheduled scrape over every configured category/gender pair.

    Args:
        target_counts: ``<gender>_<category>`` -> wanted products
            (default: DEFAULT_TARGET_COUNTS)

    Returns:
        Summary dict (see :func:`summarize`)
    """
    counts = target_counts if target_counts is not None else DEFAULT_TARGET_COUNTS
    targets = targets_from_counts(counts)

    print(f"\n{'='*60}")
    print("SCRAPING ALL CATEGORIES")
    print(f"{'='*60}")
    print(f"Configured {len(targets)} scraping tasks")
    for target in targets:
        print(f"  - {target.count} {target.gender} {target.category}")

    result = pipeline.run_many(targets, cancel_token)
    _persist(repository, result)

    summary = summarize(result)
    print(f"\n{'='*60}")
    print("SCRAPE COMPLETE" if not result.cancelled else "SCRAPE CANCELLED")
    print(f"{'='*60}")
    print(f"Accepted: {summary['accepted']}  Skipped: {summary['skipped']}  Failed: {summary['failed']}")
    for key, count in summary["by_category"].items():
        print(f"  {key}: {count}")
    return summary


def scrape_curated_urls(
    pipeline: IngestionPipeline,
    repository: CatalogRepository,
    curated: Optional[Dict[str, List[str]]] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> Dict[str, Any]:
    """Scrape hand-picked product URLs and save them as curated.

    Returns:
        Summary dict with ``cotton_100`` and ``cotton_90_plus`` counts added
    """
    urls_by_category = curated if curated is not None else CURATED_URLS
    total = sum(len(urls) for urls in urls_by_category.values())

    print(f"\n{'='*60}")
    print("SCRAPING CURATED URLS")
    print(f"{'='*60}")
    print(f"{total} URLs in {len(urls_by_category)} categories")

    result = pipeline.run(UrlListTarget(urls_by_category), cancel_token)
    _persist(repository, result)

    summary = summarize(result)
    summary["cotton_100"] = sum(1 for p in result.accepted if p.cotton_percentage == 100)
    summary["cotton_90_plus"] = sum(1 for p in result.accepted if p.cotton_percentage >= 90)

    print(f"\nSaved {summary['accepted']}/{total} curated products")
    print(f"  100% cotton: {summary['cotton_100']}")
    print(f"  90%+ cotton: {summary['cotton_90_plus']}")
    if summary["failed"]:
        print(f"  Failed: {summary['failed']}")
    return summary
