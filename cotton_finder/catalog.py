"""Catalog repository: idempotent upserts and filtered reads over products.

Products are keyed by canonical URL. Stored category values may predate
normalization, so category filters are expanded to every known surface
form before querying and the results are normalized and re-filtered
afterwards.
"""

import re
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from cotton_finder.categories import (
    CANONICAL_CATEGORIES,
    expand_to_variations,
    normalize_category,
)
from cotton_finder.config import COTTON_THRESHOLD, DEFAULT_QUERY_LIMIT
from cotton_finder.db import DocumentStore
from cotton_finder.logging_config import get_logger, log_scrape_event
from cotton_finder.models import Product

__all__ = ["CatalogRepository", "build_query_filter"]

logger = get_logger("catalog")


def _text_match(pattern: str) -> Dict[str, str]:
    return {"$regex": pattern, "$options": "i"}


def build_query_filter(
    category: Optional[str] = None,
    min_cotton_percent: int = COTTON_THRESHOLD,
    search_text: Optional[str] = None,
    max_price: Optional[float] = None,
) -> Dict[str, Any]:
    """Build the store filter for a catalog query.

    When the minimum cotton percentage is at or above the qualification
    threshold, products reading 0% (or nothing) are still included if they
    are curated or already carry a canonical category: for those, a zero
    reading more likely means the composition was not extracted.
    """
    conditions: List[Dict[str, Any]] = []

    if min_cotton_percent >= COTTON_THRESHOLD:
        conditions.append({
            "$or": [
                {"cottonPercentage": {"$gte": min_cotton_percent}},
                {"$and": [
                    {"cottonPercentage": {"$in": [0, None]}},
                    {"$or": [
                        {"isCurated": True},
                        {"category": {"$in": sorted(CANONICAL_CATEGORIES)}},
                    ]},
                ]},
            ]
        })
    else:
        conditions.append({"cottonPercentage": {"$gte": min_cotton_percent}})

    category_filter = None
    if category and category.lower() != "all":
        category_filter = normalize_category(category)
        if category_filter:
            conditions.append({"category": {"$in": sorted(expand_to_variations(category_filter))}})

    if search_text and search_text.strip():
        term = search_text.strip().lower()
        pattern = re.escape(term)
        text_clauses: List[Dict[str, Any]] = [
            {"name": _text_match(pattern)},
            {"composition_raw": _text_match(pattern)},
            {"color": _text_match(pattern)},
        ]
        # A search for a garment word also browses that category
        search_category = normalize_category(term)
        if search_category and search_category != term and search_category != category_filter:
            text_clauses.append({"category": {"$in": sorted(expand_to_variations(search_category))}})
        conditions.append({"$or": text_clauses})

    if max_price is not None:
        conditions.append({"price": {"$lte": max_price}})

    return {"$and": conditions}


class CatalogRepository:
    """Read/write access to the persisted product catalog.

    Args:
        store: Document store holding product documents keyed by URL.
        clock: Returns the current time; used for createdAt/updatedAt.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.store = store
        self._clock = clock

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def upsert(self, product: Product) -> None:
        """Insert or update one product keyed by its URL."""
        now = self._clock().isoformat()
        document = product.to_document()
        document["updatedAt"] = now
        self.store.upsert_by_key(product.url, document, set_on_insert={"createdAt": now})

    def upsert_batch(self, products: Iterable[Product]) -> int:
        """Upsert products in order; duplicate URLs end with the last one.

        Returns:
            Number of upserts performed.
        """
        count = 0
        for product in products:
            self.upsert(product)
            count += 1

        if count:
            log_scrape_event("catalog_upsert", {
                "message": f"Upserted {count} products",
                "count": count,
            }, logger_name="catalog")
        return count

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def query(
        self,
        category: Optional[str] = None,
        min_cotton_percent: int = COTTON_THRESHOLD,
        search_text: Optional[str] = None,
        max_price: Optional[float] = None,
        limit: int = DEFAULT_QUERY_LIMIT,
    ) -> List[Product]:
        """Filtered catalog search, cheapest first.

        Args:
            category: Category to browse (any surface form, "all" for none).
            min_cotton_percent: Minimum cotton percentage.
            search_text: Literal text matched against name, composition and
                colour, case-insensitive.
            max_price: Upper price bound.
            limit: Maximum number of results.

        Returns:
            Products whose ``category`` is normalized.
        """
        filter_expr = build_query_filter(category, min_cotton_percent, search_text, max_price)
        documents = self.store.query(filter_expr, sort=[("price", 1)], limit=limit)
        products = [Product.from_document(doc) for doc in documents]

        for product in products:
            if product.category:
                product.category = normalize_category(product.category)

        if category and category.lower() != "all":
            wanted = normalize_category(category)
            if wanted:
                products = [p for p in products if p.category == wanted]

        logger.debug(f"Catalog query returned {len(products)} products")
        return products

    def find_cotton_products(
        self,
        category: Optional[str] = None,
        max_price: Optional[float] = None,
        search_text: Optional[str] = None,
    ) -> List[Product]:
        """Simple listing of cotton-qualified products, cheapest first.

        Category is matched as a case-insensitive substring and the search
        text against name and composition only.
        """
        filter_expr: Dict[str, Any] = {"is_cotton_qualified": True}
        if category:
            filter_expr["category"] = _text_match(re.escape(category))
        if max_price is not None:
            filter_expr["price"] = {"$lte": max_price}
        if search_text:
            pattern = re.escape(search_text)
            filter_expr["$or"] = [
                {"name": _text_match(pattern)},
                {"composition_raw": _text_match(pattern)},
            ]

        documents = self.store.query(filter_expr, sort=[("price", 1)])
        return [Product.from_document(doc) for doc in documents]

    def all_products(self, limit: int = 100) -> List[Product]:
        """Cotton-qualified products, used as assistant context."""
        documents = self.store.query({"is_cotton_qualified": True}, limit=limit)
        return [Product.from_document(doc) for doc in documents]

    def get(self, identifier: str) -> Optional[Product]:
        """Look up a product by its id or URL."""
        document = self.store.find_one({"$or": [{"id": identifier}, {"url": identifier}]})
        return Product.from_document(document) if document else None

    def list_categories(self) -> List[str]:
        """Distinct stored categories, without empty values."""
        return sorted(c for c in self.store.distinct("category") if c)

    def count(self) -> int:
        return self.store.count()
