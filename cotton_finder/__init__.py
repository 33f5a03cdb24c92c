"""Cotton clothing finder: scrape, classify and search 90%+ cotton products."""

__version__ = "0.1.0"

# Re-export main components for convenient imports
from cotton_finder.catalog import CatalogRepository
from cotton_finder.categories import expand_to_variations, normalize_category
from cotton_finder.composition import (
    CompositionResult,
    extract_primary_cotton_percent,
    parse_composition,
)
from cotton_finder.config import CATEGORY_URLS, COTTON_THRESHOLD, DB_PATH
from cotton_finder.db import DocumentStore
from cotton_finder.models import Product, RawProductData
from cotton_finder.pipeline import (
    CategoryTarget,
    IngestionPipeline,
    IngestionResult,
    SearchTarget,
    UrlListTarget,
)
from cotton_finder.records import build_product

__all__ = [
    # Version
    "__version__",
    # Config
    "CATEGORY_URLS",
    "COTTON_THRESHOLD",
    "DB_PATH",
    # Models
    "Product",
    "RawProductData",
    "CompositionResult",
    # Core functions
    "parse_composition",
    "extract_primary_cotton_percent",
    "normalize_category",
    "expand_to_variations",
    "build_product",
    # Ingestion and storage
    "CategoryTarget",
    "SearchTarget",
    "UrlListTarget",
    "IngestionResult",
    "IngestionPipeline",
    "DocumentStore",
    "CatalogRepository",
]
