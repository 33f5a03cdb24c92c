"""CSV/JSON export and catalog statistics."""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from cotton_finder.catalog import CatalogRepository
from cotton_finder.models import Product

__all__ = [
    "EXPORT_COLUMNS",
    "product_to_row",
    "products_to_dataframe",
    "export_catalog_to_csv",
    "save_products_json",
    "category_summary",
]

EXPORT_COLUMNS = [
    "id",
    "name",
    "brand",
    "price",
    "currency",
    "category",
    "gender",
    "cotton_percentage",
    "is_cotton_qualified",
    "is_curated",
    "color",
    "composition_raw",
    "sizes",
    "image",
    "url",
    "created_at",
    "updated_at",
]


def product_to_row(product: Product) -> Dict[str, Any]:
    """Flatten a Product into one CSV row."""
    return {
        "id": product.product_id,
        "name": product.name,
        "brand": product.brand,
        "price": product.price,
        "currency": product.currency,
        "category": product.category,
        "gender": product.gender,
        "cotton_percentage": product.cotton_percentage,
        "is_cotton_qualified": product.is_cotton_qualified,
        "is_curated": product.is_curated,
        "color": product.color,
        "composition_raw": product.composition_raw,
        "sizes": ", ".join(product.sizes_available),
        "image": product.image,
        "url": product.url,
        "created_at": product.created_at.isoformat() if product.created_at else None,
        "updated_at": product.updated_at.isoformat() if product.updated_at else None,
    }


def products_to_dataframe(products: Iterable[Product]) -> pd.DataFrame:
    return pd.DataFrame([product_to_row(p) for p in products], columns=EXPORT_COLUMNS)


def export_catalog_to_csv(
    repository: CatalogRepository,
    path: str,
    category: Optional[str] = None,
) -> int:
    """Write the catalog (or one category of it) to CSV.

    Every stored product is exported regardless of cotton content.

    Returns:
        Number of rows written.
    """
    products = repository.query(category=category, min_cotton_percent=0, limit=None)
    df = products_to_dataframe(products)

    Path(path).parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False, encoding="utf-8")
    return len(df)


def save_products_json(products: List[Product], path: str) -> None:
    """Dump products in their client shape to a JSON file."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump([p.to_api_dict() for p in products], f, indent=2, ensure_ascii=False)


def category_summary(df: pd.DataFrame) -> pd.DataFrame:
    """Product counts per gender (rows) and category (columns), with totals."""
    if df.empty:
        return pd.DataFrame()
    return pd.crosstab(
        df["gender"].fillna("unknown"),
        df["category"].fillna("unknown"),
        margins=True,
        margins_name="total",
    )
