"""Build normalized product records from raw scrape output.

Pure transformation: no I/O, no timestamps. The catalog assigns
``created_at``/``updated_at`` when the record is persisted.
"""

import math
import re
import uuid
from typing import List, Optional
from urllib.parse import urlparse

from cotton_finder.categories import detect_category
from cotton_finder.composition import extract_primary_cotton_percent, parse_composition
from cotton_finder.config import COTTON_THRESHOLD
from cotton_finder.errors import ExtractionFailure
from cotton_finder.logging_config import get_logger
from cotton_finder.models import Product, RawProductData
from cotton_finder.url_validation import (
    URLValidationError,
    canonicalize_url,
    extract_product_id,
    validate_image_url,
)

__all__ = [
    "UNKNOWN_PRODUCT_NAME",
    "COLOR_KEYWORDS",
    "build_product",
    "determine_gender",
    "extract_color",
    "is_accepted_by_cotton",
]

logger = get_logger("records")

# Placeholder name the page fetcher reports when no title was found
UNKNOWN_PRODUCT_NAME = "unknown product"

# First keyword found in name + materials wins
COLOR_KEYWORDS = [
    "black", "white", "blue", "red", "green", "navy", "grey", "gray",
    "beige", "brown", "pink", "yellow", "striped", "floral", "plaid",
    "animal print",
]

_COLOR_PATTERNS = [(c, re.compile(rf"\b{re.escape(c)}\b")) for c in COLOR_KEYWORDS]


def determine_gender(url: str) -> str:
    """Infer gender from URL path segments ("/man", "/woman", ...)."""
    url_lower = (url or "").lower()
    if "/man" in url_lower or "/men" in url_lower:
        return "male"
    if "/woman" in url_lower or "/women" in url_lower:
        return "female"
    return "unknown"


def extract_color(name: Optional[str], materials: Optional[str]) -> str:
    """Pick a display colour from the product text, defaulting to "Various"."""
    text = f"{name or ''} {materials or ''}".lower()
    for color, pattern in _COLOR_PATTERNS:
        if pattern.search(text):
            return color.title()
    return "Various"


def _as_list(value) -> list:
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        return list(value)
    return []


def _clean_price(value) -> Optional[float]:
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if math.isfinite(price) and price > 0 else None


def _clean_images(images: List[str], url: str) -> List[str]:
    cleaned: List[str] = []
    for raw in _as_list(images):
        if not isinstance(raw, str):
            continue
        try:
            image_url = validate_image_url(raw)
        except URLValidationError as e:
            logger.warning(f"Invalid image URL for {url}: {e}")
            continue
        if image_url and image_url not in cleaned:
            cleaned.append(image_url)
    return cleaned


def _clean_sizes(sizes: List[str]) -> List[str]:
    seen: List[str] = []
    for size in _as_list(sizes):
        if not isinstance(size, (str, int)) or isinstance(size, bool):
            continue
        label = str(size).strip()
        if label and label not in seen:
            seen.append(label)
    return seen


def build_product(raw: RawProductData, source_url: str) -> Product:
    """Assemble a storage-ready Product from raw extraction data.

    Args:
        raw: Raw product data from the page fetcher.
        source_url: URL the data was extracted from.

    Returns:
        The normalized Product (timestamps unset, ``is_curated`` False).

    Raises:
        ExtractionFailure: If the name is missing or is the unknown-product
            placeholder.
    """
    url = canonicalize_url(source_url)
    name = (raw.name or "").strip()
    if not name or name.lower() == UNKNOWN_PRODUCT_NAME:
        raise ExtractionFailure(url or source_url)

    materials = (raw.materials or "").strip()
    parsed = parse_composition(materials)

    return Product(
        url=url,
        product_id=extract_product_id(url) or uuid.uuid4().hex[:9],
        name=name,
        price=_clean_price(raw.price),
        images=_clean_images(raw.images, url),
        sizes_available=_clean_sizes(raw.sizes),
        color=extract_color(name, materials),
        category=detect_category(urlparse(url).path, name, materials),
        gender=determine_gender(url),
        composition_raw=materials,
        composition_parsed=dict(parsed.composition),
        cotton_percentage=extract_primary_cotton_percent(materials),
        is_cotton_qualified=parsed.is_cotton_qualified,
    )


def is_accepted_by_cotton(product: Product, threshold: int = COTTON_THRESHOLD) -> bool:
    """Cotton gate for broad category scrapes.

    Either the parsed composition qualifies or the primary cotton
    percentage reaches the threshold.
    """
    return product.is_cotton_qualified or product.cotton_percentage >= threshold
