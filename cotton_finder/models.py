"""Data models for scraped clothing products."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from cotton_finder.config import DEFAULT_BRAND, DEFAULT_CURRENCY, SITE_NAME

__all__ = ["RawProductData", "Product"]


@dataclass
class RawProductData:
    """Best-effort extraction result for a single product page.

    Every field is optional; the page fetcher fills what it can find.
    """

    name: Optional[str] = None
    price: Optional[float] = None
    materials: Optional[str] = None
    images: List[str] = field(default_factory=list)
    sizes: List[str] = field(default_factory=list)


@dataclass
class Product:
    """A normalized, storage-ready clothing product.

    Identity is the canonical URL; ``product_id`` is the numeric id found in
    the URL and only serves as a secondary identifier. Timestamps are set by
    the catalog on persistence, never by the record builder.
    """

    # Identity
    url: str
    product_id: str

    # Descriptive
    name: str
    brand: str = DEFAULT_BRAND
    site: str = SITE_NAME
    price: Optional[float] = None
    currency: str = DEFAULT_CURRENCY
    images: List[str] = field(default_factory=list)
    sizes_available: List[str] = field(default_factory=list)
    color: str = "Various"

    # Classification
    category: Optional[str] = None
    gender: str = "unknown"
    composition_raw: str = ""
    composition_parsed: Dict[str, int] = field(default_factory=dict)
    cotton_percentage: int = 0
    is_cotton_qualified: bool = False

    # Provenance / lifecycle
    is_curated: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def image(self) -> str:
        """Primary image URL (first of ``images``), or an empty string."""
        return self.images[0] if self.images else ""

    def to_document(self) -> Dict[str, Any]:
        """Convert to the stored document shape.

        Timestamps are left out; the catalog sets them on upsert.
        """
        return {
            "id": self.product_id,
            "site": self.site,
            "url": self.url,
            "name": self.name,
            "brand": self.brand,
            "price": self.price,
            "currency": self.currency,
            "category": self.category,
            "gender": self.gender,
            "composition_raw": self.composition_raw,
            "composition_parsed": dict(self.composition_parsed),
            "cottonPercentage": self.cotton_percentage,
            "is_cotton_qualified": self.is_cotton_qualified,
            "images": list(self.images),
            "image": self.image,
            "color": self.color,
            "sizes_available": list(self.sizes_available),
            "isCurated": self.is_curated,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Product":
        """Build a Product from a stored document, tolerating older shapes."""
        images = doc.get("images")
        if not isinstance(images, list):
            images = [doc["image"]] if doc.get("image") else []

        return cls(
            url=doc["url"],
            product_id=str(doc.get("id") or doc["url"]),
            name=doc.get("name") or "",
            brand=doc.get("brand") or DEFAULT_BRAND,
            site=doc.get("site") or SITE_NAME,
            price=doc.get("price"),
            currency=doc.get("currency") or DEFAULT_CURRENCY,
            images=images,
            sizes_available=list(doc.get("sizes_available") or []),
            color=doc.get("color") or "Various",
            category=doc.get("category"),
            gender=doc.get("gender") or "unknown",
            composition_raw=doc.get("composition_raw") or doc.get("materials") or "",
            composition_parsed=dict(doc.get("composition_parsed") or {}),
            cotton_percentage=int(doc.get("cottonPercentage") or 0),
            is_cotton_qualified=bool(doc.get("is_cotton_qualified", False)),
            is_curated=bool(doc.get("isCurated", False)),
            created_at=_parse_timestamp(doc.get("createdAt")),
            updated_at=_parse_timestamp(doc.get("updatedAt")),
        )

    def to_api_dict(self) -> Dict[str, Any]:
        """Serialize for clients (the public product shape)."""
        return {
            "id": self.product_id,
            "name": self.name,
            "brand": self.brand,
            "price": self.price if self.price is not None else 0,
            "currency": self.currency,
            "cottonPercentage": self.cotton_percentage,
            "materials": self.composition_raw,
            "color": self.color,
            "image": self.image,
            "images": list(self.images),
            "url": self.url,
            "category": self.category,
            "gender": self.gender,
            "sizesAvailable": list(self.sizes_available),
        }


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None
