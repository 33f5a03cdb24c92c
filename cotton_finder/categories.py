"""Category taxonomy and normalization.

Free-form category and garment strings are mapped onto a small canonical
taxonomy (tops, pants, skirts, dresses). The taxonomy is open: anything
that does not map is passed through lowercased.
"""

from typing import Dict, FrozenSet, List, Optional, Set, Tuple

__all__ = [
    "CANONICAL_CATEGORIES",
    "CATEGORY_VARIATIONS",
    "normalize_category",
    "expand_to_variations",
    "category_from_name",
    "detect_category",
    "is_canonical",
]


# =============================================================================
# Canonical Taxonomy
# =============================================================================
# Each canonical category maps to the surface forms it may be stored under.
# Stored categories are not renormalized in place, so queries match all of
# them.

CATEGORY_VARIATIONS: Dict[str, List[str]] = {
    "tops": [
        "tops", "top", "tshirts", "tshirt", "t-shirt", "t-shirts",
        "shirt", "shirts", "blouse", "blouses",
    ],
    "pants": ["pants", "pant", "jeans", "jean", "trousers", "trouser"],
    "skirts": ["skirts", "skirt"],
    "dresses": ["dresses", "dress"],
}

CANONICAL_CATEGORIES: FrozenSet[str] = frozenset(CATEGORY_VARIATIONS)

# Checked in order; first hit wins
_TOPS_SUBSTRINGS = ("t-shirt", "tshirt", "tee", "blouse")
_TOPS_EXACT = ("shirt", "shirts", "top", "tops")
_PANTS_SUBSTRINGS = ("pant", "jean", "trouser")
_SKIRTS_SUBSTRINGS = ("skirt",)
_DRESSES_SUBSTRINGS = ("dress",)


def normalize_category(raw_category: Optional[str]) -> Optional[str]:
    """Map a raw category string onto the canonical taxonomy.

    Tops signals are tested before pants, then skirts, then dresses. When no
    rule applies the lowercased input is returned unchanged.

    Args:
        raw_category: Raw category or garment string, may be None.

    Returns:
        Canonical category, the lowercased input, or None for empty input.
    """
    if not raw_category:
        return None

    lower = raw_category.lower()

    if any(s in lower for s in _TOPS_SUBSTRINGS) or lower in _TOPS_EXACT:
        return "tops"
    if any(s in lower for s in _PANTS_SUBSTRINGS):
        return "pants"
    if any(s in lower for s in _SKIRTS_SUBSTRINGS):
        return "skirts"
    if any(s in lower for s in _DRESSES_SUBSTRINGS):
        return "dresses"

    return lower


def expand_to_variations(normalized_category: str) -> Set[str]:
    """Return every stored surface form for a canonical category.

    Unknown categories expand to a singleton set containing themselves.
    """
    return set(CATEGORY_VARIATIONS.get(normalized_category, [normalized_category]))


def is_canonical(category: Optional[str]) -> bool:
    """Check whether a category is one of the fixed taxonomy values."""
    return category in CANONICAL_CATEGORIES


# =============================================================================
# Garment Signals
# =============================================================================

# Name-based signal used to correct mis-bucketed curated URLs. Unlike
# normalize_category, any "shirt" substring counts as a top here.
_NAME_SIGNALS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("tops", ("t-shirt", "tshirt", "tee", "blouse", "shirt")),
    ("pants", ("pant", "jean", "trouser")),
    ("skirts", ("skirt",)),
    ("dresses", ("dress",)),
)

# Raw garment keywords for text found on a product page. "t-shirt" must be
# checked before the generic "shirt".
_TEXT_SIGNALS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("dresses", ("dress",)),
    ("tshirts", ("tshirt", "t-shirt", "tee")),
    ("shirts", ("shirt",)),
    ("pants", ("trouser", "pant", "jean")),
    ("tops", ("top",)),
    ("skirts", ("skirt",)),
    ("jackets", ("jacket",)),
)

_URL_PATH_SIGNALS: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ("dresses", ("/dresses",)),
    ("tshirts", ("/t-shirts", "/tshirts")),
    ("shirts", ("/shirts",)),
    ("pants", ("/trousers", "/pants")),
    ("tops", ("/tops",)),
    ("skirts", ("/skirts",)),
    ("jackets", ("/jackets",)),
)


def _first_signal(text: str, signals: Tuple[Tuple[str, Tuple[str, ...]], ...]) -> Optional[str]:
    for category, keywords in signals:
        if any(k in text for k in keywords):
            return category
    return None


def category_from_name(name: Optional[str]) -> Optional[str]:
    """Canonical category implied by a product name, or None."""
    if not name:
        return None
    return _first_signal(name.lower(), _NAME_SIGNALS)


def detect_category(url_path: str, name: Optional[str], materials: Optional[str]) -> str:
    """Derive a product's category from its URL path, name and materials text.

    Garment keywords in the combined text win; listing-style URL path
    segments are the fallback. The hit is then normalized, so "tshirts"
    becomes "tops" while "jackets" stays as is. Returns "unknown" when
    nothing matches.
    """
    path_lower = (url_path or "").lower()
    combined = " ".join([path_lower, (name or "").lower(), (materials or "").lower()])

    raw = _first_signal(combined, _TEXT_SIGNALS) or _first_signal(path_lower, _URL_PATH_SIGNALS)
    if raw is None:
        return "unknown"
    return normalize_category(raw) or raw
