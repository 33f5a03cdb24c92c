"""HTML parsing and extraction utilities for listing and product pages."""

import re
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from cotton_finder.config import BASE_URL
from cotton_finder.models import RawProductData
from cotton_finder.url_validation import canonicalize_url, is_product_url

__all__ = [
    "extract_product_links",
    "extract_name",
    "extract_price",
    "extract_materials",
    "extract_images",
    "extract_sizes",
    "parse_product_page",
]

# Price must fall inside this open range to be trusted
MIN_PRICE = 0
MAX_PRICE = 10000

PRICE_TEXT_RE = re.compile(r"\$?(\d+(?:\.\d{2})?)")
BODY_PRICE_PATTERNS = [
    re.compile(r"\$(\d+(?:\.\d{2})?)"),
    re.compile(r"CAD\s*\$?(\d+(?:\.\d{2})?)"),
    re.compile(r"(\d+(?:\.\d{2})?)\s*CAD"),
]

HAS_PERCENT_RE = re.compile(r"\d+%\s*\w+")
BODY_MATERIAL_PATTERNS = [
    re.compile(
        r"(\d+%\s*(?:cotton|elastane|polyester|nylon|viscose|spandex|lycra|modal|rayon|silk|wool|cashmere)"
        r"(?:\s*,\s*\d+%\s*\w+)*)",
        re.IGNORECASE,
    ),
    re.compile(r"Composition[:\s]*([^.\n]{20,200})", re.IGNORECASE),
    re.compile(r"Materials?[:\s]*([^.\n]{20,200})", re.IGNORECASE),
]

SIZE_LABEL_RE = re.compile(r"^(XS|S|M|L|XL|XXL|\d+)$", re.IGNORECASE)

IMAGE_CDN = "static.zara.net"
IMAGE_WIDTH_QUERY = "?w=1920"

NAME_SELECTORS = [
    "h1.product-detail-info__header-name",
    "h1.product-detail-card-info__header-name",
    'h1[data-qa-action="product-detail-name"]',
    ".product-detail-info__header-name",
    ".product-detail-card-info__header-name",
    "h1",
]

PRICE_SELECTORS = [
    "span.price-current__amount",
    ".price-current__amount",
    '[data-qa-action="product-detail-price"]',
    ".product-detail-info__price-current",
    ".product-detail-card-info__price-current",
    '[class*="price"]',
]

MATERIAL_SELECTORS = [
    "div.product-detail-description",
    ".product-detail-info__description",
    ".product-detail-card-info__description",
    '[data-qa-action="product-detail-description"]',
    '[class*="description"]',
    '[class*="composition"]',
    '[class*="materials"]',
]

IMAGE_SELECTORS = [
    "ul.product-detail-view__extra-images img",
    ".product-detail-view__secondary-content img",
    ".product-detail-view__main-content img",
    '[data-qa-action="product-detail-image"] img',
    ".product-detail-info__image img",
    ".product-detail-card-info__image img",
    f'img[src*="{IMAGE_CDN}"]',
]

SIZE_SELECTORS = [
    "button.product-detail-size-selector__size-list-item",
    ".product-detail-size-selector__size-list-item",
    '[data-qa-action="product-detail-size"]',
    ".product-detail-info__size-selector button",
    ".product-detail-card-info__size-selector button",
    'button[class*="size"]',
]


def extract_product_links(html: str, base_url: str = BASE_URL) -> List[str]:
    """Extract canonical product detail URLs from a listing page.

    Only links ending in ``-p<digits>.html`` or ``/p<digits>.html`` are kept,
    so menu and category links are ignored. Order is preserved, duplicates dropped.
    """
    soup = BeautifulSoup(html, "html.parser")
    links: List[str] = []
    seen = set()

    for a in soup.select("a[href]"):
        href = a.get("href")
        if not href or not isinstance(href, str):
            continue
        try:
            if not is_product_url(href):
                continue
            url = canonicalize_url(urljoin(base_url + "/", href))
        except ValueError:
            continue
        if url not in seen:
            seen.add(url)
            links.append(url)

    return links


def extract_name(soup: BeautifulSoup) -> Optional[str]:
    """Product title from the first selector with text."""
    for selector in NAME_SELECTORS:
        el = soup.select_one(selector)
        if el:
            text = el.get_text(strip=True)
            if text:
                return text
    return None


def _parse_price(text: str, pattern: "re.Pattern[str]") -> Optional[float]:
    match = pattern.search(text)
    if not match:
        return None
    price = float(match.group(1))
    if MIN_PRICE < price < MAX_PRICE:
        return price
    return None


def extract_price(soup: BeautifulSoup) -> Optional[float]:
    """Current price from price elements, falling back to the page text."""
    for selector in PRICE_SELECTORS:
        for el in soup.select(selector):
            price = _parse_price(el.get_text(" ", strip=True), PRICE_TEXT_RE)
            if price is not None:
                return price

    body_text = soup.get_text(" ", strip=True)
    for pattern in BODY_PRICE_PATTERNS:
        price = _parse_price(body_text, pattern)
        if price is not None:
            return price
    return None


def extract_materials(soup: BeautifulSoup) -> str:
    """Composition text: the first description block mentioning a percentage."""
    for selector in MATERIAL_SELECTORS:
        for el in soup.select(selector):
            text = el.get_text(" ", strip=True)
            if HAS_PERCENT_RE.search(text):
                return text

    body_text = soup.get_text(" ", strip=True)
    for pattern in BODY_MATERIAL_PATTERNS:
        match = pattern.search(body_text)
        if match:
            return match.group(0).strip()
    return ""


def _normalize_image_src(src: str) -> Optional[str]:
    if "placeholder" in src or src.startswith("data:image"):
        return None
    if IMAGE_CDN in src:
        src = src.split("?")[0] + IMAGE_WIDTH_QUERY
    if src.startswith("http"):
        return src
    if src.startswith("//"):
        return "https:" + src
    if src.startswith("/"):
        return BASE_URL + src
    return None


def extract_images(soup: BeautifulSoup) -> List[str]:
    """Product image URLs from the first gallery selector that yields any."""
    for selector in IMAGE_SELECTORS:
        images: List[str] = []
        for img in soup.select(selector):
            src = img.get("src") or img.get("data-src") or img.get("data-lazy-src")
            if not src or not isinstance(src, str):
                continue
            image_url = _normalize_image_src(src)
            if image_url and image_url not in images:
                images.append(image_url)
        if images:
            return images
    return []


def extract_sizes(soup: BeautifulSoup) -> List[str]:
    """Size labels (XS..XXL or numeric) from the size selector buttons."""
    for selector in SIZE_SELECTORS:
        sizes: List[str] = []
        for el in soup.select(selector):
            text = el.get_text(strip=True)
            if text and len(text) <= 5 and SIZE_LABEL_RE.match(text) and text not in sizes:
                sizes.append(text)
        if sizes:
            return sizes
    return []


def parse_product_page(html: str) -> RawProductData:
    """Parse a product page into best-effort raw data."""
    soup = BeautifulSoup(html, "html.parser")
    return RawProductData(
        name=extract_name(soup),
        price=extract_price(soup),
        materials=extract_materials(soup),
        images=extract_images(soup),
        sizes=extract_sizes(soup),
    )
