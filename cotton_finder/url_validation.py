"""URL validation and canonicalization utilities.

Product identity is the canonical URL, so every URL entering the catalog
goes through :func:`canonicalize_url` first.
"""

import re
from typing import Optional, Set
from urllib.parse import urlparse, urlunparse

__all__ = [
    "validate_url",
    "validate_image_url",
    "sanitize_url",
    "canonicalize_url",
    "is_product_url",
    "extract_product_id",
    "URLValidationError",
    "ALLOWED_DOMAINS",
]


class URLValidationError(Exception):
    """Raised when URL validation fails."""
    pass


# Domains we trust for scraping
ALLOWED_DOMAINS: Set[str] = frozenset({
    "www.zara.com",
    "zara.com",
    # CDN domain for images
    "static.zara.net",
})

# Product pages end in -p<digits>.html or /p<digits>.html, e.g.
# /ca/en/basic-cotton-t-shirt-p03253320.html or /ca/en/woman/product/p123456.html
PRODUCT_URL_PATTERN = re.compile(r"[/-]p\d+\.html$", re.IGNORECASE)

# Numeric product id: a path segment or slug suffix starting with "p"
PRODUCT_ID_PATTERN = re.compile(r"[/-]p(\d+)")

IMAGE_URL_PATTERN = re.compile(
    r"^https?://[a-zA-Z0-9.-]+\.(com|net)/.*\.(jpg|jpeg|png|webp|avif|gif)(\?.*)?$",
    re.IGNORECASE
)

# Dangerous URL schemes to reject
DANGEROUS_SCHEMES = {"javascript", "data", "vbscript", "file"}


def sanitize_url(url: str) -> str:
    """Sanitize a URL by stripping whitespace and control characters."""
    if not url:
        return ""

    url = url.strip()
    url = re.sub(r"[\x00-\x1f\x7f-\x9f]", "", url)
    url = url.replace("\x00", "").replace("%00", "")

    return url


def canonicalize_url(url: str) -> str:
    """Reduce a product URL to its canonical form.

    Query string and fragment are dropped (colour/variant parameters such
    as ``?v1=...`` do not change the product) and the host is lowercased.
    """
    url = sanitize_url(url)
    if not url:
        return ""

    parsed = urlparse(url)
    return urlunparse(parsed._replace(netloc=parsed.netloc.lower(), query="", fragment="", params=""))


def validate_url(
    url: str,
    allowed_domains: Optional[Set[str]] = None,
    require_https: bool = False,
) -> str:
    """Validate a URL for safety.

    Args:
        url: URL to validate
        allowed_domains: Set of allowed domains (default: ALLOWED_DOMAINS,
            pass an empty set to allow any domain)
        require_https: Whether to require HTTPS scheme

    Returns:
        Validated URL

    Raises:
        URLValidationError: If URL is invalid or from untrusted domain
    """
    if not url:
        raise URLValidationError("URL is empty")

    url = sanitize_url(url)

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme: {scheme}")

    if require_https and scheme != "https":
        raise URLValidationError(f"URL must use HTTPS, got: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid URL scheme: {scheme}")

    domain = parsed.netloc.lower()
    if not domain:
        raise URLValidationError("URL has no domain")

    domain_without_port = domain.split(":")[0]

    domains_to_check = allowed_domains if allowed_domains is not None else ALLOWED_DOMAINS
    if domains_to_check and domain_without_port not in domains_to_check:
        raise URLValidationError(
            f"URL domain '{domain_without_port}' not in allowed domains: {sorted(domains_to_check)}"
        )

    suspicious_patterns = [
        r"\.\.\/",           # Path traversal
        r"%2e%2e",           # Encoded path traversal
        r"<script",          # XSS attempt
        r"javascript:",      # JS injection
    ]

    url_lower = url.lower()
    for pattern in suspicious_patterns:
        if re.search(pattern, url_lower):
            raise URLValidationError(f"URL contains suspicious pattern: {pattern}")

    return url


def validate_image_url(url: str) -> str:
    """Validate an image URL, returning "" for empty input.

    Raises:
        URLValidationError: If URL is not a valid image URL
    """
    if not url:
        return ""

    url = sanitize_url(url)
    if url.startswith("//"):
        url = "https:" + url

    try:
        parsed = urlparse(url)
    except ValueError as e:
        raise URLValidationError(f"Failed to parse image URL: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme in DANGEROUS_SCHEMES:
        raise URLValidationError(f"Dangerous URL scheme in image: {scheme}")

    if scheme not in ("http", "https"):
        raise URLValidationError(f"Invalid image URL scheme: {scheme}")

    if not IMAGE_URL_PATTERN.match(url):
        # CDN URLs often carry no extension
        if "static.zara.net" not in parsed.netloc.lower():
            raise URLValidationError(f"URL does not look like an image: {url}")

    return url


def is_product_url(url: str) -> bool:
    """Check whether a URL (absolute or relative) points at a product page."""
    path = urlparse(sanitize_url(url)).path
    return bool(PRODUCT_URL_PATTERN.search(path))


def extract_product_id(url: str) -> Optional[str]:
    """Extract the numeric product id from a product URL, if present."""
    match = PRODUCT_ID_PATTERN.search(urlparse(sanitize_url(url)).path)
    return match.group(1) if match else None
