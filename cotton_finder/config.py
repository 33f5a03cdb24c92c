"""Configuration and constants for the cotton finder."""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

__all__ = [
    "BASE_URL",
    "SITE_NAME",
    "DEFAULT_BRAND",
    "DEFAULT_CURRENCY",
    "CATEGORY_URLS",
    "SEARCH_URL",
    "SEARCH_SECTIONS",
    "HEADERS",
    "REQUEST_TIMEOUT",
    "DELAY_MIN",
    "DELAY_MAX",
    "CURATED_DELAY_MIN",
    "CURATED_DELAY_MAX",
    "MAX_RETRIES",
    "RETRY_BACKOFF_BASE",
    "MAX_RETRY_BACKOFF",
    "RETRY_STATUS_CODES",
    "DB_PATH",
    "COTTON_THRESHOLD",
    "DEFAULT_QUERY_LIMIT",
    "DEFAULT_SEARCH_LIMIT",
    "SEARCH_CACHE_TTL",
    "DEFAULT_TARGET_COUNTS",
    "CURATED_URLS",
    "LLM_MODEL",
    "OPENAI_API_KEY",
    "load_target_counts",
]

logger = logging.getLogger("cotton_finder.config")

BASE_URL = "https://www.zara.com"
SITE_NAME = "zara"
DEFAULT_BRAND = "Zara"
DEFAULT_CURRENCY = "CAD"

# Site search; the section parameter selects the WOMAN or MAN catalog
SEARCH_URL = f"{BASE_URL}/ca/en/search"
SEARCH_SECTIONS: Dict[str, str] = {
    "female": "WOMAN",
    "male": "MAN",
}

# Listing pages per category and gender
CATEGORY_URLS: Dict[str, Dict[str, str]] = {
    "shirts": {
        "male": "https://www.zara.com/ca/en/man-shirts-l737.html?v1=2431994&regionGroupId=124",
        "female": "https://www.zara.com/ca/en/woman-shirts-l1217.html?v1=2420369&regionGroupId=124",
    },
    "pants": {
        "male": "https://www.zara.com/ca/en/man-trousers-l838.html?v1=2432096&regionGroupId=124",
        "female": "https://www.zara.com/ca/en/woman-trousers-l1335.html?v1=2420795&regionGroupId=124",
    },
    "dresses": {
        "female": "https://www.zara.com/ca/en/woman-dresses-l1066.html?v1=2420896&regionGroupId=124",
    },
    "tshirts": {
        "male": "https://www.zara.com/ca/en/man/t-shirts-l835.html?v1=2432058",
        "female": "https://www.zara.com/ca/en/woman/t-shirts-l1063.html?v1=2420542",
    },
    "tops": {
        "female": "https://www.zara.com/ca/en/woman-tops-l1141.html",
    },
    "skirts": {
        "female": "https://www.zara.com/ca/en/woman-skirts-l1200.html",
    },
    "jackets": {
        "male": "https://www.zara.com/ca/en/man-jackets-l828.html",
        "female": "https://www.zara.com/ca/en/woman-jackets-l1058.html",
    },
}

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept-Language": "en-US,en;q=0.9",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
}

# Request timeouts
REQUEST_TIMEOUT = 30

# Delay between product fetches (in seconds)
DELAY_MIN = 1.0
DELAY_MAX = 3.0

# Curated runs are slower
CURATED_DELAY_MIN = 2.0
CURATED_DELAY_MAX = 4.0

# Retry settings with exponential backoff
MAX_RETRIES = 3
RETRY_BACKOFF_BASE = 2.0  # 2^attempt seconds
MAX_RETRY_BACKOFF = 30.0
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}

DB_PATH = os.getenv("COTTON_DB_PATH", "data/catalog.db")

# A product qualifies when a cotton fiber reaches this percentage
COTTON_THRESHOLD = 90

DEFAULT_QUERY_LIMIT = int(os.getenv("DEFAULT_QUERY_LIMIT", "50"))
DEFAULT_SEARCH_LIMIT = 10
SEARCH_CACHE_TTL = int(os.getenv("SEARCH_CACHE_TTL", "3600"))

# Scheduled scrape: "<gender>_<category>" -> number of products wanted
DEFAULT_TARGET_COUNTS: Dict[str, int] = {
    "male_shirts": 5,
    "female_shirts": 5,
    "male_pants": 5,
    "female_pants": 5,
    "male_tshirts": 5,
    "female_tshirts": 5,
    "dresses": 10,
    "female_tops": 5,
    "female_skirts": 5,
    "male_jackets": 5,
    "female_jackets": 5,
}

# Hand-picked product pages, grouped by intended category
CURATED_URLS: Dict[str, List[str]] = {
    "tops": [
        "https://www.zara.com/ca/en/turtleneck-t-shirt-p02335643.html?v1=503419331",
        "https://www.zara.com/ca/en/plaid-cotton-shirt-with-tie-zw-collection-p01063020.html?v1=501969918&v2=2420369",
        "https://www.zara.com/ca/en/basic-cotton-t-shirt-p03253320.html?v1=506473367",
        "https://www.zara.com/ca/en/supima--cotton-t-shirt-p00858613.html?v1=506773111",
        "https://www.zara.com/ca/en/striped-scarf-poplin-shirt-p02055226.html?v1=498757832",
        "https://www.zara.com/ca/en/striped-poplin-shirt-with-scarf-detail-p02225456.html?v1=509541261",
        "https://www.zara.com/ca/en/zw-collection-bow-shirt-p01063899.html?v1=502565742",
        "https://www.zara.com/ca/en/100-mercerised-cotton-short-sleeve-t-shirt-p06201543.html?v1=502649622",
    ],
    "pants": [
        "https://www.zara.com/ca/en/soft-touch-palazzo-pants-p05039223.html?v1=503986848",
        "https://www.zara.com/ca/en/zw-collection-high-waist-wide-leg-jeans-p09632253.html?v1=506929665",
        "https://www.zara.com/ca/en/trf-high-waisted-cropped-flare-jeans-p04592217.html?v1=503416302",
        "https://www.zara.com/ca/en/z-10-high-waisted-belted-culotte-jeans-p01889152.html?v1=511322231",
        "https://www.zara.com/ca/en/sporty-interlock-joggers-p04729793.html?v1=468828239",
        "https://www.zara.com/ca/en/high-waisted-faux-denim-pants-p05359212.html?v1=498354611",
        "https://www.zara.com/ca/en/corduroy-pants-with-pockets-p01255573.html?v1=505070538",
        "https://www.zara.com/ca/en/zw-collection-mid-rise-ankle-balloon-jeans-p09632045.html?v1=507995178",
        "https://www.zara.com/ca/en/pocket-cargo-pants-p05575241.html?v1=470177109",
    ],
    "skirts": [
        "https://www.zara.com/ca/en/zw-collection-denim-midi-skirt-p09632286.html?v1=500020725",
        "https://www.zara.com/ca/en/slim-jeans-p02005706.html?v1=458132048",
        "https://www.zara.com/ca/en/pleated-midi-skirt-p01255564.html?v1=502971342",
        "https://www.zara.com/ca/en/animal-print-fine-waled-corduroy-skirt-p09492754.html?v1=488164933",
        "https://www.zara.com/ca/en/zw-collection-floral-pleated-skirt-p08603069.html?v1=471481622",
        "https://www.zara.com/ca/en/printed-midi-skirt-zw-collection-p02183048.html?v1=459175337",
        "https://www.zara.com/ca/en/ripped-trf-denim-skirt-p04365090.html?v1=477870300",
    ],
    "dresses": [
        "https://www.zara.com/ca/en/plaid-short-dress-p04764302.html?v1=496086979",
        "https://www.zara.com/ca/en/floral-print-dress-p06161094.html?v1=478915737",
        "https://www.zara.com/ca/en/100-cotton-long-pleated-dress-p06682530.html?v1=463247369",
        "https://www.zara.com/ca/en/contrast-pleated-long-dress-p06652530.html?v1=463278603",
        "https://www.zara.com/ca/en/strapless-dress-p06929184.html?v1=452744408&v2=2580270",
    ],
}

# LLM Configuration
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-5.2")
OPENAI_API_KEY: Optional[str] = os.getenv("OPENAI_API_KEY")


def load_target_counts(path: Optional[str] = None) -> Dict[str, int]:
    """Merge target counts from a JSON config file over the defaults.

    The file is expected to look like ``{"target_counts": {"male_shirts": 3}}``.
    A missing or unreadable file falls back to the defaults.
    """
    counts = dict(DEFAULT_TARGET_COUNTS)
    if not path:
        return counts

    config_path = Path(path)
    if not config_path.exists():
        logger.warning(f"Config file not found: {path}, using default target counts")
        return counts

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Error loading config {path}: {e}, using default target counts")
        return counts

    overrides = data.get("target_counts", {}) if isinstance(data, dict) else {}
    for key, value in overrides.items():
        try:
            counts[key] = int(value)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric target count {key}={value!r}")
    return counts
