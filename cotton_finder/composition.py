"""Fabric composition parsing.

Turns raw composition text such as ``"Shell: 95% Cotton, 5% Elastane."``
into a fiber -> percentage mapping plus a cotton classification.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, Optional

from cotton_finder.config import COTTON_THRESHOLD

__all__ = [
    "CompositionResult",
    "parse_composition",
    "extract_primary_cotton_percent",
    "is_cotton_fiber",
]

# "<integer>% <run of letters and spaces>"
FIBER_PATTERN = re.compile(r"(\d{1,3})%\s*([a-z\s]+)")

# First "<integer>%...cotton" occurrence
PRIMARY_COTTON_PATTERN = re.compile(r"(\d{1,3})%\s*cotton", re.IGNORECASE)


@dataclass(frozen=True)
class CompositionResult:
    """Parsed composition: fiber name -> percentage, and the cotton flag."""

    composition: Dict[str, int] = field(default_factory=dict)
    is_cotton_qualified: bool = False


def is_cotton_fiber(fiber: str) -> bool:
    """A fiber qualifies as cotton if its name mentions cotton anywhere."""
    return "cotton" in fiber.lower()


def parse_composition(
    text: Optional[str],
    threshold: int = COTTON_THRESHOLD,
) -> CompositionResult:
    """Parse raw composition text.

    Every ``NN% fiber words`` occurrence adds one entry; a fiber seen again
    later in the text overwrites the earlier percentage. Percentages are not
    validated or clamped, so ``"150% cotton"`` is passed through as 150.

    Args:
        text: Raw composition text, may be None or empty.
        threshold: Minimum cotton percentage for ``is_cotton_qualified``.

    Returns:
        CompositionResult with the mapping and the classification.
    """
    if not text or not isinstance(text, str):
        return CompositionResult()

    composition: Dict[str, int] = {}
    cotton_percents = []

    for match in FIBER_PATTERN.finditer(text.lower()):
        fiber = " ".join(match.group(2).split())
        if not fiber:
            continue
        percent = int(match.group(1))
        composition[fiber] = percent
        if is_cotton_fiber(fiber):
            cotton_percents.append(percent)

    return CompositionResult(
        composition=composition,
        is_cotton_qualified=any(p >= threshold for p in cotton_percents),
    )


def extract_primary_cotton_percent(text: Optional[str]) -> int:
    """Return the percentage of the first ``NN% cotton`` occurrence, else 0.

    Independent of :func:`parse_composition`: with repeated cotton entries
    this reports the first one while the mapping keeps the last.
    """
    if not text or not isinstance(text, str):
        return 0

    match = PRIMARY_COTTON_PATTERN.search(text)
    if match:
        return int(match.group(1))
    return 0
