"""
Utility functions for the catalog backend.

Includes:
- Slug generation
- Pagination helpers
- UTC datetime helpers
- Money normalization
"""

import re
import unicodedata
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

TWO_PLACES = Decimal("0.01")


def generate_slug(name: str) -> str:
    """
    Generate a URL-friendly slug from a string.

    Folds accents to ASCII, lowercases, drops anything that is not a word
    character, whitespace or hyphen, turns whitespace runs into hyphens and
    collapses repeated hyphens.

    Args:
        name: String to convert to slug

    Returns:
        URL-friendly slug (may be empty if nothing survives)
    """
    slug = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = slug.lower()

    # Remove special characters
    slug = re.sub(r"[^\w\s-]", "", slug)

    # Replace whitespace with hyphens
    slug = re.sub(r"\s+", "-", slug)

    # Remove multiple consecutive hyphens
    slug = re.sub(r"-{2,}", "-", slug)

    return slug.strip("-")


def utc_now() -> datetime:
    """
    Get the current UTC datetime.

    Returns:
        Current datetime in UTC timezone
    """
    return datetime.now(timezone.utc)


def to_money(value: Optional[Union[Decimal, float, int, str]]) -> Optional[Decimal]:
    """Normalize a monetary value to a two-place Decimal (None passes through)."""
    if value is None:
        return None
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def calculate_offset(page: int, per_page: int) -> int:
    """
    Calculate database offset from page number and items per page.

    Args:
        page: Page number (1-indexed)
        per_page: Items per page

    Returns:
        Offset for database query
    """
    return (page - 1) * per_page


def calculate_total_pages(total: int, per_page: int) -> int:
    """Number of pages needed to show ``total`` items."""
    if per_page <= 0:
        return 0
    return (total + per_page - 1) // per_page
