"""Product record types and the coercion helpers used to build them."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from ozon_card.config import (
    CHALLENGE_TITLE_MARKERS,
    CURRENCY_SYMBOLS,
    NON_NUMERIC_RE,
    WHITESPACE_RE,
)


@dataclass(frozen=True)
class ProductPrice:
    value: float | int | None = None
    currency: str | None = None
    display_text: str | None = None
    availability: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "currency": self.currency,
            "displayText": self.display_text,
            "availability": self.availability,
        }


@dataclass(frozen=True)
class ProductRating:
    value: float | int | None = None
    review_count: float | int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"value": self.value, "reviewCount": self.review_count}


@dataclass(frozen=True)
class ProductRecord:
    title: str
    url: str
    sku: str | None = None
    brand: str | None = None
    description: str | None = None
    price: ProductPrice = field(default_factory=ProductPrice)
    rating: ProductRating | None = None
    seller: str | None = None
    breadcrumbs: tuple[str, ...] = ()
    images: tuple[str, ...] = ()
    raw_price_text: str | None = None

    @classmethod
    def minimal(cls, title: str, url: str) -> "ProductRecord":
        """Record for navigation-only scenarios: title and URL, nothing else."""
        return cls(title=title or url, url=url)

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "url": self.url,
            "sku": self.sku,
            "brand": self.brand,
            "description": self.description,
            "price": self.price.to_dict(),
            "rating": self.rating.to_dict() if self.rating else None,
            "seller": self.seller,
            "breadcrumbs": list(self.breadcrumbs),
            "images": list(self.images),
            "rawPriceText": self.raw_price_text,
        }


@dataclass(frozen=True)
class EvaluationSnapshot:
    """What one DOM evaluation saw. Re-captured whenever the page may have changed."""

    is_challenge: bool = False
    challenge_token: str | None = None
    heading: str | None = None
    price_text: str | None = None
    product_node: dict[str, Any] | None = None
    breadcrumbs: tuple[str, ...] = ()
    raw_linked_data: tuple[Any, ...] = ()
    page_title: str = ""
    page_url: str = ""


def clean_text(value: Any) -> str:
    if not isinstance(value, str) or not value:
        return ""
    return WHITESPACE_RE.sub(" ", value).strip()


def to_str(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        trimmed = value.strip()
        return trimmed or None
    if isinstance(value, (int, float)):
        return str(value) if math.isfinite(value) else None
    return None


def _tidy_number(value: float) -> float | int:
    return int(value) if value.is_integer() else value


def to_number(value: Any) -> float | int | None:
    """
    Coerce a JSON-LD or DOM value to a number.

    Strings keep only digits, commas and periods; the first comma is read as
    a decimal separator. Anything that does not end up finite is None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _tidy_number(value) if math.isfinite(value) else None
    if not isinstance(value, str):
        return None
    cleaned = NON_NUMERIC_RE.sub("", value).replace(",", ".", 1)
    if not cleaned:
        return None
    try:
        parsed = float(cleaned)
    except ValueError:
        return None
    if not math.isfinite(parsed):
        return None
    return _tidy_number(parsed)


def first_of(value: Any) -> Any:
    if isinstance(value, list):
        for item in value:
            if item is not None:
                return item
        return None
    return value


def as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return [item for item in value if item is not None]
    if value is None:
        return []
    return [value]


def string_list(value: Any) -> list[str]:
    result: list[str] = []
    for item in as_list(value):
        text = to_str(item)
        if text:
            result.append(text)
    return result


def resolve_name(value: Any, *keys: str) -> str | None:
    """Name from a string, an object with a name field, or a list of either."""
    if not value:
        return None
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for item in value:
            name = resolve_name(item, *keys)
            if name:
                return name
        return None
    if isinstance(value, dict):
        for key in keys or ("name",):
            name = to_str(value.get(key))
            if name:
                return name
    return None


def detect_currency(price_text: str | None) -> str | None:
    if not price_text:
        return None
    for symbol, code in CURRENCY_SYMBOLS:
        if symbol in price_text:
            return code
    return None


def is_challenge_title(title: str | None) -> bool:
    lowered = (title or "").lower()
    return any(marker in lowered for marker in CHALLENGE_TITLE_MARKERS)
