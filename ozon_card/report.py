"""Render product records as JSON or as a human-readable card."""

from __future__ import annotations

import json
import sys
from typing import Any, TextIO

from ozon_card.config import (
    OUTPUT_JSON,
    PARSE_SCENARIOS,
    SCENARIO_CHECK_GOOGLE,
    SCENARIO_OPEN_FIRST_PRODUCT,
    SCENARIO_OPEN_PRODUCT,
    SCENARIO_OPEN_ROOT,
)
from ozon_card.data import ProductRecord

MAX_LISTED_IMAGES = 5
DESCRIPTION_LIMIT = 400

SIMPLE_SCENARIO_LABELS = {
    SCENARIO_CHECK_GOOGLE: "Google reachable",
    SCENARIO_OPEN_PRODUCT: "Opened product page",
    SCENARIO_OPEN_ROOT: "Opened site root",
    SCENARIO_OPEN_FIRST_PRODUCT: "Opened first product from root",
}


def print_json(payload: Any, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    text = json.dumps(payload, ensure_ascii=False, indent=2) + "\n"
    try:
        stream.write(text)
    except UnicodeEncodeError:
        stream.buffer.write(text.encode("utf-8", errors="replace"))


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[: limit - 3] + "..."


def _format_number(value: float | int | None) -> str:
    if value is None:
        return "n/a"
    return str(value)


def format_product_card(record: ProductRecord) -> str:
    lines = [
        "🛍️  Ozon Product Card",
        "----------------------------------------",
        f"Title:       {record.title}",
        f"URL:         {record.url}",
    ]

    price = record.price
    if price.display_text or price.value is not None:
        price_line = price.display_text or f"{price.value} {price.currency or ''}".strip()
        lines.append(f"Price:       {price_line}")
    if price.availability:
        lines.append(f"Availability: {price.availability.strip()}")
    if record.rating:
        review_count = record.rating.review_count if record.rating.review_count is not None else 0
        lines.append(f"Rating:      {_format_number(record.rating.value)} ({review_count} reviews)")
    if record.brand:
        lines.append(f"Brand:       {record.brand}")
    if record.seller:
        lines.append(f"Seller:      {record.seller}")
    if record.sku:
        lines.append(f"SKU:         {record.sku}")
    if record.breadcrumbs:
        lines.append(f"Breadcrumbs: {' › '.join(record.breadcrumbs)}")
    if record.images:
        lines.append("Images:")
        for image in record.images[:MAX_LISTED_IMAGES]:
            lines.append(f"  - {image}")
        if len(record.images) > MAX_LISTED_IMAGES:
            lines.append(f"  … {len(record.images) - MAX_LISTED_IMAGES} more")
    if record.description:
        lines.append("")
        lines.append("Description:")
        lines.append(truncate(record.description, DESCRIPTION_LIMIT))
    return "\n".join(lines)


def render_payload(record: ProductRecord, scenario: str) -> dict[str, Any]:
    if scenario in PARSE_SCENARIOS:
        return record.to_dict()
    return {"success": True, "title": record.title, "url": record.url}


def render_text(record: ProductRecord, scenario: str) -> str:
    if scenario in PARSE_SCENARIOS:
        return format_product_card(record)
    label = SIMPLE_SCENARIO_LABELS.get(scenario, "Opened page")
    return f"✅ {label} ({record.title})"


def emit(record: ProductRecord, scenario: str, output: str, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    if output == OUTPUT_JSON:
        print_json(render_payload(record, scenario), stream)
        return
    stream.write(render_text(record, scenario) + "\n")
