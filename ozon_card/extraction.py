"""Product extraction: DOM capture, JSON-LD parsing, and record normalization.

The page side only collects raw material (script texts, a heading, a price
text, the challenge token). Parsing and normalization happen here in Python
so the same snapshot always yields the same record.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any

from playwright.async_api import Page

from ozon_card.config import (
    CHALLENGE_TOKEN_SELECTOR,
    HEADING_SELECTORS,
    LINKED_DATA_SELECTOR,
    MULTI_SPACE_RE,
    PRICE_SELECTORS,
    PRODUCT_LINK_SELECTOR,
    UNKNOWN_PRODUCT_TITLE,
)
from ozon_card.data import (
    EvaluationSnapshot,
    ProductPrice,
    ProductRating,
    ProductRecord,
    as_list,
    clean_text,
    detect_currency,
    first_of,
    is_challenge_title,
    resolve_name,
    string_list,
    to_number,
    to_str,
)

LOG = logging.getLogger("ozon_card")

CAPTURE_SCRIPT = """
({ linkedDataSelector, headingSelectors, priceSelectors, tokenSelector }) => {
  const query = (selector) => {
    try {
      return document.querySelector(selector);
    } catch (e) {
      return null;
    }
  };
  const firstText = (selectors) => {
    for (const selector of selectors) {
      const node = query(selector);
      const text = node && node.textContent ? node.textContent.trim() : '';
      if (text) return text;
    }
    return null;
  };
  const tokenNode = query(tokenSelector);
  return {
    title: document.title || '',
    url: location.href || '',
    challengeToken: tokenNode && 'value' in tokenNode ? tokenNode.value : null,
    heading: firstText(headingSelectors),
    priceText: firstText(priceSelectors),
    linkedData: Array.from(document.querySelectorAll(linkedDataSelector)).map(
      (node) => node.textContent || ''
    ),
  };
}
"""

PRODUCT_LINK_SCRIPT = """
(selector) => {
  const link = document.querySelector(selector);
  return link && link.href ? link.href : null;
}
"""


class NodeKind(str, Enum):
    PRODUCT = "Product"
    BREADCRUMB_LIST = "BreadcrumbList"
    OTHER = "Other"


def node_kind(node: Any) -> NodeKind:
    if not isinstance(node, dict):
        return NodeKind.OTHER
    declared = node.get("@type")
    types = declared if isinstance(declared, list) else [declared]
    for kind in (NodeKind.PRODUCT, NodeKind.BREADCRUMB_LIST):
        if kind.value in types:
            return kind
    return NodeKind.OTHER


def parse_linked_data(blocks: list[Any]) -> list[Any]:
    """Parse each ld+json block; retry once with whitespace collapsed, else skip."""
    payloads: list[Any] = []
    for index, block in enumerate(blocks or []):
        raw = block.strip() if isinstance(block, str) else ""
        if not raw:
            continue
        try:
            payloads.append(json.loads(raw))
            continue
        except json.JSONDecodeError:
            pass
        normalized = MULTI_SPACE_RE.sub(" ", raw).replace("\n", " ").replace("\r", " ").strip()
        try:
            payloads.append(json.loads(normalized))
        except json.JSONDecodeError as exc:
            LOG.debug("Skipping unparsable JSON-LD block #%d: %s", index, exc)
    return payloads


def flatten_linked_data(payload: Any) -> list[dict[str, Any]]:
    if not payload:
        return []
    if isinstance(payload, list):
        nodes: list[dict[str, Any]] = []
        for item in payload:
            nodes.extend(flatten_linked_data(item))
        return nodes
    if isinstance(payload, dict):
        if payload.get("@graph"):
            return flatten_linked_data(payload["@graph"])
        return [payload]
    return []


def select_product_node(nodes: list[dict[str, Any]]) -> dict[str, Any] | None:
    for node in nodes:
        if node_kind(node) is NodeKind.PRODUCT:
            return node
    return None


def _breadcrumb_label(element: Any) -> str | None:
    if not isinstance(element, dict):
        return None
    candidate = element.get("name")
    if candidate is None:
        nested = element.get("item")
        if isinstance(nested, dict):
            candidate = nested.get("name")
    if isinstance(candidate, str) and candidate:
        return candidate
    return None


def collect_breadcrumbs(nodes: list[dict[str, Any]]) -> list[str]:
    """All BreadcrumbList items in document order; duplicates are kept."""
    crumbs: list[str] = []
    for node in nodes:
        if node_kind(node) is not NodeKind.BREADCRUMB_LIST:
            continue
        for element in as_list(node.get("itemListElement")):
            label = _breadcrumb_label(element)
            if label:
                crumbs.append(label)
    return crumbs


def build_snapshot(raw: dict[str, Any] | None) -> EvaluationSnapshot:
    raw = raw or {}
    payloads = parse_linked_data(raw.get("linkedData") or [])
    nodes: list[dict[str, Any]] = []
    for payload in payloads:
        nodes.extend(flatten_linked_data(payload))

    title = raw.get("title") or ""
    token = raw.get("challengeToken")
    return EvaluationSnapshot(
        is_challenge=is_challenge_title(title),
        challenge_token=token if isinstance(token, str) and token else None,
        heading=clean_text(raw.get("heading")) or None,
        price_text=clean_text(raw.get("priceText")) or None,
        product_node=select_product_node(nodes),
        breadcrumbs=tuple(collect_breadcrumbs(nodes)),
        raw_linked_data=tuple(payloads),
        page_title=title,
        page_url=raw.get("url") or "",
    )


def normalize_product_record(snapshot: EvaluationSnapshot, url: str) -> ProductRecord:
    """Every field is filled independently; a missing one never blocks the rest."""
    product = snapshot.product_node or {}
    offers = first_of(product.get("offers"))
    offers = offers if isinstance(offers, dict) else {}
    aggregate = first_of(product.get("aggregateRating"))

    rating = None
    if isinstance(aggregate, dict):
        review_count = aggregate.get("reviewCount")
        if review_count is None:
            review_count = aggregate.get("ratingCount")
        rating = ProductRating(
            value=to_number(aggregate.get("ratingValue")),
            review_count=to_number(review_count),
        )

    offer_price = offers.get("price")
    price_value = to_number(offer_price if offer_price is not None else snapshot.price_text)

    return ProductRecord(
        title=to_str(product.get("name")) or snapshot.heading or UNKNOWN_PRODUCT_TITLE,
        url=url,
        sku=to_str(product.get("sku")) or to_str(product.get("mpn")),
        brand=resolve_name(product.get("brand")),
        description=to_str(product.get("description")),
        price=ProductPrice(
            value=price_value,
            currency=to_str(offers.get("priceCurrency")) or detect_currency(snapshot.price_text),
            display_text=snapshot.price_text,
            availability=to_str(offers.get("availability")),
        ),
        rating=rating,
        seller=resolve_name(offers.get("seller"), "name", "sellerName"),
        breadcrumbs=tuple(snapshot.breadcrumbs),
        images=tuple(string_list(product.get("image"))),
        raw_price_text=snapshot.price_text,
    )


class ExtractionEngine:
    """Capture snapshots from a page and turn them into product records."""

    def __init__(
        self,
        heading_selectors: tuple[str, ...] = HEADING_SELECTORS,
        price_selectors: tuple[str, ...] = PRICE_SELECTORS,
        token_selector: str = CHALLENGE_TOKEN_SELECTOR,
    ) -> None:
        self.heading_selectors = heading_selectors
        self.price_selectors = price_selectors
        self.token_selector = token_selector

    def _capture_args(self) -> dict[str, Any]:
        return {
            "linkedDataSelector": LINKED_DATA_SELECTOR,
            "headingSelectors": list(self.heading_selectors),
            "priceSelectors": list(self.price_selectors),
            "tokenSelector": self.token_selector,
        }

    async def capture(self, page: Page) -> EvaluationSnapshot:
        raw = await page.evaluate(CAPTURE_SCRIPT, self._capture_args())
        snapshot = build_snapshot(raw if isinstance(raw, dict) else None)
        LOG.debug(
            "Captured snapshot: challenge=%s product_node=%s breadcrumbs=%d ld_blocks=%d",
            snapshot.is_challenge,
            snapshot.product_node is not None,
            len(snapshot.breadcrumbs),
            len(snapshot.raw_linked_data),
        )
        if LOG.isEnabledFor(logging.DEBUG):
            payloads = json.dumps(list(snapshot.raw_linked_data), ensure_ascii=False, default=str)
            LOG.debug("Raw JSON-LD: %s", payloads)
        return snapshot

    def extract(self, snapshot: EvaluationSnapshot, url: str) -> ProductRecord:
        if snapshot.product_node is None:
            LOG.info("No Product JSON-LD node found, falling back to DOM heading/price")
        return normalize_product_record(snapshot, url)

    @staticmethod
    async def find_product_link(page: Page, selector: str = PRODUCT_LINK_SELECTOR) -> str | None:
        href = await page.evaluate(PRODUCT_LINK_SCRIPT, selector)
        return href if isinstance(href, str) and href else None
