"""JSON-LD parsing, breadcrumb collection and record normalization."""

import asyncio
import json
import logging

import pytest

from fakes import FakePage, make_capture
from ozon_card.extraction import (
    ExtractionEngine,
    NodeKind,
    build_snapshot,
    collect_breadcrumbs,
    flatten_linked_data,
    node_kind,
    normalize_product_record,
    parse_linked_data,
)

pytestmark = pytest.mark.unit

URL = "https://www.ozon.ru/product/kedy-1066650955/"


def snapshot_of(linked_data=None, **kwargs):
    return build_snapshot(make_capture(linked_data=linked_data, **kwargs))


class TestParseLinkedData:
    def test_strict_parse(self):
        assert parse_linked_data(['{"@type": "Product"}']) == [{"@type": "Product"}]

    def test_normalized_reparse_of_raw_newlines(self):
        block = '{"@type": "Product", "name": "Кеды\n    adidas"}'
        with pytest.raises(json.JSONDecodeError):
            json.loads(block)
        assert parse_linked_data([block]) == [{"@type": "Product", "name": "Кеды adidas"}]

    def test_unparsable_blocks_are_skipped(self):
        blocks = ["{not json", "", None, '{"@type": "BreadcrumbList"}']
        assert parse_linked_data(blocks) == [{"@type": "BreadcrumbList"}]


class TestNodes:
    def test_graph_is_flattened(self):
        payload = {"@graph": [{"@type": "Product"}, [{"@type": "Organization"}]]}
        assert flatten_linked_data(payload) == [{"@type": "Product"}, {"@type": "Organization"}]

    def test_node_kind(self):
        assert node_kind({"@type": "Product"}) is NodeKind.PRODUCT
        assert node_kind({"@type": ["Thing", "Product"]}) is NodeKind.PRODUCT
        assert node_kind({"@type": "BreadcrumbList"}) is NodeKind.BREADCRUMB_LIST
        assert node_kind({"@type": "Organization"}) is NodeKind.OTHER
        assert node_kind("Product") is NodeKind.OTHER

    def test_breadcrumbs_keep_order_and_duplicates(self, breadcrumb_ld):
        nodes = [json.loads(block) for block in breadcrumb_ld]
        assert collect_breadcrumbs(nodes) == ["A", "B", "A", "C"]

    def test_snapshot_picks_first_product_from_graph(self):
        graph = json.dumps({"@graph": [
            {"@type": "WebPage", "name": "page"},
            {"@type": "Product", "name": "first"},
            {"@type": "Product", "name": "second"},
        ]})
        snapshot = snapshot_of([graph])
        assert snapshot.product_node["name"] == "first"


class TestNormalize:
    def test_explicit_fields_are_kept(self, product_ld):
        record = normalize_product_record(snapshot_of([product_ld]), URL)
        assert record.title == "Кеды adidas Grand Court Base 2.0"
        assert record.url == URL
        assert record.sku == "1066650955"
        assert record.brand == "adidas"
        assert record.price.value == 7999
        assert record.price.currency == "RUB"
        assert record.price.availability == "https://schema.org/InStock"
        assert record.seller == "Ozon"
        assert record.rating.value == 4.8
        assert record.rating.review_count == 1204
        assert record.images == ("https://cdn.ozon.ru/1.jpg", "https://cdn.ozon.ru/2.jpg")
        assert record.description == "Classic court sneakers."

    def test_breadcrumbs_flow_into_record(self, product_ld, breadcrumb_ld):
        record = normalize_product_record(snapshot_of([product_ld] + breadcrumb_ld), URL)
        assert record.breadcrumbs == ("A", "B", "A", "C")

    def test_idempotent(self, product_ld, breadcrumb_ld):
        snapshot = snapshot_of([product_ld] + breadcrumb_ld, price_text="7 999 ₽")
        assert normalize_product_record(snapshot, URL) == normalize_product_record(snapshot, URL)

    def test_dom_fallback_without_product_node(self):
        snapshot = snapshot_of([], heading="  Кеды\n adidas ", price_text="7 999 ₽")
        record = normalize_product_record(snapshot, URL)
        assert record.title == "Кеды adidas"
        assert record.price.value == 7999
        assert record.price.currency == "RUB"
        assert record.price.display_text == "7 999 ₽"
        assert record.raw_price_text == "7 999 ₽"
        assert record.rating is None
        assert record.breadcrumbs == ()

    def test_unknown_title_when_nothing_found(self):
        record = normalize_product_record(snapshot_of([]), URL)
        assert record.title == "Unknown product"
        assert record.price.value is None
        assert record.price.currency is None

    def test_partial_node_fills_what_it_can(self):
        node = json.dumps({
            "@type": "Product",
            "mpn": "MPN-7",
            "brand": [{"name": ""}, "adidas"],
            "image": "https://cdn.ozon.ru/only.jpg",
            "offers": [None, {"seller": {"sellerName": "Shop 24"}}],
            "aggregateRating": {"ratingValue": 5, "ratingCount": 12},
        })
        record = normalize_product_record(snapshot_of([node], price_text="$19.99"), URL)
        assert record.title == "Unknown product"
        assert record.sku == "MPN-7"
        assert record.brand == "adidas"
        assert record.images == ("https://cdn.ozon.ru/only.jpg",)
        assert record.seller == "Shop 24"
        assert record.rating.value == 5
        assert record.rating.review_count == 12
        assert record.price.value == 19.99
        assert record.price.currency == "USD"

    def test_structured_currency_wins_over_symbol(self):
        node = json.dumps({"@type": "Product", "offers": {"price": "100", "priceCurrency": "KZT"}})
        record = normalize_product_record(snapshot_of([node], price_text="100 ₽"), URL)
        assert record.price.value == 100
        assert record.price.currency == "KZT"


class TestSnapshot:
    def test_challenge_detection_and_token(self):
        snapshot = snapshot_of([], title="Antibot Challenge Page", token="abc123")
        assert snapshot.is_challenge
        assert snapshot.challenge_token == "abc123"

    def test_empty_token_is_none(self):
        snapshot = snapshot_of([], title="Antibot", token="")
        assert snapshot.challenge_token is None

    def test_build_from_nothing(self):
        snapshot = build_snapshot(None)
        assert not snapshot.is_challenge
        assert snapshot.product_node is None


class TestEngine:
    def test_capture_and_extract(self, product_ld):
        page = FakePage(captures=[make_capture(linked_data=[product_ld])])
        engine = ExtractionEngine()

        snapshot = asyncio.run(engine.capture(page))
        record = engine.extract(snapshot, URL)

        assert page.capture_count == 1
        assert record.sku == "1066650955"

    def test_capture_logs_raw_linked_data_at_debug(self, product_ld, caplog):
        page = FakePage(captures=[make_capture(linked_data=[product_ld])])

        with caplog.at_level(logging.DEBUG, logger="ozon_card"):
            asyncio.run(ExtractionEngine().capture(page))

        raw = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Raw JSON-LD: ")]
        assert len(raw) == 1
        assert "Кеды adidas Grand Court Base 2.0" in raw[0]

    def test_capture_skips_raw_dump_above_debug(self, product_ld, caplog):
        page = FakePage(captures=[make_capture(linked_data=[product_ld])])

        with caplog.at_level(logging.INFO, logger="ozon_card"):
            asyncio.run(ExtractionEngine().capture(page))

        assert "Raw JSON-LD" not in caplog.text

    def test_find_product_link(self):
        page = FakePage(product_link="https://www.ozon.ru/product/first-1/")
        assert asyncio.run(ExtractionEngine.find_product_link(page)) == "https://www.ozon.ru/product/first-1/"

    def test_find_product_link_missing(self):
        assert asyncio.run(ExtractionEngine.find_product_link(FakePage())) is None
