"""
Pytest configuration and shared fixtures for parser tests.

Browser, context and page objects are in-memory fakes (see fakes.py);
nothing here starts a real browser or touches the network.
"""

import json

import pytest

from fakes import FakeBrowser, FakePlaywrightFactory

PARSER_ENV_VARS = (
    "PARSER_PRODUCT_URL",
    "PARSER_OUTPUT",
    "PARSER_HEADLESS",
    "PARSER_TIMEOUT",
    "PARSER_PROXY",
    "PARSER_PROXY_USERNAME",
    "PARSER_PROXY_PASSWORD",
    "PARSER_CONNECT_ENDPOINT",
    "PARSER_CONNECT_PORT",
    "PARSER_SCENARIO",
    "PARSER_NAVIGATION",
    "HTTPS_PROXY",
    "HTTP_PROXY",
    "LOG_LEVEL",
)


# Test markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as isolated unit tests"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests that compose several components over fakes"
    )


@pytest.fixture
def clean_env(monkeypatch):
    """Strip every parser environment variable so defaults are predictable."""
    for name in PARSER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def fake_browser():
    return FakeBrowser()


@pytest.fixture
def playwright_factory(fake_browser):
    return FakePlaywrightFactory(fake_browser)


# Structured-data fixtures
@pytest.fixture
def product_ld():
    """A Product node with every field the extractor reads."""
    return json.dumps({
        "@context": "https://schema.org",
        "@type": "Product",
        "name": "Кеды adidas Grand Court Base 2.0",
        "sku": "1066650955",
        "brand": {"@type": "Brand", "name": "adidas"},
        "description": "Classic court sneakers.",
        "image": [
            "https://cdn.ozon.ru/1.jpg",
            "https://cdn.ozon.ru/2.jpg",
        ],
        "offers": {
            "@type": "Offer",
            "price": 7999,
            "priceCurrency": "RUB",
            "availability": "https://schema.org/InStock",
            "seller": {"@type": "Organization", "name": "Ozon"},
        },
        "aggregateRating": {
            "@type": "AggregateRating",
            "ratingValue": "4.8",
            "reviewCount": "1 204",
        },
    }, ensure_ascii=False)


@pytest.fixture
def breadcrumb_ld():
    """Two breadcrumb lists whose items overlap."""
    first = {
        "@type": "BreadcrumbList",
        "itemListElement": [
            {"@type": "ListItem", "position": 1, "name": "A"},
            {"@type": "ListItem", "position": 2, "item": {"@id": "/b", "name": "B"}},
        ],
    }
    second = {
        "@type": "BreadcrumbList",
        "itemListElement": [
            {"@type": "ListItem", "position": 1, "name": "A"},
            {"@type": "ListItem", "position": 2, "name": "C"},
            {"@type": "ListItem", "position": 3},
        ],
    }
    return [json.dumps(first), json.dumps(second)]
