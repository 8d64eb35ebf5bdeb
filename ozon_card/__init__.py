"""Ozon product card parser: scenarios, extraction, configuration and CLI."""

__version__ = "0.1.0"
