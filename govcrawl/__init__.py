"""Polite crawl engine for the KRDS government portal."""

__version__ = "0.1.0"
