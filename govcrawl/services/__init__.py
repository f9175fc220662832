"""Crawl and fetch services."""
