"""Configuration, logging, errors, protocols and URL helpers."""
