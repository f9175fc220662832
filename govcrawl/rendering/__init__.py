"""Rendering and DOM analysis."""
