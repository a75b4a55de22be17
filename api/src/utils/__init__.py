"""Utility modules for the microcredentials API."""

from src.utils.text import clean_description, strip_html


__all__ = ["clean_description", "strip_html"]
