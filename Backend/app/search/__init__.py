# app/search/__init__.py
"""
Web search.
"""
from .serper import SerperClient, SearchResult

__all__ = ["SerperClient", "SearchResult"]
