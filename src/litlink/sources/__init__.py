"""API source adapters for litlink.

Each adapter subclasses BaseSource from base.py and sends its requests
through the shared ResilientHttpClient.
"""

from .base import BaseSource, SearchResult

__all__ = ["BaseSource", "SearchResult"]
