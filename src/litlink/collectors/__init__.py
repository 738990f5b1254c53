"""Collectors that combine several sources into one result."""
