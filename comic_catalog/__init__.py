"""
Comic Catalog

Cache-through access to the Marvel comics API plus the in-memory
search, filter and sort pipeline used to browse a year of comics.
"""

__version__ = "1.0.0"
