"""
Persistent store package for JML Lite.

Provides the async list store contract, typed queries, and the in-memory and
SharePoint adapters.
"""

from .base import ListStore
from .directory import InMemoryUserDirectory, UserDirectory
from .inmemory import InMemoryListStore
from .query import AllOf, AnyOf, Clause, Op, OrderBy, Query, apply_query, to_odata_filter, to_odata_params

__all__ = [
    "ListStore",
    "UserDirectory",
    "InMemoryUserDirectory",
    "InMemoryListStore",
    "AllOf",
    "AnyOf",
    "Clause",
    "Op",
    "OrderBy",
    "Query",
    "apply_query",
    "to_odata_filter",
    "to_odata_params",
]
