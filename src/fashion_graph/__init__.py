"""
fashion-graph: a semantic data layer for a fashion catalog, powered by Polars.

Mirrors catalog aggregates into an in-memory statement graph and answers
template, semantic-search and trusted ad-hoc graph-pattern queries over it.
"""

__version__ = "0.1.0"

from fashion_graph.config import GraphConfig
from fashion_graph.models import Person, ReviewEntry, ProductAggregate, AggregateSource
from fashion_graph.schema import Schema, load_schema
from fashion_graph.converter import GraphConverter, slugify
from fashion_graph.store import GraphStore, InvalidEntityIdError
from fashion_graph.access import AuthContext, AuthorizationError, Role, require_admin
from fashion_graph.query_context import QueryContext, QueryTimeoutException
from fashion_graph.service import CatalogGraph, QueryResult
from fashion_graph.sparql import parse_query, SPARQLExecutor, execute_sparql

__all__ = [
    "GraphConfig",
    "Person",
    "ReviewEntry",
    "ProductAggregate",
    "AggregateSource",
    "Schema",
    "load_schema",
    "GraphConverter",
    "slugify",
    "GraphStore",
    "InvalidEntityIdError",
    "AuthContext",
    "AuthorizationError",
    "require_admin",
    "Role",
    "QueryContext",
    "QueryTimeoutException",
    "CatalogGraph",
    "QueryResult",
    "parse_query",
    "SPARQLExecutor",
    "execute_sparql",
]
