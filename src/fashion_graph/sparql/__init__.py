"""
Graph-pattern queries over the catalog graph.

- ast: dataclass query model
- parser: pyparsing grammar for query text
- executor: Polars evaluation against a GraphStore
- builder: typed construction of queries from caller values
"""

from fashion_graph.sparql.parser import SPARQLParser, parse_query
from fashion_graph.sparql.executor import SPARQLExecutor, execute_sparql
from fashion_graph.sparql.builder import (
    SelectBuilder,
    var, lit, triple,
    equals_ignore_case, contains_ignore_case,
)

__all__ = [
    "SPARQLParser",
    "parse_query",
    "SPARQLExecutor",
    "execute_sparql",
    "SelectBuilder",
    "var",
    "lit",
    "triple",
    "equals_ignore_case",
    "contains_ignore_case",
]
