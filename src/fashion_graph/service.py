"""
Catalog graph service.

The entry point the surrounding application talks to: lifecycle hooks that
keep the graph in step with relational commits, fixed-template queries,
semantic search with pagination and sorting, and a trusted ad-hoc query
gate. Every caller-influenced query is built as an AST with SelectBuilder;
only the ad-hoc gate parses query text.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Sequence, Union

import polars as pl
from pyparsing import ParseBaseException

from fashion_graph.access import AuthContext, require_admin
from fashion_graph.config import GraphConfig
from fashion_graph.converter import GraphConverter, SCHEMA_DESCRIPTION, SCHEMA_NAME
from fashion_graph.formats.ntriples import serialize_ntriples
from fashion_graph.models import AggregateSource, EntityId, ProductAggregate
from fashion_graph.query_context import QueryContext
from fashion_graph.schema import Schema, load_schema
from fashion_graph.sparql.ast import AskQuery, Query, SelectQuery
from fashion_graph.sparql.builder import (
    SelectBuilder, triple,
    equals_ignore_case, contains_ignore_case,
)
from fashion_graph.sparql.executor import SPARQLExecutor
from fashion_graph.sparql.parser import parse_query
from fashion_graph.store import GraphStore
from fashion_graph.terms import RDF_TYPE

logger = logging.getLogger(__name__)


# Allow-listed sort keys for semantic search, mapped to output variables
SORT_KEYS = {
    "name": "productName",
    "description": "description",
    "price": "price",
}

SEARCH_VARIABLES = ["product", "productName", "description", "price"]


@dataclass
class QueryResult:
    """
    Ordered query rows.

    Every row maps each projected variable to its value: a literal's lexical
    form, a resource identifier, or None when the variable is unbound.
    stats holds the execution counters when the query reached the executor.
    """
    variables: list[str] = field(default_factory=list)
    rows: list[dict[str, Optional[str]]] = field(default_factory=list)
    error: Optional[str] = None
    stats: Optional[dict[str, Any]] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[dict[str, Optional[str]]]:
        return iter(self.rows)

    def column(self, name: str) -> list[Optional[str]]:
        return [row.get(name) for row in self.rows]

    @classmethod
    def from_frame(cls, df: pl.DataFrame, variables: Sequence[str]) -> "QueryResult":
        rows = []
        for record in df.iter_rows(named=True):
            rows.append({name: _normalize(record.get(name)) for name in variables})
        return cls(variables=list(variables), rows=rows)


def _normalize(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _has_text(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def parse_sort(sort: Union[str, Sequence[str], None]) -> list[tuple[str, bool]]:
    """
    Translate sort entries into (variable, ascending) pairs.

    Accepts "name", "name,desc", "-name" or a list of those. Keys outside
    SORT_KEYS are logged and ignored.
    """
    if not sort:
        return []
    entries = [sort] if isinstance(sort, str) else list(sort)

    orders = []
    for entry in entries:
        entry = entry.strip()
        if not entry:
            continue
        ascending = True
        if entry.startswith("-"):
            ascending = False
            entry = entry[1:]
        elif entry.startswith("+"):
            entry = entry[1:]

        key, _, direction = entry.partition(",")
        direction = direction.strip().lower()
        if direction == "desc":
            ascending = False
        elif direction not in ("", "asc"):
            logger.warning(f"Unsupported sort direction '{direction}' for '{key}', using ascending.")

        variable = SORT_KEYS.get(key.strip().lower())
        if variable is None:
            logger.warning(f"Unsupported sort property for SPARQL semantic search: {key}")
            continue
        orders.append((variable, ascending))
    return orders


class CatalogGraph:
    """
    Lifecycle hooks and queries over one GraphStore.

    The store is injected; the service owns no graph state of its own.
    """

    def __init__(self, store: GraphStore, config: Optional[GraphConfig] = None):
        self.store = store
        self.config = config or store.converter.config

    @classmethod
    def create(
        cls,
        config: Optional[GraphConfig] = None,
        source: Optional[AggregateSource] = None,
    ) -> "CatalogGraph":
        """Load the schema and wire converter, store and service together."""
        config = config or GraphConfig()
        schema = load_schema(config)
        store = GraphStore(GraphConverter(schema, config), source=source)
        return cls(store, config)

    @property
    def schema(self) -> Schema:
        return self.store.converter.schema

    # ========== Lifecycle hooks ==========

    def upsert(self, aggregate: ProductAggregate) -> int:
        return self.store.upsert(aggregate)

    def remove(self, product_id: EntityId) -> int:
        return self.store.remove_entity(product_id)

    def bulk_load(self, aggregates: Iterable[ProductAggregate]) -> int:
        return self.store.bulk_load(aggregates)

    def refresh(self) -> int:
        return self.store.refresh()

    def export_ntriples(self, product_id: Optional[EntityId] = None) -> str:
        """N-Triples dump of the whole graph, or of the statements mentioning one product."""
        if product_id is None:
            return serialize_ntriples(self.store.statements())
        product_iri = self.store.converter.product_iri(product_id)
        statements = self.store.statements(subject=product_iri)
        statements += [
            s for s in self.store.statements(obj=product_iri) if not s.object.is_literal
        ]
        return serialize_ntriples(statements)

    # ========== Fixed templates ==========

    def list_all_product_names(self) -> QueryResult:
        """Every product with its name (None when the product has no name)."""
        variables = ["product", "name"]
        if not self.schema.fashion_product:
            logger.warning("FashionProduct class not available; cannot list products.")
            return QueryResult(variables)

        query = (
            SelectBuilder()
            .select(*variables)
            .where("?product", RDF_TYPE, self.schema.fashion_product)
            .optional(triple("?product", SCHEMA_NAME, "?name"))
            .build()
        )
        return self.execute(query)

    def query_by_category(self, category_name: Optional[str]) -> QueryResult:
        """Products whose category display text matches, ignoring case."""
        variables = ["product", "productName"]
        if not _has_text(category_name):
            logger.warning("Category query called without a category name.")
            return QueryResult(variables)
        if not (self.schema.fashion_product and self.schema.belongs_to_category):
            logger.warning("Ontology terms for category queries are not available.")
            return QueryResult(variables)

        query = (
            SelectBuilder()
            .select(*variables)
            .where("?product", RDF_TYPE, self.schema.fashion_product)
            .where("?product", self.schema.belongs_to_category, "?categoryResource")
            .where("?product", SCHEMA_NAME, "?productName")
            .where("?categoryResource", SCHEMA_NAME, "?catName")
            .filter(equals_ignore_case("catName", category_name.strip()))
            .build()
        )
        logger.info(f"Executing SPARQL query for category: {category_name}")
        return self.execute(query)

    # ========== Semantic search ==========

    def _search_builder(
        self,
        category_name: Optional[str],
        keyword: Optional[str],
    ) -> Optional[SelectBuilder]:
        """Shared WHERE clause of semantic search and its count; None if unavailable."""
        schema = self.schema
        if not schema.fashion_product:
            logger.warning("FashionProduct class not available; semantic search disabled.")
            return None

        builder = SelectBuilder().where("?product", RDF_TYPE, schema.fashion_product)
        builder.optional(triple("?product", SCHEMA_NAME, "?productName"))
        builder.optional(triple("?product", SCHEMA_DESCRIPTION, "?description"))
        if schema.has_price:
            builder.optional(triple("?product", schema.has_price, "?price"))

        if _has_text(category_name):
            if not schema.belongs_to_category:
                logger.warning("belongsToCategory property not available; cannot filter by category.")
                return None
            builder.where("?product", schema.belongs_to_category, "?categoryResource")
            builder.where("?categoryResource", SCHEMA_NAME, "?catName")
            builder.filter(equals_ignore_case("catName", category_name.strip()))

        if _has_text(keyword):
            builder.where("?product", SCHEMA_DESCRIPTION, "?descForFilter")
            builder.filter(contains_ignore_case("descForFilter", keyword.strip()))

        return builder

    def semantic_search(
        self,
        category_name: Optional[str] = None,
        keyword: Optional[str] = None,
        limit: int = 10,
        offset: int = 0,
        sort: Union[str, Sequence[str], None] = None,
    ) -> QueryResult:
        """
        Search products by category and/or a description keyword.

        Rows are distinct by (product, productName, description, price) and
        ordered by the requested sort keys, then by product identifier, so
        consecutive pages never overlap.
        """
        if not _has_text(category_name) and not _has_text(keyword):
            logger.warning(
                "Semantic product search called with no category name or description keyword. "
                "Returning empty list."
            )
            return QueryResult(list(SEARCH_VARIABLES))
        if limit < 0 or offset < 0:
            logger.warning(f"Invalid pagination for semantic search: limit={limit}, offset={offset}")
            return QueryResult(list(SEARCH_VARIABLES), error="limit and offset must be non-negative")

        builder = self._search_builder(category_name, keyword)
        if builder is None:
            return QueryResult(list(SEARCH_VARIABLES))

        builder.select(*SEARCH_VARIABLES).distinct()
        for variable, ascending in parse_sort(sort):
            builder.order_by(variable, ascending)
        builder.order_by("product")
        query = builder.limit(limit).offset(offset).build()

        logger.info(
            f"Executing paginated semantic product search with categoryName='{category_name}', "
            f"descriptionKeyword='{keyword}', limit={limit}, offset={offset}"
        )
        return self.execute(query)

    def count_semantic_search(
        self,
        category_name: Optional[str] = None,
        keyword: Optional[str] = None,
    ) -> int:
        """Number of distinct products semantic_search would return without paging."""
        if not _has_text(category_name) and not _has_text(keyword):
            logger.warning("Semantic count called with no criteria.")
            return 0

        builder = self._search_builder(category_name, keyword)
        if builder is None:
            return 0

        query = builder.count("product", alias="count", distinct=True).build()
        logger.info(
            f"Executing SPARQL count query for semantic search with categoryName='{category_name}', "
            f"descriptionKeyword='{keyword}'"
        )
        result = self.execute(query)
        if not result.ok or not result.rows or result.rows[0].get("count") is None:
            return 0
        total = int(result.rows[0]["count"])
        logger.info(f"Total semantic search results count: {total}")
        return total

    # ========== Query execution ==========

    def query(self, query_text: str, auth: Optional[AuthContext]) -> QueryResult:
        """
        Evaluate trusted ad-hoc query text.

        Malformed or missing text is reported in QueryResult.error.

        Raises:
            AuthorizationError: Unless the caller holds the admin role
        """
        require_admin(auth, "ad-hoc query")

        if not isinstance(query_text, str) or not query_text.strip():
            logger.error(f"SPARQL query text is missing or not a string: {query_text!r}")
            return QueryResult(error="Query parse error: query text is empty")

        logger.debug(f"Executing SPARQL Query: {query_text}")
        try:
            parsed = parse_query(query_text)
        except (ParseBaseException, TypeError, AttributeError) as e:
            logger.error(f"SPARQL Query Parse Exception: {e} for query: [{query_text}]")
            return QueryResult(error=f"Query parse error: {e}")

        context = QueryContext(timeout_seconds=self.config.query_timeout_seconds)
        return self.execute(parsed, context)

    def execute(self, query: Query, context: Optional[QueryContext] = None) -> QueryResult:
        """
        Evaluate a query AST against a consistent snapshot of the store.

        Execution failures, timeouts included, are logged and reported in
        QueryResult.error rather than raised. The context's counters are
        returned on QueryResult.stats.
        """
        if isinstance(query, AskQuery):
            variables = ["boolean"]
        elif isinstance(query, SelectQuery):
            variables = query.projected_names()
        else:
            return QueryResult(error=f"Unsupported query type: {type(query).__name__}")

        if self.store.count() == 0:
            logger.warning("RDF model is empty. Cannot execute SPARQL query.")
            return QueryResult(variables)

        context = context or QueryContext()
        try:
            result = SPARQLExecutor(self.store).execute(query, context)
        except Exception as e:
            logger.error(f"Error executing SPARQL query [{query}]: {e}")
            return QueryResult(variables, error=str(e), stats=context.stats.to_dict())

        if isinstance(result, bool):
            return QueryResult(variables, [{"boolean": _normalize(result)}], stats=context.stats.to_dict())

        query_result = QueryResult.from_frame(result, variables)
        query_result.stats = context.stats.to_dict()
        logger.info(f"Executed SPARQL query. Results count: {len(query_result)}")
        return query_result
