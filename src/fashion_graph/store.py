"""
In-memory graph store backed by a Polars DataFrame.

The store is a derived cache of the relational catalog: it can always be
rebuilt from the authoritative source with refresh(). One re-entrant lock
guards every mutation and every snapshot read, so no reader ever observes a
half-applied update.

Key design:
- Statements are rows (subject, predicate, object, object_type, datatype,
  object_value); object_value holds the Float64 value of numeric literals
- Set semantics: a statement is stored at most once
- Literal-valued properties are single-valued per subject: merging a new
  literal for (subject, predicate) replaces the previous one
- The DataFrame is never mutated in place; every write swaps in a new frame,
  so a frame handed out as a snapshot stays consistent
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Iterable, Iterator, Optional

import polars as pl

from fashion_graph.converter import GraphConverter, SCHEMA_ITEM_REVIEWED, SCHEMA_REVIEW_RATING
from fashion_graph.models import AggregateSource, EntityId, ProductAggregate
from fashion_graph.terms import (
    NUMERIC_DATATYPES,
    Statement, Term, TermKind,
)

logger = logging.getLogger(__name__)


class InvalidEntityIdError(ValueError):
    """Raised when upsert/remove receive a null or malformed identifier."""
    pass


_INVALID_ID_CHARS = set(' <>"{}|\\^`')


def _empty_frame() -> pl.DataFrame:
    """Create the schema for the statement DataFrame."""
    return pl.DataFrame({
        "subject": pl.Series([], dtype=pl.Utf8),
        "predicate": pl.Series([], dtype=pl.Utf8),
        "object": pl.Series([], dtype=pl.Utf8),
        "object_type": pl.Series([], dtype=pl.Utf8),
        "datatype": pl.Series([], dtype=pl.Utf8),
        "object_value": pl.Series([], dtype=pl.Float64),
    })


def _numeric_value(term: Term) -> Optional[float]:
    if term.kind == TermKind.LITERAL and term.datatype in NUMERIC_DATATYPES:
        try:
            return float(term.lex)
        except ValueError:
            return None
    return None


def statements_to_frame(statements: Iterable[Statement]) -> pl.DataFrame:
    """Build a statement DataFrame from Statement objects."""
    subjects, predicates, objects = [], [], []
    object_types, datatypes, values = [], [], []
    for st in statements:
        subjects.append(st.subject.value)
        predicates.append(st.predicate.value)
        objects.append(st.object.value)
        object_types.append(st.object.object_type)
        datatypes.append(st.object.datatype)
        values.append(_numeric_value(st.object))

    if not subjects:
        return _empty_frame()

    return pl.DataFrame({
        "subject": pl.Series(subjects, dtype=pl.Utf8),
        "predicate": pl.Series(predicates, dtype=pl.Utf8),
        "object": pl.Series(objects, dtype=pl.Utf8),
        "object_type": pl.Series(object_types, dtype=pl.Utf8),
        "datatype": pl.Series(datatypes, dtype=pl.Utf8),
        "object_value": pl.Series(values, dtype=pl.Float64),
    })


def _node_term(value: str) -> Term:
    if value.startswith("_:"):
        return Term(TermKind.BNODE, value[2:])
    return Term(TermKind.IRI, value)


def row_to_statement(row: dict[str, Any]) -> Statement:
    """Rebuild a Statement from a DataFrame row dict."""
    if row["object_type"] == "literal":
        obj = Term(TermKind.LITERAL, row["object"], row["datatype"])
    elif row["object_type"] == "bnode":
        obj = Term(TermKind.BNODE, row["object"][2:])
    else:
        obj = Term(TermKind.IRI, row["object"])
    return Statement(_node_term(row["subject"]), Term(TermKind.IRI, row["predicate"]), obj)


def _mentions(resources: Iterable[str]) -> pl.Expr:
    """Rows where any of the resources is the subject or a non-literal object."""
    values = list(resources)
    return pl.col("subject").is_in(values) | (
        (pl.col("object_type") != "literal") & pl.col("object").is_in(values)
    )


def _sp_key() -> pl.Expr:
    return pl.concat_str([pl.col("subject"), pl.col("predicate")], separator="\x00")


def merge_frames(current: pl.DataFrame, incoming: pl.DataFrame) -> pl.DataFrame:
    """
    Merge incoming statements into a frame.

    Duplicates collapse to one row. For literal objects the last value written
    for a (subject, predicate) pair replaces earlier ones, within the incoming
    batch and against the current frame.
    """
    if incoming.height == 0:
        return current

    is_literal = pl.col("object_type") == "literal"
    literals = incoming.filter(is_literal).unique(
        subset=["subject", "predicate"], keep="last", maintain_order=True
    )
    others = incoming.filter(~is_literal)

    replaced = literals.select(_sp_key().alias("key"))["key"].to_list()
    if replaced:
        current = current.filter(~(is_literal & _sp_key().is_in(replaced)))

    return pl.concat([current, others, literals], how="vertical").unique(maintain_order=True)


class GraphStore:
    """
    The shared, mutable statement store.

    Lifecycle: empty at construction, populated by bulk_load(), mutated per
    product by upsert() / remove_entity(), replaced wholesale by refresh().
    """

    def __init__(
        self,
        converter: GraphConverter,
        source: Optional[AggregateSource] = None,
    ):
        """
        Args:
            converter: Converts aggregates into statements
            source: Authoritative aggregate source used by refresh()
        """
        self._converter = converter
        self._source = source
        self._lock = threading.RLock()
        self._df = _empty_frame()

    @property
    def converter(self) -> GraphConverter:
        return self._converter

    # ========== Reads ==========

    def __len__(self) -> int:
        return self.count()

    def count(self) -> int:
        """Total number of statements."""
        with self._lock:
            return self._df.height

    def snapshot(self) -> pl.DataFrame:
        """The current statement frame; safe to read after the lock is released."""
        with self._lock:
            return self._df

    @contextmanager
    def locked(self) -> Iterator[pl.DataFrame]:
        """Hold the store lock for the duration of a read."""
        with self._lock:
            yield self._df

    def statements(
        self,
        subject: Optional[str] = None,
        predicate: Optional[str] = None,
        obj: Optional[str] = None,
    ) -> list[Statement]:
        """Statements matching the given subject/predicate/object strings."""
        df = self.snapshot()
        filters = []
        if subject is not None:
            filters.append(pl.col("subject") == subject)
        if predicate is not None:
            filters.append(pl.col("predicate") == predicate)
        if obj is not None:
            filters.append(pl.col("object") == obj)
        if filters:
            combined = filters[0]
            for f in filters[1:]:
                combined = combined & f
            df = df.filter(combined)
        return [row_to_statement(row) for row in df.iter_rows(named=True)]

    def contains(self, statement: Statement) -> bool:
        df = self.snapshot()
        match = df.filter(
            (pl.col("subject") == statement.subject.value)
            & (pl.col("predicate") == statement.predicate.value)
            & (pl.col("object") == statement.object.value)
            & (pl.col("object_type") == statement.object.object_type)
        )
        return match.height > 0

    def count_mentions(self, resource: str) -> int:
        """Number of statements where the resource is subject or object."""
        df = self.snapshot()
        return df.filter(_mentions([resource])).height

    # ========== Writes ==========

    def add_statements(self, statements: Iterable[Statement]) -> int:
        """Merge statements into the store. Returns the number of rows gained."""
        incoming = statements_to_frame(statements)
        with self._lock:
            before = self._df.height
            self._df = merge_frames(self._df, incoming)
            return self._df.height - before

    def clear(self) -> None:
        with self._lock:
            self._df = _empty_frame()

    def bulk_load(self, aggregates: Iterable[Optional[ProductAggregate]]) -> int:
        """
        Atomically replace the store contents with the given aggregates.

        Returns:
            Number of statements in the store after the load
        """
        aggregates = [a for a in aggregates if a is not None]
        incoming = statements_to_frame(self._converter.convert_all(aggregates))
        fresh = merge_frames(_empty_frame(), incoming)
        with self._lock:
            self._df = fresh
        logger.info(
            f"Populated RDF store with {len(aggregates)} products. Total statements: {fresh.height}"
        )
        return fresh.height

    def upsert(self, aggregate: ProductAggregate) -> int:
        """
        Add or replace one product's subgraph.

        Every statement mentioning the product is removed and the fresh
        conversion is merged in. Reviews the new version no longer carries are
        removed when they still point back at this product; reviews it does
        carry lose their previous properties and any other product's link.

        Returns:
            Number of statements produced by the conversion

        Raises:
            InvalidEntityIdError: If the aggregate or its id is missing/invalid
        """
        if aggregate is None:
            raise InvalidEntityIdError("Cannot add/update a null product in the RDF store")
        product_iri = self._product_iri(aggregate.id)
        statements = self._converter.convert(aggregate)
        incoming = statements_to_frame(statements)

        fresh_reviews = self._review_nodes(incoming, product_iri)

        with self._lock:
            df = self._df
            if df.height > 0:
                logger.debug(f"Removing existing RDF for product URI: {product_iri}")
                dropped = self._owned_reviews(df, product_iri) - fresh_reviews
                df = df.filter(~_mentions({product_iri} | dropped))
            if fresh_reviews and df.height > 0:
                has_review = self._converter.schema.has_review
                df = df.filter(
                    ~pl.col("subject").is_in(list(fresh_reviews))
                    & ~((pl.col("predicate") == has_review) & pl.col("object").is_in(list(fresh_reviews)))
                )
            self._df = merge_frames(df, incoming)
            total = self._df.height

        logger.info(
            f"RDF data for product ID {aggregate.id} (URI: {product_iri}) added/updated. "
            f"Store size: {total}"
        )
        return len(statements)

    def remove_entity(self, product_id: EntityId) -> int:
        """
        Remove a product and the review subgraphs it owns.

        Shared category, seller and reviewer nodes are kept.

        Returns:
            Number of statements removed (0 if the product is unknown)

        Raises:
            InvalidEntityIdError: If the id is missing/invalid
        """
        product_iri = self._product_iri(product_id)

        with self._lock:
            df = self._df
            if df.filter(_mentions([product_iri])).height == 0:
                logger.warning(f"Product URI {product_iri} not found in RDF store for removal.")
                return 0

            reviews = self._owned_reviews(df, product_iri)
            for review in sorted(reviews):
                logger.debug(f"Removing associated review RDF: {review}")
            before = df.height
            self._df = df.filter(~_mentions({product_iri} | reviews))
            removed = before - self._df.height
            total = self._df.height

        logger.info(
            f"RDF data for product ID {product_id} (URI: {product_iri}) removed. Store size: {total}"
        )
        return removed

    def refresh(self) -> int:
        """
        Clear the store and reload it from the authoritative source.

        Without a source the store is cleared and stays empty. If the source
        fails, the current contents are kept and the error propagates.

        Returns:
            Number of statements after the reload
        """
        logger.info("Refreshing application RDF store...")
        if self._source is None:
            logger.warning("No aggregate source configured; RDF store cleared without reload.")
            self.clear()
            return 0

        try:
            aggregates = list(self._source.load_all())
        except Exception as e:
            logger.error(f"Failed to load aggregates for refresh, keeping current store: {e}")
            raise

        with self._lock:
            total = self.bulk_load(aggregates)
        logger.info(f"Application RDF store refreshed. Total statements: {total}")
        return total

    # ========== Internals ==========

    def _product_iri(self, product_id: Optional[EntityId]) -> str:
        if product_id is None or isinstance(product_id, bool):
            raise InvalidEntityIdError(f"Invalid product id: {product_id!r}")
        if isinstance(product_id, str):
            if not product_id.strip() or any(c in _INVALID_ID_CHARS for c in product_id):
                raise InvalidEntityIdError(f"Invalid product id: {product_id!r}")
        return self._converter.product_iri(product_id)

    def _linked_reviews(self, df: pl.DataFrame, product_iri: str) -> list[str]:
        has_review = self._converter.schema.has_review
        if has_review is None or df.height == 0:
            return []
        return df.filter(
            (pl.col("subject") == product_iri) & (pl.col("predicate") == has_review)
        )["object"].to_list()

    @staticmethod
    def _with_ratings(df: pl.DataFrame, reviews: list[str]) -> set[str]:
        if not reviews:
            return set()
        ratings = df.filter(
            pl.col("subject").is_in(reviews)
            & (pl.col("predicate") == SCHEMA_REVIEW_RATING)
        )["object"].to_list()
        return set(reviews) | set(ratings)

    def _review_nodes(self, df: pl.DataFrame, product_iri: str) -> set[str]:
        """Review nodes linked from the product, plus their rating nodes."""
        return self._with_ratings(df, self._linked_reviews(df, product_iri))

    def _owned_reviews(self, df: pl.DataFrame, product_iri: str) -> set[str]:
        """
        Linked review nodes, plus their ratings, unless the review now names
        another product as the reviewed item.
        """
        reviews = self._linked_reviews(df, product_iri)
        if reviews:
            elsewhere = set(df.filter(
                pl.col("subject").is_in(reviews)
                & (pl.col("predicate") == SCHEMA_ITEM_REVIEWED)
                & (pl.col("object") != product_iri)
            )["subject"].to_list())
            reviews = [r for r in reviews if r not in elsewhere]
        return self._with_ratings(df, reviews)
