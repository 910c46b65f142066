"""
Entity-to-graph conversion.

Maps one catalog aggregate (product, seller, category, reviews, reviewers) to
a self-contained list of statements. Conversion is pure and deterministic:
the same aggregate always yields the same statements, which is what lets the
store implement updates as remove-then-add.
"""

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

from fashion_graph.config import GraphConfig
from fashion_graph.models import EntityId, Person, ProductAggregate, ReviewEntry
from fashion_graph.schema import Schema
from fashion_graph.terms import (
    RDF_TYPE, SCHEMA_NS,
    Statement, Term,
    iri, bnode, literal,
    float_literal, integer_literal, datetime_literal,
)

logger = logging.getLogger(__name__)


# schema.org vocabulary
SCHEMA_NAME = SCHEMA_NS + "name"
SCHEMA_DESCRIPTION = SCHEMA_NS + "description"
SCHEMA_IMAGE = SCHEMA_NS + "image"
SCHEMA_EMAIL = SCHEMA_NS + "email"
SCHEMA_PRODUCT = SCHEMA_NS + "Product"
SCHEMA_REVIEW = SCHEMA_NS + "Review"
SCHEMA_PERSON = SCHEMA_NS + "Person"
SCHEMA_ORGANIZATION = SCHEMA_NS + "Organization"
SCHEMA_RATING = SCHEMA_NS + "Rating"
SCHEMA_ITEM_REVIEWED = SCHEMA_NS + "itemReviewed"
SCHEMA_REVIEW_RATING = SCHEMA_NS + "reviewRating"
SCHEMA_RATING_VALUE = SCHEMA_NS + "ratingValue"
SCHEMA_REVIEW_BODY = SCHEMA_NS + "reviewBody"
SCHEMA_DATE_PUBLISHED = SCHEMA_NS + "datePublished"

_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9-]")


def slugify(text: str) -> str:
    """
    Normalize free text to a category slug.

    Trims, lower-cases, turns whitespace runs into hyphens and strips every
    character outside [a-z0-9-]: "  Outdoor Gear " -> "outdoor-gear".
    """
    slug = _WHITESPACE.sub("-", text.strip().lower())
    return _NON_SLUG.sub("", slug)


def _has_text(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def _is_absolute_iri(value: str) -> bool:
    parsed = urlparse(value)
    return bool(parsed.scheme) and not any(c in value for c in ' <>"{}|\\^`')


def rating_node_label(review_id: EntityId) -> str:
    """Blank node label of a review's schema:Rating node."""
    return f"rating-{review_id}"


class GraphConverter:
    """
    Converts catalog aggregates into statements.

    Schema handles that did not resolve are skipped: the statements that
    depend on them are simply not emitted.
    """

    def __init__(self, schema: Schema, config: Optional[GraphConfig] = None):
        self.schema = schema
        self.config = config or GraphConfig()

    # ========== Resource identifiers ==========

    def product_iri(self, product_id: EntityId) -> str:
        return f"{self.config.product_uri_prefix}{product_id}"

    def category_iri(self, category_text: str) -> str:
        return f"{self.config.category_uri_prefix}{slugify(category_text)}"

    def seller_iri(self, seller_id: EntityId) -> str:
        return f"{self.config.seller_uri_prefix}{seller_id}"

    def review_iri(self, review_id: EntityId) -> str:
        return f"{self.config.review_uri_prefix}{review_id}"

    def user_iri(self, user_id: EntityId) -> str:
        return f"{self.config.user_uri_prefix}{user_id}"

    # ========== Conversion ==========

    def convert(self, aggregate: Optional[ProductAggregate]) -> list[Statement]:
        """
        Convert one product aggregate to a fresh list of statements.

        Returns an empty list for a missing aggregate or a missing product id.
        """
        if aggregate is None or aggregate.id is None:
            logger.warning("Product or product ID is null, cannot convert to RDF.")
            return []

        out: list[Statement] = []
        schema = self.schema
        product = iri(self.product_iri(aggregate.id))

        def add(s: Term, p: str, o: Term):
            out.append(Statement(s, iri(p), o))

        if schema.fashion_product:
            add(product, RDF_TYPE, iri(schema.fashion_product))
        add(product, RDF_TYPE, iri(SCHEMA_PRODUCT))

        if _has_text(aggregate.name):
            add(product, SCHEMA_NAME, literal(aggregate.name))
        if _has_text(aggregate.description):
            add(product, SCHEMA_DESCRIPTION, literal(aggregate.description))
        if _has_text(aggregate.photo_url):
            if _is_absolute_iri(aggregate.photo_url):
                add(product, SCHEMA_IMAGE, iri(aggregate.photo_url))
            else:
                logger.warning(
                    f"Invalid photoUrl for product {aggregate.id}: {aggregate.photo_url}. "
                    "Skipping schema:image."
                )

        if schema.has_price:
            add(product, schema.has_price, float_literal(aggregate.price))
        if schema.has_currency:
            add(product, schema.has_currency, literal(self.config.currency))
        if schema.average_rating_value:
            add(product, schema.average_rating_value, float_literal(aggregate.average_rating))
        if schema.number_of_reviews:
            add(product, schema.number_of_reviews, integer_literal(aggregate.num_reviews))

        if _has_text(aggregate.category) and schema.belongs_to_category and schema.category:
            if slugify(aggregate.category):
                category = iri(self.category_iri(aggregate.category))
                add(category, RDF_TYPE, iri(schema.category))
                add(category, SCHEMA_NAME, literal(aggregate.category.strip()))
                add(product, schema.belongs_to_category, category)
            else:
                logger.warning(
                    f"Category '{aggregate.category}' of product {aggregate.id} has an empty slug. "
                    "Skipping belongsToCategory."
                )

        seller = aggregate.seller
        if seller is not None and schema.sold_by and schema.seller:
            if seller.id is not None:
                seller_node = iri(self.seller_iri(seller.id))
                add(seller_node, RDF_TYPE, iri(schema.seller))
                add(seller_node, RDF_TYPE, iri(SCHEMA_ORGANIZATION))
                self._add_person_details(out, seller_node, seller)
                add(product, schema.sold_by, seller_node)
            else:
                logger.warning(f"Seller of product {aggregate.id} has no ID. Skipping soldBy.")

        if aggregate.reviews and schema.has_review and schema.product_review:
            for review in aggregate.reviews:
                if not self._is_complete_review(review):
                    logger.warning(
                        f"Skipping incomplete review for product {aggregate.name} "
                        f"(ID: {aggregate.id}) during RDF conversion."
                    )
                    continue
                self._add_review(out, product, review)

        return out

    def convert_all(self, aggregates: Iterable[Optional[ProductAggregate]]) -> list[Statement]:
        """Convert many aggregates into one combined statement list."""
        out: list[Statement] = []
        for aggregate in aggregates:
            if aggregate is not None:
                out.extend(self.convert(aggregate))
        return out

    @staticmethod
    def _is_complete_review(review: Optional[ReviewEntry]) -> bool:
        return (
            review is not None
            and review.id is not None
            and review.reviewer is not None
            and review.reviewer.id is not None
        )

    def _add_person_details(self, out: list[Statement], node: Term, person: Person):
        out.append(Statement(node, iri(SCHEMA_NAME), literal(person.display_name)))
        if _has_text(person.email):
            out.append(Statement(node, iri(SCHEMA_EMAIL), literal(person.email)))

    def _add_review(self, out: list[Statement], product: Term, review: ReviewEntry):
        schema = self.schema
        review_node = iri(self.review_iri(review.id))

        def add(s: Term, p: str, o: Term):
            out.append(Statement(s, iri(p), o))

        add(review_node, RDF_TYPE, iri(schema.product_review))
        add(review_node, RDF_TYPE, iri(SCHEMA_REVIEW))
        add(review_node, SCHEMA_ITEM_REVIEWED, product)

        reviewer_node = iri(self.user_iri(review.reviewer.id))
        add(reviewer_node, RDF_TYPE, iri(SCHEMA_PERSON))
        self._add_person_details(out, reviewer_node, review.reviewer)
        if schema.reviewed_by:
            add(review_node, schema.reviewed_by, reviewer_node)

        if schema.rating_value:
            add(review_node, schema.rating_value, float_literal(review.rating))

        rating_node = bnode(rating_node_label(review.id))
        add(rating_node, RDF_TYPE, iri(SCHEMA_RATING))
        add(rating_node, SCHEMA_RATING_VALUE, float_literal(review.rating))
        add(review_node, SCHEMA_REVIEW_RATING, rating_node)

        if _has_text(review.comment):
            if schema.comment_text:
                add(review_node, schema.comment_text, literal(review.comment))
            add(review_node, SCHEMA_REVIEW_BODY, literal(review.comment))

        if review.date is not None:
            add(review_node, SCHEMA_DATE_PUBLISHED, datetime_literal(review.date))

        add(product, schema.has_review, review_node)
