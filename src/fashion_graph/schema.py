"""
Schema loader for the fashion ontology.

Parses the static Turtle schema document once at startup and resolves the
class and property identifiers the converter needs. A missing document or a
missing term is a degraded mode, not a failure: the handle stays None and the
converter skips every step that depends on it.
"""

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from pyoxigraph import parse as oxigraph_parse, RdfFormat

from fashion_graph.config import GraphConfig

logger = logging.getLogger(__name__)


# Local names resolved against the ontology namespace, keyed by handle
SCHEMA_TERMS = {
    "fashion_product": "FashionProduct",
    "category": "Category",
    "seller": "Seller",
    "product_review": "ProductReview",
    "belongs_to_category": "belongsToCategory",
    "sold_by": "soldBy",
    "has_review": "hasReview",
    "reviewed_by": "reviewedBy",
    "has_price": "hasPrice",
    "has_currency": "hasCurrency",
    "average_rating_value": "averageRatingValue",
    "number_of_reviews": "numberOfReviews",
    "rating_value": "ratingValue",
    "comment_text": "commentText",
}


@dataclass(frozen=True)
class Schema:
    """
    Resolved ontology identifiers.

    Each handle is the full IRI of the term, or None when the schema document
    did not define it.
    """
    fashion_product: Optional[str] = None
    category: Optional[str] = None
    seller: Optional[str] = None
    product_review: Optional[str] = None
    belongs_to_category: Optional[str] = None
    sold_by: Optional[str] = None
    has_review: Optional[str] = None
    reviewed_by: Optional[str] = None
    has_price: Optional[str] = None
    has_currency: Optional[str] = None
    average_rating_value: Optional[str] = None
    number_of_reviews: Optional[str] = None
    rating_value: Optional[str] = None
    comment_text: Optional[str] = None

    def missing(self) -> list[str]:
        """Local names of the terms that did not resolve."""
        return [
            SCHEMA_TERMS[f.name] for f in fields(self)
            if getattr(self, f.name) is None
        ]

    @property
    def is_complete(self) -> bool:
        return not self.missing()

    @classmethod
    def resolve(cls, ontology_base_uri: str, defined: set[str]) -> "Schema":
        """Build a schema from the set of IRIs the document defines."""
        handles = {}
        for handle, local_name in SCHEMA_TERMS.items():
            term_iri = ontology_base_uri + local_name
            if term_iri in defined:
                handles[handle] = term_iri
            else:
                logger.warning(f"Ontology term '{local_name}' not found. Check URI: {term_iri}")
        return cls(**handles)


def _read_defined_subjects(path: Path) -> set[str]:
    content = path.read_text(encoding="utf-8")
    base_iri = path.absolute().as_uri()
    defined = set()
    for quad in oxigraph_parse(content, RdfFormat.TURTLE, base_iri=base_iri):
        s = quad.subject
        if hasattr(s, "value"):
            defined.add(s.value)
    return defined


def load_schema(config: Optional[GraphConfig] = None) -> Schema:
    """
    Load and resolve the schema document named by the config.

    Never raises for a missing or malformed document; returns a schema whose
    handles are all None instead.
    """
    config = config or GraphConfig()
    path = Path(config.schema_path)

    try:
        defined = _read_defined_subjects(path)
    except FileNotFoundError:
        logger.warning(f"Schema document not found: {path}. Continuing without ontology terms.")
        return Schema()
    except (OSError, SyntaxError, ValueError) as e:
        logger.warning(f"Failed to load schema document {path}: {e}. Continuing without ontology terms.")
        return Schema()

    schema = Schema.resolve(config.ontology_base_uri, defined)
    if schema.is_complete:
        logger.info(f"Fashion ontology loaded successfully from {path.name}")
    else:
        logger.warning(f"Fashion ontology loaded from {path.name} with missing terms: {schema.missing()}")
    return schema
