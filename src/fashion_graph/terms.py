"""
RDF terms and statements.

A statement is the atomic unit of the graph store: (subject, predicate, object).
Subjects are IRIs or blank nodes, predicates are IRIs, objects may be any term.
Literals carry an explicit datatype so numeric and temporal values compare and
sort correctly downstream.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import IntEnum
from typing import Optional


# =============================================================================
# Well-known vocabularies
# =============================================================================

RDF_NS = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
XSD_NS = "http://www.w3.org/2001/XMLSchema#"
SCHEMA_NS = "http://schema.org/"

RDF_TYPE = RDF_NS + "type"

XSD_STRING = XSD_NS + "string"
XSD_INTEGER = XSD_NS + "integer"
XSD_DECIMAL = XSD_NS + "decimal"
XSD_FLOAT = XSD_NS + "float"
XSD_DOUBLE = XSD_NS + "double"
XSD_BOOLEAN = XSD_NS + "boolean"
XSD_DATETIME = XSD_NS + "dateTime"

NUMERIC_DATATYPES = frozenset({XSD_INTEGER, XSD_DECIMAL, XSD_FLOAT, XSD_DOUBLE})


class TermKind(IntEnum):
    """RDF term kind enumeration."""
    IRI = 0
    LITERAL = 1
    BNODE = 2


@dataclass(frozen=True, slots=True)
class Term:
    """
    An RDF term.

    Attributes:
        kind: The type of term (IRI, LITERAL, BNODE)
        lex: Lexical form (IRI string, literal value, bnode label)
        datatype: Datatype IRI for literals
    """
    kind: TermKind
    lex: str
    datatype: Optional[str] = None

    @property
    def is_iri(self) -> bool:
        return self.kind == TermKind.IRI

    @property
    def is_literal(self) -> bool:
        return self.kind == TermKind.LITERAL

    @property
    def is_bnode(self) -> bool:
        return self.kind == TermKind.BNODE

    @property
    def is_numeric(self) -> bool:
        return self.kind == TermKind.LITERAL and self.datatype in NUMERIC_DATATYPES

    @property
    def value(self) -> str:
        """String form used in query rows and store columns."""
        if self.kind == TermKind.BNODE:
            return f"_:{self.lex}"
        return self.lex

    @property
    def object_type(self) -> str:
        """Store column tag: 'uri', 'bnode' or 'literal'."""
        if self.kind == TermKind.IRI:
            return "uri"
        if self.kind == TermKind.BNODE:
            return "bnode"
        return "literal"

    def __str__(self) -> str:
        if self.kind == TermKind.IRI:
            return f"<{self.lex}>"
        if self.kind == TermKind.BNODE:
            return f"_:{self.lex}"
        if self.datatype and self.datatype != XSD_STRING:
            return f'"{self.lex}"^^<{self.datatype}>'
        return f'"{self.lex}"'


def iri(value: str) -> Term:
    """Create an IRI term."""
    return Term(TermKind.IRI, value)


def bnode(label: str) -> Term:
    """Create a blank node term."""
    return Term(TermKind.BNODE, label)


def literal(value: str, datatype: str = XSD_STRING) -> Term:
    """Create a typed literal term."""
    return Term(TermKind.LITERAL, value, datatype)


def float_literal(value: float) -> Term:
    return Term(TermKind.LITERAL, format_float(value), XSD_FLOAT)


def integer_literal(value: int) -> Term:
    return Term(TermKind.LITERAL, str(int(value)), XSD_INTEGER)


def datetime_literal(value: datetime) -> Term:
    return Term(TermKind.LITERAL, format_datetime_utc(value), XSD_DATETIME)


def format_float(value: float) -> str:
    """Canonical lexical form for xsd:float values (129.99, 4.0)."""
    return repr(float(value))


def format_datetime_utc(value: datetime) -> str:
    """
    Format a datetime as ISO-8601 in UTC with a trailing Z.

    Naive datetimes are taken to already be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat().replace("+00:00", "Z")


@dataclass(frozen=True, slots=True)
class Statement:
    """A (subject, predicate, object) fact."""
    subject: Term
    predicate: Term
    object: Term

    def __post_init__(self):
        if self.subject is None or self.predicate is None or self.object is None:
            raise ValueError("Statement requires subject, predicate and object")
        if self.subject.kind == TermKind.LITERAL:
            raise ValueError(f"Literal cannot be a statement subject: {self.subject}")
        if self.predicate.kind != TermKind.IRI:
            raise ValueError(f"Predicate must be an IRI: {self.predicate}")

    def mentions(self, resource: str) -> bool:
        """True if the resource string appears as subject or object."""
        return self.subject.value == resource or (
            not self.object.is_literal and self.object.value == resource
        )

    def __str__(self) -> str:
        return f"{self.subject} {self.predicate} {self.object} ."
