"""
Typed query builder.

Builds SelectQuery ASTs directly, so caller-influenced values only ever enter
a query as Literal nodes and are never spliced into query text.

Example:
    query = (
        SelectBuilder()
        .select("product", "productName")
        .where("?product", RDF_TYPE, schema.fashion_product)
        .where("?product", SCHEMA_NAME, "?productName")
        .filter(equals_ignore_case("productName", user_text))
        .order_by("productName")
        .limit(10)
        .build()
    )
"""

from typing import Any, Optional, Union

from fashion_graph.sparql.ast import (
    SelectQuery, WhereClause,
    TriplePattern, OptionalPattern,
    Variable, IRI, Literal, BlankNode,
    Filter, Comparison, FunctionCall, AggregateExpression,
    ComparisonOp, Expression,
    Term,
)

TermLike = Union[Term, str]


def var(name: str) -> Variable:
    return Variable(name.lstrip("?$"))


def lit(value: Any, datatype: Optional[str] = None) -> Literal:
    return Literal(value, datatype=datatype)


def to_term(value: TermLike) -> Term:
    """Strings starting with '?' are variables, other strings are IRIs."""
    if isinstance(value, (Variable, IRI, Literal, BlankNode)):
        return value
    if isinstance(value, str):
        if value.startswith("?") or value.startswith("$"):
            return var(value)
        return IRI(value)
    raise TypeError(f"Cannot use {value!r} as a query term; wrap values with lit()")


def triple(subject: TermLike, predicate: TermLike, obj: TermLike) -> TriplePattern:
    return TriplePattern(to_term(subject), to_term(predicate), to_term(obj))


def _lowercased(variable: Union[str, Variable]) -> FunctionCall:
    v = variable if isinstance(variable, Variable) else var(variable)
    return FunctionCall("LCASE", [FunctionCall("STR", [v])])


def equals_ignore_case(variable: Union[str, Variable], value: str) -> Comparison:
    """LCASE(STR(?v)) = "value" with the value lower-cased up front."""
    return Comparison(_lowercased(variable), ComparisonOp.EQ, Literal(value.lower()))


def contains_ignore_case(variable: Union[str, Variable], value: str) -> FunctionCall:
    """Case-insensitive literal substring test: CONTAINS(LCASE(STR(?v)), "value")."""
    return FunctionCall("CONTAINS", [_lowercased(variable), Literal(value.lower())])


class SelectBuilder:
    """Fluent builder for SelectQuery ASTs."""

    def __init__(self):
        self._variables: list[Union[Variable, AggregateExpression]] = []
        self._where = WhereClause()
        self._distinct = False
        self._order_by: list[tuple[Variable, bool]] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def select(self, *names: str) -> "SelectBuilder":
        self._variables.extend(var(n) for n in names)
        return self

    def count(self, name: Optional[str] = None, alias: str = "count", distinct: bool = False) -> "SelectBuilder":
        """Project (COUNT([DISTINCT] ?name) AS ?alias); no name counts solutions."""
        self._variables.append(AggregateExpression(
            function="COUNT",
            argument=var(name) if name else None,
            distinct=distinct,
            alias=var(alias),
        ))
        return self

    def distinct(self, enabled: bool = True) -> "SelectBuilder":
        self._distinct = enabled
        return self

    def where(self, subject: TermLike, predicate: TermLike, obj: TermLike) -> "SelectBuilder":
        self._where.patterns.append(triple(subject, predicate, obj))
        return self

    def optional(self, *patterns: TriplePattern, filters: tuple[Expression, ...] = ()) -> "SelectBuilder":
        self._where.optional_patterns.append(OptionalPattern(
            patterns=list(patterns),
            filters=[Filter(f) for f in filters],
        ))
        return self

    def filter(self, expression: Expression) -> "SelectBuilder":
        self._where.filters.append(Filter(expression))
        return self

    def order_by(self, name: str, ascending: bool = True) -> "SelectBuilder":
        self._order_by.append((var(name), ascending))
        return self

    def limit(self, limit: Optional[int]) -> "SelectBuilder":
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        self._limit = limit
        return self

    def offset(self, offset: Optional[int]) -> "SelectBuilder":
        if offset is not None and offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        self._offset = offset
        return self

    def build(self) -> SelectQuery:
        return SelectQuery(
            variables=list(self._variables),
            where=WhereClause(
                patterns=list(self._where.patterns),
                optional_patterns=list(self._where.optional_patterns),
                filters=list(self._where.filters),
            ),
            distinct=self._distinct,
            limit=self._limit,
            offset=self._offset,
            order_by=list(self._order_by),
        )
