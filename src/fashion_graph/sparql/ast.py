"""
Abstract Syntax Tree (AST) nodes for graph-pattern queries.

These classes represent the parsed structure of a query, so that queries can
be built programmatically and executed without going through query text.
"""

from dataclasses import dataclass, field
from typing import Union, Optional, Any
from enum import Enum, auto


class ComparisonOp(Enum):
    """Comparison operators for FILTER expressions."""
    EQ = auto()      # =
    NE = auto()      # !=
    LT = auto()      # <
    LE = auto()      # <=
    GT = auto()      # >
    GE = auto()      # >=

    @classmethod
    def from_str(cls, op: str) -> "ComparisonOp":
        mapping = {
            "=": cls.EQ, "==": cls.EQ,
            "!=": cls.NE, "<>": cls.NE,
            "<": cls.LT, "<=": cls.LE,
            ">": cls.GT, ">=": cls.GE,
        }
        return mapping[op]

    @property
    def symbol(self) -> str:
        return {
            ComparisonOp.EQ: "=", ComparisonOp.NE: "!=",
            ComparisonOp.LT: "<", ComparisonOp.LE: "<=",
            ComparisonOp.GT: ">", ComparisonOp.GE: ">=",
        }[self]


class LogicalOp(Enum):
    """Logical operators for combining FILTER expressions."""
    AND = auto()
    OR = auto()
    NOT = auto()


def _escape(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )


# =============================================================================
# Term Types (subjects, predicates, objects)
# =============================================================================

@dataclass(frozen=True)
class Variable:
    """
    A query variable (e.g., ?name, $person).

    Variables are bound during query execution to values from matching statements.
    """
    name: str

    def __str__(self) -> str:
        return f"?{self.name}"

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True)
class IRI:
    """
    An Internationalized Resource Identifier.

    Can be a full IRI (<http://...>) or a prefixed name (schema:name).
    """
    value: str

    def __str__(self) -> str:
        return f"<{self.value}>"

    def __hash__(self) -> int:
        return hash(self.value)


@dataclass(frozen=True)
class Literal:
    """
    An RDF Literal value.

    Can have an optional language tag (@en) or datatype (^^xsd:integer).
    """
    value: Any
    language: Optional[str] = None
    datatype: Optional[str] = None

    def __str__(self) -> str:
        base = f'"{_escape(str(self.value))}"'
        if self.language:
            return f"{base}@{self.language}"
        if self.datatype:
            return f"{base}^^<{self.datatype}>"
        return base

    def __hash__(self) -> int:
        return hash((self.value, self.language, self.datatype))


@dataclass(frozen=True)
class BlankNode:
    """A blank node (anonymous resource)."""
    label: str

    def __str__(self) -> str:
        return f"_:{self.label}"


# Type alias for any term that can appear in a triple pattern
Term = Union[Variable, IRI, Literal, BlankNode]


# =============================================================================
# Triple Patterns
# =============================================================================

@dataclass(frozen=True)
class TriplePattern:
    """
    A basic graph pattern matching statements in the store.

    Each position can be a variable (for matching) or a concrete term (for filtering).
    """
    subject: Term
    predicate: Term
    object: Term

    def __str__(self) -> str:
        return f"{self.subject} {self.predicate} {self.object} ."

    def get_variables(self) -> set[Variable]:
        """Return all variables in this pattern."""
        return {t for t in (self.subject, self.predicate, self.object) if isinstance(t, Variable)}


# =============================================================================
# Filter Expressions
# =============================================================================

@dataclass
class Comparison:
    """A comparison expression (e.g., ?price > 30)."""
    left: Union[Variable, Literal, IRI, "FunctionCall"]
    operator: ComparisonOp
    right: Union[Variable, Literal, IRI, "FunctionCall"]

    def __str__(self) -> str:
        return f"{self.left} {self.operator.symbol} {self.right}"


@dataclass
class LogicalExpression:
    """A logical combination of expressions (AND, OR, NOT)."""
    operator: LogicalOp
    operands: list[Union["Comparison", "LogicalExpression", "FunctionCall"]]

    def __str__(self) -> str:
        if self.operator == LogicalOp.NOT:
            return f"!({self.operands[0]})"
        op_str = " && " if self.operator == LogicalOp.AND else " || "
        return f"({op_str.join(str(o) for o in self.operands)})"


@dataclass
class FunctionCall:
    """A function call (e.g., BOUND(?x), LCASE(STR(?y)))."""
    name: str
    arguments: list[Union[Variable, Literal, IRI, "FunctionCall"]]

    def __str__(self) -> str:
        args = ", ".join(str(a) for a in self.arguments)
        return f"{self.name}({args})"


Expression = Union[Comparison, LogicalExpression, FunctionCall]


@dataclass
class Filter:
    """A FILTER clause constraining query results."""
    expression: Expression

    def __str__(self) -> str:
        return f"FILTER({self.expression})"


@dataclass
class OptionalPattern:
    """
    An OPTIONAL { ... } block.

    Its patterns extend a solution when they match; otherwise the solution is
    kept with the block's variables unbound.
    """
    patterns: list[TriplePattern] = field(default_factory=list)
    filters: list[Filter] = field(default_factory=list)

    def get_variables(self) -> set[Variable]:
        vars = set()
        for pattern in self.patterns:
            vars.update(pattern.get_variables())
        return vars

    def __str__(self) -> str:
        inner = " ".join(str(p) for p in self.patterns + self.filters)
        return f"OPTIONAL {{ {inner} }}"


@dataclass
class AggregateExpression:
    """An aggregate projection such as (COUNT(DISTINCT ?product) AS ?count)."""
    function: str                       # COUNT, SUM, AVG, MIN, MAX
    argument: Optional[Variable] = None  # None means *
    distinct: bool = False
    alias: Optional[Variable] = None

    @property
    def output_name(self) -> str:
        return self.alias.name if self.alias else self.function.lower()

    def __str__(self) -> str:
        arg = str(self.argument) if self.argument else "*"
        distinct = "DISTINCT " if self.distinct else ""
        return f"({self.function}({distinct}{arg}) AS ?{self.output_name})"


# =============================================================================
# Query Structure
# =============================================================================

@dataclass
class WhereClause:
    """The WHERE clause containing graph patterns, optionals and filters."""
    patterns: list[TriplePattern] = field(default_factory=list)
    optional_patterns: list[OptionalPattern] = field(default_factory=list)
    filters: list[Filter] = field(default_factory=list)

    def get_all_variables(self) -> list[Variable]:
        """All variables used in this WHERE clause, in order of appearance."""
        seen: dict[Variable, None] = {}
        for pattern in self.patterns:
            for term in (pattern.subject, pattern.predicate, pattern.object):
                if isinstance(term, Variable):
                    seen.setdefault(term, None)
        for optional in self.optional_patterns:
            for pattern in optional.patterns:
                for term in (pattern.subject, pattern.predicate, pattern.object):
                    if isinstance(term, Variable):
                        seen.setdefault(term, None)
        return list(seen)

    def __str__(self) -> str:
        parts = ["WHERE {"]
        for pattern in self.patterns:
            parts.append(f"  {pattern}")
        for optional in self.optional_patterns:
            parts.append(f"  {optional}")
        for filter in self.filters:
            parts.append(f"  {filter}")
        parts.append("}")
        return "\n".join(parts)


@dataclass
class Query:
    """Base class for all query types."""
    prefixes: dict[str, str] = field(default_factory=dict)


@dataclass
class SelectQuery(Query):
    """
    A SELECT query returning variable bindings.

    SELECT ?s ?p ?o
    WHERE { ?s ?p ?o }
    """
    variables: list[Union[Variable, AggregateExpression]] = field(default_factory=list)  # Empty list means SELECT *
    where: WhereClause = field(default_factory=WhereClause)
    distinct: bool = False
    limit: Optional[int] = None
    offset: Optional[int] = None
    order_by: list[tuple[Variable, bool]] = field(default_factory=list)  # (var, ascending)

    def is_select_all(self) -> bool:
        """Check if this is a SELECT * query."""
        return len(self.variables) == 0

    def has_aggregates(self) -> bool:
        return any(isinstance(v, AggregateExpression) for v in self.variables)

    def projected_names(self) -> list[str]:
        """Output column names, in projection order."""
        if self.is_select_all():
            return [v.name for v in self.where.get_all_variables()]
        return [
            v.output_name if isinstance(v, AggregateExpression) else v.name
            for v in self.variables
        ]

    def __str__(self) -> str:
        parts = []

        for prefix, uri in self.prefixes.items():
            parts.append(f"PREFIX {prefix}: <{uri}>")

        distinct_str = "DISTINCT " if self.distinct else ""
        if self.is_select_all():
            parts.append(f"SELECT {distinct_str}*")
        else:
            vars_str = " ".join(str(v) for v in self.variables)
            parts.append(f"SELECT {distinct_str}{vars_str}")

        parts.append(str(self.where))

        if self.order_by:
            order_parts = []
            for var, asc in self.order_by:
                order_parts.append(str(var) if asc else f"DESC({var})")
            parts.append(f"ORDER BY {' '.join(order_parts)}")

        if self.limit is not None:
            parts.append(f"LIMIT {self.limit}")

        if self.offset:
            parts.append(f"OFFSET {self.offset}")

        return "\n".join(parts)


@dataclass
class AskQuery(Query):
    """An ASK query returning boolean."""
    where: WhereClause = field(default_factory=WhereClause)
