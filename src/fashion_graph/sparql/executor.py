"""
Query executor using Polars.

Translates the query AST to Polars operations over a snapshot of the
graph store. Evaluation holds the store lock from the first pattern scan to
the final projection, so a query never observes a half-applied update.
"""

import logging
from typing import Any, Optional, Union, TYPE_CHECKING

import polars as pl

from fashion_graph.query_context import QueryContext, QueryState
from fashion_graph.sparql.ast import (
    Query, SelectQuery, AskQuery,
    TriplePattern, OptionalPattern,
    Variable, IRI, Literal, BlankNode,
    Filter, Comparison, LogicalExpression, FunctionCall,
    AggregateExpression,
    ComparisonOp, LogicalOp,
    WhereClause,
    Term,
)
from fashion_graph.terms import NUMERIC_DATATYPES

if TYPE_CHECKING:
    from fashion_graph.store import GraphStore

logger = logging.getLogger(__name__)


# Internal column names contain ':' which can never occur in a variable name
_MATCH_COL = ":match"

_TERM_KIND_TESTS = {
    "ISIRI": "iri",
    "ISURI": "iri",
    "ISBLANK": "bnode",
    "ISLITERAL": "literal",
}


def _num_col(name: str) -> str:
    """Column holding the Float64 value of a variable bound to a numeric literal."""
    return f"{name}:value"


def _type_col(name: str) -> str:
    """Column holding the term kind of a variable: iri, bnode or literal."""
    return f"{name}:type"


def _is_var_col(column: str) -> bool:
    return ":" not in column


def _is_numeric_literal(term: Any) -> bool:
    if not isinstance(term, Literal) or isinstance(term.value, bool):
        return False
    if isinstance(term.value, (int, float)):
        return True
    return term.datatype in NUMERIC_DATATYPES


def _literal_lexical(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class SPARQLExecutor:
    """
    Executes queries against a GraphStore.

    Translation strategy:
    - Each TriplePattern becomes a filtered view of the statement DataFrame
    - Variables become column selections
    - Required patterns inner-join on shared variables
    - OPTIONAL blocks left-join onto the required solutions
    - Filters become Polars filter expressions, applied after optionals
    - Variables bound to numeric literals carry a Float64 value column used
      for numeric comparison and ordering
    - Every variable carries a term-kind column read by isIRI/isBlank/isLiteral
    """

    def __init__(self, store: "GraphStore"):
        """
        Initialize executor with a graph store.

        Args:
            store: The GraphStore to query
        """
        self.store = store
        self._df: Optional[pl.DataFrame] = None
        self._prefixes: dict[str, str] = {}
        self._context: QueryContext = QueryContext()

    def execute(
        self,
        query: Query,
        context: Optional[QueryContext] = None,
    ) -> Union[pl.DataFrame, bool]:
        """
        Execute a query.

        Args:
            query: Parsed Query AST
            context: Optional execution context carrying a timeout

        Returns:
            DataFrame for SELECT queries (one column per projected variable),
            bool for ASK queries

        Raises:
            QueryTimeoutException: If the context's timeout is exceeded
        """
        self._context = context or QueryContext()
        self._prefixes = dict(query.prefixes)
        if self._context.stats.start_time is None:
            self._context.start()

        try:
            with self.store.locked() as df:
                self._df = df
                if isinstance(query, SelectQuery):
                    result = self._execute_select(query)
                    self._context.complete(rows_returned=result.height)
                elif isinstance(query, AskQuery):
                    result = self._execute_ask(query)
                    self._context.complete(rows_returned=1)
                else:
                    raise NotImplementedError(f"Query type {type(query)} not supported")
        except Exception as e:
            if self._context.stats.state == QueryState.RUNNING:
                self._context.fail(str(e))
            raise
        finally:
            self._df = None

        logger.debug(f"Query executed in {self._context.stats.duration_ms:.1f}ms")
        return result

    # =========================================================================
    # Query types
    # =========================================================================

    def _execute_select(self, query: SelectQuery) -> pl.DataFrame:
        df = self._execute_where(query.where)
        self._context.check()

        if query.has_aggregates():
            return self._apply_aggregates(df, query)

        # ORDER BY before projection so typed value columns are still present
        if query.order_by:
            df = self._apply_order_by(df, query.order_by)

        names = query.projected_names()
        for name in names:
            if name not in df.columns:
                df = df.with_columns(pl.lit(None, dtype=pl.Utf8).alias(name))
        df = df.select(names)

        if query.distinct:
            df = df.unique(maintain_order=True)

        if query.offset or query.limit is not None:
            df = df.slice(query.offset or 0, query.limit)

        return df

    def _execute_ask(self, query: AskQuery) -> bool:
        return self._execute_where(query.where).height > 0

    # =========================================================================
    # WHERE evaluation
    # =========================================================================

    def _execute_where(self, where: WhereClause) -> pl.DataFrame:
        """
        Execute a WHERE clause and return matching bindings.

        The result has one column per bound variable plus internal typed value
        columns.
        """
        result_df: Optional[pl.DataFrame] = None

        for pattern in where.patterns:
            pattern_df = self._execute_pattern(pattern)
            self._context.check()
            if result_df is None:
                result_df = pattern_df
            else:
                result_df = self._join(result_df, pattern_df, how="inner")
            if result_df.height == 0:
                break

        if result_df is None:
            # No required patterns: a single empty solution
            result_df = pl.DataFrame({_MATCH_COL: [True]})

        # Apply OPTIONAL patterns with left outer joins
        # (MUST come before FILTER since FILTER may reference optional variables)
        for optional in where.optional_patterns:
            result_df = self._apply_optional(result_df, optional)
            self._context.check()

        # Apply FILTER clauses (after OPTIONAL so variables are available)
        for filter_clause in where.filters:
            result_df = self._apply_filter(result_df, filter_clause)
            self._context.check()

        return result_df

    def _execute_pattern(self, pattern: TriplePattern) -> pl.DataFrame:
        """
        Execute a single triple pattern against the snapshot.

        Returns a DataFrame with a column for each variable in the pattern.
        """
        self._context.record_pattern()
        lf = self._df.lazy()
        filters = []

        # Variable -> source column; repeated variables add an equality filter
        bindings: dict[str, str] = {}
        for term, column in (
            (pattern.subject, "subject"),
            (pattern.predicate, "predicate"),
            (pattern.object, "object"),
        ):
            if isinstance(term, Variable):
                if term.name in bindings:
                    filters.append(pl.col(column) == pl.col(bindings[term.name]))
                else:
                    bindings[term.name] = column
            elif column == "object":
                filters.append(self._object_filter(term))
            else:
                filters.append(pl.col(column) == self._resolve_term(term))

        if filters:
            combined = filters[0]
            for f in filters[1:]:
                combined = combined & f
            lf = lf.filter(combined)

        if not bindings:
            matched = lf.select(pl.len()).collect().item()
            self._context.add_scanned_rows(matched)
            return pl.DataFrame({_MATCH_COL: [True] if matched else []}, schema={_MATCH_COL: pl.Boolean})

        exprs = [pl.col(column).alias(name) for name, column in bindings.items()]
        for name, column in bindings.items():
            if column == "object":
                exprs.append(pl.col("object_value").alias(_num_col(name)))
                exprs.append(pl.col("object_type").alias(_type_col(name)))
            elif column == "subject":
                exprs.append(
                    pl.when(pl.col("subject").str.starts_with("_:"))
                    .then(pl.lit("bnode"))
                    .otherwise(pl.lit("iri"))
                    .alias(_type_col(name))
                )
            else:
                exprs.append(pl.lit("iri").alias(_type_col(name)))

        result = lf.select(exprs).collect()
        self._context.add_scanned_rows(result.height)
        return result

    def _object_filter(self, term: Term) -> pl.Expr:
        """Match a concrete object term, numerically for numeric literals."""
        if _is_numeric_literal(term):
            try:
                return pl.col("object_value") == float(term.value)
            except (TypeError, ValueError):
                pass
        if isinstance(term, Literal):
            return (pl.col("object_type") == "literal") & (
                pl.col("object") == _literal_lexical(term.value)
            )
        return (pl.col("object_type") != "literal") & (pl.col("object") == self._resolve_term(term))

    def _resolve_term(self, term: Term) -> str:
        """Resolve a term to its string value for matching against the store."""
        if isinstance(term, IRI):
            value = term.value
            # Expand prefixed names
            if ":" in value:
                prefix, local = value.split(":", 1)
                if prefix in self._prefixes:
                    value = self._prefixes[prefix] + local
            return value
        elif isinstance(term, Literal):
            return _literal_lexical(term.value)
        elif isinstance(term, BlankNode):
            return f"_:{term.label}"
        return str(term)

    def _join(self, left: pl.DataFrame, right: pl.DataFrame, how: str) -> pl.DataFrame:
        """Join two solution frames on their shared variables."""
        self._context.record_join()
        shared = [c for c in left.columns if c in right.columns and _is_var_col(c)]
        duplicated = [c for c in right.columns if c in left.columns and c not in shared]
        if duplicated:
            right = right.drop(duplicated)

        if shared:
            return left.join(right, on=shared, how=how)
        if how == "left" and right.height == 0:
            return self._with_null_columns(left, right.columns)
        return left.join(right, how="cross")

    def _apply_optional(self, df: pl.DataFrame, optional: OptionalPattern) -> pl.DataFrame:
        """
        Apply an OPTIONAL pattern using left outer join.

        OPTIONAL { ... } patterns add bindings when matched but keep
        rows even when no match exists (with NULL for optional columns).
        """
        optional_df: Optional[pl.DataFrame] = None
        for pattern in optional.patterns:
            pattern_df = self._execute_pattern(pattern)
            if optional_df is None:
                optional_df = pattern_df
            else:
                optional_df = self._join(optional_df, pattern_df, how="inner")

        if optional_df is not None:
            for filter_clause in optional.filters:
                optional_df = self._apply_filter(optional_df, filter_clause)
            if _MATCH_COL in optional_df.columns:
                optional_df = optional_df.drop(_MATCH_COL)

        if optional_df is None or optional_df.height == 0:
            return self._with_null_columns(df, self._optional_columns(optional))

        return self._join(df, optional_df, how="left")

    @staticmethod
    def _optional_columns(optional: OptionalPattern) -> list[str]:
        columns = []
        for pattern in optional.patterns:
            for term in (pattern.subject, pattern.predicate, pattern.object):
                if isinstance(term, Variable) and term.name not in columns:
                    columns.extend([term.name, _type_col(term.name)])
            if isinstance(pattern.object, Variable):
                columns.append(_num_col(pattern.object.name))
        return columns

    @staticmethod
    def _with_null_columns(df: pl.DataFrame, columns: list[str]) -> pl.DataFrame:
        missing = {}
        for column in columns:
            if column in df.columns or column == _MATCH_COL:
                continue
            dtype = pl.Float64 if column.endswith(":value") else pl.Utf8
            missing[column] = pl.lit(None, dtype=dtype).alias(column)
        return df.with_columns(list(missing.values())) if missing else df

    # =========================================================================
    # FILTER evaluation
    # =========================================================================

    def _apply_filter(self, df: pl.DataFrame, filter_clause: Filter) -> pl.DataFrame:
        """Apply a FILTER to the DataFrame."""
        self._context.record_filter()
        expr = self._build_filter_expression(filter_clause.expression, df.columns)
        if expr is not None:
            return df.filter(expr)
        logger.warning(f"Unsupported FILTER expression ignored: {filter_clause}")
        return df

    def _build_filter_expression(
        self,
        expr: Union[Comparison, LogicalExpression, FunctionCall, Variable, Literal],
        columns: list[str],
    ) -> Optional[pl.Expr]:
        """Build a Polars filter expression from the filter AST."""

        if isinstance(expr, Comparison):
            left, right = self._build_comparison_operands(expr.left, expr.right, columns)

            if left is None or right is None:
                return None

            op_map = {
                ComparisonOp.EQ: lambda l, r: l == r,
                ComparisonOp.NE: lambda l, r: l != r,
                ComparisonOp.LT: lambda l, r: l < r,
                ComparisonOp.LE: lambda l, r: l <= r,
                ComparisonOp.GT: lambda l, r: l > r,
                ComparisonOp.GE: lambda l, r: l >= r,
            }

            return op_map[expr.operator](left, right)

        elif isinstance(expr, LogicalExpression):
            operand_exprs = [
                self._build_filter_expression(op, columns) for op in expr.operands
            ]
            if any(e is None for e in operand_exprs) or not operand_exprs:
                return None

            if expr.operator == LogicalOp.NOT:
                return ~operand_exprs[0]
            result = operand_exprs[0]
            for e in operand_exprs[1:]:
                result = (result & e) if expr.operator == LogicalOp.AND else (result | e)
            return result

        elif isinstance(expr, FunctionCall):
            return self._build_function_call(expr, columns)

        elif isinstance(expr, Variable):
            # Effective boolean value of a bare variable: bound and non-empty
            if expr.name not in columns:
                return pl.lit(False)
            col = pl.col(expr.name)
            return col.is_not_null() & (col != "") & (col != "false") & (col != "0")

        elif isinstance(expr, Literal) and isinstance(expr.value, bool):
            return pl.lit(expr.value)

        return None

    def _build_comparison_operands(
        self,
        left_term: Union[Variable, Literal, IRI, FunctionCall],
        right_term: Union[Variable, Literal, IRI, FunctionCall],
        columns: list[str],
    ) -> tuple[Optional[pl.Expr], Optional[pl.Expr]]:
        """
        Build comparison operands with type coercion.

        A variable compared with a numeric literal, or with another variable
        when both carry numeric values, is compared on its typed value column.
        """
        if isinstance(left_term, Variable) and _is_numeric_literal(right_term):
            return self._numeric_expr(left_term, columns), self._numeric_literal_expr(right_term)
        if isinstance(right_term, Variable) and _is_numeric_literal(left_term):
            return self._numeric_literal_expr(left_term), self._numeric_expr(right_term, columns)
        if (
            isinstance(left_term, Variable) and isinstance(right_term, Variable)
            and _num_col(left_term.name) in columns and _num_col(right_term.name) in columns
        ):
            return pl.col(_num_col(left_term.name)), pl.col(_num_col(right_term.name))

        return self._arg_to_expr(left_term, columns), self._arg_to_expr(right_term, columns)

    @staticmethod
    def _numeric_literal_expr(term: Literal) -> Optional[pl.Expr]:
        try:
            return pl.lit(float(term.value))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _numeric_expr(var: Variable, columns: list[str]) -> pl.Expr:
        if _num_col(var.name) in columns:
            return pl.col(_num_col(var.name))
        if var.name in columns:
            return pl.col(var.name).cast(pl.Float64, strict=False)
        return pl.lit(None, dtype=pl.Float64)

    def _arg_to_expr(self, arg, columns: list[str]) -> Optional[pl.Expr]:
        """Convert a function argument to a Polars expression."""
        if isinstance(arg, Variable):
            if arg.name not in columns:
                return pl.lit(None, dtype=pl.Utf8)
            return pl.col(arg.name)
        elif isinstance(arg, Literal):
            return pl.lit(_literal_lexical(arg.value))
        elif isinstance(arg, IRI):
            return pl.lit(self._resolve_term(arg))
        elif isinstance(arg, FunctionCall):
            return self._build_function_call(arg, columns)
        elif isinstance(arg, (Comparison, LogicalExpression)):
            return self._build_filter_expression(arg, columns)
        return None

    @staticmethod
    def _arg_to_literal_value(arg) -> Optional[str]:
        """Extract a literal string value from an argument."""
        if isinstance(arg, Literal):
            return _literal_lexical(arg.value)
        return None

    def _build_function_call(self, func: FunctionCall, columns: list[str]) -> Optional[pl.Expr]:
        """Build a Polars expression for a function."""
        name = func.name.upper()
        args = func.arguments

        if name == "BOUND":
            if args and isinstance(args[0], Variable):
                if args[0].name not in columns:
                    return pl.lit(False)
                return pl.col(args[0].name).is_not_null()

        elif name in _TERM_KIND_TESTS:
            if args and isinstance(args[0], Variable):
                if _type_col(args[0].name) not in columns:
                    return pl.lit(False)
                # Unbound variables have a null kind and fail the test
                return (pl.col(_type_col(args[0].name)) == _TERM_KIND_TESTS[name]).fill_null(False)

        elif name == "STR":
            if args:
                expr = self._arg_to_expr(args[0], columns)
                if expr is not None:
                    return expr.cast(pl.Utf8)

        elif name == "STRLEN":
            if args:
                expr = self._arg_to_expr(args[0], columns)
                if expr is not None:
                    return expr.str.len_chars()

        elif name == "LCASE":
            if args:
                expr = self._arg_to_expr(args[0], columns)
                if expr is not None:
                    return expr.str.to_lowercase()

        elif name == "UCASE":
            if args:
                expr = self._arg_to_expr(args[0], columns)
                if expr is not None:
                    return expr.str.to_uppercase()

        elif name == "CONTAINS":
            if len(args) >= 2:
                str_expr = self._arg_to_expr(args[0], columns)
                pattern = self._arg_to_literal_value(args[1])
                if str_expr is not None and pattern is not None:
                    return str_expr.str.contains(pattern, literal=True)
                pattern_expr = self._arg_to_expr(args[1], columns)
                if str_expr is not None and pattern_expr is not None:
                    return str_expr.str.contains(pattern_expr, literal=True)

        elif name == "STRSTARTS":
            if len(args) >= 2:
                str_expr = self._arg_to_expr(args[0], columns)
                prefix = self._arg_to_literal_value(args[1])
                if str_expr is not None and prefix is not None:
                    return str_expr.str.starts_with(prefix)

        elif name == "STRENDS":
            if len(args) >= 2:
                str_expr = self._arg_to_expr(args[0], columns)
                suffix = self._arg_to_literal_value(args[1])
                if str_expr is not None and suffix is not None:
                    return str_expr.str.ends_with(suffix)

        elif name == "REGEX":
            if len(args) >= 2:
                str_expr = self._arg_to_expr(args[0], columns)
                pattern = self._arg_to_literal_value(args[1])
                flags = self._arg_to_literal_value(args[2]) if len(args) > 2 else ""
                if str_expr is not None and pattern is not None:
                    if flags and "i" in flags:
                        pattern = f"(?i){pattern}"
                    return str_expr.str.contains(pattern)

        elif name == "COALESCE":
            exprs = [self._arg_to_expr(arg, columns) for arg in args]
            exprs = [e for e in exprs if e is not None]
            if exprs:
                return pl.coalesce(exprs)

        return None

    # =========================================================================
    # Solution modifiers
    # =========================================================================

    def _apply_order_by(self, df: pl.DataFrame, order_by: list[tuple[Variable, bool]]) -> pl.DataFrame:
        """Sort by each key, numerically where the variable carries numeric values."""
        order_cols, descending = [], []
        for var, asc in order_by:
            if var.name not in df.columns:
                continue
            if _num_col(var.name) in df.columns:
                order_cols.append(_num_col(var.name))
                descending.append(not asc)
            order_cols.append(var.name)
            descending.append(not asc)
        if not order_cols:
            return df
        return df.sort(order_cols, descending=descending, nulls_last=False, maintain_order=True)

    def _apply_aggregates(self, df: pl.DataFrame, query: SelectQuery) -> pl.DataFrame:
        """
        Aggregate the entire solution sequence into one row.

        Supports: COUNT, SUM, AVG, MIN, MAX
        """
        exprs = []
        for v in query.variables:
            if isinstance(v, AggregateExpression):
                exprs.append(self._build_aggregate_expr(v, df.columns).alias(v.output_name))
            else:
                # Non-aggregated projection without GROUP BY: sample a value
                if v.name in df.columns:
                    exprs.append(pl.col(v.name).first().alias(v.name))
                else:
                    exprs.append(pl.lit(None, dtype=pl.Utf8).alias(v.name))
        return df.select(exprs)

    def _build_aggregate_expr(self, agg: AggregateExpression, columns: list[str]) -> pl.Expr:
        """Build a Polars aggregation expression from an AggregateExpression AST."""
        if agg.argument is None:
            if agg.function == "COUNT":
                return pl.len()
            return pl.lit(None, dtype=pl.Float64)

        col_name = agg.argument.name
        if col_name not in columns:
            return pl.lit(0) if agg.function == "COUNT" else pl.lit(None, dtype=pl.Float64)

        col = pl.col(col_name)
        num = pl.col(_num_col(col_name)) if _num_col(col_name) in columns else col.cast(pl.Float64, strict=False)

        if agg.function == "COUNT":
            if agg.distinct:
                return col.drop_nulls().n_unique()
            return col.count()
        if agg.distinct:
            num = num.unique()
        if agg.function == "SUM":
            return num.sum()
        if agg.function == "AVG":
            return num.mean()
        if agg.function == "MIN":
            return num.min()
        if agg.function == "MAX":
            return num.max()
        raise NotImplementedError(f"Aggregate {agg.function} not supported")


def execute_sparql(
    store: "GraphStore",
    query_string: str,
    context: Optional[QueryContext] = None,
) -> Union[pl.DataFrame, bool]:
    """
    Parse and execute a query string.

    Args:
        store: The GraphStore to query
        query_string: Query text
        context: Optional execution context carrying a timeout

    Returns:
        Query results (DataFrame for SELECT, bool for ASK)
    """
    from fashion_graph.sparql.parser import parse_query

    query = parse_query(query_string)
    executor = SPARQLExecutor(store)
    return executor.execute(query, context)
