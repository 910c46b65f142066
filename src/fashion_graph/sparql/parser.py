"""
Graph-pattern query parser using pyparsing.

Parses the SELECT/ASK subset of SPARQL the catalog needs: prefixed names,
triple blocks with `a`, `;` and `,`, OPTIONAL blocks, FILTER expressions,
COUNT-style aggregates and solution modifiers.
"""

from typing import Optional
import pyparsing as pp
from pyparsing import (
    Keyword, Literal as Lit, Word, Regex, QuotedString,
    Suppress, Group, Optional as Opt, ZeroOrMore, OneOrMore,
    Forward, alphas, alphanums, pyparsing_common,
    CaselessKeyword, Combine,
    DelimitedList,
)

from fashion_graph.sparql.ast import (
    Query, SelectQuery, AskQuery,
    TriplePattern, OptionalPattern,
    Variable, IRI, Literal, BlankNode,
    Filter, Comparison, LogicalExpression, FunctionCall,
    AggregateExpression,
    ComparisonOp, LogicalOp,
    WhereClause,
)
from fashion_graph.terms import RDF_TYPE, XSD_INTEGER, XSD_DECIMAL


class SPARQLParser:
    """
    Parser for graph-pattern queries.

    Supports:
    - SELECT [DISTINCT] with variables, * or aggregates, and ASK
    - Triple blocks with predicate (;) and object (,) lists
    - OPTIONAL blocks and FILTER expressions with comparisons and functions
    - ORDER BY, LIMIT and OFFSET
    """

    def __init__(self):
        self._build_grammar()

    def _build_grammar(self):
        """Build the pyparsing grammar."""

        # Enable packrat parsing for performance
        pp.ParserElement.enable_packrat()

        # =================================================================
        # Lexical tokens
        # =================================================================

        # Keywords (case-insensitive)
        SELECT = CaselessKeyword("SELECT")
        ASK = CaselessKeyword("ASK")
        WHERE = CaselessKeyword("WHERE")
        FILTER = CaselessKeyword("FILTER")
        OPTIONAL = CaselessKeyword("OPTIONAL")
        PREFIX = CaselessKeyword("PREFIX")
        DISTINCT = CaselessKeyword("DISTINCT")
        LIMIT = CaselessKeyword("LIMIT")
        OFFSET = CaselessKeyword("OFFSET")
        ORDER = CaselessKeyword("ORDER")
        BY = CaselessKeyword("BY")
        ASC = CaselessKeyword("ASC")
        DESC = CaselessKeyword("DESC")
        AS = CaselessKeyword("AS")
        AND = Lit("&&")
        OR = Lit("||")
        NOT = Lit("!")
        BOUND = CaselessKeyword("BOUND")
        ISIRI = CaselessKeyword("ISIRI") | CaselessKeyword("ISURI")
        ISBLANK = CaselessKeyword("ISBLANK")
        ISLITERAL = CaselessKeyword("ISLITERAL")
        STR = CaselessKeyword("STR")

        # Punctuation
        LBRACE = Suppress(Lit("{"))
        RBRACE = Suppress(Lit("}"))
        LPAREN = Suppress(Lit("("))
        RPAREN = Suppress(Lit(")"))
        DOT = Suppress(Lit("."))
        SEMI = Suppress(Lit(";"))
        STAR = Lit("*")

        # Comparison operators
        comp_op = (
            Lit("<=") | Lit(">=") | Lit("!=") | Lit("<>") |
            Lit("=") | Lit("<") | Lit(">")
        )

        # =================================================================
        # Terms
        # =================================================================

        # Variable: ?name or $name
        def make_variable(tokens):
            return Variable(tokens[0][1:])

        variable = Combine(
            (Lit("?") | Lit("$")) + Word(alphas + "_", alphanums + "_")
        ).set_parse_action(make_variable)

        # IRI: <http://...> or prefix:localname
        def make_full_iri(tokens):
            return IRI(tokens[0][1:-1])

        full_iri = Combine(
            Lit("<") + Regex(r'[^<>\s"{}|^`\\]+') + Lit(">")
        ).set_parse_action(make_full_iri)

        # Prefixed name: prefix:local (a local name never ends with '.')
        pname_ns = Combine(Opt(Word(alphas, alphanums + "_-")) + Lit(":"))
        pname_local = Regex(r"[A-Za-z0-9_](?:[A-Za-z0-9_.\-]*[A-Za-z0-9_\-])?")

        def make_prefixed_name(tokens):
            return IRI(tokens[0])

        prefixed_name = Combine(pname_ns + Opt(pname_local)).set_parse_action(make_prefixed_name)

        iri = full_iri | prefixed_name

        # 'a' as shorthand for rdf:type in predicate position
        rdf_type = Keyword("a").set_parse_action(lambda: IRI(RDF_TYPE))

        # Literals
        string_literal = (
            QuotedString('"', esc_char='\\', multiline=True) |
            QuotedString("'", esc_char='\\', multiline=True)
        )

        # Language tag: @en, @en-US
        lang_tag = Combine(Lit("@") + Word(alphas + "-"))

        # Datatype: ^^<type> or ^^prefix:type
        datatype = Suppress(Lit("^^")) + iri

        # Full literal with optional language or datatype
        def make_literal(tokens):
            value = tokens[0]
            lang = None
            dtype = None
            if len(tokens) > 1:
                if isinstance(tokens[1], str) and tokens[1].startswith("@"):
                    lang = tokens[1][1:]
                elif isinstance(tokens[1], IRI):
                    dtype = tokens[1].value
            return Literal(value, language=lang, datatype=dtype)

        literal = (string_literal + Opt(lang_tag | datatype)).set_parse_action(make_literal)

        # Numeric literals
        def make_int_literal(tokens):
            return Literal(tokens[0], datatype=XSD_INTEGER)

        def make_float_literal(tokens):
            return Literal(tokens[0], datatype=XSD_DECIMAL)

        integer_literal = pyparsing_common.signed_integer.copy().set_parse_action(make_int_literal)
        float_literal = pyparsing_common.real.copy().set_parse_action(make_float_literal)

        # Boolean literals
        def make_true(tokens):
            return Literal(True)

        def make_false(tokens):
            return Literal(False)

        boolean_literal = (
            CaselessKeyword("true").set_parse_action(make_true) |
            CaselessKeyword("false").set_parse_action(make_false)
        )

        # Blank node
        def make_blank_node(tokens):
            return BlankNode(tokens[0][2:])

        blank_node = Combine(
            Lit("_:") + Word(alphanums + "_-")
        ).set_parse_action(make_blank_node)

        term = variable | iri | literal | float_literal | integer_literal | boolean_literal | blank_node
        verb = variable | iri | rdf_type

        # =================================================================
        # Triple blocks: ?s p1 o1, o2 ; p2 o3 .
        # =================================================================

        def make_triples(tokens):
            subject = tokens[0]
            items = list(tokens[1:])
            patterns = []
            for i in range(0, len(items) - 1, 2):
                predicate, objects = items[i], items[i + 1]
                for obj in objects:
                    patterns.append(TriplePattern(subject=subject, predicate=predicate, object=obj))
            return patterns

        object_list = Group(DelimitedList(term))
        property_list = verb + object_list + ZeroOrMore(SEMI + Opt(verb + object_list))

        triples_block = (
            term + property_list + Opt(DOT)
        ).set_parse_action(make_triples)

        # =================================================================
        # FILTER Expressions
        # =================================================================

        # Expression forward declaration
        expression = Forward()

        # Function call
        func_name = (
            BOUND | ISIRI | ISBLANK | ISLITERAL | STR |
            Word(alphas, alphanums + "_")
        )

        def make_function_call(tokens):
            return FunctionCall(name=str(tokens[0]).upper(), arguments=list(tokens[1:]))

        function_call = (
            func_name + LPAREN + Opt(DelimitedList(expression)) + RPAREN
        ).set_parse_action(make_function_call)

        # Primary expression
        primary_expr = (
            function_call |
            variable |
            literal |
            float_literal |
            integer_literal |
            boolean_literal |
            iri |
            (LPAREN + expression + RPAREN)
        )

        # Comparison expression
        def make_comparison(tokens):
            if len(tokens) == 3:
                return Comparison(
                    left=tokens[0],
                    operator=ComparisonOp.from_str(tokens[1]),
                    right=tokens[2]
                )
            return tokens[0]

        comparison_expr = (
            primary_expr + Opt(comp_op + primary_expr)
        ).set_parse_action(make_comparison)

        # NOT expression
        def make_not(tokens):
            if len(tokens) == 2:  # Has NOT
                return LogicalExpression(LogicalOp.NOT, [tokens[1]])
            return tokens[0]

        not_expr = (
            Opt(NOT) + comparison_expr
        ).set_parse_action(make_not)

        # AND expression
        def make_and(tokens):
            tokens = list(tokens)
            if len(tokens) == 1:
                return tokens[0]
            return LogicalExpression(LogicalOp.AND, tokens)

        and_expr = (
            not_expr + ZeroOrMore(Suppress(AND) + not_expr)
        ).set_parse_action(make_and)

        # OR expression (lowest precedence)
        def make_or(tokens):
            tokens = list(tokens)
            if len(tokens) == 1:
                return tokens[0]
            return LogicalExpression(LogicalOp.OR, tokens)

        expression <<= (
            and_expr + ZeroOrMore(Suppress(OR) + and_expr)
        ).set_parse_action(make_or)

        # FILTER(expr) or FILTER fn(...)
        def make_filter(tokens):
            return Filter(expression=tokens[0])

        filter_clause = (
            Suppress(FILTER) + ((LPAREN + expression + RPAREN) | function_call)
        ).set_parse_action(make_filter)

        # =================================================================
        # OPTIONAL blocks
        # =================================================================

        def make_optional(tokens):
            patterns = [t for t in tokens if isinstance(t, TriplePattern)]
            filters = [t for t in tokens if isinstance(t, Filter)]
            return OptionalPattern(patterns=patterns, filters=filters)

        optional_block = (
            Suppress(OPTIONAL) + LBRACE + ZeroOrMore(filter_clause | triples_block) + RBRACE
        ).set_parse_action(make_optional)

        # =================================================================
        # WHERE Clause
        # =================================================================

        where_pattern = optional_block | filter_clause | triples_block

        def make_where_clause(tokens):
            where = WhereClause()
            for token in tokens:
                if isinstance(token, TriplePattern):
                    where.patterns.append(token)
                elif isinstance(token, OptionalPattern):
                    where.optional_patterns.append(token)
                elif isinstance(token, Filter):
                    where.filters.append(token)
            return where

        where_clause = (
            Suppress(WHERE) + LBRACE + ZeroOrMore(where_pattern) + RBRACE
        ).set_parse_action(make_where_clause)

        # =================================================================
        # PREFIX Declarations
        # =================================================================

        def make_prefix(tokens):
            prefix = tokens[0][:-1]  # Remove trailing colon
            uri = tokens[1].value
            return (prefix, uri)

        prefix_decl = (
            Suppress(PREFIX) + pname_ns + full_iri
        ).set_parse_action(make_prefix)

        # =================================================================
        # SELECT Query
        # =================================================================

        # Use a fresh copy of variable for select to avoid parse action interference
        select_variable = Combine(
            (Lit("?") | Lit("$")) + Word(alphas + "_", alphanums + "_")
        ).set_parse_action(make_variable)

        # (COUNT([DISTINCT] ?x|*) AS ?alias)
        def make_aggregate(tokens):
            tokens = list(tokens)
            argument = tokens[-2]
            return AggregateExpression(
                function=str(tokens[0]).upper(),
                argument=None if argument == "*" else argument,
                distinct=any(t == "DISTINCT" for t in tokens[1:-2]),
                alias=tokens[-1],
            )

        agg_name = (
            CaselessKeyword("COUNT") | CaselessKeyword("SUM") | CaselessKeyword("AVG") |
            CaselessKeyword("MIN") | CaselessKeyword("MAX")
        )
        aggregate = (
            LPAREN + agg_name + LPAREN + Opt(CaselessKeyword("DISTINCT")) +
            (Lit("*") | select_variable) + RPAREN +
            Suppress(AS) + select_variable + RPAREN
        ).set_parse_action(make_aggregate)

        # Variable list or *
        def make_star(tokens):
            return []

        select_vars = (
            STAR.set_parse_action(make_star) |
            OneOrMore(aggregate | select_variable)
        )

        # ORDER BY clause - use fresh copy
        order_variable = Combine(
            (Lit("?") | Lit("$")) + Word(alphas + "_", alphanums + "_")
        ).set_parse_action(make_variable)

        def make_order_desc(tokens):
            return (tokens[0], False)

        def make_order_asc(tokens):
            return (tokens[0], True)

        def make_plain_order(tokens):
            var_name = tokens[0][1:]  # Remove the ? or $
            return (Variable(var_name), True)

        plain_order_var = Combine(
            (Lit("?") | Lit("$")) + Word(alphas + "_", alphanums + "_")
        ).set_parse_action(make_plain_order)

        order_condition = (
            (Suppress(DESC) + LPAREN + order_variable + RPAREN).set_parse_action(make_order_desc) |
            (Suppress(ASC) + LPAREN + order_variable + RPAREN).set_parse_action(make_order_asc) |
            plain_order_var
        )

        order_clause = Suppress(ORDER) + Suppress(BY) + OneOrMore(order_condition)

        # LIMIT and OFFSET, in either order
        limit_clause = (
            Suppress(LIMIT) + pyparsing_common.integer.copy()
        ).set_parse_action(lambda tokens: ("limit", tokens[0]))
        offset_clause = (
            Suppress(OFFSET) + pyparsing_common.integer.copy()
        ).set_parse_action(lambda tokens: ("offset", tokens[0]))

        def make_select_query(tokens):
            query = SelectQuery()

            for token in tokens:
                if isinstance(token, tuple) and len(token) == 2:
                    if isinstance(token[1], int) and token[0] in ("limit", "offset"):
                        setattr(query, token[0], token[1])
                    elif isinstance(token[0], str) and isinstance(token[1], str):
                        query.prefixes[token[0]] = token[1]
                elif token == "DISTINCT":
                    query.distinct = True
                elif isinstance(token, (pp.ParseResults, list)):
                    token_list = list(token)
                    if token_list and isinstance(token_list[0], (Variable, AggregateExpression)):
                        query.variables = token_list
                    elif token_list and isinstance(token_list[0], tuple):
                        query.order_by = token_list
                elif isinstance(token, WhereClause):
                    query.where = token

            return query

        def make_distinct(tokens):
            return "DISTINCT"

        select_query = (
            ZeroOrMore(prefix_decl) +
            Suppress(SELECT) +
            Opt(DISTINCT.set_parse_action(make_distinct)) +
            Group(select_vars) +
            where_clause +
            Opt(Group(order_clause)) +
            ZeroOrMore(limit_clause | offset_clause)
        ).set_parse_action(make_select_query)

        # =================================================================
        # ASK Query
        # =================================================================

        def make_ask_query(tokens):
            prefixes = {}
            where = WhereClause()
            for token in tokens:
                if isinstance(token, tuple) and len(token) == 2 and isinstance(token[0], str):
                    prefixes[token[0]] = token[1]
                elif isinstance(token, WhereClause):
                    where = token
            return AskQuery(prefixes=prefixes, where=where)

        ask_query = (
            ZeroOrMore(prefix_decl) +
            Suppress(ASK) +
            where_clause
        ).set_parse_action(make_ask_query)

        # =================================================================
        # Top-level Query
        # =================================================================

        self.query = select_query | ask_query

        # Ignore comments
        self.query.ignore(Lit("#") + pp.rest_of_line)

    def parse(self, query_string: str) -> Query:
        """
        Parse a query string into an AST.

        Args:
            query_string: The query to parse

        Returns:
            Parsed Query AST

        Raises:
            ParseException: If the query is malformed
        """
        result = self.query.parse_string(query_string, parse_all=True)
        return result[0]


# Module-level parser instance for convenience
_parser: Optional[SPARQLParser] = None


def parse_query(query_string: str) -> Query:
    """
    Parse a query string using a cached parser instance.

    Args:
        query_string: The query to parse

    Returns:
        Parsed Query AST
    """
    global _parser
    if _parser is None:
        _parser = SPARQLParser()
    return _parser.parse(query_string)
