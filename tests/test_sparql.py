"""
Tests for the query parser and executor.
"""

import pytest
from pyparsing import ParseException

from fashion_graph.query_context import QueryContext, QueryState, QueryTimeoutException
from fashion_graph.sparql import parse_query, SPARQLExecutor, execute_sparql
from fashion_graph.sparql.ast import (
    SelectQuery, AskQuery,
    Variable, IRI, Literal,
    Comparison, ComparisonOp, FunctionCall, LogicalExpression, LogicalOp,
    AggregateExpression,
)
from fashion_graph.terms import RDF_TYPE, XSD_INTEGER, XSD_DECIMAL

PREFIXES = """
PREFIX fash: <http://fashion.example.com/ontology#>
PREFIX schema: <http://schema.org/>
"""

DATA = "http://fashion.example.com/data/"


@pytest.fixture
def loaded(store, dresses, shirts):
    store.bulk_load([*dresses, *shirts])
    return store


class TestSPARQLParser:
    """Tests for query parsing."""

    def test_parse_simple_select(self):
        """Test parsing a simple SELECT query."""
        query = parse_query("SELECT ?s ?p ?o WHERE { ?s ?p ?o }")

        assert isinstance(query, SelectQuery)
        assert [v.name for v in query.variables] == ["s", "p", "o"]
        assert len(query.where.patterns) == 1

    def test_parse_select_star(self):
        """Test parsing SELECT *."""
        query = parse_query("SELECT * WHERE { ?s ?p ?o }")
        assert query.is_select_all()
        assert query.projected_names() == ["s", "p", "o"]

    def test_parse_prefixes(self):
        """Test PREFIX declarations are collected."""
        query = parse_query(PREFIXES + "SELECT ?p WHERE { ?p a fash:FashionProduct }")
        assert query.prefixes == {
            "fash": "http://fashion.example.com/ontology#",
            "schema": "http://schema.org/",
        }
        pattern = query.where.patterns[0]
        assert pattern.predicate == IRI(RDF_TYPE)
        assert pattern.object == IRI("fash:FashionProduct")

    def test_parse_predicate_object_lists(self):
        """Test ';' and ',' expand to one pattern per object."""
        query = parse_query(PREFIXES + """
            SELECT ?p WHERE {
                ?p a fash:FashionProduct ;
                   schema:name ?name ;
                   fash:hasReview ?r1, ?r2 .
            }
        """)
        patterns = query.where.patterns
        assert len(patterns) == 4
        assert all(p.subject == Variable("p") for p in patterns)
        assert [p.object for p in patterns[2:]] == [Variable("r1"), Variable("r2")]

    def test_parse_optional_and_filter(self):
        """Test OPTIONAL blocks and FILTER expressions."""
        query = parse_query(PREFIXES + """
            SELECT ?p ?name WHERE {
                ?p a fash:FashionProduct .
                OPTIONAL { ?p schema:name ?name }
                FILTER(?price > 50 && !BOUND(?name))
            }
        """)
        assert len(query.where.optional_patterns) == 1
        expr = query.where.filters[0].expression
        assert isinstance(expr, LogicalExpression)
        assert expr.operator == LogicalOp.AND
        comparison, negation = expr.operands
        assert isinstance(comparison, Comparison)
        assert comparison.operator == ComparisonOp.GT
        assert comparison.right == Literal("50", datatype=XSD_INTEGER)
        assert negation.operator == LogicalOp.NOT
        assert isinstance(negation.operands[0], FunctionCall)

    def test_parse_filter_function_form(self):
        """Test FILTER without parentheses around a function call."""
        query = parse_query('SELECT ?d WHERE { ?p <http://schema.org/description> ?d FILTER regex(?d, "silk", "i") }')
        call = query.where.filters[0].expression
        assert call.name == "REGEX"
        assert len(call.arguments) == 3

    def test_parse_decimal_literal(self):
        """Test decimals carry xsd:decimal."""
        query = parse_query("SELECT ?p WHERE { ?p ?x ?price FILTER(?price <= 89.5) }")
        assert query.where.filters[0].expression.right == Literal("89.5", datatype=XSD_DECIMAL)

    def test_parse_modifiers(self):
        """Test DISTINCT, ORDER BY, OFFSET and LIMIT in either order."""
        query = parse_query("""
            SELECT DISTINCT ?p ?n WHERE { ?p <http://schema.org/name> ?n }
            ORDER BY DESC(?n) ?p
            OFFSET 5 LIMIT 10
        """)
        assert query.distinct
        assert query.order_by == [(Variable("n"), False), (Variable("p"), True)]
        assert query.limit == 10
        assert query.offset == 5

    def test_parse_count(self):
        """Test COUNT aggregates with DISTINCT and alias."""
        query = parse_query("SELECT (COUNT(DISTINCT ?p) AS ?total) WHERE { ?p ?x ?y }")
        agg = query.variables[0]
        assert isinstance(agg, AggregateExpression)
        assert agg.function == "COUNT"
        assert agg.distinct
        assert agg.argument == Variable("p")
        assert query.projected_names() == ["total"]

    def test_parse_count_star(self):
        """Test COUNT(*)."""
        query = parse_query("SELECT (COUNT(*) AS ?n) WHERE { ?s ?p ?o }")
        assert query.variables[0].argument is None

    def test_parse_ask(self):
        """Test ASK queries."""
        query = parse_query("ASK WHERE { ?s ?p ?o }")
        assert isinstance(query, AskQuery)

    def test_comments_ignored(self):
        """Test '#' comments are skipped."""
        query = parse_query("""
            # list everything
            SELECT ?s WHERE { ?s ?p ?o }  # trailing
        """)
        assert isinstance(query, SelectQuery)

    def test_malformed(self):
        """Test malformed text raises ParseException."""
        with pytest.raises(ParseException):
            parse_query("SELEC ?s WHERE { ?s ?p ?o }")
        with pytest.raises(ParseException):
            parse_query("SELECT ?s WHERE { ?s ?p ")

    def test_str_roundtrip(self):
        """Test a parsed query prints back to parseable text."""
        query = parse_query(PREFIXES + 'SELECT ?p WHERE { ?p schema:name ?n FILTER(lcase(str(?n)) = "a \\"b\\"") }')
        reparsed = parse_query(str(query))
        assert isinstance(reparsed, SelectQuery)
        assert reparsed.where.filters[0].expression.right == Literal('a "b"')


class TestSPARQLExecutor:
    """Tests for query evaluation against a store."""

    def test_list_products(self, loaded):
        """Test a type pattern with an optional name."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?product ?name WHERE {
                ?product a fash:FashionProduct .
                OPTIONAL { ?product schema:name ?name }
            }
        """)
        assert result.columns == ["product", "name"]
        assert result.height == 9

    def test_join_on_shared_variable(self, loaded):
        """Test two patterns join on a shared variable."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?name WHERE {
                ?p fash:belongsToCategory ?c .
                ?c schema:name "Dress" .
                ?p schema:name ?name .
            }
        """)
        assert sorted(result["name"].to_list()) == ["Silk Evening Dress", "Summer Sundress"]

    def test_unbound_optional_is_null(self, loaded, make_product):
        """Test an unmatched optional leaves the variable unbound."""
        loaded.upsert(make_product(77, description=None))
        result = execute_sparql(loaded, PREFIXES + f"""
            SELECT ?p ?d WHERE {{
                ?p schema:name ?n .
                FILTER(?p = <{DATA}product/77>)
                OPTIONAL {{ ?p schema:description ?d }}
            }}
        """)
        assert result.to_dicts() == [{"p": DATA + "product/77", "d": None}]

    def test_numeric_filter(self, loaded):
        """Test numeric comparison uses typed values."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?name WHERE {
                ?p fash:hasPrice ?price ; schema:name ?name .
                FILTER(?price >= 52 && ?price < 100)
            }
        """)
        assert sorted(result["name"].to_list()) == ["Shirt Denim", "Shirt Linen", "Summer Sundress"]

    def test_numeric_order(self, loaded):
        """Test ORDER BY sorts numerically, not lexically."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?name ?price WHERE {
                ?p fash:hasPrice ?price ; fash:belongsToCategory ?c ; schema:name ?name .
                ?c schema:name "Shirt" .
            }
            ORDER BY DESC(?price)
        """)
        assert result["name"].to_list() == [
            "Shirt Linen", "Shirt Denim", "Shirt Oxford", "Shirt Flannel", "Shirt Polo",
        ]
        assert result["price"].to_list()[0] == "60.0"

    def test_string_functions(self, loaded):
        """Test CONTAINS/LCASE/STRSTARTS filters."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?name WHERE {
                ?p schema:name ?name ; schema:description ?d .
                FILTER(CONTAINS(LCASE(?d), "cotton") && STRSTARTS(?name, "Shirt"))
            }
        """)
        assert len(result) == 5

    def test_regex_case_insensitive(self, loaded):
        """Test REGEX with the 'i' flag."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT ?name WHERE {
                ?p schema:name ?name ; schema:description ?d .
                FILTER regex(?d, "SILK", "i")
            }
        """)
        assert result["name"].to_list() == ["Silk Evening Dress"]

    def test_blank_node_checks(self, loaded):
        """Test ISBLANK/ISIRI on rating nodes and reviews."""
        result = execute_sparql(loaded, """
            SELECT ?r ?rating WHERE {
                ?r <http://schema.org/reviewRating> ?rating .
                FILTER(ISBLANK(?rating) && ISIRI(?r))
            }
        """)
        assert result.to_dicts() == [{"r": DATA + "review/100", "rating": "_:rating-100"}]

    def test_distinct_limit_offset(self, loaded):
        """Test DISTINCT collapses duplicates before slicing."""
        result = execute_sparql(loaded, """
            SELECT DISTINCT ?type WHERE { ?s a ?type }
            ORDER BY ?type
        """)
        types = result["type"].to_list()
        assert len(types) == len(set(types))

        page = execute_sparql(loaded, """
            SELECT DISTINCT ?type WHERE { ?s a ?type }
            ORDER BY ?type
            LIMIT 2 OFFSET 1
        """)
        assert page["type"].to_list() == types[1:3]

    def test_count_distinct(self, loaded):
        """Test COUNT(DISTINCT ...) over the solutions."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT (COUNT(DISTINCT ?p) AS ?count) WHERE {
                ?p fash:belongsToCategory ?c .
                ?c schema:name "Shirt" .
            }
        """)
        assert result["count"].to_list() == [5]

    def test_count_no_match(self, loaded):
        """Test COUNT over no solutions is zero."""
        result = execute_sparql(loaded, PREFIXES + """
            SELECT (COUNT(?p) AS ?count) WHERE { ?p fash:belongsToCategory <http://nowhere/x> }
        """)
        assert result["count"].to_list() == [0]

    def test_ask(self, loaded):
        """Test ASK answers with a boolean."""
        assert execute_sparql(loaded, PREFIXES + 'ASK WHERE { ?c schema:name "Dress" }') is True
        assert execute_sparql(loaded, PREFIXES + 'ASK WHERE { ?c schema:name "Gowns" }') is False

    def test_unknown_function_ignored(self, loaded, caplog):
        """Test an unsupported FILTER function is logged and ignored."""
        with caplog.at_level("WARNING"):
            result = execute_sparql(loaded, PREFIXES + """
                SELECT ?p WHERE { ?p a fash:FashionProduct FILTER(SOUNDEX(?p)) }
            """)
        assert result.height == 9
        assert "Unsupported FILTER" in caplog.text


class TestTermKindFunctions:
    """Test isIRI, isBlank and isLiteral use the stored term kind."""

    @pytest.fixture
    def named(self, store, make_product, make_review):
        store.upsert(make_product(1, name="Style:Classic"))
        store.upsert(make_product(2, name="_:not-a-node", reviews=[make_review(100)]))
        store.upsert(make_product(3, name="Plain"))
        return store

    def names(self, store, function):
        result = execute_sparql(store, PREFIXES + f"""
            SELECT ?n WHERE {{ ?p a fash:FashionProduct ; schema:name ?n FILTER({function}(?n)) }}
            ORDER BY ?n
        """)
        return result["n"].to_list()

    def test_literal_that_looks_like_iri(self, named):
        """Test a name with a scheme-like prefix is still a literal."""
        assert self.names(named, "isLiteral") == ["Plain", "Style:Classic", "_:not-a-node"]
        assert self.names(named, "isIRI") == []
        assert self.names(named, "isURI") == []

    def test_literal_that_looks_like_blank_node(self, named):
        """Test a name starting with '_:' is not a blank node."""
        assert self.names(named, "isBlank") == []

    def test_object_blank_node(self, named):
        """Test rating nodes bound in object position are blank."""
        result = execute_sparql(named, PREFIXES + """
            SELECT ?rating WHERE { ?r schema:reviewRating ?rating FILTER(isBlank(?rating)) }
        """)
        assert result["rating"].to_list() == ["_:rating-100"]

    def test_object_iri(self, named):
        """Test resource objects are IRIs."""
        result = execute_sparql(named, PREFIXES + """
            SELECT ?r WHERE { ?p fash:hasReview ?r FILTER(isIRI(?r) && !isLiteral(?r)) }
        """)
        assert result["r"].to_list() == [DATA + "review/100"]

    def test_subject_positions(self, named):
        """Test subject bindings are IRIs or blank nodes, never literals."""
        blank = execute_sparql(named, PREFIXES + """
            SELECT ?s WHERE { ?s schema:ratingValue ?v FILTER(isBlank(?s)) }
        """)
        assert blank["s"].to_list() == ["_:rating-100"]
        products = execute_sparql(named, PREFIXES + """
            SELECT ?s WHERE { ?s a fash:FashionProduct FILTER(isIRI(?s)) }
        """)
        assert products.height == 3
        literals = execute_sparql(named, "SELECT ?s WHERE { ?s ?p ?o FILTER(isLiteral(?s)) }")
        assert literals.height == 0

    def test_unbound_optional(self, named):
        """Test an unbound optional variable fails every kind test."""
        result = execute_sparql(named, PREFIXES + """
            SELECT ?p WHERE {
                ?p a fash:FashionProduct .
                OPTIONAL { ?p schema:description ?d }
                FILTER(!isLiteral(?d) && !isIRI(?d) && !isBlank(?d))
            }
        """)
        assert result.height == 3


class TestExecutionContext:
    """Test the executor drives the query context."""

    def test_context_completed(self, loaded):
        """Test a finished query records its stats."""
        context = QueryContext()
        result = SPARQLExecutor(loaded).execute(parse_query("SELECT ?s WHERE { ?s ?p ?o }"), context)
        assert context.stats.state == QueryState.COMPLETED
        assert context.stats.rows_returned == result.height
        assert context.stats.pattern_count == 1

    def test_timeout(self, loaded):
        """Test an expired timeout aborts the query."""
        context = QueryContext(timeout_seconds=-1)
        with pytest.raises(QueryTimeoutException):
            SPARQLExecutor(loaded).execute(parse_query("SELECT ?s WHERE { ?s ?p ?o }"), context)
        assert context.stats.state == QueryState.TIMEOUT
