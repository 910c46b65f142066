"""
N-Triples Serializer.

Writes statements one per line:
  subject predicate object .

Output is sorted so two dumps of the same statement set are byte-identical,
which makes them usable for diffing converter output.

Reference: https://www.w3.org/TR/n-triples/
"""

from typing import Iterable

from fashion_graph.terms import Statement, Term, XSD_STRING


class NTriplesSerializer:
    """Serializer for N-Triples format."""

    def _escape(self, value: str) -> str:
        return (
            value.replace("\\", "\\\\")
            .replace('"', '\\"')
            .replace("\n", "\\n")
            .replace("\r", "\\r")
            .replace("\t", "\\t")
        )

    def _format_term(self, term: Term) -> str:
        if term.is_iri:
            return f"<{term.lex}>"
        if term.is_bnode:
            return f"_:{term.lex}"
        text = f'"{self._escape(term.lex)}"'
        if term.datatype and term.datatype != XSD_STRING:
            return f"{text}^^<{term.datatype}>"
        return text

    def format_statement(self, statement: Statement) -> str:
        return (
            f"{self._format_term(statement.subject)} "
            f"{self._format_term(statement.predicate)} "
            f"{self._format_term(statement.object)} ."
        )

    def serialize(self, statements: Iterable[Statement], sort: bool = True) -> str:
        """
        Serialize statements to N-Triples format.

        Args:
            statements: Statements to write
            sort: Sort lines lexicographically

        Returns:
            N-Triples formatted string, newline-terminated unless empty
        """
        lines = [self.format_statement(s) for s in statements]
        if sort:
            lines.sort()
        return "".join(line + "\n" for line in lines)


def serialize_ntriples(statements: Iterable[Statement], sort: bool = True) -> str:
    """
    Serialize statements to N-Triples.

    Args:
        statements: Statements to write
        sort: Sort lines lexicographically

    Returns:
        N-Triples formatted string
    """
    return NTriplesSerializer().serialize(statements, sort=sort)
