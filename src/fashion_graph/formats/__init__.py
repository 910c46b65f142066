"""
RDF Serializers.

Supports:
- N-Triples (.nt)
"""

from fashion_graph.formats.ntriples import NTriplesSerializer, serialize_ntriples

__all__ = [
    "NTriplesSerializer",
    "serialize_ntriples",
]
