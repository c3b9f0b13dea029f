"""
Wire rows and term slots.

Thin layer over the Jelly protobuf messages: serializing rows to bytes and
back, discovering which term kind a statement slot carries, and checking
term kinds against the stream options.

Slot naming follows the wire format: "s", "p", "o" for the triple
positions and "g" for the graph. A slot field is "<slot>_<kind>", e.g.
s_iri, o_literal, g_default_graph.
"""

from enum import Enum
from typing import Any, NamedTuple, Optional, Tuple

from google.protobuf.message import DecodeError
from pyjelly import jelly
from pyoxigraph import BlankNode, DefaultGraph, Literal, NamedNode, Quad, Triple

from rdf_jelly.errors import MalformedInputError, ProtocolViolationError
from rdf_jelly.options import StreamOptions

XSD_STRING = "http://www.w3.org/2001/XMLSchema#string"

TRIPLE_SLOTS = ("s", "p", "o")
QUAD_SLOTS = ("s", "p", "o", "g")


class TermKind(Enum):
    """Term kinds, valued by their wire field suffix."""
    IRI = "iri"
    BNODE = "bnode"
    LITERAL = "literal"
    TRIPLE_TERM = "triple_term"
    DEFAULT_GRAPH = "default_graph"


# Kinds a slot can physically hold on the wire
_WIRE_KINDS = {
    "s": (TermKind.IRI, TermKind.BNODE, TermKind.LITERAL, TermKind.TRIPLE_TERM),
    "p": (TermKind.IRI, TermKind.BNODE, TermKind.LITERAL, TermKind.TRIPLE_TERM),
    "o": (TermKind.IRI, TermKind.BNODE, TermKind.LITERAL, TermKind.TRIPLE_TERM),
    "g": (TermKind.IRI, TermKind.BNODE, TermKind.LITERAL, TermKind.DEFAULT_GRAPH),
}

# Kinds allowed in plain RDF
_STRICT_KINDS = {
    "s": {TermKind.IRI, TermKind.BNODE, TermKind.TRIPLE_TERM},
    "p": {TermKind.IRI},
    "o": {TermKind.IRI, TermKind.BNODE, TermKind.LITERAL, TermKind.TRIPLE_TERM},
    "g": {TermKind.IRI, TermKind.BNODE, TermKind.DEFAULT_GRAPH},
}

_SLOT_NAMES = {"s": "subject", "p": "predicate", "o": "object", "g": "graph"}


class GeneralizedQuad(NamedTuple):
    """A statement pyoxigraph cannot represent as a Quad (generalized RDF)."""
    subject: Any
    predicate: Any
    object: Any
    graph_name: Any


def encode_row(row: jelly.RdfStreamRow) -> bytes:
    """Serialize one stream row."""
    return row.SerializeToString()


def decode_row(data: bytes) -> jelly.RdfStreamRow:
    """
    Parse one stream row from a transport unit.

    Raises:
        MalformedInputError: If the bytes are not a valid RdfStreamRow
    """
    try:
        return jelly.RdfStreamRow.FromString(bytes(data))
    except DecodeError as e:
        raise MalformedInputError(
            f"Cannot decode stream row from {len(data)} bytes: {e}", size=len(data)
        ) from e


def term_kind(term: Any) -> TermKind:
    """Classify a pyoxigraph term."""
    if isinstance(term, NamedNode):
        return TermKind.IRI
    if isinstance(term, BlankNode):
        return TermKind.BNODE
    if isinstance(term, Literal):
        return TermKind.LITERAL
    if isinstance(term, Triple):
        return TermKind.TRIPLE_TERM
    if isinstance(term, DefaultGraph):
        return TermKind.DEFAULT_GRAPH
    raise TypeError(f"Not an RDF term: {term!r}")


def slot_kind(message: Any, slot: str) -> Optional[TermKind]:
    """
    Return the kind held by a slot of a triple/quad/graph_start message.

    Returns None when the slot is absent (repeated term).
    """
    for kind in _WIRE_KINDS[slot]:
        field = f"{slot}_{kind.value}"
        if field in message.DESCRIPTOR.fields_by_name and message.HasField(field):
            return kind
    return None


def check_kind(slot: str, kind: TermKind, options: StreamOptions) -> None:
    """
    Check that a term kind may appear in a slot under the given options.

    Raises:
        ProtocolViolationError: If the kind is not allowed
    """
    if kind == TermKind.TRIPLE_TERM and not options.rdf_star:
        raise ProtocolViolationError(
            f"Quoted triple in {_SLOT_NAMES[slot]} position but rdf_star is disabled"
        )
    if kind in _STRICT_KINDS[slot]:
        return
    if kind == TermKind.DEFAULT_GRAPH or kind not in _WIRE_KINDS[slot]:
        raise ProtocolViolationError(
            f"{kind.name} cannot appear in {_SLOT_NAMES[slot]} position"
        )
    if not options.generalized_statements:
        raise ProtocolViolationError(
            f"{kind.name} in {_SLOT_NAMES[slot]} position requires generalized statements"
        )


def statement_terms(statement: Any) -> Tuple[Any, Any, Any, Any]:
    """Normalize a Quad, Triple or 3/4-tuple into (s, p, o, g)."""
    if isinstance(statement, Quad):
        return statement.subject, statement.predicate, statement.object, statement.graph_name
    if isinstance(statement, Triple):
        return statement.subject, statement.predicate, statement.object, DefaultGraph()
    if isinstance(statement, tuple):
        if len(statement) == 3:
            return statement[0], statement[1], statement[2], DefaultGraph()
        if len(statement) == 4:
            return statement[0], statement[1], statement[2], statement[3]
    raise TypeError(f"Not an RDF statement: {statement!r}")


def make_statement(subject: Any, predicate: Any, obj: Any, graph: Any, options: StreamOptions):
    """
    Build a Quad, or a GeneralizedQuad when pyoxigraph rejects the terms.

    pyoxigraph releases following RDF 1.2 only take quoted triples as
    objects, so a quoted subject on an rdf_star stream also comes back
    as a GeneralizedQuad.
    """
    try:
        return Quad(subject, predicate, obj, graph)
    except TypeError as e:
        quoted_subject = options.rdf_star and isinstance(subject, Triple)
        if not (options.generalized_statements or quoted_subject):
            raise ProtocolViolationError(f"Invalid statement: {e}") from e
        return GeneralizedQuad(subject, predicate, obj, graph)


def make_triple_term(subject: Any, predicate: Any, obj: Any) -> Triple:
    try:
        return Triple(subject, predicate, obj)
    except TypeError as e:
        raise ProtocolViolationError(f"Invalid quoted triple: {e}") from e
