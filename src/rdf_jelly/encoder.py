"""
Jelly stream encoder.

Turns RDF statements into stream rows. Every statement produces the lookup
table updates it needs followed by exactly one statement row; the first
call of a stream additionally starts with the options row.

Compression applied:
- Lookup tables: IRIs (prefix + name) and literal datatypes are sent once
  as table entries and referenced by ID afterwards.
- IRI ID elision: prefix_id 0 repeats the previous IRI's prefix ID,
  name_id 0 stands for the previous IRI's name ID + 1.
- Repeated terms: a top-level slot equal to the same slot of the previous
  statement is omitted.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pyjelly import jelly
from pyoxigraph import NamedNode

from rdf_jelly.errors import JellyError, ProtocolViolationError
from rdf_jelly.lookup import LookupEncoder, split_iri
from rdf_jelly.options import PhysicalStreamType, StreamOptions
from rdf_jelly.rows import (
    QUAD_SLOTS,
    TRIPLE_SLOTS,
    XSD_STRING,
    TermKind,
    check_kind,
    encode_row,
    statement_terms,
    term_kind,
)

logger = logging.getLogger(__name__)


class JellyEncoder:
    """
    Stateful encoder for a single Jelly stream.

    Example:
        encoder = JellyEncoder(StreamOptions(physical_type=PhysicalStreamType.QUADS))
        for quad in quads:
            transport.send_all(encoder.write(quad))
        transport.send_all(encoder.finish())
    """

    def __init__(self, options: Optional[StreamOptions] = None):
        self.options = options or StreamOptions()
        self.options.validate()

        self._prefixes = LookupEncoder("prefix", self.options.max_prefix_table_size)
        self._names = LookupEncoder("name", self.options.max_name_table_size)
        self._datatypes = LookupEncoder("datatype", self.options.max_datatype_table_size)
        self._pending: List[jelly.RdfStreamRow] = []
        self.reset()

    def reset(self) -> None:
        """Forget all stream state; the next row written starts a new stream."""
        self._prefixes.reset()
        self._names.reset()
        self._datatypes.reset()
        self._pending = []
        self._options_sent = False
        self._last_prefix_id = 0
        self._last_name_id = 0
        self._previous: List[Any] = [None, None, None, None]
        self._current_graph: Any = None
        self._failed = False
        self._rows_emitted = 0
        self._statements = 0
        logger.debug("Encoder reset")

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def encode(self, statement: Any) -> List[jelly.RdfStreamRow]:
        """
        Encode one statement into structured rows.

        Args:
            statement: pyoxigraph Quad or Triple, or a 3/4-tuple of terms

        Returns:
            Rows in wire order: options (first call only), table updates,
            graph boundaries (GRAPHS streams), then the statement row
        """
        self._check_usable()
        terms = statement_terms(statement)
        try:
            self._validate(terms)
            rows = self._start_rows()
            if self.options.physical_type == PhysicalStreamType.GRAPHS:
                rows.extend(self._graph_rows(terms[3]))
            rows.extend(self._statement_rows(terms))
        except JellyError:
            self._failed = True
            raise

        self._statements += 1
        self._rows_emitted += len(rows)
        return rows

    def write(self, statement: Any) -> List[bytes]:
        """Encode one statement into serialized rows, one buffer per row."""
        return [encode_row(row) for row in self.encode(statement)]

    def declare_namespace(self, name: str, iri: Union[str, NamedNode]) -> List[bytes]:
        """
        Emit a namespace declaration (e.g. "ex" -> "http://example.org/").

        Declarations carry no statements; decoders expose them as prefix
        hints for downstream serializers.
        """
        self._check_usable()
        try:
            if not isinstance(iri, NamedNode):
                try:
                    iri = NamedNode(iri)
                except ValueError as e:
                    raise ProtocolViolationError(f"Invalid namespace IRI {iri!r}: {e}") from e
            value = iri.value
            rows = self._start_rows()
            declaration = jelly.RdfNamespaceDeclaration(name=name, value=self._encode_iri(value))
            rows.extend(self._take_pending())
            rows.append(jelly.RdfStreamRow(namespace=declaration))
        except JellyError:
            self._failed = True
            raise

        self._rows_emitted += len(rows)
        return [encode_row(row) for row in rows]

    def finish(self) -> List[bytes]:
        """
        Close the stream.

        Emits graph_end for an open graph of a GRAPHS stream, and the options
        row if nothing has been written yet.
        """
        self._check_usable()
        rows = self._start_rows()
        if self._current_graph is not None:
            rows.append(jelly.RdfStreamRow(graph_end=jelly.RdfGraphEnd()))
            logger.debug(f"Closed graph {self._current_graph}")
            self._current_graph = None
        self._rows_emitted += len(rows)
        return [encode_row(row) for row in rows]

    def stats(self) -> Dict[str, int]:
        """Get encoder statistics."""
        return {
            "statements": self._statements,
            "rows": self._rows_emitted,
            "prefixes": len(self._prefixes),
            "names": len(self._names),
            "datatypes": len(self._datatypes),
        }

    # -------------------------------------------------------------------------
    # Stream structure
    # -------------------------------------------------------------------------

    def _check_usable(self) -> None:
        if self._failed:
            raise ProtocolViolationError(
                "Encoder is in a failed state; call reset() before writing again"
            )

    def _start_rows(self) -> List[jelly.RdfStreamRow]:
        if self._options_sent:
            return []
        self._options_sent = True
        logger.debug(f"Starting stream {self.options.stream_name!r} ({self.options.physical_type.name})")
        return [jelly.RdfStreamRow(options=self.options.to_proto())]

    def _validate(self, terms) -> None:
        for slot, term in zip(QUAD_SLOTS, terms):
            self._validate_term(slot, term)

    def _validate_term(self, slot: str, term: Any) -> None:
        kind = term_kind(term)
        check_kind(slot, kind, self.options)
        # No wire field carries a base direction
        if kind == TermKind.LITERAL and getattr(term, "direction", None):
            raise ProtocolViolationError(
                f"Literal {term} has a base direction, which cannot be encoded"
            )
        if kind == TermKind.TRIPLE_TERM:
            for inner_slot, inner in zip(TRIPLE_SLOTS, (term.subject, term.predicate, term.object)):
                self._validate_term(inner_slot, inner)

    def _graph_rows(self, graph: Any) -> List[jelly.RdfStreamRow]:
        if self._current_graph is not None and graph == self._current_graph:
            return []

        rows = []
        if self._current_graph is not None:
            rows.append(jelly.RdfStreamRow(graph_end=jelly.RdfGraphEnd()))
        start = jelly.RdfGraphStart(**self._term_fields("g", graph))
        rows.extend(self._take_pending())
        rows.append(jelly.RdfStreamRow(graph_start=start))
        logger.debug(f"Opened graph {graph}")
        self._current_graph = graph
        return rows

    def _statement_rows(self, terms) -> List[jelly.RdfStreamRow]:
        physical = self.options.physical_type
        # TRIPLES streams fall back to a quad row for named graphs
        as_quad = physical == PhysicalStreamType.QUADS or (
            physical == PhysicalStreamType.TRIPLES
            and term_kind(terms[3]) != TermKind.DEFAULT_GRAPH
        )
        slots = QUAD_SLOTS if as_quad else TRIPLE_SLOTS

        fields: Dict[str, Any] = {}
        for index, slot in enumerate(slots):
            term = terms[index]
            if self._previous[index] is not None and term == self._previous[index]:
                continue  # repeated term
            fields.update(self._term_fields(slot, term))
            self._previous[index] = term

        if as_quad:
            row = jelly.RdfStreamRow(quad=jelly.RdfQuad(**fields))
        else:
            # The graph of a triple row is implied
            self._previous[3] = terms[3]
            row = jelly.RdfStreamRow(triple=jelly.RdfTriple(**fields))
        return self._take_pending() + [row]

    def _take_pending(self) -> List[jelly.RdfStreamRow]:
        pending, self._pending = self._pending, []
        return pending

    # -------------------------------------------------------------------------
    # Terms
    # -------------------------------------------------------------------------

    def _term_fields(self, slot: str, term: Any) -> Dict[str, Any]:
        """Convert a term into the single slot field that carries it."""
        kind = term_kind(term)
        field = f"{slot}_{kind.value}"

        if kind == TermKind.IRI:
            return {field: self._encode_iri(term.value)}
        if kind == TermKind.BNODE:
            return {field: term.value}
        if kind == TermKind.LITERAL:
            return {field: self._encode_literal(term)}
        if kind == TermKind.DEFAULT_GRAPH:
            return {field: jelly.RdfDefaultGraph()}

        # Quoted triples never elide their own terms
        nested: Dict[str, Any] = {}
        for inner_slot, inner in zip(TRIPLE_SLOTS, (term.subject, term.predicate, term.object)):
            nested.update(self._term_fields(inner_slot, inner))
        return {field: jelly.RdfTriple(**nested)}

    def _encode_iri(self, iri: str) -> jelly.RdfIri:
        if self.options.prefix_table_enabled:
            prefix, name = split_iri(iri)
            prefix_id = self._register(self._prefixes, prefix)
            wire_prefix = 0 if prefix_id == self._last_prefix_id else prefix_id
            self._last_prefix_id = prefix_id
        else:
            name = iri
            wire_prefix = 0

        name_id = self._register(self._names, name)
        wire_name = 0 if name_id == self._last_name_id + 1 else name_id
        self._last_name_id = name_id
        return jelly.RdfIri(prefix_id=wire_prefix, name_id=wire_name)

    def _encode_literal(self, literal: Any) -> jelly.RdfLiteral:
        if literal.language:
            return jelly.RdfLiteral(lex=literal.value, langtag=literal.language)
        datatype = literal.datatype.value
        if datatype == XSD_STRING:
            return jelly.RdfLiteral(lex=literal.value)
        return jelly.RdfLiteral(lex=literal.value, datatype=self._register(self._datatypes, datatype))

    def _register(self, table: LookupEncoder, value: str) -> int:
        entry_id, is_new = table.get_or_add(value)
        if is_new:
            if table is self._names:
                row = jelly.RdfStreamRow(name=jelly.RdfNameEntry(id=entry_id, value=value))
            elif table is self._prefixes:
                row = jelly.RdfStreamRow(prefix=jelly.RdfPrefixEntry(id=entry_id, value=value))
            else:
                row = jelly.RdfStreamRow(datatype=jelly.RdfDatatypeEntry(id=entry_id, value=value))
            self._pending.append(row)
        return entry_id
