"""
Jelly stream decoder.

Replays the encoder's lookup tables and elision rules to rebuild statements
from a sequence of stream rows. Table update rows, namespace declarations
and graph boundaries only change decoder state; triple and quad rows each
produce one statement.
"""

import logging
from typing import Any, Dict, List, Optional

from pyjelly import jelly
from pyoxigraph import BlankNode, DefaultGraph, Literal, NamedNode

from rdf_jelly.errors import ConfigValidationError, JellyError, ProtocolViolationError
from rdf_jelly.lookup import LookupDecoder
from rdf_jelly.options import PhysicalStreamType, StreamOptions
from rdf_jelly.rows import (
    QUAD_SLOTS,
    TRIPLE_SLOTS,
    TermKind,
    check_kind,
    make_statement,
    make_triple_term,
    slot_kind,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class JellyDecoder:
    """
    Stateful decoder for a single Jelly stream.

    Example:
        decoder = JellyDecoder()
        for row in rows:
            quad = decoder.process_row(row)
            if quad is not None:
                consume(quad)
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self.reset()

    def reset(self) -> None:
        """Drop all stream state; the next row must be a new options row."""
        self.options: Optional[StreamOptions] = None
        self.namespaces: Dict[str, str] = {}
        self._prefixes: Optional[LookupDecoder] = None
        self._names: Optional[LookupDecoder] = None
        self._datatypes: Optional[LookupDecoder] = None
        self._last_prefix_id = 0
        self._last_name_id = 0
        self._previous: List[Any] = [None, None, None, None]
        self._current_graph: Any = None
        self._failed = False
        self._rows = 0
        self._statements = 0
        logger.debug("Decoder reset")

    def stats(self) -> Dict[str, int]:
        """Get decoder statistics."""
        return {
            "rows": self._rows,
            "statements": self._statements,
            "prefixes": len(self._prefixes) if self._prefixes else 0,
            "names": len(self._names) if self._names else 0,
            "datatypes": len(self._datatypes) if self._datatypes else 0,
        }

    def process_row(self, row: jelly.RdfStreamRow):
        """
        Apply one stream row.

        Returns:
            A pyoxigraph Quad (or GeneralizedQuad) for triple/quad rows,
            None for every other row

        Raises:
            ProtocolViolationError: If the row breaks the stream contract
            ResourceLimitError: If a table entry exceeds its ceiling
        """
        if self._failed:
            logger.warning("Decoder used after a failure without reset()")
            raise ProtocolViolationError(
                "Decoder is in a failed state; call reset() before decoding again"
            )

        index = self._rows
        self._rows += 1
        try:
            return self._dispatch(row)
        except ProtocolViolationError as e:
            self._failed = True
            if e.row_index is None:
                raise ProtocolViolationError(str(e), row_index=index) from e
            raise
        except JellyError:
            self._failed = True
            raise

    # -------------------------------------------------------------------------
    # Row dispatch
    # -------------------------------------------------------------------------

    def _dispatch(self, row: jelly.RdfStreamRow):
        kind = row.WhichOneof("row")
        if kind is None:
            raise ProtocolViolationError("Empty stream row")
        if kind == "options":
            self._handle_options(row.options)
            return None
        if self.options is None:
            raise ProtocolViolationError(f"Stream options must precede {kind} rows")

        if kind == "name":
            self._names.set(row.name.id, row.name.value)
        elif kind == "prefix":
            self._prefixes.set(row.prefix.id, row.prefix.value)
        elif kind == "datatype":
            self._datatypes.set(row.datatype.id, row.datatype.value)
        elif kind == "namespace":
            self.namespaces[row.namespace.name] = self._resolve_iri(row.namespace.value).value
        elif kind == "graph_start":
            self._start_graph(row.graph_start)
        elif kind == "graph_end":
            self._end_graph()
        elif kind == "triple":
            return self._convert_triple(row.triple)
        elif kind == "quad":
            return self._convert_quad(row.quad)
        else:
            raise ProtocolViolationError(f"Unsupported row type: {kind}")
        return None

    def _handle_options(self, message: jelly.RdfStreamOptions) -> None:
        try:
            options = StreamOptions.from_proto(message)
            options.validate()
        except ConfigValidationError as e:
            raise ProtocolViolationError(f"Invalid stream options: {e}") from e

        if self.options is not None:
            if options == self.options:
                logger.warning("Ignoring repeated stream options row")
                return
            raise ProtocolViolationError("Stream options changed mid-stream")

        self.options = options
        self._prefixes = LookupDecoder("prefix", options.max_prefix_table_size)
        self._names = LookupDecoder("name", options.max_name_table_size)
        self._datatypes = LookupDecoder("datatype", options.max_datatype_table_size)
        logger.debug(f"Received options for stream {options.stream_name!r} ({options.physical_type.name})")

    def _start_graph(self, message: jelly.RdfGraphStart) -> None:
        if self.options.physical_type != PhysicalStreamType.GRAPHS:
            raise ProtocolViolationError("graph_start is only valid in GRAPHS streams")
        if self._current_graph is not None:
            raise ProtocolViolationError("graph_start before the previous graph ended")

        kind = slot_kind(message, "g")
        if kind is None:
            raise ProtocolViolationError("graph_start without a graph term")
        check_kind("g", kind, self.options)
        self._current_graph = self._convert_term(message, "g", kind, 0)
        logger.debug(f"Entered graph {self._current_graph}")

    def _end_graph(self) -> None:
        if self.options.physical_type != PhysicalStreamType.GRAPHS:
            raise ProtocolViolationError("graph_end is only valid in GRAPHS streams")
        if self._current_graph is None:
            raise ProtocolViolationError("graph_end without graph_start")
        self._current_graph = None

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _convert_triple(self, message: jelly.RdfTriple):
        physical = self.options.physical_type
        if physical == PhysicalStreamType.QUADS:
            raise ProtocolViolationError("Triple row in a QUADS stream")
        if physical == PhysicalStreamType.GRAPHS:
            if self._current_graph is None:
                raise ProtocolViolationError("Triple row outside of a graph")
            graph = self._current_graph
        else:
            graph = DefaultGraph()

        s, p, o = (self._slot(message, slot, index) for index, slot in enumerate(TRIPLE_SLOTS))
        self._previous = [s, p, o, graph]
        return self._emit(s, p, o, graph)

    def _convert_quad(self, message: jelly.RdfQuad):
        # TRIPLES streams carry quad rows for statements in named graphs
        if self.options.physical_type == PhysicalStreamType.GRAPHS:
            raise ProtocolViolationError(
                f"Quad row in a {self.options.physical_type.name} stream"
            )
        s, p, o, g = (self._slot(message, slot, index) for index, slot in enumerate(QUAD_SLOTS))
        self._previous = [s, p, o, g]
        return self._emit(s, p, o, g)

    def _emit(self, s, p, o, g):
        self._statements += 1
        return make_statement(s, p, o, g, self.options)

    def _slot(self, message: Any, slot: str, index: int) -> Any:
        kind = slot_kind(message, slot)
        if kind is None:
            previous = self._previous[index]
            if previous is None:
                raise ProtocolViolationError(
                    f"Repeated {slot} term with no previous statement to repeat"
                )
            return previous
        check_kind(slot, kind, self.options)
        return self._convert_term(message, slot, kind, 0)

    def _convert_term(self, message: Any, slot: str, kind: TermKind, depth: int) -> Any:
        value = getattr(message, f"{slot}_{kind.value}")

        if kind == TermKind.IRI:
            return self._resolve_iri(value)
        if kind == TermKind.BNODE:
            try:
                return BlankNode(value)
            except ValueError as e:
                raise ProtocolViolationError(f"Invalid blank node label {value!r}: {e}") from e
        if kind == TermKind.LITERAL:
            return self._resolve_literal(value)
        if kind == TermKind.DEFAULT_GRAPH:
            return DefaultGraph()
        return self._resolve_triple_term(value, depth + 1)

    def _resolve_triple_term(self, message: jelly.RdfTriple, depth: int):
        if depth > self.max_depth:
            raise ProtocolViolationError(
                f"Quoted triples nested deeper than {self.max_depth} levels"
            )
        terms = []
        for slot in TRIPLE_SLOTS:
            kind = slot_kind(message, slot)
            if kind is None:
                raise ProtocolViolationError(f"Quoted triple is missing its {slot} term")
            check_kind(slot, kind, self.options)
            terms.append(self._convert_term(message, slot, kind, depth))
        return make_triple_term(*terms)

    def _resolve_iri(self, iri: jelly.RdfIri) -> NamedNode:
        prefix = ""
        prefix_id = iri.prefix_id or self._last_prefix_id
        if prefix_id:
            prefix = self._prefixes.get(prefix_id)
        elif self.options.prefix_table_enabled:
            raise ProtocolViolationError("prefix_id 0 with no previous prefix to repeat")
        self._last_prefix_id = prefix_id

        name_id = iri.name_id or self._last_name_id + 1
        name = self._names.get(name_id)
        self._last_name_id = name_id

        try:
            return NamedNode(prefix + name)
        except ValueError as e:
            raise ProtocolViolationError(f"Invalid IRI {prefix + name!r}: {e}") from e

    def _resolve_literal(self, literal: jelly.RdfLiteral) -> Literal:
        try:
            if literal.HasField("langtag"):
                return Literal(literal.lex, language=literal.langtag)
            if literal.HasField("datatype"):
                datatype = self._datatypes.get(literal.datatype)
                return Literal(literal.lex, datatype=NamedNode(datatype))
        except ValueError as e:
            raise ProtocolViolationError(f"Invalid literal {literal.lex!r}: {e}") from e
        return Literal(literal.lex)
