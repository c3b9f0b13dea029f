"""
Streaming driver and batch helpers.

Each transport unit (bytes buffer) carries exactly one encoded stream row.
Framing several rows per unit is left to the transport.

Example:
    rows = serialize_jelly(quads)
    for quad in parse_rows(rows):
        print(quad)
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterable, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Tuple

import polars as pl
from pyoxigraph import DefaultGraph

from rdf_jelly.decoder import JellyDecoder
from rdf_jelly.encoder import JellyEncoder
from rdf_jelly.options import StreamOptions
from rdf_jelly.rows import decode_row


def parse_rows(source: Iterable[bytes], decoder: Optional[JellyDecoder] = None) -> Iterator[Any]:
    """
    Lazily decode statements from an iterable of row buffers.

    Stops when the source is exhausted; closing the generator early is fine.
    A decoder passed in keeps its state between calls; restarting the stream
    requires decoder.reset().
    """
    decoder = decoder or JellyDecoder()
    for data in source:
        statement = decoder.process_row(decode_row(data))
        if statement is not None:
            yield statement


async def aparse_rows(
    source: AsyncIterable[bytes], decoder: Optional[JellyDecoder] = None
) -> AsyncIterator[Any]:
    """
    Async variant of parse_rows().

    The only suspension point is waiting for the next buffer, so cancelling
    the consumer never leaves a row half applied.
    """
    decoder = decoder or JellyDecoder()
    async for data in source:
        statement = decoder.process_row(decode_row(data))
        if statement is not None:
            yield statement


def serialize_jelly(statements: Iterable[Any], options: Optional[StreamOptions] = None) -> List[bytes]:
    """
    Encode a batch of statements as a complete stream.

    Args:
        statements: pyoxigraph Quads/Triples or tuples of terms
        options: Stream options (defaults to a QUADS stream)

    Returns:
        One bytes buffer per row, in wire order
    """
    encoder = JellyEncoder(options)
    rows: List[bytes] = []
    for statement in statements:
        rows.extend(encoder.write(statement))
    rows.extend(encoder.finish())
    return rows


@dataclass
class ParsedJelly:
    """Result of decoding a complete Jelly stream."""
    quads: List[Any] = field(default_factory=list)
    options: Optional[StreamOptions] = None
    namespaces: Dict[str, str] = field(default_factory=dict)

    def to_columnar(self) -> Tuple[List[str], List[str], List[str], List[Optional[str]]]:
        """Extract N-Triples encoded columns; the default graph becomes None."""
        return (
            [str(q.subject) for q in self.quads],
            [str(q.predicate) for q in self.quads],
            [str(q.object) for q in self.quads],
            [None if isinstance(q.graph_name, DefaultGraph) else str(q.graph_name) for q in self.quads],
        )

    def to_dataframe(self) -> pl.DataFrame:
        subjects, predicates, objects, graphs = self.to_columnar()
        return pl.DataFrame(
            {
                "subject": subjects,
                "predicate": predicates,
                "object": objects,
                "graph": graphs,
            },
            schema={
                "subject": pl.Utf8,
                "predicate": pl.Utf8,
                "object": pl.Utf8,
                "graph": pl.Utf8,
            },
        )


def parse_jelly(rows: Iterable[bytes]) -> ParsedJelly:
    """
    Decode a complete stream.

    Args:
        rows: One bytes buffer per row

    Returns:
        ParsedJelly with statements, options and namespace declarations
    """
    decoder = JellyDecoder()
    quads = list(parse_rows(rows, decoder))
    return ParsedJelly(
        quads=quads,
        options=decoder.options,
        namespaces=dict(decoder.namespaces),
    )
