"""
rdf-jelly: streaming Jelly encoder/decoder for RDF statements.

Compresses RDF triples and quads into Jelly stream rows using growing
lookup tables and term-repetition elision, and rebuilds them on the other side.
"""

__version__ = "0.1.0"

from rdf_jelly.decoder import JellyDecoder
from rdf_jelly.encoder import JellyEncoder
from rdf_jelly.errors import (
    ConfigValidationError,
    JellyError,
    MalformedInputError,
    ProtocolViolationError,
    ResourceLimitError,
)
from rdf_jelly.options import LogicalStreamType, PhysicalStreamType, StreamOptions
from rdf_jelly.rows import GeneralizedQuad, decode_row, encode_row
from rdf_jelly.stream import ParsedJelly, aparse_rows, parse_jelly, parse_rows, serialize_jelly

__all__ = [
    "JellyEncoder",
    "JellyDecoder",
    # Options
    "StreamOptions",
    "PhysicalStreamType",
    "LogicalStreamType",
    # Rows
    "GeneralizedQuad",
    "encode_row",
    "decode_row",
    # Streaming
    "ParsedJelly",
    "parse_rows",
    "aparse_rows",
    "serialize_jelly",
    "parse_jelly",
    # Errors
    "JellyError",
    "ProtocolViolationError",
    "MalformedInputError",
    "ResourceLimitError",
    "ConfigValidationError",
]
