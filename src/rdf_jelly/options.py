"""
Stream options for Jelly streams.

The options row is the one-time header of a stream. It declares the
statement shape (physical type), the application-level classification
(logical type), capability flags and the lookup table ceilings the encoder
promises to respect.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, Dict, Union

from pyjelly import jelly

from rdf_jelly.errors import ConfigValidationError

logger = logging.getLogger(__name__)

# Protocol versions: 1 = Jelly 1.0.x, 2 = Jelly 1.1.x
PROTOCOL_VERSION_1_0 = 1
PROTOCOL_VERSION_1_1 = 2
MAX_SUPPORTED_VERSION = PROTOCOL_VERSION_1_1

# The name table must always be able to hold a few entries
MIN_NAME_TABLE_SIZE = 8


class PhysicalStreamType(IntEnum):
    """Shape of the statement rows on the wire."""
    UNSPECIFIED = 0
    TRIPLES = 1     # triple rows, default graph only
    QUADS = 2       # quad rows
    GRAPHS = 3      # triple rows grouped by graph_start / graph_end


class LogicalStreamType(IntEnum):
    """Application-level stream classification."""
    UNSPECIFIED = 0
    FLAT_TRIPLES = 1
    FLAT_QUADS = 2
    GRAPHS = 11
    DATASETS = 12
    SUBJECT_GRAPHS = 13
    NAMED_GRAPHS = 112
    TIMESTAMPED_NAMED_GRAPHS = 114


@dataclass
class StreamOptions:
    """Configuration of a single Jelly stream."""
    stream_name: str = ""
    physical_type: PhysicalStreamType = PhysicalStreamType.QUADS
    generalized_statements: bool = False
    rdf_star: bool = False
    max_name_table_size: int = 128
    max_prefix_table_size: int = 0  # 0 disables prefix splitting
    max_datatype_table_size: int = 64
    logical_type: LogicalStreamType = LogicalStreamType.UNSPECIFIED
    version: int = PROTOCOL_VERSION_1_0

    @property
    def prefix_table_enabled(self) -> bool:
        return self.max_prefix_table_size > 0

    def validate(self) -> None:
        """
        Check the options for internal consistency.

        Raises:
            ConfigValidationError: If any field is out of range or the
                logical type contradicts the physical type.
        """
        if self.physical_type == PhysicalStreamType.UNSPECIFIED:
            raise ConfigValidationError("physical_type must be specified")
        if self.max_name_table_size < MIN_NAME_TABLE_SIZE:
            raise ConfigValidationError(
                f"max_name_table_size must be at least {MIN_NAME_TABLE_SIZE}, "
                f"got {self.max_name_table_size}"
            )
        if self.max_prefix_table_size < 0:
            raise ConfigValidationError("max_prefix_table_size must not be negative")
        if self.max_datatype_table_size < 0:
            raise ConfigValidationError("max_datatype_table_size must not be negative")
        if not 1 <= self.version <= MAX_SUPPORTED_VERSION:
            raise ConfigValidationError(
                f"Unsupported protocol version: {self.version} "
                f"(supported: 1..{MAX_SUPPORTED_VERSION})"
            )

        if (
            self.logical_type == LogicalStreamType.FLAT_TRIPLES
            and self.physical_type == PhysicalStreamType.QUADS
        ):
            raise ConfigValidationError("FLAT_TRIPLES cannot be carried by a QUADS stream")
        if (
            self.logical_type in (LogicalStreamType.FLAT_QUADS, LogicalStreamType.DATASETS)
            and self.physical_type == PhysicalStreamType.TRIPLES
        ):
            raise ConfigValidationError(
                f"{self.logical_type.name} cannot be carried by a TRIPLES stream"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stream_name": self.stream_name,
            "physical_type": self.physical_type.name.lower(),
            "generalized_statements": self.generalized_statements,
            "rdf_star": self.rdf_star,
            "max_name_table_size": self.max_name_table_size,
            "max_prefix_table_size": self.max_prefix_table_size,
            "max_datatype_table_size": self.max_datatype_table_size,
            "logical_type": self.logical_type.name.lower(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StreamOptions":
        try:
            physical = PhysicalStreamType[str(data.get("physical_type", "quads")).upper()]
            logical = LogicalStreamType[str(data.get("logical_type", "unspecified")).upper()]
        except KeyError as e:
            raise ConfigValidationError(f"Unknown stream type: {e}") from e

        return cls(
            stream_name=data.get("stream_name", ""),
            physical_type=physical,
            generalized_statements=data.get("generalized_statements", False),
            rdf_star=data.get("rdf_star", False),
            max_name_table_size=data.get("max_name_table_size", 128),
            max_prefix_table_size=data.get("max_prefix_table_size", 0),
            max_datatype_table_size=data.get("max_datatype_table_size", 64),
            logical_type=logical,
            version=data.get("version", PROTOCOL_VERSION_1_0),
        )

    def save(self, path: Union[str, Path]) -> None:
        """Save options to a JSON file."""
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "StreamOptions":
        """Load options from a JSON file, falling back to defaults if it is missing."""
        path = Path(path)
        if path.exists():
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return cls.from_dict(data)
        logger.debug(f"No stream options at {path}, using defaults")
        return cls()

    def to_proto(self) -> jelly.RdfStreamOptions:
        return jelly.RdfStreamOptions(
            stream_name=self.stream_name,
            physical_type=int(self.physical_type),
            generalized_statements=self.generalized_statements,
            rdf_star=self.rdf_star,
            max_name_table_size=self.max_name_table_size,
            max_prefix_table_size=self.max_prefix_table_size,
            max_datatype_table_size=self.max_datatype_table_size,
            logical_type=int(self.logical_type),
            version=self.version,
        )

    @classmethod
    def from_proto(cls, message: jelly.RdfStreamOptions) -> "StreamOptions":
        try:
            physical = PhysicalStreamType(message.physical_type)
            logical = LogicalStreamType(message.logical_type)
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

        return cls(
            stream_name=message.stream_name,
            physical_type=physical,
            generalized_statements=message.generalized_statements,
            rdf_star=message.rdf_star,
            max_name_table_size=message.max_name_table_size,
            max_prefix_table_size=message.max_prefix_table_size,
            max_datatype_table_size=message.max_datatype_table_size,
            logical_type=logical,
            version=message.version,
        )
