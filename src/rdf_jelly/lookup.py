"""
Lookup tables for prefixes, names and datatypes.

Tables are stream-scoped registries that only grow. The encoder side maps
strings to IDs and allocates IDs sequentially from 1; the decoder side is a
dense slot-indexed list filled by table update rows. ID 0 is never assigned:
on the wire it is a sentinel (see encoder/decoder for the elision rules).
"""

from typing import Dict, List, Optional, Tuple

from rdf_jelly.errors import ProtocolViolationError, ResourceLimitError


def split_iri(iri: str) -> Tuple[str, str]:
    """
    Split an IRI into (prefix, local name) after the last '/' or '#'.

    Returns an empty prefix when the IRI contains neither character.
    """
    cut = max(iri.rfind("/"), iri.rfind("#"))
    if cut < 0:
        return "", iri
    return iri[:cut + 1], iri[cut + 1:]


class LookupEncoder:
    """Encoder-side table: string value -> ID."""

    def __init__(self, table: str, max_size: int):
        self.table = table
        self.max_size = max_size
        self._ids: Dict[str, int] = {}
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, value: str) -> bool:
        return value in self._ids

    def get_or_add(self, value: str) -> Tuple[int, bool]:
        """
        Return the ID for a value, allocating the next one if it is new.

        Returns:
            Tuple of (id, is_new)

        Raises:
            ResourceLimitError: If allocating would exceed the table ceiling
        """
        existing = self._ids.get(value)
        if existing is not None:
            return existing, False

        new_id = self._next_id
        if new_id > self.max_size:
            raise ResourceLimitError(self.table, self.max_size, new_id)
        self._ids[value] = new_id
        self._next_id += 1
        return new_id, True

    def reset(self) -> None:
        self._ids.clear()
        self._next_id = 1


class LookupDecoder:
    """Decoder-side table: ID -> string value."""

    def __init__(self, table: str, max_size: int):
        self.table = table
        self.max_size = max_size
        self._values: List[Optional[str]] = [None]  # slot 0 is never used
        self._count = 0
        self.last_id = 0

    def __len__(self) -> int:
        return self._count

    def set(self, entry_id: int, value: str) -> int:
        """
        Register a table entry from an update row.

        An entry ID of 0 means "previous entry ID + 1".

        Returns:
            The actual ID that was set
        """
        actual_id = entry_id or self.last_id + 1
        if actual_id > self.max_size:
            raise ResourceLimitError(self.table, self.max_size, actual_id)

        if actual_id >= len(self._values):
            self._values.extend([None] * (actual_id + 1 - len(self._values)))

        current = self._values[actual_id]
        if current is None:
            self._values[actual_id] = value
            self._count += 1
        elif current != value:
            raise ProtocolViolationError(
                f"{self.table} table id {actual_id} reassigned "
                f"from {current!r} to {value!r}"
            )
        self.last_id = actual_id
        return actual_id

    def get(self, entry_id: int) -> str:
        """Resolve an ID, failing if it was never announced."""
        if 0 < entry_id < len(self._values):
            value = self._values[entry_id]
            if value is not None:
                return value
        raise ProtocolViolationError(f"Unknown {self.table} table id: {entry_id}")

    def reset(self) -> None:
        self._values = [None]
        self._count = 0
        self.last_id = 0
