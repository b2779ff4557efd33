"""
Import Directory Table Reader
==============================

Walks the root table of the import directory: a run of 20-byte
``IMAGE_IMPORT_DESCRIPTOR`` records, one per imported library, closed by a
record whose lookup table RVA and address table RVA are both zero.

Record layout (all little-endian ``uint32``)::

    +0   OriginalFirstThunk   Import Lookup Table RVA
    +4   TimeDateStamp
    +8   ForwarderChain
    +12  Name                 RVA of the ASCII library name
    +16  FirstThunk           Import Address Table RVA

There is no record count; the table ends at the sentinel or when the view
runs out of bytes, whichever comes first.

References:
    - Microsoft. (2024). PE Format, "Import Directory Table".
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from shared.logger import IdataLogger, component_logger

from idata.core.models import DirectoryEntry
from idata.parsers.byteview import ByteView, read_ascii_string
from idata.parsers.translator import AddressTranslator

_default_logger = component_logger("parsers.directory_table")

ENTRY_SIZE: int = 20
_ENTRY_FMT: str = "<IIIII"


@dataclass(slots=True)
class DirectoryTableResult:
    """Directory entries in table order plus the highest RVA end read."""

    entries: list[DirectoryEntry] = field(default_factory=list)
    max_relative_offset: int = 0


class DirectoryTableReader:
    """Decode the import directory table from a :class:`ByteView`.

    Usage::

        reader = DirectoryTableReader(view, AddressTranslator(va, offset))
        result = reader.read()
    """

    def __init__(
        self,
        view: ByteView,
        translator: AddressTranslator,
        logger: IdataLogger | None = None,
    ) -> None:
        self._view = view
        self._translator = translator
        self._logger = logger or _default_logger

    def read(self) -> DirectoryTableResult:
        """Read records until the sentinel or the end of the view."""
        result = DirectoryTableResult()
        nr = 0
        with self._logger.operation("directory_table"):
            while True:
                entry = self._read_entry(nr, result)
                if entry is None:
                    break
                result.entries.append(entry)
                nr += 1
            self._logger.debug("%d directory entries read", len(result.entries))
        return result

    def _read_entry(self, nr: int, result: DirectoryTableResult) -> DirectoryEntry | None:
        start = self._translator.virtual_address + nr * ENTRY_SIZE
        end = start + ENTRY_SIZE
        result.max_relative_offset = max(result.max_relative_offset, end)

        raw = self._view.slice(start, end)
        if len(raw) < ENTRY_SIZE:
            self._logger.debug("directory table ends at rva 0x%x: %d bytes left", start, len(raw))
            return None

        ilt_rva, timestamp, forwarder_chain, name_rva, iat_rva = struct.unpack(_ENTRY_FMT, raw)
        if DirectoryEntry.is_sentinel(ilt_rva, iat_rva):
            self._logger.debug("null directory entry at rva 0x%x", start)
            return None

        entry = DirectoryEntry(
            index=nr,
            file_offset=self._translator.file_offset + nr * ENTRY_SIZE,
            lookup_table_rva=ilt_rva,
            timestamp=timestamp,
            forwarder_chain=forwarder_chain,
            name_rva=name_rva,
            address_table_rva=iat_rva,
            name=read_ascii_string(self._view, name_rva),
        )
        if not entry.name:
            self._logger.debug("entry %d: no name readable at rva 0x%x", nr, name_rva)
        if forwarder_chain != 0:
            entry.forwarder_name = read_ascii_string(self._view, forwarder_chain)
            self._logger.debug("entry %d: forwarder %r", nr, entry.forwarder_name)

        self._logger.debug(
            "entry %d: %r ilt=0x%x iat=0x%x", nr, entry.name, ilt_rva, iat_rva
        )
        return entry
