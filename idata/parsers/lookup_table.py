"""
Import Lookup Table Reader
===========================

Decodes, for every directory entry, the run of thunks listing the symbols
imported from that library.  Each thunk is 4 bytes in PE32 images and
8 bytes in PE32+ images::

    bit 31/63 set    import by ordinal, ordinal = low 16 bits
    bit 31/63 clear  import by name, low 31 bits = RVA of
                     { uint16 Hint; char Name[]; }
    all zero         end of table

The Import Lookup Table (``OriginalFirstThunk``) is preferred.  When it is
zero or lies past the end of the file, the Import Address Table
(``FirstThunk``) is walked instead; before binding both tables hold the
same thunks.

Failure handling:
    - A thunk cut short by the end of the view ends that table normally.
    - A thunk with no readable byte at all aborts the decode: symbols read
      so far are kept, the remaining directory entries are left empty and
      a :class:`DecodeWarning` is returned.

References:
    - Microsoft. (2024). PE Format, "Import Lookup Table" and
      "Hint/Name Table".
"""

from __future__ import annotations

import concurrent.futures
import struct
from dataclasses import dataclass, field
from typing import Iterator, Optional

from shared.logger import IdataLogger, component_logger

from idata.core.errors import MalformedEntryError, UnsupportedFormatError
from idata.core.models import (
    DecodeWarning,
    DirectoryEntry,
    LookupSource,
    NameEntry,
    NullEntry,
    OrdinalEntry,
    PEFormat,
)
from idata.parsers.byteview import ByteView, read_ascii_string
from idata.parsers.translator import AddressTranslator

_default_logger = component_logger("parsers.lookup_table")

_THUNK_FMT: dict[int, str] = {4: "<I", 8: "<Q"}
_HINT_NAME_RVA_MASK: int = 0x7FFFFFFF


def entry_size_for(pe_format: PEFormat | int) -> int:
    """Lookup entry width in bytes for an image format.

    Raises:
        UnsupportedFormatError: For ROM images and unknown magic values.
    """
    fmt = PEFormat.from_magic(int(pe_format))
    if fmt == PEFormat.PE32:
        return 4
    if fmt == PEFormat.PE32_PLUS:
        return 8
    raise UnsupportedFormatError(int(fmt), "ROM images are not supported")


@dataclass(slots=True)
class _TableOutcome:
    """Result of walking one directory entry's table."""

    entries: list[OrdinalEntry | NameEntry]
    source: LookupSource
    max_relative_offset: int
    error: Optional[DecodeWarning] = None


@dataclass(slots=True)
class LookupTableResult:
    """Summary of a :meth:`LookupTableReader.read` pass."""

    max_relative_offset: int = 0
    warnings: list[DecodeWarning] = field(default_factory=list)
    aborted: bool = False


class LookupTableReader:
    """Attach decoded lookup entries to directory entries.

    Args:
        view: RVA-keyed image view.
        translator: Translator anchored at the import directory.
        pe_format: Optional header magic of the image.
        file_size: Size of the file, used for the ILT bounds check.
        max_workers: Tables decoded concurrently; ``1`` decodes in order.
        logger: Logger to write through; records go to ``idata.parsers.lookup_table``
            when omitted.

    Raises:
        UnsupportedFormatError: If *pe_format* has no lookup entry width.
    """

    def __init__(
        self,
        view: ByteView,
        translator: AddressTranslator,
        pe_format: PEFormat | int,
        file_size: int,
        *,
        max_workers: int = 1,
        logger: IdataLogger | None = None,
    ) -> None:
        self._view = view
        self._translator = translator
        self._file_size = file_size
        self._entry_size = entry_size_for(pe_format)
        self._fmt = _THUNK_FMT[self._entry_size]
        self._ordinal_flag = 1 << (self._entry_size * 8 - 1)
        self._max_workers = max(1, max_workers)
        self._logger = logger or _default_logger

    @property
    def entry_size(self) -> int:
        return self._entry_size

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def read(self, directory: list[DirectoryEntry]) -> LookupTableResult:
        """Decode and attach the lookup table of every directory entry.

        Entries left unprocessed after an abort keep an empty lookup table.
        """
        result = LookupTableResult()
        outcomes = self._outcomes(directory)
        try:
            with self._logger.operation("lookup_table"):
                for dir_entry, outcome in zip(directory, outcomes):
                    dir_entry.attach_lookup_entries(outcome.entries, outcome.source)
                    result.max_relative_offset = max(
                        result.max_relative_offset, outcome.max_relative_offset
                    )
                    if outcome.error is not None:
                        self._logger.warning(
                            "Invalid lookup table entry found, parsing aborted: %s",
                            outcome.error.message,
                            directory_index=dir_entry.index,
                        )
                        result.warnings.append(outcome.error)
                        result.aborted = True
                        break
        finally:
            outcomes.close()
        return result

    def decode_entry(
        self, rva: int, directory_index: int = 0
    ) -> OrdinalEntry | NameEntry | NullEntry | None:
        """Decode the thunk at *rva*.

        Returns:
            The classified entry, or ``None`` when the view ends part way
            through it.

        Raises:
            MalformedEntryError: If no byte of the thunk is inside the view.
        """
        raw = self._view.slice(rva, rva + self._entry_size)
        if not raw:
            raise MalformedEntryError(rva)
        if len(raw) < self._entry_size:
            return None
        value = struct.unpack(self._fmt, raw)[0]
        return self._classify(value, rva, directory_index)

    def select_table(self, dir_entry: DirectoryEntry) -> tuple[int, LookupSource]:
        """Pick the ILT, or the IAT when the ILT is zero or past the end of the file.

        An ILT whose offset from the directory equals the file size is still
        used.
        """
        rva = dir_entry.lookup_table_rva
        if rva == 0 or self._translator.relative_offset(rva) > self._file_size:
            self._logger.debug("entry %d: using IAT rva 0x%x", dir_entry.index,
                               dir_entry.address_table_rva)
            return dir_entry.address_table_rva, LookupSource.IAT
        self._logger.debug("entry %d: using ILT rva 0x%x", dir_entry.index, rva)
        return rva, LookupSource.ILT

    # ------------------------------------------------------------------ #
    #  Internals
    # ------------------------------------------------------------------ #

    def _outcomes(self, directory: list[DirectoryEntry]) -> Iterator[_TableOutcome]:
        # Sequential mode is lazy so nothing past an abort is decoded.
        if self._max_workers == 1 or len(directory) < 2:
            yield from map(self._read_table, directory)
            return
        with concurrent.futures.ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            yield from pool.map(self._read_table, directory)

    def _read_table(self, dir_entry: DirectoryEntry) -> _TableOutcome:
        rva, source = self.select_table(dir_entry)
        outcome = _TableOutcome(entries=[], source=source, max_relative_offset=0)

        while True:
            outcome.max_relative_offset = max(
                outcome.max_relative_offset, rva + self._entry_size
            )
            try:
                entry = self.decode_entry(rva, dir_entry.index)
            except MalformedEntryError as exc:
                outcome.error = DecodeWarning(
                    message=f"{dir_entry.name or '<unnamed>'}: {exc}",
                    directory_index=dir_entry.index,
                    rva=exc.rva,
                )
                break
            if entry is None:
                self._logger.debug("entry %d: lookup table truncated at rva 0x%x",
                                   dir_entry.index, rva)
                break
            if isinstance(entry, NullEntry):
                break
            outcome.entries.append(entry)
            rva += self._entry_size

        self._logger.debug("entry %d: %d lookup entries from %s",
                           dir_entry.index, len(outcome.entries), source.value)
        return outcome

    def _classify(
        self, value: int, rva: int, directory_index: int
    ) -> OrdinalEntry | NameEntry | NullEntry:
        common = dict(
            entry_size=self._entry_size,
            directory_index=directory_index,
            file_offset=self._translator.file_offset_of(rva),
            rva=rva,
            raw_value=value,
        )
        if value == 0:
            return NullEntry(**common)
        if value & self._ordinal_flag:
            return OrdinalEntry(ordinal=value & 0xFFFF, **common)

        hint_name_rva = value & _HINT_NAME_RVA_MASK
        hint_raw = self._view.slice(hint_name_rva, hint_name_rva + 2)
        if len(hint_raw) < 2:
            self._logger.debug("hint/name rva 0x%x outside the image", hint_name_rva)
            return NameEntry(hint_name_rva=hint_name_rva, **common)
        return NameEntry(
            hint_name_rva=hint_name_rva,
            hint=struct.unpack("<H", hint_raw)[0],
            name=read_ascii_string(self._view, hint_name_rva + 2),
            **common,
        )

