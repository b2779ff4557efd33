"""
Idata Data Models
==================

Pydantic models describing a decoded PE import directory.

The directory table yields one :class:`DirectoryEntry` per imported
library.  Each entry owns the :data:`LookupEntry` values decoded from its
Import Lookup Table (or Import Address Table), which is a tagged union of
:class:`OrdinalEntry` and :class:`NameEntry`.  :class:`NullEntry` is the
table terminator and never ends up inside a directory entry.

Lookup entries do not hold a reference to their directory entry; they carry
the directory entry's ``index`` and :meth:`ImportSection.directory_for`
resolves it.

References:
    - Microsoft. (2024). PE Format, "The .idata Section". Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
"""

from __future__ import annotations

import enum
from typing import Annotated, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field, PrivateAttr

from idata.core.errors import UnsupportedFormatError


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class PEFormat(int, enum.Enum):
    """Optional header magic values."""
    PE32 = 0x10B
    PE32_PLUS = 0x20B
    ROM = 0x107

    @classmethod
    def from_magic(cls, magic: int) -> PEFormat:
        """Map a raw magic value to a :class:`PEFormat`.

        Raises:
            UnsupportedFormatError: If *magic* is not a known value.
        """
        try:
            return cls(magic)
        except ValueError:
            raise UnsupportedFormatError(magic, "unknown optional header magic") from None

    @property
    def label(self) -> str:
        return {
            PEFormat.PE32: "PE32",
            PEFormat.PE32_PLUS: "PE32+",
            PEFormat.ROM: "ROM",
        }[self]


class LookupSource(str, enum.Enum):
    """Which of the two tables a directory entry's symbols were read from."""
    ILT = "ilt"
    IAT = "iat"


class LocationPurpose(str, enum.Enum):
    """What a consumed byte range holds."""
    DIRECTORY_TABLE = "import_directory_table"
    LOOKUP_TABLE = "import_lookup_table"
    ADDRESS_TABLE = "import_address_table"


class DecodeStatus(str, enum.Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"


# ---------------------------------------------------------------------------
# Locations
# ---------------------------------------------------------------------------

class Location(BaseModel):
    """A file byte range ``[offset, offset + length)`` read by the decoder."""
    offset: int = 0
    length: int = 0
    purpose: LocationPurpose = LocationPurpose.DIRECTORY_TABLE

    @property
    def end(self) -> int:
        return self.offset + self.length


def merge_contiguous(locations: Iterable[Location]) -> list[Location]:
    """Merge neighbouring locations that share a purpose and touch.

    Only adjacent list items are merged; the input order is kept.
    """
    merged: list[Location] = []
    for loc in locations:
        if merged and merged[-1].purpose == loc.purpose and merged[-1].end == loc.offset:
            prev = merged[-1]
            merged[-1] = Location(
                offset=prev.offset,
                length=prev.length + loc.length,
                purpose=prev.purpose,
            )
        else:
            merged.append(loc)
    return merged


# ---------------------------------------------------------------------------
# Lookup table entries
# ---------------------------------------------------------------------------

class _LookupEntryBase(BaseModel):
    """Fields shared by every lookup table entry.

    Attributes:
        entry_size: Width of the raw field, 4 (PE32) or 8 (PE32+).
        directory_index: ``index`` of the owning :class:`DirectoryEntry`.
        file_offset: File offset of the raw field, ``None`` if not mapped.
        rva: RVA of the raw field.
        raw_value: The raw field as read.
    """
    entry_size: int = 4
    directory_index: int = 0
    file_offset: Optional[int] = None
    rva: int = 0
    raw_value: int = 0


class OrdinalEntry(_LookupEntryBase):
    """Import by ordinal: the top bit of the raw field is set."""
    kind: Literal["ordinal"] = "ordinal"
    ordinal: int = 0

    def describe(self) -> str:
        return f"ordinal: {self.ordinal}"


class NameEntry(_LookupEntryBase):
    """Import by name through a hint/name table entry."""
    kind: Literal["name"] = "name"
    hint_name_rva: int = 0
    hint: int = 0
    name: str = ""

    def describe(self) -> str:
        return f"{self.name}, hint: {self.hint}, hint/name rva: 0x{self.hint_name_rva:x}"


class NullEntry(_LookupEntryBase):
    """All-zero terminator of a lookup table."""
    kind: Literal["null"] = "null"


LookupEntry = Annotated[Union[OrdinalEntry, NameEntry], Field(discriminator="kind")]


def lookup_entry_function(entry: OrdinalEntry | NameEntry) -> str:
    """Display name of an imported symbol."""
    if isinstance(entry, NameEntry):
        return entry.name
    if isinstance(entry, OrdinalEntry):
        return f"Ordinal_{entry.ordinal}"
    raise TypeError(f"unexpected lookup entry: {entry!r}")


# ---------------------------------------------------------------------------
# Flat import view
# ---------------------------------------------------------------------------

class ImportInfo(BaseModel):
    """One imported symbol, flattened.

    Attributes:
        library: Name of the DLL.
        function: Symbol name, or ``Ordinal_<n>`` for ordinal imports.
        ordinal: Ordinal for ordinal imports, else ``None``.
        hint: Export name table hint for name imports, else ``None``.
        address: RVA of the lookup table entry that was decoded.
        iat_address: RVA of the matching Import Address Table slot.
    """
    library: str = ""
    function: str = ""
    ordinal: Optional[int] = None
    hint: Optional[int] = None
    address: int = 0
    iat_address: int = 0


# ---------------------------------------------------------------------------
# Directory table entries
# ---------------------------------------------------------------------------

class DirectoryEntry(BaseModel):
    """One 20-byte record of the import directory table (one library)."""
    index: int = 0
    file_offset: Optional[int] = None
    lookup_table_rva: int = 0
    timestamp: int = 0
    forwarder_chain: int = 0
    name_rva: int = 0
    address_table_rva: int = 0
    name: str = ""
    forwarder_name: Optional[str] = None
    lookup_source: Optional[LookupSource] = None
    lookup_entries: list[LookupEntry] = Field(default_factory=list)

    _attached: bool = PrivateAttr(default=False)

    @staticmethod
    def is_sentinel(lookup_table_rva: int, address_table_rva: int) -> bool:
        """The terminating record has neither an ILT nor an IAT RVA."""
        return lookup_table_rva == 0 and address_table_rva == 0

    def attach_lookup_entries(
        self,
        entries: list[OrdinalEntry | NameEntry],
        source: LookupSource,
    ) -> None:
        """Attach the decoded lookup table; allowed exactly once.

        Raises:
            RuntimeError: If entries were already attached.
        """
        if self._attached:
            raise RuntimeError(
                f"lookup entries already attached to directory entry {self.index}"
            )
        self._attached = True
        self.lookup_source = source
        self.lookup_entries = list(entries)

    def locations(self) -> list[Location]:
        """Byte ranges of this record and of its decoded lookup entries."""
        result: list[Location] = []
        if self.file_offset is not None:
            result.append(Location(
                offset=self.file_offset,
                length=20,
                purpose=LocationPurpose.DIRECTORY_TABLE,
            ))
        purpose = (
            LocationPurpose.ADDRESS_TABLE
            if self.lookup_source == LookupSource.IAT
            else LocationPurpose.LOOKUP_TABLE
        )
        for entry in self.lookup_entries:
            if entry.file_offset is not None:
                result.append(Location(
                    offset=entry.file_offset,
                    length=entry.entry_size,
                    purpose=purpose,
                ))
        return result

    def to_imports(self) -> list[ImportInfo]:
        result: list[ImportInfo] = []
        for position, entry in enumerate(self.lookup_entries):
            iat_address = self.address_table_rva + position * entry.entry_size
            if isinstance(entry, OrdinalEntry):
                result.append(ImportInfo(
                    library=self.name,
                    function=lookup_entry_function(entry),
                    ordinal=entry.ordinal,
                    address=entry.rva,
                    iat_address=iat_address,
                ))
            elif isinstance(entry, NameEntry):
                result.append(ImportInfo(
                    library=self.name,
                    function=lookup_entry_function(entry),
                    hint=entry.hint,
                    address=entry.rva,
                    iat_address=iat_address,
                ))
            else:
                raise TypeError(f"unexpected lookup entry: {entry!r}")
        return result

    def get_info(self) -> str:
        """Multi-line description of the record and its symbols."""
        lines = [
            self.name or "<unnamed>",
            "-" * max(len(self.name), 9),
            f"lookup table rva: 0x{self.lookup_table_rva:x}",
            f"time date stamp: 0x{self.timestamp:x}",
            f"forwarder chain: 0x{self.forwarder_chain:x}",
            f"name rva: 0x{self.name_rva:x}",
            f"address table rva: 0x{self.address_table_rva:x}",
        ]
        if self.forwarder_name is not None:
            lines.append(f"forwarder: {self.forwarder_name}")
        source = self.lookup_source.value.upper() if self.lookup_source else "none"
        lines.append("")
        lines.append(f"lookup table entries ({source}):")
        for entry in self.lookup_entries:
            if isinstance(entry, (OrdinalEntry, NameEntry)):
                lines.append(f"  {entry.describe()}")
            else:
                raise TypeError(f"unexpected lookup entry: {entry!r}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Decode result
# ---------------------------------------------------------------------------

class DecodeWarning(BaseModel):
    """A recoverable problem met while decoding."""
    message: str = ""
    directory_index: Optional[int] = None
    rva: Optional[int] = None


class ImportSection(BaseModel):
    """Decoded import directory of one image.

    ``status`` is ``partial`` whenever ``warnings`` is non-empty: some
    directory entries were left undecoded but everything in ``directory``
    is valid.

    Attributes:
        directory: Directory entries with at least one lookup entry.
        virtual_address: RVA of the import directory table.
        file_offset: File offset of the import directory table.
        pe_format: Image format that fixed the lookup entry width.
        max_relative_offset: Highest RVA end read by either reader.
        status: Whether decoding ran to completion.
        warnings: Recoverable problems, in the order they occurred.
    """
    directory: list[DirectoryEntry] = Field(default_factory=list)
    virtual_address: int = 0
    file_offset: int = 0
    pe_format: PEFormat = PEFormat.PE32
    max_relative_offset: int = 0
    status: DecodeStatus = DecodeStatus.COMPLETE
    warnings: list[DecodeWarning] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.directory or all(not e.lookup_entries for e in self.directory)

    def get_directory(self) -> list[DirectoryEntry]:
        return list(self.directory)

    def get_imports(self) -> list[ImportInfo]:
        """All imported symbols, library by library, in table order."""
        return [imp for entry in self.directory for imp in entry.to_imports()]

    def get_locations(self) -> list[Location]:
        """Consumed file ranges, contiguous ranges of one purpose merged."""
        return merge_contiguous(
            loc for entry in self.directory for loc in entry.locations()
        )

    def directory_for(self, entry: OrdinalEntry | NameEntry) -> Optional[DirectoryEntry]:
        """Resolve a lookup entry's back-reference to its directory entry."""
        for dir_entry in self.directory:
            if dir_entry.index == entry.directory_index:
                return dir_entry
        return None

    def get_info(self) -> str:
        """Human-readable summary of all entries."""
        header = "\n".join([
            "--------------",
            "Import section",
            "--------------",
            "",
        ])
        body = "".join(entry.get_info() + "\n\n" for entry in self.directory)
        if self.warnings:
            body += "warnings:\n" + "".join(f"  {w.message}\n" for w in self.warnings)
        return header + "\n" + body


# ---------------------------------------------------------------------------
# Whole-file analysis
# ---------------------------------------------------------------------------

class ImageInfo(BaseModel):
    """Header facts about the analysed image.

    Attributes:
        path: Filesystem path, or ``<memory>``.
        size: File size in bytes.
        pe_format: Optional header magic.
        machine: COFF machine type.
        image_base: Preferred load address.
        size_of_image: Mapped size of the image.
        import_directory_rva: RVA from data directory 1.
        import_directory_size: Size from data directory 1.
        import_directory_offset: File offset of the import directory, if mapped.
    """
    path: str = "<memory>"
    size: int = 0
    pe_format: PEFormat = PEFormat.PE32
    machine: int = 0
    image_base: int = 0
    size_of_image: int = 0
    import_directory_rva: int = 0
    import_directory_size: int = 0
    import_directory_offset: Optional[int] = None


class ImportAnalysisResult(BaseModel):
    """Everything :class:`~idata.core.engine.ImportEngine` learns about a file."""
    info: ImageInfo = Field(default_factory=ImageInfo)
    imports: ImportSection = Field(default_factory=ImportSection)
