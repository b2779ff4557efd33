"""
PE/COFF Header Reader
======================

Reads just enough of a Portable Executable to locate its import directory:

    - DOS header (``e_lfanew``)
    - ``PE\\0\\0`` signature
    - COFF file header (section count, optional header size)
    - Optional header magic, image base, image size, header size and the
      data directory array
    - Section table

and builds the RVA-keyed :class:`~idata.parsers.byteview.MappedImage` the
import readers work on.  All parsing is done with :mod:`struct`.

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
      https://learn.microsoft.com/en-us/windows/win32/debug/pe-format
    - Pietrek, M. (1994). Peering Inside the PE: A Tour of the Win32
      Portable Executable File Format. Microsoft Systems Journal.
"""

from __future__ import annotations

import struct
from typing import Optional

from shared.logger import IdataLogger, component_logger

from idata.parsers.byteview import MappedImage, Segment

_default_logger = component_logger("parsers.pe_headers")


MZ_MAGIC: bytes = b"MZ"
PE_MAGIC: bytes = b"PE\x00\x00"

IMAGE_DIRECTORY_ENTRY_IMPORT: int = 1

_COFF_FMT: str = "<HHIIIHH"
_SECTION_HEADER_SIZE: int = 40
_SECTION_FMT: str = "<IIIIIIHHI"
_MAX_DATA_DIRECTORIES: int = 16

# Field offsets inside the optional header: (image base, fmt, rva count, directories)
_OPT_LAYOUT: dict[int, tuple[int, str, int, int]] = {
    0x10B: (28, "<I", 92, 96),      # PE32
    0x20B: (24, "<Q", 108, 112),    # PE32+
}
_OPT_SIZE_OF_IMAGE: int = 56
_OPT_SIZE_OF_HEADERS: int = 60


class SectionHeader:
    """Parsed ``IMAGE_SECTION_HEADER``."""
    __slots__ = (
        "name", "virtual_size", "virtual_address",
        "size_of_raw_data", "pointer_to_raw_data", "characteristics",
    )

    def __init__(self) -> None:
        self.name: str = ""
        self.virtual_size: int = 0
        self.virtual_address: int = 0
        self.size_of_raw_data: int = 0
        self.pointer_to_raw_data: int = 0
        self.characteristics: int = 0

    @property
    def mapped_size(self) -> int:
        return max(self.virtual_size, self.size_of_raw_data)

    def contains(self, rva: int) -> bool:
        return self.virtual_address <= rva < self.virtual_address + self.mapped_size

    def __repr__(self) -> str:
        return (
            f"SectionHeader({self.name!r}, va=0x{self.virtual_address:x}, "
            f"vsize=0x{self.virtual_size:x}, raw=0x{self.pointer_to_raw_data:x}"
            f"+0x{self.size_of_raw_data:x})"
        )


class PEHeaderParser:
    """Manual struct-based reader for PE headers and the section table.

    Usage::

        headers = PEHeaderParser(raw_bytes)
        if headers.parse():
            rva, size = headers.import_directory()
            view = headers.mapped_image()
    """

    def __init__(self, data: bytes, logger: IdataLogger | None = None) -> None:
        self._data: bytes = data
        self._logger: IdataLogger = logger or _default_logger
        self._e_lfanew: int = 0
        self._number_of_sections: int = 0
        self._size_of_optional_header: int = 0
        self._machine: int = 0
        self._magic: int = 0
        self._image_base: int = 0
        self._size_of_image: int = 0
        self._size_of_headers: int = 0
        self._data_directories: list[tuple[int, int]] = []
        self._sections: list[SectionHeader] = []

    # ------------------------------------------------------------------ #
    #  Public interface
    # ------------------------------------------------------------------ #

    def parse(self) -> bool:
        """Parse the headers.

        Returns:
            ``True`` on success, ``False`` if the data is not a PE image.
        """
        if len(self._data) < 64 or self._data[:2] != MZ_MAGIC:
            return False

        try:
            self._e_lfanew = struct.unpack_from("<I", self._data, 60)[0]
            pe_offset = self._e_lfanew
            if self._data[pe_offset:pe_offset + 4] != PE_MAGIC:
                return False
            self._parse_coff_header()
            self._parse_optional_header()
            self._parse_section_table()
        except struct.error as exc:
            self._logger.debug("header parsing failed: %s", exc)
            return False

        self._logger.debug(
            "magic=0x%x sections=%d directories=%d",
            self._magic, len(self._sections), len(self._data_directories),
        )
        return True

    @property
    def magic(self) -> int:
        """Raw optional header magic (``0x10b``, ``0x20b``, ``0x107``...)."""
        return self._magic

    @property
    def machine(self) -> int:
        return self._machine

    @property
    def image_base(self) -> int:
        return self._image_base

    @property
    def size_of_image(self) -> int:
        return self._size_of_image

    @property
    def file_size(self) -> int:
        return len(self._data)

    def get_sections(self) -> list[SectionHeader]:
        return list(self._sections)

    def data_directory(self, index: int) -> tuple[int, int]:
        """``(rva, size)`` of data directory *index*, ``(0, 0)`` if absent."""
        if index < len(self._data_directories):
            return self._data_directories[index]
        return (0, 0)

    def import_directory(self) -> tuple[int, int]:
        return self.data_directory(IMAGE_DIRECTORY_ENTRY_IMPORT)

    def rva_to_offset(self, rva: int) -> Optional[int]:
        """Map an RVA to a file offset through the section table.

        Returns:
            File offset, or ``None`` if no section (or the headers) holds it.
        """
        for sec in self._sections:
            if sec.contains(rva):
                offset = sec.pointer_to_raw_data + (rva - sec.virtual_address)
                return offset if offset < len(self._data) else None
        if rva < self._headers_size():
            return rva if rva < len(self._data) else None
        return None

    def mapped_image(self) -> MappedImage:
        """Lay the headers and sections out at their RVAs."""
        file_len = len(self._data)
        headers_size = min(self._headers_size(), file_len)
        segments = [Segment(0, headers_size, 0, headers_size)]
        for sec in self._sections:
            raw_offset = sec.pointer_to_raw_data
            raw_size = max(0, min(sec.size_of_raw_data, file_len - raw_offset))
            segments.append(Segment(
                virtual_address=sec.virtual_address,
                virtual_size=sec.mapped_size,
                raw_offset=raw_offset,
                raw_size=raw_size,
            ))
        return MappedImage(self._data, segments)

    # ------------------------------------------------------------------ #
    #  Header parsing
    # ------------------------------------------------------------------ #

    def _parse_coff_header(self) -> None:
        offset = self._e_lfanew + 4
        (
            self._machine,
            self._number_of_sections,
            _timestamp,
            _symbol_table,
            _symbol_count,
            self._size_of_optional_header,
            _characteristics,
        ) = struct.unpack_from(_COFF_FMT, self._data, offset)

    def _parse_optional_header(self) -> None:
        if self._size_of_optional_header == 0:
            return
        offset = self._e_lfanew + 4 + 20
        self._magic = struct.unpack_from("<H", self._data, offset)[0]

        layout = _OPT_LAYOUT.get(self._magic)
        if layout is None:
            # ROM and unknown images carry no data directories we understand.
            return
        base_off, base_fmt, count_off, dirs_off = layout

        self._image_base = struct.unpack_from(base_fmt, self._data, offset + base_off)[0]
        self._size_of_image = struct.unpack_from("<I", self._data, offset + _OPT_SIZE_OF_IMAGE)[0]
        self._size_of_headers = struct.unpack_from("<I", self._data, offset + _OPT_SIZE_OF_HEADERS)[0]
        count = struct.unpack_from("<I", self._data, offset + count_off)[0]

        # Cap at 16 so a bogus count cannot run over the section table.
        count = min(count, _MAX_DATA_DIRECTORIES)
        dd_offset = offset + dirs_off
        self._data_directories = []
        for i in range(count):
            pos = dd_offset + i * 8
            if pos + 8 > len(self._data):
                self._data_directories.append((0, 0))
                continue
            self._data_directories.append(struct.unpack_from("<II", self._data, pos))

    def _parse_section_table(self) -> None:
        offset = self._e_lfanew + 4 + 20 + self._size_of_optional_header

        for i in range(self._number_of_sections):
            sec_offset = offset + i * _SECTION_HEADER_SIZE
            if sec_offset + _SECTION_HEADER_SIZE > len(self._data):
                break

            sec = SectionHeader()
            raw_name = self._data[sec_offset:sec_offset + 8]
            sec.name = raw_name.split(b"\x00", 1)[0].decode("ascii", errors="replace")
            (
                sec.virtual_size,
                sec.virtual_address,
                sec.size_of_raw_data,
                sec.pointer_to_raw_data,
                _relocations,
                _linenumbers,
                _relocation_count,
                _linenumber_count,
                sec.characteristics,
            ) = struct.unpack_from(_SECTION_FMT, self._data, sec_offset + 8)
            self._sections.append(sec)

    def _headers_size(self) -> int:
        if self._size_of_headers:
            return self._size_of_headers
        if self._sections:
            return min(s.virtual_address for s in self._sections)
        return 0x1000
