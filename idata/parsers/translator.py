"""
RVA to file offset translation for the import directory.

The import directory and everything it references are assumed to live in
the same section, so one base pair (directory RVA, directory file offset)
is enough to place any RVA in the file.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

_MAX_U32: int = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class AddressTranslator:
    """Translate RVAs relative to the import directory base.

    Attributes:
        virtual_address: RVA of the import directory table.
        file_offset: File offset of the import directory table.
        file_size: Size of the file; offsets at or past it are unmapped.
    """

    virtual_address: int
    file_offset: int
    file_size: Optional[int] = None

    def relative_offset(self, rva: int) -> int:
        """Distance of *rva* from the directory base (may be negative)."""
        return rva - self.virtual_address

    def file_offset_of(self, rva: int) -> Optional[int]:
        """File offset of *rva*, or ``None`` when it cannot be in the file."""
        offset = self.file_offset + (rva - self.virtual_address)
        if offset < 0 or offset > _MAX_U32:
            return None
        if self.file_size is not None and offset >= self.file_size:
            return None
        return offset
