"""
Idata Exceptions
=================

Only conditions that make a decode impossible are raised.  Recoverable
problems (truncated tables, unreadable lookup entries, dangling name RVAs)
are reported through :class:`idata.core.models.DecodeWarning` instead;
:class:`MalformedEntryError` is turned into one by the lookup table reader.
"""

from __future__ import annotations


class IdataError(Exception):
    """Base class for all Idata errors."""


class UnsupportedFormatError(IdataError):
    """The optional-header magic does not determine a lookup entry width.

    Raised for ROM images and for unknown magic values.
    """

    def __init__(self, magic: int, reason: str = "") -> None:
        self.magic = magic
        detail = reason or "unsupported optional header magic"
        super().__init__(f"{detail} (0x{magic:x})")


class NotAPEFileError(IdataError):
    """The input has no valid MZ / ``PE\\0\\0`` headers."""


class MalformedEntryError(IdataError):
    """A lookup table entry lies entirely outside the image.

    Raised by :meth:`idata.parsers.lookup_table.LookupTableReader.decode_entry`;
    the reader turns it into a :class:`DecodeWarning` and stops decoding.
    """

    def __init__(self, rva: int) -> None:
        self.rva = rva
        super().__init__(f"lookup table entry at rva 0x{rva:x} is outside the image")
