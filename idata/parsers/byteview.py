"""
RVA-keyed byte views
=====================

The import readers never touch the raw file directly.  They read through a
:class:`ByteView`, addressed by RVA, whose accessors never raise: a read
past the end simply returns fewer bytes.

Two implementations are provided:

- :class:`FlatView` -- a buffer whose index *is* the RVA (an image already
  laid out in memory, or a hand-built test image).
- :class:`MappedImage` -- the headers and sections of a PE file placed at
  their virtual addresses, with zero-filled gaps and virtual tails.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, Sequence, runtime_checkable

_SCAN_CHUNK: int = 4096


@runtime_checkable
class ByteView(Protocol):
    """Read-only, bounds-checked byte access keyed by RVA."""

    def length(self) -> int:
        """Number of addressable bytes; valid RVAs are ``[0, length())``."""
        ...

    def slice(self, start: int, end: int) -> bytes:
        """Bytes in ``[start, end)``, cut short at :meth:`length`."""
        ...

    def index_of(self, value: int, start: int) -> int:
        """First RVA ``>= start`` holding *value*, or ``-1``."""
        ...


class FlatView:
    """A :class:`ByteView` over a contiguous buffer starting at RVA 0."""

    __slots__ = ("_data",)

    def __init__(self, data: bytes) -> None:
        self._data = bytes(data)

    def length(self) -> int:
        return len(self._data)

    def slice(self, start: int, end: int) -> bytes:
        if start < 0 or end <= start:
            return b""
        return self._data[start:end]

    def index_of(self, value: int, start: int) -> int:
        if start < 0 or start >= len(self._data):
            return -1
        return self._data.find(bytes([value]), start)


@dataclass(frozen=True, slots=True)
class Segment:
    """A file region mapped at a virtual address.

    Attributes:
        virtual_address: RVA the region starts at.
        virtual_size: Size of the region once mapped.
        raw_offset: File offset of the backing bytes.
        raw_size: Number of backing bytes; the rest reads as zero.
    """

    virtual_address: int
    virtual_size: int
    raw_offset: int
    raw_size: int

    @property
    def end(self) -> int:
        return self.virtual_address + self.virtual_size


class MappedImage:
    """A :class:`ByteView` laying out file segments at their RVAs.

    RVAs inside ``[0, length())`` that no segment covers read as zero, the
    way the loader leaves unmapped padding.  Nothing is copied up front;
    every :meth:`slice` assembles its bytes from the overlapping segments.
    """

    def __init__(self, data: bytes, segments: Sequence[Segment]) -> None:
        self._data = data
        self._segments: list[Segment] = sorted(
            (s for s in segments if s.virtual_size > 0),
            key=lambda s: s.virtual_address,
        )
        self._length = max((s.end for s in self._segments), default=0)

    @property
    def segments(self) -> list[Segment]:
        return list(self._segments)

    def length(self) -> int:
        return self._length

    def slice(self, start: int, end: int) -> bytes:
        end = min(end, self._length)
        if start < 0 or end <= start:
            return b""

        out = bytearray(end - start)
        for seg in self._segments:
            lo = max(start, seg.virtual_address)
            hi = min(end, seg.end)
            if lo >= hi:
                continue
            # Backed part of the overlap; the remainder stays zero.
            rel_lo = lo - seg.virtual_address
            rel_hi = min(hi - seg.virtual_address, seg.raw_size)
            if rel_lo >= rel_hi:
                continue
            chunk = self._data[seg.raw_offset + rel_lo:seg.raw_offset + rel_hi]
            out[lo - start:lo - start + len(chunk)] = chunk
        return bytes(out)

    def index_of(self, value: int, start: int) -> int:
        if start < 0:
            return -1
        needle = bytes([value])
        pos = start
        while pos < self._length:
            chunk = self.slice(pos, pos + _SCAN_CHUNK)
            if not chunk:
                break
            found = chunk.find(needle)
            if found != -1:
                return pos + found
            pos += len(chunk)
        return -1


def read_ascii_string(view: ByteView, rva: int) -> str:
    """Read a NUL-terminated ASCII string at *rva*.

    Returns an empty string when *rva* is outside the view or no NUL byte
    follows it before the end of the view.
    """
    if rva < 0 or rva >= view.length():
        return ""
    end = view.index_of(0, rva)
    if end == -1:
        return ""
    return view.slice(rva, end).decode("ascii", errors="replace")
