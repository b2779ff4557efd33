"""Shared fixtures: hand-built import directories and complete PE files."""

from __future__ import annotations

import struct
from typing import Callable, Sequence

import pytest

from idata.parsers.byteview import FlatView

ORDINAL_FLAG_32 = 0x80000000
ORDINAL_FLAG_64 = 0x8000000000000000


class ImageBuilder:
    """Writes import structures into a zeroed buffer indexed by RVA."""

    def __init__(self, size: int) -> None:
        self.data = bytearray(size)

    def __len__(self) -> int:
        return len(self.data)

    def u16(self, rva: int, value: int) -> ImageBuilder:
        struct.pack_into("<H", self.data, rva, value)
        return self

    def u32(self, rva: int, value: int) -> ImageBuilder:
        struct.pack_into("<I", self.data, rva, value)
        return self

    def ascii(self, rva: int, text: str) -> ImageBuilder:
        raw = text.encode("ascii") + b"\x00"
        self.data[rva:rva + len(raw)] = raw
        return self

    def hint_name(self, rva: int, hint: int, name: str) -> ImageBuilder:
        return self.u16(rva, hint).ascii(rva + 2, name)

    def descriptor(
        self,
        rva: int,
        *,
        ilt: int = 0,
        timestamp: int = 0,
        forwarder: int = 0,
        name: int = 0,
        iat: int = 0,
    ) -> ImageBuilder:
        struct.pack_into("<IIIII", self.data, rva, ilt, timestamp, forwarder, name, iat)
        return self

    def thunks(self, rva: int, values: Sequence[int], width: int = 4) -> ImageBuilder:
        fmt = "<I" if width == 4 else "<Q"
        for i, value in enumerate(values):
            struct.pack_into(fmt, self.data, rva + i * width, value)
        return self

    def view(self) -> FlatView:
        return FlatView(bytes(self.data))


@pytest.fixture
def make_image() -> Callable[[int], ImageBuilder]:
    return ImageBuilder


@pytest.fixture
def kernel32_image() -> ImageBuilder:
    """One library importing ordinal 5, directory at 0x1000."""
    img = ImageBuilder(0x3100)
    img.descriptor(0x1000, ilt=0x2000, name=0x2100, iat=0x3000)
    img.thunks(0x2000, [ORDINAL_FLAG_32 | 5, 0])
    img.ascii(0x2100, "KERNEL32.dll")
    img.thunks(0x3000, [ORDINAL_FLAG_32 | 5, 0])
    return img


@pytest.fixture
def two_library_image() -> ImageBuilder:
    """KERNEL32 (ordinal 5, CreateFileW) and USER32 (MessageBoxA)."""
    img = ImageBuilder(0x3100)
    img.descriptor(0x1000, ilt=0x2000, name=0x2100, iat=0x3000)
    img.descriptor(0x1014, ilt=0x2040, name=0x2110, iat=0x3040)
    img.thunks(0x2000, [ORDINAL_FLAG_32 | 5, 0x2200, 0])
    img.thunks(0x2040, [0x2220, 0])
    img.ascii(0x2100, "KERNEL32.dll")
    img.ascii(0x2110, "USER32.dll")
    img.hint_name(0x2200, 7, "CreateFileW")
    img.hint_name(0x2220, 0x1A2, "MessageBoxA")
    img.thunks(0x3000, [ORDINAL_FLAG_32 | 5, 0x2200, 0])
    img.thunks(0x3040, [0x2220, 0])
    return img


# ---------------------------------------------------------------------------
# Complete PE files
# ---------------------------------------------------------------------------

PE_OFFSET = 0x80
HEADERS_SIZE = 0x200
IDATA_RVA = 0x1000
IDATA_RAW = 0x200
IDATA_RAW_SIZE = 0x400


def build_pe(
    magic: int = 0x10B,
    *,
    import_rva: int = IDATA_RVA,
    import_size: int = 40,
    with_imports: bool = True,
) -> bytes:
    """A one-section PE32 / PE32+ file whose ``.idata`` imports from KERNEL32.

    The import directory lists ordinal 5 and ``CreateFileW`` (hint 7).
    """
    pe_plus = magic == 0x20B
    opt_size = 240 if pe_plus else 224
    data = bytearray(IDATA_RAW + IDATA_RAW_SIZE)

    data[0:2] = b"MZ"
    struct.pack_into("<I", data, 60, PE_OFFSET)
    data[PE_OFFSET:PE_OFFSET + 4] = b"PE\x00\x00"

    machine = 0x8664 if pe_plus else 0x14C
    struct.pack_into("<HHIIIHH", data, PE_OFFSET + 4, machine, 1, 0, 0, 0, opt_size, 0x0102)

    opt = PE_OFFSET + 24
    struct.pack_into("<H", data, opt, magic)
    if pe_plus:
        struct.pack_into("<Q", data, opt + 24, 0x140000000)
        rva_count_off, dirs_off = 108, 112
    else:
        struct.pack_into("<I", data, opt + 28, 0x400000)
        rva_count_off, dirs_off = 92, 96
    struct.pack_into("<I", data, opt + 56, 0x2000)
    struct.pack_into("<I", data, opt + 60, HEADERS_SIZE)
    struct.pack_into("<I", data, opt + rva_count_off, 16)
    if with_imports:
        struct.pack_into("<II", data, opt + dirs_off + 8, import_rva, import_size)

    sec = opt + opt_size
    data[sec:sec + 8] = b".idata\x00\x00"
    struct.pack_into(
        "<IIIIIIHHI", data, sec + 8,
        0x1000, IDATA_RVA, IDATA_RAW_SIZE, IDATA_RAW, 0, 0, 0, 0, 0xC0000040,
    )

    if with_imports:
        width = 8 if pe_plus else 4
        fmt = "<Q" if pe_plus else "<I"
        ordinal = (ORDINAL_FLAG_64 if pe_plus else ORDINAL_FLAG_32) | 5

        def at(rva: int) -> int:
            return rva - IDATA_RVA + IDATA_RAW

        struct.pack_into("<IIIII", data, at(0x1000), 0x1040, 0, 0, 0x1100, 0x1080)
        for table in (0x1040, 0x1080):
            for i, value in enumerate((ordinal, 0x1120, 0)):
                struct.pack_into(fmt, data, at(table) + i * width, value)
        name = b"KERNEL32.dll\x00"
        data[at(0x1100):at(0x1100) + len(name)] = name
        struct.pack_into("<H", data, at(0x1120), 7)
        func = b"CreateFileW\x00"
        data[at(0x1122):at(0x1122) + len(func)] = func

    return bytes(data)


@pytest.fixture
def pe32_bytes() -> bytes:
    return build_pe(0x10B)


@pytest.fixture
def pe32_plus_bytes() -> bytes:
    return build_pe(0x20B)


@pytest.fixture
def pe_file(tmp_path, pe32_bytes):
    path = tmp_path / "app.exe"
    path.write_bytes(pe32_bytes)
    return path


@pytest.fixture
def make_pe() -> Callable[..., bytes]:
    return build_pe
