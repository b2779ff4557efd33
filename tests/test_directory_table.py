"""Import directory table reader."""

from __future__ import annotations

from idata.parsers.byteview import FlatView
from idata.parsers.directory_table import ENTRY_SIZE, DirectoryTableReader
from idata.parsers.translator import AddressTranslator


def _read(view, va=0x1000, offset=None):
    translator = AddressTranslator(va, va if offset is None else offset, view.length())
    return DirectoryTableReader(view, translator).read()


def test_reads_records_until_sentinel(two_library_image):
    result = _read(two_library_image.view())

    assert [e.name for e in result.entries] == ["KERNEL32.dll", "USER32.dll"]
    first, second = result.entries
    assert first.index == 0
    assert first.lookup_table_rva == 0x2000
    assert first.name_rva == 0x2100
    assert first.address_table_rva == 0x3000
    assert first.file_offset == 0x1000
    assert second.index == 1
    assert second.file_offset == 0x1000 + ENTRY_SIZE
    # Sentinel at 0x1028 was read as well.
    assert result.max_relative_offset == 0x1000 + 3 * ENTRY_SIZE


def test_file_offset_uses_directory_offset(kernel32_image):
    result = _read(kernel32_image.view(), offset=0x400)
    assert result.entries[0].file_offset == 0x400


def test_record_with_only_iat_is_not_sentinel(make_image):
    img = make_image(0x2000)
    img.descriptor(0x1000, iat=0x1800, name=0x1900)
    img.ascii(0x1900, "ws2_32.dll")
    result = _read(img.view())
    assert len(result.entries) == 1
    assert result.entries[0].lookup_table_rva == 0


def test_short_view_stops_without_entry(make_image):
    img = make_image(0x1000 + ENTRY_SIZE - 1)
    img.data[0x1000:0x1004] = b"\x01\x02\x03\x04"
    result = _read(img.view())
    assert result.entries == []
    assert result.max_relative_offset == 0x1000 + ENTRY_SIZE


def test_unterminated_table_ends_at_view_end(make_image):
    img = make_image(0x1000 + 2 * ENTRY_SIZE)
    img.descriptor(0x1000, ilt=0x10, name=0x20, iat=0x30)
    img.descriptor(0x1014, ilt=0x40, name=0x50, iat=0x60)
    result = _read(img.view())
    assert len(result.entries) == 2


def test_unreadable_name_is_empty(make_image):
    img = make_image(0x1100)
    img.descriptor(0x1000, ilt=0x1080, name=0x9000, iat=0x1090)
    result = _read(img.view())
    assert result.entries[0].name == ""


def test_forwarder_chain_names_forwarder(make_image):
    img = make_image(0x1200)
    img.descriptor(0x1000, ilt=0x1080, forwarder=0x1110, name=0x1100, iat=0x1090)
    img.ascii(0x1100, "A.dll")
    img.ascii(0x1110, "B.dll")
    entry = _read(img.view()).entries[0]
    assert entry.forwarder_chain == 0x1110
    assert entry.forwarder_name == "B.dll"


def test_no_forwarder_name_without_chain(kernel32_image):
    entry = _read(kernel32_image.view()).entries[0]
    assert entry.forwarder_name is None


def test_empty_view():
    result = _read(FlatView(b""))
    assert result.entries == []
