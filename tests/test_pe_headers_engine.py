"""PE header reading and the analysis engine."""

from __future__ import annotations

import pytest

from shared.config import IdataConfig

from idata.core.engine import ImportEngine
from idata.core.errors import NotAPEFileError, UnsupportedFormatError
from idata.core.models import DecodeStatus, LocationPurpose, NameEntry, OrdinalEntry, PEFormat
from idata.parsers.pe_headers import PEHeaderParser


class TestPEHeaderParser:
    def test_pe32_headers(self, pe32_bytes):
        headers = PEHeaderParser(pe32_bytes)
        assert headers.parse()
        assert headers.magic == 0x10B
        assert headers.machine == 0x14C
        assert headers.image_base == 0x400000
        assert headers.size_of_image == 0x2000
        assert headers.import_directory() == (0x1000, 40)
        assert [s.name for s in headers.get_sections()] == [".idata"]

    def test_pe32_plus_headers(self, pe32_plus_bytes):
        headers = PEHeaderParser(pe32_plus_bytes)
        assert headers.parse()
        assert headers.magic == 0x20B
        assert headers.machine == 0x8664
        assert headers.image_base == 0x140000000
        assert headers.import_directory() == (0x1000, 40)

    def test_rva_to_offset(self, pe32_bytes):
        headers = PEHeaderParser(pe32_bytes)
        headers.parse()
        assert headers.rva_to_offset(0x1000) == 0x200
        assert headers.rva_to_offset(0x1100) == 0x300
        assert headers.rva_to_offset(0x40) == 0x40
        assert headers.rva_to_offset(0x5000) is None

    def test_mapped_image_places_section_at_rva(self, pe32_bytes):
        headers = PEHeaderParser(pe32_bytes)
        headers.parse()
        view = headers.mapped_image()
        assert view.slice(0, 2) == b"MZ"
        assert view.slice(0x1100, 0x110C) == b"KERNEL32.dll"
        assert view.length() == 0x2000
        # Virtual tail of the section past its raw data.
        assert view.slice(0x1400, 0x1404) == b"\x00" * 4

    def test_missing_directory_is_zero(self, pe32_bytes):
        headers = PEHeaderParser(pe32_bytes)
        headers.parse()
        assert headers.data_directory(15) == (0, 0)
        assert headers.data_directory(40) == (0, 0)

    @pytest.mark.parametrize("data", [
        b"",
        b"not a portable executable" * 4,
        b"MZ" + b"\x00" * 62,
    ])
    def test_non_pe_data(self, data):
        assert not PEHeaderParser(data).parse()

    def test_truncated_headers(self, pe32_bytes):
        assert not PEHeaderParser(pe32_bytes[:0x90]).parse()


class TestImportEngine:
    def test_decodes_pe32(self, pe32_bytes):
        result = ImportEngine().analyze_data(pe32_bytes)

        assert result.info.pe_format == PEFormat.PE32
        assert result.info.import_directory_offset == 0x200
        section = result.imports
        assert section.status == DecodeStatus.COMPLETE
        assert [e.name for e in section.directory] == ["KERNEL32.dll"]
        ordinal, named = section.directory[0].lookup_entries
        assert isinstance(ordinal, OrdinalEntry) and ordinal.ordinal == 5
        assert isinstance(named, NameEntry) and named.name == "CreateFileW"
        assert named.hint == 7
        assert named.file_offset == 0x244

    def test_decodes_pe32_plus(self, pe32_plus_bytes):
        section = ImportEngine().analyze_data(pe32_plus_bytes).imports

        assert section.pe_format == PEFormat.PE32_PLUS
        entries = section.directory[0].lookup_entries
        assert [e.entry_size for e in entries] == [8, 8]
        assert entries[0].ordinal == 5
        assert entries[1].file_offset == 0x248
        locations = section.get_locations()
        assert (locations[1].offset, locations[1].length) == (0x240, 16)
        assert locations[1].purpose == LocationPurpose.LOOKUP_TABLE

    def test_no_import_directory(self, make_pe):
        result = ImportEngine().analyze_data(make_pe(with_imports=False))
        assert result.imports.is_empty()
        assert result.imports.status == DecodeStatus.COMPLETE
        assert result.info.import_directory_offset is None

    def test_unmapped_import_directory_is_partial(self, make_pe):
        result = ImportEngine().analyze_data(make_pe(import_rva=0x7000))
        assert result.imports.is_empty()
        assert result.imports.status == DecodeStatus.PARTIAL
        assert result.imports.warnings[0].rva == 0x7000

    def test_rom_image_is_unsupported(self, make_pe):
        with pytest.raises(UnsupportedFormatError):
            ImportEngine().analyze_data(make_pe(0x107))

    def test_unknown_magic_is_unsupported(self, make_pe):
        with pytest.raises(UnsupportedFormatError):
            ImportEngine().analyze_data(make_pe(0x3333, with_imports=False))

    def test_not_a_pe_file(self):
        with pytest.raises(NotAPEFileError):
            ImportEngine().analyze_data(b"\x7fELF" + b"\x00" * 100)

    def test_lookup_workers_from_config(self, pe32_bytes):
        config = IdataConfig()
        config.decoder.lookup_workers = 4
        parallel = ImportEngine(config=config).analyze_data(pe32_bytes)
        sequential = ImportEngine().analyze_data(pe32_bytes)
        assert parallel.imports.model_dump() == sequential.imports.model_dump()

    def test_analyze_sync_reads_file(self, pe_file):
        result = ImportEngine().analyze_sync(str(pe_file))
        assert result.info.path == str(pe_file.resolve())
        assert result.info.size == pe_file.stat().st_size
        assert len(result.imports.get_imports()) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ImportEngine().analyze_sync(str(tmp_path / "missing.exe"))

    def test_file_too_large(self, pe_file):
        config = IdataConfig()
        config.decoder.max_file_size = 16
        with pytest.raises(ValueError, match="too large"):
            ImportEngine(config=config).analyze_sync(str(pe_file))
