"""
Import section decoding pipeline.

Runs the directory table reader, then the lookup table reader, then drops
directory entries that ended up without symbols (collapsed or degenerate
imports, as produced by some size-optimised linkers).
"""

from __future__ import annotations

from shared.logger import IdataLogger, component_logger

from idata.core.models import DecodeStatus, ImportSection, PEFormat
from idata.parsers.byteview import ByteView
from idata.parsers.directory_table import DirectoryTableReader
from idata.parsers.lookup_table import LookupTableReader, entry_size_for
from idata.parsers.translator import AddressTranslator

_default_logger = component_logger("parsers.import_section")


def decode_import_section(
    view: ByteView,
    virtual_address: int,
    pe_format: PEFormat | int,
    file_size: int,
    file_offset: int,
    *,
    max_workers: int = 1,
    logger: IdataLogger | None = None,
) -> ImportSection:
    """Decode the import directory located at *virtual_address*.

    Args:
        view: RVA-keyed image view.
        virtual_address: RVA of the import directory table.
        pe_format: Optional header magic; decides the lookup entry width.
        file_size: Size of the file in bytes.
        file_offset: File offset of the import directory table.
        max_workers: Threads used for the lookup tables.
        logger: Logger shared by both readers.

    Returns:
        The decoded :class:`ImportSection`, ``partial`` when a malformed
        lookup entry stopped the decode early.

    Raises:
        UnsupportedFormatError: For ROM images and unknown magic values,
            before anything is read.
    """
    log = logger or _default_logger
    entry_size_for(pe_format)
    fmt = PEFormat.from_magic(int(pe_format))
    translator = AddressTranslator(virtual_address, file_offset, file_size)

    log.debug("reading directory entries for root table at rva 0x%x", virtual_address)
    dir_result = DirectoryTableReader(view, translator, log).read()

    log.debug("reading lookup table entries ...")
    lookup_reader = LookupTableReader(
        view, translator, fmt, file_size, max_workers=max_workers, logger=log
    )
    lookup_result = lookup_reader.read(dir_result.entries)

    directory = [e for e in dir_result.entries if e.lookup_entries]
    dropped = len(dir_result.entries) - len(directory)
    if dropped:
        log.debug("%d directory entries without lookup entries dropped", dropped)

    return ImportSection(
        directory=directory,
        virtual_address=virtual_address,
        file_offset=file_offset,
        pe_format=fmt,
        max_relative_offset=max(
            dir_result.max_relative_offset, lookup_result.max_relative_offset
        ),
        status=DecodeStatus.PARTIAL if lookup_result.warnings else DecodeStatus.COMPLETE,
        warnings=lookup_result.warnings,
    )
