"""
Idata Parsers
==============

Byte views, address translation, PE header reading and the two import
table readers.
"""

from idata.parsers.byteview import ByteView, FlatView, MappedImage, read_ascii_string
from idata.parsers.directory_table import DirectoryTableReader
from idata.parsers.import_section import decode_import_section
from idata.parsers.lookup_table import LookupTableReader, entry_size_for
from idata.parsers.pe_headers import PEHeaderParser
from idata.parsers.translator import AddressTranslator

__all__ = [
    "AddressTranslator",
    "ByteView",
    "DirectoryTableReader",
    "FlatView",
    "LookupTableReader",
    "MappedImage",
    "PEHeaderParser",
    "decode_import_section",
    "entry_size_for",
    "read_ascii_string",
]
