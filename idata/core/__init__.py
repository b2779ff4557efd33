"""
Idata Core Module
==================

Data models and exceptions for decoded import directories.  The analysis
engine lives in :mod:`idata.core.engine`.
"""

from idata.core.errors import IdataError, NotAPEFileError, UnsupportedFormatError
from idata.core.models import (
    DecodeStatus,
    DecodeWarning,
    DirectoryEntry,
    ImageInfo,
    ImportAnalysisResult,
    ImportInfo,
    ImportSection,
    Location,
    LocationPurpose,
    LookupEntry,
    LookupSource,
    NameEntry,
    NullEntry,
    OrdinalEntry,
    PEFormat,
)

__all__ = [
    "DecodeStatus",
    "DecodeWarning",
    "DirectoryEntry",
    "IdataError",
    "ImageInfo",
    "ImportAnalysisResult",
    "ImportInfo",
    "ImportSection",
    "Location",
    "LocationPurpose",
    "LookupEntry",
    "LookupSource",
    "NameEntry",
    "NotAPEFileError",
    "NullEntry",
    "OrdinalEntry",
    "PEFormat",
    "UnsupportedFormatError",
]
