"""
Idata -- PE Import Directory Decoder
======================================

Idata decodes the Import Directory Table of PE32 and PE32+ images and the
import lookup table of every imported library, recording the file ranges
the import data occupies.

Capabilities:
    - Import Directory Table decoding up to the all-zero sentinel record
    - Ordinal and hint/name lookup entries at 4 or 8 bytes per entry
    - Fallback from the Import Lookup Table to the Import Address Table
    - Partial results with warnings for malformed lookup tables
    - Consumed file ranges, merged when contiguous
    - Rich console tables and JSON reports

References:
    - Microsoft. (2024). PE Format. Microsoft Learn.
    - Pietrek, M. (2002). An In-Depth Look into the Win32 Portable
      Executable File Format. MSDN Magazine.
"""

__version__ = "1.0.0"
__all__ = [
    "ImportEngine",
    "ImportSection",
    "ImportConsoleOutput",
    "ImportReportGenerator",
    "decode_import_section",
]

from idata.core.engine import ImportEngine
from idata.core.models import ImportSection
from idata.output.console import ImportConsoleOutput
from idata.output.report import ImportReportGenerator
from idata.parsers.import_section import decode_import_section
