"""
Idata Output
=============

Rich console rendering and JSON report generation.
"""

from idata.output.console import ImportConsoleOutput
from idata.output.report import ImportReportGenerator

__all__ = ["ImportConsoleOutput", "ImportReportGenerator"]
