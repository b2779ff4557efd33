"""
Idata Report Generator
=======================

Structured JSON reports for decoded import directories, suitable for
machine consumption and diffing between builds.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from idata.core.models import ImportAnalysisResult

REPORT_TYPE: str = "idata_import_directory"
REPORT_VERSION: str = "1.0.0"


class ImportReportGenerator:
    """Build and write JSON reports.

    Usage::

        gen = ImportReportGenerator()
        gen.generate_json(result, "imports.json")
    """

    def build(self, result: ImportAnalysisResult) -> dict[str, Any]:
        """Return the report as a JSON-compatible dictionary."""
        section = result.imports
        return {
            "report_type": REPORT_TYPE,
            "version": REPORT_VERSION,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "image": result.info.model_dump(mode="json"),
            "status": section.status.value,
            "warnings": [w.model_dump(mode="json") for w in section.warnings],
            "max_relative_offset": section.max_relative_offset,
            "libraries": [e.model_dump(mode="json") for e in section.directory],
            "imports": [i.model_dump(mode="json") for i in section.get_imports()],
            "locations": [loc.model_dump(mode="json") for loc in section.get_locations()],
        }

    def generate_json(self, result: ImportAnalysisResult, output_path: str) -> str:
        """Write the report to *output_path*.

        Returns:
            The absolute path of the written report.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(
            json.dumps(self.build(result), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        return str(path.resolve())
