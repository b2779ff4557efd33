"""Console rendering and JSON reports."""

from __future__ import annotations

import json

from shared.console import IdataConsole

from idata.core.engine import ImportEngine
from idata.output.console import ImportConsoleOutput
from idata.output.report import REPORT_TYPE, ImportReportGenerator


def _render(result, **kwargs) -> str:
    console = IdataConsole(record=True)
    console.rich.width = 160
    ImportConsoleOutput(console=console).display(result, **kwargs)
    return console.export_text()


def test_console_lists_libraries_and_symbols(pe32_bytes):
    text = _render(ImportEngine().analyze_data(pe32_bytes))
    assert "KERNEL32.dll" in text
    assert "CreateFileW" in text
    assert "#5" in text
    assert "PE32" in text
    assert "Consumed File Ranges" not in text


def test_console_shows_locations_on_request(pe32_bytes):
    text = _render(ImportEngine().analyze_data(pe32_bytes), show_locations=True)
    assert "Consumed File Ranges" in text
    assert "import_directory_table" in text
    assert "import_lookup_table" in text


def test_console_reports_empty_and_partial(make_pe):
    text = _render(ImportEngine().analyze_data(make_pe(import_rva=0x7000)))
    assert "No imports decoded" in text
    assert "not backed by file data" in text
    assert "partial" in text


def test_report_structure(pe32_bytes):
    report = ImportReportGenerator().build(ImportEngine().analyze_data(pe32_bytes))

    assert report["report_type"] == REPORT_TYPE
    assert report["status"] == "complete"
    assert report["image"]["pe_format"] == 0x10B
    assert [lib["name"] for lib in report["libraries"]] == ["KERNEL32.dll"]
    kinds = [e["kind"] for e in report["libraries"][0]["lookup_entries"]]
    assert kinds == ["ordinal", "name"]
    assert [i["function"] for i in report["imports"]] == ["Ordinal_5", "CreateFileW"]
    assert report["locations"][0] == {
        "offset": 0x200, "length": 20, "purpose": "import_directory_table",
    }
    json.dumps(report)


def test_generate_json_writes_file(tmp_path, pe32_bytes):
    result = ImportEngine().analyze_data(pe32_bytes)
    out = tmp_path / "reports" / "imports.json"
    written = ImportReportGenerator().generate_json(result, str(out))

    assert written == str(out.resolve())
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["imports"][1]["hint"] == 7
