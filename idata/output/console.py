"""
Idata Console Output
=====================

Rich terminal rendering of a decoded import directory: an image panel, the
directory table, one symbol table per library, warnings and, on request,
the file ranges the decoder consumed.
"""

from __future__ import annotations

from rich.markup import escape
from rich.panel import Panel

from shared.console import IdataConsole

from idata.core.models import (
    DecodeStatus,
    DirectoryEntry,
    ImageInfo,
    ImportAnalysisResult,
    ImportSection,
    NameEntry,
    OrdinalEntry,
)


def _hex(value: int | None) -> str:
    return "-" if value is None else f"0x{value:x}"


class ImportConsoleOutput:
    """Rich terminal display for :class:`ImportAnalysisResult`.

    Usage::

        output = ImportConsoleOutput()
        output.display(result, show_locations=True)
    """

    def __init__(self, console: IdataConsole | None = None) -> None:
        self._console: IdataConsole = console or IdataConsole()

    def display(self, result: ImportAnalysisResult, *, show_locations: bool = False) -> None:
        """Render the whole analysis result."""
        self._console.section("Import Directory")
        self.display_header(result.info, result.imports)

        section = result.imports
        if section.is_empty():
            self._console.info("No imports decoded.")
        else:
            self.display_directory(section)
            for entry in section.directory:
                self.display_lookup_entries(entry)

        if show_locations and section.directory:
            self.display_locations(section)

        if section.warnings:
            self.display_warnings(section)

        self._console.divider()

    def display_header(self, info: ImageInfo, section: ImportSection) -> None:
        status_colour = "green" if section.status == DecodeStatus.COMPLETE else "yellow"
        lines: list[str] = [
            f"[bold]File:[/bold]              {escape(info.path)}",
            f"[bold]Size:[/bold]              {info.size:,} bytes",
            f"[bold]Format:[/bold]            {info.pe_format.label}",
            f"[bold]Image base:[/bold]        0x{info.image_base:x}",
            f"[bold]Import directory:[/bold]  rva {_hex(info.import_directory_rva)}, "
            f"size {_hex(info.import_directory_size)}, "
            f"file offset {_hex(info.import_directory_offset)}",
            f"[bold]Import data ends:[/bold]  rva {_hex(section.max_relative_offset)}",
            f"[bold]Status:[/bold]            [{status_colour}]{section.status.value}[/{status_colour}]",
        ]
        panel = Panel(
            "\n".join(lines),
            title="[bold bright_cyan]Image[/bold bright_cyan]",
            border_style="bright_cyan",
            padding=(1, 2),
        )
        self._console.print(panel)
        self._console.blank()

    def display_directory(self, section: ImportSection) -> None:
        tbl = self._console.new_table(
            "Libraries",
            ["#", "Library", "Forwarder", "ILT RVA", "IAT RVA", "Table", "Symbols"],
            numeric={"#", "ILT RVA", "IAT RVA", "Symbols"},
            styles={"#": "dim", "Library": "bold"},
        )
        for entry in section.directory:
            tbl.add_row(
                str(entry.index),
                escape(entry.name) or "[dim]<unnamed>[/dim]",
                escape(entry.forwarder_name or ""),
                _hex(entry.lookup_table_rva),
                _hex(entry.address_table_rva),
                entry.lookup_source.value.upper() if entry.lookup_source else "-",
                str(len(entry.lookup_entries)),
            )
        self._console.print(tbl)
        self._console.blank()

    def display_lookup_entries(self, entry: DirectoryEntry) -> None:
        tbl = self._console.new_table(
            escape(entry.name) or "<unnamed>",
            ["RVA", "Kind", "Symbol", "Hint"],
            numeric={"RVA", "Hint"},
            styles={"Symbol": "bold"},
            muted=True,
        )
        for lookup in entry.lookup_entries:
            if isinstance(lookup, OrdinalEntry):
                tbl.add_row(_hex(lookup.rva), "ordinal", f"#{lookup.ordinal}", "")
            elif isinstance(lookup, NameEntry):
                tbl.add_row(
                    _hex(lookup.rva), "name",
                    escape(lookup.name) or "[dim]<unreadable>[/dim]", str(lookup.hint),
                )
            else:
                raise TypeError(f"unexpected lookup entry: {lookup!r}")
        self._console.print(tbl)

    def display_locations(self, section: ImportSection) -> None:
        self._console.blank()
        self._console.table(
            "Consumed File Ranges",
            ["Start", "End", "Bytes", "Purpose"],
            (
                (_hex(loc.offset), _hex(loc.end), f"{loc.length:,}", loc.purpose.value)
                for loc in section.get_locations()
            ),
            numeric={"Start", "End", "Bytes"},
        )

    def display_warnings(self, section: ImportSection) -> None:
        self._console.blank()
        for warning in section.warnings:
            self._console.warning(escape(warning.message))
