"""
Idata Console Interface
========================

Rich-powered console facade shared by the Idata CLI and output renderers.
It keeps styling in one theme and offers the handful of helpers the
renderers need: section rules, status messages and simple tables.

References:
    - Rich library: https://github.com/Textualize/rich
"""

from __future__ import annotations

from typing import Any, Collection, Iterable, Mapping, Sequence

from rich.console import Console
from rich.table import Table
from rich.theme import Theme

_IDATA_THEME = Theme(
    {
        "idata.section": "bold bright_magenta",
        "idata.success": "bold green",
        "idata.warning": "bold yellow",
        "idata.error": "bold red",
        "idata.info": "bold bright_blue",
    }
)


class IdataConsole:
    """Unified console used by every Idata renderer.

    Usage::

        con = IdataConsole()
        con.section("Import Directory")
        con.success("Decoded 12 libraries")
    """

    def __init__(self, *, quiet: bool = False, record: bool = False) -> None:
        """Initialise the console.

        Args:
            quiet:  Suppress all output.
            record: Keep a record of the output for :meth:`export_text`.
        """
        self._console = Console(
            theme=_IDATA_THEME,
            quiet=quiet,
            record=record,
            highlight=False,
        )

    @property
    def rich(self) -> Console:
        """Direct access to the underlying Rich Console instance."""
        return self._console

    def section(self, title: str) -> None:
        """Print a horizontal rule carrying *title*."""
        self._console.rule(f"  {title}  ", style="idata.section", characters="─")
        self._console.print()

    def success(self, message: str) -> None:
        self._console.print(f"[idata.success][✔] SUCCESS:[/idata.success] {message}")

    def warning(self, message: str) -> None:
        self._console.print(f"[idata.warning][⚠] WARNING:[/idata.warning] {message}")

    def error(self, message: str) -> None:
        self._console.print(f"[idata.error][✘] ERROR:[/idata.error] {message}")

    def info(self, message: str) -> None:
        self._console.print(f"[idata.info][ℹ] INFO:[/idata.info] {message}")

    def new_table(
        self,
        title: str,
        columns: Sequence[str],
        *,
        numeric: Collection[str] = (),
        styles: Mapping[str, str] | None = None,
        caption: str | None = None,
        muted: bool = False,
    ) -> Table:
        """Create an empty table in the Idata style.

        Args:
            title:    Table title.
            columns:  Column header labels, left to right.
            numeric:  Labels of right-aligned columns (offsets, sizes, counts).
            styles:   Rich style per column label.
            caption:  Optional footer caption.
            muted:    Dim border, for the many per-library tables.
        """
        tbl = Table(
            title=title,
            caption=caption,
            border_style="dim" if muted else "bright_cyan",
            header_style="idata.section",
            padding=(0, 1),
        )
        styles = styles or {}
        for label in columns:
            tbl.add_column(
                label,
                style=styles.get(label, ""),
                justify="right" if label in numeric else "left",
            )
        return tbl

    def table(
        self,
        title: str,
        columns: Sequence[str],
        rows: Iterable[Sequence[Any]],
        **options: Any,
    ) -> None:
        """Render *rows* under *columns*; cells are stringified.

        Keyword options are those of :meth:`new_table`.
        """
        tbl = self.new_table(title, columns, **options)
        for row in rows:
            tbl.add_row(*map(str, row))
        self._console.print(tbl)

    def print(self, *args: Any, **kwargs: Any) -> None:
        """Proxy to :meth:`rich.console.Console.print`."""
        self._console.print(*args, **kwargs)

    def blank(self, count: int = 1) -> None:
        for _ in range(count):
            self._console.print()

    def divider(self, style: str = "dim") -> None:
        self._console.rule(style=style)

    def export_text(self) -> str:
        """Return recorded output as plain text (requires ``record=True``)."""
        return self._console.export_text()
