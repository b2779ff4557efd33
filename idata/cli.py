"""
Idata CLI -- PE Import Directory Decoder
=========================================

Click-based command-line interface for decoding the import directory of a
PE32 or PE32+ image.

Usage::

    # Table output
    idata /path/to/app.exe

    # JSON to stdout
    idata /path/to/app.exe --json

    # Save a JSON report and list consumed file ranges
    idata /path/to/app.exe --output imports.json --locations

    # Decode lookup tables on four threads
    idata /path/to/app.exe --workers 4

Exit codes:
    0  decoded (possibly partially; see the warnings)
    1  not a PE image, unreadable file or other failure
    2  unsupported optional header format (ROM or unknown magic)

References:
    - Click documentation: https://click.palletsprojects.com/
"""

from __future__ import annotations

import asyncio
import json
import sys

import click
from rich.markup import escape

from shared.config import IdataConfig
from shared.console import IdataConsole
from shared.logger import IdataLogger, set_level

from idata.core.engine import ImportEngine
from idata.core.errors import NotAPEFileError, UnsupportedFormatError
from idata.output.console import ImportConsoleOutput
from idata.output.report import ImportReportGenerator

EXIT_FAILURE: int = 1
EXIT_UNSUPPORTED: int = 2


@click.command("idata")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--json", "json_output",
    is_flag=True,
    default=False,
    help="Print the report as JSON to stdout.",
)
@click.option(
    "--output", "-o",
    "output_path",
    type=click.Path(dir_okay=False),
    default=None,
    help="Write a JSON report to this path.",
)
@click.option(
    "--locations", "-l",
    is_flag=True,
    default=False,
    help="Show the file ranges consumed by the import data.",
)
@click.option(
    "--workers", "-w",
    type=click.IntRange(min=1),
    default=None,
    help="Threads used to decode lookup tables (default from config: 1).",
)
@click.option(
    "--config", "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Path to an idata.toml configuration file.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
def idata_cli(
    path: str,
    json_output: bool,
    output_path: str | None,
    locations: bool,
    workers: int | None,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Idata -- PE Import Directory Decoder.

    Decode the Import Directory Table of PATH together with the import
    lookup (or address) table of every imported library.

    Examples:

    \b
        idata C:/Windows/System32/notepad.exe
        idata sample.dll --json > imports.json
    """
    console = IdataConsole(quiet=json_output)

    try:
        config = IdataConfig.load(config_path)
    except (OSError, ValueError) as exc:
        console.error(f"Could not load configuration: {escape(str(exc))}")
        sys.exit(EXIT_FAILURE)

    if workers is not None:
        config.decoder.lookup_workers = workers
    show_locations = locations or config.decoder.show_locations

    settings = config.global_settings
    log_level = "DEBUG" if verbose or settings.debug else settings.log_level
    logger = IdataLogger(
        "cli",
        log_level=log_level,
        log_file=settings.log_file or None,
        json_logs=settings.log_json,
    )
    set_level(log_level)

    engine = ImportEngine(config=config, logger=logger)
    try:
        result = asyncio.run(engine.analyze(path))
    except KeyboardInterrupt:
        console.warning("Analysis interrupted by user.")
        sys.exit(130)
    except UnsupportedFormatError as exc:
        logger.error(f"Unsupported image: {exc}")
        console.error(f"Unsupported image: {escape(str(exc))}")
        sys.exit(EXIT_UNSUPPORTED)
    except NotAPEFileError as exc:
        console.error(escape(str(exc)))
        sys.exit(EXIT_FAILURE)
    except (OSError, ValueError) as exc:
        if verbose:
            logger.exception("Analysis failed")
        console.error(f"Analysis failed: {escape(str(exc))}")
        sys.exit(EXIT_FAILURE)

    report_gen = ImportReportGenerator()

    if json_output:
        click.echo(json.dumps(report_gen.build(result), indent=2, ensure_ascii=False))
    else:
        ImportConsoleOutput(console=console).display(result, show_locations=show_locations)

    if output_path:
        report_path = report_gen.generate_json(result, output_path)
        console.success(f"JSON report saved: {escape(report_path)}")


def main() -> None:
    """Entry point for the ``idata`` console script."""
    idata_cli()


if __name__ == "__main__":
    main()
