"""
Idata Analysis Engine
======================

Takes a file (or bytes) from disk to a decoded :class:`ImportSection`:

    1. Read the file, enforcing ``decoder.max_file_size``
    2. Parse the PE headers and section table
    3. Fix the lookup entry width from the optional header magic
    4. Locate the import directory (data directory 1)
    5. Map the image by RVA and decode the import directory

CPU-bound work runs in the default executor so :meth:`ImportEngine.analyze`
can be awaited alongside other work.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
from pathlib import Path

from shared.config import IdataConfig
from shared.logger import IdataLogger

from idata.core.errors import NotAPEFileError
from idata.core.models import (
    DecodeStatus,
    DecodeWarning,
    ImageInfo,
    ImportAnalysisResult,
    ImportSection,
    PEFormat,
)
from idata.parsers.import_section import decode_import_section
from idata.parsers.lookup_table import entry_size_for
from idata.parsers.pe_headers import PEHeaderParser


class ImportEngine:
    """Orchestrates header parsing and import directory decoding.

    Usage::

        engine = ImportEngine()
        result = await engine.analyze("/path/to/app.exe")
        for lib in result.imports.get_directory():
            print(lib.name, len(lib.lookup_entries))

    Or synchronously::

        result = engine.analyze_sync("/path/to/app.exe")
    """

    def __init__(
        self,
        config: IdataConfig | None = None,
        logger: IdataLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: Idata configuration.  Defaults are used if not provided.
            logger: Logger instance.  A new one is created if not provided.
        """
        self._config: IdataConfig = config or IdataConfig()
        self._logger: IdataLogger = logger or IdataLogger("engine")

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    async def analyze(self, file_path: str) -> ImportAnalysisResult:
        """Decode the import directory of the file at *file_path*.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file exceeds ``decoder.max_file_size``.
            NotAPEFileError: If the file is not a PE image.
            UnsupportedFormatError: For ROM or unknown optional header magic.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")

        file_size = path.stat().st_size
        max_size = self._config.decoder.max_file_size
        if file_size > max_size:
            raise ValueError(
                f"File too large: {file_size:,} bytes (max: {max_size:,} bytes)"
            )

        self._logger.info(f"Starting import analysis of {file_path}")
        data = path.read_bytes()
        resolved = str(path.resolve())

        with self._logger.timed(f"import decode of {path.name}"):
            result = await asyncio.get_running_loop().run_in_executor(
                None, self.analyze_data, data, resolved
            )

        section = result.imports
        self._logger.info(
            f"Decoded {len(section.directory)} libraries, "
            f"{len(section.get_imports())} symbols ({section.status.value})"
        )
        return result

    def analyze_sync(self, file_path: str) -> ImportAnalysisResult:
        """Synchronous wrapper around :meth:`analyze`."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop and loop.is_running():
            with concurrent.futures.ThreadPoolExecutor() as pool:
                return pool.submit(asyncio.run, self.analyze(file_path)).result()
        return asyncio.run(self.analyze(file_path))

    def analyze_data(self, data: bytes, file_path: str = "<memory>") -> ImportAnalysisResult:
        """Decode the import directory of an in-memory PE file.

        Raises:
            NotAPEFileError: If *data* is not a PE image.
            UnsupportedFormatError: For ROM or unknown optional header magic.
        """
        parser_logger = self._logger.child("parsers")
        headers = PEHeaderParser(data, parser_logger)
        if not headers.parse():
            raise NotAPEFileError(f"Not a PE image: {file_path}")

        pe_format = PEFormat.from_magic(headers.magic)
        entry_size_for(pe_format)

        import_rva, import_size = headers.import_directory()
        import_offset = headers.rva_to_offset(import_rva) if import_rva else None
        info = ImageInfo(
            path=file_path,
            size=len(data),
            pe_format=pe_format,
            machine=headers.machine,
            image_base=headers.image_base,
            size_of_image=headers.size_of_image,
            import_directory_rva=import_rva,
            import_directory_size=import_size,
            import_directory_offset=import_offset,
        )

        if import_rva == 0:
            self._logger.info("Image has no import directory")
            return ImportAnalysisResult(info=info, imports=ImportSection(pe_format=pe_format))

        if import_offset is None:
            message = f"import directory rva 0x{import_rva:x} is not backed by file data"
            self._logger.warning(message)
            return ImportAnalysisResult(
                info=info,
                imports=ImportSection(
                    virtual_address=import_rva,
                    pe_format=pe_format,
                    status=DecodeStatus.PARTIAL,
                    warnings=[DecodeWarning(message=message, rva=import_rva)],
                ),
            )

        section = decode_import_section(
            headers.mapped_image(),
            import_rva,
            pe_format,
            len(data),
            import_offset,
            max_workers=self._config.decoder.lookup_workers,
            logger=parser_logger,
        )
        return ImportAnalysisResult(info=info, imports=section)
