"""
Idata Configuration Management
===============================

Dataclass-based configuration for the Idata import decoder, persisted as
TOML.  Every section maps one-to-one onto a dataclass so that a config file
only has to name the keys it wants to override.

Example ``idata.toml``::

    [global]
    log_level = "DEBUG"
    log_file = "logs/idata.log"
    log_json = true

    [decoder]
    lookup_workers = 4
    show_locations = true

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
    - PEP 680 -- tomllib: Support for Parsing TOML in the Standard Library.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[no-redef]


# Looked up next to the project root when no explicit path is given.
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "idata.toml"


# ============================ Section Configs ==============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging and general settings shared by every Idata entry point."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False
    version: str = "1.0.0"


@dataclass(frozen=False, slots=True)
class DecoderConfig:
    """Settings for the import directory decoder.

    ``lookup_workers`` above one decodes the per-library lookup tables on a
    thread pool; output order is unaffected.
    """

    max_file_size: int = 52_428_800  # 50 MiB
    lookup_workers: int = 1
    show_locations: bool = False


# ============================ Master Config ================================


@dataclass(frozen=False, slots=True)
class IdataConfig:
    """Aggregate of all configuration sections.

    Usage:
        >>> config = IdataConfig.load()                # default path
        >>> config = IdataConfig.load("custom.toml")   # explicit path
        >>> config.decoder.lookup_workers
        1
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    decoder: DecoderConfig = field(default_factory=DecoderConfig)

    @classmethod
    def load(cls, path: str | Path | None = None) -> IdataConfig:
        """Load configuration from a TOML file.

        Args:
            path: Path to a TOML file.  ``None`` means ``<root>/idata.toml``,
                  and a missing default file yields pure defaults.

        Returns:
            A populated :class:`IdataConfig`.

        Raises:
            FileNotFoundError: If an explicitly given *path* does not exist.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            decoder=cls._build_section(DecoderConfig, raw.get("decoder", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the configuration tree to a plain dictionary."""
        return asdict(self)

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate dataclass *cls* from *data*, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def get_config(path: str | Path | None = None) -> IdataConfig:
    """Return a cached :class:`IdataConfig`, reloading when *path* is given."""
    if not hasattr(get_config, "_cached") or path is not None:
        get_config._cached = IdataConfig.load(path)  # type: ignore[attr-defined]
    return get_config._cached  # type: ignore[attr-defined]
