"""
Autovariant configuration.

This module provides:
- AutovariantConfig: Process configuration, usually read from environment
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar


def _env_flag(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AutovariantConfig:
    """Configuration for model registries and program caches.

    Attributes:
        model_file: Declarative model description imported on the first
            registry build of every queue. None means built-in defaults.
        cache_dir: Directory for compiled program binaries. None disables
            the on-disk cache.
        strict_import: If True, a broken model description raises instead
            of falling back to built-in defaults.
        max_fingerprint_length: Maximum length of a program fingerprint.

    Example:
        config = AutovariantConfig(
            model_file=Path("models/tahiti.json"),
            cache_dir=Path("/tmp/autovariant"),
        )
    """

    MODEL_FILE_ENV: ClassVar[str] = "AUTOVARIANT_MODEL_FILE"
    CACHE_DIR_ENV: ClassVar[str] = "AUTOVARIANT_CACHE_DIR"
    STRICT_IMPORT_ENV: ClassVar[str] = "AUTOVARIANT_STRICT_IMPORT"
    MAX_FINGERPRINT_ENV: ClassVar[str] = "AUTOVARIANT_MAX_FINGERPRINT"
    DEFAULT_MAX_FINGERPRINT: ClassVar[int] = 255

    model_file: Path | None = None
    cache_dir: Path | None = None
    strict_import: bool = False
    max_fingerprint_length: int = 255

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.max_fingerprint_length <= 0:
            raise ValueError("max_fingerprint_length must be positive")

    @classmethod
    def from_env(cls) -> "AutovariantConfig":
        """Create config from environment variables.

        Environment variables:
            AUTOVARIANT_MODEL_FILE: Model description path
            AUTOVARIANT_CACHE_DIR: Program binary cache directory
            AUTOVARIANT_STRICT_IMPORT: "1" or "true" to fail on bad descriptions
            AUTOVARIANT_MAX_FINGERPRINT: Maximum fingerprint length

        An unset model file is not an error: the registry then serves
        the built-in defaults.

        Returns:
            AutovariantConfig with values from environment.
        """
        model_file_str = os.environ.get(cls.MODEL_FILE_ENV)
        model_file = Path(model_file_str) if model_file_str else None

        cache_dir_str = os.environ.get(cls.CACHE_DIR_ENV)
        cache_dir = Path(cache_dir_str).expanduser() if cache_dir_str else None

        strict_import = _env_flag(os.environ.get(cls.STRICT_IMPORT_ENV, "0"))

        max_fp_str = os.environ.get(cls.MAX_FINGERPRINT_ENV)
        max_fingerprint_length = (
            int(max_fp_str) if max_fp_str else cls.DEFAULT_MAX_FINGERPRINT
        )

        return cls(
            model_file=model_file,
            cache_dir=cache_dir,
            strict_import=strict_import,
            max_fingerprint_length=max_fingerprint_length,
        )
