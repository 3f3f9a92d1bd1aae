"""
Lazily compiled programs and the program cache.

This module provides:
- LazyProgram: Accumulates source fragments, compiles on first use
- CompiledProgramSet: Primary and fallback programs of one fingerprint
- ProgramCache: (context, fingerprint) -> CompiledProgramSet, built once
"""
from __future__ import annotations

import hashlib
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import Lock, RLock
from typing import TYPE_CHECKING, Any, Sequence

from autovariant.backend import CompiledProgram, Context, Device, define_extension
from autovariant.config import AutovariantConfig

if TYPE_CHECKING:
    from autovariant.symbolic import ExpressionBatch
    from autovariant.variants import Variant

logger = logging.getLogger(__name__)

FALLBACK_SUFFIX = "_fb"


class LazyProgram:
    """Program whose sources are collected now and compiled on first use.

    When a cache directory is given, compiled binaries are stored there
    under the SHA-1 of the program source and reloaded instead of
    recompiling. force_recompilation skips the reload.
    """

    def __init__(
        self,
        context: Context,
        name: str,
        *,
        force_recompilation: bool = False,
        cache_dir: Path | None = None,
    ) -> None:
        self._context = context
        self._name = name
        self._force_recompilation = force_recompilation
        self._cache_dir = cache_dir
        self._sources: list[str] = []
        self._program: CompiledProgram | None = None
        self._lock = Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def source(self) -> str:
        return "".join(self._sources)

    @property
    def is_compiled(self) -> bool:
        return self._program is not None

    def add(self, source: str) -> None:
        """Append a source fragment.

        Raises:
            RuntimeError: If the program is already compiled.
        """
        with self._lock:
            if self._program is not None:
                raise RuntimeError(
                    f"Program '{self._name}' is already compiled"
                )
            self._sources.append(source)

    @property
    def program(self) -> CompiledProgram:
        """The compiled program, compiling it on first access."""
        program = self._program
        if program is not None:
            return program
        with self._lock:
            if self._program is None:
                self._program = self._build()
            return self._program

    def _binary_path(self, source: str) -> Path | None:
        if self._cache_dir is None:
            return None
        digest = hashlib.sha1(source.encode("utf-8")).hexdigest()
        return self._cache_dir / f"{digest}.bin"

    def _build(self) -> CompiledProgram:
        source = self.source
        binary_path = self._binary_path(source)

        if (
            binary_path is not None
            and not self._force_recompilation
            and binary_path.exists()
        ):
            logger.debug("Loading program '%s' from %s", self._name, binary_path)
            return self._context.load_binary(binary_path.read_bytes(), self._name)

        logger.debug(
            "Compiling program '%s' (%d source bytes)", self._name, len(source)
        )
        program = self._context.compile(source, self._name)

        if binary_path is not None:
            binary_path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = binary_path.with_suffix(f".{os.getpid()}.tmp")
            tmp_path.write_bytes(program.binary)
            os.replace(tmp_path, binary_path)

        return program


@dataclass(frozen=True)
class CompiledProgramSet:
    """Programs generated for one (context, fingerprint).

    Every variant of the model that built the set contributed one
    kernel to the primary program and one to the fallback program.

    Attributes:
        fingerprint: Program fingerprint.
        primary: Program with vectorized kernels.
        fallback: Program with scalar kernels, for sizes that are not
            a multiple of the vector width.
        variant_count: Number of variants that contributed kernels.
    """

    fingerprint: str
    primary: LazyProgram
    fallback: LazyProgram
    variant_count: int

    def __getitem__(self, slot: int) -> LazyProgram:
        return (self.primary, self.fallback)[slot]

    def __len__(self) -> int:
        return 2


class ProgramCache:
    """Thread-safe store of CompiledProgramSets.

    Entries are built at most once per (context, fingerprint) and never
    evicted: the number of distinct expression structures a process
    runs is small.
    """

    __slots__ = ("_lock", "_entries", "_config", "_builds", "_hits")

    def __init__(self, config: AutovariantConfig | None = None) -> None:
        self._lock = RLock()
        self._entries: dict[tuple[Any, str], CompiledProgramSet] = {}
        self._config = config or AutovariantConfig()
        self._builds = 0
        self._hits = 0

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def builds(self) -> int:
        """Number of program sets built so far."""
        with self._lock:
            return self._builds

    def obtain(
        self,
        context: Context,
        name: str,
        device: Device,
        variants: Sequence["Variant"],
        batch: "ExpressionBatch",
        *,
        force_recompilation: bool = False,
    ) -> CompiledProgramSet:
        """Get the program set for a fingerprint, building it on a miss.

        force_recompilation only affects the programs of a set built by
        this call; an existing set is returned unchanged.

        Args:
            context: Compute context of the batch.
            name: Bind-to-handle fingerprint of the batch.
            device: Device the programs are generated for.
            variants: Variants, in index order.
            batch: Batch the kernels are generated from.
            force_recompilation: Skip reloading cached binaries.

        Returns:
            The CompiledProgramSet for (context, name).
        """
        key = (context, name)
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                self._hits += 1
                logger.debug("Program cache hit: %s", name)
                return entry

            logger.debug("Program cache miss: %s", name)
            entry = self._build(
                context, name, device, variants, batch, force_recompilation
            )
            self._entries[key] = entry
            self._builds += 1
            return entry

    def _build(
        self,
        context: Context,
        name: str,
        device: Device,
        variants: Sequence["Variant"],
        batch: "ExpressionBatch",
        force_recompilation: bool,
    ) -> CompiledProgramSet:
        preamble = define_extension(device.extensions, "cl_khr_fp64")
        programs = tuple(
            LazyProgram(
                context,
                program_name,
                force_recompilation=force_recompilation,
                cache_dir=self._config.cache_dir,
            )
            for program_name in (name, name + FALLBACK_SUFFIX)
        )
        for program in programs:
            program.add(preamble)

        for index, variant in enumerate(variants):
            sources = variant.generate_sources(index, batch, device)
            if len(sources) > len(programs):
                raise ValueError(
                    f"Variant {index} generated {len(sources)} sources, "
                    f"at most {len(programs)} program slots exist"
                )
            for program, source in zip(programs, sources):
                program.add(source)

        return CompiledProgramSet(
            fingerprint=name,
            primary=programs[0],
            fallback=programs[1],
            variant_count=len(variants),
        )

    def clear(self) -> int:
        """Drop all entries. Returns the number of entries removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def stats(self) -> dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "builds": self._builds,
                "hits": self._hits,
            }
