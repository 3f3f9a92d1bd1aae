"""
Compute-backend protocols.

Interfaces the selection core consumes from the compute backend. Any
OpenCL-like runtime can be adapted by implementing these structurally;
nothing here performs device work itself.
"""
from __future__ import annotations

from typing import Any, Protocol, Sequence, runtime_checkable


@runtime_checkable
class Device(Protocol):
    """A compute device."""

    @property
    def name(self) -> str:
        """Device name, for logging."""
        ...

    @property
    def extensions(self) -> str:
        """Space-separated extension names (CL_DEVICE_EXTENSIONS)."""
        ...


@runtime_checkable
class CompiledProgram(Protocol):
    """A program compiled for one context."""

    @property
    def binary(self) -> bytes:
        """Device binary, suitable for `Context.load_binary`."""
        ...


@runtime_checkable
class Context(Protocol):
    """A compute context.

    Contexts partition the program cache, so they must be hashable.
    """

    def compile(self, source: str, name: str) -> CompiledProgram:
        """Compile program source for every device of the context.

        Raises whatever the backend raises on build failure.
        """
        ...

    def load_binary(self, binary: bytes, name: str) -> CompiledProgram:
        """Recreate a program from a binary produced by `compile`."""
        ...


@runtime_checkable
class Queue(Protocol):
    """An in-order command queue bound to one context and device."""

    @property
    def context(self) -> Context:
        """Context the queue belongs to."""
        ...

    @property
    def device(self) -> Device:
        """Device the queue submits to."""
        ...

    def submit(
        self,
        program: CompiledProgram,
        entry_point: str,
        global_size: Sequence[int],
        local_size: Sequence[int],
        args: Sequence[Any],
    ) -> Any:
        """Enqueue a kernel launch. Must not wait for completion."""
        ...

    def finish(self) -> None:
        """Block until every submitted command has completed."""
        ...


def define_extension(extensions: str, extension: str) -> str:
    """Preamble enabling an extension if the device reports it.

    Args:
        extensions: Device extension string.
        extension: Extension name, e.g. "cl_khr_fp64".

    Returns:
        An OpenCL pragma line, or "" if the extension is unsupported.
    """
    if extension in extensions.split():
        return f"#pragma OPENCL EXTENSION {extension} : enable\n"
    return ""
