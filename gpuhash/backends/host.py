"""
Host backend for gpuhash.

Provides an in-process implementation of the backend interface that runs
the reference kernels from ``gpuhash.kernels.host``. Useful for testing and
development without a GPU; it is never part of automatic selection.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from gpuhash.backends.base import (
    Backend,
    BackendDescriptor,
    BackendKind,
    DeviceInfo,
    DeviceLimits,
)

if TYPE_CHECKING:
    from gpuhash.kernels.registry import KernelSource


DEFAULT_MEMORY_LIMIT = 1024 * 1024 * 1024

HOST_LIMITS = DeviceLimits(
    max_threads_per_block=1024,
    max_grid_dimension=2**31 - 1,
    shared_memory_bytes=48 * 1024,
    total_memory_bytes=DEFAULT_MEMORY_LIMIT,
    warp_size=32,
)


@dataclass
class HostContext:
    """Bookkeeping for one host "device" context."""

    memory_limit: int
    used_bytes: int = 0


class HostBackend(Backend):
    """
    Host backend implementation.

    Buffers are ``bytearray`` objects and kernels are Python callables that
    receive the launch geometry followed by the kernel arguments. The
    memory limit is enforced so allocation failures can be exercised.

    Example:
        >>> backend = HostBackend()
        >>> descriptor = backend.probe()
        >>> descriptor.devices[0].name
        'host'
    """

    def __init__(self, memory_limit: int = DEFAULT_MEMORY_LIMIT) -> None:
        """
        Initialize the host backend.

        Args:
            memory_limit: Maximum bytes live at once per context.
        """
        self._memory_limit = memory_limit

    @property
    def kind(self) -> BackendKind:
        """Get the backend kind."""
        return BackendKind.HOST

    def probe(self) -> BackendDescriptor:
        """The host is always available as a single device."""
        limits = DeviceLimits(
            max_threads_per_block=HOST_LIMITS.max_threads_per_block,
            max_grid_dimension=HOST_LIMITS.max_grid_dimension,
            shared_memory_bytes=HOST_LIMITS.shared_memory_bytes,
            total_memory_bytes=self._memory_limit,
            warp_size=HOST_LIMITS.warp_size,
        )
        return BackendDescriptor(
            kind=self.kind,
            available=True,
            devices=(DeviceInfo(index=0, name="host", limits=limits),),
            backend=self,
        )

    def create_context(self, device: DeviceInfo) -> HostContext:
        """Create a host context."""
        return HostContext(memory_limit=self._memory_limit)

    def destroy_context(self, context: HostContext) -> None:
        """Destroy a host context (nothing to release)."""
        pass

    def memory_info(self, context: HostContext) -> tuple[int, int]:
        """Get remaining and total bytes under the memory limit."""
        return context.memory_limit - context.used_bytes, context.memory_limit

    def allocate(self, context: HostContext, nbytes: int) -> bytearray:
        """Allocate a zero-filled ``bytearray``."""
        if context.used_bytes + nbytes > context.memory_limit:
            raise MemoryError(
                f"host memory limit of {context.memory_limit} bytes exceeded"
            )
        context.used_bytes += nbytes
        return bytearray(nbytes)

    def free(self, context: HostContext, buffer: bytearray) -> None:
        """Return a buffer's bytes to the context's budget."""
        context.used_bytes -= len(buffer)

    def copy_to_device(
        self, context: HostContext, buffer: bytearray, data: bytes | memoryview
    ) -> None:
        """Copy host bytes into the buffer."""
        buffer[:] = data

    def copy_to_host(self, context: HostContext, buffer: bytearray, nbytes: int) -> bytes:
        """Copy the buffer out as immutable bytes."""
        return bytes(buffer[:nbytes])

    def build_program(self, context: HostContext, source: KernelSource) -> dict[str, Any]:
        """Resolve the host callables for a kernel source."""
        if source.host_functions is None:
            raise ValueError(f"Kernel source for '{source.compress_entry}' has no host functions")
        return dict(source.host_functions)

    def launch(
        self,
        context: HostContext,
        program: dict[str, Any],
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        """Run a host kernel synchronously."""
        program[entry](grid_size, block_size, *args)

    def synchronize(self, context: HostContext) -> None:
        """Synchronize (no-op; host kernels run synchronously)."""
        pass

    def __repr__(self) -> str:
        """String representation."""
        return f"HostBackend(memory_limit={self._memory_limit})"
