"""
Device memory management.

Every buffer is owned by the MemoryManager of exactly one device context
and tagged with a process-unique generation number. Operations on a buffer
whose generation is not live in the manager (released, or allocated by a
different context) are rejected instead of touching freed memory.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

from gpuhash.core.tracking import record
from gpuhash.exceptions import (
    AllocError,
    InvalidConfigurationError,
    InvalidHandleError,
    TransferError,
)

if TYPE_CHECKING:
    from gpuhash.core.context import DeviceContext


logger = logging.getLogger(__name__)

_generations = itertools.count(1)
_generation_lock = threading.Lock()


def _next_generation() -> int:
    with _generation_lock:
        return next(_generations)


class BufferRole(Enum):
    """What a device buffer holds."""

    INPUT = auto()
    OUTPUT = auto()
    SCRATCH = auto()


@dataclass(eq=False)
class DeviceBuffer:
    """A device-resident memory region of fixed length."""

    nbytes: int
    role: BufferRole
    generation: int
    native: Any = field(repr=False)
    released: bool = False


class MemoryManager:
    """
    Allocates, copies and releases buffers for one device context.

    Example:
        >>> buffer = context.memory.upload(b"abc")
        >>> context.memory.download(buffer)
        b'abc'
        >>> context.memory.release(buffer)
    """

    def __init__(self, context: DeviceContext) -> None:
        """
        Initialize the manager.

        Args:
            context: Owning device context.
        """
        self._context = context
        self._live: dict[int, DeviceBuffer] = {}

    @property
    def live_count(self) -> int:
        """Get the number of buffers not yet released."""
        return len(self._live)

    @property
    def live_bytes(self) -> int:
        """Get the total size of live buffers."""
        return sum(b.nbytes for b in self._live.values())

    def upload(self, data: bytes | bytearray | memoryview) -> DeviceBuffer:
        """
        Allocate an input buffer and copy host bytes into it.

        Zero-length input yields a zero-length buffer.

        Raises:
            AllocError: If the device cannot hold the data.
            TransferError: If the copy fails.
        """
        view = memoryview(data).cast("B")
        buffer = self._allocate(view.nbytes, BufferRole.INPUT)
        try:
            self._backend.copy_to_device(self._context.native, buffer.native, view)
        except Exception as e:
            self.discard(buffer)
            raise TransferError("host to device", str(e)) from e
        return buffer

    def alloc_output(self, size: int) -> DeviceBuffer:
        """Allocate an uninitialized output buffer of ``size`` bytes."""
        return self._allocate(size, BufferRole.OUTPUT)

    def alloc_scratch(self, size: int) -> DeviceBuffer:
        """Allocate an uninitialized intermediate buffer."""
        return self._allocate(size, BufferRole.SCRATCH)

    def download(self, buffer: DeviceBuffer) -> bytes:
        """
        Copy a buffer back to host memory.

        Returns:
            Exactly ``buffer.nbytes`` bytes.

        Raises:
            InvalidHandleError: If the buffer is not live in this context.
            TransferError: If the copy fails.
        """
        self._check_live(buffer, "device to host")
        try:
            data = self._backend.copy_to_host(self._context.native, buffer.native, buffer.nbytes)
        except Exception as e:
            raise TransferError("device to host", str(e)) from e

        if len(data) != buffer.nbytes:
            raise TransferError(
                "device to host",
                f"expected {buffer.nbytes} bytes, got {len(data)}",
            )
        return data

    def native_of(self, buffer: DeviceBuffer) -> Any:
        """Get the backend-native handle of a live buffer."""
        self._check_live(buffer, "kernel argument")
        return buffer.native

    def release(self, buffer: DeviceBuffer) -> None:
        """
        Free a buffer.

        Raises:
            InvalidHandleError: If the buffer was already released or
                belongs to another context.
        """
        self._check_live(buffer, "release")
        del self._live[buffer.generation]
        native = buffer.native
        buffer.native = None
        buffer.released = True
        try:
            self._backend.free(self._context.native, native)
        finally:
            record("buffers_released")
            logger.debug(
                "Released %s buffer gen=%d (%d bytes)",
                buffer.role.name,
                buffer.generation,
                buffer.nbytes,
            )

    def discard(self, buffer: DeviceBuffer) -> None:
        """
        Free a buffer while another error is propagating.

        A failure to free is logged instead of raised, so the caller sees
        the error that triggered the cleanup.
        """
        try:
            self.release(buffer)
        except Exception as e:
            logger.warning(
                "Failed to release %s buffer gen=%d during cleanup: %s",
                buffer.role.name,
                buffer.generation,
                e,
            )

    def release_all(self) -> None:
        """Free every live buffer, raising the first failure afterwards."""
        first_error: Exception | None = None
        for buffer in list(self._live.values()):
            try:
                self.release(buffer)
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

    @property
    def _backend(self) -> Any:
        return self._context.backend

    def _check_live(self, buffer: DeviceBuffer, operation: str) -> None:
        if self._live.get(buffer.generation) is not buffer:
            raise InvalidHandleError(operation, buffer.generation)

    def _allocate(self, nbytes: int, role: BufferRole) -> DeviceBuffer:
        if nbytes < 0:
            raise InvalidConfigurationError("nbytes", nbytes, "must be non-negative")
        if self._context.is_closed:
            raise AllocError(nbytes, None, "device context is closed")

        native_ctx = self._context.native
        try:
            available, _total = self._backend.memory_info(native_ctx)
        except Exception as e:
            raise AllocError(nbytes, None, f"memory query failed: {e}") from e

        if nbytes > available:
            raise AllocError(nbytes, available)

        try:
            native = self._backend.allocate(native_ctx, nbytes)
        except Exception as e:
            raise AllocError(nbytes, available, str(e)) from e

        buffer = DeviceBuffer(
            nbytes=nbytes,
            role=role,
            generation=_next_generation(),
            native=native,
        )
        self._live[buffer.generation] = buffer
        record("buffers_allocated")
        logger.debug("Allocated %s buffer gen=%d (%d bytes)", role.name, buffer.generation, nbytes)
        return buffer

    def __repr__(self) -> str:
        """String representation."""
        return f"MemoryManager(live={self.live_count}, bytes={self.live_bytes})"
