"""
Device context lifecycle.

A DeviceContext owns one backend-native context on one device, the
MemoryManager for buffers allocated in it, and the programs built for it.
Contexts live for a single hash request and are never retried or reused.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from gpuhash.backends.base import Backend, BackendDescriptor, BackendKind, DeviceInfo, DeviceLimits
from gpuhash.core.memory import MemoryManager
from gpuhash.core.tracking import record
from gpuhash.exceptions import DeviceInitError, ExecutionError

if TYPE_CHECKING:
    from gpuhash.kernels.registry import AlgorithmDescriptor


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeviceHandle:
    """An opened device: discovery info plus the backend-native context."""

    device: DeviceInfo
    native: Any


class DeviceContext:
    """
    An opened device context.

    Not safe for concurrent use; open one context per in-flight request.

    Example:
        >>> with open_device(descriptor) as context:
        ...     buffer = context.memory.upload(b"abc")
        ...     context.memory.release(buffer)
    """

    def __init__(self, descriptor: BackendDescriptor, handle: DeviceHandle) -> None:
        """
        Initialize the context. Use ``open_device`` instead of calling this.

        Args:
            descriptor: Descriptor of the backend the context belongs to.
            handle: Opened device handle.
        """
        self._descriptor = descriptor
        self._handle: DeviceHandle | None = handle
        self._device = handle.device
        self._programs: dict[str, Any] = {}
        self._closed = False
        self.memory = MemoryManager(self)

    @property
    def backend(self) -> Backend:
        """Get the backend implementation."""
        return self._descriptor.backend

    @property
    def kind(self) -> BackendKind:
        """Get the backend kind."""
        return self._descriptor.kind

    @property
    def device(self) -> DeviceInfo:
        """Get the opened device."""
        return self._device

    @property
    def limits(self) -> DeviceLimits:
        """Get the device limits."""
        return self._device.limits

    @property
    def native(self) -> Any:
        """Get the backend-native context."""
        if self._handle is None:
            raise DeviceInitError(self.kind.value, self._device.index, "context is closed")
        return self._handle.native

    @property
    def is_closed(self) -> bool:
        """Check if the context has been closed."""
        return self._closed

    def program_for(self, algorithm: AlgorithmDescriptor) -> Any:
        """
        Get the built program for an algorithm, building it on first use.

        Raises:
            ExecutionError: If the algorithm has no kernel for this backend
                or the build fails.
        """
        key = algorithm.algorithm_id
        if key in self._programs:
            return self._programs[key]

        source = algorithm.kernel_for(self.kind)
        if source is None:
            raise ExecutionError(key, self.kind.value, "no kernel implementation for this backend")

        try:
            program = self.backend.build_program(self.native, source)
        except Exception as e:
            raise ExecutionError(key, self.kind.value, f"kernel build failed: {e}") from e

        self._programs[key] = program
        logger.debug("Built '%s' kernels on %s device %d", key, self.kind.value, self._device.index)
        return program

    def close(self) -> None:
        """
        Release every live buffer, then destroy the native context.

        Idempotent. Buffers are always released before the context itself.
        """
        if self._closed:
            return

        handle = self._handle
        try:
            leaked = self.memory.live_count
            if leaked:
                logger.warning(
                    "Releasing %d buffer(s) still live at close of %s device %d",
                    leaked,
                    self.kind.value,
                    self._device.index,
                )
                self.memory.release_all()
        finally:
            self._programs.clear()
            self._closed = True
            self._handle = None
            try:
                if handle is not None:
                    self.backend.destroy_context(handle.native)
            finally:
                record("contexts_closed")
                logger.info("Closed %s device %d", self.kind.value, self._device.index)

    def __enter__(self) -> DeviceContext:
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Context manager exit."""
        self.close()

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"DeviceContext(backend={self.kind.value}, device={self._device.name!r}, "
            f"closed={self._closed})"
        )


def open_device(descriptor: BackendDescriptor, device_index: int | None = None) -> DeviceContext:
    """
    Open a context on one device of a probed backend.

    Args:
        descriptor: Result of backend selection.
        device_index: Device to open (default: 0).

    Returns:
        Opened context. The caller must close it.

    Raises:
        DeviceInitError: If the index is invalid or context creation fails.
            Not retried.
    """
    index = 0 if device_index is None else device_index
    name = descriptor.name

    if not descriptor.available or not descriptor.devices:
        raise DeviceInitError(name, index, "backend has no available devices")
    if index < 0 or index >= len(descriptor.devices):
        raise DeviceInitError(
            name,
            index,
            f"device index out of range (0-{len(descriptor.devices) - 1})",
        )

    device = descriptor.devices[index]
    try:
        native = descriptor.backend.create_context(device)
    except Exception as e:
        raise DeviceInitError(name, index, str(e)) from e

    record("contexts_opened")
    logger.info("Opened %s device %d (%s)", name, index, device.name)
    return DeviceContext(descriptor, DeviceHandle(device=device, native=native))


def close_device(context: DeviceContext) -> None:
    """Close a context opened by ``open_device``."""
    context.close()


@contextmanager
def device_session(
    descriptor: BackendDescriptor,
    device_index: int | None = None,
) -> Iterator[DeviceContext]:
    """Open a device context that is closed on every exit path."""
    context = open_device(descriptor, device_index)
    try:
        yield context
    finally:
        context.close()
