"""
OpenCL backend for gpuhash.

Provides an OpenCL implementation using PyOpenCL. Kernels are built from
OpenCL C source at context creation and launched on an in-order command
queue.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from gpuhash.backends.base import (
    Backend,
    BackendDescriptor,
    BackendKind,
    DeviceInfo,
    DeviceLimits,
)
from gpuhash.exceptions import BackendUnavailableError

if TYPE_CHECKING:
    from gpuhash.kernels.registry import KernelSource


logger = logging.getLogger(__name__)

# Global work size is a size_t, but 32-bit hosts and some drivers reject
# anything above this.
MAX_GLOBAL_WORK_SIZE = 2**32 - 1


@dataclass
class OpenCLContext:
    """Native state for one opened OpenCL device."""

    device: Any  # pyopencl.Device
    context: Any  # pyopencl.Context
    queue: Any  # pyopencl.CommandQueue


class OpenCLBackend(Backend):
    """
    OpenCL backend implementation using PyOpenCL.

    Only GPU and accelerator devices are enumerated unless ``allow_cpu`` is
    set, so an OpenCL CPU runtime does not masquerade as GPU acceleration.

    Example:
        >>> backend = OpenCLBackend()
        >>> descriptor = backend.probe()  # raises if no OpenCL device
    """

    def __init__(self, *, allow_cpu: bool = False) -> None:
        """
        Initialize the OpenCL backend.

        Args:
            allow_cpu: Also accept OpenCL CPU devices.
        """
        self._allow_cpu = allow_cpu
        self._cl: Any = None
        self._native_devices: list[Any] = []

    @property
    def kind(self) -> BackendKind:
        """Get the backend kind."""
        return BackendKind.OPENCL

    @property
    def cl(self) -> Any:
        """Get the PyOpenCL module loaded by ``probe``."""
        if self._cl is None:
            raise BackendUnavailableError("opencl", "backend has not been probed")
        return self._cl

    def probe(self) -> BackendDescriptor:
        """Enumerate OpenCL platforms and their devices."""
        try:
            import pyopencl as cl
        except ImportError as e:
            raise BackendUnavailableError("opencl", f"PyOpenCL not installed: {e}") from e
        except Exception as e:
            raise BackendUnavailableError("opencl", f"Failed to load OpenCL ICD loader: {e}") from e

        try:
            platforms = cl.get_platforms()
        except Exception as e:
            raise BackendUnavailableError("opencl", f"No OpenCL platform: {e}") from e

        mask = cl.device_type.ALL if self._allow_cpu else (
            cl.device_type.GPU | cl.device_type.ACCELERATOR
        )
        native: list[Any] = []
        for platform in platforms:
            try:
                native.extend(platform.get_devices(device_type=mask))
            except Exception as e:
                # Platforms with no matching device raise DEVICE_NOT_FOUND
                logger.debug("Skipping OpenCL platform %s: %s", platform.name, e)

        if not native:
            raise BackendUnavailableError("opencl", "no OpenCL GPU devices found")

        devices = []
        for i, dev in enumerate(native):
            max_wg = int(dev.max_work_group_size)
            devices.append(
                DeviceInfo(
                    index=i,
                    name=str(dev.name).strip(),
                    limits=DeviceLimits(
                        max_threads_per_block=max_wg,
                        max_grid_dimension=MAX_GLOBAL_WORK_SIZE // max_wg,
                        shared_memory_bytes=int(dev.local_mem_size),
                        total_memory_bytes=int(dev.global_mem_size),
                    ),
                )
            )

        self._cl = cl
        self._native_devices = native
        logger.debug("OpenCL probe found %d device(s)", len(devices))
        return BackendDescriptor(
            kind=self.kind,
            available=True,
            devices=tuple(devices),
            backend=self,
        )

    def create_context(self, device: DeviceInfo) -> OpenCLContext:
        """Create a context and in-order queue on one device."""
        cl = self.cl
        native = self._native_devices[device.index]
        context = cl.Context([native])
        queue = cl.CommandQueue(context, native)
        return OpenCLContext(device=native, context=context, queue=queue)

    def destroy_context(self, context: OpenCLContext) -> None:
        """Drain the queue; PyOpenCL releases the handles on collection."""
        context.queue.finish()

    def memory_info(self, context: OpenCLContext) -> tuple[int, int]:
        """
        Get allocatable and total device memory.

        OpenCL has no free-memory query; the largest single allocation is
        reported as free.
        """
        dev = context.device
        return int(dev.max_mem_alloc_size), int(dev.global_mem_size)

    def allocate(self, context: OpenCLContext, nbytes: int) -> Any:
        """Allocate a read/write buffer (OpenCL rejects zero-size buffers)."""
        cl = self.cl
        return cl.Buffer(context.context, cl.mem_flags.READ_WRITE, size=max(nbytes, 1))

    def free(self, context: OpenCLContext, buffer: Any) -> None:
        """Release an OpenCL buffer."""
        buffer.release()

    def copy_to_device(
        self, context: OpenCLContext, buffer: Any, data: bytes | memoryview
    ) -> None:
        """Blocking host-to-device copy."""
        if len(data) == 0:
            return
        host = np.frombuffer(data, dtype=np.uint8)
        self.cl.enqueue_copy(context.queue, buffer, host, is_blocking=True)

    def copy_to_host(self, context: OpenCLContext, buffer: Any, nbytes: int) -> bytes:
        """Blocking device-to-host copy."""
        host = np.empty(nbytes, dtype=np.uint8)
        if nbytes:
            self.cl.enqueue_copy(context.queue, host, buffer, is_blocking=True)
        return host.tobytes()

    def build_program(self, context: OpenCLContext, source: KernelSource) -> Any:
        """Build OpenCL C source for the context's device."""
        if source.code is None:
            raise ValueError(f"Kernel source for '{source.compress_entry}' has no OpenCL code")
        return self.cl.Program(context.context, source.code).build()

    def launch(
        self,
        context: OpenCLContext,
        program: Any,
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        """Enqueue an NDRange of ``grid_size`` work-groups of ``block_size``."""
        kernel = self.cl.Kernel(program, entry)
        kernel(context.queue, (grid_size * block_size,), (block_size,), *args)

    def synchronize(self, context: OpenCLContext) -> None:
        """Wait for the queue to drain."""
        context.queue.finish()

    def __repr__(self) -> str:
        """String representation."""
        return f"OpenCLBackend(devices={len(self._native_devices)}, allow_cpu={self._allow_cpu})"
