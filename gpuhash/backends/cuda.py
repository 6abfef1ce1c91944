"""
CUDA backend for gpuhash.

Provides CUDA-based implementation using CuPy (runtime API, RawModule
compilation through NVRTC, and stream synchronization).
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

NVRTC_OPTIONS = ("--std=c++11",)


@dataclass
class CUDAContext:
    """Native state for one opened CUDA device."""

    device: Any  # cupy.cuda.Device
    stream: Any  # cupy.cuda.Stream


def _decode_name(name: Any) -> str:
    return name.decode() if isinstance(name, bytes) else str(name)


class CUDABackend(Backend):
    """
    CUDA backend implementation using CuPy.

    CuPy is imported lazily by ``probe`` so that a missing package or driver
    surfaces as ``BackendUnavailableError`` instead of an import failure.

    Example:
        >>> backend = CUDABackend()
        >>> descriptor = backend.probe()  # raises if no CUDA device
        >>> descriptor.devices[0].limits.max_threads_per_block
        1024
    """

    def __init__(self) -> None:
        """Initialize the CUDA backend (no driver calls are made here)."""
        self._cp: Any = None

    @property
    def kind(self) -> BackendKind:
        """Get the backend kind."""
        return BackendKind.CUDA

    @property
    def cp(self) -> Any:
        """Get the CuPy module loaded by ``probe``."""
        if self._cp is None:
            raise BackendUnavailableError("cuda", "backend has not been probed")
        return self._cp

    def probe(self) -> BackendDescriptor:
        """Initialize the CUDA runtime and enumerate devices."""
        try:
            import cupy as cp
        except ImportError as e:
            raise BackendUnavailableError("cuda", f"CuPy not installed: {e}") from e
        except Exception as e:
            # CuPy raises plain exceptions when libcuda cannot be loaded
            raise BackendUnavailableError("cuda", f"Failed to load CUDA libraries: {e}") from e

        try:
            count = cp.cuda.runtime.getDeviceCount()
        except Exception as e:
            raise BackendUnavailableError("cuda", f"CUDA runtime initialization failed: {e}") from e

        if count == 0:
            raise BackendUnavailableError("cuda", "no CUDA devices found")

        devices = []
        try:
            for i in range(count):
                props = cp.cuda.runtime.getDeviceProperties(i)
                devices.append(
                    DeviceInfo(
                        index=i,
                        name=_decode_name(props["name"]),
                        limits=DeviceLimits(
                            max_threads_per_block=props["maxThreadsPerBlock"],
                            max_grid_dimension=props["maxGridSize"][0],
                            shared_memory_bytes=props["sharedMemPerBlock"],
                            total_memory_bytes=props["totalGlobalMem"],
                            warp_size=props["warpSize"],
                        ),
                    )
                )
        except Exception as e:
            raise BackendUnavailableError("cuda", f"Failed to query device properties: {e}") from e

        self._cp = cp
        logger.debug("CUDA probe found %d device(s)", len(devices))
        return BackendDescriptor(
            kind=self.kind,
            available=True,
            devices=tuple(devices),
            backend=self,
        )

    def create_context(self, device: DeviceInfo) -> CUDAContext:
        """
        Create a dedicated stream on the device.

        The process-wide current device is left unchanged; every later call
        enters the device with ``with context.device``.
        """
        cp = self.cp
        cuda_device = cp.cuda.Device(device.index)
        with cuda_device:
            stream = cp.cuda.Stream(non_blocking=True)
        return CUDAContext(device=cuda_device, stream=stream)

    def destroy_context(self, context: CUDAContext) -> None:
        """Drain the stream and return cached blocks to the driver."""
        with context.device:
            context.stream.synchronize()
            self.cp.get_default_memory_pool().free_all_blocks()

    def memory_info(self, context: CUDAContext) -> tuple[int, int]:
        """Get free and total device memory."""
        with context.device:
            free, total = self.cp.cuda.runtime.memGetInfo()
        return int(free), int(total)

    def allocate(self, context: CUDAContext, nbytes: int) -> Any:
        """Allocate a uint8 CuPy array on the context's device."""
        with context.device:
            return self.cp.empty((nbytes,), dtype=self.cp.uint8)

    def free(self, context: CUDAContext, buffer: Any) -> None:
        """
        Free a CuPy array.

        CuPy returns the block to its pool once the last reference is
        dropped; ``destroy_context`` hands pooled blocks back to the driver.
        """
        del buffer

    def copy_to_device(self, context: CUDAContext, buffer: Any, data: bytes | memoryview) -> None:
        """Copy host bytes into a device buffer."""
        if buffer.size == 0:
            return
        with context.device:
            buffer.set(np.frombuffer(data, dtype=np.uint8), stream=context.stream)

    def copy_to_host(self, context: CUDAContext, buffer: Any, nbytes: int) -> bytes:
        """Copy a device buffer back to host memory."""
        if nbytes == 0:
            return b""
        with context.device:
            host = buffer[:nbytes].get(stream=context.stream)
            context.stream.synchronize()
        return host.tobytes()

    def build_program(self, context: CUDAContext, source: KernelSource) -> Any:
        """Compile CUDA C source with NVRTC."""
        if source.code is None:
            raise ValueError(f"Kernel source for '{source.compress_entry}' has no CUDA code")
        with context.device:
            module = self.cp.RawModule(code=source.code, options=NVRTC_OPTIONS)
            # Force compilation now so errors surface before any launch
            module.get_function(source.pad_entry)
            module.get_function(source.compress_entry)
        return module

    def launch(
        self,
        context: CUDAContext,
        program: Any,
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        """Launch a RawModule kernel on the context's stream."""
        kernel = program.get_function(entry)
        with context.device:
            kernel((grid_size,), (block_size,), tuple(args), stream=context.stream)

    def synchronize(self, context: CUDAContext) -> None:
        """Synchronize the context's stream."""
        with context.device:
            context.stream.synchronize()

    def __repr__(self) -> str:
        """String representation."""
        return f"CUDABackend(probed={self._cp is not None})"
