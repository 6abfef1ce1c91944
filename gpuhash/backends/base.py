"""
Backend base classes and interfaces.

Defines the abstract interface that all backends must implement, plus the
read-only descriptors a probe produces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from gpuhash.exceptions import InvalidConfigurationError

if TYPE_CHECKING:
    from gpuhash.kernels.registry import KernelSource


class BackendKind(Enum):
    """Type of compute backend."""

    CUDA = "cuda"
    OPENCL = "opencl"
    HOST = "host"

    @classmethod
    def parse(cls, value: str | BackendKind) -> BackendKind:
        """Parse a backend name such as ``"cuda"`` (case-insensitive)."""
        if isinstance(value, BackendKind):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise InvalidConfigurationError(
                "backend",
                value,
                f"expected one of {[k.value for k in cls]}",
            ) from None


@dataclass(frozen=True)
class DeviceLimits:
    """Launch and memory limits of a compute device."""

    max_threads_per_block: int
    max_grid_dimension: int
    shared_memory_bytes: int = 0
    total_memory_bytes: int = 0
    warp_size: int = 32

    @property
    def max_threads_per_launch(self) -> int:
        """Largest number of threads a single 1-D launch can cover."""
        return self.max_threads_per_block * self.max_grid_dimension


@dataclass(frozen=True)
class DeviceInfo:
    """A device discovered at probe time."""

    index: int
    name: str
    limits: DeviceLimits


@dataclass(frozen=True)
class BackendDescriptor:
    """Result of a successful backend probe.

    Read-only after creation. ``backend`` is the implementation that produced
    the descriptor and is used to open device contexts.
    """

    kind: BackendKind
    available: bool
    devices: tuple[DeviceInfo, ...]
    backend: Backend = field(compare=False, repr=False)

    @property
    def name(self) -> str:
        """Get the backend name."""
        return self.kind.value


@dataclass
class KernelExecutionResult:
    """Result of a kernel execution."""

    success: bool
    execution_time_ms: float
    error: Exception | None = None


class Backend(ABC):
    """
    Abstract base class for compute backends.

    Each backend wraps one vendor API behind the same small operation set
    (probe, context, allocate, transfer, build, launch, synchronize). Native
    objects returned by one method are only ever passed back to the same
    backend; nothing outside this boundary branches on backend kind.
    """

    @property
    @abstractmethod
    def kind(self) -> BackendKind:
        """Get the backend kind."""
        ...

    @abstractmethod
    def probe(self) -> BackendDescriptor:
        """
        Initialize the backend runtime and enumerate usable devices.

        Returns:
            Descriptor listing the discovered devices.

        Raises:
            BackendUnavailableError: If the runtime is missing, fails to
                initialize, or exposes no devices.
        """
        ...

    @abstractmethod
    def create_context(self, device: DeviceInfo) -> Any:
        """
        Create an execution context on a device.

        Args:
            device: Device discovered by ``probe``.

        Returns:
            Backend-native context object.
        """
        ...

    @abstractmethod
    def destroy_context(self, context: Any) -> None:
        """Destroy a context created by ``create_context``."""
        ...

    @abstractmethod
    def memory_info(self, context: Any) -> tuple[int, int]:
        """
        Get device memory information.

        Returns:
            Tuple of (free bytes, total bytes).
        """
        ...

    @abstractmethod
    def allocate(self, context: Any, nbytes: int) -> Any:
        """
        Allocate ``nbytes`` of device memory.

        Zero-length allocations must succeed.
        """
        ...

    @abstractmethod
    def free(self, context: Any, buffer: Any) -> None:
        """Free device memory returned by ``allocate``."""
        ...

    @abstractmethod
    def copy_to_device(self, context: Any, buffer: Any, data: bytes | memoryview) -> None:
        """Copy host bytes into a device buffer of the same length."""
        ...

    @abstractmethod
    def copy_to_host(self, context: Any, buffer: Any, nbytes: int) -> bytes:
        """Copy ``nbytes`` from a device buffer back to host memory."""
        ...

    @abstractmethod
    def build_program(self, context: Any, source: KernelSource) -> Any:
        """
        Compile or load the kernels described by ``source``.

        Returns:
            Backend-native program object passed back to ``launch``.
        """
        ...

    @abstractmethod
    def launch(
        self,
        context: Any,
        program: Any,
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        """
        Enqueue a 1-D kernel launch.

        Args:
            context: Native context.
            program: Native program from ``build_program``.
            entry: Kernel entry point name.
            grid_size: Number of blocks (work-groups).
            block_size: Threads per block (work-items per group).
            args: Native buffers and NumPy scalars, in kernel order.
        """
        ...

    @abstractmethod
    def synchronize(self, context: Any) -> None:
        """Block until all work enqueued on ``context`` has completed."""
        ...

    def __repr__(self) -> str:
        """String representation."""
        return f"{type(self).__name__}(kind={self.kind.value})"
