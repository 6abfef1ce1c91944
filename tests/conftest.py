"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Sequence
from typing import Any

import pytest

from gpuhash.backends.base import BackendDescriptor, BackendKind, DeviceInfo, DeviceLimits
from gpuhash.backends.cuda import CUDABackend
from gpuhash.backends.host import HostBackend, HostContext
from gpuhash.backends.opencl import OpenCLBackend
from gpuhash.core.context import DeviceContext, open_device
from gpuhash.core.probe import BackendFactory, BackendProbeCache, reset_probe_cache
from gpuhash.core.tracking import reset_resource_counters
from gpuhash.exceptions import BackendUnavailableError
from gpuhash.kernels.host import HOST_KERNELS
from gpuhash.kernels.registry import KernelSource


# Test backends
class EmulatedBackend(HostBackend):
    """Host backend that reports itself as another backend kind.

    Builds device kernel sources by entry name from the host reference
    kernels, so the full pipeline runs for CUDA/OpenCL requests without
    a GPU.
    """

    def __init__(
        self,
        kind: BackendKind = BackendKind.CUDA,
        *,
        memory_limit: int = 64 * 1024 * 1024,
        device_count: int = 1,
        limits: DeviceLimits | None = None,
    ) -> None:
        super().__init__(memory_limit=memory_limit)
        self._kind = kind
        self._device_count = device_count
        self._limits = limits
        self.probe_calls = 0
        self.launches: list[tuple[str, int, int]] = []
        self.contexts_destroyed = 0

    @property
    def kind(self) -> BackendKind:
        return self._kind

    def probe(self) -> BackendDescriptor:
        self.probe_calls += 1
        host = super().probe().devices[0]
        limits = self._limits or host.limits
        devices = tuple(
            DeviceInfo(index=i, name=f"emulated-{self._kind.value}-{i}", limits=limits)
            for i in range(self._device_count)
        )
        return BackendDescriptor(kind=self._kind, available=True, devices=devices, backend=self)

    def destroy_context(self, context: HostContext) -> None:
        self.contexts_destroyed += 1

    def build_program(self, context: HostContext, source: KernelSource) -> dict[str, Any]:
        return {entry: HOST_KERNELS[entry] for entry in (source.pad_entry, source.compress_entry)}

    def launch(
        self,
        context: HostContext,
        program: dict[str, Any],
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        self.launches.append((entry, grid_size, block_size))
        super().launch(context, program, entry, grid_size, block_size, args)


class UnavailableBackend(EmulatedBackend):
    """Backend whose probe always fails."""

    def __init__(self, kind: BackendKind, reason: str = "no device present") -> None:
        super().__init__(kind)
        self.reason = reason

    def probe(self) -> BackendDescriptor:
        self.probe_calls += 1
        raise BackendUnavailableError(self.kind.value, self.reason)


class FailingLaunchBackend(EmulatedBackend):
    """Backend whose kernel launches fail."""

    def launch(
        self,
        context: HostContext,
        program: dict[str, Any],
        entry: str,
        grid_size: int,
        block_size: int,
        args: Sequence[Any],
    ) -> None:
        raise RuntimeError("launch failed: unspecified launch failure")


class FailingReleaseBackend(FailingLaunchBackend):
    """Backend whose kernel launches fail and whose frees fail while ``fail_free`` is set."""

    def __init__(self, kind: BackendKind = BackendKind.CUDA) -> None:
        super().__init__(kind)
        self.fail_free = True

    def free(self, context: HostContext, buffer: Any) -> None:
        if self.fail_free:
            raise RuntimeError("free failed: device lost")
        super().free(context, buffer)


class FailingContextBackend(EmulatedBackend):
    """Backend that probes fine but cannot create a context."""

    def create_context(self, device: DeviceInfo) -> HostContext:
        raise RuntimeError("context creation failed")


def make_cache(**backends: Any) -> BackendProbeCache:
    """Build a probe cache from ``kind_name=backend_instance`` pairs."""
    factories: dict[BackendKind, BackendFactory] = {}
    for name, backend in backends.items():
        factories[BackendKind.parse(name)] = _constant(backend)
    return BackendProbeCache(factories)


def _constant(backend: Any) -> Callable[[], Any]:
    return lambda: backend


# Fixtures
@pytest.fixture(autouse=True)
def _isolate_process_state() -> Generator[None, None, None]:
    """Give every test a fresh probe cache and zeroed resource counters."""
    reset_probe_cache()
    reset_resource_counters()
    yield
    reset_probe_cache()


@pytest.fixture
def host_backend() -> HostBackend:
    """Provide a host backend with a small memory limit."""
    return HostBackend(memory_limit=16 * 1024 * 1024)


@pytest.fixture
def host_descriptor(host_backend: HostBackend) -> BackendDescriptor:
    """Provide a probed host backend descriptor."""
    return host_backend.probe()


@pytest.fixture
def host_context(host_descriptor: BackendDescriptor) -> Generator[DeviceContext, None, None]:
    """Provide an open host device context."""
    context = open_device(host_descriptor)
    yield context
    context.close()


@pytest.fixture
def emulated_cuda() -> EmulatedBackend:
    """Provide a CUDA-kind backend that runs host kernels."""
    return EmulatedBackend(BackendKind.CUDA)


# Markers for device tests
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom markers."""
    config.addinivalue_line("markers", "cuda: mark test as requiring a CUDA device")
    config.addinivalue_line("markers", "opencl: mark test as requiring an OpenCL GPU")
    config.addinivalue_line("markers", "slow: mark test as slow running")


def _probes(backend: Any) -> bool:
    try:
        backend.probe()
    except BackendUnavailableError:
        return False
    return True


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Skip device tests when the device is not available."""
    wanted = {
        marker
        for item in items
        for marker in ("cuda", "opencl")
        if item.get_closest_marker(marker) is not None
    }
    if not wanted:
        return

    available = {
        "cuda": "cuda" in wanted and _probes(CUDABackend()),
        "opencl": "opencl" in wanted and _probes(OpenCLBackend()),
    }
    for marker, ok in available.items():
        if ok:
            continue
        skip = pytest.mark.skip(reason=f"{marker.upper()} device not available")
        for item in items:
            if item.get_closest_marker(marker) is not None:
                item.add_marker(skip)
