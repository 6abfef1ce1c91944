"""
Unit tests for compute backends.
"""

from __future__ import annotations

import sys
from types import SimpleNamespace
from typing import Any

import pytest

from gpuhash.backends.base import BackendKind, DeviceInfo, DeviceLimits, KernelExecutionResult
from gpuhash.backends.cuda import CUDABackend
from gpuhash.backends.host import DEFAULT_MEMORY_LIMIT, HostBackend
from gpuhash.backends.opencl import OpenCLBackend
from gpuhash.exceptions import BackendUnavailableError, InvalidConfigurationError
from gpuhash.kernels.algorithms import SHA256
from gpuhash.kernels.device_source import PAD_ENTRY, Dialect, compress_entry, render_source


class TestBackendKind:
    """Tests for BackendKind."""

    @pytest.mark.parametrize(
        ("text", "kind"),
        [("cuda", BackendKind.CUDA), ("OpenCL", BackendKind.OPENCL), (" host ", BackendKind.HOST)],
    )
    def test_parse(self, text: str, kind: BackendKind) -> None:
        """Test parsing names case-insensitively."""
        assert BackendKind.parse(text) is kind

    def test_parse_kind_passthrough(self) -> None:
        """Test parsing an existing kind returns it."""
        assert BackendKind.parse(BackendKind.CUDA) is BackendKind.CUDA

    def test_parse_unknown(self) -> None:
        """Test unknown names are rejected."""
        with pytest.raises(InvalidConfigurationError):
            BackendKind.parse("metal")


class TestDeviceLimits:
    """Tests for DeviceLimits."""

    def test_max_threads_per_launch(self) -> None:
        """Test single-launch capacity."""
        limits = DeviceLimits(max_threads_per_block=1024, max_grid_dimension=65535)

        assert limits.max_threads_per_launch == 1024 * 65535

    def test_defaults(self) -> None:
        """Test optional fields default sensibly."""
        limits = DeviceLimits(max_threads_per_block=256, max_grid_dimension=10)

        assert limits.warp_size == 32
        assert limits.shared_memory_bytes == 0


class TestKernelExecutionResult:
    """Tests for KernelExecutionResult."""

    def test_success(self) -> None:
        """Test successful result."""
        result = KernelExecutionResult(success=True, execution_time_ms=1.5)

        assert result.success
        assert result.error is None


class TestHostBackend:
    """Tests for HostBackend."""

    def test_kind(self) -> None:
        """Test backend kind."""
        assert HostBackend().kind == BackendKind.HOST

    def test_probe(self) -> None:
        """Test the host is a single always-available device."""
        descriptor = HostBackend(memory_limit=4096).probe()

        assert descriptor.available
        assert descriptor.name == "host"
        assert len(descriptor.devices) == 1
        assert descriptor.devices[0].limits.total_memory_bytes == 4096

    def test_default_memory_limit(self) -> None:
        """Test default memory limit."""
        descriptor = HostBackend().probe()

        assert descriptor.devices[0].limits.total_memory_bytes == DEFAULT_MEMORY_LIMIT

    def test_allocate_and_free_track_usage(self) -> None:
        """Test allocations count against the memory limit."""
        backend = HostBackend(memory_limit=100)
        context = backend.create_context(backend.probe().devices[0])

        buffer = backend.allocate(context, 60)

        assert backend.memory_info(context) == (40, 100)
        backend.free(context, buffer)
        assert backend.memory_info(context) == (100, 100)

    def test_allocate_over_limit(self) -> None:
        """Test allocating past the limit raises MemoryError."""
        backend = HostBackend(memory_limit=100)
        context = backend.create_context(backend.probe().devices[0])
        backend.allocate(context, 80)

        with pytest.raises(MemoryError):
            backend.allocate(context, 21)

    def test_copy_round_trip(self) -> None:
        """Test host-to-device and device-to-host copies."""
        backend = HostBackend()
        context = backend.create_context(backend.probe().devices[0])
        buffer = backend.allocate(context, 3)

        backend.copy_to_device(context, buffer, b"xyz")

        assert backend.copy_to_host(context, buffer, 3) == b"xyz"

    def test_build_program_requires_host_functions(self) -> None:
        """Test device-only sources cannot run on the host."""
        backend = HostBackend()
        context = backend.create_context(backend.probe().devices[0])

        with pytest.raises(ValueError):
            backend.build_program(context, SHA256.kernel_for(BackendKind.CUDA))

    def test_build_program_resolves_entries(self) -> None:
        """Test host programs expose both entry points."""
        backend = HostBackend()
        context = backend.create_context(backend.probe().devices[0])

        program = backend.build_program(context, SHA256.kernel_for(BackendKind.HOST))

        assert set(program) == {PAD_ENTRY, "sha256_compress"}


class TestUnavailableDrivers:
    """Tests for probing without vendor packages."""

    def test_cuda_without_cupy(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing CuPy surfaces as BackendUnavailableError."""
        monkeypatch.setitem(sys.modules, "cupy", None)

        with pytest.raises(BackendUnavailableError) as exc_info:
            CUDABackend().probe()

        assert exc_info.value.backend_name == "cuda"
        assert "CuPy" in exc_info.value.reason

    def test_opencl_without_pyopencl(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test a missing PyOpenCL surfaces as BackendUnavailableError."""
        monkeypatch.setitem(sys.modules, "pyopencl", None)

        with pytest.raises(BackendUnavailableError) as exc_info:
            OpenCLBackend().probe()

        assert exc_info.value.backend_name == "opencl"

    def test_unprobed_backend_refuses_use(self) -> None:
        """Test vendor modules are only used after a successful probe."""
        with pytest.raises(BackendUnavailableError):
            CUDABackend().cp
        with pytest.raises(BackendUnavailableError):
            OpenCLBackend().cl


def fake_cupy() -> Any:
    """Build a minimal stand-in for the parts of CuPy that contexts touch."""
    state = SimpleNamespace(current=0)

    class Device:
        def __init__(self, index: int) -> None:
            self.index = index
            self._previous: list[int] = []

        def use(self) -> None:
            state.current = self.index

        def __enter__(self) -> Device:
            self._previous.append(state.current)
            state.current = self.index
            return self

        def __exit__(self, *exc_info: object) -> None:
            state.current = self._previous.pop()

    class Stream:
        def __init__(self, non_blocking: bool = False) -> None:
            self.device_index = state.current

        def synchronize(self) -> None:
            pass

    return SimpleNamespace(state=state, cuda=SimpleNamespace(Device=Device, Stream=Stream))


class TestCUDAContext:
    """Tests for CUDA context creation."""

    def test_current_device_unchanged(self) -> None:
        """Test opening device 1 leaves the process on its current device."""
        cp = fake_cupy()
        backend = CUDABackend()
        backend._cp = cp
        limits = DeviceLimits(max_threads_per_block=1024, max_grid_dimension=65535)
        device = DeviceInfo(index=1, name="fake-cuda-1", limits=limits)

        context = backend.create_context(device)

        assert context.stream.device_index == 1
        assert cp.state.current == 0


class TestDeviceSource:
    """Tests for rendered CUDA C and OpenCL C programs."""

    @pytest.mark.parametrize("algorithm_id", ["sha256", "sha1", "md5"])
    @pytest.mark.parametrize("dialect", list(Dialect))
    def test_entries_present(self, algorithm_id: str, dialect: Dialect) -> None:
        """Test each program defines the pad and compress entry points."""
        source = render_source(algorithm_id, dialect)

        assert f"void {PAD_ENTRY}(" in source
        assert f"void {compress_entry(algorithm_id)}(" in source
        assert "%(" not in source

    def test_dialect_prelude(self) -> None:
        """Test dialect-specific qualifiers."""
        cuda = render_source("sha256", Dialect.CUDA)
        opencl = render_source("sha256", Dialect.OPENCL)

        assert 'extern "C" __global__' in cuda
        assert "__kernel" in opencl
        assert "get_global_id" in opencl

    def test_constants_rendered(self) -> None:
        """Test round constants are embedded."""
        assert "0x428a2f98u" in render_source("sha256", Dialect.CUDA)

    def test_unknown_algorithm(self) -> None:
        """Test algorithms without device source are rejected."""
        with pytest.raises(KeyError):
            render_source("blake3", Dialect.CUDA)
