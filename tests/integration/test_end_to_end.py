"""
End-to-end integration tests.
"""

from __future__ import annotations

import hashlib
import os

import pytest

from gpuhash import (
    BackendKind,
    HashConfig,
    HashEngine,
    close_device,
    dispatch_kernel,
    download_output,
    hash_bytes,
    lookup_algorithm,
    open_device,
    plan_launch,
    select_backend,
    upload_input,
)
from gpuhash.core.tracking import resource_counters

SAMPLE = b"hello, cuda hash!"


def step_by_step(data: bytes, algorithm_id: str, backend: str) -> bytes:
    """Run one request through the public pipeline functions."""
    algorithm = lookup_algorithm(algorithm_id)
    descriptor = select_backend(backend)
    context = open_device(descriptor)
    try:
        source = upload_input(context, data)
        output = context.memory.alloc_output(algorithm.output_size_bytes)
        config = plan_launch(source.nbytes, context.limits)
        dispatch_kernel(context, algorithm, source, output, config)
        digest = download_output(context, output)
        context.memory.release(source)
        context.memory.release(output)
    finally:
        close_device(context)
    return digest


class TestHostPipeline:
    """Full pipeline on the host backend."""

    @pytest.mark.parametrize("algorithm", ["sha256", "sha1", "md5"])
    def test_step_by_step(self, algorithm: str) -> None:
        """Test the public functions compose into a correct hash."""
        digest = step_by_step(SAMPLE, algorithm, "host")

        assert digest == hashlib.new(algorithm, SAMPLE).digest()
        assert resource_counters().balanced

    def test_many_requests_leave_nothing_behind(self) -> None:
        """Test repeated requests open and close one context each."""
        engine = HashEngine(HashConfig(backend="host"))

        for i in range(10):
            engine.hash(bytes(i * 50))

        counters = resource_counters()
        assert counters.contexts_opened == counters.contexts_closed == 10
        # input, output and scratch per request
        assert counters.buffers_allocated == counters.buffers_released == 30

    @pytest.mark.slow
    def test_multi_block_input(self) -> None:
        """Test an input spanning many blocks and a multi-block grid."""
        data = os.urandom(64 * 1024 + 13)

        result = hash_bytes(data, "sha256", backend="host")

        assert result.digest == hashlib.sha256(data).digest()
        assert result.launch.grid_size == -(-len(data) // 128)

    def test_self_test(self) -> None:
        """Test the host kernels pass every published vector."""
        checked = HashEngine(HashConfig(backend="host")).self_test()

        assert set(checked) == {"sha256", "sha1", "md5"}


@pytest.mark.cuda
class TestCUDA:
    """Full pipeline on a real CUDA device."""

    @pytest.mark.parametrize("algorithm", ["sha256", "sha1", "md5"])
    @pytest.mark.parametrize("length", [0, 17, 55, 56, 64, 100_000])
    def test_matches_hashlib(self, algorithm: str, length: int) -> None:
        """Test device digests against hashlib."""
        data = bytes((i * 13) & 0xFF for i in range(length))

        result = hash_bytes(data, algorithm, backend="cuda")

        assert result.backend is BackendKind.CUDA
        assert result.digest == hashlib.new(algorithm, data).digest()
        assert resource_counters().balanced

    def test_auto_selects_cuda(self) -> None:
        """Test auto prefers CUDA when present."""
        assert select_backend("auto").kind is BackendKind.CUDA

    def test_self_test(self) -> None:
        """Test the CUDA kernels pass every published vector."""
        checked = HashEngine(HashConfig(backend="cuda")).self_test()

        assert set(checked) == {"sha256", "sha1", "md5"}


@pytest.mark.opencl
class TestOpenCL:
    """Full pipeline on a real OpenCL GPU."""

    @pytest.mark.parametrize("algorithm", ["sha256", "sha1", "md5"])
    @pytest.mark.parametrize("length", [0, 17, 55, 56, 64, 100_000])
    def test_matches_hashlib(self, algorithm: str, length: int) -> None:
        """Test device digests against hashlib."""
        data = bytes((i * 13) & 0xFF for i in range(length))

        result = hash_bytes(data, algorithm, backend="opencl")

        assert result.backend is BackendKind.OPENCL
        assert result.digest == hashlib.new(algorithm, data).digest()
        assert resource_counters().balanced

    def test_self_test(self) -> None:
        """Test the OpenCL kernels pass every published vector."""
        checked = HashEngine(HashConfig(backend="opencl")).self_test()

        assert set(checked) == {"sha256", "sha1", "md5"}
