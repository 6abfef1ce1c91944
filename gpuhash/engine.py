"""
Hash request orchestration.

Runs one request end to end: select backend, open device, upload input,
plan launch, dispatch kernels, download digest, close device. Every
resource acquired along the way is released on every exit path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gpuhash.backends.base import BackendDescriptor, BackendKind
from gpuhash.config import HashConfig
from gpuhash.core.context import DeviceContext, device_session
from gpuhash.core.dispatcher import dispatch_kernel
from gpuhash.core.memory import DeviceBuffer
from gpuhash.core.planner import DEFAULT_BLOCK_SIZE, LaunchConfig, plan_launch
from gpuhash.core.probe import BackendProbeCache, get_probe_cache
from gpuhash.core.selector import select_backend
from gpuhash.exceptions import ConformanceError, ExecutionError
from gpuhash.kernels.registry import AlgorithmDescriptor, AlgorithmRegistry, default_registry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HashResult:
    """Digest produced by one successful request."""

    digest: bytes
    algorithm: str
    backend: BackendKind
    device_name: str
    launch: LaunchConfig
    execution_time_ms: float

    def hexdigest(self) -> str:
        """Get the digest as lowercase hex."""
        return self.digest.hex()

    def __len__(self) -> int:
        return len(self.digest)


def upload_input(context: DeviceContext, data: bytes | bytearray | memoryview) -> DeviceBuffer:
    """Copy input bytes to the device."""
    return context.memory.upload(data)


def alloc_output(context: DeviceContext, size: int) -> DeviceBuffer:
    """Allocate an uninitialized output buffer."""
    return context.memory.alloc_output(size)


def download_output(context: DeviceContext, buffer: DeviceBuffer) -> bytes:
    """Copy a device buffer back to the host."""
    return context.memory.download(buffer)


def hash_on_context(
    context: DeviceContext,
    algorithm: AlgorithmDescriptor,
    data: bytes | bytearray | memoryview,
    preferred_block_size: int = DEFAULT_BLOCK_SIZE,
) -> HashResult:
    """
    Hash ``data`` on an already open context.

    Input and output buffers are released before returning, whether the
    request succeeds or fails.
    """
    memory = context.memory
    input_buffer = upload_input(context, data)
    try:
        output_buffer = alloc_output(context, algorithm.output_size_bytes)
    except Exception:
        memory.discard(input_buffer)
        raise

    try:
        config = plan_launch(input_buffer.nbytes, context.limits, preferred_block_size)
        execution = dispatch_kernel(context, algorithm, input_buffer, output_buffer, config)
        digest = download_output(context, output_buffer)
    except Exception:
        memory.discard(output_buffer)
        memory.discard(input_buffer)
        raise
    memory.release(output_buffer)
    memory.release(input_buffer)

    if len(digest) != algorithm.output_size_bytes:
        raise ExecutionError(
            algorithm.algorithm_id,
            context.kind.value,
            f"digest has {len(digest)} bytes, expected {algorithm.output_size_bytes}",
        )

    return HashResult(
        digest=digest,
        algorithm=algorithm.algorithm_id,
        backend=context.kind,
        device_name=context.device.name,
        launch=config,
        execution_time_ms=execution.execution_time_ms,
    )


def verify_algorithm(
    context: DeviceContext,
    algorithm: AlgorithmDescriptor,
    preferred_block_size: int = DEFAULT_BLOCK_SIZE,
) -> int:
    """
    Check an algorithm's kernels against its published test vectors.

    Returns:
        Number of vectors checked.

    Raises:
        ConformanceError: On the first mismatching digest.
    """
    for message, expected in algorithm.test_vectors:
        actual = hash_on_context(context, algorithm, message, preferred_block_size).hexdigest()
        if actual != expected:
            raise ConformanceError(algorithm.algorithm_id, context.kind.value, expected, actual)

    logger.info(
        "'%s' passed %d test vector(s) on %s",
        algorithm.algorithm_id,
        len(algorithm.test_vectors),
        context.kind.value,
    )
    return len(algorithm.test_vectors)


class HashEngine:
    """
    Entry point for hashing with a fixed configuration.

    Example:
        >>> engine = HashEngine(HashConfig(backend="host"))
        >>> engine.hash(b"abc").hexdigest()[:8]
        'ba7816bf'
    """

    def __init__(
        self,
        config: HashConfig | None = None,
        *,
        registry: AlgorithmRegistry | None = None,
        probe_cache: BackendProbeCache | None = None,
    ) -> None:
        """
        Initialize the engine.

        Args:
            config: Settings (default: ``HashConfig()``).
            registry: Algorithm registry (default: built-in algorithms).
            probe_cache: Probe cache (default: the process-wide cache, or a
                private one when ``config`` changes backend settings).
        """
        self._config = config or HashConfig()
        self._registry = registry or default_registry()
        self._probe_cache = probe_cache

    @property
    def config(self) -> HashConfig:
        """Get the engine configuration."""
        return self._config

    @property
    def registry(self) -> AlgorithmRegistry:
        """Get the algorithm registry."""
        return self._registry

    @property
    def probe_cache(self) -> BackendProbeCache:
        """Get the probe cache used for selection."""
        if self._probe_cache is None:
            if self._config.uses_default_backends:
                self._probe_cache = get_probe_cache()
            else:
                # The process-wide cache was built with default backend settings
                self._probe_cache = BackendProbeCache(self._config.backend_factories())
        return self._probe_cache

    def hash(
        self,
        data: bytes | bytearray | memoryview,
        algorithm: str | None = None,
        backend: BackendKind | str | None = None,
        device_index: int | None = None,
    ) -> HashResult:
        """
        Hash a byte buffer.

        Args:
            data: Bytes to hash; borrowed read-only.
            algorithm: Algorithm id (default: ``config.algorithm``).
            backend: ``"auto"`` or a backend (default: ``config.backend``).
            device_index: Device to use (default: ``config.device_index``).

        Raises:
            UnknownAlgorithmError: Before any device is touched.
            NoBackendAvailableError: If no requested backend is usable.
            GPUHashError: Any context, memory, planning or execution error.
        """
        descriptor = self._registry.lookup(algorithm or self._config.algorithm)
        selected = self._select(backend)
        index = device_index if device_index is not None else self._config.device_index

        with device_session(selected, index) as context:
            result = hash_on_context(context, descriptor, data, self._config.block_size)

        logger.info(
            "%s of %d bytes on %s: %s",
            descriptor.algorithm_id,
            len(memoryview(data).cast("B")),
            selected.name,
            result.hexdigest(),
        )
        return result

    def self_test(
        self,
        backend: BackendKind | str | None = None,
        device_index: int | None = None,
    ) -> dict[str, int]:
        """
        Run every registered algorithm's test vectors on one device.

        Returns:
            Mapping of algorithm id to number of vectors checked.

        Raises:
            ConformanceError: If any kernel produces a wrong digest.
        """
        selected = self._select(backend)
        index = device_index if device_index is not None else self._config.device_index

        checked: dict[str, int] = {}
        with device_session(selected, index) as context:
            for algorithm in self._registry:
                if algorithm.kernel_for(context.kind) is None:
                    continue
                checked[algorithm.algorithm_id] = verify_algorithm(
                    context, algorithm, self._config.block_size
                )
        return checked

    def _select(self, backend: BackendKind | str | None) -> BackendDescriptor:
        requested = backend if backend is not None else self._config.backend
        return select_backend(
            requested,
            priority=self._config.auto_priority,
            cache=self.probe_cache,
        )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"HashEngine(backend={self._config.backend}, algorithm={self._config.algorithm}, "
            f"algorithms={self._registry.ids()})"
        )


def hash_bytes(
    data: bytes | bytearray | memoryview,
    algorithm: str | None = None,
    backend: BackendKind | str | None = None,
    *,
    device_index: int | None = None,
    config: HashConfig | None = None,
) -> HashResult:
    """
    Hash a byte buffer in one call.

    ``algorithm``, ``backend`` and ``device_index`` default to the values in
    ``config``, which itself defaults to sha256 on ``"auto"``.

    Example:
        >>> hash_bytes(b"abc", "md5", backend="host").hexdigest()
        '900150983cd24fb0d6963f7d28e17f72'
    """
    return HashEngine(config).hash(data, algorithm, backend, device_index)
