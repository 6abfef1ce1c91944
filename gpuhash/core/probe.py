"""
Backend capability probing.

Backend runtimes are process-global, so each backend kind is probed at most
once per process. Both outcomes are cached: a descriptor for an available
backend, or the reason it is unavailable.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping

from gpuhash.backends.base import Backend, BackendDescriptor, BackendKind
from gpuhash.backends.cuda import CUDABackend
from gpuhash.backends.host import DEFAULT_MEMORY_LIMIT, HostBackend
from gpuhash.backends.opencl import OpenCLBackend
from gpuhash.exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

BackendFactory = Callable[[], Backend]


def default_backend_factories(
    *,
    opencl_allow_cpu: bool = False,
    host_memory_limit: int = DEFAULT_MEMORY_LIMIT,
) -> dict[BackendKind, BackendFactory]:
    """Get factories for the built-in backends."""
    return {
        BackendKind.CUDA: CUDABackend,
        BackendKind.OPENCL: lambda: OpenCLBackend(allow_cpu=opencl_allow_cpu),
        BackendKind.HOST: lambda: HostBackend(memory_limit=host_memory_limit),
    }


class BackendProbeCache:
    """
    Probes backends once and remembers the outcome.

    Thread-safe: concurrent first use initializes each backend once.

    Example:
        >>> cache = BackendProbeCache(default_backend_factories())
        >>> descriptor = cache.probe(BackendKind.HOST)
    """

    def __init__(self, factories: Mapping[BackendKind, BackendFactory]) -> None:
        """
        Initialize the cache.

        Args:
            factories: Constructor for each backend kind.
        """
        self._factories = dict(factories)
        self._results: dict[BackendKind, BackendDescriptor | BackendUnavailableError] = {}
        self._lock = threading.Lock()

    @property
    def kinds(self) -> list[BackendKind]:
        """Get the backend kinds this cache can probe."""
        return list(self._factories)

    def probe(self, kind: BackendKind) -> BackendDescriptor:
        """
        Get the descriptor for a backend, probing it on first use.

        Raises:
            BackendUnavailableError: If the backend is unavailable.
        """
        with self._lock:
            outcome = self._results.get(kind)
            if outcome is None:
                outcome = self._run_probe(kind)
                self._results[kind] = outcome

        if isinstance(outcome, BackendUnavailableError):
            raise BackendUnavailableError(outcome.backend_name, outcome.reason)
        return outcome

    def _run_probe(self, kind: BackendKind) -> BackendDescriptor | BackendUnavailableError:
        factory = self._factories.get(kind)
        if factory is None:
            return BackendUnavailableError(kind.value, "no implementation registered")

        try:
            descriptor = factory().probe()
        except BackendUnavailableError as e:
            logger.debug("Probe of %s failed: %s", kind.value, e.reason)
            return e
        except Exception as e:
            # Driver bindings raise their own exception types
            logger.debug("Probe of %s raised %s: %s", kind.value, type(e).__name__, e)
            return BackendUnavailableError(kind.value, f"unexpected probe failure: {e}")

        if not descriptor.available or not descriptor.devices:
            return BackendUnavailableError(kind.value, "no usable devices")

        logger.debug("Probe of %s found %d device(s)", kind.value, len(descriptor.devices))
        return descriptor

    def clear(self) -> None:
        """Forget all cached outcomes."""
        with self._lock:
            self._results.clear()

    def __repr__(self) -> str:
        """String representation."""
        cached = {k.value: not isinstance(v, Exception) for k, v in self._results.items()}
        return f"BackendProbeCache(cached={cached})"


_cache: BackendProbeCache | None = None
_cache_lock = threading.Lock()


def get_probe_cache(
    factories: Mapping[BackendKind, BackendFactory] | None = None,
) -> BackendProbeCache:
    """
    Get the process-wide probe cache.

    ``factories`` only takes effect on the first call; later calls return
    the existing cache.
    """
    global _cache

    with _cache_lock:
        if _cache is None:
            _cache = BackendProbeCache(factories or default_backend_factories())
        return _cache


def reset_probe_cache(
    factories: Mapping[BackendKind, BackendFactory] | None = None,
) -> BackendProbeCache | None:
    """
    Drop the process-wide cache.

    Args:
        factories: If given, install a fresh cache using these factories.

    Returns:
        The new cache, or None when only dropping.
    """
    global _cache

    with _cache_lock:
        _cache = BackendProbeCache(factories) if factories is not None else None
        return _cache


def probe_backend(kind: BackendKind | str) -> BackendDescriptor:
    """Probe a backend through the process-wide cache."""
    return get_probe_cache().probe(BackendKind.parse(kind))
