"""
Backend selection.

Explicit requests probe exactly one backend. ``auto`` walks a fixed
priority list (CUDA, then OpenCL) and returns the first backend that
probes successfully, so the same environment always picks the same
backend. The host backend is only ever selected explicitly.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from gpuhash.backends.base import BackendDescriptor, BackendKind
from gpuhash.core.probe import BackendProbeCache, get_probe_cache
from gpuhash.exceptions import BackendUnavailableError, NoBackendAvailableError

logger = logging.getLogger(__name__)

AUTO = "auto"
AUTO_PRIORITY: tuple[BackendKind, ...] = (BackendKind.CUDA, BackendKind.OPENCL)


def is_auto(requested: BackendKind | str | None) -> bool:
    """Check if a request means automatic selection."""
    return requested is None or (
        isinstance(requested, str) and requested.strip().lower() == AUTO
    )


def candidates_for(
    requested: BackendKind | str | None,
    priority: Sequence[BackendKind] | None = None,
) -> tuple[BackendKind, ...]:
    """Get the backends to probe, in order, for a request."""
    if is_auto(requested):
        return tuple(priority if priority is not None else AUTO_PRIORITY)
    return (BackendKind.parse(requested),)  # type: ignore[arg-type]


def select_backend(
    requested: BackendKind | str | None = AUTO,
    *,
    priority: Sequence[BackendKind] | None = None,
    cache: BackendProbeCache | None = None,
) -> BackendDescriptor:
    """
    Select a compute backend.

    Args:
        requested: ``"auto"`` (or None) for priority fallback, otherwise a
            backend kind or name.
        priority: Order used for ``auto`` (default: ``AUTO_PRIORITY``).
        cache: Probe cache (default: the process-wide cache).

    Returns:
        Descriptor of the selected backend.

    Raises:
        NoBackendAvailableError: If no candidate probed successfully.
            Lists every attempted backend with its reason.
    """
    cache = cache if cache is not None else get_probe_cache()
    candidates = candidates_for(requested, priority)
    reasons: dict[str, str] = {}

    for kind in candidates:
        try:
            descriptor = cache.probe(kind)
        except BackendUnavailableError as e:
            reasons[kind.value] = e.reason
            logger.debug("Backend %s unavailable: %s", kind.value, e.reason)
            continue

        logger.info(
            "Selected backend %s (%d device(s))",
            kind.value,
            len(descriptor.devices),
        )
        return descriptor

    raise NoBackendAvailableError([k.value for k in candidates], reasons)
