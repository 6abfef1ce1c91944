"""
Core request pipeline for gpuhash.
"""

from gpuhash.core.context import DeviceContext, close_device, device_session, open_device
from gpuhash.core.dispatcher import dispatch_kernel
from gpuhash.core.memory import BufferRole, DeviceBuffer, MemoryManager
from gpuhash.core.planner import DEFAULT_BLOCK_SIZE, LaunchConfig, plan_launch
from gpuhash.core.probe import BackendProbeCache, get_probe_cache, probe_backend, reset_probe_cache
from gpuhash.core.selector import AUTO, AUTO_PRIORITY, select_backend
from gpuhash.core.tracking import ResourceCounters, reset_resource_counters, resource_counters

__all__ = [
    # Selection
    "AUTO",
    "AUTO_PRIORITY",
    "select_backend",
    "BackendProbeCache",
    "get_probe_cache",
    "reset_probe_cache",
    "probe_backend",
    # Context and memory
    "DeviceContext",
    "open_device",
    "close_device",
    "device_session",
    "DeviceBuffer",
    "BufferRole",
    "MemoryManager",
    # Planning and dispatch
    "DEFAULT_BLOCK_SIZE",
    "LaunchConfig",
    "plan_launch",
    "dispatch_kernel",
    # Tracking
    "ResourceCounters",
    "resource_counters",
    "reset_resource_counters",
]
