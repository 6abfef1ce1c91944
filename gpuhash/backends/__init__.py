"""
Backend implementations for gpuhash.

CUDA and OpenCL backends import their vendor packages lazily inside
``probe()``, so every backend class can be imported on any machine.
"""

from gpuhash.backends.base import (
    Backend,
    BackendDescriptor,
    BackendKind,
    DeviceInfo,
    DeviceLimits,
    KernelExecutionResult,
)
from gpuhash.backends.cuda import CUDABackend
from gpuhash.backends.host import HostBackend
from gpuhash.backends.opencl import OpenCLBackend

__all__ = [
    "Backend",
    "BackendDescriptor",
    "BackendKind",
    "DeviceInfo",
    "DeviceLimits",
    "KernelExecutionResult",
    "CUDABackend",
    "OpenCLBackend",
    "HostBackend",
]
