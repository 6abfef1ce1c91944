"""
gpuhash - Hash byte buffers on GPU accelerators.

Selects a compute backend (CUDA, then OpenCL), opens a device context,
uploads the message, plans a launch, runs padding and compression kernels,
downloads the digest and releases every device resource on the way out.

Core Features:
    - Backend Selection: Deterministic CUDA -> OpenCL fallback, or explicit
    - Algorithm Registry: SHA-256, SHA-1 and MD5 with published test vectors
    - Launch Planning: Pure block/grid computation from device limits
    - Resource Safety: Generation-tagged buffers, release on every path
    - Host Backend: Reference kernels for development without a GPU

Quick Start:
    >>> from gpuhash import hash_bytes
    >>> hash_bytes(b"abc", "sha256", backend="host").hexdigest()
    'ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad'

Step by step:
    >>> from gpuhash import select_backend, open_device, lookup_algorithm
    >>> from gpuhash import upload_input, plan_launch, dispatch_kernel
    >>> algorithm = lookup_algorithm("sha256")
    >>> with open_device(select_backend("host")) as context:
    ...     source = upload_input(context, b"abc")
    ...     output = context.memory.alloc_output(algorithm.output_size_bytes)
    ...     config = plan_launch(source.nbytes, context.limits)
    ...     dispatch_kernel(context, algorithm, source, output, config)
    ...     digest = download_output(context, output)
"""

from gpuhash.backends.base import BackendDescriptor, BackendKind, DeviceInfo, DeviceLimits
from gpuhash.config import HashConfig
from gpuhash.core.context import DeviceContext, close_device, device_session, open_device
from gpuhash.core.dispatcher import dispatch_kernel
from gpuhash.core.planner import LaunchConfig, plan_launch
from gpuhash.core.selector import select_backend
from gpuhash.engine import HashEngine, HashResult, download_output, hash_bytes, upload_input
from gpuhash.exceptions import GPUHashError
from gpuhash.kernels.registry import AlgorithmDescriptor, AlgorithmRegistry, lookup_algorithm

__version__ = "0.1.0"

__all__ = [
    # Version
    "__version__",
    # Backends
    "BackendKind",
    "BackendDescriptor",
    "DeviceInfo",
    "DeviceLimits",
    "select_backend",
    # Pipeline
    "DeviceContext",
    "open_device",
    "close_device",
    "device_session",
    "upload_input",
    "LaunchConfig",
    "plan_launch",
    "dispatch_kernel",
    "download_output",
    # Algorithms
    "AlgorithmDescriptor",
    "AlgorithmRegistry",
    "lookup_algorithm",
    # High level
    "HashConfig",
    "HashEngine",
    "HashResult",
    "hash_bytes",
    # Errors
    "GPUHashError",
]
