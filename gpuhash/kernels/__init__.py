"""
Hash algorithm registry and kernel implementations.
"""

from gpuhash.kernels.algorithms import BUILTIN_ALGORITHMS, MD5, SHA1, SHA256
from gpuhash.kernels.registry import (
    AlgorithmDescriptor,
    AlgorithmRegistry,
    KernelSource,
    default_registry,
    lookup_algorithm,
)

__all__ = [
    "AlgorithmDescriptor",
    "AlgorithmRegistry",
    "KernelSource",
    "default_registry",
    "lookup_algorithm",
    "BUILTIN_ALGORITHMS",
    "SHA256",
    "SHA1",
    "MD5",
]
