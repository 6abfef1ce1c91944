"""
Built-in hash algorithms.

Each descriptor ships CUDA, OpenCL and host kernels plus the published
test vectors used to validate them (FIPS 180-4 examples for SHA-1 and
SHA-256, the RFC 1321 test suite for MD5).
"""

from __future__ import annotations

from gpuhash.backends.base import BackendKind
from gpuhash.kernels.constants import MD_BLOCK_BYTES, MD_LENGTH_FIELD_BYTES
from gpuhash.kernels.device_source import (
    PAD_ENTRY,
    Dialect,
    compress_entry,
    render_source,
)
from gpuhash.kernels.host import HOST_KERNELS
from gpuhash.kernels.registry import AlgorithmDescriptor, AlgorithmRegistry, KernelSource

_FIPS_TWO_BLOCK = b"abcdbcdecdefdefgefghfghighijhijkijkljklmklmnlmnomnopnopq"


def _kernels(algorithm_id: str) -> dict[BackendKind, KernelSource]:
    entry = compress_entry(algorithm_id)
    return {
        BackendKind.CUDA: KernelSource(
            pad_entry=PAD_ENTRY,
            compress_entry=entry,
            code=render_source(algorithm_id, Dialect.CUDA),
        ),
        BackendKind.OPENCL: KernelSource(
            pad_entry=PAD_ENTRY,
            compress_entry=entry,
            code=render_source(algorithm_id, Dialect.OPENCL),
        ),
        BackendKind.HOST: KernelSource(
            pad_entry=PAD_ENTRY,
            compress_entry=entry,
            host_functions={
                PAD_ENTRY: HOST_KERNELS[PAD_ENTRY],
                entry: HOST_KERNELS[entry],
            },
        ),
    }


SHA256 = AlgorithmDescriptor(
    algorithm_id="sha256",
    output_size_bytes=32,
    block_size_bytes=MD_BLOCK_BYTES,
    length_field_bytes=MD_LENGTH_FIELD_BYTES,
    length_byteorder="big",
    kernels=_kernels("sha256"),
    test_vectors=(
        (b"", "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"),
        (b"abc", "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"),
        (_FIPS_TWO_BLOCK, "248d6a61d20638b8e5c026930c3e6039a33ce45964ff2167f6ecedd419db06c1"),
    ),
)

SHA1 = AlgorithmDescriptor(
    algorithm_id="sha1",
    output_size_bytes=20,
    block_size_bytes=MD_BLOCK_BYTES,
    length_field_bytes=MD_LENGTH_FIELD_BYTES,
    length_byteorder="big",
    kernels=_kernels("sha1"),
    test_vectors=(
        (b"", "da39a3ee5e6b4b0d3255bfef95601890afd80709"),
        (b"abc", "a9993e364706816aba3e25717850c26c9cd0d89d"),
        (_FIPS_TWO_BLOCK, "84983e441c3bd26ebaae4aa1f95129e5e54670f1"),
    ),
)

MD5 = AlgorithmDescriptor(
    algorithm_id="md5",
    output_size_bytes=16,
    block_size_bytes=MD_BLOCK_BYTES,
    length_field_bytes=MD_LENGTH_FIELD_BYTES,
    length_byteorder="little",
    kernels=_kernels("md5"),
    test_vectors=(
        (b"", "d41d8cd98f00b204e9800998ecf8427e"),
        (b"a", "0cc175b9c0f1b6a831c399e269772661"),
        (b"abc", "900150983cd24fb0d6963f7d28e17f72"),
        (b"message digest", "f96b697d7cb7938d525a2f31aaf161d0"),
        (b"abcdefghijklmnopqrstuvwxyz", "c3fcd3d76192e4007dfb496cca67e13b"),
    ),
)

BUILTIN_ALGORITHMS = (SHA256, SHA1, MD5)


def register_builtin_algorithms(registry: AlgorithmRegistry) -> None:
    """Register SHA-256, SHA-1 and MD5."""
    for descriptor in BUILTIN_ALGORITHMS:
        registry.register(descriptor)
