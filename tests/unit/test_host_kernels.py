"""
Unit tests for the host reference kernels.
"""

from __future__ import annotations

import hashlib

import numpy as np
import pytest

from gpuhash.kernels.algorithms import BUILTIN_ALGORITHMS, MD5, SHA256
from gpuhash.kernels.host import HOST_KERNELS, md_pad, sha256_compress
from gpuhash.kernels.registry import AlgorithmDescriptor


def run_host_kernels(
    algorithm: AlgorithmDescriptor,
    message: bytes,
    grid_size: int = 1,
    block_size: int = 128,
) -> bytes:
    """Run pad + compress exactly as the dispatcher does."""
    padded_length = algorithm.padded_length(len(message))
    source = bytearray(message)
    scratch = bytearray(padded_length)
    digest = bytearray(algorithm.output_size_bytes)

    md_pad(
        grid_size,
        block_size,
        source,
        scratch,
        np.uint64(len(message)),
        np.uint64(padded_length),
        np.int32(algorithm.length_big_endian),
    )
    compress = HOST_KERNELS[f"{algorithm.algorithm_id}_compress"]
    compress(1, 1, scratch, np.uint64(padded_length // 64), digest)
    return bytes(digest)


class TestMdPad:
    """Tests for the padding kernel."""

    def test_abc_big_endian(self) -> None:
        """Test padding layout for 'abc' with a big-endian length."""
        scratch = bytearray(64)

        md_pad(1, 64, bytearray(b"abc"), scratch, 3, 64, 1)

        assert scratch[:4] == b"abc\x80"
        assert scratch[4:56] == bytes(52)
        assert scratch[56:] == (24).to_bytes(8, "big")

    def test_abc_little_endian(self) -> None:
        """Test MD5-style little-endian length field."""
        scratch = bytearray(64)

        md_pad(1, 64, bytearray(b"abc"), scratch, 3, 64, 0)

        assert scratch[56:] == (24).to_bytes(8, "little")

    def test_empty_message(self) -> None:
        """Test empty input pads to one block with a zero length."""
        scratch = bytearray(b"\xff" * 64)

        md_pad(1, 128, bytearray(), scratch, 0, 64, 1)

        assert scratch[0] == 0x80
        assert scratch[1:] == bytes(63)

    def test_grid_stride_matches_single_pass(self) -> None:
        """Test a small grid striding over the buffer writes the same bytes."""
        message = bytes(range(256)) * 3
        padded_length = SHA256.padded_length(len(message))
        wide = bytearray(padded_length)
        narrow = bytearray(padded_length)

        md_pad(16, 128, bytearray(message), wide, len(message), padded_length, 1)
        md_pad(1, 32, bytearray(message), narrow, len(message), padded_length, 1)

        assert wide == narrow


class TestCompression:
    """Tests for the compression kernels."""

    @pytest.mark.parametrize("algorithm", BUILTIN_ALGORITHMS, ids=lambda a: a.algorithm_id)
    def test_published_vectors(self, algorithm: AlgorithmDescriptor) -> None:
        """Test each kernel against its published test vectors."""
        for message, expected in algorithm.test_vectors:
            assert run_host_kernels(algorithm, message).hex() == expected

    @pytest.mark.parametrize("algorithm", BUILTIN_ALGORITHMS, ids=lambda a: a.algorithm_id)
    @pytest.mark.parametrize("length", [55, 56, 63, 64, 65, 119, 120, 1000])
    def test_block_boundaries_match_hashlib(
        self, algorithm: AlgorithmDescriptor, length: int
    ) -> None:
        """Test lengths around the padding boundaries against hashlib."""
        message = bytes((i * 31 + 7) & 0xFF for i in range(length))

        expected = hashlib.new(algorithm.algorithm_id, message).digest()

        assert run_host_kernels(algorithm, message) == expected

    def test_sample_input(self) -> None:
        """Test the built-in CLI sample."""
        message = b"hello, cuda hash!"

        assert run_host_kernels(SHA256, message) == hashlib.sha256(message).digest()
        assert run_host_kernels(MD5, message) == hashlib.md5(message).digest()

    def test_compress_writes_only_digest(self) -> None:
        """Test compression fills the whole digest buffer."""
        scratch = bytearray(64)
        md_pad(1, 64, bytearray(b""), scratch, 0, 64, 1)
        digest = bytearray(32)

        sha256_compress(1, 1, scratch, 1, digest)

        assert digest.hex() == hashlib.sha256(b"").hexdigest()
