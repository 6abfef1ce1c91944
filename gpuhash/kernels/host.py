"""
Host reference kernels.

Python implementations with the same entry points and argument order as the
device programs in ``device_source``. Each callable receives the launch
geometry ``(grid_size, block_size)`` followed by the kernel arguments, so the
host backend exercises the same two-stage contract a GPU does.
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterator
from typing import Any

import numpy as np

from gpuhash.kernels.constants import (
    MD5_IV,
    MD5_K,
    MD5_S,
    MD_BLOCK_BYTES,
    MD_LENGTH_FIELD_BYTES,
    SHA1_IV,
    SHA1_K,
    SHA256_IV,
    SHA256_K,
)

MASK32 = 0xFFFFFFFF
MASK64 = 0xFFFFFFFFFFFFFFFF


def _rotl(x: int, n: int) -> int:
    return ((x << n) | (x >> (32 - n))) & MASK32


def _rotr(x: int, n: int) -> int:
    return ((x >> n) | (x << (32 - n))) & MASK32


def md_pad(
    grid_size: int,
    block_size: int,
    source: bytearray,
    padded: bytearray,
    length: Any,
    padded_length: Any,
    length_big_endian: Any,
) -> None:
    """
    Merkle-Damgard padding, one grid-stride iteration at a time.

    Each iteration handles ``grid_size * block_size`` consecutive output
    bytes, vectorized with NumPy.
    """
    length = int(length)
    padded_length = int(padded_length)
    stride = grid_size * block_size

    if length:
        message = np.frombuffer(source, dtype=np.uint8, count=length)
    else:
        message = np.empty(0, dtype=np.uint8)
    out = np.frombuffer(padded, dtype=np.uint8, count=padded_length)
    byteorder = "big" if int(length_big_endian) else "little"
    length_field = np.frombuffer(
        ((length * 8) & MASK64).to_bytes(MD_LENGTH_FIELD_BYTES, byteorder), dtype=np.uint8
    )
    tail = padded_length - MD_LENGTH_FIELD_BYTES

    for start in range(0, padded_length, stride):
        idx = np.arange(start, min(start + stride, padded_length), dtype=np.int64)
        values = np.zeros(idx.size, dtype=np.uint8)

        in_message = idx < length
        values[in_message] = message[idx[in_message]]
        values[idx == length] = 0x80
        in_tail = idx >= tail
        values[in_tail] = length_field[idx[in_tail] - tail]

        out[idx] = values


def _blocks(padded: bytearray, n_blocks: Any) -> Iterator[memoryview]:
    view = memoryview(padded)
    for b in range(int(n_blocks)):
        yield view[b * MD_BLOCK_BYTES : (b + 1) * MD_BLOCK_BYTES]


def _sha256_transform(state: list[int], block: memoryview) -> None:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 64):
        s0 = _rotr(w[i - 15], 7) ^ _rotr(w[i - 15], 18) ^ (w[i - 15] >> 3)
        s1 = _rotr(w[i - 2], 17) ^ _rotr(w[i - 2], 19) ^ (w[i - 2] >> 10)
        w.append((w[i - 16] + s0 + w[i - 7] + s1) & MASK32)

    a, b, c, d, e, f, g, h = state
    for i in range(64):
        ep1 = _rotr(e, 6) ^ _rotr(e, 11) ^ _rotr(e, 25)
        ch = (e & f) ^ (~e & g)
        t1 = (h + ep1 + ch + SHA256_K[i] + w[i]) & MASK32
        ep0 = _rotr(a, 2) ^ _rotr(a, 13) ^ _rotr(a, 22)
        maj = (a & b) ^ (a & c) ^ (b & c)
        t2 = (ep0 + maj) & MASK32
        h, g, f, e = g, f, e, (d + t1) & MASK32
        d, c, b, a = c, b, a, (t1 + t2) & MASK32

    for i, v in enumerate((a, b, c, d, e, f, g, h)):
        state[i] = (state[i] + v) & MASK32


def sha256_compress(
    grid_size: int, block_size: int, padded: bytearray, n_blocks: Any, digest: bytearray
) -> None:
    """SHA-256 compression over ``n_blocks`` padded blocks."""
    state = list(SHA256_IV)
    for block in _blocks(padded, n_blocks):
        _sha256_transform(state, block)
    digest[:32] = struct.pack(">8I", *state)


def _sha1_transform(state: list[int], block: memoryview) -> None:
    w = list(struct.unpack(">16I", block))
    for i in range(16, 80):
        w.append(_rotl(w[i - 3] ^ w[i - 8] ^ w[i - 14] ^ w[i - 16], 1))

    a, b, c, d, e = state
    for i in range(80):
        if i < 20:
            f = (b & c) | (~b & d)
        elif i < 40:
            f = b ^ c ^ d
        elif i < 60:
            f = (b & c) | (b & d) | (c & d)
        else:
            f = b ^ c ^ d
        t = (_rotl(a, 5) + (f & MASK32) + e + SHA1_K[i // 20] + w[i]) & MASK32
        e, d, c, b, a = d, c, _rotl(b, 30), a, t

    for i, v in enumerate((a, b, c, d, e)):
        state[i] = (state[i] + v) & MASK32


def sha1_compress(
    grid_size: int, block_size: int, padded: bytearray, n_blocks: Any, digest: bytearray
) -> None:
    """SHA-1 compression over ``n_blocks`` padded blocks."""
    state = list(SHA1_IV)
    for block in _blocks(padded, n_blocks):
        _sha1_transform(state, block)
    digest[:20] = struct.pack(">5I", *state)


def _md5_transform(state: list[int], block: memoryview) -> None:
    m = struct.unpack("<16I", block)

    a, b, c, d = state
    for i in range(64):
        if i < 16:
            f = (b & c) | (~b & d)
            g = i
        elif i < 32:
            f = (d & b) | (~d & c)
            g = (5 * i + 1) & 15
        elif i < 48:
            f = b ^ c ^ d
            g = (3 * i + 5) & 15
        else:
            f = c ^ (b | (~d & MASK32))
            g = (7 * i) & 15
        f = ((f & MASK32) + a + MD5_K[i] + m[g]) & MASK32
        a, d, c = d, c, b
        b = (b + _rotl(f, MD5_S[i])) & MASK32

    for i, v in enumerate((a, b, c, d)):
        state[i] = (state[i] + v) & MASK32


def md5_compress(
    grid_size: int, block_size: int, padded: bytearray, n_blocks: Any, digest: bytearray
) -> None:
    """MD5 compression over ``n_blocks`` padded blocks."""
    state = list(MD5_IV)
    for block in _blocks(padded, n_blocks):
        _md5_transform(state, block)
    digest[:16] = struct.pack("<4I", *state)


# Entry point name -> callable, mirroring the device program symbols
HOST_KERNELS: dict[str, Callable[..., None]] = {
    "md_pad": md_pad,
    "sha256_compress": sha256_compress,
    "sha1_compress": sha1_compress,
    "md5_compress": md5_compress,
}
