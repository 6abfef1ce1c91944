"""
CUDA C and OpenCL C sources for the digest kernels.

Every algorithm is written once against a handful of dialect macros
(``KERNEL``, ``GLOBAL_MEM``, ``CONSTANT_MEM``, ``DEVICE_FN``, ``GLOBAL_ID``,
``GLOBAL_SIZE``) and rendered for each backend by prepending a prelude.

Each program exposes two entry points:

- ``md_pad(input, padded, length, padded_length, length_big_endian)``:
  parallel Merkle-Damgard padding using a grid-stride loop, so any launch
  whose threads cover the input also covers the padded tail.
- ``<algorithm>_compress(padded, n_blocks, digest)``: the serial
  compression chain, launched with a single thread.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum

from gpuhash.kernels.constants import (
    MD5_IV,
    MD5_K,
    MD5_S,
    SHA1_IV,
    SHA1_K,
    SHA256_IV,
    SHA256_K,
)


class Dialect(Enum):
    """Kernel source language."""

    CUDA = "cuda"
    OPENCL = "opencl"


PAD_ENTRY = "md_pad"

_CUDA_PRELUDE = r"""
typedef unsigned char u8;
typedef unsigned int u32;
typedef unsigned long long u64;

#define KERNEL extern "C" __global__
#define GLOBAL_MEM
#define CONSTANT_MEM __constant__
#define DEVICE_FN __device__
#define GLOBAL_ID ((u64)blockIdx.x * blockDim.x + threadIdx.x)
#define GLOBAL_SIZE ((u64)gridDim.x * blockDim.x)
"""

_OPENCL_PRELUDE = r"""
typedef uchar u8;
typedef uint u32;
typedef ulong u64;

#define KERNEL __kernel
#define GLOBAL_MEM __global
#define CONSTANT_MEM __constant
#define DEVICE_FN
#define GLOBAL_ID ((u64)get_global_id(0))
#define GLOBAL_SIZE ((u64)get_global_size(0))
"""

_COMMON = r"""
#define ROTL32(x, n) (((x) << (n)) | ((x) >> (32 - (n))))
#define ROTR32(x, n) (((x) >> (n)) | ((x) << (32 - (n))))

#define LOAD_BE32(p) \
    (((u32)(p)[0] << 24) | ((u32)(p)[1] << 16) | ((u32)(p)[2] << 8) | (u32)(p)[3])
#define LOAD_LE32(p) \
    ((u32)(p)[0] | ((u32)(p)[1] << 8) | ((u32)(p)[2] << 16) | ((u32)(p)[3] << 24))
#define STORE_BE32(p, v) do { \
    (p)[0] = (u8)((v) >> 24); (p)[1] = (u8)((v) >> 16); \
    (p)[2] = (u8)((v) >> 8); (p)[3] = (u8)(v); } while (0)
#define STORE_LE32(p, v) do { \
    (p)[0] = (u8)(v); (p)[1] = (u8)((v) >> 8); \
    (p)[2] = (u8)((v) >> 16); (p)[3] = (u8)((v) >> 24); } while (0)

KERNEL void md_pad(GLOBAL_MEM const u8* input, GLOBAL_MEM u8* padded,
                   u64 length, u64 padded_length, int length_big_endian)
{
    u64 bit_length = length * 8;
    u64 tail = padded_length - 8;
    for (u64 i = GLOBAL_ID; i < padded_length; i += GLOBAL_SIZE) {
        u8 value = 0;
        if (i < length) {
            value = input[i];
        } else if (i == length) {
            value = 0x80;
        } else if (i >= tail) {
            u32 k = (u32)(i - tail);
            u32 shift = length_big_endian ? (7 - k) * 8 : k * 8;
            value = (u8)(bit_length >> shift);
        }
        padded[i] = value;
    }
}
"""

_SHA256 = r"""
CONSTANT_MEM u32 SHA256_K[64] = { %(k)s };

#define SHA256_CH(x, y, z) (((x) & (y)) ^ (~(x) & (z)))
#define SHA256_MAJ(x, y, z) (((x) & (y)) ^ ((x) & (z)) ^ ((y) & (z)))
#define SHA256_EP0(x) (ROTR32(x, 2) ^ ROTR32(x, 13) ^ ROTR32(x, 22))
#define SHA256_EP1(x) (ROTR32(x, 6) ^ ROTR32(x, 11) ^ ROTR32(x, 25))
#define SHA256_SIG0(x) (ROTR32(x, 7) ^ ROTR32(x, 18) ^ ((x) >> 3))
#define SHA256_SIG1(x) (ROTR32(x, 17) ^ ROTR32(x, 19) ^ ((x) >> 10))

DEVICE_FN void sha256_transform(u32* state, GLOBAL_MEM const u8* block)
{
    u32 w[64];
    for (int i = 0; i < 16; ++i) {
        w[i] = LOAD_BE32(block + i * 4);
    }
    for (int i = 16; i < 64; ++i) {
        w[i] = SHA256_SIG1(w[i - 2]) + w[i - 7] + SHA256_SIG0(w[i - 15]) + w[i - 16];
    }

    u32 a = state[0], b = state[1], c = state[2], d = state[3];
    u32 e = state[4], f = state[5], g = state[6], h = state[7];
    for (int i = 0; i < 64; ++i) {
        u32 t1 = h + SHA256_EP1(e) + SHA256_CH(e, f, g) + SHA256_K[i] + w[i];
        u32 t2 = SHA256_EP0(a) + SHA256_MAJ(a, b, c);
        h = g; g = f; f = e; e = d + t1;
        d = c; c = b; b = a; a = t1 + t2;
    }

    state[0] += a; state[1] += b; state[2] += c; state[3] += d;
    state[4] += e; state[5] += f; state[6] += g; state[7] += h;
}

KERNEL void sha256_compress(GLOBAL_MEM const u8* padded, u64 n_blocks, GLOBAL_MEM u8* digest)
{
    if (GLOBAL_ID != 0) {
        return;
    }
    u32 state[8] = { %(iv)s };
    for (u64 b = 0; b < n_blocks; ++b) {
        sha256_transform(state, padded + b * 64);
    }
    for (int i = 0; i < 8; ++i) {
        STORE_BE32(digest + i * 4, state[i]);
    }
}
"""

_SHA1 = r"""
CONSTANT_MEM u32 SHA1_K[4] = { %(k)s };

DEVICE_FN void sha1_transform(u32* state, GLOBAL_MEM const u8* block)
{
    u32 w[80];
    for (int i = 0; i < 16; ++i) {
        w[i] = LOAD_BE32(block + i * 4);
    }
    for (int i = 16; i < 80; ++i) {
        w[i] = ROTL32(w[i - 3] ^ w[i - 8] ^ w[i - 14] ^ w[i - 16], 1);
    }

    u32 a = state[0], b = state[1], c = state[2], d = state[3], e = state[4];
    for (int i = 0; i < 80; ++i) {
        u32 f;
        if (i < 20) {
            f = (b & c) | (~b & d);
        } else if (i < 40) {
            f = b ^ c ^ d;
        } else if (i < 60) {
            f = (b & c) | (b & d) | (c & d);
        } else {
            f = b ^ c ^ d;
        }
        u32 t = ROTL32(a, 5) + f + e + SHA1_K[i / 20] + w[i];
        e = d; d = c; c = ROTL32(b, 30); b = a; a = t;
    }

    state[0] += a; state[1] += b; state[2] += c; state[3] += d; state[4] += e;
}

KERNEL void sha1_compress(GLOBAL_MEM const u8* padded, u64 n_blocks, GLOBAL_MEM u8* digest)
{
    if (GLOBAL_ID != 0) {
        return;
    }
    u32 state[5] = { %(iv)s };
    for (u64 b = 0; b < n_blocks; ++b) {
        sha1_transform(state, padded + b * 64);
    }
    for (int i = 0; i < 5; ++i) {
        STORE_BE32(digest + i * 4, state[i]);
    }
}
"""

_MD5 = r"""
CONSTANT_MEM u32 MD5_K[64] = { %(k)s };
CONSTANT_MEM u32 MD5_S[64] = { %(s)s };

DEVICE_FN void md5_transform(u32* state, GLOBAL_MEM const u8* block)
{
    u32 m[16];
    for (int i = 0; i < 16; ++i) {
        m[i] = LOAD_LE32(block + i * 4);
    }

    u32 a = state[0], b = state[1], c = state[2], d = state[3];
    for (int i = 0; i < 64; ++i) {
        u32 f;
        int g;
        if (i < 16) {
            f = (b & c) | (~b & d);
            g = i;
        } else if (i < 32) {
            f = (d & b) | (~d & c);
            g = (5 * i + 1) & 15;
        } else if (i < 48) {
            f = b ^ c ^ d;
            g = (3 * i + 5) & 15;
        } else {
            f = c ^ (b | ~d);
            g = (7 * i) & 15;
        }
        f = f + a + MD5_K[i] + m[g];
        a = d; d = c; c = b;
        b = b + ROTL32(f, MD5_S[i]);
    }

    state[0] += a; state[1] += b; state[2] += c; state[3] += d;
}

KERNEL void md5_compress(GLOBAL_MEM const u8* padded, u64 n_blocks, GLOBAL_MEM u8* digest)
{
    if (GLOBAL_ID != 0) {
        return;
    }
    u32 state[4] = { %(iv)s };
    for (u64 b = 0; b < n_blocks; ++b) {
        md5_transform(state, padded + b * 64);
    }
    for (int i = 0; i < 4; ++i) {
        STORE_LE32(digest + i * 4, state[i]);
    }
}
"""

_PRELUDES = {
    Dialect.CUDA: _CUDA_PRELUDE,
    Dialect.OPENCL: _OPENCL_PRELUDE,
}


def _c_array(values: Sequence[int], *, hex_digits: bool = True) -> str:
    if hex_digits:
        return ", ".join(f"0x{v:08x}u" for v in values)
    return ", ".join(f"{v}u" for v in values)


_BODIES = {
    "sha256": _SHA256 % {"k": _c_array(SHA256_K), "iv": _c_array(SHA256_IV)},
    "sha1": _SHA1 % {"k": _c_array(SHA1_K), "iv": _c_array(SHA1_IV)},
    "md5": _MD5
    % {
        "k": _c_array(MD5_K),
        "s": _c_array(MD5_S, hex_digits=False),
        "iv": _c_array(MD5_IV),
    },
}


def compress_entry(algorithm_id: str) -> str:
    """Get the compression kernel's entry point name."""
    return f"{algorithm_id}_compress"


def render_source(algorithm_id: str, dialect: Dialect) -> str:
    """
    Render the full program text for one algorithm.

    Args:
        algorithm_id: One of ``sha256``, ``sha1``, ``md5``.
        dialect: Target kernel language.

    Returns:
        Program source containing ``md_pad`` and ``<algorithm>_compress``.
    """
    try:
        body = _BODIES[algorithm_id]
    except KeyError:
        raise KeyError(f"No device source for algorithm '{algorithm_id}'") from None
    return _PRELUDES[dialect] + _COMMON + body
