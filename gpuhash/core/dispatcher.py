"""
Kernel dispatch.

Binds an algorithm's kernels to an open device context and runs the two
stages (parallel padding, serial compression) against caller-owned input
and output buffers, followed by a full synchronization barrier.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from gpuhash.backends.base import KernelExecutionResult
from gpuhash.core.context import DeviceContext
from gpuhash.core.memory import DeviceBuffer
from gpuhash.core.planner import LaunchConfig
from gpuhash.exceptions import ExecutionError, GPUHashError, InvalidConfigurationError
from gpuhash.kernels.registry import AlgorithmDescriptor

logger = logging.getLogger(__name__)


def _validate(
    context: DeviceContext,
    algorithm: AlgorithmDescriptor,
    input_buffer: DeviceBuffer,
    output_buffer: DeviceBuffer,
    config: LaunchConfig,
) -> None:
    if output_buffer.nbytes != algorithm.output_size_bytes:
        raise InvalidConfigurationError(
            "output_buffer",
            output_buffer.nbytes,
            f"'{algorithm.algorithm_id}' writes {algorithm.output_size_bytes} bytes",
        )
    if config.grid_size < 1 or not config.covers(input_buffer.nbytes):
        raise InvalidConfigurationError(
            "launch_config", config, f"does not cover {input_buffer.nbytes} input bytes"
        )
    if config.block_size > context.limits.max_threads_per_block:
        raise InvalidConfigurationError(
            "launch_config",
            config,
            f"block size exceeds device limit of {context.limits.max_threads_per_block}",
        )


def dispatch_kernel(
    context: DeviceContext,
    algorithm: AlgorithmDescriptor,
    input_buffer: DeviceBuffer,
    output_buffer: DeviceBuffer,
    config: LaunchConfig,
) -> KernelExecutionResult:
    """
    Run an algorithm's kernels and wait for them to finish.

    The output buffer may only be read after this returns. On failure its
    contents are undefined. Nothing is retried.

    Args:
        context: Open device context owning both buffers.
        algorithm: Registry entry to run.
        input_buffer: Uploaded message bytes.
        output_buffer: Buffer of exactly ``algorithm.output_size_bytes``.
        config: Launch configuration covering the input length.

    Returns:
        Successful execution result with wall-clock timing.

    Raises:
        ExecutionError: If building, launching or synchronizing fails.
        InvalidHandleError: If a buffer is not live in ``context``.
        InvalidConfigurationError: If the buffers or config do not match.
    """
    _validate(context, algorithm, input_buffer, output_buffer, config)

    memory = context.memory
    backend = context.backend
    input_native = memory.native_of(input_buffer)
    output_native = memory.native_of(output_buffer)
    source = algorithm.kernel_for(context.kind)
    if source is None:
        raise ExecutionError(
            algorithm.algorithm_id,
            context.kind.value,
            "no kernel implementation for this backend",
        )
    program = context.program_for(algorithm)

    length = input_buffer.nbytes
    padded_length = algorithm.padded_length(length)
    n_blocks = padded_length // algorithm.block_size_bytes

    scratch = memory.alloc_scratch(padded_length)
    start_time = time.perf_counter()
    try:
        backend.launch(
            context.native,
            program,
            source.pad_entry,
            config.grid_size,
            config.block_size,
            (
                input_native,
                scratch.native,
                np.uint64(length),
                np.uint64(padded_length),
                np.int32(algorithm.length_big_endian),
            ),
        )
        backend.launch(
            context.native,
            program,
            source.compress_entry,
            1,
            1,
            (scratch.native, np.uint64(n_blocks), output_native),
        )
        backend.synchronize(context.native)
    except GPUHashError:
        memory.discard(scratch)
        raise
    except Exception as e:
        logger.error(
            "Dispatch of '%s' failed on %s: %s", algorithm.algorithm_id, context.kind.value, e
        )
        memory.discard(scratch)
        raise ExecutionError(algorithm.algorithm_id, context.kind.value, e) from e
    memory.release(scratch)

    elapsed_ms = (time.perf_counter() - start_time) * 1000
    logger.debug(
        "Dispatched '%s' on %s: %d bytes, grid=%d block=%d, %.3f ms",
        algorithm.algorithm_id,
        context.kind.value,
        length,
        config.grid_size,
        config.block_size,
        elapsed_ms,
    )
    return KernelExecutionResult(success=True, execution_time_ms=elapsed_ms)
