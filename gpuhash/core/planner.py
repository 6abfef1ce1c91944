"""
Launch configuration planning.

Pure functions that turn an input length and device limits into a 1-D
block/grid configuration. No device access is needed.
"""

from __future__ import annotations

from dataclasses import dataclass

from gpuhash.backends.base import DeviceLimits
from gpuhash.exceptions import InputTooLargeError, InvalidConfigurationError

DEFAULT_BLOCK_SIZE = 128


@dataclass(frozen=True)
class LaunchConfig:
    """Configuration for a 1-D kernel launch."""

    block_size: int
    grid_size: int

    @property
    def total_threads(self) -> int:
        """Get the number of threads launched."""
        return self.block_size * self.grid_size

    def covers(self, input_length: int) -> bool:
        """Check that every input byte has a thread."""
        return self.total_threads >= input_length


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def _validate(input_length: int, limits: DeviceLimits, preferred_block_size: int) -> None:
    if input_length < 0:
        raise InvalidConfigurationError("input_length", input_length, "must be non-negative")
    if preferred_block_size <= 0:
        raise InvalidConfigurationError(
            "preferred_block_size", preferred_block_size, "must be positive"
        )
    if limits.max_threads_per_block <= 0:
        raise InvalidConfigurationError(
            "max_threads_per_block", limits.max_threads_per_block, "must be positive"
        )
    if limits.max_grid_dimension <= 0:
        raise InvalidConfigurationError(
            "max_grid_dimension", limits.max_grid_dimension, "must be positive"
        )


def plan_launch(
    input_length: int,
    limits: DeviceLimits,
    preferred_block_size: int = DEFAULT_BLOCK_SIZE,
) -> LaunchConfig:
    """
    Plan a launch that gives every input byte its own thread.

    The preferred block size is clamped to the device maximum. If the
    resulting grid would exceed the device's grid limit, the block grows
    (in whole warps) until the grid fits.

    Args:
        input_length: Number of input bytes.
        limits: Device limits.
        preferred_block_size: Threads per block to use when possible.

    Returns:
        Configuration with ``grid_size >= 1`` and
        ``grid_size * block_size >= input_length``.

    Raises:
        InputTooLargeError: If ``input_length`` exceeds
            ``max_threads_per_block * max_grid_dimension``.
        InvalidConfigurationError: On negative or non-positive arguments.
    """
    _validate(input_length, limits, preferred_block_size)

    max_block = limits.max_threads_per_block
    max_grid = limits.max_grid_dimension
    capacity = max_block * max_grid
    if input_length > capacity:
        raise InputTooLargeError(input_length, capacity)

    block = min(preferred_block_size, max_block)
    grid = max(1, _ceil_div(input_length, block))

    if grid > max_grid:
        warp = max(1, limits.warp_size)
        block = min(max_block, _ceil_div(_ceil_div(input_length, max_grid), warp) * warp)
        grid = max(1, _ceil_div(input_length, block))

    return LaunchConfig(block_size=block, grid_size=grid)
