"""
Unit tests for launch configuration planning.
"""

from __future__ import annotations

import pytest

from gpuhash.backends.base import DeviceLimits
from gpuhash.core.planner import DEFAULT_BLOCK_SIZE, LaunchConfig, plan_launch
from gpuhash.exceptions import InputTooLargeError, InvalidConfigurationError

GPU_LIMITS = DeviceLimits(max_threads_per_block=1024, max_grid_dimension=2**31 - 1)


class TestLaunchConfig:
    """Tests for LaunchConfig."""

    def test_total_threads(self) -> None:
        """Test total thread count."""
        config = LaunchConfig(block_size=128, grid_size=3)

        assert config.total_threads == 384

    def test_covers(self) -> None:
        """Test coverage check."""
        config = LaunchConfig(block_size=128, grid_size=1)

        assert config.covers(128)
        assert not config.covers(129)


class TestPlanLaunch:
    """Tests for plan_launch."""

    def test_sample_input(self) -> None:
        """Test the 17-byte sample needs one block of 128."""
        config = plan_launch(17, GPU_LIMITS)

        assert config == LaunchConfig(block_size=128, grid_size=1)

    def test_one_mebibyte(self) -> None:
        """Test 1 MiB with block 128 needs 8192 blocks."""
        config = plan_launch(1_048_576, GPU_LIMITS, 128)

        assert config == LaunchConfig(block_size=128, grid_size=8192)

    def test_zero_length_still_launches(self) -> None:
        """Test empty input gets a single block."""
        config = plan_launch(0, GPU_LIMITS)

        assert config.grid_size == 1
        assert config.block_size == DEFAULT_BLOCK_SIZE

    def test_preferred_block_clamped(self) -> None:
        """Test block size never exceeds the device maximum."""
        limits = DeviceLimits(max_threads_per_block=256, max_grid_dimension=65535)

        config = plan_launch(1000, limits, preferred_block_size=1024)

        assert config.block_size == 256
        assert config.grid_size == 4

    def test_block_grows_when_grid_limited(self) -> None:
        """Test block grows in whole warps when the grid would overflow."""
        limits = DeviceLimits(max_threads_per_block=1024, max_grid_dimension=100, warp_size=32)

        config = plan_launch(20_000, limits, preferred_block_size=128)

        assert config.grid_size <= 100
        assert config.block_size % 32 == 0
        assert config.block_size <= 1024
        assert config.covers(20_000)

    def test_exactly_at_capacity(self) -> None:
        """Test input equal to capacity is accepted."""
        limits = DeviceLimits(max_threads_per_block=64, max_grid_dimension=4, warp_size=32)

        config = plan_launch(256, limits, preferred_block_size=64)

        assert config == LaunchConfig(block_size=64, grid_size=4)

    def test_over_capacity(self) -> None:
        """Test input beyond one launch is rejected."""
        limits = DeviceLimits(max_threads_per_block=64, max_grid_dimension=4)

        with pytest.raises(InputTooLargeError) as exc_info:
            plan_launch(257, limits)

        assert exc_info.value.input_length == 257
        assert exc_info.value.capacity == 256

    @pytest.mark.parametrize("length", [1, 31, 127, 128, 129, 4095, 65_537, 10**7])
    @pytest.mark.parametrize("preferred", [32, 128, 1000])
    def test_bounds(self, length: int, preferred: int) -> None:
        """Test every plan covers the input within device limits."""
        config = plan_launch(length, GPU_LIMITS, preferred)

        assert config.grid_size >= 1
        assert 1 <= config.block_size <= GPU_LIMITS.max_threads_per_block
        assert config.grid_size <= GPU_LIMITS.max_grid_dimension
        assert config.covers(length)
        # No wasted block
        assert (config.grid_size - 1) * config.block_size < max(length, 1)

    def test_pure(self) -> None:
        """Test identical inputs give identical plans."""
        assert plan_launch(12_345, GPU_LIMITS, 96) == plan_launch(12_345, GPU_LIMITS, 96)

    @pytest.mark.parametrize(
        ("length", "limits", "preferred"),
        [
            (-1, GPU_LIMITS, 128),
            (10, GPU_LIMITS, 0),
            (10, DeviceLimits(max_threads_per_block=0, max_grid_dimension=10), 128),
            (10, DeviceLimits(max_threads_per_block=10, max_grid_dimension=0), 128),
        ],
    )
    def test_invalid_arguments(self, length: int, limits: DeviceLimits, preferred: int) -> None:
        """Test negative and non-positive arguments are rejected."""
        with pytest.raises(InvalidConfigurationError):
            plan_launch(length, limits, preferred)
