"""
Command line interface.

    gpuhash [--input PATH] [--hash ID] [--gpu auto|cuda|opencl|host]
            [--device N] [--block-size N] [--config PATH]
            [--self-test] [--list-backends] [--log-level LEVEL]

Prints ``<hexdigest>  <path>`` like coreutils ``sha256sum``. Exits 0 on
success and 1 on any gpuhash error.
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any, TextIO

from gpuhash import __version__
from gpuhash.config import LOG_LEVELS, HashConfig
from gpuhash.core.selector import AUTO
from gpuhash.engine import HashEngine
from gpuhash.exceptions import BackendUnavailableError, GPUHashError
from gpuhash.kernels.registry import default_registry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Hashed when --input is omitted
SAMPLE_INPUT = b"hello, cuda hash!"
SAMPLE_LABEL = "(sample)"


def configure_logging(level: str) -> None:
    """Attach a stderr handler to the package logger."""
    package_logger = logging.getLogger("gpuhash")
    if not any(isinstance(h, logging.StreamHandler) for h in package_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    package_logger.setLevel(level.upper())


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gpuhash",
        description="Hash a file on a GPU. Supports " + ", ".join(default_registry().ids()) + ".",
    )
    parser.add_argument(
        "-i",
        "--input",
        type=str,
        default=None,
        help="File to hash, or '-' for stdin (default: a built-in sample string)",
    )
    parser.add_argument(
        "-H",
        "--hash",
        type=str.lower,
        default=None,
        choices=default_registry().ids(),
        help="Hash algorithm (default: sha256)",
    )
    parser.add_argument(
        "-g",
        "--gpu",
        type=str.lower,
        default=None,
        choices=[AUTO, "cuda", "opencl", "host"],
        help="Compute backend (default: auto, CUDA then OpenCL)",
    )
    parser.add_argument("-d", "--device", type=int, default=None, help="Device index (default: 0)")
    parser.add_argument(
        "--block-size", type=int, default=None, help="Preferred threads per block (default: 128)"
    )
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        default=None,
        choices=LOG_LEVELS,
        help="Logging level (default: WARNING)",
    )

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--self-test",
        action="store_true",
        help="Check every algorithm against its test vectors on the selected backend",
    )
    actions.add_argument(
        "--list-backends", action="store_true", help="Probe and list compute backends"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> HashConfig:
    """Merge file, environment and command line settings."""
    base = HashConfig.from_file(args.config) if args.config else HashConfig.from_env()
    overrides: dict[str, Any] = {
        "backend": args.gpu,
        "algorithm": args.hash,
        "device_index": args.device,
        "block_size": args.block_size,
        "log_level": args.log_level,
    }
    values = base.to_dict()
    values.update({k: v for k, v in overrides.items() if v is not None})
    return HashConfig(**values)


def read_input(path: str | None) -> tuple[bytes, str]:
    """Read the bytes to hash and the label to print next to the digest."""
    if path is None:
        return SAMPLE_INPUT, SAMPLE_LABEL
    if path == "-":
        return sys.stdin.buffer.read(), "-"
    return Path(path).read_bytes(), path


def list_backends(engine: HashEngine, out: TextIO) -> None:
    """Print the probe outcome of every backend."""
    cache = engine.probe_cache
    for kind in cache.kinds:
        try:
            descriptor = cache.probe(kind)
        except BackendUnavailableError as e:
            print(f"{kind.value}: unavailable ({e.reason})", file=out)
            continue

        print(f"{kind.value}: available", file=out)
        for device in descriptor.devices:
            limits = device.limits
            print(
                f"  [{device.index}] {device.name} "
                f"(max threads/block={limits.max_threads_per_block}, "
                f"max grid={limits.max_grid_dimension})",
                file=out,
            )


def run(args: argparse.Namespace, out: TextIO) -> int:
    """Execute a parsed command line."""
    config = load_config(args)
    configure_logging(config.log_level)
    engine = HashEngine(config)

    if args.list_backends:
        list_backends(engine, out)
        return 0

    if args.self_test:
        for algorithm_id, count in engine.self_test().items():
            print(f"{algorithm_id}: {count} test vector(s) OK", file=out)
        return 0

    data, label = read_input(args.input)
    result = engine.hash(data)
    logger.info(
        "Hashed %d bytes with %s on %s (%s), grid=%d block=%d, %.3f ms",
        len(data),
        result.algorithm,
        result.backend.value,
        result.device_name,
        result.launch.grid_size,
        result.launch.block_size,
        result.execution_time_ms,
    )
    print(f"{result.hexdigest()}  {label}", file=out)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the ``gpuhash`` command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return run(args, sys.stdout)
    except GPUHashError as e:
        print(f"gpuhash: error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"gpuhash: error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
