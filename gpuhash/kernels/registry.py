"""
Hash algorithm registry.

Maps an algorithm id to its per-backend kernel implementations, output
size and block-processing parameters. Entries are immutable, ids are
unique, and the registry becomes read-only once frozen.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gpuhash.exceptions import (
    AlgorithmConflictError,
    InvalidConfigurationError,
    RegistryFrozenError,
    UnknownAlgorithmError,
)

if TYPE_CHECKING:
    from gpuhash.backends.base import BackendKind


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KernelSource:
    """Backend-specific implementation of one algorithm's kernels.

    Device backends read ``code``; the host backend reads
    ``host_functions`` (entry name -> callable).
    """

    pad_entry: str
    compress_entry: str
    code: str | None = None
    host_functions: Mapping[str, Callable[..., Any]] | None = None


@dataclass(frozen=True)
class AlgorithmDescriptor:
    """An immutable registry entry."""

    algorithm_id: str
    output_size_bytes: int
    block_size_bytes: int
    kernels: Mapping[BackendKind, KernelSource] = field(repr=False)
    length_field_bytes: int = 8
    length_byteorder: str = "big"
    test_vectors: tuple[tuple[bytes, str], ...] = field(default=(), repr=False)

    def __post_init__(self) -> None:
        """Validate the descriptor."""
        if not self.algorithm_id or self.algorithm_id != self.algorithm_id.lower():
            raise InvalidConfigurationError(
                "algorithm_id", self.algorithm_id, "must be a non-empty lowercase name"
            )
        if self.output_size_bytes <= 0:
            raise InvalidConfigurationError(
                "output_size_bytes", self.output_size_bytes, "must be positive"
            )
        if self.block_size_bytes <= self.length_field_bytes:
            raise InvalidConfigurationError(
                "block_size_bytes",
                self.block_size_bytes,
                "must be larger than the length field",
            )
        if self.length_byteorder not in ("big", "little"):
            raise InvalidConfigurationError(
                "length_byteorder", self.length_byteorder, "must be 'big' or 'little'"
            )

    @property
    def length_big_endian(self) -> bool:
        """Whether the message bit-length is stored big-endian."""
        return self.length_byteorder == "big"

    def padded_length(self, input_length: int) -> int:
        """Length of the message after 0x80, zero fill and length field."""
        block = self.block_size_bytes
        return -(-(input_length + 1 + self.length_field_bytes) // block) * block

    def kernel_for(self, kind: BackendKind) -> KernelSource | None:
        """Get the kernel implementation for a backend, if any."""
        return self.kernels.get(kind)


class AlgorithmRegistry:
    """
    Registry of hash algorithms keyed by id.

    Registration is idempotent for an identical descriptor; registering a
    different descriptor under an existing id is a configuration error.
    Every entry must carry published test vectors.

    Example:
        >>> registry = AlgorithmRegistry()
        >>> registry.register(SHA256)
        >>> registry.freeze()
        >>> registry.lookup("sha256").output_size_bytes
        32
    """

    def __init__(self) -> None:
        """Initialize an empty, writable registry."""
        self._entries: dict[str, AlgorithmDescriptor] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register(self, descriptor: AlgorithmDescriptor) -> AlgorithmDescriptor:
        """
        Register an algorithm.

        Args:
            descriptor: Entry to add.

        Returns:
            The registered descriptor.

        Raises:
            RegistryFrozenError: If the registry is read-only.
            AlgorithmConflictError: If the id maps to a different descriptor.
            InvalidConfigurationError: If the entry has no test vectors.
        """
        key = descriptor.algorithm_id
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(key)

            existing = self._entries.get(key)
            if existing is not None:
                if existing == descriptor:
                    return existing
                raise AlgorithmConflictError(key)

            if not descriptor.test_vectors:
                raise InvalidConfigurationError(
                    "test_vectors", key, "every algorithm needs reference test vectors"
                )

            self._entries[key] = descriptor

        logger.debug("Registered hash algorithm '%s'", key)
        return descriptor

    def lookup(self, algorithm_id: str) -> AlgorithmDescriptor:
        """
        Look up an algorithm by id (case-insensitive).

        Raises:
            UnknownAlgorithmError: If the id is not registered.
        """
        try:
            return self._entries[algorithm_id.strip().lower()]
        except KeyError:
            raise UnknownAlgorithmError(algorithm_id, self.ids()) from None

    def freeze(self) -> None:
        """Make the registry read-only."""
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        """Check if the registry is read-only."""
        return self._frozen

    def ids(self) -> list[str]:
        """Get all registered ids, sorted."""
        return sorted(self._entries)

    def __contains__(self, algorithm_id: object) -> bool:
        return isinstance(algorithm_id, str) and algorithm_id.lower() in self._entries

    def __iter__(self) -> Iterator[AlgorithmDescriptor]:
        return iter([self._entries[k] for k in self.ids()])

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        """String representation."""
        return f"AlgorithmRegistry(algorithms={self.ids()}, frozen={self._frozen})"


_default_registry: AlgorithmRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> AlgorithmRegistry:
    """Get the process registry with the built-in algorithms, frozen."""
    global _default_registry

    with _default_lock:
        if _default_registry is None:
            from gpuhash.kernels.algorithms import register_builtin_algorithms

            registry = AlgorithmRegistry()
            register_builtin_algorithms(registry)
            registry.freeze()
            _default_registry = registry
    return _default_registry


def lookup_algorithm(algorithm_id: str) -> AlgorithmDescriptor:
    """Look up an algorithm in the default registry."""
    return default_registry().lookup(algorithm_id)
