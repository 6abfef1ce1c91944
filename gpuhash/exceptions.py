"""
gpuhash exception hierarchy.

This module defines the complete exception hierarchy for gpuhash,
providing specific exception types for different error categories:

- BackendError: Backend availability, selection and device contexts
- MemoryTransferError: Device buffer allocation and host/device copies
- PlanningError: Launch configuration planning
- RegistryError: Hash algorithm registration and lookup
- ExecutionError: Kernel launch and execution failures
- ValidationError: Configuration and argument validation errors

All exceptions inherit from GPUHashError for easy catching.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class GPUHashError(Exception):
    """Base exception for all gpuhash errors."""

    pass


class BackendError(GPUHashError):
    """Base exception for backend-related errors."""

    pass


class BackendUnavailableError(BackendError):
    """Raised by a probe when a backend's runtime or devices are missing.

    This is the expected, recoverable outcome that drives fallback in the
    backend selector.
    """

    def __init__(self, backend_name: str, reason: str) -> None:
        self.backend_name = backend_name
        self.reason = reason
        super().__init__(f"Backend '{backend_name}' is not available: {reason}")


class NoBackendAvailableError(BackendError):
    """Raised when every candidate backend failed probing."""

    def __init__(
        self,
        attempted: Sequence[str],
        reasons: Mapping[str, str] | None = None,
    ) -> None:
        self.attempted = list(attempted)
        self.reasons = dict(reasons or {})
        msg = f"No compute backend available (attempted: {', '.join(self.attempted) or 'none'})"
        for name in self.attempted:
            if name in self.reasons:
                msg += f"\n  {name}: {self.reasons[name]}"
        super().__init__(msg)


class DeviceInitError(BackendError):
    """Raised when a device context cannot be created on an available backend."""

    def __init__(self, backend_name: str, device_index: int, reason: str) -> None:
        self.backend_name = backend_name
        self.device_index = device_index
        self.reason = reason
        super().__init__(
            f"Failed to open device {device_index} on backend '{backend_name}': {reason}"
        )


class MemoryTransferError(GPUHashError):
    """Base exception for device memory errors."""

    pass


class AllocError(MemoryTransferError):
    """Raised when a device buffer cannot be allocated."""

    def __init__(self, requested: int, available: int | None, reason: str = "") -> None:
        self.requested = requested
        self.available = available
        self.reason = reason
        msg = f"Failed to allocate {requested} bytes of device memory"
        if available is not None:
            msg += f" ({available} bytes available)"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransferError(MemoryTransferError):
    """Raised when a host/device copy fails."""

    def __init__(self, direction: str, reason: str) -> None:
        self.direction = direction
        self.reason = reason
        super().__init__(f"Failed to copy buffer {direction}: {reason}")


class InvalidHandleError(TransferError):
    """Raised when a buffer is used after release or outside its context."""

    def __init__(self, operation: str, generation: int) -> None:
        self.operation = operation
        self.generation = generation
        super().__init__(
            operation,
            f"buffer generation {generation} is not live in this context",
        )


class PlanningError(GPUHashError):
    """Base exception for launch planning errors."""

    pass


class InputTooLargeError(PlanningError):
    """Raised when an input cannot be covered by a single kernel launch."""

    def __init__(self, input_length: int, capacity: int) -> None:
        self.input_length = input_length
        self.capacity = capacity
        super().__init__(
            f"Input of {input_length} bytes exceeds single-launch capacity of {capacity} threads"
        )


class RegistryError(GPUHashError):
    """Base exception for algorithm registry errors."""

    pass


class UnknownAlgorithmError(RegistryError):
    """Raised when a requested algorithm id is not registered."""

    def __init__(self, algorithm_id: str, available: list[str] | None = None) -> None:
        self.algorithm_id = algorithm_id
        self.available = available or []
        msg = f"Unknown hash algorithm '{algorithm_id}'."
        if self.available:
            msg += f" Available algorithms: {self.available}"
        super().__init__(msg)


class AlgorithmConflictError(RegistryError):
    """Raised when an id is re-registered with a different implementation."""

    def __init__(self, algorithm_id: str) -> None:
        self.algorithm_id = algorithm_id
        super().__init__(
            f"Algorithm '{algorithm_id}' is already registered with a different implementation"
        )


class RegistryFrozenError(RegistryError):
    """Raised when registering into a registry that has been frozen."""

    def __init__(self, algorithm_id: str) -> None:
        self.algorithm_id = algorithm_id
        super().__init__(f"Cannot register '{algorithm_id}': registry is read-only")


class ConformanceError(RegistryError):
    """Raised when a kernel disagrees with a published test vector."""

    def __init__(self, algorithm_id: str, backend_name: str, expected: str, actual: str) -> None:
        self.algorithm_id = algorithm_id
        self.backend_name = backend_name
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Kernel '{algorithm_id}' on backend '{backend_name}' failed conformance: "
            f"expected {expected}, got {actual}"
        )


class ExecutionError(GPUHashError):
    """Raised when a kernel launch or execution fails."""

    def __init__(self, kernel_name: str, backend_name: str, cause: Exception | str) -> None:
        self.kernel_name = kernel_name
        self.backend_name = backend_name
        self.cause = cause
        super().__init__(f"Kernel '{kernel_name}' failed on backend '{backend_name}': {cause}")


class ValidationError(GPUHashError):
    """Base exception for validation-related errors."""

    pass


class InvalidConfigurationError(ValidationError):
    """Raised when configuration is invalid."""

    def __init__(self, parameter: str, value: object, reason: str) -> None:
        self.parameter = parameter
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid configuration: {parameter}={value!r} - {reason}")
