"""
Swarm Error Hierarchy

Unified exception hierarchy for consistent error handling across the scheduler.
All custom exceptions inherit from SwarmError for easy catching and filtering.

Usage:
    from swarm.errors import DispatchError, MissingProgramError

    try:
        controller.validate_programs()
    except MissingProgramError as e:
        logger.error(f"Cannot dispatch: {e.message}, program: {e.context['program']}")
"""

from typing import Any

__all__ = [
    # Command errors
    "CommandError",
    # Validation errors
    "ConfigurationError",
    # Dispatch errors
    "DispatchError",
    # Host errors
    "HostError",
    "HostUnavailableError",
    "MissingProgramError",
    # Base error
    "SwarmError",
    "TopologyError",
    "ValidationError",
]


class SwarmError(Exception):
    """Base exception for all scheduler errors.

    Attributes:
        code: Machine-readable error code for categorization
        message: Human-readable error description
        context: Additional context for debugging
    """
    code: str = "SWARM_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"[{self.code}] {self.message} ({ctx})"
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
        }


# =============================================================================
# Validation Errors
# =============================================================================


class ValidationError(SwarmError):
    """Base class for validation errors."""
    code: str = "VALIDATION_ERROR"


class ConfigurationError(ValidationError):
    """Invalid configuration.

    Raised when a config file, environment override or live setter
    supplies a value the scheduler cannot use.
    """
    code: str = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        key: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if key:
            self.context["key"] = key


class CommandError(ValidationError):
    """Command channel message that cannot be applied."""
    code: str = "COMMAND_ERROR"

    def __init__(
        self,
        message: str,
        action: str | None = None,
        key: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if action:
            self.context["action"] = action
        if key:
            self.context["key"] = key


# =============================================================================
# Host Errors
# =============================================================================


class HostError(SwarmError):
    """Base class for errors raised by the external host facilities."""
    code: str = "HOST_ERROR"


class HostUnavailableError(HostError):
    """Host API could not be reached or returned garbage.

    Transient: the controller abandons the current tick and retries on
    the next one.
    """
    code: str = "HOST_UNAVAILABLE"

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if url:
            self.context["url"] = url
        if status_code is not None:
            self.context["status_code"] = status_code


class MissingProgramError(HostError):
    """An operation program is not installed on the host.

    Reported once; allocation is skipped while it persists.
    """
    code: str = "MISSING_PROGRAM"

    def __init__(
        self,
        message: str,
        program: str | None = None,
        operation: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if program:
            self.context["program"] = program
        if operation:
            self.context["operation"] = operation


class TopologyError(HostError):
    """Node discovery failed (e.g. the root node does not exist)."""
    code: str = "TOPOLOGY_ERROR"


# =============================================================================
# Dispatch Errors
# =============================================================================


class DispatchError(SwarmError):
    """A launch attempt failed.

    Never fatal. The allocator counts it as a failed dispatch and the
    next reconciliation corrects any drift.
    """
    code: str = "DISPATCH_ERROR"

    def __init__(
        self,
        message: str,
        node: str | None = None,
        target: str | None = None,
        operation: str | None = None,
        threads: int | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context=context)
        if node:
            self.context["node"] = node
        if target:
            self.context["target"] = target
        if operation:
            self.context["operation"] = operation
        if threads is not None:
            self.context["threads"] = threads
