"""Error definitions for MCP tools.

This module defines structured error types with stable codes that can be
surfaced to MCP clients. Codes match the ``code`` attribute of the core
exceptions.
"""

from dataclasses import dataclass
from typing import Any

VALIDATION_ERROR = "validation"
BUILD_NOT_FOUND = "build_not_found"
DISPATCH_FAILED = "dispatch_failed"
DISPATCH_NOT_CONFIGURED = "dispatch_not_configured"
REGISTRY_INVALID = "registry_invalid"
INTERNAL_ERROR = "internal_error"


@dataclass
class MCPError:
    """Structured error response for MCP tools.

    Attributes:
        code: Stable error code for programmatic handling.
        message: Human-readable error message.
        details: Optional additional error details.
    """

    code: str
    message: str
    details: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
        }
        if self.details is not None:
            result["details"] = self.details
        return result


def make_error(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> MCPError:
    """Create an MCPError instance.

    Args:
        code: Stable error code.
        message: Human-readable message.
        details: Optional additional details.

    Returns:
        MCPError instance.
    """
    return MCPError(code=code, message=message, details=details)


def validation_error(message: str, details: dict[str, Any] | None = None) -> MCPError:
    """Create a validation error."""
    return make_error(VALIDATION_ERROR, message, details)


def build_not_found(build_ref: int | str) -> MCPError:
    """Create a build not found error."""
    return make_error(
        BUILD_NOT_FOUND,
        f"Build not found: {build_ref}",
        details={"build": build_ref},
    )


__all__ = [
    "BUILD_NOT_FOUND",
    "DISPATCH_FAILED",
    "DISPATCH_NOT_CONFIGURED",
    "INTERNAL_ERROR",
    "MCPError",
    "REGISTRY_INVALID",
    "VALIDATION_ERROR",
    "build_not_found",
    "make_error",
    "validation_error",
]
