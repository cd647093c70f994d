"""Shared type definitions for meshforge.

This module contains enums and helpers shared across
subpackages to avoid circular imports.
"""

from enum import Enum


class BuildStatus(str, Enum):
    """Well-known build states.

    The external compiler may report any other intermediate state
    (e.g. ``in_progress``); those are stored as opaque strings.
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


TERMINAL_STATUSES = frozenset({BuildStatus.SUCCESS.value, BuildStatus.FAILURE.value})


class ArtifactType(str, Enum):
    """Kinds of artifacts a compile run produces."""

    FIRMWARE = "firmware"
    SOURCE = "source"


def is_terminal(status: str) -> bool:
    """Check whether a status string is terminal (success or failure)."""
    return status in TERMINAL_STATUSES


def humanize_status(status: str) -> str:
    """Render a status string for display.

    Args:
        status: Raw status value.

    Returns:
        Human readable label, e.g. ``in_progress`` -> ``In Progress``.
    """
    special = {
        BuildStatus.SUCCESS.value: "Success",
        BuildStatus.FAILURE.value: "Failure",
        BuildStatus.QUEUED.value: "Queued",
        BuildStatus.IN_PROGRESS.value: "In Progress",
    }
    if status in special:
        return special[status]
    return " ".join(word.capitalize() for word in status.split("_"))


__all__ = [
    "TERMINAL_STATUSES",
    "ArtifactType",
    "BuildStatus",
    "humanize_status",
    "is_terminal",
]
