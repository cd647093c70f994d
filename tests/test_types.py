"""Tests for shared types module."""

from meshforge.types import (
    TERMINAL_STATUSES,
    ArtifactType,
    BuildStatus,
    humanize_status,
    is_terminal,
)


class TestEnums:
    """Test enum definitions."""

    def test_build_status_values(self) -> None:
        """BuildStatus should have expected values."""
        assert BuildStatus.QUEUED.value == "queued"
        assert BuildStatus.IN_PROGRESS.value == "in_progress"
        assert BuildStatus.SUCCESS.value == "success"
        assert BuildStatus.FAILURE.value == "failure"

    def test_artifact_type_values(self) -> None:
        """ArtifactType should have expected values."""
        assert ArtifactType.FIRMWARE.value == "firmware"
        assert ArtifactType.SOURCE.value == "source"

    def test_enums_are_strings(self) -> None:
        """Enums compare equal to their string values."""
        assert BuildStatus.SUCCESS == "success"
        assert ArtifactType("source") is ArtifactType.SOURCE


class TestTerminal:
    """Test terminal status helpers."""

    def test_terminal_statuses(self) -> None:
        """Only success and failure are terminal."""
        assert TERMINAL_STATUSES == {"success", "failure"}

    def test_is_terminal(self) -> None:
        """Opaque intermediate statuses are not terminal."""
        assert is_terminal("success")
        assert is_terminal("failure")
        assert not is_terminal("queued")
        assert not is_terminal("compiling")


class TestHumanizeStatus:
    """Test humanize_status."""

    def test_known_statuses(self) -> None:
        """Known statuses have fixed labels."""
        assert humanize_status("in_progress") == "In Progress"
        assert humanize_status("success") == "Success"

    def test_opaque_status(self) -> None:
        """Unknown statuses are title-cased by word."""
        assert humanize_status("uploading_artifacts") == "Uploading Artifacts"
