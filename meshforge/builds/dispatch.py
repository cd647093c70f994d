"""Compile job dispatch to the external compiler.

This module handles:
- The dispatch request handed to the compiler
- Triggering a GitHub Actions ``workflow_dispatch`` over HTTP
- Mapping transport failures to DispatchError

The compiler reports progress back through the status webhook; dispatch
itself never returns a run id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import httpx

if TYPE_CHECKING:
    from meshforge.config import Settings

logger = logging.getLogger(__name__)

WEBHOOK_PATH = "/github-webhook"


class DispatchError(Exception):
    """Raised when the compiler could not be triggered."""

    def __init__(self, message: str, code: str = "dispatch_failed") -> None:
        """Initialize DispatchError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code


class DispatchConfigError(Exception):
    """Raised when dispatch credentials or the callback URL are missing."""

    def __init__(self, message: str, code: str = "dispatch_not_configured") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class DispatchRequest:
    """Inputs of a compile job.

    Attributes:
        target: Hardware target.
        version: Firmware version.
        flags: Compiler defines.
        plugins: Pinned ``slug@version`` tokens to install.
        build_id: Build record id the compiler reports back to.
        build_hash: Build content address.
    """

    target: str
    version: str
    flags: str
    build_id: int
    build_hash: str
    plugins: list[str] = field(default_factory=list)


class Dispatcher(Protocol):
    """Anything able to start a compile job."""

    def dispatch(self, request: DispatchRequest) -> None:
        """Start a compile job or raise DispatchError."""
        ...


class GitHubDispatcher:
    """Dispatcher triggering a GitHub Actions workflow.

    Attributes:
        settings: Application settings.
    """

    def __init__(self, settings: Settings, client: httpx.Client | None = None) -> None:
        self.settings = settings
        self._client = client

    def __repr__(self) -> str:
        return (
            f"<GitHubDispatcher(repo='{self.settings.github_repo}', "
            f"workflow='{self.settings.github_workflow}')>"
        )

    @property
    def dispatch_url(self) -> str:
        """Workflow dispatch endpoint."""
        base = self.settings.github_api_url.rstrip("/")
        return (
            f"{base}/repos/{self.settings.github_repo}/actions/workflows/"
            f"{self.settings.github_workflow}/dispatches"
        )

    def build_payload(self, request: DispatchRequest) -> dict[str, object]:
        """Render the workflow_dispatch body for a request.

        Raises:
            DispatchConfigError: If no callback URL is configured.
        """
        if not self.settings.callback_url:
            raise DispatchConfigError("Callback URL is not configured")
        return {
            "ref": self.settings.github_ref,
            "inputs": {
                "target": request.target,
                "flags": request.flags,
                "version": request.version,
                "build_id": str(request.build_id),
                "build_hash": request.build_hash,
                "plugins": " ".join(request.plugins),
                "callback_url": self.settings.callback_url.rstrip("/") + WEBHOOK_PATH,
            },
        }

    def dispatch(self, request: DispatchRequest) -> None:
        """Trigger the compile workflow.

        Args:
            request: Compile job inputs.

        Raises:
            DispatchConfigError: If the token or callback URL is missing.
            DispatchError: If the request fails or is rejected.
        """
        if self.settings.github_token is None:
            raise DispatchConfigError("GitHub token is not configured")
        payload = self.build_payload(request)
        headers = {
            "Authorization": f"Bearer {self.settings.github_token.get_secret_value()}",
            "Accept": "application/vnd.github+json",
        }

        logger.info(
            "Dispatching build %s (hash=%s, target=%s)",
            request.build_id,
            request.build_hash[:12],
            request.target,
        )

        client = self._client or httpx.Client()
        try:
            response = client.post(
                self.dispatch_url,
                json=payload,
                headers=headers,
                timeout=self.settings.dispatch_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DispatchError(
                f"Compiler API returned {e.response.status_code}: "
                f"{e.response.text[:200]}",
                code="dispatch_rejected",
            ) from e
        except httpx.TimeoutException as e:
            raise DispatchError(
                f"Timeout dispatching build {request.build_id}",
                code="dispatch_timeout",
            ) from e
        except httpx.RequestError as e:
            raise DispatchError(f"Network error dispatching build: {e}") from e
        finally:
            if self._client is None:
                client.close()


__all__ = [
    "DispatchConfigError",
    "DispatchError",
    "DispatchRequest",
    "Dispatcher",
    "GitHubDispatcher",
]
