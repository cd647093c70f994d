"""Tests for builds/dispatch.py module.

Uses respx to mock the workflow dispatch endpoint.
"""

import json

import httpx
import pytest
import respx

from meshforge.builds.dispatch import (
    DispatchConfigError,
    DispatchError,
    DispatchRequest,
    GitHubDispatcher,
)
from meshforge.config import Settings

DISPATCH_URL = (
    "https://api.github.com/repos/acme/firmware-builds/actions/workflows/"
    "custom_build.yml/dispatches"
)


@pytest.fixture
def settings() -> Settings:
    """Settings with dispatch credentials."""
    return Settings(
        db_url="sqlite://",
        github_token="ghp_test",
        github_repo="acme/firmware-builds",
        callback_url="https://forge.example.com/",
    )


@pytest.fixture
def request_() -> DispatchRequest:
    """A typical compile request."""
    return DispatchRequest(
        target="tbeam",
        version="v2.7.16",
        flags="-DMQTT=1",
        build_id=42,
        build_hash="ab" * 32,
        plugins=["bbs@1.2.0", "storage@1.0.3"],
    )


class TestBuildPayload:
    """Tests for GitHubDispatcher.build_payload."""

    def test_payload_inputs(
        self, settings: Settings, request_: DispatchRequest
    ) -> None:
        """Inputs are strings and the callback points at the webhook."""
        payload = GitHubDispatcher(settings).build_payload(request_)

        assert payload["ref"] == "main"
        assert payload["inputs"] == {
            "target": "tbeam",
            "flags": "-DMQTT=1",
            "version": "v2.7.16",
            "build_id": "42",
            "build_hash": "ab" * 32,
            "plugins": "bbs@1.2.0 storage@1.0.3",
            "callback_url": "https://forge.example.com/github-webhook",
        }

    def test_missing_callback_url(self, request_: DispatchRequest) -> None:
        """A callback URL is required."""
        settings = Settings(db_url="sqlite://", github_token="ghp_test")
        with pytest.raises(DispatchConfigError):
            GitHubDispatcher(settings).build_payload(request_)

    def test_dispatch_url(self, settings: Settings) -> None:
        """The endpoint addresses the configured workflow."""
        assert GitHubDispatcher(settings).dispatch_url == DISPATCH_URL


class TestDispatch:
    """Tests for GitHubDispatcher.dispatch."""

    @respx.mock
    def test_successful_dispatch(
        self, settings: Settings, request_: DispatchRequest
    ) -> None:
        """A 204 response is success."""
        route = respx.post(DISPATCH_URL).mock(return_value=httpx.Response(204))

        GitHubDispatcher(settings).dispatch(request_)

        assert route.called
        sent = route.calls.last.request
        assert sent.headers["Authorization"] == "Bearer ghp_test"
        assert sent.headers["Accept"] == "application/vnd.github+json"
        assert json.loads(sent.content)["inputs"]["build_id"] == "42"

    @respx.mock
    def test_rejected_dispatch(
        self, settings: Settings, request_: DispatchRequest
    ) -> None:
        """Non-2xx responses raise DispatchError."""
        respx.post(DISPATCH_URL).mock(
            return_value=httpx.Response(422, text="Unexpected inputs")
        )

        with pytest.raises(DispatchError) as exc_info:
            GitHubDispatcher(settings).dispatch(request_)

        assert exc_info.value.code == "dispatch_rejected"
        assert "422" in str(exc_info.value)

    @respx.mock
    def test_timeout(self, settings: Settings, request_: DispatchRequest) -> None:
        """Timeouts raise DispatchError."""
        respx.post(DISPATCH_URL).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(DispatchError) as exc_info:
            GitHubDispatcher(settings).dispatch(request_)

        assert exc_info.value.code == "dispatch_timeout"

    @respx.mock
    def test_network_error(self, settings: Settings, request_: DispatchRequest) -> None:
        """Connection failures raise DispatchError."""
        respx.post(DISPATCH_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(DispatchError) as exc_info:
            GitHubDispatcher(settings).dispatch(request_)

        assert exc_info.value.code == "dispatch_failed"

    def test_missing_token(self, request_: DispatchRequest) -> None:
        """Dispatch without a token is a configuration error."""
        settings = Settings(db_url="sqlite://", callback_url="https://x.example.com")
        with pytest.raises(DispatchConfigError) as exc_info:
            GitHubDispatcher(settings).dispatch(request_)
        assert exc_info.value.code == "dispatch_not_configured"

    @respx.mock
    def test_injected_client_is_not_closed(
        self, settings: Settings, request_: DispatchRequest
    ) -> None:
        """A caller supplied client stays open."""
        respx.post(DISPATCH_URL).mock(return_value=httpx.Response(204))
        client = httpx.Client()

        GitHubDispatcher(settings, client=client).dispatch(request_)

        assert not client.is_closed
        client.close()
