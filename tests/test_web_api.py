"""Tests for FastAPI web API.

Uses TestClient to test all endpoints.
"""

import uuid

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from meshforge import __version__
from meshforge.builds.artifacts import HmacUrlSigner
from meshforge.builds.dispatch import DispatchConfigError, DispatchRequest
from meshforge.config import Settings
from meshforge.context import RuntimeContext
from meshforge.db import create_all_tables, get_engine, get_session_factory
from meshforge.registry.catalog import PluginRegistry, TargetCatalog
from meshforge.registry.schema import PluginRegistryEntry, TargetEntry
from meshforge.targets.hierarchy import ArchitectureHierarchy
from web.app import include_routers

WEBHOOK_TOKEN = "hook-secret"


class RecordingDispatcher:
    """Dispatcher that records requests instead of calling the compiler."""

    def __init__(self) -> None:
        self.requests: list[DispatchRequest] = []

    def dispatch(self, request: DispatchRequest) -> None:
        self.requests.append(request)


class UnconfiguredDispatcher:
    """Dispatcher without credentials."""

    def dispatch(self, request: DispatchRequest) -> None:
        raise DispatchConfigError("GitHub token is not configured")


def create_test_app() -> FastAPI:
    """Create a minimal FastAPI app for testing without lifespan."""
    application = FastAPI(title="Meshforge API", version=__version__)
    include_routers(application)
    return application


def make_context(db_url: str, **overrides) -> RuntimeContext:
    """Build a runtime context with small in-memory registries."""
    settings = Settings(db_url=db_url, webhook_token=WEBHOOK_TOKEN)
    registry = PluginRegistry(
        [
            PluginRegistryEntry(
                slug="bbs",
                name="BBS",
                version="1.2.0",
                dependencies={"storage": "^1.0"},
            ),
            PluginRegistryEntry(slug="storage", name="Storage", version="1.0.3"),
            PluginRegistryEntry(
                slug="wifi-bridge",
                name="WiFi Bridge",
                version="0.1.0",
                includes=["esp32"],
                featured=True,
            ),
        ]
    )
    catalog = TargetCatalog(
        [
            TargetEntry(
                platformio_target="tbeam",
                display_name="LILYGO T-Beam",
                tags=["LILYGO"],
                architecture="esp32",
            ),
            TargetEntry(
                platformio_target="rak4631",
                display_name="RAK WisBlock 4631",
                tags=["RAK"],
                architecture="nrf52840",
            ),
        ]
    )
    hierarchy = ArchitectureHierarchy(
        {
            "tbeam": "esp32",
            "esp32": None,
            "rak4631": "nrf52840",
            "nrf52840": "nrf52",
            "nrf52": None,
        },
        catalog,
    )
    values = {
        "settings": settings,
        "registry": registry,
        "catalog": catalog,
        "hierarchy": hierarchy,
        "dispatcher": RecordingDispatcher(),
        "signer": HmacUrlSigner(
            "https://artifacts.example.com", "sign-key", clock=lambda: 1000.0
        ),
    }
    values.update(overrides)
    return RuntimeContext(**values)


@pytest.fixture
def app(tmp_path):
    """Create a test app with a fresh SQLite database in tmp_path.

    Each test gets a fresh database file.
    """
    db_file = tmp_path / f"test_{uuid.uuid4().hex[:8]}.db"
    db_url = f"sqlite:///{db_file}"
    engine = get_engine(db_url)
    create_all_tables(engine)

    application = create_test_app()
    application.state.session_factory = get_session_factory(engine)
    application.state.context = make_context(db_url)
    yield application
    engine.dispose()


@pytest.fixture
def client(app):
    """Create a test client."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def build_body() -> dict:
    """Build request body as sent by a browser."""
    return {
        "version": "v2.7.16",
        "target": "tbeam",
        "modulesExcluded": {"MQTT": True},
        "pluginsEnabled": ["bbs"],
    }


def auth(token: str = WEBHOOK_TOKEN) -> dict[str, str]:
    """Authorization header for the webhook."""
    return {"Authorization": f"Bearer {token}"}


class TestHealthEndpoints:
    """Tests for health and info endpoints."""

    def test_health(self, client: TestClient) -> None:
        """Test /health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "version": __version__}

    def test_root(self, client: TestClient) -> None:
        """Test / endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["name"] == "Meshforge API"

    def test_config_masks_secrets(self, client: TestClient, monkeypatch) -> None:
        """Test /config endpoint."""
        monkeypatch.setenv("MESHFORGE_GITHUB_TOKEN", "ghp_do_not_leak")
        response = client.get("/config")
        assert response.status_code == 200
        assert response.json()["github_token"] == "**********"
        assert "ghp_do_not_leak" not in response.text


class TestEnsureBuildEndpoint:
    """Tests for POST /builds."""

    def test_creates_and_dispatches(
        self, client: TestClient, app: FastAPI, build_body: dict
    ) -> None:
        """A new configuration is created and dispatched once."""
        response = client.post("/builds", json=build_body)

        assert response.status_code == 200
        data = response.json()
        assert data["existed"] is False
        assert data["dispatched"] is True
        assert data["status"] == "queued"
        assert len(data["build_hash"]) == 64
        assert len(app.state.context.dispatcher.requests) == 1

    def test_same_config_reuses_build(
        self, client: TestClient, app: FastAPI, build_body: dict
    ) -> None:
        """Repeating the request returns the existing build."""
        first = client.post("/builds", json=build_body).json()
        reordered = {**build_body, "pluginsEnabled": ["storage", "bbs"]}
        second = client.post("/builds", json=reordered).json()

        assert second["existed"] is True
        assert second["build_id"] == first["build_id"]
        assert second["build_hash"] == first["build_hash"]
        assert len(app.state.context.dispatcher.requests) == 1

    def test_invalid_config(self, client: TestClient) -> None:
        """A config without target is rejected."""
        response = client.post("/builds", json={"version": "v2.7.16"})
        assert response.status_code == 422

    def test_dispatch_not_configured(
        self, client: TestClient, app: FastAPI, build_body: dict
    ) -> None:
        """Missing dispatch credentials are a server error."""
        app.state.context.dispatcher = UnconfiguredDispatcher()
        response = client.post("/builds", json=build_body)
        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "dispatch_not_configured"


class TestBuildQueries:
    """Tests for build query endpoints."""

    def test_get_by_id_and_hash(self, client: TestClient, build_body: dict) -> None:
        """Builds are addressable by id and by hash."""
        created = client.post("/builds", json=build_body).json()

        by_id = client.get(f"/builds/id/{created['build_id']}")
        by_hash = client.get(f"/builds/{created['build_hash']}")

        assert by_id.status_code == 200
        assert by_hash.status_code == 200
        assert by_id.json() == by_hash.json()
        assert by_id.json()["config"]["pluginsEnabled"] == ["bbs"]
        assert by_id.json()["status_label"] == "Queued"

    def test_not_found(self, client: TestClient) -> None:
        """Unknown builds return 404 with a code."""
        response = client.get("/builds/id/999")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "build_not_found"
        assert client.get(f"/builds/{'0' * 64}").status_code == 404

    def test_list_and_failed(self, client: TestClient, build_body: dict) -> None:
        """Listing supports status filters; failed lists only failures."""
        client.post("/builds", json=build_body)

        assert len(client.get("/builds").json()) == 1
        assert client.get("/builds", params={"status": "success"}).json() == []
        assert client.get("/builds/failed").json() == []

    def test_reproduce(self, client: TestClient, build_body: dict) -> None:
        """Reproduction commands end with the PlatformIO build."""
        created = client.post("/builds", json=build_body).json()

        response = client.get(f"/builds/{created['build_hash']}/reproduce")

        assert response.status_code == 200
        data = response.json()
        assert data["commands"][-1] == "pio run -e tbeam"
        assert data["script"] == "\n".join(data["commands"])

    def test_retry(self, client: TestClient, app: FastAPI, build_body: dict) -> None:
        """Retry re-dispatches the stored configuration."""
        created = client.post("/builds", json=build_body).json()

        response = client.post(f"/builds/id/{created['build_id']}/retry")

        assert response.status_code == 200
        assert response.json()["dispatched"] is True
        assert response.json()["status"] == "queued"
        assert len(app.state.context.dispatcher.requests) == 2

    def test_retry_missing(self, client: TestClient) -> None:
        """Retrying an unknown build returns 404."""
        assert client.post("/builds/id/999/retry").status_code == 404


class TestWebhook:
    """Tests for POST /github-webhook."""

    @pytest.fixture
    def build_id(self, client: TestClient, build_body: dict) -> int:
        """Create a build and return its id."""
        return client.post("/builds", json=build_body).json()["build_id"]

    def test_not_configured(
        self, client: TestClient, app: FastAPI, build_id: int
    ) -> None:
        """Without a configured token the webhook is a server error."""
        app.state.context.settings = Settings(db_url="sqlite://")
        response = client.post(
            "/github-webhook", json={"build_id": build_id, "state": "success"}
        )
        assert response.status_code == 500
        assert response.json()["detail"]["code"] == "webhook_not_configured"

    def test_missing_authorization(self, client: TestClient, build_id: int) -> None:
        """Requests without a bearer token are rejected."""
        response = client.post(
            "/github-webhook", json={"build_id": build_id, "state": "success"}
        )
        assert response.status_code == 401

    def test_wrong_token(self, client: TestClient, build_id: int) -> None:
        """A wrong bearer token is rejected."""
        response = client.post(
            "/github-webhook",
            json={"build_id": build_id, "state": "success"},
            headers=auth("nope"),
        )
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "unauthorized"

    def test_missing_fields(self, client: TestClient) -> None:
        """build_id and status are required."""
        response = client.post(
            "/github-webhook", json={"state": "success"}, headers=auth()
        )
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "invalid_payload"

    def test_unknown_build(self, client: TestClient) -> None:
        """Reports for unknown builds return 404."""
        response = client.post(
            "/github-webhook",
            json={"build_id": 999, "state": "success"},
            headers=auth(),
        )
        assert response.status_code == 404

    def test_status_progression(self, client: TestClient, build_id: int) -> None:
        """Reports are applied and persisted."""
        client.post(
            "/github-webhook",
            json={"build_id": build_id, "state": "in_progress", "github_run_id": 100},
            headers=auth(),
        )
        response = client.post(
            "/github-webhook",
            json={
                "build_id": build_id,
                "state": "success",
                "github_run_id": 100,
                "artifactPath": "firmware-custom-100.zip",
            },
            headers=auth(),
        )

        assert response.status_code == 200
        assert response.json() == {
            "build_id": build_id,
            "status": "success",
            "applied": True,
        }
        build = client.get(f"/builds/id/{build_id}").json()
        assert build["run_id"] == "100"
        assert build["firmware_path"] == "firmware-custom-100.zip"
        assert build["completed_at"] is not None

    def test_stale_report(self, client: TestClient, build_id: int) -> None:
        """A superseded run is acknowledged but not applied."""
        for run_id in (100, 200):
            client.post(
                "/github-webhook",
                json={"build_id": build_id, "state": "in_progress", "run_id": run_id},
                headers=auth(),
            )

        response = client.post(
            "/github-webhook",
            json={"build_id": build_id, "state": "failure", "run_id": 100},
            headers=auth(),
        )

        assert response.status_code == 200
        assert response.json()["applied"] is False
        assert response.json()["status"] == "in_progress"


class TestDownloadUrl:
    """Tests for POST /builds/id/{id}/download-url."""

    def test_signed_url(self, client: TestClient, build_body: dict) -> None:
        """A completed build yields a signed URL and filename."""
        created = client.post("/builds", json=build_body).json()
        client.post(
            "/github-webhook",
            json={"build_id": created["build_id"], "state": "success", "run_id": 7},
            headers=auth(),
        )

        response = client.post(
            f"/builds/id/{created['build_id']}/download-url",
            json={"artifact_type": "firmware"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["object_key"] == f"firmware-{created['build_hash']}-7.tar.gz"
        assert data["filename"].startswith("meshtastic-v2.7.16-tbeam-")
        assert data["url"].startswith("https://artifacts.example.com/")
        assert "signature=" in data["url"]

    def test_not_available(self, client: TestClient, build_body: dict) -> None:
        """A build without a run has no artifact."""
        created = client.post("/builds", json=build_body).json()
        response = client.post(
            f"/builds/id/{created['build_id']}/download-url", json={}
        )
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "artifact_not_available"

    def test_signing_not_configured(
        self, client: TestClient, app: FastAPI, build_body: dict
    ) -> None:
        """Without a signer the endpoint is unavailable."""
        app.state.context.signer = None
        created = client.post("/builds", json=build_body).json()
        response = client.post(
            f"/builds/id/{created['build_id']}/download-url", json={}
        )
        assert response.status_code == 503


class TestPluginEndpoints:
    """Tests for plugin endpoints."""

    def test_list_plugins(self, client: TestClient, build_body: dict) -> None:
        """Plugins are listed featured first with flash counts."""
        client.post("/builds", json=build_body)

        data = client.get("/plugins").json()

        assert [p["slug"] for p in data] == ["wifi-bridge", "bbs", "storage"]
        counts = {p["slug"]: p["flash_count"] for p in data}
        assert counts == {"wifi-bridge": 0, "bbs": 1, "storage": 0}

    def test_resolve(self, client: TestClient) -> None:
        """Resolution returns closure, implicit and pinned plugins."""
        response = client.post("/plugins/resolve", json={"plugins": ["bbs"]})

        assert response.status_code == 200
        assert response.json() == {
            "closure": ["bbs", "storage"],
            "implicit": ["storage"],
            "pinned": ["bbs@1.2.0", "storage@1.0.3"],
            "explicit": ["bbs"],
        }


class TestTargetEndpoints:
    """Tests for target endpoints."""

    def test_list_targets(self, client: TestClient) -> None:
        """Targets are grouped by category."""
        data = client.get("/targets").json()
        assert data["categories"] == ["LILYGO", "RAK"]
        assert data["targets"]["LILYGO"] == [
            {"target": "tbeam", "name": "LILYGO T-Beam", "architecture": "esp32"}
        ]

    def test_compatibility(self, client: TestClient) -> None:
        """Per-plugin verdicts follow the ancestor chain."""
        ok = client.get(
            "/targets/tbeam/compatibility",
            params={"plugins": ["wifi-bridge", "bbs"]},
        ).json()
        bad = client.get(
            "/targets/rak4631/compatibility", params={"plugins": ["wifi-bridge"]}
        ).json()

        assert ok["ancestors"] == ["tbeam", "esp32"]
        assert ok["compatible"] is True
        assert bad["plugins"] == {"wifi-bridge": False}
        assert bad["compatible"] is False

    def test_compatibility_without_plugins(self, client: TestClient) -> None:
        """No plugins means compatible."""
        data = client.get("/targets/rak4631/compatibility").json()
        assert data["plugins"] == {}
        assert data["compatible"] is True
