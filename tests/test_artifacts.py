"""Tests for builds/artifacts.py and builds/reproduce.py modules.

Tests object keys, download filenames, URL signing and reproduction
commands.
"""

from urllib.parse import parse_qs, urlsplit

import pytest

from meshforge.builds.artifacts import (
    ArtifactNotAvailableError,
    HmacUrlSigner,
    InvalidArtifactPathError,
    artifact_filename_base,
    detect_extension,
    download_filename,
    object_key,
    resolve_object_key,
)
from meshforge.builds.models import Build
from meshforge.builds.reproduce import reproduce_commands
from meshforge.registry.catalog import PluginRegistry
from meshforge.registry.schema import PluginRegistryEntry
from meshforge.types import ArtifactType

HASH = "0123456789abcdef" * 4


@pytest.fixture
def build() -> Build:
    """A completed build with a run id and no stored paths."""
    return Build(
        id=5,
        build_hash=HASH,
        config={
            "version": "v2.7.16",
            "target": "tbeam",
            "modulesExcluded": {"MQTT": True},
            "pluginsEnabled": ["bbs@1.2.0"],
        },
        status="success",
        run_id="777",
        run_id_history=[],
    )


class TestObjectKeys:
    """Tests for object_key and resolve_object_key."""

    def test_object_key(self) -> None:
        """Keys combine type, hash and run id."""
        assert object_key("abc", "9", ArtifactType.SOURCE) == "source-abc-9.tar.gz"

    def test_derived_key(self, build: Build) -> None:
        """Without stored paths the key is derived."""
        assert resolve_object_key(build, ArtifactType.FIRMWARE) == (
            f"firmware-{HASH}-777.tar.gz"
        )

    def test_stored_path_wins(self, build: Build) -> None:
        """A reported path overrides the derived key."""
        build.firmware_path = "custom/firmware.zip"
        assert resolve_object_key(build, ArtifactType.FIRMWARE) == "custom/firmware.zip"

    def test_not_available(self, build: Build) -> None:
        """No path and no run id means no artifact."""
        build.run_id = None
        with pytest.raises(ArtifactNotAvailableError) as exc_info:
            resolve_object_key(build, ArtifactType.SOURCE)
        assert exc_info.value.code == "artifact_not_available"


class TestFilenames:
    """Tests for artifact filenames."""

    def test_filename_base(self) -> None:
        """The base uses the last four hash characters."""
        assert artifact_filename_base(
            "v2.7.16", "tbeam", HASH, "777", ArtifactType.FIRMWARE
        ) == "meshtastic-v2.7.16-tbeam-cdef-777-firmware"

    def test_filename_without_run(self) -> None:
        """The run id is omitted when unknown."""
        assert artifact_filename_base(
            "v2.7.16", "tbeam", HASH, None, ArtifactType.SOURCE
        ) == "meshtastic-v2.7.16-tbeam-cdef-source"

    def test_filename_with_profile_and_product(self) -> None:
        """Profile slug goes before the target; product is configurable."""
        assert artifact_filename_base(
            "v2.7.16",
            "tbeam",
            HASH,
            "777",
            ArtifactType.FIRMWARE,
            profile_slug="hiking",
            product="meshcore",
        ) == "meshcore-v2.7.16-hiking-tbeam-cdef-777-firmware"

    def test_download_filename_extension(self, build: Build) -> None:
        """The extension follows the object key."""
        build.source_path = "source-x-777.zip"
        assert download_filename(build, ArtifactType.SOURCE).endswith(
            "-777-source.zip"
        )
        assert download_filename(build, ArtifactType.FIRMWARE).endswith(
            "-777-firmware.tar.gz"
        )

    @pytest.mark.parametrize(
        ("path", "ext"),
        [
            ("a.tar.gz", ".tar.gz"),
            ("A.ZIP", ".zip"),
            ("fw.uf2", ".uf2"),
            ("fw.bin", ".bin"),
            ("fw.hex", ".hex"),
        ],
    )
    def test_detect_extension(self, path: str, ext: str) -> None:
        """Known archive extensions are recognized."""
        assert detect_extension(path) == ext

    def test_unknown_extension(self) -> None:
        """Unknown extensions are rejected."""
        with pytest.raises(InvalidArtifactPathError):
            detect_extension("firmware.exe")


class TestHmacUrlSigner:
    """Tests for HmacUrlSigner."""

    @pytest.fixture
    def signer(self) -> HmacUrlSigner:
        """Signer with a fixed clock."""
        return HmacUrlSigner(
            "https://cdn.example.com/", "secret", ttl=300, clock=lambda: 1000.0
        )

    def test_sign_and_verify(self, signer: HmacUrlSigner) -> None:
        """A signed URL carries a verifiable signature."""
        url = signer.sign("firmware-abc-1.tar.gz", "meshtastic-x.tar.gz")
        parts = urlsplit(url)
        query = {k: v[0] for k, v in parse_qs(parts.query).items()}

        assert parts.netloc == "cdn.example.com"
        assert parts.path == "/firmware-abc-1.tar.gz"
        assert query["filename"] == "meshtastic-x.tar.gz"
        assert query["expires"] == "1300"
        assert signer.verify(
            "firmware-abc-1.tar.gz",
            "meshtastic-x.tar.gz",
            1300,
            query["signature"],
        )

    def test_tampered_filename_fails(self, signer: HmacUrlSigner) -> None:
        """Changing the filename invalidates the signature."""
        url = signer.sign("k.tar.gz", "a.tar.gz")
        signature = parse_qs(urlsplit(url).query)["signature"][0]
        assert not signer.verify("k.tar.gz", "b.tar.gz", 1300, signature)

    def test_expired(self, signer: HmacUrlSigner) -> None:
        """Expired URLs do not verify."""
        url = signer.sign("k.tar.gz", "a.tar.gz")
        signature = parse_qs(urlsplit(url).query)["signature"][0]
        later = HmacUrlSigner(
            "https://cdn.example.com", "secret", ttl=300, clock=lambda: 5000.0
        )
        assert not later.verify("k.tar.gz", "a.tar.gz", 1300, signature)


class TestReproduceCommands:
    """Tests for reproduce_commands."""

    def test_commands(self, build: Build) -> None:
        """Commands check out the version, install plugins and build."""
        registry = PluginRegistry([PluginRegistryEntry(slug="bbs", version="1.2.0")])
        commands = reproduce_commands(build, registry)
        dir_name = "meshtastic-v2.7.16-tbeam-cdef-777-source"

        assert commands[0] == (
            "git clone --recursive "
            f"https://github.com/meshtastic/firmware.git {dir_name}"
        )
        assert commands[1] == f"cd {dir_name}"
        assert "git checkout v2.7.16" in commands
        assert "mpm install bbs" in commands
        assert 'export PLATFORMIO_BUILD_FLAGS="-DMQTT=1"' in commands
        assert commands[-1] == "pio run -e tbeam"

    def test_no_plugins_no_flags(self, build: Build) -> None:
        """Optional steps are skipped when empty."""
        build.config = {"version": "v2.7.16", "target": "tbeam"}
        commands = reproduce_commands(build)
        assert not any(c.startswith("mpm install") for c in commands)
        assert not any(c.startswith("export") for c in commands)
