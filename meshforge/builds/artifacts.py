"""Artifact addressing and download URL signing.

This module handles:
- Deterministic object keys for compiler outputs
- Human readable download filenames
- Resolving the object key of a build's artifact
- Time limited signed download URLs

Object keys have the form ``<type>-<hash>-<run>.tar.gz``. Download filenames
have the form ``<product>-<version>-[<profile>-]<target>-<last4>[-<run>]-<type>``
followed by the archive extension.
"""

from __future__ import annotations

import hashlib
import hmac
import time
from collections.abc import Callable
from typing import Protocol
from urllib.parse import quote, urlencode

from meshforge.builds.models import Build
from meshforge.builds.schema import BuildConfig
from meshforge.types import ArtifactType

# Longest suffix first so ".tar.gz" wins over ".gz"
ARTIFACT_EXTENSIONS = (".tar.gz", ".zip", ".bin", ".uf2", ".hex")
DEFAULT_PRODUCT = "meshtastic"


class ArtifactNotAvailableError(Exception):
    """Raised when a build has no artifact of the requested type yet."""

    def __init__(
        self,
        build_id: int,
        artifact_type: ArtifactType,
        code: str = "artifact_not_available",
    ) -> None:
        super().__init__(
            f"No {artifact_type.value} artifact available for build {build_id}"
        )
        self.build_id = build_id
        self.artifact_type = artifact_type
        self.code = code


class InvalidArtifactPathError(Exception):
    """Raised when an object key has no recognized archive extension."""

    def __init__(self, path: str, code: str = "invalid_artifact") -> None:
        super().__init__(f"Unrecognized artifact extension: {path}")
        self.path = path
        self.code = code


def object_key(build_hash: str, run_id: str, artifact_type: ArtifactType) -> str:
    """Return the storage key of a compiler output."""
    return f"{artifact_type.value}-{build_hash}-{run_id}.tar.gz"


def artifact_filename_base(
    version: str,
    target: str,
    build_hash: str,
    run_id: str | None,
    artifact_type: ArtifactType,
    profile_slug: str | None = None,
    product: str = DEFAULT_PRODUCT,
) -> str:
    """Build the download filename without extension.

    Args:
        version: Firmware version.
        target: Hardware target.
        build_hash: Build content address (last 4 characters are used).
        run_id: Compiler run id; omitted when unknown.
        artifact_type: Artifact kind.
        profile_slug: Optional profile slug inserted before the target.
        product: Filename prefix.

    Returns:
        Filename base, e.g. ``meshtastic-v2.7.16-tbeam-a1b2-1234-firmware``.
    """
    parts = [product, version]
    if profile_slug:
        parts.append(profile_slug)
    parts.extend([target, build_hash[-4:]])
    if run_id:
        parts.append(run_id)
    parts.append(artifact_type.value)
    return "-".join(parts)


def detect_extension(path: str) -> str:
    """Return the archive extension of an object key.

    Raises:
        InvalidArtifactPathError: If the extension is not recognized.
    """
    lowered = path.lower()
    for ext in ARTIFACT_EXTENSIONS:
        if lowered.endswith(ext):
            return ext
    raise InvalidArtifactPathError(path)


def resolve_object_key(build: Build, artifact_type: ArtifactType) -> str:
    """Return the object key of a build's artifact.

    A path reported by the compiler wins; otherwise the key is derived from
    the build hash and current run id.

    Args:
        build: Build record.
        artifact_type: Artifact kind.

    Returns:
        Object key.

    Raises:
        ArtifactNotAvailableError: If there is neither a stored path nor a run id.
    """
    stored = (
        build.firmware_path
        if artifact_type is ArtifactType.FIRMWARE
        else build.source_path
    )
    if stored:
        return stored
    if not build.run_id:
        raise ArtifactNotAvailableError(build.id, artifact_type)
    return object_key(build.build_hash, build.run_id, artifact_type)


def download_filename(
    build: Build,
    artifact_type: ArtifactType,
    profile_slug: str | None = None,
    product: str = DEFAULT_PRODUCT,
) -> str:
    """Return the download filename of a build's artifact, with extension.

    Raises:
        ArtifactNotAvailableError: If the artifact cannot be located.
        InvalidArtifactPathError: If the object key has an unknown extension.
    """
    key = resolve_object_key(build, artifact_type)
    config = BuildConfig.model_validate(build.config)
    base = artifact_filename_base(
        config.version,
        config.target,
        build.build_hash,
        build.run_id,
        artifact_type,
        profile_slug=profile_slug,
        product=product,
    )
    return base + detect_extension(key)


class UrlSigner(Protocol):
    """Anything able to produce a time limited download URL."""

    def sign(self, key: str, filename: str) -> str:
        """Return a URL serving ``key`` under ``filename``."""
        ...


class HmacUrlSigner:
    """Sign download URLs with HMAC-SHA256 over key, filename and expiry.

    Attributes:
        base_url: Artifact store base URL.
        ttl: URL lifetime in seconds.
    """

    def __init__(
        self,
        base_url: str,
        signing_key: str,
        ttl: int = 3600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.ttl = ttl
        self._key = signing_key.encode("utf-8")
        self._clock = clock

    def __repr__(self) -> str:
        return f"<HmacUrlSigner(base_url='{self.base_url}', ttl={self.ttl})>"

    def _signature(self, key: str, filename: str, expires: int) -> str:
        message = f"{key}\n{filename}\n{expires}".encode()
        return hmac.new(self._key, message, hashlib.sha256).hexdigest()

    def sign(self, key: str, filename: str) -> str:
        """Return a signed URL valid for ``ttl`` seconds."""
        expires = int(self._clock()) + self.ttl
        query = urlencode(
            {
                "filename": filename,
                "expires": expires,
                "signature": self._signature(key, filename, expires),
            }
        )
        return f"{self.base_url}/{quote(key)}?{query}"

    def verify(self, key: str, filename: str, expires: int, signature: str) -> bool:
        """Check a signature and its expiry."""
        if expires < int(self._clock()):
            return False
        expected = self._signature(key, filename, expires)
        return hmac.compare_digest(expected, signature)


__all__ = [
    "ARTIFACT_EXTENSIONS",
    "ArtifactNotAvailableError",
    "HmacUrlSigner",
    "InvalidArtifactPathError",
    "UrlSigner",
    "artifact_filename_base",
    "detect_extension",
    "download_filename",
    "object_key",
    "resolve_object_key",
]
