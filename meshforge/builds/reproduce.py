"""Shell commands reproducing a build locally."""

from meshforge.builds.artifacts import DEFAULT_PRODUCT, artifact_filename_base
from meshforge.builds.canonical import compute_flags
from meshforge.builds.models import Build
from meshforge.builds.schema import BuildConfig
from meshforge.plugins.resolver import Registry, token_slugs
from meshforge.types import ArtifactType

FIRMWARE_REPO_URL = "https://github.com/meshtastic/firmware.git"


def reproduce_commands(
    build: Build,
    registry: Registry | None = None,
    product: str = DEFAULT_PRODUCT,
) -> list[str]:
    """Return bash commands that rebuild ``build`` from source.

    The checkout directory is named after the source archive so a local
    reproduction matches a downloaded one.

    Args:
        build: Build record.
        registry: Plugin registry used to render option defines.
        product: Filename prefix.

    Returns:
        Commands in execution order.
    """
    config = BuildConfig.model_validate(build.config)
    flags = compute_flags(config, registry or {})
    dir_name = artifact_filename_base(
        config.version,
        config.target,
        build.build_hash,
        build.run_id,
        ArtifactType.SOURCE,
        product=product,
    )

    commands = [
        f"git clone --recursive {FIRMWARE_REPO_URL} {dir_name}",
        f"cd {dir_name}",
        f"git checkout {config.version}",
        "git submodule update --init --recursive",
        "pip install platformio",
        "pip install mesh-plugin-manager",
        "mpm init",
    ]
    slugs = token_slugs(config.plugins_enabled)
    if slugs:
        commands.append(f"mpm install {' '.join(slugs)}")
    if flags:
        commands.append(f'export PLATFORMIO_BUILD_FLAGS="{flags}"')
    commands.append(f"pio run -e {config.target}")
    return commands


__all__ = ["reproduce_commands"]
