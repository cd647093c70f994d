"""Architecture parent map generation from a PlatformIO firmware tree.

This module handles:
- Parsing PlatformIO ini files (variants/**/*.ini and platformio.ini)
- Following ``extends`` directives to build a child -> parent mapping
- Resolving ``<arch>_base`` sections to architecture names
- Validating the mapping for self references and cycles

The resulting mapping is the input of ArchitectureHierarchy.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path

from meshforge.targets.hierarchy import normalize_name

logger = logging.getLogger(__name__)

ARCH_BASE_PATTERN = re.compile(r"^([a-z0-9]+)_base$")
ENV_SECTION_PATTERN = re.compile(r"^env:(.+)$")
SECTION_HEADER_PATTERN = re.compile(r"^\[(.+)\]$")

# Library/feature bases that are not architectures
NON_ARCHITECTURE_BASES = frozenset(
    {"arduino", "networking", "radiolib", "environmental", "device-ui", "native"}
)
BOARD_SPECIFIC_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (r"heltec", r"crowpanel", r"mesh_tab", r"muzi")
]
BASE_ARCHITECTURES = ("esp32", "nrf52", "rp2040", "rp2350", "stm32", "portduino")

# Safety limit for walking parent chains during validation
MAX_CHAIN_DEPTH = 100


class HierarchyGenerationError(Exception):
    """Raised when the firmware tree cannot be turned into a parent map."""

    def __init__(self, message: str, code: str = "hierarchy_invalid") -> None:
        super().__init__(message)
        self.code = code


@dataclass
class ValidationReport:
    """Outcome of validate_parent_map."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """True when no errors were found."""
        return not self.errors


def parse_ini(content: str) -> dict[str, dict[str, str]]:
    """Parse PlatformIO ini content into sections of key/value pairs.

    Only ``key = value`` lines are read; continuation lines and comments are
    ignored.

    Args:
        content: Raw ini text.

    Returns:
        Mapping of section name to its key/value pairs.
    """
    sections: dict[str, dict[str, str]] = {}
    current: str | None = None

    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith((";", "#")):
            continue

        header = SECTION_HEADER_PATTERN.match(stripped)
        if header:
            current = header.group(1)
            sections[current] = {}
            continue

        if current is not None and "=" in stripped:
            key, _, value = stripped.partition("=")
            sections[current][key.strip()] = value.strip()

    return sections


def find_ini_files(firmware_dir: Path) -> list[Path]:
    """Find all variant ini files plus the main platformio.ini.

    Args:
        firmware_dir: Root of the firmware checkout.

    Returns:
        Sorted list of ini paths.

    Raises:
        HierarchyGenerationError: If the variants directory is missing.
    """
    variants_dir = firmware_dir / "variants"
    if not variants_dir.is_dir():
        raise HierarchyGenerationError(f"Variants directory not found: {variants_dir}")

    ini_files = sorted(
        path
        for path in variants_dir.rglob("*.ini")
        if not any(
            part.startswith(".") for part in path.relative_to(variants_dir).parts
        )
    )
    main_ini = firmware_dir / "platformio.ini"
    if main_ini.is_file():
        ini_files.append(main_ini)
    return ini_files


def extract_arch_from_base_section(section: str) -> str | None:
    """Return the architecture named by an ``<arch>_base`` section, if any."""
    match = ARCH_BASE_PATTERN.match(section)
    if not match:
        return None

    arch = match.group(1)
    if arch in NON_ARCHITECTURE_BASES:
        return None
    if any(pattern.search(arch) for pattern in BOARD_SPECIFIC_PATTERNS):
        return None
    return arch


def parent_from_extends(extends: str | None) -> str | None:
    """Resolve the parent named by an ``extends`` directive.

    Only the first of several comma-separated parents is used.
    """
    if not extends:
        return None

    first = extends.split(",")[0].strip()
    cleaned = first.removeprefix("env:")

    match = ARCH_BASE_PATTERN.match(cleaned)
    if match:
        parent = match.group(1)
        return None if parent == "arduino" else parent
    return cleaned or None


def build_parent_map(
    ini_sections: list[dict[str, dict[str, str]]],
) -> dict[str, str | None]:
    """Build the normalized child -> parent mapping.

    Args:
        ini_sections: Parsed sections of every ini file.

    Returns:
        Normalized parent map; base architectures map to None.
    """
    parent_map: dict[str, str | None] = {}
    entities: set[str] = set()

    for sections in ini_sections:
        for name, data in sections.items():
            extends = data.get("extends")
            if not extends:
                continue

            env_match = ENV_SECTION_PATTERN.match(name)
            if env_match:
                child = env_match.group(1)
            elif name.endswith("_base"):
                child = name
            else:
                continue

            entities.add(child)
            parent = parent_from_extends(extends)
            if parent:
                parent_map[child] = parent
                entities.add(parent)

    # Architecture bases point at their parent architecture
    arch_base_to_arch: dict[str, str] = {}
    arch_to_parent: dict[str, str] = {}
    for child, parent in parent_map.items():
        arch = extract_arch_from_base_section(child)
        if arch is not None:
            arch_base_to_arch[child] = arch
            if parent:
                arch_to_parent[arch] = parent

    resolved: dict[str, str | None] = {}
    for child, parent in parent_map.items():
        if parent is None:
            resolved[child] = None
        else:
            resolved[child] = arch_base_to_arch.get(parent, parent)

    for arch, parent in arch_to_parent.items():
        if not resolved.get(arch):
            resolved[arch] = parent

    for base in BASE_ARCHITECTURES:
        if base in entities and not resolved.get(base):
            resolved[base] = None

    return {
        normalize_name(child): normalize_name(parent) if parent is not None else None
        for child, parent in resolved.items()
        if not child.startswith("native")
    }


def validate_parent_map(parent_map: dict[str, str | None]) -> ValidationReport:
    """Check a parent map for self references, cycles and dangling parents.

    Args:
        parent_map: Mapping to validate.

    Returns:
        ValidationReport with errors and warnings.
    """
    report = ValidationReport()

    for child, parent in parent_map.items():
        if parent == child:
            report.errors.append(f'Self-reference detected: "{child}" points to itself')

    for start in parent_map:
        visited: set[str] = set()
        current: str | None = start
        depth = 0
        while current is not None and parent_map.get(current) is not None:
            if current in visited:
                report.errors.append(
                    f'Circular reference detected involving "{current}"'
                )
                break
            visited.add(current)
            current = parent_map[current]
            depth += 1
            if depth > MAX_CHAIN_DEPTH:
                report.errors.append(f'Infinite loop detected starting from "{start}"')
                break

    for child, parent in parent_map.items():
        if parent is not None and parent not in parent_map:
            report.warnings.append(f'"{child}" references missing parent "{parent}"')

    return report


def generate_parent_map(firmware_dir: Path) -> dict[str, str | None]:
    """Read a firmware tree and return its normalized parent map."""
    sections = []
    for path in find_ini_files(firmware_dir):
        sections.append(parse_ini(path.read_text(encoding="utf-8", errors="replace")))
    parent_map = build_parent_map(sections)
    logger.info(
        "Built parent map with %d entries from %s", len(parent_map), firmware_dir
    )
    return parent_map


def write_parent_map(
    parent_map: dict[str, str | None], output_path: Path
) -> ValidationReport:
    """Validate and write a parent map as JSON.

    Args:
        parent_map: Mapping to write.
        output_path: Destination file.

    Returns:
        ValidationReport (warnings are logged).

    Raises:
        HierarchyGenerationError: If validation found errors; nothing is written.
    """
    report = validate_parent_map(parent_map)
    if not report.ok:
        raise HierarchyGenerationError(
            "Parent map validation failed: " + "; ".join(report.errors)
        )
    for warning in report.warnings:
        logger.warning(warning)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(parent_map, indent=2) + "\n", encoding="utf-8")
    logger.info("Wrote %d entries to %s", len(parent_map), output_path)
    return report


__all__ = [
    "BASE_ARCHITECTURES",
    "HierarchyGenerationError",
    "ValidationReport",
    "build_parent_map",
    "extract_arch_from_base_section",
    "find_ini_files",
    "generate_parent_map",
    "parent_from_extends",
    "parse_ini",
    "validate_parent_map",
    "write_parent_map",
]
