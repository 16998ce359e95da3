"""Check the package against the zone map and import rules in docs/trust_zone.md."""

from __future__ import annotations

import ast
import importlib.util
import re
from dataclasses import dataclass
from pathlib import Path

_ROOT = Path(__file__).resolve().parents[1]
_PACKAGE = "receiptfix"
_DOC = _ROOT / "docs" / "trust_zone.md"
_ZONES = ("Pure", "Privileged", "Orchestrator")
_SECTION_TITLES = {"Current Directory Mapping", "Dependency Rules", "Contributor Checklist"}
# Pure code gets hints, totals and settings as arguments.
_PURE_FORBIDDEN_IMPORTS = {"os", "httpx", "tomllib", "tomli", "subprocess", "socket"}

_MAPPING_ENTRY = re.compile(r"^\s*-\s+`([^`]+)`")
_RULE_ENTRY = re.compile(r"^-\s+(\w+)\s+imports\s+(.+?)\.?$")


@dataclass(frozen=True)
class ZoneMap:
    prefixes: tuple[tuple[str, str], ...]
    allowed: dict[str, frozenset[str]]

    def zone_of(self, module: str) -> str | None:
        for prefix, zone in self.prefixes:
            if module == prefix or module.startswith(f"{prefix}."):
                return zone
        return None


def _doc_sections() -> dict[str, list[str]]:
    sections: dict[str, list[str]] = {}
    current: list[str] | None = None
    for line in _DOC.read_text(encoding="utf-8").splitlines():
        if line.strip() in _SECTION_TITLES:
            current = sections.setdefault(line.strip(), [])
        elif current is not None:
            current.append(line)
    return sections


def _parse_allowed_zones(description: str) -> frozenset[str]:
    if description.strip() == "anything":
        return frozenset(_ZONES)
    names = description.removesuffix(" only").split(" and ")
    return frozenset(name.strip() for name in names)


def _load_zone_map() -> ZoneMap:
    sections = _doc_sections()

    prefixes: list[tuple[str, str]] = []
    zone: str | None = None
    for line in sections["Current Directory Mapping"]:
        match = _MAPPING_ENTRY.match(line)
        if match is None:
            continue
        token = match.group(1).strip().strip("/")
        if token in _ZONES:
            zone = token
        elif zone is not None:
            prefixes.append((token.replace("/", "."), zone))

    allowed: dict[str, frozenset[str]] = {}
    for line in sections["Dependency Rules"]:
        match = _RULE_ENTRY.match(line.strip())
        if match is not None:
            allowed[match.group(1)] = _parse_allowed_zones(match.group(2))

    # Longest prefix wins.
    prefixes.sort(key=lambda item: item[0].count("."), reverse=True)
    return ZoneMap(prefixes=tuple(prefixes), allowed=allowed)


def _module_for(path: Path) -> str:
    parts = list(path.relative_to(_ROOT).with_suffix("").parts)
    if parts[-1] == "__init__":
        parts.pop()
    return ".".join(parts)


def _imports_of(path: Path) -> list[str]:
    module = _module_for(path)
    package = module if path.name == "__init__.py" else module.rpartition(".")[0]
    tree = ast.parse(path.read_text(encoding="utf-8"), filename=str(path))

    found: list[str] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            found.extend(alias.name for alias in node.names)
        elif isinstance(node, ast.ImportFrom):
            if node.level == 0:
                if node.module:
                    found.append(node.module)
                continue
            try:
                found.append(importlib.util.resolve_name("." * node.level + (node.module or ""), package))
            except ImportError:
                continue
    return found


def _package_files() -> list[Path]:
    return sorted((_ROOT / _PACKAGE).rglob("*.py"))


def test_zone_doc_declares_every_zone_and_rule() -> None:
    zone_map = _load_zone_map()

    assert {zone for _, zone in zone_map.prefixes} == set(_ZONES)
    assert set(zone_map.allowed) == set(_ZONES)
    assert zone_map.allowed["Pure"] == {"Pure"}
    assert zone_map.allowed["Orchestrator"] == set(_ZONES)


def test_mapped_paths_exist() -> None:
    missing = [
        prefix
        for prefix, _ in _load_zone_map().prefixes
        if not (_ROOT / Path(*prefix.split("."))).is_dir()
    ]

    assert not missing, f"{_DOC.name} maps directories that do not exist: {sorted(missing)}"


def test_every_subpackage_has_a_zone() -> None:
    zone_map = _load_zone_map()
    unmapped = [
        _module_for(path)
        for path in _package_files()
        if path.parent != _ROOT / _PACKAGE and zone_map.zone_of(_module_for(path)) is None
    ]

    assert not unmapped, f"Modules outside every trust zone: {unmapped}"


def test_imports_respect_dependency_rules() -> None:
    zone_map = _load_zone_map()
    violations: list[str] = []

    for path in _package_files():
        source_zone = zone_map.zone_of(_module_for(path))
        if source_zone is None:
            continue
        for module in _imports_of(path):
            target_zone = zone_map.zone_of(module)
            if target_zone is not None and target_zone not in zone_map.allowed[source_zone]:
                violations.append(f"{path.relative_to(_ROOT)}: {source_zone} -> {module} ({target_zone})")

    assert not violations, "Trust-zone import violations:\n" + "\n".join(violations)


def test_pure_zone_has_no_io_imports() -> None:
    zone_map = _load_zone_map()
    violations = [
        f"{path.relative_to(_ROOT)}: {module}"
        for path in _package_files()
        if zone_map.zone_of(_module_for(path)) == "Pure"
        for module in _imports_of(path)
        if module.split(".")[0] in _PURE_FORBIDDEN_IMPORTS
    ]

    assert not violations, "Pure modules importing I/O libraries:\n" + "\n".join(violations)
