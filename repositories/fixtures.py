"""Load JSON fixtures that seed the in-memory realtime database."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Mapping

FIXTURE_DIRECTORY = Path(__file__).parent / "fixture_data"


class FixtureLoadError(RuntimeError):
    """Raised when database fixtures cannot be loaded from disk."""

    def __init__(
        self,
        errors: list[str],
        fixtures: dict[str, Mapping[str, Any]] | None = None,
    ) -> None:
        message = "Failed to load database fixtures:\n" + "\n".join(errors)
        super().__init__(message)
        self.errors = errors
        self.fixtures: dict[str, Mapping[str, Any]] = fixtures or {}


def load_database_fixtures(paths: Iterable[Path]) -> dict[str, Mapping[str, Any]]:
    """Return a database tree with one top-level node per fixture file.

    ``clinics.json`` becomes the ``clinics`` node, and so on. Every problem
    is collected before raising so a broken fixture set reports all of them.
    """

    tree: dict[str, Mapping[str, Any]] = {}
    errors: list[str] = []

    for path in paths:
        if path.suffix.lower() != ".json":
            errors.append(f"{path}: filename must end with '.json'")
            continue

        node_name = path.stem
        if node_name in tree:
            errors.append(f"{path}: duplicate top-level node '{node_name}'")
            continue

        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            errors.append(f"{path}: {exc.strerror or 'file not found'}")
            continue
        except json.JSONDecodeError as exc:
            errors.append(f"{path}: invalid JSON ({exc.msg})")
            continue

        if not isinstance(payload, Mapping):
            errors.append(f"{path}: top-level JSON payload must be an object")
            continue

        tree[node_name] = payload

    if errors:
        raise FixtureLoadError(errors, tree)

    return tree


def discover_fixture_paths(directory: Path | None = None) -> list[Path]:
    """Return sorted JSON fixture paths from ``directory`` (or the bundled set)."""

    root = directory or FIXTURE_DIRECTORY
    if not root.exists():
        return []
    return sorted(path for path in root.glob("*.json") if path.is_file())


__all__ = [
    "FIXTURE_DIRECTORY",
    "FixtureLoadError",
    "discover_fixture_paths",
    "load_database_fixtures",
]
