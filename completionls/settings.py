"""
Settings for completionls.

Settings are read from a YAML file (``.completionls/settings.yml`` under the
workspace root by default) or from the LSP ``initializationOptions``. Missing
keys keep their defaults; an unreadable file falls back to the defaults.

Example settings.yml:

    package_priority:
      - builtins
      - collections
    class_suggestion_cap: 200
    sql:
      extra_keywords: [RETURNING]
      extra_functions: [STRING_AGG]
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


DEFAULT_PACKAGE_PRIORITY = (
    "builtins",
    "collections",
    "typing",
    "pathlib",
    "datetime",
    "decimal",
    "dataclasses",
    "os",
    "re",
)

DEFAULT_SKIP_DIRS = frozenset({
    ".git", ".hg", ".svn", "__pycache__", "node_modules", ".tox", ".venv",
    ".mypy_cache", ".pytest_cache", "tests", "test", ".completionls",
})

SETTINGS_FILE = Path(".completionls") / "settings.yml"


@dataclass(frozen=True)
class CompletionSettings:
    """Tunable knobs shared by the engines and the symbol index."""

    package_priority: tuple[str, ...] = DEFAULT_PACKAGE_PRIORITY
    class_suggestion_cap: int = 200
    import_suggestion_cap: int = 100
    skip_dirs: frozenset[str] = DEFAULT_SKIP_DIRS
    sql_extra_keywords: tuple[str, ...] = ()
    sql_extra_functions: tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> CompletionSettings:
        """Build settings from a parsed YAML document or LSP options."""
        settings = cls()
        if not data:
            return settings

        changes: dict[str, Any] = {}
        if "package_priority" in data:
            changes["package_priority"] = tuple(
                str(p) for p in data["package_priority"] or ()
            )
        for key in ("class_suggestion_cap", "import_suggestion_cap"):
            if key in data:
                changes[key] = int(data[key])
        if "skip_dirs" in data:
            changes["skip_dirs"] = frozenset(str(d) for d in data["skip_dirs"] or ())

        sql = data.get("sql") or {}
        if "extra_keywords" in sql:
            changes["sql_extra_keywords"] = tuple(
                str(k).upper() for k in sql["extra_keywords"] or ()
            )
        if "extra_functions" in sql:
            changes["sql_extra_functions"] = tuple(
                str(f).upper() for f in sql["extra_functions"] or ()
            )

        return replace(settings, **changes)


def load_settings(path: Path | None) -> CompletionSettings:
    """
    Load settings from a YAML file.

    Returns the defaults when the file is missing or cannot be parsed.
    """
    if path is None or not path.is_file():
        return CompletionSettings()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is not None and not isinstance(data, dict):
            raise ValueError("top level must be a mapping")
        return CompletionSettings.from_mapping(data)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        logger.warning("Error loading settings from %s: %s", path, e)
        return CompletionSettings()


def workspace_settings(workspace_root: Path) -> CompletionSettings:
    """Load ``.completionls/settings.yml`` from a workspace root."""
    return load_settings(workspace_root / SETTINGS_FILE)
