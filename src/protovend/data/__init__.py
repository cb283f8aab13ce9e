"""
Bundled protovend resources.

``config/defaults.yaml`` holds the built-in settings and ``schemas/`` the
JSON Schemas (written as YAML) for ``.protovend.yml`` and ``.protovend.lock``.
Both are read through importlib.resources so they resolve the same way from
a source checkout and an installed wheel.
"""

from __future__ import annotations

from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

import yaml


def get_data_path(subpackage: str, filename: str = "") -> Path:
    """Location of a bundled resource, or of its directory when ``filename`` is empty.

    >>> get_data_path("schemas", "manifest.schema.yaml").name
    'manifest.schema.yaml'
    """
    root = Path(str(resources.files("protovend.data") / subpackage))
    if not filename:
        return root
    return root / filename


@lru_cache(maxsize=16)
def read_yaml(subpackage: str, filename: str) -> dict[str, Any]:
    """Parsed contents of a bundled YAML resource; an empty file reads as ``{}``.

    Results are cached for the life of the process. Callers must not mutate
    the returned mapping.
    """
    text = get_data_path(subpackage, filename).read_text(encoding="utf-8")
    return yaml.safe_load(text) or {}


def clear_caches() -> None:
    read_yaml.cache_clear()


__all__ = ["get_data_path", "read_yaml", "clear_caches"]
