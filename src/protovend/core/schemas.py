"""Schema validation for protovend metadata files.

The manifest and lockfile are validated with JSON Schema before they are
turned into models. Schemas are stored as YAML in ``protovend.data/schemas``.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List

from jsonschema import Draft202012Validator

from protovend.data import get_data_path
from protovend.core.utils.io import read_yaml

MANIFEST_SCHEMA = "manifest.schema.yaml"
LOCKFILE_SCHEMA = "lockfile.schema.yaml"


@lru_cache(maxsize=8)
def load_schema(schema_name: str) -> Dict[str, Any]:
    """Load a bundled schema.

    Automatically appends ``.yaml`` if no extension is present.

    Raises:
        FileNotFoundError: If the schema file doesn't exist.
        ValueError: If the schema is not a YAML mapping.
    """
    if not schema_name.endswith((".yaml", ".yml")):
        schema_name = f"{schema_name}.yaml"
    schema = read_yaml(get_data_path("schemas", schema_name))
    if not isinstance(schema, dict):
        raise ValueError(f"Schema must be a YAML mapping, got {type(schema).__name__}")
    return schema


def validation_errors(payload: Any, schema_name: str) -> List[str]:
    """Validate ``payload`` and return readable error messages (empty if valid)."""
    validator = Draft202012Validator(load_schema(schema_name))
    errors: List[str] = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: str(e.path)):
        if error.path:
            path_str = ".".join(str(p) for p in error.path)
            errors.append(f"{path_str}: {error.message}")
        else:
            errors.append(error.message)
    return errors


__all__ = ["MANIFEST_SCHEMA", "LOCKFILE_SCHEMA", "load_schema", "validation_errors"]
