"""Protovend settings.

Settings sources (highest to lowest priority):
1. Environment variables: PROTOVEND_<KEY> (e.g. PROTOVEND_MAX_WORKERS=8)
2. User config: $XDG_CONFIG_HOME/protovend/config.yaml (~/.config/... if unset)
3. Bundled defaults: protovend.data/config/defaults.yaml

Values from the environment are coerced to the type of the bundled default.
"""
from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from protovend.core.exceptions import ConfigError
from protovend.data import read_yaml as read_data_yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROTOVEND_"


@dataclass(frozen=True, slots=True)
class ProtovendSettings:
    """Resolved settings for a single protovend invocation.

    Attributes:
        cache_dir: Root of the repository cache
        default_host: Host for dependencies declared as owner/name
        url_template: Remote URL template with {host} and {repo} placeholders
        max_workers: Upper bound on concurrent fetch-and-stage tasks
        git_timeout: Seconds before a git invocation is abandoned
        lint_after_vendor: Validate the vendor tree after each successful run
    """

    cache_dir: Path
    default_host: str = "github.com"
    url_template: str = "https://{host}/{repo}.git"
    max_workers: int = 4
    git_timeout: float = 300.0
    lint_after_vendor: bool = True

    @classmethod
    def load(
        cls,
        *,
        environ: Optional[Mapping[str, str]] = None,
        user_config: Optional[Path] = None,
    ) -> ProtovendSettings:
        """Merge bundled defaults, the user config file, and the environment."""
        env = os.environ if environ is None else environ
        merged: Dict[str, Any] = dict(read_data_yaml("config", "defaults.yaml"))

        config_path = user_config if user_config is not None else _user_config_path(env)
        if config_path.is_file():
            merged.update(_read_user_config(config_path, known=merged.keys()))

        for key, default in list(merged.items()):
            raw = env.get(f"{ENV_PREFIX}{key.upper()}")
            if raw is not None:
                merged[key] = _coerce(key, raw, default)

        return cls.from_mapping(merged)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ProtovendSettings:
        cache_dir = str(data.get("cache_dir") or "").strip()
        max_workers = _number(data, "max_workers", 4, int)
        git_timeout = _number(data, "git_timeout", 300, float)
        if max_workers < 1:
            raise ConfigError("max_workers must be at least 1.", context={"max_workers": max_workers})
        if git_timeout <= 0:
            raise ConfigError("git_timeout must be positive.", context={"git_timeout": git_timeout})
        url_template = str(data.get("url_template", "https://{host}/{repo}.git"))
        if "{repo}" not in url_template:
            raise ConfigError(
                "url_template must contain a {repo} placeholder.",
                context={"url_template": url_template},
            )
        return cls(
            cache_dir=Path(cache_dir).expanduser() if cache_dir else default_cache_dir(),
            default_host=str(data.get("default_host", "github.com")),
            url_template=url_template,
            max_workers=max_workers,
            git_timeout=git_timeout,
            lint_after_vendor=bool(data.get("lint_after_vendor", True)),
        )


def _number(data: Mapping[str, Any], key: str, default: Any, kind: type) -> Any:
    value = data.get(key, default)
    # YAML true/false would otherwise coerce to 1/0.
    if isinstance(value, bool):
        raise ConfigError(f"{key} must be a number, got {value!r}.", context={"setting": key, "value": value})
    try:
        return kind(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{key} must be a number, got {value!r}.", context={"setting": key, "value": value}) from exc


def default_cache_dir() -> Path:
    """``<system temp dir>/.protovend/repos``."""
    return Path(tempfile.gettempdir()) / ".protovend" / "repos"


def _user_config_path(env: Mapping[str, str]) -> Path:
    base = env.get("XDG_CONFIG_HOME") or str(Path("~/.config").expanduser())
    return Path(base) / "protovend" / "config.yaml"


def _read_user_config(path: Path, *, known: Any) -> Dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(
            f"Invalid protovend config file: {path}",
            context={"path": str(path), "cause": str(exc)},
        ) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Protovend config must be a mapping: {path}", context={"path": str(path)})
    known_keys = set(known)
    for key in sorted(set(data) - known_keys):
        logger.warning("Ignoring unknown setting '%s' in %s", key, path)
    return {k: v for k, v in data.items() if k in known_keys}


def _coerce(key: str, raw: str, default: Any) -> Any:
    value = raw.strip()
    if isinstance(default, bool):
        lowered = value.lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
        raise ConfigError(f"{ENV_PREFIX}{key.upper()} must be a boolean, got '{raw}'.")
    if isinstance(default, (int, float)):
        try:
            return type(default)(value)
        except ValueError as exc:
            raise ConfigError(
                f"{ENV_PREFIX}{key.upper()} must be a number, got '{raw}'."
            ) from exc
    return value


__all__ = ["ProtovendSettings", "default_cache_dir", "ENV_PREFIX"]
