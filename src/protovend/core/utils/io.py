"""File I/O utilities for protovend.

Single source of truth for safe file access patterns:
- Atomic writes with fsync (temp file + rename)
- YAML read/write through PyYAML
- Directory swap used to publish the vendor tree
"""
from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Callable, Optional, TextIO, Union

import yaml

PathLike = Union[str, Path]


def ensure_parent_dir(path: Path) -> None:
    """Ensure the parent directory for ``path`` exists."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)


def atomic_write(
    path: Path,
    write_fn: Callable[[TextIO], None],
    *,
    encoding: str = "utf-8",
) -> None:
    """Write to ``path`` atomically using a temp file + fsync + rename.

    - Parent directory is created if missing
    - Data is written to a temporary file in the same directory
    - File is fsync'd, then atomically replaced
    - Any leftover temp file is cleaned up on failure

    Args:
        path: Target file path
        write_fn: Callable that writes content to the file object
        encoding: Text encoding (default: utf-8)
    """
    tmp_path = write_temp_sibling(path, write_fn, encoding=encoding)
    try:
        os.replace(str(tmp_path), str(path))
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_temp_sibling(
    path: Path,
    write_fn: Callable[[TextIO], None],
    *,
    encoding: str = "utf-8",
) -> Path:
    """Write content to a fsync'd temp file next to ``path`` and return it.

    The caller decides when to ``os.replace`` the temp file over ``path``;
    this lets several files be prepared before any of them is published.
    """
    path = Path(path)
    ensure_parent_dir(path)

    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            "w",
            encoding=encoding,
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            tmp_path = Path(f.name)
            write_fn(f)
            f.flush()
            os.fsync(f.fileno())
    except BaseException:
        if tmp_path is not None and tmp_path.exists():
            tmp_path.unlink()
        raise
    return tmp_path


def read_yaml(path: PathLike) -> Any:
    """Read a YAML document, returning ``None`` for an empty file.

    Raises:
        FileNotFoundError: If the file does not exist
        yaml.YAMLError: If the content is not valid YAML
    """
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def dump_yaml_string(data: Any) -> str:
    """Dump data to a YAML document string, preserving key order."""
    return yaml.safe_dump(
        data,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        explicit_start=True,
    )


def write_yaml(path: PathLike, data: Any) -> None:
    """Atomically write YAML data to ``path`` (key order preserved)."""
    content = dump_yaml_string(data)

    def _writer(f: TextIO) -> None:
        f.write(content)

    atomic_write(Path(path), _writer)


def swap_directory(staged: Path, live: Path) -> Optional[Path]:
    """Publish ``staged`` at ``live``, returning where the old tree was moved.

    The previous ``live`` directory (if any) is renamed aside first, then the
    staged directory is renamed into place. Both renames stay within one
    parent directory so each is atomic. Callers either delete the returned
    backup or hand it to :func:`restore_directory`.
    """
    staged = Path(staged)
    live = Path(live)
    live.parent.mkdir(parents=True, exist_ok=True)

    backup: Optional[Path] = None
    if live.exists():
        backup = Path(tempfile.mkdtemp(prefix=f".{live.name}-old-", dir=str(live.parent)))
        backup.rmdir()
        os.replace(str(live), str(backup))
    try:
        os.replace(str(staged), str(live))
    except OSError:
        if backup is not None:
            os.replace(str(backup), str(live))
        raise
    return backup


def restore_directory(backup: Optional[Path], live: Path) -> None:
    """Undo :func:`swap_directory`: drop ``live`` and move ``backup`` back."""
    live = Path(live)
    if live.exists():
        shutil.rmtree(live)
    if backup is not None:
        os.replace(str(backup), str(live))


__all__ = [
    "PathLike",
    "ensure_parent_dir",
    "atomic_write",
    "write_temp_sibling",
    "read_yaml",
    "dump_yaml_string",
    "write_yaml",
    "swap_directory",
    "restore_directory",
]
