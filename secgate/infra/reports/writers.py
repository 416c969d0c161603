"""File writers for JSON reports and ``.env`` result files.

Result ``.env`` files are plain ``KEY=VALUE`` lines consumed by later
pipeline stages (GitLab ``artifacts:reports:dotenv``).
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping, Union

from dotenv import dotenv_values, set_key

from secgate.core.exceptions import FileSystemError

PathLike = Union[str, Path]


def ensure_dir(path: PathLike) -> Path:
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FileSystemError(str(path), f"Cannot create directory: {e}") from e
    return path


def write_json(path: PathLike, payload: Any) -> Path:
    path = Path(path)
    ensure_dir(path.parent)
    with path.open("w", encoding="utf-8") as fh:
        json.dump(payload, fh, indent=2, default=str)
        fh.write("\n")
    return path


def read_json(path: PathLike) -> Any:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as fh:
            return json.load(fh)
    except FileNotFoundError as e:
        raise FileSystemError(str(path), "File not found") from e
    except json.JSONDecodeError as e:
        raise FileSystemError(str(path), f"Invalid JSON: {e}") from e


def write_text(path: PathLike, text: str) -> Path:
    path = Path(path)
    ensure_dir(path.parent)
    path.write_text(text, encoding="utf-8")
    return path


def write_env(path: PathLike, values: Mapping[str, Any]) -> Path:
    """Set every key in `values`; existing keys are replaced, others kept."""
    path = Path(path)
    ensure_dir(path.parent)
    path.touch(exist_ok=True)
    for key, value in values.items():
        set_key(str(path), key, str(value), quote_mode="never")
    return path


def read_env(path: PathLike) -> Dict[str, str]:
    path = Path(path)
    if not path.is_file():
        return {}
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


__all__ = ["ensure_dir", "write_json", "read_json", "write_text", "write_env", "read_env"]
