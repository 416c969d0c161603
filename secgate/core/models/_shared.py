"""Shared helpers for models and parsers.

Functions
---------
now_iso : ISO-8601 UTC timestamp
as_list : Tolerant list accessor for optional JSON arrays
as_int : Tolerant integer coercion for JSON counters
coalesce_payload : Normalize raw/parsed/run-result inputs to a JSON payload
"""
from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Dict, List

from secgate.core.exceptions import ParserError


def now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def as_list(value: Any) -> List[Any]:
    """
    Return `value` when it is a list, otherwise an empty list.
    Scanner JSON uses both missing keys and explicit nulls for "no results".
    """
    return value if isinstance(value, list) else []


def as_dict(value: Any) -> Dict[str, Any]:
    """Return `value` when it is a mapping, otherwise an empty dict."""
    return value if isinstance(value, dict) else {}


def as_int(value: Any, default: int = 0) -> int:
    """Coerce a JSON counter to int, falling back to `default`."""
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def coalesce_payload(run: Any, parser_name: str) -> Any:
    """Extract the JSON payload from the supported input shapes.

    Accepts:
    - raw JSON string
    - parsed payload (dict or list)
    - ToolRunResult or ToolRunResult-like dict with parsed_json/stdout
    """
    if hasattr(run, "parsed_json") and hasattr(run, "stdout"):
        if run.parsed_json is not None:
            return run.parsed_json
        run = run.stdout
    if isinstance(run, (bytes, bytearray)):
        run = run.decode("utf-8", "ignore")
    if isinstance(run, str):
        text = run.strip()
        if not text:
            return {}
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ParserError(parser_name, f"Invalid JSON: {e}") from e
    if isinstance(run, dict) and ("parsed_json" in run or "stdout" in run) and "cmd" in run:
        if run.get("parsed_json") is not None:
            return run["parsed_json"]
        return coalesce_payload(run.get("stdout") or "", parser_name)
    if isinstance(run, (dict, list)):
        return run
    raise ParserError(parser_name, f"Unsupported payload type: {type(run).__name__}")
