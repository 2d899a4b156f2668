from __future__ import annotations

import json
from typing import Any, List, Optional

import yaml

from plume.plume_convert import to_py


# --------------------------
# Helpers
# --------------------------

def _norm_text(data: bytes | bytearray | str, *, encoding: Optional[str] = None) -> str:
    if isinstance(data, (bytes, bytearray)):
        return data.decode(encoding or 'utf-8', errors='replace')
    if isinstance(data, str):
        return data
    return str(data)


def _plain(obj: Any) -> Any:
    # Anything without a data form (functions, scopes) is written as its repr
    if isinstance(obj, list):
        return [_plain(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _plain(v) for k, v in obj.items()}
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj
    return repr(obj)


def detect_format(filename: Optional[str] = None, data_hint: Optional[str] = None) -> Optional[str]:
    """
    Returns a canonical format name among: 'json', 'yaml'.
    Uses the file extension first; falls back to simple data sniffing if provided.
    """
    name = (filename or "").lower()
    if name.endswith('.json'):
        return 'json'
    if name.endswith(('.yaml', '.yml')):
        return 'yaml'

    if data_hint is not None:
        s = data_hint.lstrip()
        if s.startswith('{') or s.startswith('['):
            # Try JSON first; if it fails, YAML is a superset
            return 'json'
        if s:
            return 'yaml'
    return None


# --------------------------
# Public API
# --------------------------

def deserialize(data: bytes | bytearray | str,
                *,
                filename: Optional[str] = None,
                fmt: Optional[str] = None) -> Any:
    """
    Convert text to plain Python structures.
    Supported fmt: 'json', 'yaml'. If fmt is None, uses the filename, then sniffing.
    """
    text = _norm_text(data)
    f = (fmt or detect_format(filename, text) or 'yaml').lower()
    if f == 'json':
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            # Declared JSON but YAML-like content (YAML is a superset of JSON)
            return yaml.safe_load(text)
    if f == 'yaml':
        return yaml.safe_load(text)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def serialize(value: Any,
              *,
              fmt: str,
              pretty: bool = True) -> str:
    """
    Convert a Python or Plume value into a textual representation.
    Plume values are first converted to plain data with to_py.
    - fmt: 'json' | 'yaml'
    """
    f = (fmt or '').lower()
    built = _plain(to_py(value))
    if f == 'json':
        return json.dumps(built, ensure_ascii=False, indent=2 if pretty else None)
    if f == 'yaml':
        return yaml.safe_dump(built, sort_keys=False)
    raise ValueError(f"Unsupported serialization format: {fmt!r}")


def load_ast(data: bytes | bytearray | str,
             *,
             filename: Optional[str] = None,
             fmt: Optional[str] = None) -> List[Any]:
    """
    Load a program from a JSON/YAML document.
    The document is either a list of nodes or a single node, which is
    wrapped into a one-node program.
    """
    doc = deserialize(data, filename=filename, fmt=fmt)
    if doc is None:
        return []
    if not isinstance(doc, list):
        raise ValueError(f"An AST document must be a list of nodes, got {type(doc).__name__}")
    if doc and not isinstance(doc[0], list):
        # A single tagged node such as ["call", ...]
        return [doc]
    return doc


__all__ = [
    "deserialize",
    "serialize",
    "detect_format",
    "load_ast",
]
