"""Helper utilities for accessing configuration sections regardless of the backing loader."""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Dict


def _as_dict(candidate: Any) -> Any:
    if isinstance(candidate, dict):
        return candidate
    to_dict = getattr(candidate, 'to_dict', None)
    if callable(to_dict):
        return dict(to_dict())
    if isinstance(candidate, Mapping):
        return dict(candidate)
    return None


def get_config_section(source: Any, section: str) -> Dict:
    """Return a dictionary section from the Config loader, a section proxy, or a plain dict."""
    if source is None:
        return {}

    if isinstance(source, Mapping):
        found = _as_dict(source.get(section, {}))
        return found if found is not None else {}

    try:
        attr = getattr(source, section, None)
    except AttributeError:
        attr = None
    found = _as_dict(attr)
    if found is not None:
        return found

    getter = getattr(source, 'get', None)
    if callable(getter):
        found = _as_dict(getter(section, {}))
        if found is not None:
            return found

    return {}
