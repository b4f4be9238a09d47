"""Rendering of the templated list of apps offered for installation."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

import yaml

_ACTION = re.compile(r"\{\{(-[ \t\r\n])?(.*?)([ \t\r\n]-)?\}\}", re.DOTALL)
_COMMENT = re.compile(r"^/\*.*\*/$", re.DOTALL)


class AppListError(ValueError):
    """Raised when the app list template cannot be rendered or parsed."""


def _render_template(text: str, data: Mapping[str, str]) -> str:
    parts: list[str] = []
    position = 0
    trim_next = False
    for match in _ACTION.finditer(text):
        before = text[position:match.start()]
        if trim_next:
            before = before.lstrip()
        if match.group(1):
            before = before.rstrip()
        parts.append(before)

        action = match.group(2).strip()
        if _COMMENT.match(action):
            value = ""
        elif action.startswith(".") and action[1:] in data:
            value = data[action[1:]]
        else:
            raise AppListError(f"template: apps: cannot evaluate {action!r}")
        parts.append(value)

        position = match.end()
        trim_next = bool(match.group(3))

    rest = text[position:]
    if trim_next:
        rest = rest.lstrip()
    if "{{" in rest:
        raise AppListError("template: apps: unclosed action")
    parts.append(rest)
    return "".join(parts)


def _as_text(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _normalize(entry: Any) -> dict[str, Any] | None:
    if entry is None:
        return None
    if not isinstance(entry, Mapping):
        raise AppListError("app list entries must be mappings")
    request = dict(entry)
    installation = request.get("app_installation")
    if installation is not None:
        if not isinstance(installation, Mapping):
            raise AppListError("app_installation must be a mapping")
        # Scalar fields of an installation are strings, even when YAML reads them as numbers.
        request["app_installation"] = {
            key: value if isinstance(value, (Mapping, list)) else _as_text(value)
            for key, value in installation.items()
        }
    return request


def render_dev_apps_list(path: str, raw: bytes | str) -> list[dict[str, Any] | None]:
    """Fill the habitat path into the app list template and parse the YAML result."""
    text = raw.decode("utf-8") if isinstance(raw, (bytes, bytearray)) else raw
    rendered = _render_template(text, {"HabitatPath": path})
    try:
        document = yaml.safe_load(rendered)
    except yaml.YAMLError as err:
        raise AppListError(f"invalid app list: {err}") from err
    if document is None:
        return []
    if not isinstance(document, list):
        raise AppListError("app list must be a YAML sequence")
    return [_normalize(entry) for entry in document]