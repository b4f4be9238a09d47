"""Decoding and applying JSON patch documents (RFC 6902)."""

from __future__ import annotations

import copy
import json
from typing import Any

_OPERATIONS = frozenset({"add", "remove", "replace", "move", "copy", "test"})
_NEEDS_VALUE = frozenset({"add", "replace", "test"})
_NEEDS_FROM = frozenset({"move", "copy"})


class PatchError(ValueError):
    """Raised when a patch cannot be decoded or applied."""


def decode_patch(raw: bytes | str) -> list[dict[str, Any]]:
    """Parse and check a JSON patch document, returning its operations."""
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as err:
            raise PatchError(f"patch is not valid UTF-8: {err}") from err
    try:
        operations = json.loads(raw)
    except json.JSONDecodeError as err:
        raise PatchError(f"patch is not valid JSON: {err}") from err
    if not isinstance(operations, list):
        raise PatchError("patch must be a JSON array of operations")

    for position, operation in enumerate(operations):
        if not isinstance(operation, dict):
            raise PatchError(f"operation {position} is not an object")
        op = operation.get("op")
        if op not in _OPERATIONS:
            raise PatchError(f"operation {position} has unknown op {op!r}")
        if not isinstance(operation.get("path"), str):
            raise PatchError(f"operation {position} is missing a path")
        if op in _NEEDS_VALUE and "value" not in operation:
            raise PatchError(f"operation {position} ({op}) is missing a value")
        if op in _NEEDS_FROM and not isinstance(operation.get("from"), str):
            raise PatchError(f"operation {position} ({op}) is missing from")
    return operations


def apply_patch(document: Any, operations: list[dict[str, Any]]) -> Any:
    """Apply the operations to a copy of the document and return the result."""
    result = copy.deepcopy(document)
    for operation in operations:
        op = operation.get("op")
        path = _parse_pointer(operation.get("path", ""))
        if op == "add":
            result = _add(result, path, copy.deepcopy(operation["value"]))
        elif op == "remove":
            result, _ = _remove(result, path)
        elif op == "replace":
            result = _replace(result, path, copy.deepcopy(operation["value"]))
        elif op == "move":
            source = operation["from"]
            if operation["path"].startswith(source + "/"):
                raise PatchError(f"cannot move {source} into one of its children")
            result, value = _remove(result, _parse_pointer(source))
            result = _add(result, path, value)
        elif op == "copy":
            value = copy.deepcopy(_get(result, _parse_pointer(operation["from"])))
            result = _add(result, path, value)
        elif op == "test":
            if not _json_equal(_get(result, path), operation["value"]):
                raise PatchError(f"test failed at {operation['path']!r}")
        else:
            raise PatchError(f"unknown op {op!r}")
    return result


def _parse_pointer(pointer: str) -> list[str]:
    if pointer == "":
        return []
    if not pointer.startswith("/"):
        raise PatchError(f"invalid JSON pointer {pointer!r}")
    return [token.replace("~1", "/").replace("~0", "~") for token in pointer[1:].split("/")]


def _array_index(token: str, length: int, allow_end: bool) -> int:
    if allow_end and token == "-":
        return length
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        raise PatchError(f"invalid array index {token!r}")
    index = int(token)
    limit = length if allow_end else length - 1
    if index > limit:
        raise PatchError(f"array index {index} out of range")
    return index


def _child(container: Any, token: str) -> Any:
    if isinstance(container, dict):
        if token not in container:
            raise PatchError(f"member {token!r} not found")
        return container[token]
    if isinstance(container, list):
        return container[_array_index(token, len(container), False)]
    raise PatchError(f"cannot descend into a scalar at {token!r}")


def _get(document: Any, tokens: list[str]) -> Any:
    current = document
    for token in tokens:
        current = _child(current, token)
    return current


def _add(document: Any, tokens: list[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _get(document, tokens[:-1])
    key = tokens[-1]
    if isinstance(parent, dict):
        parent[key] = value
    elif isinstance(parent, list):
        parent.insert(_array_index(key, len(parent), True), value)
    else:
        raise PatchError(f"cannot add member {key!r} to a scalar")
    return document


def _remove(document: Any, tokens: list[str]) -> tuple[Any, Any]:
    if not tokens:
        raise PatchError("cannot remove the document root")
    parent = _get(document, tokens[:-1])
    key = tokens[-1]
    if isinstance(parent, dict):
        if key not in parent:
            raise PatchError(f"member {key!r} not found")
        return document, parent.pop(key)
    if isinstance(parent, list):
        return document, parent.pop(_array_index(key, len(parent), False))
    raise PatchError(f"cannot remove member {key!r} from a scalar")


def _replace(document: Any, tokens: list[str], value: Any) -> Any:
    if not tokens:
        return value
    parent = _get(document, tokens[:-1])
    key = tokens[-1]
    if isinstance(parent, dict):
        if key not in parent:
            raise PatchError(f"member {key!r} not found")
        parent[key] = value
    elif isinstance(parent, list):
        parent[_array_index(key, len(parent), False)] = value
    else:
        raise PatchError(f"cannot replace member {key!r} of a scalar")
    return document


def _json_equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(_json_equal(left[k], right[k]) for k in left)
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(_json_equal(a, b) for a, b in zip(left, right))
    return left == right