"""HTTP routes for node administration."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from habitat_node.config import NODE_DB_DEFAULT_NAME

_NUM = r"(?:0|[1-9][0-9]*)"
_PRE_IDENT = r"(?:0|[1-9][0-9]*|[0-9]*[A-Za-z-][0-9A-Za-z-]*)"
_BUILD_IDENT = r"[0-9A-Za-z-]+"
_SEMVER = re.compile(
    rf"^v{_NUM}(?:\.{_NUM}(?:\.{_NUM}"
    rf"(?:-{_PRE_IDENT}(?:\.{_PRE_IDENT})*)?"
    rf"(?:\+{_BUILD_IDENT}(?:\.{_BUILD_IDENT})*)?)?)?$"
)


def is_valid_semver(version: str) -> bool:
    """Whether the string is a semantic version with a leading "v" (v1 and v1.2 allowed)."""
    return bool(_SEMVER.match(version))


@dataclass
class Request:
    """An incoming HTTP request."""

    method: str
    path: str
    body: bytes = b""
    path_values: dict[str, str] = field(default_factory=dict)

    def path_value(self, name: str) -> str:
        return self.path_values.get(name, "")


@dataclass
class Response:
    """An HTTP response produced by a route."""

    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def json(self) -> Any:
        return json.loads(self.body)


class _BadRequest(Exception):
    pass


def _error(message: str, status: int) -> Response:
    return Response(
        status=status,
        headers={
            "Content-Type": "text/plain; charset=utf-8",
            "X-Content-Type-Options": "nosniff",
        },
        body=(message + "\n").encode("utf-8"),
    )


def _json_response(payload: Any, status: int) -> Response:
    return Response(
        status=status,
        headers={"Content-Type": "application/json"},
        body=json.dumps(payload, separators=(",", ":")).encode("utf-8"),
    )


def _decode(
    body: bytes,
    strings: tuple[str, ...] = (),
    objects: tuple[str, ...] = (),
    arrays: tuple[str, ...] = (),
) -> dict[str, Any]:
    """Decode the first JSON value of the body as an object with typed fields."""
    try:
        text = body.decode("utf-8").lstrip()
        value, _ = json.JSONDecoder().raw_decode(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as err:
        raise _BadRequest(str(err) or "EOF") from err
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _BadRequest("request body must be a JSON object")
    for key, kind, label in (
        *((k, str, "string") for k in strings),
        *((k, dict, "object") for k in objects),
        *((k, list, "array") for k in arrays),
    ):
        item = value.get(key)
        if item is not None and not isinstance(item, kind):
            raise _BadRequest(f"field {key} must be a {label}")
    return value


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name)


class MigrationRoute:
    """Migrates the node database to a target schema version."""

    pattern = "/node/migrate"
    method = "POST"

    def __init__(self, node_controller: Any) -> None:
        self.node_controller = node_controller

    def serve(self, request: Request) -> Response:
        try:
            req = _decode(request.body, strings=("target_version",))
        except _BadRequest as err:
            return _error(str(err), 400)
        target = req.get("target_version") or ""
        if not is_valid_semver(target):
            return _error(f"invalid semver {target}", 400)
        try:
            self.node_controller.migrate_node_db(target)
        except Exception as err:
            return _error(str(err), 500)
        return Response(status=200)


class InstallAppRoute:
    """Installs an app on behalf of the user named in the path."""

    pattern = "/node/users/{user_id}/apps"
    method = "POST"

    def __init__(self, node_controller: Any) -> None:
        self.node_controller = node_controller

    def serve(self, request: Request) -> Response:
        user_id = request.path_value("user_id")
        try:
            req = _decode(
                request.body,
                objects=("app_installation",),
                arrays=("reverse_proxy_rules",),
            )
        except _BadRequest as err:
            return _error(str(err), 400)
        try:
            self.node_controller.install_app(
                user_id, req.get("app_installation"), req.get("reverse_proxy_rules")
            )
        except Exception as err:
            return _error(str(err), 500)
        return Response(status=201)


class StartProcessHandler:
    """Starts a process for an installed app."""

    pattern = "/node/processes"
    method = "POST"

    def __init__(self, node_controller: Any) -> None:
        self.node_controller = node_controller

    def serve(self, request: Request) -> Response:
        try:
            req = _decode(request.body, strings=("app_installation_id",))
        except _BadRequest as err:
            return _error(str(err), 400)
        try:
            app = self.node_controller.get_app_by_id(req.get("app_installation_id") or "")
            self.node_controller.start_process(_field(app, "id"))
        except Exception as err:
            return _error(str(err), 500)
        return Response(status=201)


class GetNodeRoute:
    """Returns the node database's id and state."""

    pattern = "/node"
    method = "GET"

    def __init__(self, db_manager: Any) -> None:
        self.db_manager = db_manager

    def serve(self, request: Request) -> Response:
        try:
            client = self.db_manager.get_database_client_by_name(NODE_DB_DEFAULT_NAME)
            state = json.loads(client.to_bytes())
            if state is not None and not isinstance(state, dict):
                raise ValueError("node state is not a JSON object")
            payload = {"database_id": client.database_id, "state": state}
        except Exception as err:
            return _error(str(err), 500)
        return _json_response(payload, 200)


class AddUserRoute:
    """Adds a user to the node."""

    pattern = "/node/users"
    method = "POST"

    def __init__(self, node_controller: Any) -> None:
        self.node_controller = node_controller

    def serve(self, request: Request) -> Response:
        try:
            req = _decode(
                request.body,
                strings=("user_id", "email", "handle", "password", "certificate"),
            )
        except _BadRequest as err:
            return _error(str(err), 400)
        try:
            pds_response = self.node_controller.add_user(
                req.get("user_id") or "",
                req.get("email") or "",
                req.get("handle") or "",
                req.get("password") or "",
                req.get("certificate") or "",
            )
        except Exception as err:
            return _error(str(err), 500)
        return _json_response(pds_response, 201)


class LoginRoute:
    """Logs a user in by creating a session on the PDS."""

    pattern = "/node/login"
    method = "POST"

    def __init__(self, pds_client: Any) -> None:
        self.pds_client = pds_client

    def serve(self, request: Request) -> Response:
        try:
            req = _decode(request.body, strings=("identifier", "password"))
        except _BadRequest as err:
            return _error(str(err), 400)
        try:
            session = self.pds_client.create_session(
                req.get("identifier") or "", req.get("password") or ""
            )
        except Exception as err:
            return _error(str(err), 500)
        return _json_response(session, 200)