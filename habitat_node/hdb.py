"""Core database types: schemas, transitions, JSON state and manager interfaces."""

from __future__ import annotations

import base64
import dataclasses
import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from habitat_node.json_patch import PatchError, apply_patch, decode_patch


class DatabaseNotFoundError(LookupError):
    """Raised when no database matches a name or id."""

    def __init__(self, database_name: str = "", database_id: str = "") -> None:
        self.database_name = database_name
        self.database_id = database_id
        if database_name:
            message = f"Database with name {database_name} not found"
        else:
            message = f"Database with id {database_id} not found"
        super().__init__(message)

    def __str__(self) -> str:
        return self.args[0]


class DatabaseAlreadyExistsError(Exception):
    """Raised when creating a database whose name is taken."""

    def __init__(self, database_name: str = "") -> None:
        self.database_name = database_name
        super().__init__(f"Database with name {database_name} already exists")


def _as_bytes(data: bytes | str) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else bytes(data)


class Schema(ABC):
    """Describes and validates one kind of database state."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def empty_state(self) -> "State": ...

    @abstractmethod
    def initialization_transition(self, init_state: bytes) -> "Transition": ...

    @abstractmethod
    def validate_state(self, state: bytes) -> None:
        """Raise if the serialized state does not satisfy the schema."""


class Transition(ABC):
    """A change to database state, expressed as a JSON patch."""

    @property
    @abstractmethod
    def type(self) -> str:
        """Constant identifying the kind of transition, in snake case."""

    @abstractmethod
    def patch(self, old_state: bytes) -> bytes:
        """Return the JSON patch turning the old state into the new one."""

    @abstractmethod
    def enrich(self, old_state: bytes) -> None:
        """Fill in data the client does not submit, such as generated ids."""

    @abstractmethod
    def validate(self, old_state: bytes) -> None:
        """Raise if the transition is not valid for the old state."""

    def to_dict(self) -> dict[str, Any]:
        """The JSON-serializable form of the transition."""
        if dataclasses.is_dataclass(self):
            return dataclasses.asdict(self)
        return dict(vars(self))


class State(ABC):
    """A typed view of database state."""

    @property
    @abstractmethod
    def schema(self) -> Schema: ...

    @abstractmethod
    def to_bytes(self) -> bytes: ...

    @abstractmethod
    def validate(self) -> None: ...


@dataclass
class TransitionWrapper:
    """A transition with its generated patch, ready to be replicated."""

    type: str
    patch: bytes
    transition: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.type,
            "patch": base64.b64encode(self.patch).decode("ascii"),
            "transition": base64.b64encode(self.transition).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransitionWrapper":
        return cls(
            type=data.get("type", ""),
            patch=base64.b64decode(data.get("patch") or ""),
            transition=base64.b64decode(data.get("transition") or ""),
        )


class JSONState:
    """Serialized JSON state kept valid against a schema."""

    def __init__(self, schema: Schema, init_state: bytes | str) -> None:
        state = _as_bytes(init_state)
        try:
            schema.validate_state(state)
        except Exception as err:
            raise ValueError(f"error validating initial state: {err}") from err
        self._schema = schema
        self._state = state
        self._lock = threading.Lock()

    @property
    def schema(self) -> Schema:
        return self._schema

    def apply_patch(self, patch_json: bytes | str) -> None:
        """Apply a patch, updating the state only if the result is valid."""
        updated = self._apply(patch_json)
        with self._lock:
            self._state = updated

    def validate_patch(self, patch_json: bytes | str) -> bytes:
        """Return the state the patch would produce, leaving this one unchanged."""
        return self._apply(patch_json)

    def _apply(self, patch_json: bytes | str) -> bytes:
        try:
            operations = decode_patch(patch_json)
        except PatchError as err:
            raise PatchError(f"invalid JSON patch: {err}") from err
        try:
            document = apply_patch(json.loads(self._state), operations)
        except PatchError as err:
            raise PatchError(f"error applying patch to current state: {err}") from err
        updated = json.dumps(document, separators=(",", ":")).encode("utf-8")
        try:
            self._schema.validate_state(updated)
        except Exception as err:
            raise ValueError(f"error validating updated state: {err}") from err
        return updated

    def load(self) -> Any:
        """The state decoded from JSON."""
        return json.loads(self._state)

    def to_bytes(self) -> bytes:
        return self._state

    def copy(self) -> "JSONState":
        return JSONState(self._schema, self._state)


class Client(ABC):
    """Access to one database."""

    @property
    @abstractmethod
    def database_id(self) -> str: ...

    @abstractmethod
    def propose_transitions(self, transitions: list[Transition]) -> JSONState: ...

    @abstractmethod
    def to_bytes(self) -> bytes: ...


class HDBManager(ABC):
    """Creates, restores and looks up databases."""

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...

    @abstractmethod
    def restart_dbs(self) -> None: ...

    @abstractmethod
    def create_database(
        self, name: str, schema_type: str, initial_transitions: list[Transition]
    ) -> Client: ...

    @abstractmethod
    def get_database_client(self, id: str) -> Client: ...

    @abstractmethod
    def get_database_client_by_name(self, name: str) -> Client: ...


class DatabaseConfig(ABC):
    """Identity and on-disk location of a database."""

    @property
    @abstractmethod
    def id(self) -> str: ...

    @property
    @abstractmethod
    def path(self) -> str: ...


def wrap_transition(transition: Transition, patch: bytes, old_state: bytes) -> TransitionWrapper:
    """Bundle a transition with its patch for replication."""
    encoded = json.dumps(transition.to_dict(), separators=(",", ":")).encode("utf-8")
    return TransitionWrapper(type=transition.type, patch=_as_bytes(patch), transition=encoded)


def state_to_json_state(state: State) -> JSONState:
    """Serialize a typed state into a validated JSONState."""
    return JSONState(state.schema, state.to_bytes())