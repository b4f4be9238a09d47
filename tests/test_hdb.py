import json
from dataclasses import dataclass, field

import pytest

from habitat_node import hdb
from habitat_node.json_patch import PatchError


def add_user_patch(username):
    return json.dumps(
        [{"op": "add", "path": f"/users/{username}", "value": {"name": username}}]
    ).encode()


class UsersSchema(hdb.Schema):
    @property
    def name(self):
        return "users"

    def empty_state(self):
        return UsersState()

    def initialization_transition(self, init_state):
        return AddUser(username="root")

    def validate_state(self, state):
        doc = json.loads(state)
        if not isinstance(doc, dict) or not isinstance(doc.get("users"), dict):
            raise ValueError("users must be an object")


@dataclass
class UsersState(hdb.State):
    users: dict = field(default_factory=dict)

    @property
    def schema(self):
        return UsersSchema()

    def to_bytes(self):
        return json.dumps({"users": self.users}).encode()

    def validate(self):
        UsersSchema().validate_state(self.to_bytes())


@dataclass
class AddUser(hdb.Transition):
    username: str

    @property
    def type(self):
        return "add_user"

    def patch(self, old_state):
        return add_user_patch(self.username)

    def enrich(self, old_state):
        return None

    def validate(self, old_state):
        if self.username in json.loads(old_state)["users"]:
            raise ValueError("exists")


def make_state():
    return hdb.JSONState(UsersSchema(), b'{"users": {}}')


def test_invalid_initial_state_rejected():
    with pytest.raises(ValueError, match="error validating initial state"):
        hdb.JSONState(UsersSchema(), b'{"users": []}')


def test_apply_patch_updates_state():
    state = make_state()
    state.apply_patch(add_user_patch("alice"))
    assert state.load() == {"users": {"alice": {"name": "alice"}}}


def test_invalid_patch_leaves_state_untouched():
    state = make_state()
    before = state.to_bytes()
    with pytest.raises(PatchError, match="invalid JSON patch"):
        state.apply_patch(b"nope")
    with pytest.raises(PatchError, match="error applying patch"):
        state.apply_patch(b'[{"op": "remove", "path": "/users/ghost"}]')
    assert state.to_bytes() == before


def test_patch_breaking_schema_rejected():
    state = make_state()
    before = state.to_bytes()
    with pytest.raises(ValueError, match="error validating updated state"):
        state.apply_patch(b'[{"op": "replace", "path": "/users", "value": 3}]')
    assert state.to_bytes() == before


def test_validate_patch_does_not_modify():
    state = make_state()
    before = state.to_bytes()
    updated = state.validate_patch(add_user_patch("bob"))
    assert json.loads(updated)["users"]["bob"] == {"name": "bob"}
    assert state.to_bytes() == before


def test_copy_is_independent():
    state = make_state()
    branch = state.copy()
    branch.apply_patch(add_user_patch("carol"))
    assert "carol" in branch.load()["users"]
    assert state.load() == {"users": {}}


def test_error_messages():
    assert str(hdb.DatabaseNotFoundError(database_name="node")) == "Database with name node not found"
    assert str(hdb.DatabaseNotFoundError(database_id="abc")) == "Database with id abc not found"
    assert str(hdb.DatabaseAlreadyExistsError("node")) == "Database with name node already exists"


def test_wrap_transition_round_trip():
    transition = AddUser("alice")
    patch_bytes = add_user_patch("alice")
    wrapper = hdb.wrap_transition(transition, patch_bytes, b'{"users": {}}')
    assert wrapper.type == "add_user"
    assert wrapper.patch == patch_bytes
    assert json.loads(wrapper.transition) == {"username": "alice"}
    encoded = json.loads(json.dumps(wrapper.to_dict()))
    assert hdb.TransitionWrapper.from_dict(encoded) == wrapper


def test_state_to_json_state():
    json_state = hdb.state_to_json_state(UsersState({"dave": {"name": "dave"}}))
    assert json_state.load() == {"users": {"dave": {"name": "dave"}}}
    assert json_state.schema.name == "users"


def test_interfaces_are_abstract():
    with pytest.raises(TypeError):
        hdb.Client()
    with pytest.raises(TypeError):
        hdb.HDBManager()