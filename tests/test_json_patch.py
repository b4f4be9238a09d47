import pytest

from habitat_node.json_patch import PatchError, apply_patch, decode_patch


def test_decode_patch_accepts_bytes_and_str():
    raw = '[{"op": "add", "path": "/a", "value": 1}]'
    assert decode_patch(raw) == decode_patch(raw.encode())
    assert decode_patch(raw)[0]["op"] == "add"


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        '{"op": "add"}',
        '[{"path": "/a"}]',
        '[{"op": "bogus", "path": "/a"}]',
        '[{"op": "add", "path": "/a"}]',
        '[{"op": "move", "path": "/a"}]',
        "[1]",
    ],
)
def test_decode_patch_rejects_bad_documents(raw):
    with pytest.raises(PatchError):
        decode_patch(raw)


def test_add_member_does_not_mutate_input():
    doc = {"a": 1}
    result = apply_patch(doc, [{"op": "add", "path": "/b", "value": 2}])
    assert result == {"a": 1, "b": 2}
    assert doc == {"a": 1}


def test_add_into_array_and_append():
    doc = {"list": ["y"]}
    result = apply_patch(
        doc,
        [
            {"op": "add", "path": "/list/0", "value": "x"},
            {"op": "add", "path": "/list/-", "value": "z"},
        ],
    )
    assert result["list"] == ["x", "y", "z"]


def test_remove_and_replace():
    doc = {"a": 1, "b": [1, 2]}
    result = apply_patch(
        doc,
        [
            {"op": "remove", "path": "/a"},
            {"op": "replace", "path": "/b/1", "value": 5},
        ],
    )
    assert result == {"b": [1, 5]}


def test_move_and_copy():
    doc = {"a": {"n": 1}}
    result = apply_patch(
        doc,
        [
            {"op": "copy", "from": "/a", "path": "/c"},
            {"op": "move", "from": "/a", "path": "/b"},
        ],
    )
    assert result == {"b": {"n": 1}, "c": {"n": 1}}


def test_escaped_pointer_tokens():
    doc = {"a/b": 1, "m~n": 2}
    result = apply_patch(
        doc,
        [
            {"op": "replace", "path": "/a~1b", "value": 3},
            {"op": "remove", "path": "/m~0n"},
        ],
    )
    assert result == {"a/b": 3}


def test_replace_root():
    assert apply_patch({"a": 1}, [{"op": "replace", "path": "", "value": [1]}]) == [1]


def test_test_operation():
    doc = {"flag": True}
    assert apply_patch(doc, [{"op": "test", "path": "/flag", "value": True}]) == doc
    with pytest.raises(PatchError):
        apply_patch(doc, [{"op": "test", "path": "/flag", "value": 1}])


@pytest.mark.parametrize(
    "operation",
    [
        {"op": "remove", "path": "/missing"},
        {"op": "replace", "path": "/missing", "value": 1},
        {"op": "add", "path": "/list/5", "value": 1},
        {"op": "remove", "path": "/list/01"},
        {"op": "add", "path": "/a/deep/x", "value": 1},
        {"op": "remove", "path": ""},
        {"op": "move", "from": "/list", "path": "/list/0"},
        {"op": "add", "path": "no-slash", "value": 1},
    ],
)
def test_invalid_operations_raise(operation):
    with pytest.raises(PatchError):
        apply_patch({"a": 1, "list": [1, 2]}, [operation])