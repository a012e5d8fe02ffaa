"""Tests for copy-on-write tree editing."""

import pytest

from helmform.editor import append_item, delete_field, get_field, remove_item, set_field
from helmform.exceptions import IndexOutOfRange, InvalidPath
from helmform.models import MISSING, FieldKind, SchemaNode


@pytest.fixture
def tree() -> dict:
    """A small values tree with nested objects and lists."""
    return {
        "image": {"repository": "nginx", "tag": "1.23.1"},
        "resources": {"limits": {"cpu": "1"}},
        "tolerations": [{"key": "a"}, {"key": "b"}],
    }


class TestSetField:
    """Tests for set_field."""

    def test_replaces_leaf(self, tree):
        result = set_field(tree, ["image", "tag"], "1.23.4")

        assert result["image"]["tag"] == "1.23.4"
        assert tree["image"]["tag"] == "1.23.1"

    def test_shares_untouched_subtrees(self, tree):
        result = set_field(tree, ["tolerations", 1, "key"], "c")

        assert result is not tree
        assert result["image"] is tree["image"]
        assert result["resources"] is tree["resources"]
        assert result["tolerations"] is not tree["tolerations"]
        assert result["tolerations"][0] is tree["tolerations"][0]
        assert result["tolerations"][1] == {"key": "c"}
        assert tree["tolerations"][1] == {"key": "b"}

    def test_rebuilds_every_ancestor(self, tree):
        result = set_field(tree, ["resources", "limits", "cpu"], "2")

        assert result["resources"] is not tree["resources"]
        assert result["resources"]["limits"] is not tree["resources"]["limits"]

    def test_keeps_key_order(self, tree):
        result = set_field(tree, ["image", "repository"], "httpd")

        assert list(result["image"]) == ["repository", "tag"]

    def test_adds_new_key(self, tree):
        result = set_field(tree, ["replicas"], 3)

        assert result["replicas"] == 3
        assert "replicas" not in tree

    def test_creates_missing_mappings(self):
        assert set_field({}, ["a", "b", "c"], 1) == {"a": {"b": {"c": 1}}}

    def test_index_on_non_list_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            set_field(tree, ["image", 0], "x")

    def test_key_on_list_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            set_field(tree, ["tolerations", "key"], "x")

    def test_index_into_missing_value_is_invalid(self):
        with pytest.raises(InvalidPath):
            set_field({}, ["items", 0], "x")

    def test_key_on_scalar_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            set_field(tree, ["image", "tag", "major"], 1)

    def test_index_out_of_range(self, tree):
        with pytest.raises(IndexOutOfRange):
            set_field(tree, ["tolerations", 5, "key"], "x")

    def test_empty_path_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            set_field(tree, [], {})

    def test_bool_step_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            set_field(tree, ["tolerations", True], {})


class TestArrayOperations:
    """Tests for append_item and remove_item."""

    def test_remove_preserves_order(self):
        tree = {"items": ["a", "b", "c"]}

        result = remove_item(tree, ["items"], 1)

        assert result == {"items": ["a", "c"]}
        assert tree == {"items": ["a", "b", "c"]}

    def test_remove_out_of_range(self):
        with pytest.raises(IndexOutOfRange):
            remove_item({"items": ["a"]}, ["items"], 1)

    def test_remove_negative_index(self):
        with pytest.raises(IndexOutOfRange):
            remove_item({"items": ["a"]}, ["items"], -1)

    def test_remove_shares_elements(self):
        first, last = {"k": 1}, {"k": 3}
        tree = {"items": [first, {"k": 2}, last]}

        result = remove_item(tree, ["items"], 1)

        assert result["items"][0] is first
        assert result["items"][1] is last

    def test_append_object_item(self):
        shape = SchemaNode.object_of({"key": SchemaNode(FieldKind.STRING)})

        result = append_item({"tolerations": [{"key": "a"}]}, ["tolerations"], shape)

        assert result == {"tolerations": [{"key": "a"}, {}]}

    def test_append_scalar_item(self):
        result = append_item({"args": ["--v"]}, ["args"], SchemaNode(FieldKind.STRING))

        assert result == {"args": ["--v", ""]}

    def test_append_creates_missing_list(self):
        assert append_item({}, ["args"]) == {"args": [""]}

    def test_append_to_non_list_is_invalid(self):
        with pytest.raises(InvalidPath):
            append_item({"args": "x"}, ["args"])


class TestGetAndDelete:
    """Tests for get_field and delete_field."""

    def test_get_existing(self, tree):
        assert get_field(tree, ["tolerations", 1, "key"]) == "b"

    def test_get_missing(self, tree):
        assert get_field(tree, ["image", "digest"]) is MISSING
        assert get_field(tree, ["tolerations", 9]) is MISSING
        assert get_field(tree, ["image", "tag", "x"], None) is None

    def test_delete_key(self, tree):
        result = delete_field(tree, ["image", "tag"])

        assert result["image"] == {"repository": "nginx"}
        assert result["resources"] is tree["resources"]
        assert tree["image"]["tag"] == "1.23.1"

    def test_delete_missing_key_returns_same_tree(self, tree):
        assert delete_field(tree, ["image", "digest"]) is tree

    def test_delete_list_index_is_invalid(self, tree):
        with pytest.raises(InvalidPath):
            delete_field(tree, ["tolerations", 0])
