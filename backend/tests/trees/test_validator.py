"""Tests for tree predicates: missing fields and the derived editing flag."""

from branchreel.models import TreeNode
from branchreel.trees.schemas import SubmittedNode
from branchreel.trees.validator import any_node_missing, tree_is_editing
from tests.fixtures import make_info


def _complete_tree() -> SubmittedNode:
    return SubmittedNode(
        node_id="root",
        info=make_info("intro"),
        children=[
            SubmittedNode(info=make_info("a"), children=[SubmittedNode(info=make_info("b"))]),
            SubmittedNode(info=make_info("c")),
        ],
    )


class TestAnyNodeMissing:
    def test_complete_tree(self):
        assert any_node_missing(_complete_tree(), "info") is False

    def test_missing_on_root(self):
        assert any_node_missing(SubmittedNode(node_id="root"), "info") is True

    def test_missing_deep_in_tree(self):
        root = _complete_tree()
        root.children[0].children[0].info = None
        assert any_node_missing(root, "info") is True

    def test_empty_string_counts_as_missing(self):
        root = TreeNode(node_id="", layer=0, creator="c")
        assert any_node_missing(root, "node_id") is True

    def test_unknown_field_counts_as_missing(self):
        assert any_node_missing(_complete_tree(), "no_such_field") is True


class TestTreeIsEditing:
    def test_finished_tree(self):
        assert tree_is_editing("Title", _complete_tree()) is False

    def test_blank_title(self):
        assert tree_is_editing("   ", _complete_tree()) is True

    def test_missing_title(self):
        assert tree_is_editing(None, _complete_tree()) is True

    def test_node_without_info(self):
        root = _complete_tree()
        root.children[1].info = None
        assert tree_is_editing("Title", root) is True
