"""Predicates over nested trees."""

from typing import Any


def any_node_missing(root: Any, field_name: str) -> bool:
    """True if any node in the tree has ``field_name`` unset or empty.

    Depth-first over ``children``; stops at the first hit.
    """
    stack = [root]
    while stack:
        node = stack.pop()
        if _is_empty(getattr(node, field_name, None)):
            return True
        stack.extend(node.children)
    return False


def tree_is_editing(title: str | None, root: Any) -> bool:
    """A tree is still being edited until it has a title and every node has content."""
    if title is None or not title.strip():
        return True
    return any_node_missing(root, "info")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, dict, set, tuple)):
        return len(value) == 0
    return False
