"""Conversion between the flat node records we store and the nested tree clients edit.

build_tree() nests a flat node set and refuses anything that is not a
single rooted tree. flatten_tree() walks a nested tree in preorder and
assigns parent_id and layer from each node's position.

Both walks are iterative, so arbitrarily deep branch chains are fine.
"""

from collections import defaultdict
from collections.abc import Iterable
from typing import Protocol
from uuid import uuid4

from branchreel.models import NodeInfo, TreeNode, VideoNode


class NestedNode(Protocol):
    """Anything shaped like a nested node: TreeNode or a submitted edit."""

    node_id: str | None
    parent_id: str | None
    layer: int | None
    info: NodeInfo | None
    children: list


def build_tree(nodes: Iterable[VideoNode]) -> TreeNode:
    """Nest a flat node set under its single root.

    Children keep the order in which they appear in ``nodes``.
    Raises a TreeStructureError subclass if the set is not a tree.
    """
    by_id: dict[str, VideoNode] = {}
    for node in nodes:
        if node.node_id in by_id:
            raise DuplicateNodeError([node.node_id])
        by_id[node.node_id] = node

    roots = [n for n in by_id.values() if n.parent_id is None]
    if not roots:
        raise NoRootError(list(by_id))
    if len(roots) > 1:
        raise MultipleRootsError([r.node_id for r in roots])

    dangling = [
        n.node_id for n in by_id.values()
        if n.parent_id is not None and n.parent_id not in by_id
    ]
    if dangling:
        raise DanglingParentError(dangling)

    children_of: dict[str, list[VideoNode]] = defaultdict(list)
    for node in by_id.values():
        if node.parent_id is not None:
            children_of[node.parent_id].append(node)

    root = roots[0]
    if root.layer != 0:
        raise LayerMismatchError([root.node_id])

    unvisited = set(by_id)
    unvisited.discard(root.node_id)
    nested_root = _nest(root)
    stack: list[tuple[VideoNode, TreeNode]] = [(root, nested_root)]

    while stack:
        record, nested = stack.pop()
        for child in children_of.pop(record.node_id, []):
            if child.node_id not in unvisited:
                raise CycleDetectedError([child.node_id])
            unvisited.discard(child.node_id)
            if child.layer != record.layer + 1:
                raise LayerMismatchError([child.node_id])
            nested_child = _nest(child)
            nested.children.append(nested_child)
            stack.append((child, nested_child))

    # Every parent resolves, so whatever the root never reached hangs off a loop
    if unvisited:
        raise CycleDetectedError(sorted(unvisited))

    return nested_root


def flatten_tree(
    root: NestedNode,
    *,
    tree_id: str | None = None,
    creator: str | None = None,
) -> list[VideoNode]:
    """Flatten a nested tree into preorder node records.

    parent_id and layer come from position. A node may omit node_id (a
    fresh one is assigned), parent_id or layer; if it declares them they
    must match its position. ``creator`` overrides every node's creator.
    """
    flat: list[VideoNode] = []
    seen: set[str] = set()
    stack: list[tuple[NestedNode, str | None, int]] = [(root, None, 0)]

    while stack:
        node, parent_id, layer = stack.pop()
        node_id = node.node_id or str(uuid4())
        if node_id in seen:
            raise InvalidTreeSubmissionError(
                "Node appears more than once in the tree", [node_id],
            )
        seen.add(node_id)

        declared_layer = getattr(node, "layer", None)
        if declared_layer is not None and declared_layer != layer:
            raise InvalidTreeSubmissionError(
                f"Node declares layer {declared_layer} but sits at layer {layer}",
                [node_id],
            )
        declared_parent = getattr(node, "parent_id", None)
        if declared_parent is not None and declared_parent != parent_id:
            raise InvalidTreeSubmissionError(
                "Node declares a parent other than the one it is nested under",
                [node_id],
            )

        node_creator = creator if creator is not None else getattr(node, "creator", None)
        if node_creator is None:
            raise InvalidTreeSubmissionError("Node has no creator", [node_id])

        flat.append(VideoNode(
            node_id=node_id,
            tree_id=tree_id,
            parent_id=parent_id,
            layer=layer,
            info=node.info,
            creator=node_creator,
        ))
        for child in reversed(node.children):
            stack.append((child, node_id, layer + 1))

    return flat


def _nest(record: VideoNode) -> TreeNode:
    return TreeNode(
        node_id=record.node_id,
        parent_id=record.parent_id,
        layer=record.layer,
        info=record.info,
        creator=record.creator,
    )


class TreeStructureError(Exception):
    """A flat node set that cannot be nested into a single tree."""

    def __init__(self, message: str, node_ids: list[str]) -> None:
        self.node_ids = node_ids
        super().__init__(f"{message}: {node_ids}")


class NoRootError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("No root node found", node_ids)


class MultipleRootsError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("Multiple root nodes", node_ids)


class DanglingParentError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("Parent reference matches no node", node_ids)


class CycleDetectedError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("Cycle detected", node_ids)


class DuplicateNodeError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("Duplicate node id", node_ids)


class LayerMismatchError(TreeStructureError):
    def __init__(self, node_ids: list[str]) -> None:
        super().__init__("Node layer does not match its depth", node_ids)


class InvalidTreeSubmissionError(Exception):
    """A submitted nested tree that contradicts itself."""

    def __init__(self, message: str, node_ids: list[str]) -> None:
        self.node_ids = node_ids
        super().__init__(message)
