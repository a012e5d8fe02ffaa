"""Copy-on-write editing of value trees.

Every function returns a new root. Containers along the edited path are
rebuilt; everything else is shared by reference with the input tree, so
callers can detect changes with a plain identity check.
"""

from collections.abc import Sequence
from typing import Any

from .exceptions import IndexOutOfRange, InvalidPath
from .models import MISSING, PathStep, SchemaNode, ValueTree


def _check_step(step: Any, path: Sequence[PathStep]) -> None:
    if isinstance(step, bool) or not isinstance(step, (str, int)):
        raise InvalidPath(f"invalid path step {step!r}", tuple(path))


def _index(container: list, step: int, path: Sequence[PathStep]) -> int:
    if step < 0 or step >= len(container):
        raise IndexOutOfRange(f"index {step} out of range for list of {len(container)}", tuple(path))
    return step


def get_field(tree: ValueTree, path: Sequence[PathStep], default: Any = MISSING) -> Any:
    """Return the value at ``path``, or ``default`` when a step is missing."""
    node = tree
    for step in path:
        _check_step(step, path)
        if isinstance(step, str):
            if not isinstance(node, dict) or step not in node:
                return default
            node = node[step]
        else:
            if not isinstance(node, list) or not 0 <= step < len(node):
                return default
            node = node[step]
    return node


def _set(node: ValueTree, path: Sequence[PathStep], depth: int, value: Any) -> ValueTree:
    step = path[depth]
    _check_step(step, path)
    last = depth == len(path) - 1

    if isinstance(step, str):
        if node is MISSING:
            node = {}
        if not isinstance(node, dict):
            raise InvalidPath(
                f"cannot descend into {type(node).__name__} with key {step!r}", tuple(path[: depth + 1])
            )
        updated = dict(node)
        updated[step] = value if last else _set(node.get(step, MISSING), path, depth + 1, value)
        return updated

    if not isinstance(node, list):
        kind = "missing value" if node is MISSING else type(node).__name__
        raise InvalidPath(f"cannot index {kind} with [{step}]", tuple(path[: depth + 1]))
    _index(node, step, path[: depth + 1])
    updated = list(node)
    updated[step] = value if last else _set(node[step], path, depth + 1, value)
    return updated


def set_field(tree: ValueTree, path: Sequence[PathStep], new_value: Any) -> ValueTree:
    """
    Return a copy of ``tree`` with the node at ``path`` replaced.

    A key step under which nothing is stored yet creates an empty mapping
    when further steps follow.

    Args:
        tree: The current root.
        path: Non-empty sequence of keys (str) and list indices (int).
        new_value: The value to store.

    Returns:
        A new root sharing every subtree not on ``path`` with ``tree``.

    Raises:
        InvalidPath: If the path is empty or a step does not match the
            container it addresses.
        IndexOutOfRange: If an index step is outside the addressed list.
    """
    if not path:
        raise InvalidPath("path must not be empty")
    return _set(tree, list(path), 0, new_value)


def delete_field(tree: ValueTree, path: Sequence[PathStep]) -> ValueTree:
    """Return a copy of ``tree`` without the key at ``path``.

    Deleting a key that is not present returns ``tree`` itself.
    """
    if not path:
        raise InvalidPath("path must not be empty")
    *parent_path, step = path
    if not isinstance(step, str) or isinstance(step, bool):
        raise InvalidPath("only mapping keys can be deleted; use remove_item for lists", tuple(path))

    parent = get_field(tree, parent_path) if parent_path else tree
    if parent is MISSING:
        return tree
    if not isinstance(parent, dict):
        raise InvalidPath(f"cannot delete key {step!r} from {type(parent).__name__}", tuple(path))
    if step not in parent:
        return tree

    updated = {key: child for key, child in parent.items() if key != step}
    return set_field(tree, parent_path, updated) if parent_path else updated


def _get_list(tree: ValueTree, array_path: Sequence[PathStep]) -> list:
    if not array_path:
        raise InvalidPath("array path must not be empty")
    current = get_field(tree, array_path)
    if current is MISSING:
        return []
    if not isinstance(current, list):
        raise InvalidPath(f"value at path is {type(current).__name__}, not a list", tuple(array_path))
    return current


def append_item(
    tree: ValueTree, array_path: Sequence[PathStep], item_shape: SchemaNode | None = None
) -> ValueTree:
    """
    Append a default element to the list at ``array_path``.

    The new element is ``{}`` for object item shapes and ``""`` otherwise.
    A missing list is created.
    """
    current = _get_list(tree, array_path)
    item = item_shape.empty_value() if item_shape is not None else ""
    return set_field(tree, array_path, [*current, item])


def remove_item(tree: ValueTree, array_path: Sequence[PathStep], index: int) -> ValueTree:
    """
    Remove the element at ``index`` from the list at ``array_path``.

    Raises:
        IndexOutOfRange: If ``index`` is not a position in the list.
    """
    current = _get_list(tree, array_path)
    _check_step(index, [*array_path, index])
    if isinstance(index, str):
        raise InvalidPath(f"list index must be an int, got {index!r}", (*array_path, index))
    _index(current, index, [*array_path, index])
    return set_field(tree, array_path, current[:index] + current[index + 1 :])
