"""
scribe_engine/path_tree.py -- Nested attribute tree addressed by dotted paths.

An entity's reconstructed state is a tree: ``"stats.HP"`` lives under the
``stats`` object, ``"spells.fire.Firebolt"`` two levels down.  The tree is a
small recursive tagged variant:

    Node   = Leaf(value) | Branch(children)
    Branch = insertion-ordered mapping of segment -> Node

Rules:
    - ``set`` creates intermediate branches as needed and replaces whatever
      node (leaf or whole subtree) was at the final segment.  A leaf met on
      the way down is replaced by a branch.
    - ``get`` returns ``None`` when the walk leaves the tree or hits a leaf
      before the last segment.  A branch is returned as a nested dict.
    - ``remove`` deletes the final key only; emptied parents stay.

Usage::

    from scribe_engine.path_tree import PathTree

    tree = PathTree()
    tree.set("stats.HP", 10.0)
    tree.get("stats")        # -> {"HP": 10.0}
    tree.remove("stats.HP")
    tree.to_dict()           # -> {"stats": {}}
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterator, Optional, Union

from scribe_engine.models.validators import StateValue


@dataclass
class Leaf:
    value: StateValue


@dataclass
class Branch:
    children: dict[str, "Node"] = field(default_factory=dict)


Node = Union[Leaf, Branch]


def split_path(path: str) -> list[str]:
    return path.split(".")


class PathTree:
    """A mutable attribute tree.  Not thread-safe; each replay owns one."""

    def __init__(self):
        self._root = Branch()

    # ------------------------------------------------------------------
    # Construction / export
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PathTree:
        """Build a tree from nested dicts of scalar values."""
        tree = cls()
        tree._root = _branch_from_dict(data)
        return tree

    def to_dict(self) -> dict[str, Any]:
        """Return the tree as plain nested dicts (keys in insertion order)."""
        return _branch_to_dict(self._root)

    # ------------------------------------------------------------------
    # Path operations
    # ------------------------------------------------------------------

    def get(self, path: str) -> Optional[Union[StateValue, dict[str, Any]]]:
        node = self._find(split_path(path))
        if node is None:
            return None
        if isinstance(node, Leaf):
            return node.value
        return _branch_to_dict(node)

    def set(self, path: str, value: StateValue) -> None:
        segments = split_path(path)
        parent = self._root
        for segment in segments[:-1]:
            child = parent.children.get(segment)
            if not isinstance(child, Branch):
                child = Branch()
                parent.children[segment] = child
            parent = child
        parent.children[segments[-1]] = Leaf(value)

    def remove(self, path: str) -> None:
        segments = split_path(path)
        parent = self._find(segments[:-1])
        if isinstance(parent, Branch):
            parent.children.pop(segments[-1], None)

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def is_empty(self) -> bool:
        return not self._root.children

    def leaves(self) -> Iterator[tuple[str, StateValue]]:
        """Yield ``(dotted_path, value)`` depth-first in insertion order."""
        yield from _iter_leaves(self._root, [])

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathTree):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"PathTree({self.to_dict()!r})"

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _find(self, segments: list[str]) -> Optional[Node]:
        node: Node = self._root
        for segment in segments:
            if not isinstance(node, Branch):
                return None
            child = node.children.get(segment)
            if child is None:
                return None
            node = child
        return node


def _branch_to_dict(branch: Branch) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for key, child in branch.children.items():
        if isinstance(child, Leaf):
            result[key] = child.value
        else:
            result[key] = _branch_to_dict(child)
    return result


def _branch_from_dict(data: dict[str, Any]) -> Branch:
    branch = Branch()
    for key, value in data.items():
        if isinstance(value, dict):
            branch.children[key] = _branch_from_dict(value)
        else:
            branch.children[key] = Leaf(value)
    return branch


def _iter_leaves(branch: Branch, prefix: list[str]) -> Iterator[tuple[str, StateValue]]:
    for key, child in branch.children.items():
        path = prefix + [key]
        if isinstance(child, Leaf):
            yield ".".join(path), child.value
        else:
            yield from _iter_leaves(child, path)
