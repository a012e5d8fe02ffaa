"""Edit sessions: one chart schema and one value tree per release edit."""

import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from .editor import append_item, delete_field, get_field, remove_item, set_field
from .exceptions import InvalidPath, SessionBusy
from .flattener import flatten
from .helm.client import HelmClient
from .models import (
    MISSING,
    FieldKind,
    Override,
    PathStep,
    SchemaNode,
    UnsupportedField,
    ValueTree,
)
from .schema.inference import infer_shape
from .schema.loader import load_schema
from .schema.normalizer import coerce_input, format_for_input, normalize

logger = logging.getLogger(__name__)


def _merge_defaults(shape: SchemaNode, value: Any) -> Any:
    """Fill fields missing from ``value`` with schema defaults."""
    if value is MISSING:
        if shape.default is not None:
            return shape.default
        if shape.kind is FieldKind.OBJECT:
            nested = {}
            for key, child in shape.children.items():
                merged = _merge_defaults(child, MISSING)
                if merged is not MISSING:
                    nested[key] = merged
            return nested or MISSING
        return MISSING

    if shape.kind is FieldKind.OBJECT and isinstance(value, dict) and shape.children:
        result = dict(value)
        for key, child in shape.children.items():
            merged = _merge_defaults(child, value.get(key, MISSING))
            if merged is not MISSING:
                result[key] = merged
        return result
    return value


def seed_values(schema: SchemaNode, current: Any) -> dict:
    """
    Build the initial value tree of a session.

    Current release values win; fields they leave out are filled from
    schema defaults, recursively. Objects that neither side provides are
    not materialized, so they do not turn into overrides.
    """
    seeded = _merge_defaults(schema, current if isinstance(current, dict) else MISSING)
    return seeded if isinstance(seeded, dict) else {}


@dataclass
class FieldView:
    """One field as a form renders it."""

    name: str
    path: tuple[PathStep, ...]
    shape: SchemaNode
    value: Any

    @property
    def display_value(self) -> str:
        return format_for_input(self.value)


@dataclass
class EditSession:
    """Owns the schema and the value tree while one release is edited."""

    release: str
    chart: str
    schema: SchemaNode
    values: ValueTree = field(default_factory=dict)
    namespace: str = "default"
    unsupported: list[UnsupportedField] = field(default_factory=list)
    inferred: bool = False
    _initial: ValueTree = field(init=False, repr=False, compare=False)
    _upgrade_lock: threading.Lock = field(
        init=False, default_factory=threading.Lock, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        self._initial = self.values

    @classmethod
    def open(
        cls,
        release: str,
        chart: str,
        schema_text: str | None,
        current_values: Any,
        namespace: str = "default",
    ) -> "EditSession":
        """
        Start a session from a chart schema and the release's current values.

        When the schema declares no fields, the shape is inferred from the
        current values instead.
        """
        document = load_schema(schema_text)
        current = current_values if isinstance(current_values, dict) else {}

        if document.is_empty:
            logger.info(f"No schema fields for {chart}, inferring from {len(current)} values")
            schema = infer_shape(current)
        else:
            schema = document.root

        for item in document.unsupported:
            logger.warning(f"{item.message}: {item.path} ({item.declared_type!r})")

        return cls(
            release=release,
            chart=chart,
            schema=schema,
            values=seed_values(schema, current),
            namespace=namespace,
            unsupported=list(document.unsupported),
            inferred=document.is_empty,
        )

    @property
    def busy(self) -> bool:
        return self._upgrade_lock.locked()

    @property
    def changed(self) -> bool:
        """True once any edit has replaced the seeded tree."""
        return self.values is not self._initial

    def _child_shape(
        self,
        shape: SchemaNode,
        step: PathStep,
        child_path: Sequence[PathStep],
        tree: ValueTree = MISSING,
    ) -> SchemaNode:
        raw = get_field(self.values if tree is MISSING else tree, child_path, None)
        sample = normalize(raw, FieldKind.STRING)

        if isinstance(step, int):
            if shape.kind is FieldKind.ARRAY:
                item_shape = shape.item_shape
                # object items render as objects whatever the declared item type
                if isinstance(sample, dict) and item_shape.kind is not FieldKind.OBJECT:
                    return infer_shape(sample)
                return item_shape
            return infer_shape(sample)

        if shape.kind is FieldKind.OBJECT and step in shape.children:
            return shape.children[step]
        return infer_shape(sample)

    def shape_at(self, path: Sequence[PathStep]) -> SchemaNode:
        """
        Resolve the shape of the field at ``path``.

        Declared schema nodes are used where they exist; where the schema
        is silent the shape is inferred from the current value.
        """
        shape = self.schema
        for depth, step in enumerate(path):
            shape = self._child_shape(shape, step, path[: depth + 1])
        return shape

    def _container_children(self, shape: SchemaNode, container: dict) -> dict[str, SchemaNode]:
        if shape.children:
            return shape.children
        return infer_shape(container).children

    def fields(self, path: Sequence[PathStep] = ()) -> list[FieldView]:
        """List the editable fields of the object or array at ``path``."""
        path = tuple(path)
        shape = self.shape_at(path)
        raw = get_field(self.values, path, None) if path else self.values
        container = normalize(raw, shape)

        if shape.kind is FieldKind.OBJECT:
            views = []
            for key, child in self._container_children(shape, container).items():
                value = container.get(key)
                if value is None:
                    value = child.default
                views.append(FieldView(key, (*path, key), child, normalize(value, child)))
            return views

        if shape.kind is FieldKind.ARRAY:
            views = []
            for index, item in enumerate(container):
                item_path = (*path, index)
                item_shape = self.shape_at(item_path)
                views.append(FieldView(f"[{index}]", item_path, item_shape, normalize(item, item_shape)))
            return views

        raise InvalidPath(f"field is a {shape.kind.value}, not a container", path)

    def _ensure_idle(self) -> None:
        if self.busy:
            raise SessionBusy(f"an upgrade of {self.release} is in progress")

    def _normalize_along(self, path: Sequence[PathStep]) -> None:
        """Normalize every existing container on ``path`` before descending into it."""
        tree = self.values
        shape = self.schema
        for depth, step in enumerate(path):
            prefix = tuple(path[:depth])
            if prefix:
                current = get_field(tree, prefix)
                if current is not MISSING:
                    normalized = normalize(current, shape)
                    if normalized is not current:
                        tree = set_field(tree, prefix, normalized)
            shape = self._child_shape(shape, step, path[: depth + 1], tree)
        self.values = tree

    def set(self, path: Sequence[PathStep], value: Any) -> ValueTree:
        """Store ``value`` at ``path`` and return the new tree."""
        self._ensure_idle()
        self._normalize_along(path)
        self.values = set_field(self.values, path, value)
        return self.values

    def commit_text(self, path: Sequence[PathStep], text: str) -> ValueTree:
        """
        Commit text typed into a field, converting it to the field's kind.

        Blank text unsets a mapping key so the release keeps its previous
        value; for list elements it stores an empty string.
        """
        self._ensure_idle()
        shape = self.shape_at(path)
        value = coerce_input(text, shape)
        if value is MISSING:
            if path and isinstance(path[-1], str):
                self._normalize_along(path)
                self.values = delete_field(self.values, path)
                return self.values
            value = ""
        return self.set(path, value)

    def append(self, array_path: Sequence[PathStep]) -> ValueTree:
        """Append a default element to the list at ``array_path``."""
        self._ensure_idle()
        shape = self.shape_at(array_path)
        if shape.kind is not FieldKind.ARRAY:
            raise InvalidPath(f"field is a {shape.kind.value}, not an array", tuple(array_path))
        self._normalize_along((*array_path, 0))
        self.values = append_item(self.values, array_path, shape.item_shape)
        return self.values

    def remove(self, array_path: Sequence[PathStep], index: int) -> ValueTree:
        """Remove element ``index`` from the list at ``array_path``."""
        self._ensure_idle()
        self._normalize_along((*array_path, index))
        self.values = remove_item(self.values, array_path, index)
        return self.values

    def overrides(self) -> list[Override]:
        return flatten(self.values)

    def apply(self, client: HelmClient, version: str | None = None) -> str:
        """
        Hand the current values to ``helm upgrade``.

        Only one upgrade may run per session; edits are refused while it
        is in flight.

        Raises:
            SessionBusy: If an upgrade from this session is already running.
        """
        if not self._upgrade_lock.acquire(blocking=False):
            raise SessionBusy(f"an upgrade of {self.release} is already in progress")
        try:
            overrides = self.overrides()
            return client.upgrade(
                self.release, self.chart, overrides, namespace=self.namespace, version=version
            )
        finally:
            self._upgrade_lock.release()
