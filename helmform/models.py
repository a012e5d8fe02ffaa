"""Data models for the values engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

# A value tree is plain JSON data: str, int, float, bool, None, dict or list.
ValueTree = Any
PathStep = Union[str, int]
Path = tuple[PathStep, ...]


class _Missing:
    """Marker for an absent value, distinct from an explicit null."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING = _Missing()


class FieldKind(str, Enum):
    """Closed set of field kinds a schema node can describe."""

    STRING = "string"
    BOOLEAN = "boolean"
    INTEGER = "integer"
    NUMBER = "number"
    OBJECT = "object"
    ARRAY = "array"

    @property
    def is_container(self) -> bool:
        return self in (FieldKind.OBJECT, FieldKind.ARRAY)


@dataclass(frozen=True)
class SchemaNode:
    """Describes one configurable field of a chart's values.

    Only the payload matching ``kind`` is populated: ``children`` for
    objects, ``item_shape`` for arrays and ``choices`` for strings.
    """

    kind: FieldKind
    description: str | None = None
    default: Any = None
    children: dict[str, "SchemaNode"] | None = None
    item_shape: "SchemaNode | None" = None
    choices: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        kind = FieldKind(self.kind)
        object.__setattr__(self, "kind", kind)

        if kind is FieldKind.OBJECT:
            if self.children is None:
                object.__setattr__(self, "children", {})
        elif self.children is not None:
            raise ValueError(f"children given for {kind.value} node")

        if kind is FieldKind.ARRAY:
            if self.item_shape is None:
                object.__setattr__(self, "item_shape", SchemaNode(FieldKind.STRING))
        elif self.item_shape is not None:
            raise ValueError(f"item_shape given for {kind.value} node")

        if self.choices is not None:
            if kind is not FieldKind.STRING:
                raise ValueError(f"choices given for {kind.value} node")
            object.__setattr__(self, "choices", tuple(self.choices))

    @classmethod
    def object_of(cls, children: dict[str, "SchemaNode"] | None = None, **kwargs) -> "SchemaNode":
        return cls(FieldKind.OBJECT, children=dict(children or {}), **kwargs)

    @classmethod
    def array_of(cls, item_shape: "SchemaNode | None" = None, **kwargs) -> "SchemaNode":
        return cls(FieldKind.ARRAY, item_shape=item_shape, **kwargs)

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @property
    def is_constrained(self) -> bool:
        """True when a string field only accepts a closed set of values."""
        return bool(self.choices)

    def empty_value(self) -> Any:
        """Value used for a freshly appended element of this shape."""
        return {} if self.kind is FieldKind.OBJECT else ""


class OverrideChannel(str, Enum):
    """Helm flag an override assignment is passed through."""

    SET = "--set"
    SET_STRING = "--set-string"
    SET_JSON = "--set-json"


@dataclass(frozen=True)
class Override:
    """One key-path assignment for ``helm upgrade``."""

    channel: OverrideChannel
    path: str
    value: str

    @property
    def assignment(self) -> str:
        return f"{self.path}={self.value}"

    def as_args(self) -> list[str]:
        return [self.channel.value, self.assignment]

    def __str__(self) -> str:
        return self.assignment


@dataclass
class HelmRelease:
    """Represents a Helm release as reported by ``helm list``."""

    name: str
    namespace: str = "default"
    chart: str = ""
    chart_version: str = ""
    app_version: str | None = None
    status: str = ""
    revision: int = 0
    updated: str = ""

    @property
    def chart_ref(self) -> str:
        """Chart name with its version, as shown by ``helm list``."""
        if self.chart_version:
            return f"{self.chart}-{self.chart_version}"
        return self.chart

    @classmethod
    def from_helm(cls, data: dict) -> "HelmRelease":
        chart_field = data.get("chart", "")
        chart, _, version = chart_field.rpartition("-")
        # cert-manager-v1.13.0 style versions carry a leading v
        numeric = version[1:] if version[:1] in ("v", "V") else version
        if not chart or not numeric[:1].isdigit():
            chart, version = chart_field, ""
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", "default"),
            chart=chart,
            chart_version=version,
            app_version=data.get("app_version"),
            status=data.get("status", ""),
            revision=int(data.get("revision") or 0),
            updated=data.get("updated", ""),
        )


@dataclass
class Revision:
    """One entry of ``helm history``."""

    revision: int
    status: str = ""
    chart: str = ""
    app_version: str | None = None
    description: str = ""
    updated: str = ""

    @property
    def is_deployed(self) -> bool:
        return self.status == "deployed"

    @classmethod
    def from_helm(cls, data: dict) -> "Revision":
        return cls(
            revision=int(data.get("revision") or 0),
            status=data.get("status", ""),
            chart=data.get("chart", ""),
            app_version=data.get("app_version"),
            description=data.get("description", ""),
            updated=data.get("updated", ""),
        )


@dataclass
class UnsupportedField:
    """A schema field skipped because its type is outside the supported set."""

    path: str
    declared_type: Any
    message: str = "unsupported field type"


@dataclass
class SchemaDocument:
    """Result of loading a chart schema: the root shape and skipped fields."""

    root: SchemaNode = field(default_factory=SchemaNode.object_of)
    unsupported: list[UnsupportedField] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.root.children
