"""Infer field shapes from existing release values.

Charts without a ``values.schema.json`` still need an editable form, and
even charts with one leave room for free-form sections (``extraEnv``,
``initContainers`` and friends). The functions here derive a shape from a
sample value so those sections can be edited too.
"""

import logging
from typing import Any

from ..models import FieldKind, SchemaNode

logger = logging.getLogger(__name__)


def _scalar_kind(value: Any) -> FieldKind:
    """Map a scalar to its field kind. Anything unrecognised is text."""
    # bool is a subclass of int, so it has to be checked first
    if isinstance(value, bool):
        return FieldKind.BOOLEAN
    if isinstance(value, int):
        return FieldKind.INTEGER
    if isinstance(value, float):
        return FieldKind.INTEGER if value.is_integer() else FieldKind.NUMBER
    return FieldKind.STRING


def infer_shape(value: Any) -> SchemaNode:
    """
    Infer a schema node from a sample value.

    Arrays are described by their first element only. An empty array, or
    one whose first element is null or another array, gets string items.

    Args:
        value: Any JSON-decodable value, including None.

    Returns:
        A SchemaNode describing the value.
    """
    if value is None:
        return SchemaNode(FieldKind.STRING)

    if isinstance(value, list):
        exemplar = value[0] if value else None
        if isinstance(exemplar, dict):
            return SchemaNode.array_of(infer_shape(exemplar))
        if exemplar is None or isinstance(exemplar, list):
            return SchemaNode.array_of(SchemaNode(FieldKind.STRING))
        return SchemaNode.array_of(SchemaNode(_scalar_kind(exemplar)))

    if isinstance(value, dict):
        return SchemaNode.object_of({str(key): infer_shape(child) for key, child in value.items()})

    return SchemaNode(_scalar_kind(value))


def _property_from_value(value: Any) -> dict:
    """Build one JSON Schema property, carrying the value as its default."""
    shape = infer_shape(value)
    prop: dict[str, Any] = {"type": shape.kind.value}

    if shape.kind is FieldKind.OBJECT:
        prop["properties"] = {key: _property_from_value(child) for key, child in value.items()}
    elif shape.kind is FieldKind.ARRAY:
        if value and isinstance(value[0], dict):
            prop["items"] = _property_from_value(value[0])
        else:
            prop["items"] = {"type": shape.item_shape.kind.value}

    prop["default"] = value
    return prop


def infer_schema_document(values: Any) -> dict:
    """
    Generate a JSON Schema document from deployed release values.

    Every property carries its current value as ``default`` so a form built
    from the document starts out showing what is deployed.

    Args:
        values: The release's values, as returned by ``helm get values``.

    Returns:
        A ``{"type": "object", "properties": ...}`` document. Non-object
        input yields an empty property map.
    """
    if not isinstance(values, dict):
        logger.debug(f"Cannot infer properties from {type(values).__name__} values")
        return {"type": "object", "properties": {}}

    properties = {key: _property_from_value(child) for key, child in values.items()}
    logger.debug(f"Inferred {len(properties)} top-level properties from values")
    return {"type": "object", "properties": properties}
