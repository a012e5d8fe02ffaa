"""Load chart JSON Schema documents into schema nodes."""

import json
import logging
from typing import Any

from ..exceptions import ParseError, UnsupportedKind
from ..models import FieldKind, SchemaDocument, SchemaNode, UnsupportedField

logger = logging.getLogger(__name__)

SUPPORTED_KINDS = {kind.value for kind in FieldKind}


def _declared_kind(prop: dict, field_path: str) -> FieldKind:
    """Work out the field kind of a JSON Schema property."""
    declared = prop.get("type")

    if isinstance(declared, list):
        # ["string", "null"] style nullable declarations
        candidates = [t for t in declared if t != "null"]
        declared = candidates[0] if candidates else "null"

    if declared is None:
        if "properties" in prop:
            declared = "object"
        elif "items" in prop:
            declared = "array"
        elif "enum" in prop:
            declared = "string"

    if not isinstance(declared, str) or declared not in SUPPORTED_KINDS:
        raise UnsupportedKind(field_path, prop.get("type"))
    return FieldKind(declared)


def _join(parent: str, key: str) -> str:
    return f"{parent}.{key}" if parent else key


def build_node(prop: Any, field_path: str, unsupported: list[UnsupportedField]) -> SchemaNode:
    """
    Build a schema node from one JSON Schema property.

    Unsupported descendants are skipped and appended to ``unsupported``;
    an unsupported kind for ``prop`` itself raises UnsupportedKind.
    """
    if not isinstance(prop, dict):
        raise UnsupportedKind(field_path, prop)

    kind = _declared_kind(prop, field_path)
    description = prop.get("description")
    default = prop.get("default")

    if kind is FieldKind.OBJECT:
        return SchemaNode.object_of(
            build_children(prop.get("properties") or {}, field_path, unsupported),
            description=description,
            default=default,
        )

    if kind is FieldKind.ARRAY:
        items = prop.get("items")
        item_shape = None
        if isinstance(items, dict) and items:
            try:
                item_shape = build_node(items, f"{field_path}[]", unsupported)
            except UnsupportedKind as e:
                logger.warning(f"Falling back to string items: {e}")
                unsupported.append(UnsupportedField(e.field_path, e.declared_type))
        return SchemaNode.array_of(item_shape, description=description, default=default)

    choices = None
    if kind is FieldKind.STRING and prop.get("enum"):
        choices = tuple(str(choice) for choice in prop["enum"] if choice is not None)
    return SchemaNode(kind, description=description, default=default, choices=choices or None)


def build_children(
    properties: dict, parent_path: str, unsupported: list[UnsupportedField]
) -> dict[str, SchemaNode]:
    """Build the children of an object node, skipping unsupported fields."""
    children: dict[str, SchemaNode] = {}
    for key, prop in properties.items():
        field_path = _join(parent_path, key)
        try:
            children[key] = build_node(prop, field_path, unsupported)
        except UnsupportedKind as e:
            logger.warning(f"Skipping field: {e}")
            unsupported.append(UnsupportedField(e.field_path, e.declared_type))
    return children


def build_schema(properties: dict | None) -> SchemaDocument:
    """Build a schema document from an already decoded ``properties`` map."""
    unsupported: list[UnsupportedField] = []
    root = SchemaNode.object_of(build_children(properties or {}, "", unsupported))
    return SchemaDocument(root=root, unsupported=unsupported)


SCHEMA_KEYWORDS = {
    "$schema", "$id", "$ref", "$defs", "$comment", "definitions",
    "title", "description", "type", "properties", "required",
    "additionalProperties", "patternProperties", "default", "examples",
    "items", "enum", "allOf", "anyOf", "oneOf", "not", "if", "then", "else",
}

# keywords whose value is never an object in a schema document
SCALAR_KEYWORDS = {"$schema", "$id", "$ref", "$comment", "title", "description", "type"}


def _is_schema_document(doc: dict) -> bool:
    """Tell a whole schema document apart from a bare properties map."""
    if "$schema" in doc:
        return True
    if doc.get("type") == "object" and isinstance(doc.get("properties"), dict):
        return True
    # a bare map may have fields named "properties" or "type"
    if not set(doc) <= SCHEMA_KEYWORDS:
        return False
    return not any(isinstance(doc.get(key), dict) for key in SCALAR_KEYWORDS)


def load_schema(text: str | None) -> SchemaDocument:
    """
    Load a chart schema from raw JSON text.

    Accepts either a full JSON Schema document or a bare ``properties``
    map. Blank text, ``null`` or a document without properties all mean
    "no schema" and produce an empty root.

    Raises:
        ParseError: If the text is not valid JSON or not a JSON object.
    """
    if text is None or not text.strip():
        return SchemaDocument()

    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid schema JSON: {e}") from e

    if doc is None:
        return SchemaDocument()
    if not isinstance(doc, dict):
        raise ParseError(f"schema must be a JSON object, got {type(doc).__name__}")

    properties = doc.get("properties") if _is_schema_document(doc) else doc
    if properties is not None and not isinstance(properties, dict):
        raise ParseError("schema properties must be a JSON object")

    document = build_schema(properties)
    logger.info(
        f"Loaded schema with {len(document.root.children)} fields"
        f" ({len(document.unsupported)} unsupported)"
    )
    return document
