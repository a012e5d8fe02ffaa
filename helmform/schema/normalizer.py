"""Reconcile stored values with the shape they are expected to have."""

import json
import logging
import math
from typing import Any

from ..exceptions import ParseError
from ..models import MISSING, FieldKind, SchemaNode

logger = logging.getLogger(__name__)

_JSON_BRACKETS = {"{": "}", "[": "]"}


def looks_like_json(text: str) -> bool:
    """Check whether text is wrapped in a matching pair of JSON brackets."""
    trimmed = text.strip()
    if len(trimmed) < 2:
        return False
    closing = _JSON_BRACKETS.get(trimmed[0])
    return closing is not None and trimmed[-1] == closing


def decode_embedded_json(text: str) -> Any:
    """
    Decode a JSON object or array that was stored as a string.

    Raises:
        ParseError: If the text is not bracketed JSON or does not decode.
    """
    if not looks_like_json(text):
        raise ParseError("value is not a bracketed JSON document")
    try:
        return json.loads(text.strip())
    except json.JSONDecodeError as e:
        raise ParseError(f"invalid embedded JSON: {e}") from e


def _kind_of(shape: SchemaNode | FieldKind | str) -> FieldKind:
    if isinstance(shape, SchemaNode):
        return shape.kind
    return FieldKind(shape)


def normalize(value: Any, shape: SchemaNode | FieldKind | str) -> Any:
    """
    Make a raw value safe to render and edit for the given shape.

    JSON documents persisted as strings are decoded back into containers,
    and container kinds whose value has the wrong runtime type are reset
    to an empty container. Scalars are left alone; numeric and boolean
    conversion happens when an edit is committed.

    Args:
        value: The stored value.
        shape: The node (or bare kind) the value should conform to.

    Returns:
        The normalized value. Normalizing it again returns it unchanged.
    """
    kind = _kind_of(shape)

    if isinstance(value, str) and looks_like_json(value):
        try:
            value = decode_embedded_json(value)
        except ParseError as e:
            logger.debug(f"Keeping raw string: {e}")

    if kind is FieldKind.ARRAY and not isinstance(value, list):
        return []
    if kind is FieldKind.OBJECT and not isinstance(value, dict):
        return {}
    return value


def coerce_input(text: str, shape: SchemaNode | FieldKind | str) -> Any:
    """
    Convert text typed into a form field to the value it should commit.

    Args:
        text: Raw input text.
        shape: The node (or bare kind) of the field being edited.

    Returns:
        MISSING for blank input (the field is unset, not nulled), decoded
        JSON for bracketed input, an int/float/bool for numeric and boolean
        kinds when the text converts, and the text itself otherwise.
    """
    kind = _kind_of(shape)
    trimmed = text.strip()
    if not trimmed:
        return MISSING

    if looks_like_json(trimmed):
        try:
            return decode_embedded_json(trimmed)
        except ParseError:
            return text

    if kind is FieldKind.INTEGER:
        try:
            return int(trimmed)
        except ValueError:
            return trimmed
    if kind is FieldKind.NUMBER:
        try:
            number = float(trimmed)
        except ValueError:
            return trimmed
        return number if math.isfinite(number) else trimmed
    if kind is FieldKind.BOOLEAN:
        lowered = trimmed.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
        return trimmed
    return text


def format_for_input(value: Any) -> str:
    """Render a value for display in a single text input."""
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        try:
            return json.dumps(value, indent=2)
        except (TypeError, ValueError):
            return str(value)
    return str(value)
