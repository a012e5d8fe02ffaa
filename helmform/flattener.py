"""Flatten value trees into ``helm --set`` style override arguments.

The output is a deterministic pre-order walk of the tree: one assignment
per leaf, keys in insertion order, list elements in index order. Each
assignment picks the Helm flag that makes the receiving side rebuild the
exact value:

- ``--set`` for booleans, integers, null and plain strings;
- ``--set-string`` for strings Helm would otherwise read as a boolean,
  null or number;
- ``--set-json`` for empty containers, non-integral numbers and strings
  starting with ``{`` (Helm's list literal syntax).

The module also parses the same grammar back into trees.
"""

import json
import logging
import math
import re
from collections.abc import Iterable, Sequence
from decimal import Decimal
from typing import Any

from .exceptions import MalformedTree, ParseError
from .models import Override, OverrideChannel, PathStep, ValueTree

logger = logging.getLogger(__name__)

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_KEY_SPECIALS = re.compile(r"([\\.,=\[])")
_VALUE_SPECIALS = re.compile(r"([\\,])")
_NUMERIC_LOOKING = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
_HELM_INT = re.compile(r"[+-]?[0-9]+")
_TYPED_WORDS = {"true", "false", "null"}


def escape_key(key: str) -> str:
    """Escape characters that Helm treats as path syntax inside a key."""
    return _KEY_SPECIALS.sub(r"\\\1", key)


def escape_value(value: str) -> str:
    """Escape the value separator and the escape character."""
    return _VALUE_SPECIALS.sub(r"\\\1", value)


def _in_int64(number: int) -> bool:
    return INT64_MIN <= number <= INT64_MAX


def needs_string_channel(value: str) -> bool:
    """Check whether Helm would type ``value`` as something other than a string."""
    return value.lower() in _TYPED_WORDS or bool(_NUMERIC_LOOKING.fullmatch(value))


def format_number(number: int | float) -> str:
    """Render a number as canonical decimal text without trailing zeros."""
    if isinstance(number, float):
        if number.is_integer():
            return str(int(number))
        # positional notation, never 1e-07
        return format(Decimal(repr(number)), "f")
    return str(number)


def _scalar_override(path: str, value: Any) -> Override:
    if value is None:
        return Override(OverrideChannel.SET, path, "null")

    if isinstance(value, bool):
        return Override(OverrideChannel.SET, path, "true" if value else "false")

    if isinstance(value, int):
        channel = OverrideChannel.SET if _in_int64(value) else OverrideChannel.SET_JSON
        return Override(channel, path, str(value))

    if isinstance(value, float):
        if not math.isfinite(value):
            raise MalformedTree(f"non-finite number {value!r} at {path}")
        if value.is_integer() and _in_int64(int(value)):
            return Override(OverrideChannel.SET, path, format_number(value))
        # --set only types integers; anything else would arrive as a string
        return Override(OverrideChannel.SET_JSON, path, format_number(value))

    if isinstance(value, str):
        if value.startswith("{"):
            return Override(OverrideChannel.SET_JSON, path, json.dumps(value, ensure_ascii=False))
        if needs_string_channel(value):
            return Override(OverrideChannel.SET_STRING, path, escape_value(value))
        return Override(OverrideChannel.SET, path, escape_value(value))

    raise MalformedTree(f"unsupported value type {type(value).__name__} at {path}")


def _key_segment(key: Any, prefix: str) -> str:
    if not isinstance(key, str) or not key:
        raise MalformedTree(f"invalid key {key!r} under {prefix or '<root>'}")
    return escape_key(key)


def _walk(prefix: str, node: Any, out: list[Override]) -> None:
    if isinstance(node, dict):
        if not node:
            out.append(Override(OverrideChannel.SET_JSON, prefix, "{}"))
            return
        for key, child in node.items():
            segment = _key_segment(key, prefix)
            _walk(f"{prefix}.{segment}" if prefix else segment, child, out)
    elif isinstance(node, list):
        if not node:
            out.append(Override(OverrideChannel.SET_JSON, prefix, "[]"))
            return
        for index, child in enumerate(node):
            _walk(f"{prefix}[{index}]", child, out)
    else:
        out.append(_scalar_override(prefix, node))


def flatten(tree: ValueTree) -> list[Override]:
    """
    Convert a value tree into an ordered list of override assignments.

    Args:
        tree: A mapping of chart values.

    Returns:
        One Override per leaf (or empty container), in pre-order.

    Raises:
        MalformedTree: If the root is not a mapping or the tree holds
            something that is not JSON data.
    """
    if not isinstance(tree, dict):
        raise MalformedTree(f"values root must be a mapping, got {type(tree).__name__}")

    overrides: list[Override] = []
    for key, child in tree.items():
        _walk(_key_segment(key, ""), child, overrides)

    logger.debug(f"Flattened values into {len(overrides)} overrides")
    return overrides


def render_assignments(overrides: Iterable[Override]) -> str:
    """Join assignments with commas, the way a single ``--set`` takes them."""
    return ",".join(o.assignment for o in overrides)


def to_cli_args(overrides: Iterable[Override]) -> list[str]:
    """Expand overrides into ``[flag, assignment, ...]`` for subprocess."""
    args: list[str] = []
    for o in overrides:
        args.extend(o.as_args())
    return args


# Parsing


def split_key_path(text: str) -> list[PathStep]:
    """
    Split an escaped key path such as ``a\\.b.c[0].d`` into steps.

    Raises:
        ParseError: If the path is empty or an index is malformed.
    """
    steps: list[PathStep] = []
    current: list[str] = []
    pending = False  # a key segment has been started
    i = 0

    while i < len(text):
        char = text[i]
        if char == "\\":
            if i + 1 >= len(text):
                raise ParseError(f"dangling escape in key {text!r}")
            current.append(text[i + 1])
            pending = True
            i += 2
            continue
        if char == ".":
            if pending:
                steps.append("".join(current))
            elif not steps or not isinstance(steps[-1], int):
                raise ParseError(f"empty key segment in {text!r}")
            current, pending = [], False
            i += 1
            continue
        if char == "[":
            end = text.find("]", i)
            digits = text[i + 1 : end] if end != -1 else ""
            if not (digits.isascii() and digits.isdigit()):
                raise ParseError(f"invalid list index in {text!r}")
            if pending:
                steps.append("".join(current))
                current, pending = [], False
            elif not steps:
                raise ParseError(f"list index without a key in {text!r}")
            steps.append(int(digits))
            i = end + 1
            continue
        current.append(char)
        pending = True
        i += 1

    if pending:
        steps.append("".join(current))
    elif not steps or text.endswith("."):
        raise ParseError(f"empty key segment in {text!r}")
    return steps


def _unescape(text: str) -> str:
    out: list[str] = []
    i = 0
    while i < len(text):
        if text[i] == "\\" and i + 1 < len(text):
            out.append(text[i + 1])
            i += 2
        else:
            out.append(text[i])
            i += 1
    return "".join(out)


def _scan_until(text: str, start: int, stops: str) -> int:
    """Index of the first unescaped stop character at or after ``start``."""
    i = start
    while i < len(text):
        if text[i] == "\\":
            i += 2
            continue
        if text[i] in stops:
            return i
        i += 1
    return len(text)


def _scan_key(text: str, start: int) -> int:
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
        elif char == "[":
            close = text.find("]", i)
            i = len(text) if close == -1 else close + 1
        elif char in "=,":
            return i
        else:
            i += 1
    return len(text)


def parse_assignments(text: str, channel: OverrideChannel = OverrideChannel.SET) -> list[Override]:
    """
    Parse a comma-separated list of assignments passed to one Helm flag.

    Raises:
        ParseError: If an assignment has no ``=`` or a JSON value is invalid.
    """
    channel = OverrideChannel(channel)
    overrides: list[Override] = []
    decoder = json.JSONDecoder()
    i = 0

    while i < len(text):
        key_end = _scan_key(text, i)
        if key_end >= len(text) or text[key_end] != "=":
            raise ParseError(f"missing '=' in assignment {text[i:key_end]!r}")
        path = text[i:key_end]
        split_key_path(path)
        start = key_end + 1

        if channel is OverrideChannel.SET_JSON:
            try:
                _, end = decoder.raw_decode(text, start)
            except json.JSONDecodeError as e:
                raise ParseError(f"invalid JSON value for {path}: {e}") from e
        elif text.startswith("{", start):
            end = _scan_until(text, start, "}") + 1
            if end > len(text):
                raise ParseError(f"unterminated list literal for {path}")
        else:
            end = _scan_until(text, start, ",")

        overrides.append(Override(channel, path, text[start:end]))
        if end < len(text):
            if text[end] != ",":
                raise ParseError(f"unexpected {text[end]!r} after value of {path}")
            end += 1
        i = end

    return overrides


def parse_cli_args(args: Sequence[str]) -> list[Override]:
    """Parse ``--set``/``--set-string``/``--set-json`` argument pairs.

    Both ``--set a=1`` and ``--set=a=1`` forms are accepted; other
    arguments are ignored.
    """
    flags = {c.value: c for c in OverrideChannel}
    overrides: list[Override] = []
    it = iter(args)
    for arg in it:
        flag, sep, inline = arg.partition("=")
        if flag not in flags:
            continue
        if sep:
            payload = inline
        else:
            payload = next(it, None)
            if payload is None:
                raise ParseError(f"{flag} expects an assignment")
        overrides.extend(parse_assignments(payload, flags[flag]))
    return overrides


def typed_value(text: str) -> Any:
    """Type a ``--set`` value the way Helm does."""
    lowered = text.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if lowered == "null":
        return None
    if _HELM_INT.fullmatch(text) and not (text[0] == "0" and len(text) > 1):
        number = int(text)
        if _in_int64(number):
            return number
    return text


def _split_list_literal(inner: str) -> list[str]:
    items: list[str] = []
    i = 0
    while i <= len(inner):
        end = _scan_until(inner, i, ",")
        items.append(inner[i:end])
        i = end + 1
    return items


def decode_value(override: Override) -> Any:
    """Decode the value of one override as the receiving side would."""
    raw = override.value
    if override.channel is OverrideChannel.SET_JSON:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid JSON value for {override.path}: {e}") from e

    as_string = override.channel is OverrideChannel.SET_STRING
    if raw.startswith("{") and raw.endswith("}"):
        inner = raw[1:-1]
        if not inner:
            return []
        items = [_unescape(item) for item in _split_list_literal(inner)]
        return items if as_string else [typed_value(item) for item in items]

    text = _unescape(raw)
    return text if as_string else typed_value(text)


def _container_for(step: PathStep) -> Any:
    return [] if isinstance(step, int) else {}


def _assign(root: dict, steps: list[PathStep], value: Any, path: str) -> None:
    if not isinstance(steps[0], str):
        raise ParseError(f"path must start with a key: {path!r}")

    node: Any = root
    for position, step in enumerate(steps):
        last = position == len(steps) - 1
        if isinstance(step, str):
            if not isinstance(node, dict):
                raise ParseError(f"key {step!r} applied to a list in {path!r}")
            if last:
                node[step] = value
                return
            child = node.get(step)
            wanted = _container_for(steps[position + 1])
            if not isinstance(child, type(wanted)):
                child = node[step] = wanted
            node = child
        else:
            if not isinstance(node, list):
                raise ParseError(f"index [{step}] applied to a mapping in {path!r}")
            if len(node) <= step:
                node.extend([None] * (step + 1 - len(node)))
            if last:
                node[step] = value
                return
            child = node[step]
            wanted = _container_for(steps[position + 1])
            if not isinstance(child, type(wanted)):
                child = node[step] = wanted
            node = child


def unflatten(overrides: Iterable[Override]) -> dict:
    """
    Rebuild a value tree from override assignments, applied in order.

    Gaps in lists are filled with None, as Helm does.
    """
    root: dict = {}
    for o in overrides:
        _assign(root, split_key_path(o.path), decode_value(o), o.path)
    return root
