"""Schema loading, shape inference and value normalization."""

from .inference import infer_schema_document, infer_shape
from .loader import load_schema
from .normalizer import coerce_input, format_for_input, normalize

__all__ = [
    "coerce_input",
    "format_for_input",
    "infer_schema_document",
    "infer_shape",
    "load_schema",
    "normalize",
]
