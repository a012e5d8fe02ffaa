"""Schema-driven editing of Helm release values."""

__version__ = "0.1.0"
