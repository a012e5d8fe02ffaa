"""Access to releases through the helm and kubectl CLIs."""

from .client import HelmClient

__all__ = ["HelmClient"]
