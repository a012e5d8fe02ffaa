"""Configuration management via environment variables."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_SCHEMA_CACHE = Path.home() / ".cache" / "helmform" / "schemas.json"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Application configuration loaded from environment variables."""

    # Binaries
    helm_bin: str = "helm"
    kubectl_bin: str = "kubectl"

    # Cluster settings
    namespace: str = "default"
    kubeconfig: Path | None = None

    # Seconds before a helm/kubectl call is abandoned; None waits forever
    command_timeout: int | None = None

    # Schema cache
    schema_cache_path: Path = DEFAULT_SCHEMA_CACHE

    log_level: str = "INFO"

    @property
    def logging_level(self) -> int:
        return getattr(logging, self.log_level)

    def command_env(self) -> dict[str, str] | None:
        """Environment for subprocesses, or None to inherit ours."""
        if not self.kubeconfig:
            return None
        env = os.environ.copy()
        env["KUBECONFIG"] = str(self.kubeconfig)
        return env

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        load_dotenv()

        timeout_str = os.getenv("HELMFORM_COMMAND_TIMEOUT")
        timeout = None
        if timeout_str:
            try:
                timeout = int(timeout_str)
            except ValueError:
                raise ValueError(f"HELMFORM_COMMAND_TIMEOUT must be an integer, got {timeout_str!r}")
            if timeout <= 0:
                raise ValueError("HELMFORM_COMMAND_TIMEOUT must be positive")

        log_level = os.getenv("HELMFORM_LOG_LEVEL", "INFO").upper()
        if log_level not in LOG_LEVELS:
            raise ValueError(f"HELMFORM_LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}")

        kubeconfig = os.getenv("KUBECONFIG")

        return cls(
            helm_bin=os.getenv("HELM_BIN", "helm"),
            kubectl_bin=os.getenv("KUBECTL_BIN", "kubectl"),
            namespace=os.getenv("HELMFORM_NAMESPACE", "default"),
            kubeconfig=Path(kubeconfig) if kubeconfig else None,
            command_timeout=timeout,
            schema_cache_path=Path(os.getenv("HELMFORM_SCHEMA_CACHE", str(DEFAULT_SCHEMA_CACHE))),
            log_level=log_level,
        )
