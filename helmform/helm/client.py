"""Thin wrapper around the helm and kubectl command line tools."""

import json
import logging
import subprocess
import tempfile
from collections.abc import Iterator, Sequence
from pathlib import Path

from ..config import Config
from ..exceptions import HelmCommandError
from ..flattener import to_cli_args
from ..models import HelmRelease, Override, Revision
from ..schema_cache import SchemaCache

logger = logging.getLogger(__name__)

NETWORK_ERROR_MARKERS = ("timed out", "timeout", "network", "connection")


def _is_network_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in NETWORK_ERROR_MARKERS)


class HelmClient:
    """Client for the Helm operations the values editor depends on."""

    def __init__(self, config: Config):
        self.config = config
        self.helm_bin = config.helm_bin
        self.kubectl_bin = config.kubectl_bin
        self.namespace = config.namespace

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        """Run a command and raise HelmCommandError if it fails."""
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=False,
                env=self.config.command_env(),
                timeout=self.config.command_timeout,
            )
        except FileNotFoundError as e:
            raise HelmCommandError(cmd, f"executable not found: {cmd[0]}") from e
        except subprocess.TimeoutExpired as e:
            raise HelmCommandError(cmd, f"timed out after {e.timeout} seconds") from e

        if result.returncode != 0:
            logger.error(f"{cmd[0]} {cmd[1] if len(cmd) > 1 else ''} failed: {result.stderr.strip()}")
            raise HelmCommandError(cmd, result.stderr, result.returncode)
        return result

    def _run_helm(self, *args: str) -> subprocess.CompletedProcess:
        return self._run([self.helm_bin, *args])

    def _run_json(self, *args: str):
        result = self._run_helm(*args, "--output", "json")
        output = result.stdout.strip()
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            raise HelmCommandError([self.helm_bin, *args], f"unexpected output: {e}") from e

    def list_releases(self, all_namespaces: bool = True) -> list[HelmRelease]:
        """List installed releases."""
        scope = ["--all-namespaces"] if all_namespaces else ["--namespace", self.namespace]
        data = self._run_json("list", *scope) or []
        releases = [HelmRelease.from_helm(item) for item in data]
        logger.info(f"Found {len(releases)} Helm releases")
        return releases

    def get_values(self, release: str, namespace: str | None = None) -> dict:
        """Fetch the user-supplied values of a release."""
        data = self._run_json("get", "values", release, "--namespace", namespace or self.namespace)
        # helm prints null for a release installed without overrides
        return data if isinstance(data, dict) else {}

    def list_repos(self) -> list[str]:
        """Names of the configured chart repositories."""
        try:
            data = self._run_json("repo", "list")
        except HelmCommandError as e:
            # helm exits non-zero when no repositories are configured
            logger.debug(f"No chart repositories: {e}")
            return []
        return [item["name"] for item in data or [] if item.get("name")]

    def chart_in_repo(self, repo: str, name: str, version: str | None = None) -> bool:
        """Check whether ``repo`` serves chart ``name`` (at ``version``)."""
        args = ["search", "repo", f"{repo}/{name}"]
        if version:
            args.extend(["--version", version])
        data = self._run_json(*args) or []
        # search matches substrings, so bitnami/nginx also finds bitnami/nginx-ingress
        return any(item.get("name") == f"{repo}/{name}" for item in data)

    def pull_schema(self, chart_ref: str, version: str | None = None) -> str:
        """
        Pull a chart into a temporary directory and read its schema.

        Returns:
            The ``values.schema.json`` text, or ``"{}"`` when the chart
            ships none.

        Raises:
            HelmCommandError: If the chart cannot be pulled.
        """
        with tempfile.TemporaryDirectory(prefix="helmform-") as tmp:
            args = ["pull", chart_ref, "--untar", "--destination", tmp]
            if version:
                args.extend(["--version", version])
            self._run_helm(*args)

            schema_files = sorted(Path(tmp).glob("*/values.schema.json"))
            if not schema_files:
                logger.info(f"Chart {chart_ref} has no values schema")
                return "{}"
            text = schema_files[0].read_text()
        return text if text.strip() else "{}"

    def _candidate_refs(self, chart: str, version: str | None) -> Iterator[str]:
        """Chart references to pull, searching other repositories when needed."""
        if chart.startswith("oci://"):
            yield chart
            return

        repo, _, name = chart.rpartition("/")
        repos = self.list_repos()
        if repo in repos:
            yield chart
            return

        logger.info(f"Repository {repo or '<none>'} not configured, searching {len(repos)} others for {name}")
        for candidate in repos:
            try:
                found = self.chart_in_repo(candidate, name, version)
            except HelmCommandError as e:
                logger.debug(f"Search in {candidate} failed: {e}")
                continue
            if found:
                yield f"{candidate}/{name}"

    def get_schema_text(
        self,
        chart: str,
        version: str | None = None,
        cache: SchemaCache | None = None,
    ) -> str:
        """
        Fetch the raw ``values.schema.json`` of a chart.

        ``chart`` may be a local chart directory, an ``oci://`` reference or
        ``repo/name``. When the repository is not configured, every
        configured repository serving the chart is tried in turn. Pulled
        schemas are cached when a version is given.

        Returns:
            The schema text, or ``"{}"`` when the chart ships no schema or
            cannot be pulled, so callers fall back to inferring fields.
        """
        local = Path(chart)
        if local.is_dir():
            schema_file = local / "values.schema.json"
            return schema_file.read_text() if schema_file.is_file() else "{}"

        repo, _, name = chart.rpartition("/")
        if cache is not None and version:
            cached = cache.get(name, version, repo)
            if cached is not None:
                return cached

        for ref in self._candidate_refs(chart, version):
            try:
                text = self.pull_schema(ref, version)
            except HelmCommandError as e:
                if _is_network_error(str(e)):
                    logger.warning(f"Giving up on {chart} after a network error: {e}")
                    break
                logger.debug(f"Could not pull {ref}: {e}")
                continue
            if cache is not None and version:
                cache.store(name, version, repo, text, namespace=self.namespace)
            return text

        logger.warning(f"No schema found for {chart}, fields will be inferred from values")
        return "{}"

    def upgrade(
        self,
        release: str,
        chart: str,
        overrides: Sequence[Override],
        namespace: str | None = None,
        version: str | None = None,
        install: bool = True,
    ) -> str:
        """Run ``helm upgrade`` with the given override assignments."""
        args = ["upgrade"]
        if install:
            args.append("--install")
        args.extend([release, chart, "--namespace", namespace or self.namespace])
        if version:
            args.extend(["--version", version])
        args.extend(to_cli_args(overrides))

        logger.info(f"Upgrading {release} with {len(overrides)} overrides")
        return self._run_helm(*args).stdout

    def history(self, release: str, namespace: str | None = None) -> list[Revision]:
        """Fetch the revision history of a release, oldest first."""
        data = self._run_json("history", release, "--namespace", namespace or self.namespace) or []
        return [Revision.from_helm(item) for item in data]

    def rollback(self, release: str, revision: int, namespace: str | None = None) -> str:
        """Roll a release back to an earlier revision."""
        logger.info(f"Rolling back {release} to revision {revision}")
        return self._run_helm(
            "rollback", release, str(revision), "--namespace", namespace or self.namespace
        ).stdout

    def stream_logs(
        self,
        pod: str,
        namespace: str | None = None,
        container: str | None = None,
        follow: bool = False,
        tail: int | None = None,
    ) -> Iterator[str]:
        """Yield log lines of a pod as kubectl produces them."""
        cmd = [self.kubectl_bin, "logs", pod, "--namespace", namespace or self.namespace]
        if container:
            cmd.extend(["--container", container])
        if follow:
            cmd.append("--follow")
        if tail is not None:
            cmd.append(f"--tail={tail}")

        logger.debug(f"Streaming: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self.config.command_env(),
            )
        except FileNotFoundError as e:
            raise HelmCommandError(cmd, f"executable not found: {cmd[0]}") from e

        try:
            for line in process.stdout:
                yield line.rstrip("\n")
            stderr = process.stderr.read()
            if process.wait() != 0:
                raise HelmCommandError(cmd, stderr, process.returncode)
        finally:
            if process.poll() is None:
                process.terminate()
            process.stdout.close()
            process.stderr.close()

    def run_shell(self, command: str) -> subprocess.CompletedProcess:
        """Run an arbitrary shell command without raising on failure."""
        logger.debug(f"Running shell command: {command}")
        try:
            return subprocess.run(
                command,
                shell=True,
                capture_output=True,
                text=True,
                check=False,
                env=self.config.command_env(),
                timeout=self.config.command_timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise HelmCommandError([command], f"timed out after {e.timeout} seconds") from e
