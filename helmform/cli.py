"""CLI entrypoint for helmform."""

import json
import logging
from pathlib import Path

import typer
import yaml

from . import __version__
from .config import Config
from .exceptions import HelmformError
from .flattener import flatten, render_assignments, split_key_path, to_cli_args
from .helm.client import HelmClient
from .models import FieldKind, SchemaNode
from .schema.inference import infer_schema_document
from .schema.loader import load_schema
from .schema_cache import SchemaCache
from .session import EditSession

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="helmform",
    help="Schema-driven editing of Helm release values",
)
cache_app = typer.Typer(help="Manage cached chart schemas")
app.add_typer(cache_app, name="cache")


def _load_config() -> Config:
    """Load configuration and set up logging, exiting on invalid settings."""
    try:
        config = Config.from_env()
    except ValueError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(1)

    logging.basicConfig(
        level=config.logging_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    return config


def _read_values_file(path: Path) -> dict:
    """Read a YAML or JSON values file into a mapping."""
    try:
        data = yaml.safe_load(path.read_text())
    except (OSError, yaml.YAMLError) as e:
        typer.echo(f"❌ Cannot read {path}: {e}", err=True)
        raise typer.Exit(1)
    if data is None:
        return {}
    if not isinstance(data, dict):
        typer.echo(f"❌ {path} must contain a mapping of values", err=True)
        raise typer.Exit(1)
    return data


def _describe(node: SchemaNode, name: str, depth: int = 0) -> list[str]:
    """Render a schema node and its descendants as indented lines."""
    indent = "  " * depth
    label = node.kind.value
    if node.kind is FieldKind.ARRAY:
        label = f"array<{node.item_shape.kind.value}>"
    if node.choices:
        label += f" [{' | '.join(node.choices)}]"
    if node.default is not None and not node.kind.is_container:
        label += f" = {json.dumps(node.default)}"

    lines = [f"{indent}{name}: {label}"]
    if node.description:
        lines.append(f"{indent}  # {node.description}")
    if node.kind is FieldKind.OBJECT:
        for key, child in node.children.items():
            lines.extend(_describe(child, key, depth + 1))
    elif node.kind is FieldKind.ARRAY and node.item_shape.kind is FieldKind.OBJECT:
        for key, child in node.item_shape.children.items():
            lines.extend(_describe(child, key, depth + 1))
    return lines


@app.command()
def releases(
    namespace: str = typer.Option(
        None,
        "--namespace",
        "-n",
        help="Only list releases in this namespace",
    ),
) -> None:
    """List installed Helm releases."""
    config = _load_config()
    if namespace:
        config.namespace = namespace
    client = HelmClient(config)

    try:
        found = client.list_releases(all_namespaces=namespace is None)
    except HelmformError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    if not found:
        typer.echo("No releases found")
        return

    typer.echo(f"{'Name':<30} {'Namespace':<20} {'Chart':<35} {'Rev':<5} {'Status':<12}")
    typer.echo("=" * 105)
    for r in sorted(found, key=lambda x: (x.namespace, x.name)):
        typer.echo(f"{r.name:<30} {r.namespace:<20} {r.chart_ref:<35} {r.revision:<5} {r.status:<12}")


@app.command()
def schema(
    chart: str = typer.Argument(..., help="Chart reference, e.g. bitnami/nginx"),
    version: str = typer.Option(None, "--version", help="Chart version"),
    schema_file: Path = typer.Option(
        None,
        "--schema-file",
        "-f",
        help="Read the schema from a local values.schema.json instead of helm",
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore and do not update the schema cache"),
) -> None:
    """Show the editable fields a chart's values schema declares."""
    config = _load_config()

    try:
        if schema_file:
            text = schema_file.read_text()
        else:
            cache = None if no_cache else SchemaCache(config)
            text = HelmClient(config).get_schema_text(chart, version, cache=cache)
        document = load_schema(text)
    except (OSError, HelmformError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    if document.is_empty:
        typer.echo(f"⚠️  {chart} does not declare a values schema")
    else:
        for key, child in document.root.children.items():
            typer.echo("\n".join(_describe(child, key)))

    for item in document.unsupported:
        typer.echo(f"⚠️  {item.path}: {item.message} ({item.declared_type!r})")


@app.command()
def infer(
    values_file: Path = typer.Argument(..., help="YAML or JSON values file"),
) -> None:
    """Generate a JSON schema from an existing values file."""
    values = _read_values_file(values_file)
    typer.echo(json.dumps(infer_schema_document(values), indent=2))


@app.command("flatten")
def flatten_command(
    values_file: Path = typer.Argument(..., help="YAML or JSON values file"),
    as_args: bool = typer.Option(
        False,
        "--args",
        help="Print one flag/assignment pair per line instead of assignments",
    ),
) -> None:
    """Convert a values file into helm override assignments."""
    values = _read_values_file(values_file)

    try:
        overrides = flatten(values)
    except HelmformError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    if as_args:
        args = to_cli_args(overrides)
        for flag, assignment in zip(args[::2], args[1::2]):
            typer.echo(f"{flag} {assignment}")
    else:
        for o in overrides:
            typer.echo(o.assignment)


@app.command()
def upgrade(
    release: str = typer.Argument(..., help="Release name"),
    chart: str = typer.Argument(..., help="Chart reference to upgrade to"),
    namespace: str = typer.Option(None, "--namespace", "-n", help="Release namespace"),
    version: str = typer.Option(None, "--version", help="Chart version"),
    schema_file: Path = typer.Option(
        None,
        "--schema-file",
        "-f",
        help="Read the schema from a local values.schema.json instead of helm",
    ),
    fields: list[str] = typer.Option(
        [],
        "--field",
        "-s",
        help="Field edit as path=value, e.g. image.tag=1.2.3 or tolerations[0].key=a",
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Print the overrides without running helm upgrade",
    ),
    no_cache: bool = typer.Option(False, "--no-cache", help="Ignore and do not update the schema cache"),
) -> None:
    """Edit a release's values field by field and upgrade it."""
    config = _load_config()
    namespace = namespace or config.namespace
    client = HelmClient(config)

    try:
        if schema_file:
            schema_text = schema_file.read_text()
        else:
            cache = None if no_cache else SchemaCache(config)
            schema_text = client.get_schema_text(chart, version, cache=cache)
        current = client.get_values(release, namespace)
        session = EditSession.open(release, chart, schema_text, current, namespace=namespace)

        for edit in fields:
            path_text, sep, text = edit.partition("=")
            if not sep:
                raise ValueError(f"field edit {edit!r} must look like path=value")
            session.commit_text(split_key_path(path_text), text)

        overrides = session.overrides()
    except (OSError, ValueError, HelmformError) as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    if session.inferred:
        typer.echo(f"ℹ️  {chart} has no values schema; fields were inferred from current values")
    for item in session.unsupported:
        typer.echo(f"⚠️  {item.path}: {item.message}")

    typer.echo(f"📝 {len(overrides)} overrides for {release}:")
    typer.echo(f"   {render_assignments(overrides)}")

    if dry_run:
        typer.echo("\n🏃 Dry run mode - no changes made")
        return

    typer.echo(f"\n🚀 Upgrading {release}...")
    try:
        output = session.apply(client, version=version)
    except HelmformError as e:
        typer.echo(f"❌ Upgrade failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(output)
    typer.echo(f"✅ Successfully upgraded release: {release}")


@app.command()
def history(
    release: str = typer.Argument(..., help="Release name"),
    namespace: str = typer.Option(None, "--namespace", "-n", help="Release namespace"),
) -> None:
    """Show the revision history of a release."""
    config = _load_config()
    client = HelmClient(config)

    try:
        revisions = client.history(release, namespace)
    except HelmformError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"{'Rev':<5} {'Status':<12} {'Chart':<35} {'Description'}")
    typer.echo("=" * 80)
    for rev in revisions:
        marker = "✅" if rev.is_deployed else "  "
        typer.echo(f"{rev.revision:<5} {rev.status:<12} {rev.chart:<35} {marker} {rev.description}")


@app.command()
def rollback(
    release: str = typer.Argument(..., help="Release name"),
    revision: int = typer.Argument(..., help="Revision to roll back to"),
    namespace: str = typer.Option(None, "--namespace", "-n", help="Release namespace"),
) -> None:
    """Roll a release back to an earlier revision."""
    config = _load_config()
    client = HelmClient(config)

    try:
        client.rollback(release, revision, namespace)
    except HelmformError as e:
        typer.echo(f"❌ Rollback failed: {e}", err=True)
        raise typer.Exit(1)

    typer.echo(f"✅ Successfully rolled back {release} to revision {revision}")


@app.command()
def logs(
    pod: str = typer.Argument(..., help="Pod name"),
    namespace: str = typer.Option(None, "--namespace", "-n", help="Pod namespace"),
    container: str = typer.Option(None, "--container", "-c", help="Container name"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Keep streaming new lines"),
    tail: int = typer.Option(None, "--tail", help="Only show the last N lines"),
) -> None:
    """Stream the logs of a pod."""
    config = _load_config()
    client = HelmClient(config)

    try:
        for line in client.stream_logs(pod, namespace, container=container, follow=follow, tail=tail):
            typer.echo(line)
    except HelmformError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(1)


@cache_app.command("list")
def cache_list() -> None:
    """List cached chart schemas, newest first."""
    config = _load_config()
    entries = SchemaCache(config).list()

    if not entries:
        typer.echo("No cached schemas")
        return

    typer.echo(f"{'Chart':<40} {'Version':<15} {'Fields':<8} {'Cached at'}")
    typer.echo("=" * 90)
    for entry in entries:
        ref = f"{entry.repo}/{entry.chart}" if entry.repo else entry.chart
        fields = len(entry.schema.get("properties") or {})
        typer.echo(f"{ref:<40} {entry.version:<15} {fields:<8} {entry.created_at}")


@cache_app.command("delete")
def cache_delete(
    chart: str = typer.Argument(..., help="Chart name, e.g. nginx"),
    version: str = typer.Option(None, "--version", help="Only delete this chart version"),
    repo: str = typer.Option(None, "--repo", help="Only delete entries from this repository"),
) -> None:
    """Delete the cached schemas of a chart."""
    config = _load_config()
    removed = SchemaCache(config).delete(chart, version, repo)

    if not removed:
        typer.echo(f"⚠️  No cached schema for {chart}")
        raise typer.Exit(1)
    typer.echo(f"🗑️  Deleted {removed} cached schemas for {chart}")


@cache_app.command("clear")
def cache_clear() -> None:
    """Delete every cached schema."""
    config = _load_config()
    removed = SchemaCache(config).clear()
    typer.echo(f"🗑️  Cleared {removed} cached schemas")


@app.command()
def version() -> None:
    """Show helmform version."""
    typer.echo(f"helmform v{__version__}")
    typer.echo("Schema-driven editing of Helm release values")


def main() -> None:
    """Main entrypoint."""
    app()


if __name__ == "__main__":
    main()
