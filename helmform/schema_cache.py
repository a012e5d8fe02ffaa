"""Cache of chart schemas in a JSON file."""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from .config import Config

logger = logging.getLogger(__name__)


@dataclass
class CachedSchema:
    """One cached ``values.schema.json``."""

    chart: str
    version: str
    repo: str
    schema: dict
    namespace: str | None = None
    created_at: str = ""


class SchemaCache:
    """Stores chart schemas keyed by chart name, version and repository."""

    def __init__(self, config: Config):
        self.path = config.schema_cache_path

    def _load_data(self) -> dict:
        """Load data from the JSON file."""
        if not self.path.exists():
            return {"schemas": []}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable schema cache {self.path}: {e}")
            return {"schemas": []}
        if not isinstance(data, dict) or not isinstance(data.get("schemas"), list):
            logger.warning(f"Ignoring malformed schema cache {self.path}")
            return {"schemas": []}
        return data

    def _save_data(self, data: dict) -> None:
        """Save data to the JSON file."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2))

    @staticmethod
    def _matches(entry: dict, chart: str, version: str | None, repo: str | None) -> bool:
        if entry.get("chart") != chart:
            return False
        if version is not None and entry.get("version") != version:
            return False
        return repo is None or entry.get("repo") == repo

    def get(self, chart: str, version: str, repo: str) -> str | None:
        """Return the cached schema text, or None on a cache miss."""
        for entry in self._load_data()["schemas"]:
            if self._matches(entry, chart, version, repo):
                logger.debug(f"Schema cache hit for {repo}/{chart} {version}")
                return json.dumps(entry["schema"])
        return None

    def store(
        self,
        chart: str,
        version: str,
        repo: str,
        schema_text: str,
        namespace: str | None = None,
    ) -> CachedSchema | None:
        """
        Cache a schema, replacing any entry with the same key.

        Returns:
            The stored entry, or None when the text is not a JSON object.
        """
        try:
            schema = json.loads(schema_text)
        except json.JSONDecodeError as e:
            logger.warning(f"Not caching invalid schema for {repo}/{chart}: {e}")
            return None
        if not isinstance(schema, dict):
            logger.warning(f"Not caching non-object schema for {repo}/{chart}")
            return None

        record = CachedSchema(
            chart=chart,
            version=version,
            repo=repo,
            schema=schema,
            namespace=namespace,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        data = self._load_data()
        data["schemas"] = [
            entry for entry in data["schemas"] if not self._matches(entry, chart, version, repo)
        ]
        data["schemas"].append(asdict(record))
        self._save_data(data)

        logger.info(f"Cached schema for {repo}/{chart} {version}")
        return record

    def list(self) -> list[CachedSchema]:
        """List cached schemas, newest first."""
        records = [
            CachedSchema(
                chart=entry.get("chart", ""),
                version=entry.get("version", ""),
                repo=entry.get("repo", ""),
                schema=entry.get("schema") or {},
                namespace=entry.get("namespace"),
                created_at=entry.get("created_at", ""),
            )
            for entry in self._load_data()["schemas"]
        ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def delete(self, chart: str, version: str | None = None, repo: str | None = None) -> int:
        """Delete the entries of a chart, optionally narrowed by version and repo."""
        data = self._load_data()
        kept = [entry for entry in data["schemas"] if not self._matches(entry, chart, version, repo)]
        removed = len(data["schemas"]) - len(kept)
        if removed:
            data["schemas"] = kept
            self._save_data(data)
        return removed

    def clear(self) -> int:
        """Delete every cached schema and return how many there were."""
        removed = len(self._load_data()["schemas"])
        self._save_data({"schemas": []})
        logger.info(f"Cleared {removed} cached schemas")
        return removed
