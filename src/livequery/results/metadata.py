"""Read-only view of the build pipeline's query metadata.

The pipeline tracks three maps: page path to data file name, static query
hash to data file name (plus the component that declared it), and data file
name to the artifact id written under the output directory. A page or static
query whose data file name has no artifact id has never been run.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SharedQueryMetadata:
    """Where to find a static query's persisted result."""

    artifact_id: str | None
    source_path: str = ""


class MetadataIndex(Protocol):
    """Lookup interface consumed by the loader."""

    def page_artifact(self, path: str) -> str | None:
        """Return the artifact id for a page path, or None."""

    def shared_artifacts(self) -> dict[str, SharedQueryMetadata]:
        """Return metadata for every known static query, keyed by hash."""


@dataclass
class StaticQueryComponent:
    """A component that declares a static query."""

    hash: str
    json_name: str
    component_path: str = ""


@dataclass
class BuildStateMetadataIndex:
    """Metadata index backed by a snapshot of the pipeline state."""

    pages: dict[str, str] = field(default_factory=dict)
    static_queries: dict[str, StaticQueryComponent] = field(default_factory=dict)
    json_data_paths: dict[str, str] = field(default_factory=dict)

    def page_artifact(self, path: str) -> str | None:
        json_name = self.pages.get(path)
        if json_name is None:
            return None
        return self.json_data_paths.get(json_name)

    def shared_artifacts(self) -> dict[str, SharedQueryMetadata]:
        return {
            query_hash: SharedQueryMetadata(
                artifact_id=self.json_data_paths.get(component.json_name),
                source_path=component.component_path,
            )
            for query_hash, component in self.static_queries.items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BuildStateMetadataIndex":
        """Build from a snapshot dictionary.

        Pages may map to a plain json name or to ``{"jsonName": ...}``.
        Static query components are keyed by hash and carry ``jsonName`` and
        ``componentPath``.

        Args:
            data: Snapshot with ``pages``, ``staticQueryComponents`` and
                ``jsonDataPaths`` keys

        Returns:
            Metadata index
        """
        pages: dict[str, str] = {}
        for path, page in (data.get("pages") or {}).items():
            pages[path] = page["jsonName"] if isinstance(page, dict) else page

        static_queries = {}
        for query_hash, component in (data.get("staticQueryComponents") or {}).items():
            static_queries[query_hash] = StaticQueryComponent(
                hash=component.get("hash", query_hash),
                json_name=component["jsonName"],
                component_path=component.get("componentPath", ""),
            )

        return cls(
            pages=pages,
            static_queries=static_queries,
            json_data_paths=dict(data.get("jsonDataPaths") or {}),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> "BuildStateMetadataIndex":
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


class FileMetadataIndex:
    """Metadata index that re-reads its snapshot file whenever it changes."""

    def __init__(self, path: str | Path):
        """Initialize file-backed index.

        Args:
            path: Path to the JSON snapshot written by the pipeline
        """
        self.path = Path(path)
        self._mtime: float | None = None
        self._index = BuildStateMetadataIndex()

    def _current(self) -> BuildStateMetadataIndex:
        try:
            mtime = os.path.getmtime(self.path)
        except OSError:
            if self._mtime is not None:
                logger.warning(f"Metadata snapshot {self.path} disappeared")
                self._mtime = None
                self._index = BuildStateMetadataIndex()
            return self._index

        if mtime != self._mtime:
            try:
                self._index = BuildStateMetadataIndex.from_file(self.path)
                logger.debug(f"Reloaded metadata snapshot {self.path}")
            except (OSError, ValueError, KeyError, AttributeError) as e:
                logger.warning(f"Could not read metadata snapshot {self.path}: {e}")
            self._mtime = mtime
        return self._index

    def page_artifact(self, path: str) -> str | None:
        return self._current().page_artifact(path)

    def shared_artifacts(self) -> dict[str, SharedQueryMetadata]:
        return self._current().shared_artifacts()
