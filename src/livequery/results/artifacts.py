"""Loader for query results persisted by the build pipeline."""

import json
import logging
from pathlib import Path
from typing import Any

import anyio
import anyio.to_thread

from livequery.api.exceptions import (
    ArtifactCorruptError,
    ArtifactNotFoundError,
    LiveQueryError,
    MetadataMissingError,
)
from livequery.results.metadata import MetadataIndex
from livequery.results.models import ResultEntry

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT_DIR = "public/static/d"


class ArtifactLoader:
    """Reads result artifacts from ``<project_root>/<output_dir>/<id>.json``."""

    def __init__(
        self,
        project_root: str | Path,
        output_dir: str = DEFAULT_OUTPUT_DIR,
        max_workers: int = 4,
    ):
        """Initialize loader.

        Args:
            project_root: Root directory of the project being developed
            output_dir: Artifact directory relative to the project root
            max_workers: Maximum concurrent reads in worker threads
        """
        self.project_root = Path(project_root)
        self.output_dir = output_dir
        self.max_workers = max_workers
        self._limiter: anyio.CapacityLimiter | None = None

    def artifact_path(self, artifact_id: str) -> Path:
        return self.project_root / self.output_dir / f"{artifact_id}.json"

    def load(self, artifact_id: str) -> Any:
        """Read and decode one artifact, blocking.

        Args:
            artifact_id: Artifact identifier

        Returns:
            The raw result value

        Raises:
            ArtifactNotFoundError: If the artifact file does not exist
            ArtifactCorruptError: If the content cannot be decoded as JSON
        """
        path = self.artifact_path(artifact_id)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ArtifactNotFoundError(artifact_id, path) from e
        except (UnicodeDecodeError, OSError) as e:
            raise ArtifactCorruptError(artifact_id, str(e)) from e

        try:
            return json.loads(content)
        except (ValueError, RecursionError) as e:
            raise ArtifactCorruptError(artifact_id, str(e)) from e

    async def load_async(self, artifact_id: str) -> Any:
        """Read an artifact in a worker thread without blocking the event loop."""
        if self._limiter is None:
            self._limiter = anyio.CapacityLimiter(self.max_workers)
        return await anyio.to_thread.run_sync(
            self.load, artifact_id, limiter=self._limiter
        )

    async def load_page_result(
        self, path: str, metadata: MetadataIndex
    ) -> ResultEntry | None:
        """Load the persisted result for a page.

        Args:
            path: Page path
            metadata: Metadata index to resolve the artifact id

        Returns:
            Result entry, or None if nothing could be loaded
        """
        try:
            artifact_id = metadata.page_artifact(path)
            if artifact_id is None:
                raise MetadataMissingError(path)
            result = await self.load_async(artifact_id)
        except LiveQueryError as e:
            logger.error(
                f"Error loading a result for the page query in \"{path}\": {e.detail}"
            )
            return None
        return ResultEntry(id=path, result=result)

    async def load_missing_shared_results(
        self, already_have: set[str], metadata: MetadataIndex
    ) -> dict[str, ResultEntry]:
        """Load static query results that were not pushed fresh.

        Failures for a single query are logged and skipped.

        Args:
            already_have: Query hashes that must not be read from disk
            metadata: Metadata index listing every static query

        Returns:
            Mapping of query hash to loaded entry
        """
        loaded: dict[str, ResultEntry] = {}

        async def load_one(query_hash: str, artifact_id: str | None, source: str) -> None:
            try:
                if artifact_id is None:
                    raise MetadataMissingError(query_hash)
                result = await self.load_async(artifact_id)
            except LiveQueryError as e:
                logger.warning(
                    f"Error loading a result for the static query in \"{source}\": {e.detail}"
                )
                return
            loaded[query_hash] = ResultEntry(id=query_hash, result=result)

        async with anyio.create_task_group() as tg:
            for query_hash, meta in metadata.shared_artifacts().items():
                if query_hash in already_have:
                    continue
                tg.start_soon(load_one, query_hash, meta.artifact_id, meta.source_path)

        logger.info(f"Loaded {len(loaded)} cached static query result(s)")
        return loaded
