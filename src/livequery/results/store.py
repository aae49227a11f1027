"""In-memory store of page and static query results."""

import logging
from collections.abc import Mapping
from typing import Any

from livequery.results.models import ResultEntry

logger = logging.getLogger(__name__)


class ResultStore:
    """Two independent id-keyed maps of result entries.

    The store does no locking of its own; callers serialize mutations.
    """

    def __init__(self) -> None:
        self.page_results: dict[str, ResultEntry] = {}
        self.shared_results: dict[str, ResultEntry] = {}

    @staticmethod
    def _check(entry: ResultEntry) -> None:
        if not entry.id:
            raise ValueError("Result entry must have a non-empty id")

    def get_page(self, path: str) -> ResultEntry | None:
        return self.page_results.get(path)

    def set_page(self, entry: ResultEntry) -> None:
        """Store a page result, replacing any previous one for the path."""
        self._check(entry)
        self.page_results[entry.id] = entry

    def has_page(self, path: str) -> bool:
        return path in self.page_results

    def get_shared(self, query_id: str) -> ResultEntry | None:
        return self.shared_results.get(query_id)

    def set_shared(self, entry: ResultEntry) -> None:
        """Store a static query result, replacing any previous one."""
        self._check(entry)
        self.shared_results[entry.id] = entry

    def has_shared(self, query_id: str) -> bool:
        return query_id in self.shared_results

    def merge_shared(self, entries: Mapping[str, ResultEntry]) -> int:
        """Fold loaded static results in without overwriting existing keys.

        Args:
            entries: Mapping of static query hash to entry

        Returns:
            Number of entries actually added
        """
        merged = 0
        for key, entry in entries.items():
            if key != entry.id:
                raise ValueError(f"Key '{key}' does not match entry id '{entry.id}'")
            if key in self.shared_results:
                logger.debug(f"Keeping fresh static result for {key}")
                continue
            self.shared_results[key] = entry
            merged += 1
        return merged

    def page_snapshot(self) -> list[ResultEntry]:
        return list(self.page_results.values())

    def shared_snapshot(self) -> list[ResultEntry]:
        return list(self.shared_results.values())

    def shared_ids(self) -> set[str]:
        return set(self.shared_results)

    def stats(self) -> dict[str, Any]:
        """Get entry counts per map."""
        return {
            "page_results": len(self.page_results),
            "shared_results": len(self.shared_results),
        }
