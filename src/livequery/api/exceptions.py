"""Error classes for result lookups and the HTTP API."""

from typing import Any


class LiveQueryError(Exception):
    """Base error for result loading failures."""

    def __init__(self, key: str, detail: str):
        """Initialize error.

        Args:
            key: Page path, static query hash or artifact id that failed
            detail: Error detail message
        """
        self.key = key
        self.detail = detail
        super().__init__(detail)


class MetadataMissingError(LiveQueryError):
    """No metadata entry (or no artifact id) for a page path or query hash."""

    def __init__(self, key: str):
        super().__init__(
            key,
            f"No metadata for '{key}'. Query was not run and no cached result was found.",
        )


class ArtifactNotFoundError(LiveQueryError):
    """Persisted result artifact does not exist."""

    def __init__(self, artifact_id: str, path: Any = None):
        self.path = path
        super().__init__(artifact_id, f"Result artifact '{artifact_id}' not found at {path}")


class ArtifactCorruptError(LiveQueryError):
    """Persisted result artifact could not be decoded."""

    def __init__(self, artifact_id: str, reason: str):
        super().__init__(artifact_id, f"Result artifact '{artifact_id}' is corrupt: {reason}")


class APIError(Exception):
    """Base API error class."""

    def __init__(
        self, status_code: int, detail: str, headers: dict[str, Any] | None = None
    ):
        """Initialize API error.

        Args:
            status_code: HTTP status code
            detail: Error detail message
            headers: Optional response headers
        """
        self.status_code = status_code
        self.detail = detail
        self.headers = headers
        super().__init__(detail)


class ResultNotFoundError(APIError):
    """No stored result for the requested id."""

    def __init__(self, kind: str, key: str):
        super().__init__(status_code=404, detail=f"No {kind} result for '{key}'")


class NotInitializedError(APIError):
    """Live push is not available yet."""

    def __init__(self) -> None:
        super().__init__(status_code=503, detail="Live query manager is not initialized")
