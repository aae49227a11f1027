"""Live query manager: keeps query results and pushes them to clients."""

import asyncio
import logging
from enum import Enum
from pathlib import Path
from typing import Any

from livequery.api.subscriptions import SubscriptionRegistry
from livequery.api.websocket_manager import WebSocketManager, room_name
from livequery.results.artifacts import DEFAULT_OUTPUT_DIR, ArtifactLoader
from livequery.results.metadata import MetadataIndex
from livequery.results.models import ResultEntry, page_message, static_message
from livequery.results.store import ResultStore

logger = logging.getLogger(__name__)


class PageDelivery(Enum):
    """Who receives a freshly published page result."""

    BROADCAST = "broadcast"
    ROOM = "room"


class LiveQueryManager:
    """Context object tying the result store, loader and transport together.

    All store and registry mutations happen under one lock. Artifact reads
    and socket sends happen outside it.
    """

    def __init__(
        self,
        metadata: MetadataIndex,
        output_dir: str = DEFAULT_OUTPUT_DIR,
        loader_workers: int = 4,
        page_delivery: PageDelivery | str = PageDelivery.BROADCAST,
    ):
        """Initialize manager.

        Args:
            metadata: Read-only lookup of artifact ids
            output_dir: Artifact directory relative to the project root
            loader_workers: Maximum concurrent artifact reads
            page_delivery: Send fresh page results to everyone or to the path's room
        """
        self.metadata = metadata
        self.output_dir = output_dir
        self.loader_workers = loader_workers
        self.page_delivery = PageDelivery(page_delivery)
        self.store = ResultStore()
        self.loader: ArtifactLoader | None = None
        self.registry: SubscriptionRegistry | None = None
        self.project_root: Path | None = None
        self.is_initialized = False
        self._transport: WebSocketManager | None = None
        self._lock = asyncio.Lock()
        self._pending: dict[str, asyncio.Task[ResultEntry | None]] = {}
        self._watched: list[WebSocketManager] = []

    async def initialize(
        self, transport: WebSocketManager, project_root: str | Path
    ) -> None:
        """Wire the transport and fold in cached static query results.

        Args:
            transport: Connection manager used for delivery
            project_root: Root directory of the project being developed
        """
        if self.is_initialized:
            raise RuntimeError("Live query manager is already initialized")

        self.project_root = Path(project_root)
        self.loader = ArtifactLoader(
            self.project_root, output_dir=self.output_dir, max_workers=self.loader_workers
        )

        cached = await self.loader.load_missing_shared_results(
            self.store.shared_ids(), self.metadata
        )

        async with self._lock:
            merged = self.store.merge_shared(cached)
            self._transport = transport
            self.registry = SubscriptionRegistry(transport)
            if not any(t is transport for t in self._watched):
                transport.on_disconnect(self._forget_client)
                self._watched.append(transport)
            self.is_initialized = True

        logger.info(
            f"Live query manager initialized for {self.project_root} "
            f"({merged} cached static result(s))"
        )

    async def shutdown(self) -> None:
        """Close every connection and stop pending loads."""
        transport = self._transport
        async with self._lock:
            self.is_initialized = False
            self._transport = None
            pending = list(self._pending.values())
            self._pending.clear()

        for task in pending:
            task.cancel()
        if transport is not None:
            await transport.close_all()
        logger.info("Live query manager shut down")

    def current_transport(self) -> WebSocketManager | None:
        """Return the transport once initialized, otherwise None."""
        return self._transport if self.is_initialized else None

    @property
    def active_paths(self) -> set[str]:
        return set(self.registry.active_paths) if self.registry else set()

    async def publish_page_result(self, entry: ResultEntry) -> None:
        """Store a freshly computed page result and deliver it."""
        async with self._lock:
            self.store.set_page(entry)
            transport = self.current_transport()

        if transport is None:
            return
        if self.page_delivery is PageDelivery.ROOM:
            await transport.broadcast_to_room(room_name(entry.id), page_message(entry))
        else:
            await transport.broadcast_to_all(page_message(entry))

    async def publish_shared_result(self, entry: ResultEntry) -> None:
        """Store a freshly computed static query result and deliver it to everyone."""
        async with self._lock:
            self.store.set_shared(entry)
            transport = self.current_transport()

        if transport is not None:
            await transport.broadcast_to_all(static_message(entry))

    async def replay(self, client_id: str) -> int:
        """Send every known result to one newly connected client.

        Args:
            client_id: Client to replay to

        Returns:
            Number of messages sent
        """
        transport = self._require_transport()
        async with self._lock:
            shared = self.store.shared_snapshot()
            pages = self.store.page_snapshot()

        for entry in shared:
            await transport.send_to_client(client_id, static_message(entry))
        for entry in pages:
            await transport.send_to_client(client_id, page_message(entry))
        return len(shared) + len(pages)

    async def register_path(self, client_id: str, path: str) -> ResultEntry:
        """Subscribe a client to a path and send it the page result.

        A missing result is read from its artifact at most once, no matter
        how many clients register concurrently.

        Args:
            client_id: Registering client
            path: Page path

        Returns:
            Entry sent to the client; ``result`` is None if nothing is known
        """
        transport = self._require_transport()
        registry = self._require_registry()

        async with self._lock:
            registry.join(client_id, path)
            entry = self.store.get_page(path)
            task = None
            if entry is None:
                task = self._pending.get(path)
                if task is None:
                    task = asyncio.create_task(self._fill_page(path))
                    task.add_done_callback(lambda done: self._clear_pending(path, done))
                    self._pending[path] = task

        if task is not None:
            entry = await asyncio.shield(task)

        response = entry if entry is not None else ResultEntry(id=path, result=None)
        await transport.send_to_client(client_id, page_message(response))
        return response

    async def _fill_page(self, path: str) -> ResultEntry | None:
        if self.loader is None:
            raise RuntimeError("Live query manager is not initialized")
        loaded = await self.loader.load_page_result(path, self.metadata)
        async with self._lock:
            if loaded is not None and not self.store.has_page(path):
                self.store.set_page(loaded)
            return self.store.get_page(path)

    async def unregister_path(self, client_id: str, path: str) -> None:
        """Remove a client's interest in a path."""
        self._require_transport()
        registry = self._require_registry()
        async with self._lock:
            registry.leave(client_id, path)

    async def disconnect(self, client_id: str) -> list[str]:
        """Clean up after a client that went away.

        Returns:
            Paths the client was registered on
        """
        paths = await self._forget_client(client_id)
        transport = self.current_transport()
        if transport is not None:
            await transport.disconnect(client_id, close=False)
        return paths

    async def _forget_client(self, client_id: str) -> list[str]:
        async with self._lock:
            if self.registry is None:
                return []
            return self.registry.disconnect_all(client_id)

    def _clear_pending(self, path: str, task: asyncio.Task) -> None:
        if self._pending.get(path) is task:
            del self._pending[path]

    def _require_transport(self) -> WebSocketManager:
        transport = self.current_transport()
        if transport is None:
            raise RuntimeError("Live query manager is not initialized")
        return transport

    def _require_registry(self) -> SubscriptionRegistry:
        if self.registry is None or self.loader is None:
            raise RuntimeError("Live query manager is not initialized")
        return self.registry

    def stats(self) -> dict[str, Any]:
        """Get a summary of stored results and subscriptions."""
        transport = self.current_transport()
        return {
            "initialized": self.is_initialized,
            "connections": transport.get_connection_count() if transport else 0,
            "active_paths": sorted(self.active_paths),
            **self.store.stats(),
        }
