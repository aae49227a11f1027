"""Results API router.

Lets a build pipeline running in another process publish fresh results and
inspect what the server currently holds.
"""

import logging
import typing as t
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from livequery.api.exceptions import NotInitializedError, ResultNotFoundError
from livequery.manager import LiveQueryManager
from livequery.results.models import ResultEntry

router = APIRouter()

logger = logging.getLogger(__name__)


class ResultPayload(BaseModel):  # type: ignore[no-any-unimported]
    """A query result pushed by the pipeline."""

    id: str = Field(min_length=1)
    result: Any = None


class PublishResponse(BaseModel):  # type: ignore[no-any-unimported]
    """Acknowledgement of a published result."""

    id: str
    delivered: bool


class SubscriptionsResponse(BaseModel):  # type: ignore[no-any-unimported]
    """Current subscription state."""

    active_paths: list[str]
    connections: int


def get_manager(request: Request) -> LiveQueryManager:
    """Return the live query manager attached to the application."""
    return t.cast(LiveQueryManager, request.app.state.live_manager)


@router.post("/results/page", response_model=PublishResponse)
async def publish_page_result(
    payload: ResultPayload, manager: LiveQueryManager = Depends(get_manager)
) -> PublishResponse:
    """Store and deliver a page query result."""
    await manager.publish_page_result(ResultEntry(id=payload.id, result=payload.result))
    logger.info(f"Published page result for {payload.id}")
    return PublishResponse(
        id=payload.id, delivered=manager.current_transport() is not None
    )


@router.post("/results/static", response_model=PublishResponse)
async def publish_static_result(
    payload: ResultPayload, manager: LiveQueryManager = Depends(get_manager)
) -> PublishResponse:
    """Store and deliver a static query result."""
    await manager.publish_shared_result(
        ResultEntry(id=payload.id, result=payload.result)
    )
    logger.info(f"Published static query result for {payload.id}")
    return PublishResponse(
        id=payload.id, delivered=manager.current_transport() is not None
    )


@router.get("/results/page", response_model=ResultPayload)
async def get_page_result(
    path: str = Query(..., min_length=1),
    manager: LiveQueryManager = Depends(get_manager),
) -> ResultPayload:
    """Get the stored result for a page path."""
    entry = manager.store.get_page(path)
    if entry is None:
        raise ResultNotFoundError("page", path)
    return ResultPayload(id=entry.id, result=entry.result)


@router.get("/results/static/{query_id}", response_model=ResultPayload)
async def get_static_result(
    query_id: str, manager: LiveQueryManager = Depends(get_manager)
) -> ResultPayload:
    """Get the stored result for a static query hash."""
    entry = manager.store.get_shared(query_id)
    if entry is None:
        raise ResultNotFoundError("static query", query_id)
    return ResultPayload(id=entry.id, result=entry.result)


@router.get("/subscriptions", response_model=SubscriptionsResponse)
async def get_subscriptions(
    manager: LiveQueryManager = Depends(get_manager),
) -> SubscriptionsResponse:
    """List page paths with at least one subscriber."""
    transport = manager.current_transport()
    if transport is None:
        raise NotInitializedError()
    return SubscriptionsResponse(
        active_paths=sorted(manager.active_paths),
        connections=transport.get_connection_count(),
    )
