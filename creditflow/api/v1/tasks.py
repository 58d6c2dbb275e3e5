"""Tasks API router.

Create (reserve credits), list, inspect, follow progress and cancel
account-creation tasks. Processing happens in the background TaskWorker;
these endpoints only read and write rows.
"""

import uuid
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Request

from creditflow.api.deps import CurrentUserId, DbSession
from creditflow.core.config import settings
from creditflow.core.pagination import PaginationParams, pagination_params
from creditflow.core.rate_limiting import limiter
from creditflow.core.responses import DataResponse, ListResponse, PaginationMeta
from creditflow.schemas.task import (
    CreateTaskRequest,
    TaskCreatedResponse,
    TaskLogResponse,
    TaskProgressResponse,
    TaskResponse,
)
from creditflow.services.task_service import TaskService

router = APIRouter()

# =============================================================================
# Shared types
# =============================================================================

Pagination = Annotated[PaginationParams, Depends(pagination_params)]

StatusFilter = Annotated[
    Literal["pending", "processing", "completed", "failed", "cancelled"] | None,
    Query(description="Filter by task status"),
]


# =============================================================================
# POST /
# =============================================================================


@router.post("", status_code=201)
@limiter.limit(lambda: settings.rate_limit_task_create)
async def create_task(
    request: Request,  # noqa: ARG001 - required by @limiter.limit()
    body: CreateTaskRequest,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[TaskCreatedResponse]:
    """Reserve `quantity` credits and queue a task.

    Returns 412 PRECONDITION_FAILED when the balance cannot cover it.
    """
    task = await TaskService(db).create_task(
        user_id, invite_link=body.invite_link, quantity=body.quantity
    )
    return DataResponse(
        data=TaskCreatedResponse(
            task_id=task.id,
            quantity_requested=task.quantity_requested,
            status=task.status,
        )
    )


# =============================================================================
# GET /
# =============================================================================


@router.get("")
async def list_tasks(
    user_id: CurrentUserId,
    db: DbSession,
    pagination: Pagination,
    status: StatusFilter = None,
) -> ListResponse[TaskResponse]:
    """List the user's tasks, newest first."""
    tasks, total = await TaskService(db).list_tasks(
        user_id, offset=pagination.offset, limit=pagination.limit, status=status
    )
    return ListResponse(
        data=[TaskResponse.model_validate(t) for t in tasks],
        meta=PaginationMeta(
            total=total, page=pagination.page, per_page=pagination.per_page
        ),
    )


# =============================================================================
# GET /{task_id}
# =============================================================================


@router.get("/{task_id}")
async def get_task(
    task_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[TaskResponse]:
    task = await TaskService(db).get_task(user_id, task_id)
    return DataResponse(data=TaskResponse.model_validate(task))


@router.get("/{task_id}/progress")
async def get_task_progress(
    task_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[TaskProgressResponse]:
    """Status, settled counts and per-slot logs for polling clients."""
    progress = await TaskService(db).get_progress(user_id, task_id)
    return DataResponse(
        data=TaskProgressResponse(
            status=progress.status,
            quantity_requested=progress.quantity_requested,
            completed_count=progress.completed_count,
            failed_count=progress.failed_count,
            progress_percent=progress.progress_percent,
            logs=[TaskLogResponse.model_validate(log) for log in progress.logs],
        )
    )


@router.get("/{task_id}/logs")
async def list_task_logs(
    task_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[list[TaskLogResponse]]:
    logs = await TaskService(db).list_logs(user_id, task_id)
    return DataResponse(data=[TaskLogResponse.model_validate(log) for log in logs])


# =============================================================================
# POST /{task_id}/cancel
# =============================================================================


@router.post("/{task_id}/cancel")
async def cancel_task(
    task_id: uuid.UUID,
    user_id: CurrentUserId,
    db: DbSession,
) -> DataResponse[TaskResponse]:
    """Cancel a pending task and refund its reservation.

    Returns 422 INVALID_STATE_TRANSITION once a worker has claimed it.
    """
    task = await TaskService(db).cancel_task(user_id, task_id)
    return DataResponse(data=TaskResponse.model_validate(task))
