"""Task request/response schemas.

TaskResponse and TaskLogResponse read straight from the ORM rows
(from_attributes). Slot passwords are never stored, so never exposed.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# =============================================================================
# Requests
# =============================================================================


class CreateTaskRequest(BaseModel):
    """Request body for POST /api/v1/tasks.

    Attributes:
        invite_link: http(s) invite URL shared by every slot in the batch.
        quantity: Number of accounts to create. Upper bound is enforced by
            TaskService from TASK_MAX_QUANTITY.
    """

    model_config = ConfigDict(extra="forbid")

    invite_link: str = Field(..., min_length=1, max_length=500)
    quantity: int = Field(..., ge=1)


# =============================================================================
# Responses
# =============================================================================


class TaskCreatedResponse(BaseModel):
    """Response for POST /api/v1/tasks."""

    model_config = ConfigDict(extra="forbid")

    task_id: uuid.UUID
    quantity_requested: int
    status: str


class TaskResponse(BaseModel):
    """Task summary.

    Attributes:
        credits_used: Credits currently charged (reservation while pending
            or processing, attempted slots once settled).
    """

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: uuid.UUID
    invite_link: str
    quantity_requested: int
    quantity_completed: int
    quantity_failed: int
    status: str
    credits_used: int
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class TaskLogResponse(BaseModel):
    """Per-slot outcome."""

    model_config = ConfigDict(extra="forbid", from_attributes=True)

    id: uuid.UUID
    account_number: int
    email: str | None = None
    status: str
    attempts: int
    error_message: str | None = None
    project_id: str | None = None
    project_url: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime


class TaskProgressResponse(BaseModel):
    """Response for GET /api/v1/tasks/{task_id}/progress.

    Attributes:
        progress_percent: round((completed + failed) / requested * 100).
    """

    model_config = ConfigDict(extra="forbid")

    status: str
    quantity_requested: int
    completed_count: int
    failed_count: int
    progress_percent: int
    logs: list[TaskLogResponse]
