"""Tests for the tasks endpoints."""

import uuid

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from creditflow.repositories.task_repository import TaskRepository

_INVITE = "https://app.example.com/invite/abc123"


async def _create(client: AsyncClient, quantity: int = 3) -> dict:
    response = await client.post(
        "/api/v1/tasks", json={"invite_link": _INVITE, "quantity": quantity}
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


async def _available(client: AsyncClient) -> int:
    response = await client.get("/api/v1/credits/balance")
    return response.json()["data"]["available_credits"]


class TestCreateTask:
    async def test_reserves_credits(self, client: AsyncClient) -> None:
        data = await _create(client, quantity=4)

        assert data["status"] == "pending"
        assert data["quantity_requested"] == 4
        assert await _available(client) == 6

    async def test_insufficient_credits_is_412(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/tasks", json={"invite_link": _INVITE, "quantity": 11}
        )

        assert response.status_code == 412
        error = response.json()["error"]
        assert error["code"] == "PRECONDITION_FAILED"
        assert error["details"] == [{"available_credits": 10, "required_credits": 11}]
        assert await _available(client) == 10

    async def test_zero_quantity_is_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/tasks", json={"invite_link": _INVITE, "quantity": 0}
        )

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    async def test_invalid_link_is_400(self, client: AsyncClient) -> None:
        response = await client.post(
            "/api/v1/tasks", json={"invite_link": "ftp://nope", "quantity": 1}
        )

        assert response.status_code == 400

    async def test_requires_auth(self, unauthenticated_client: AsyncClient) -> None:
        response = await unauthenticated_client.post(
            "/api/v1/tasks", json={"invite_link": _INVITE, "quantity": 1}
        )

        assert response.status_code == 401


class TestReadTasks:
    async def test_list_with_status_filter(self, client: AsyncClient) -> None:
        first = await _create(client, quantity=1)
        second = await _create(client, quantity=2)
        await client.post(f"/api/v1/tasks/{first['task_id']}/cancel")

        everything = await client.get("/api/v1/tasks")
        pending = await client.get("/api/v1/tasks?status=pending")

        assert {t["id"] for t in everything.json()["data"]} == {
            first["task_id"],
            second["task_id"],
        }
        assert everything.json()["meta"]["total"] == 2
        assert [t["id"] for t in pending.json()["data"]] == [second["task_id"]]

    async def test_unknown_status_filter_is_400(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/tasks?status=done")

        assert response.status_code == 400

    async def test_get_task_and_progress(
        self,
        client: AsyncClient,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        created = await _create(client, quantity=2)
        task_id = created["task_id"]
        async with session_factory() as db:
            await TaskRepository.create_log(
                db,
                task_id=uuid.UUID(task_id),
                account_number=1,
                email="slot1@mail.example.com",
            )
            await db.commit()

        task = await client.get(f"/api/v1/tasks/{task_id}")
        progress = await client.get(f"/api/v1/tasks/{task_id}/progress")
        logs = await client.get(f"/api/v1/tasks/{task_id}/logs")

        assert task.json()["data"]["invite_link"] == _INVITE
        assert task.json()["data"]["credits_used"] == 2
        assert progress.json()["data"]["progress_percent"] == 0
        progress_logs = progress.json()["data"]["logs"]
        assert [log["account_number"] for log in progress_logs] == [1]
        assert progress_logs[0]["email"] == "slot1@mail.example.com"
        assert progress_logs[0]["status"] == "pending"
        assert progress_logs[0]["error_message"] is None
        assert progress_logs[0]["created_at"] is not None
        assert logs.json()["data"][0]["created_at"] is not None

    async def test_other_users_task_is_404(
        self, client: AsyncClient, client_user_b: AsyncClient
    ) -> None:
        created = await _create(client_user_b, quantity=1)
        task_id = created["task_id"]

        for path in ("", "/progress", "/logs"):
            response = await client.get(f"/api/v1/tasks/{task_id}{path}")
            assert response.status_code == 404
        cancel = await client.post(f"/api/v1/tasks/{task_id}/cancel")
        assert cancel.status_code == 404
        assert await _available(client_user_b) == 4

    async def test_malformed_id_is_400(self, client: AsyncClient) -> None:
        response = await client.get("/api/v1/tasks/not-a-uuid")

        assert response.status_code == 400


class TestCancelTask:
    async def test_cancel_refunds_reservation(self, client: AsyncClient) -> None:
        created = await _create(client, quantity=5)

        response = await client.post(f"/api/v1/tasks/{created['task_id']}/cancel")

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "cancelled"
        assert data["credits_used"] == 0
        assert await _available(client) == 10

    async def test_cancel_twice_is_422(self, client: AsyncClient) -> None:
        created = await _create(client, quantity=1)
        await client.post(f"/api/v1/tasks/{created['task_id']}/cancel")

        response = await client.post(f"/api/v1/tasks/{created['task_id']}/cancel")

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_STATE_TRANSITION"
