"""Mock provisioning client for tests and local development."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from creditflow.providers.errors import ProvisioningError
from creditflow.providers.provisioning.base import (
    ProvisioningClient,
    ProvisioningOutcome,
    ProvisioningRequest,
)

ScriptStep = ProvisioningOutcome | ProvisioningError


class MockProvisioningClient(ProvisioningClient):
    """Scripted provisioning client.

    Each account number can be given a list of steps consumed one per
    attempt: a ProvisioningOutcome is returned, a ProvisioningError is
    raised. Once a slot's script runs out (or it has none) every attempt
    succeeds.

    Attributes:
        calls: Record of all method invocations for test assertions.
        sessions_opened: Number of session() entries.
    """

    def __init__(
        self,
        script: dict[int, list[ScriptStep]] | None = None,
        *,
        session_error: ProvisioningError | None = None,
    ) -> None:
        """Initialize mock provisioning client.

        Args:
            script: Steps per account number.
            session_error: Raised on session() entry when set.
        """
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.session_error = session_error
        self.calls: list[dict[str, Any]] = []
        self.sessions_opened = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator["MockProvisioningClient"]:
        if self.session_error is not None:
            raise self.session_error
        self.sessions_opened += 1
        yield self

    async def attempt(self, request: ProvisioningRequest) -> ProvisioningOutcome:
        self.calls.append(
            {
                "method": "attempt",
                "account_number": request.account_number,
                "email": request.email,
                "invite_link": request.invite_link,
            }
        )
        steps = self.script.get(request.account_number)
        if steps:
            step = steps.pop(0)
            if isinstance(step, ProvisioningError):
                raise step
            return step
        return ProvisioningOutcome(
            success=True,
            project_id=f"mock-project-{request.account_number}",
            project_url=f"https://mock-project-{request.account_number}.example.app",
        )

    def attempts_for(self, account_number: int) -> int:
        """Number of attempts made for one slot."""
        return sum(
            1 for call in self.calls if call["account_number"] == account_number
        )
