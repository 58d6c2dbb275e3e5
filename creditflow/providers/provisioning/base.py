"""Abstract base class and types for account provisioning clients.

A provisioning client creates one account on the third-party site through
an invite link, then creates and publishes a project in it. The task
processor only sees this interface.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from creditflow.providers.errors import ErrorKind


@dataclass(frozen=True)
class ProvisioningRequest:
    """Input for one provisioning attempt.

    Attributes:
        invite_link: Invite URL the account signs up through.
        email: Generated account email.
        password: Generated account password. Never logged or persisted.
        project_name: Name of the project to create.
        account_number: Slot number within the task (for logs only).
    """

    invite_link: str
    email: str
    password: str = field(repr=False)
    project_name: str
    account_number: int = 0


@dataclass
class ProvisioningOutcome:
    """Result of one provisioning attempt.

    Attributes:
        success: Whether the account and project were created.
        project_id: Identifier of the created project.
        project_url: Published URL of the created project.
        error: Failure description when success is False.
        error_kind: How the failure should be handled.
    """

    success: bool
    project_id: str | None = None
    project_url: str | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None


class ProvisioningClient(ABC):
    """Abstract base class for provisioning clients.

    Browser-backed clients launch one browser per task, not per slot.
    session() scopes that shared resource; attempt() is only valid inside it.
    """

    @asynccontextmanager
    async def session(self) -> AsyncIterator["ProvisioningClient"]:
        """Hold the client's shared resources for the duration of one task.

        The default implementation holds nothing.

        Yields:
            The client itself.

        Raises:
            FatalProvisioningError: If the runtime cannot be started.
        """
        yield self

    @abstractmethod
    async def attempt(self, request: ProvisioningRequest) -> ProvisioningOutcome:
        """Try to create one account and project.

        Must be safe to call again after a transient failure: a retry may
        leave an abandoned partial account but never corrupts another slot.

        Args:
            request: Identity, invite link and project name.

        Returns:
            ProvisioningOutcome describing success or failure.

        Raises:
            ProvisioningError: Adapters may raise tagged errors instead of
                returning an unsuccessful outcome.
        """
        ...
