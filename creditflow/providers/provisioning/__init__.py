"""Account provisioning clients."""

from creditflow.providers.provisioning.base import (
    ProvisioningClient,
    ProvisioningOutcome,
    ProvisioningRequest,
)
from creditflow.providers.provisioning.mock_adapter import MockProvisioningClient

__all__ = [
    "ProvisioningClient",
    "ProvisioningOutcome",
    "ProvisioningRequest",
    "MockProvisioningClient",
]
