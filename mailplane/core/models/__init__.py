"""
Domain models for the provisioning engine.

All models are re-exported here for convenient access:

    from mailplane.core.models import CommandResult, Phase, ProvisioningSession
"""

from mailplane.core.models.provisioning import (
    CommandResult,
    ConfigArtifact,
    LockRecord,
    Phase,
    PhaseOutcome,
    ProvisioningSession,
    ServiceDescriptor,
    SessionKind,
    SessionState,
)

__all__ = [
    "CommandResult",
    "ConfigArtifact",
    "LockRecord",
    "Phase",
    "PhaseOutcome",
    "ProvisioningSession",
    "ServiceDescriptor",
    "SessionKind",
    "SessionState",
]
