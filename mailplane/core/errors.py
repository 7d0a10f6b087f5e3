"""
Provisioning error taxonomy.

Every failure a session can surface maps onto one of these classes.
The web layer turns them into JSON responses using ``code`` and
``http_status``; the CLI turns them into exit codes.

    InvalidInputError       400   rejected before any external mutation
    PrerequisiteError       400   host cannot run the session at all
    LockHeldError           409   another session holds the lock
    AlreadyConfiguredError  409   target already fully provisioned
    PhaseError              500   a phase failed; rollback already ran
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from mailplane.core.models.provisioning import CommandResult


class ProvisioningError(Exception):
    """Base class for all provisioning failures."""

    code = "provisioning_error"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidInputError(ProvisioningError):
    """Malformed or disallowed input (bad domain, unknown service, path)."""

    code = "invalid_input"
    http_status = 400


class PrerequisiteError(ProvisioningError):
    """The host is missing something the session cannot install itself."""

    code = "prerequisite_missing"
    http_status = 400


class ConflictError(ProvisioningError):
    """The request conflicts with current state; nothing was changed."""

    code = "conflict"
    http_status = 409


class LockHeldError(ConflictError):
    """Another session holds the lock for this session kind."""

    code = "lock_held"

    def __init__(self, lock_name: str) -> None:
        super().__init__(f"Setup already in progress ({lock_name})")
        self.lock_name = lock_name


class AlreadyConfiguredError(ConflictError):
    """Every completeness check passed and no reconfigure was requested."""

    code = "already_configured"


class PhaseError(ProvisioningError):
    """A phase failed: non-zero exit, timeout, or failed post-condition.

    ``phase`` is filled in by the executor when left empty; a nested
    chain sets it to the name of its own failing phase so the caller
    sees the innermost step.
    """

    code = "phase_failed"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        phase: str = "",
        detail: str = "",
        result: CommandResult | None = None,
    ) -> None:
        super().__init__(message)
        self.phase = phase
        self.detail = detail
        self.result = result
        # Filled by a nested chain that already unwound its own scope
        self.rolled_back: list[str] = []
        self.rollback_errors: list[str] = []

    @classmethod
    def from_result(cls, message: str, result: CommandResult, **kwargs: Any) -> PhaseError:
        """Build an error from a failed command, keeping its stderr tail."""
        if result.timed_out:
            message = f"{message} (timed out)"
        return cls(message, detail=result.stderr_tail(), result=result, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.phase:
            data["phase"] = self.phase
        if self.detail:
            data["detail"] = self.detail
        return data


class ConfigWriteError(PhaseError):
    """A privileged write, chmod or chown did not succeed."""
