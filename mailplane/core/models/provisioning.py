"""
Provisioning models — the value types that flow through a session.

CommandResult, ServiceDescriptor, ConfigArtifact and LockRecord are
immutable-ish Pydantic values. Phase and ProvisioningSession hold
callables, so they are plain dataclasses.

None of these are persisted or reused across requests.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CommandResult(BaseModel):
    """Outcome of one external program invocation.

    The runner NEVER raises for a non-zero exit; callers inspect
    ``exit_code`` (or ``ok``). A timeout is reported as
    ``timed_out=True`` with ``exit_code=-1`` and must be treated
    exactly like a failure exit code.
    """

    model_config = ConfigDict(frozen=True)

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    duration_ms: int = 0
    command: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def failed(self) -> bool:
        return not self.ok

    def stderr_tail(self, limit: int = 500) -> str:
        """Last ``limit`` characters of stderr, falling back to stdout."""
        text = (self.stderr or self.stdout).strip()
        return text[-limit:]


class ServiceDescriptor(BaseModel):
    """A manageable OS service. Compiled-in, never persisted."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit: str
    conflicts_with: str | None = None   # name of the counterpart descriptor
    needs_restart_not_start: bool = False
    description: str = ""


_OWNER_PATTERN = r"^[a-z_][a-z0-9_-]*:[a-z_][a-z0-9_-]*$"


class ConfigArtifact(BaseModel):
    """A file the Config Writer will place on disk.

    ``path`` is checked against the exact-match allow-list before any
    privileged command is issued.
    """

    path: str
    content: str
    mode: int | None = None             # e.g. 0o640
    owner: str | None = None            # "user:group"

    @field_validator("mode")
    @classmethod
    def _mode_range(cls, v: int | None) -> int | None:
        if v is not None and not 0 <= v <= 0o7777:
            raise ValueError(f"mode out of range: {oct(v)}")
        return v

    @field_validator("owner")
    @classmethod
    def _owner_format(cls, v: str | None) -> str | None:
        if v is not None and not re.match(_OWNER_PATTERN, v):
            raise ValueError(f"owner must look like 'user:group', got {v!r}")
        return v


class LockRecord(BaseModel):
    """Contents of a lock directory's ``owner.json``."""

    path: str
    acquired_at_ms: int
    pid: int = 0
    token: str = ""

    def age_seconds(self, now_ms: int) -> float:
        return max(0, now_ms - self.acquired_at_ms) / 1000.0


class SessionKind(str, Enum):
    WEBMAIL_SETUP = "webmail_setup"
    SERVICE_ENABLE = "service_enable"
    DNS_FORWARD = "dns_forward"


class SessionState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class PhaseOutcome(BaseModel):
    """What happened to a single phase."""

    name: str
    status: Literal["ok", "skipped", "failed", "warning"] = "ok"
    output: str = ""
    error: str | None = None
    duration_ms: int = 0
    rolled_back: bool = False


@dataclass
class Phase:
    """One external mutation plus its paired rollback.

    ``run`` returns optional output text and raises ``PhaseError`` on
    failure. ``rollback`` is best-effort. ``when`` returning False
    skips the phase without counting it as a failure. A phase with
    ``fatal=False`` only produces a warning when it fails.
    """

    name: str
    run: Callable[[], str | None]
    rollback: Callable[[], None] | None = None
    when: Callable[[], bool] | None = None
    fatal: bool = True

    def __repr__(self) -> str:
        return f"<Phase {self.name!r}>"


def new_session_id() -> str:
    return f"ps-{uuid.uuid4().hex[:12]}"


@dataclass
class ProvisioningSession:
    """One end-to-end provisioning request.

    Lives only for the duration of the request; a crash mid-session is
    recovered by the Idempotency Guard on the next invocation, never
    from stored session state.
    """

    kind: SessionKind
    lock_name: str
    target: dict[str, str] = field(default_factory=dict)
    phases: list[Phase] = field(default_factory=list)
    id: str = field(default_factory=new_session_id)
    state: SessionState = SessionState.PENDING
    outcomes: list[PhaseOutcome] = field(default_factory=list)
