"""
Audit ledger — one NDJSON line per finished provisioning session.

Records what each session targeted, where it stopped and what it
unwound. Nothing reads the ledger to make a decision: whether a target
is already provisioned is always answered by probing the host.

Lines are only ever appended.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Iterator

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """One finished session."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    session_id: str = ""
    kind: str = ""                 # SessionKind value

    # Validated inputs only; secrets never reach a target
    target: dict[str, str] = Field(default_factory=dict)

    status: str = ""               # SessionState value
    phases_total: int = 0
    phases_succeeded: int = 0
    phases_skipped: int = 0
    failed_phase: str = ""
    rolled_back: list[str] = Field(default_factory=list)
    duration_ms: int = 0

    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    context: dict[str, Any] = Field(default_factory=dict)

    def summary(self) -> str:
        """Single-line description for the CLI."""
        text = f"{self.timestamp[:19]}  {self.kind:<15} {self.status:<12} {self.session_id}"
        if self.failed_phase:
            text += f"  at {self.failed_phase!r}"
        return text


class AuditWriter:
    """Appends entries to ``<state_dir>/audit.ndjson`` and reads them back.

    The dashboard serves requests on several threads, so appends are
    serialised in-process. A failed append is logged and dropped.
    """

    def __init__(self, path: Path | None = None, state_dir: Path | None = None):
        if path is None:
            path = (state_dir or Path(".")) / DEFAULT_AUDIT_FILE
        self._path = path
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
        with self._write_lock:
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with self._path.open("a", encoding="utf-8") as f:
                    f.write(line + "\n")
            except OSError as e:
                logger.error("Audit entry for %s not written: %s", entry.session_id or "?", e)
                return
        logger.debug("Audit: %s %s %s", entry.session_id, entry.kind, entry.status)

    def _lines(self) -> Iterator[tuple[int, str]]:
        if not self._path.is_file():
            return
        try:
            with self._path.open("r", encoding="utf-8") as f:
                for number, line in enumerate(f, start=1):
                    if line.strip():
                        yield number, line
        except OSError as e:
            logger.error("Cannot read audit ledger %s: %s", self._path, e)

    def read_all(self) -> list[AuditEntry]:
        """Every readable entry, oldest first. Corrupt lines are skipped."""
        entries: list[AuditEntry] = []
        for number, line in self._lines():
            try:
                entries.append(AuditEntry.model_validate(json.loads(line)))
            except (ValueError, ValidationError) as e:
                logger.warning("Skipping corrupt audit line %d: %s", number, e)
        return entries

    def read_recent(self, n: int = 20, kind: str | None = None) -> list[AuditEntry]:
        """The last ``n`` entries, optionally only those of one session kind."""
        entries = self.read_all()
        if kind:
            entries = [e for e in entries if e.kind == kind]
        return entries[-n:] if n > 0 else []

    def entry_count(self) -> int:
        return sum(1 for _ in self._lines())
