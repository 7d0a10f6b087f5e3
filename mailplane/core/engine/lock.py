"""
Lock manager — cross-process mutual exclusion per session kind.

A lock is a directory under ``lock_dir``. ``mkdir`` either creates it
or fails because it exists, atomically, so two processes can never
both succeed. The directory holds ``owner.json`` describing the holder.

A lock older than ``stale_after`` seconds is presumed abandoned by a
crashed process and may be reclaimed. The reclaimer renames it to a
unique ``.<name>.stale-<id>`` scratch directory, which only one racer
can do for a given source, checks that the moved record is the stale
one it observed, deletes the scratch copy and then competes for the
name with ``mkdir`` like any other acquire. A live lock moved by a late
racer is renamed back.
"""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Callable

from mailplane.core.errors import InvalidInputError, LockHeldError
from mailplane.core.models.provisioning import LockRecord

logger = logging.getLogger(__name__)

OWNER_FILE = "owner.json"
STALE_INFIX = ".stale-"
DEFAULT_STALE_AFTER = 900.0

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


class LockManager:
    """Directory-based named locks.

    Distinct names never contend. Locks are not re-entrant: a second
    ``acquire`` of a held name returns False even from the same process.
    """

    def __init__(
        self,
        lock_dir: Path | str,
        stale_after: float = DEFAULT_STALE_AFTER,
        clock: Callable[[], float] = time.time,
    ):
        self._lock_dir = Path(lock_dir)
        self._stale_after = stale_after
        self._clock = clock

    @property
    def lock_dir(self) -> Path:
        return self._lock_dir

    @property
    def stale_after(self) -> float:
        return self._stale_after

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _path(self, name: str) -> Path:
        if not _NAME_RE.match(name):
            raise InvalidInputError(f"Invalid lock name: {name!r}")
        return self._lock_dir / name

    # ── Acquire / release ───────────────────────────────────────

    def acquire(self, name: str) -> bool:
        """Try to take the lock. Never blocks.

        Returns:
            True if this call now holds the lock, False otherwise.
        """
        path = self._path(name)
        try:
            self._lock_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create lock directory %s: %s", self._lock_dir, e)
            return False

        try:
            os.mkdir(path)
        except FileExistsError:
            return self._try_reclaim(name, path)
        except OSError as e:
            logger.error("Cannot create lock %s: %s", path, e)
            return False

        self._write_record(path)
        logger.debug("Lock acquired: %s", name)
        return True

    def release(self, name: str) -> None:
        """Remove the lock. Best-effort: errors are logged, never raised."""
        path = self._path(name)
        try:
            shutil.rmtree(path)
            logger.debug("Lock released: %s", name)
        except FileNotFoundError:
            logger.debug("Lock already gone: %s", name)
        except OSError as e:
            logger.debug("Cannot release lock %s: %s", name, e)

    @contextmanager
    def hold(self, name: str) -> Iterator[None]:
        """Hold the lock for the duration of a ``with`` block.

        Raises:
            LockHeldError: If the lock is held by someone else.
        """
        if not self.acquire(name):
            raise LockHeldError(name)
        try:
            yield
        finally:
            self.release(name)

    # ── Inspection ──────────────────────────────────────────────

    def inspect(self, name: str) -> LockRecord | None:
        """Return the holder record, or None when the lock is free."""
        return self._read_record(self._path(name))

    def list_locks(self) -> list[LockRecord]:
        """All currently held locks, sorted by name."""
        if not self._lock_dir.is_dir():
            return []
        records = []
        for entry in sorted(self._lock_dir.iterdir()):
            if entry.name.startswith(".") or not entry.is_dir():
                continue
            record = self._read_record(entry)
            if record is not None:
                records.append(record)
        return records

    def is_stale(self, record: LockRecord) -> bool:
        return record.age_seconds(self._now_ms()) > self._stale_after

    # ── Internals ───────────────────────────────────────────────

    def _write_record(self, path: Path) -> LockRecord:
        record = LockRecord(
            path=str(path),
            acquired_at_ms=self._now_ms(),
            pid=os.getpid(),
            token=uuid.uuid4().hex,
        )
        tmp = path / f".{OWNER_FILE}.tmp"
        try:
            tmp.write_text(json.dumps(record.model_dump(mode="json")), encoding="utf-8")
            os.replace(tmp, path / OWNER_FILE)
        except OSError as e:
            # The directory alone is the lock; age falls back to its mtime
            logger.warning("Cannot write lock owner record in %s: %s", path, e)
        return record

    def _read_record(self, path: Path) -> LockRecord | None:
        try:
            raw = (path / OWNER_FILE).read_text(encoding="utf-8")
            record = LockRecord.model_validate(json.loads(raw))
            return record.model_copy(update={"path": str(path)})
        except FileNotFoundError:
            pass
        except (OSError, ValueError) as e:
            logger.debug("Unreadable lock record in %s: %s", path, e)

        try:
            mtime = path.stat().st_mtime
        except OSError:
            return None
        return LockRecord(path=str(path), acquired_at_ms=int(mtime * 1000))

    def _same_holder(self, observed: LockRecord, moved: LockRecord | None) -> bool:
        if moved is None:
            return False
        if observed.token:
            return moved.token == observed.token and moved.acquired_at_ms == observed.acquired_at_ms
        # Record-less lock: only its directory mtime identifies it
        return not moved.token and self.is_stale(moved)

    def _try_reclaim(self, name: str, path: Path) -> bool:
        observed = self._read_record(path)
        if observed is None:
            # Released between our mkdir and now; let the caller retry
            return False

        age = observed.age_seconds(self._now_ms())
        if age <= self._stale_after:
            return False

        # Only one racer can move a given source away
        scratch = self._lock_dir / f".{name}{STALE_INFIX}{uuid.uuid4().hex[:12]}"
        try:
            os.rename(path, scratch)
        except OSError as e:
            logger.debug("Lost reclaim race for %s: %s", name, e)
            return False

        moved = self._read_record(scratch)
        if not self._same_holder(observed, moved):
            # A fresh lock replaced the stale one before our rename
            logger.debug("Moved a live lock for %s, putting it back", name)
            try:
                os.rename(scratch, path)
            except OSError as e:
                logger.error("Cannot restore lock %s from %s: %s", name, scratch, e)
            return False

        logger.warning("Reclaiming stale lock %s (age %.0fs, pid %s)", name, age, observed.pid)
        shutil.rmtree(scratch, ignore_errors=True)

        try:
            os.mkdir(path)
        except OSError:
            # A plain acquire got there first
            return False
        self._write_record(path)
        logger.info("Stale lock reclaimed: %s", name)
        return True
