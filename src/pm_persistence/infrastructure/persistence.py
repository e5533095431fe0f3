"""PersistenceManager — durable JSON snapshots of the whole GlobalState.

The Ledger takes a snapshot (revision + JSON-ready dict) and submit()s it while
it still holds its lock, then calls save() after releasing it. save() is
serialised by its own writer lock and only ever writes the newest revision it
has seen, so an older snapshot arriving late never overwrites a newer file.

Writes go to a temp file in the same directory, are fsync'd and then
os.replace()d over the state file: a crash mid-write leaves the previous file
intact. A failed write is retried; if every attempt fails the snapshot stays
pending (flush() and the next save() retry it) and PersistenceError is raised.
"""

import asyncio
import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from config.settings import settings
from src.pm_common.errors import PersistenceError
from src.pm_ledger.domain.invariants import verify_state_invariants
from src.pm_ledger.domain.models import GlobalState
from src.pm_persistence.infrastructure.document_models import StateDocument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateSnapshot:
    revision: int
    document: dict[str, Any]


class PersistenceManager:
    def __init__(
        self,
        path: str | Path | None = None,
        retry_attempts: int | None = None,
        retry_backoff_seconds: float | None = None,
    ) -> None:
        self.path = Path(path if path is not None else settings.STATE_FILE)
        self._retry_attempts = max(
            1, retry_attempts if retry_attempts is not None else settings.PERSIST_RETRY_ATTEMPTS
        )
        self._retry_backoff = (
            retry_backoff_seconds
            if retry_backoff_seconds is not None
            else settings.PERSIST_RETRY_BACKOFF_SECONDS
        )
        self._write_lock = asyncio.Lock()
        self._pending: StateSnapshot | None = None
        self._written_revision = 0

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self) -> GlobalState:
        """Read the last committed state; empty state if the file does not exist.

        A file that exists but cannot be parsed or fails the ledger invariants
        raises PersistenceError; a bad file is never replaced with an empty ledger.
        """
        if not self.path.exists():
            logger.info("No state file at %s, starting with an empty ledger", self.path)
            return GlobalState()
        try:
            raw = self.path.read_text(encoding="utf-8")
            state = StateDocument.model_validate_json(raw).to_state()
        except (OSError, ValueError, ValidationError) as exc:
            raise PersistenceError(f"cannot load {self.path}: {exc}") from exc

        violations = verify_state_invariants(state)
        if violations:
            raise PersistenceError(
                f"state file {self.path} violates ledger invariants: {violations[0]}"
            )
        logger.info(
            "Loaded state from %s: %d users, %d markets, %d trades",
            self.path, len(state.users), len(state.markets), len(state.trades),
        )
        return state

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @staticmethod
    def snapshot(state: GlobalState, revision: int) -> StateSnapshot:
        """Detached, JSON-ready copy of `state`. Call while holding the ledger lock."""
        return StateSnapshot(
            revision=revision,
            document=StateDocument.from_state(state).model_dump(mode="json"),
        )

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def submit(self, snapshot: StateSnapshot) -> None:
        """Record a committed snapshot as pending. Synchronous: call under the ledger lock."""
        if self._pending is None or snapshot.revision > self._pending.revision:
            self._pending = snapshot

    async def save(self, snapshot: StateSnapshot) -> None:
        self.submit(snapshot)
        async with self._write_lock:
            await self._write_pending()

    async def flush(self) -> None:
        """Retry a snapshot left behind by a failed or cancelled save()."""
        async with self._write_lock:
            await self._write_pending()

    async def _write_pending(self) -> None:
        # A newer revision submitted while we were writing is written too, so a
        # caller cancelled while waiting for the lock still gets persisted.
        while self._pending is not None:
            snapshot = self._pending
            if snapshot.revision <= self._written_revision:
                self._pending = None
                return
            await self._write_snapshot(snapshot)
            if self._pending is snapshot:
                self._pending = None

    async def _write_snapshot(self, snapshot: StateSnapshot) -> None:
        payload = json.dumps(snapshot.document, indent=2)
        last_exc: OSError | None = None
        for attempt in range(1, self._retry_attempts + 1):
            try:
                await asyncio.to_thread(self._write_atomic, payload)
            except OSError as exc:
                last_exc = exc
                logger.warning(
                    "State save failed (revision=%d, attempt %d/%d): %s",
                    snapshot.revision, attempt, self._retry_attempts, exc,
                )
                if attempt < self._retry_attempts:
                    await asyncio.sleep(self._retry_backoff * attempt)
                continue
            self._written_revision = snapshot.revision
            logger.debug("State saved: revision=%d path=%s", snapshot.revision, self.path)
            return

        logger.error(
            "Giving up saving revision %d to %s; it stays pending", snapshot.revision, self.path
        )
        raise PersistenceError(f"cannot write {self.path}: {last_exc}") from last_exc

    def _write_atomic(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except Exception:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise
