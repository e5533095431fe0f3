"""Unit tests for pm_persistence — atomic JSON snapshots."""

import asyncio
import json
import time
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from src.pm_common.enums import ShareSide
from src.pm_common.errors import PersistenceError
from src.pm_ledger.application.service import Ledger
from src.pm_ledger.domain.models import GlobalState
from src.pm_persistence.infrastructure.document_models import StateDocument
from src.pm_persistence.infrastructure.persistence import PersistenceManager
from src.pm_resolution.application.service import ResolutionEngine

U = 1_000_000


def _manager(tmp_path: Path, **kwargs: Any) -> PersistenceManager:
    kwargs.setdefault("retry_backoff_seconds", 0)
    return PersistenceManager(tmp_path / "state.json", **kwargs)


async def _populated(pm: PersistenceManager, clock: Any) -> Ledger:
    ledger = Ledger(persistence=pm, clock=clock, start_balance="1000", creation_cost="50")
    first = await ledger.create_market("alice", "Q1?", description="criteria")
    second = await ledger.create_market("alice", "Q2?")
    await ledger.buy("bob", first.market_id, ShareSide.YES, "10")
    await ledger.buy("carol", second.market_id, ShareSide.NO, "2.5")
    await ResolutionEngine(ledger).resolve(second.market_id, "alice", "UNDO")
    return ledger


class TestLoad:
    def test_missing_file_is_empty_state(self, tmp_path: Path) -> None:
        state = _manager(tmp_path).load()
        assert state == GlobalState()

    def test_corrupt_json(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            _manager(tmp_path).load()

    def test_schema_mismatch(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text(
            json.dumps({"version": 1, "next_market_id": 0, "unexpected": True}),
            encoding="utf-8",
        )
        with pytest.raises(PersistenceError):
            _manager(tmp_path).load()

    def test_unknown_version(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text(
            json.dumps({"version": 99, "next_market_id": 0}), encoding="utf-8"
        )
        with pytest.raises(PersistenceError, match="version"):
            _manager(tmp_path).load()

    @pytest.mark.asyncio
    async def test_invariant_violation(self, tmp_path: Path, clock: Any) -> None:
        pm = _manager(tmp_path)
        await _populated(pm, clock)
        doc = json.loads((tmp_path / "state.json").read_text(encoding="utf-8"))
        doc["markets"][0]["reserve_yes"] += 1
        (tmp_path / "state.json").write_text(json.dumps(doc), encoding="utf-8")
        with pytest.raises(PersistenceError, match="invariants"):
            _manager(tmp_path).load()


class TestSaveAndReload:
    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path: Path, clock: Any) -> None:
        pm = _manager(tmp_path)
        ledger = await _populated(pm, clock)

        loaded = _manager(tmp_path).load()
        assert loaded == ledger.state

    @pytest.mark.asyncio
    async def test_reloaded_ledger_keeps_trading(self, tmp_path: Path, clock: Any) -> None:
        pm = _manager(tmp_path)
        await _populated(pm, clock)

        ledger = Ledger(_manager(tmp_path).load(), _manager(tmp_path), clock=clock)
        result = await ledger.sell("bob", 0, ShareSide.YES)
        assert result.new_balance == 1000
        assert result.sequence == 3

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path: Path, clock: Any) -> None:
        await _populated(_manager(tmp_path), clock)
        assert [p.name for p in tmp_path.iterdir()] == ["state.json"]

    @pytest.mark.asyncio
    async def test_stale_revision_never_overwrites(self, tmp_path: Path) -> None:
        pm = _manager(tmp_path)
        newer = PersistenceManager.snapshot(GlobalState(next_market_id=5), revision=2)
        older = PersistenceManager.snapshot(GlobalState(next_market_id=1), revision=1)

        await pm.save(newer)
        await pm.save(older)

        assert pm.load().next_market_id == 5
        assert not pm.has_pending

    def test_snapshot_is_detached(self) -> None:
        state = GlobalState()
        snap = PersistenceManager.snapshot(state, revision=1)
        state.next_market_id = 3
        assert snap.document["next_market_id"] == 0
        assert StateDocument.model_validate(snap.document).to_state() == GlobalState()


class TestSaveFailure:
    @pytest.mark.asyncio
    async def test_retries_then_raises_and_keeps_pending(self, tmp_path: Path) -> None:
        pm = _manager(tmp_path, retry_attempts=3)
        snap = PersistenceManager.snapshot(GlobalState(next_market_id=2), revision=1)

        with patch.object(pm, "_write_atomic", side_effect=OSError("disk full")) as write:
            with pytest.raises(PersistenceError, match="disk full"):
                await pm.save(snap)
        assert write.call_count == 3
        assert pm.has_pending

        await pm.flush()
        assert not pm.has_pending
        assert pm.load().next_market_id == 2

    @pytest.mark.asyncio
    async def test_transient_failure_recovers(self, tmp_path: Path) -> None:
        pm = _manager(tmp_path, retry_attempts=3)
        real_write = pm._write_atomic
        calls = {"n": 0}

        def flaky(payload: str) -> None:
            calls["n"] += 1
            if calls["n"] == 1:
                raise OSError("busy")
            real_write(payload)

        with patch.object(pm, "_write_atomic", side_effect=flaky):
            await pm.save(PersistenceManager.snapshot(GlobalState(), revision=1))
        assert calls["n"] == 2
        assert not pm.has_pending

    @pytest.mark.asyncio
    async def test_commit_stands_when_save_fails(self, tmp_path: Path, clock: Any) -> None:
        pm = _manager(tmp_path, retry_attempts=1)
        ledger = Ledger(persistence=pm, clock=clock, start_balance="1000", creation_cost="50")

        with patch.object(pm, "_write_atomic", side_effect=OSError("read-only")):
            with pytest.raises(PersistenceError):
                await ledger.tip("alice", "bob", "5")
        assert ledger.state.users["bob"].balance == 1005 * U

        await ledger.tip("alice", "bob", "1")
        assert _manager(tmp_path).load().users["bob"].balance == 1006 * U


class TestCancelledSave:
    def test_submit_is_pending_until_flushed(self, tmp_path: Path) -> None:
        pm = _manager(tmp_path)
        pm.submit(PersistenceManager.snapshot(GlobalState(next_market_id=4), revision=1))
        pm.submit(PersistenceManager.snapshot(GlobalState(next_market_id=2), revision=0))
        assert pm.has_pending
        assert not (tmp_path / "state.json").exists()

    @pytest.mark.asyncio
    async def test_flush_writes_submitted_snapshot(self, tmp_path: Path) -> None:
        pm = _manager(tmp_path)
        pm.submit(PersistenceManager.snapshot(GlobalState(next_market_id=4), revision=1))
        await pm.flush()
        assert not pm.has_pending
        assert pm.load().next_market_id == 4

    @pytest.mark.asyncio
    async def test_commit_cancelled_while_waiting_for_writer(
        self, tmp_path: Path, clock: Any
    ) -> None:
        pm = _manager(tmp_path)
        ledger = Ledger(persistence=pm, clock=clock, start_balance="1000", creation_cost="50")
        real_write = pm._write_atomic

        def slow_write(payload: str) -> None:
            time.sleep(0.1)
            real_write(payload)

        with patch.object(pm, "_write_atomic", side_effect=slow_write):
            first = asyncio.create_task(ledger.create_user("alice"))
            await asyncio.sleep(0.01)
            second = asyncio.create_task(ledger.tip("alice", "bob", "5"))
            await asyncio.sleep(0)
            second.cancel()
            with pytest.raises(asyncio.CancelledError):
                await second
            await first
            await pm.flush()

        assert ledger.state.users["bob"].balance == 1005 * U
        loaded = _manager(tmp_path).load()
        assert loaded.users["bob"].balance == 1005 * U
        assert not pm.has_pending
