"""Integration-test fixtures.

ASGITransport does not run the app lifespan, so each test wires its own engine
onto app.state with a state file under tmp_path.
"""

from collections.abc import AsyncGenerator
from pathlib import Path
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.pm_gateway.commands.handler import CommandHandler
from src.pm_ledger.application.service import Ledger
from src.pm_persistence.infrastructure.persistence import PersistenceManager
from src.pm_resolution.application.service import ResolutionEngine


@pytest.fixture
def state_file(tmp_path: Path) -> Path:
    return tmp_path / "state.json"


@pytest.fixture
async def client(state_file: Path, clock: Any) -> AsyncGenerator[AsyncClient, None]:
    persistence = PersistenceManager(state_file, retry_backoff_seconds=0)
    ledger = Ledger(persistence=persistence, clock=clock, start_balance="1000", creation_cost="50")
    app.state.handler = CommandHandler(ledger, ResolutionEngine(ledger))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
