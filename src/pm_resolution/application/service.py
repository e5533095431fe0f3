"""ResolutionEngine — drives a market from OPEN to its terminal status.

OPEN -> RESOLVED_YES | RESOLVED_NO | RESOLVED_UNDO, once, by the creator.
Resolution runs as one Ledger commit, so it is atomic with respect to trades
and persisted like any other operation.
"""

from src.pm_common.enums import ResolutionOutcome, ShareSide
from src.pm_common.errors import (
    InvalidOutcomeError,
    MarketAlreadyResolvedError,
    NotMarketCreatorError,
)
from src.pm_ledger.application.service import Ledger
from src.pm_ledger.domain.models import GlobalState
from src.pm_resolution.application.schemas import ResolutionSummary
from src.pm_resolution.domain.settlement import settle_market, undo_market


def parse_outcome(value: str | ResolutionOutcome) -> ResolutionOutcome:
    if isinstance(value, ResolutionOutcome):
        return value
    try:
        return ResolutionOutcome(value.strip().upper())
    except ValueError:
        raise InvalidOutcomeError(value) from None


class ResolutionEngine:
    def __init__(self, ledger: Ledger) -> None:
        self._ledger = ledger

    async def resolve(
        self, market_id: int, requester: str, outcome: str | ResolutionOutcome
    ) -> ResolutionSummary:
        resolved = parse_outcome(outcome)

        def mutation(state: GlobalState) -> ResolutionSummary:
            market = self._ledger.get_market(state, market_id)
            if market.creator != requester:
                raise NotMarketCreatorError(market_id)
            if not market.is_open:
                raise MarketAlreadyResolvedError(market_id, market.status.value)

            now = self._ledger.now()
            if resolved is ResolutionOutcome.UNDO:
                settlement = undo_market(state, market, now)
            else:
                settlement = settle_market(state, market, ShareSide(resolved.value), now)
            return ResolutionSummary.build(state, market_id, resolved, settlement)

        return await self._ledger.commit(mutation)
