from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.pm_common.enums import MarketStatus, ResolutionOutcome
from src.pm_common.money import from_units
from src.pm_ledger.domain.models import GlobalState
from src.pm_resolution.domain.settlement import Settlement


class BalanceChange(BaseModel):
    user_id: str
    amount: Decimal          # signed; negative when UNDO claws back sale proceeds
    new_balance: Decimal


class Shortfall(BaseModel):
    user_id: str
    amount: Decimal


class ResolutionSummary(BaseModel):
    market_id: int
    outcome: ResolutionOutcome
    status: MarketStatus
    resolved_at: datetime
    changes: list[BalanceChange]
    total_paid: Decimal
    shortfalls: list[Shortfall] = []

    @classmethod
    def build(
        cls,
        state: GlobalState,
        market_id: int,
        outcome: ResolutionOutcome,
        settlement: Settlement,
    ) -> "ResolutionSummary":
        market = state.markets[market_id]
        return cls(
            market_id=market_id,
            outcome=outcome,
            status=market.status,
            resolved_at=market.resolved_at,
            changes=[
                BalanceChange(
                    user_id=user_id,
                    amount=from_units(amount),
                    new_balance=from_units(state.users[user_id].balance),
                )
                for user_id, amount in sorted(settlement.changes.items())
            ],
            total_paid=from_units(sum(a for a in settlement.changes.values() if a > 0)),
            shortfalls=[
                Shortfall(user_id=user_id, amount=from_units(amount))
                for user_id, amount in sorted(settlement.shortfalls.items())
            ],
        )
