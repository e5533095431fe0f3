"""Market settlement — pay out winners, or roll the market back (UNDO).

Both functions compute every change first and only then write, so a refused
settlement leaves the state untouched. They never touch the trade log: the
trades of an UNDO market stay on record as history.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from src.pm_common.enums import MarketStatus, ResolutionOutcome, ShareSide
from src.pm_common.errors import InternalError
from src.pm_ledger.domain.models import GlobalState, Market

logger = logging.getLogger(__name__)


@dataclass
class Settlement:
    changes: dict[str, int] = field(default_factory=dict)      # signed balance change
    shortfalls: dict[str, int] = field(default_factory=dict)   # unrecoverable on UNDO


def settle_market(
    state: GlobalState, market: Market, winner: ShareSide, now: datetime
) -> Settlement:
    """Credit 1 unit per winning share unit, clear all holdings, freeze the pool."""
    settlement = Settlement()
    for user in state.users.values():
        holding = user.holdings.get(market.id)
        if holding is None:
            continue
        payout = holding.get(winner)
        if payout > 0:
            settlement.changes[user.id] = payout

    for user in state.users.values():
        user.holdings.pop(market.id, None)
        if user.id in settlement.changes:
            user.balance += settlement.changes[user.id]

    market.status = ResolutionOutcome(winner.value).terminal_status
    market.resolved_at = now
    logger.info(
        "Market %s settled %s: %d winners paid %d units",
        market.id, winner.value, len(settlement.changes), sum(settlement.changes.values()),
    )
    return settlement


def undo_market(state: GlobalState, market: Market, now: datetime) -> Settlement:
    """Invert every trade of the market, newest first.

    Each trade moved the user by (cash_delta, share_delta) and the pool by
    (pool_cash - share_delta, pool_cash) on (traded side, other side); undoing
    it applies the opposite. A balance that would go negative (the user spent
    sale proceeds elsewhere) is floored at zero and the rest reported as a
    shortfall. The creation fee stays with the pool.
    """
    trades = state.trades_for(market.id)
    reserves = {ShareSide.YES: market.pool.reserve_yes, ShareSide.NO: market.pool.reserve_no}
    net_cash: dict[str, int] = defaultdict(int)
    net_shares: dict[tuple[str, ShareSide], int] = defaultdict(int)
    for t in reversed(trades):
        reserves[t.side] -= t.pool_cash - t.share_delta
        reserves[t.side.other] -= t.pool_cash
        net_cash[t.user_id] -= t.cash_delta
        net_shares[(t.user_id, t.side)] -= t.share_delta

    if reserves[ShareSide.YES] != market.liquidity or reserves[ShareSide.NO] != market.liquidity:
        raise InternalError(
            f"UNDO of market {market.id} does not return to its seeded pool: "
            f"{reserves[ShareSide.YES]}, {reserves[ShareSide.NO]}"
        )
    for (user_id, side), delta in net_shares.items():
        user = state.users.get(user_id)
        held = user.holding(market.id).get(side) if user else 0
        if held + delta != 0:
            raise InternalError(
                f"UNDO of market {market.id} leaves user {user_id} with "
                f"{held + delta} {side.value} units"
            )

    settlement = Settlement()
    for user_id, delta in net_cash.items():
        user = state.users[user_id]
        restored = user.balance + delta
        if restored < 0:
            settlement.shortfalls[user_id] = -restored
            logger.warning(
                "UNDO market %s: user %s is short %d units, balance floored at zero",
                market.id, user_id, -restored,
            )
            delta = -user.balance
            restored = 0
        user.balance = restored
        if delta:
            settlement.changes[user_id] = delta

    for user in state.users.values():
        user.holdings.pop(market.id, None)
    market.pool.reserve_yes = market.liquidity
    market.pool.reserve_no = market.liquidity
    market.status = MarketStatus.RESOLVED_UNDO
    market.resolved_at = now
    logger.info(
        "Market %s undone: %d trades reversed, %d users adjusted",
        market.id, len(trades), len(settlement.changes),
    )
    return settlement
