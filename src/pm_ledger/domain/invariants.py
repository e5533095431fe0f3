"""Ledger invariant verification.

INV-1: no user balance is negative
INV-2: no share holding is negative
INV-3: every OPEN pool is on the curve, (x - 1)(y - 1) < k <= x * y
INV-4: replaying a market's trades from its seeded pool reproduces its reserves
       (an UNDO market is back at the seed) and, while OPEN, every holding
"""

import logging
from collections import defaultdict

from src.pm_common.enums import MarketStatus, ShareSide
from src.pm_ledger.domain.models import GlobalState, Market, Trade
from src.pm_pricing.domain.cpmm import Pool, Quote, on_curve

logger = logging.getLogger(__name__)


def replay_reserves(market: Market, trades: list[Trade]) -> tuple[int, int]:
    """Reserves obtained by applying `trades` to the market's seeded pool."""
    reserves = {ShareSide.YES: market.liquidity, ShareSide.NO: market.liquidity}
    for t in trades:
        reserves[t.side] += t.pool_cash - t.share_delta
        reserves[t.side.other] += t.pool_cash
    return reserves[ShareSide.YES], reserves[ShareSide.NO]


def verify_quote_on_curve(market: Market, quote: Quote) -> None:
    """Raises AssertionError if applying `quote` would take the pool off the curve.

    Runs before the quote is applied, so a failure leaves the state untouched.
    """
    after = Pool(*quote.reserves_after, k=market.pool.k)
    assert on_curve(after), (
        f"INV-3 violated: market={market.id} reserves=({after.reserve_yes}, "
        f"{after.reserve_no}) product={after.product} k={after.k}"
    )
    logger.debug(
        "Invariants OK: market=%s, reserves=(%d, %d)",
        market.id, after.reserve_yes, after.reserve_no,
    )


def verify_state_invariants(state: GlobalState) -> list[str]:
    """Check INV-1/2/3/4 across the whole state. Returns list of violation strings."""
    violations: list[str] = []

    for user in state.users.values():
        if user.balance < 0:
            violations.append(f"INV-1 violated: user={user.id} balance={user.balance}")
        for market_id, holding in user.holdings.items():
            if holding.yes < 0 or holding.no < 0:
                violations.append(
                    f"INV-2 violated: user={user.id} market={market_id} "
                    f"yes={holding.yes} no={holding.no}"
                )

    trades_by_market: dict[int, list[Trade]] = defaultdict(list)
    for t in state.trades:
        trades_by_market[t.market_id].append(t)

    for market in state.markets.values():
        pool = market.pool
        if market.is_open and not on_curve(pool):
            violations.append(
                f"INV-3 violated: market={market.id} product={pool.product} k={pool.k}"
            )

        trades = trades_by_market.get(market.id, [])
        if market.status is MarketStatus.RESOLVED_UNDO:
            expected = (market.liquidity, market.liquidity)
        else:
            expected = replay_reserves(market, trades)
        if pool.reserves != expected:
            violations.append(
                f"INV-4 violated: market={market.id} reserves={pool.reserves} "
                f"!= replayed {expected}"
            )

        if market.is_open:
            replayed: dict[tuple[str, ShareSide], int] = defaultdict(int)
            for t in trades:
                replayed[(t.user_id, t.side)] += t.share_delta
            for (user_id, side), amount in replayed.items():
                user = state.users.get(user_id)
                held = user.holding(market.id).get(side) if user else 0
                if held != amount:
                    violations.append(
                        f"INV-4 violated: market={market.id} user={user_id} "
                        f"{side.value} holding={held} != replayed {amount}"
                    )

    for msg in violations:
        logger.error(msg)
    return violations
