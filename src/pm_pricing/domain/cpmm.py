"""Constant-product market maker (CPMM) for complementary YES/NO shares.

One YES share plus one NO share always redeem for exactly $1, so cash entering
the pool mints one of each side and cash leaving it burns one of each. A trade
therefore moves both reserves by the cash amount and the traded side by the
share amount, solved so that the reserve product returns to k:

  buy  D shares of side S for cost c:      (r_S - D + c) * (r_other + c) = k
  sell D shares of side S for proceeds c:  (r_S + D - c) * (r_other - c) = k

All quantities are int micro-units (k in units squared). The cost of a buy is
the smallest integer c that brings the product back to at least k; the
proceeds of a sell are the largest integer c that keeps it at least k. Every
reachable pool is therefore the lowest lattice point of its diagonal that is
still on or above the curve:

  (reserve_yes - 1) * (reserve_no - 1) < k <= reserve_yes * reserve_no

and buying D then immediately selling D lands back on the starting point, so
the round trip costs exactly what it pays.

Quotes and application are separate: a Quote is computed from a snapshot of
the reserves and apply_quote() refuses to commit it onto a pool that moved.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.pm_common.enums import ShareSide
from src.pm_common.errors import (
    InsufficientLiquidityError,
    InternalError,
    InvalidAmountError,
)
from src.pm_common.money import ceil_div, isqrt_ceil, shares_to_display

_PRICE_QUANTUM = Decimal("0.000001")


@dataclass
class Pool:
    reserve_yes: int
    reserve_no: int
    k: int

    @classmethod
    def seeded(cls, liquidity: int) -> "Pool":
        """Fresh pool with equal reserves on both sides (price 0.5)."""
        return cls(reserve_yes=liquidity, reserve_no=liquidity, k=liquidity * liquidity)

    def reserve(self, side: ShareSide) -> int:
        return self.reserve_yes if side is ShareSide.YES else self.reserve_no

    @property
    def product(self) -> int:
        return self.reserve_yes * self.reserve_no

    @property
    def reserves(self) -> tuple[int, int]:
        return self.reserve_yes, self.reserve_no


@dataclass(frozen=True)
class Quote:
    side: ShareSide
    is_buy: bool
    shares: int          # units of `side` moving between user and pool
    cash: int            # units paid by (buy) or to (sell) the user
    reserves_before: tuple[int, int]
    reserves_after: tuple[int, int]

    @property
    def share_delta(self) -> int:
        """Signed change of the user's holding."""
        return self.shares if self.is_buy else -self.shares

    @property
    def cash_delta(self) -> int:
        """Signed change of the user's balance."""
        return -self.cash if self.is_buy else self.cash


def _split(pool: Pool, side: ShareSide) -> tuple[int, int]:
    return pool.reserve(side), pool.reserve(side.other)


def _join(side: ShareSide, r_side: int, r_other: int) -> tuple[int, int]:
    return (r_side, r_other) if side is ShareSide.YES else (r_other, r_side)


def _min_shift_up(a: int, b: int, k: int) -> int:
    """Smallest c >= 0 with (a + c) * (b + c) >= k."""
    if a * b >= k:
        return 0
    c = ceil_div(isqrt_ceil((a - b) ** 2 + 4 * k) - (a + b), 2)
    while c > 0 and (a + c - 1) * (b + c - 1) >= k:
        c -= 1
    while (a + c) * (b + c) < k:
        c += 1
    return c


def _max_shift_down(a: int, b: int, k: int) -> int:
    """Largest c in [0, min(a, b)) with (a - c) * (b - c) >= k."""
    c = max((a + b - isqrt_ceil((a - b) ** 2 + 4 * k)) // 2, 0)
    limit = min(a, b)
    while c + 1 < limit and (a - c - 1) * (b - c - 1) >= k:
        c += 1
    while c > 0 and (a - c) * (b - c) < k:
        c -= 1
    return c


def quote_buy(pool: Pool, side: ShareSide, shares: int) -> Quote:
    """Cost of taking `shares` units of `side` out of the pool."""
    if shares <= 0:
        raise InvalidAmountError(f"share amount must be positive, got {shares}")
    r_side, r_other = _split(pool, side)
    if shares >= r_side:
        raise InsufficientLiquidityError(
            f"cannot buy {shares_to_display(shares)} {side.value} shares, "
            f"pool holds {shares_to_display(r_side)}"
        )
    a = r_side - shares
    cost = _min_shift_up(a, r_other, pool.k)
    if cost == 0:
        raise InvalidAmountError("order too small to cost anything")
    return Quote(
        side=side,
        is_buy=True,
        shares=shares,
        cash=cost,
        reserves_before=pool.reserves,
        reserves_after=_join(side, a + cost, r_other + cost),
    )


def quote_buy_for_cash(pool: Pool, side: ShareSide, cash: int) -> Quote:
    """Shares of `side` received for spending exactly `cash` units."""
    if cash <= 0:
        raise InvalidAmountError(f"cash amount must be positive, got {cash}")
    r_side, r_other = _split(pool, side)
    new_other = r_other + cash
    new_side = ceil_div(pool.k, new_other)
    shares = r_side + cash - new_side
    if shares <= 0:
        raise InvalidAmountError("order too small to buy any shares")
    return Quote(
        side=side,
        is_buy=True,
        shares=shares,
        cash=cash,
        reserves_before=pool.reserves,
        reserves_after=_join(side, new_side, new_other),
    )


def quote_sell(pool: Pool, side: ShareSide, shares: int) -> Quote:
    """Proceeds of returning `shares` units of `side` to the pool."""
    if shares <= 0:
        raise InvalidAmountError(f"share amount must be positive, got {shares}")
    r_side, r_other = _split(pool, side)
    a = r_side + shares
    proceeds = _max_shift_down(a, r_other, pool.k)
    if proceeds == 0:
        raise InvalidAmountError("order too small to pay anything")
    return Quote(
        side=side,
        is_buy=False,
        shares=shares,
        cash=proceeds,
        reserves_before=pool.reserves,
        reserves_after=_join(side, a - proceeds, r_other - proceeds),
    )


def apply_quote(pool: Pool, quote: Quote) -> None:
    """Commit a quote's reserves onto the pool it was computed from."""
    if pool.reserves != quote.reserves_before:
        raise InternalError(
            f"stale quote: pool reserves {pool.reserves} != quoted {quote.reserves_before}"
        )
    pool.reserve_yes, pool.reserve_no = quote.reserves_after


def price(pool: Pool, side: ShareSide) -> Decimal:
    """Instantaneous price of one share of `side`, in (0, 1). Display only."""
    total = pool.reserve_yes + pool.reserve_no
    return (Decimal(pool.reserve(side.other)) / Decimal(total)).quantize(_PRICE_QUANTUM)


def probability_percent(pool: Pool) -> int:
    """Implied YES probability as a truncated whole percent."""
    return pool.reserve_no * 100 // (pool.reserve_yes + pool.reserve_no)


def on_curve(pool: Pool) -> bool:
    """True when the pool is the lowest lattice point on or above xy = k."""
    return (
        pool.reserve_yes > 0
        and pool.reserve_no > 0
        and pool.product >= pool.k
        and (pool.reserve_yes - 1) * (pool.reserve_no - 1) < pool.k
    )
