"""Pydantic result schemas returned by the Ledger.

Amounts are exposed as exact Decimals (converted from micro-units) plus a
rounded display string where a human reads them.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel

from src.pm_common.enums import MarketStatus, ShareSide
from src.pm_common.money import from_units, units_to_display
from src.pm_ledger.domain.models import Holding, Market, Trade, User
from src.pm_pricing.domain.cpmm import Pool, Quote, price, probability_percent

# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


class HoldingOut(BaseModel):
    yes: Decimal
    no: Decimal

    @classmethod
    def from_domain(cls, holding: Holding) -> "HoldingOut":
        return cls(yes=from_units(holding.yes), no=from_units(holding.no))


class PositionOut(BaseModel):
    user_id: str
    yes: Decimal
    no: Decimal


class TradeOut(BaseModel):
    sequence: int
    user_id: str
    side: ShareSide
    shares: Decimal
    cash: Decimal
    price_after: Decimal
    created_at: datetime

    @classmethod
    def from_domain(cls, trade: Trade) -> "TradeOut":
        return cls(
            sequence=trade.sequence,
            user_id=trade.user_id,
            side=trade.side,
            shares=from_units(trade.share_delta),
            cash=from_units(trade.cash_delta),
            price_after=trade.price_after,
            created_at=trade.created_at,
        )


# ---------------------------------------------------------------------------
# Markets
# ---------------------------------------------------------------------------


class MarketSnapshot(BaseModel):
    market_id: int
    creator: str
    question: str
    description: str
    status: MarketStatus
    is_trading: bool
    reserve_yes: Decimal
    reserve_no: Decimal
    price_yes: Decimal
    price_no: Decimal
    probability: int
    created_at: datetime
    close_at: datetime | None = None
    resolved_at: datetime | None = None
    positions: list[PositionOut] = []
    transactions: list[TradeOut] = []

    @classmethod
    def from_domain(
        cls,
        market: Market,
        now: datetime,
        holders: list[User] | None = None,
        trades: list[Trade] | None = None,
    ) -> "MarketSnapshot":
        pool = market.pool
        positions = []
        for user in holders or []:
            holding = user.holding(market.id)
            if not holding.is_empty:
                positions.append(
                    PositionOut(
                        user_id=user.id,
                        yes=from_units(holding.yes),
                        no=from_units(holding.no),
                    )
                )
        return cls(
            market_id=market.id,
            creator=market.creator,
            question=market.question,
            description=market.description,
            status=market.status,
            is_trading=market.accepts_trades(now),
            reserve_yes=from_units(pool.reserve_yes),
            reserve_no=from_units(pool.reserve_no),
            price_yes=price(pool, ShareSide.YES),
            price_no=price(pool, ShareSide.NO),
            probability=probability_percent(pool),
            created_at=market.created_at,
            close_at=market.close_at,
            resolved_at=market.resolved_at,
            positions=positions,
            transactions=[TradeOut.from_domain(t) for t in trades or []],
        )


# ---------------------------------------------------------------------------
# Trading
# ---------------------------------------------------------------------------


class QuoteOut(BaseModel):
    market_id: int
    side: ShareSide
    is_buy: bool
    shares: Decimal
    cash: Decimal
    price_after: Decimal
    probability_before: int
    probability_after: int

    @classmethod
    def from_quote(cls, market: Market, quote: Quote) -> "QuoteOut":
        after = Pool(*quote.reserves_after, k=market.pool.k)
        return cls(
            market_id=market.id,
            side=quote.side,
            is_buy=quote.is_buy,
            shares=from_units(quote.shares),
            cash=from_units(quote.cash),
            price_after=price(after, quote.side),
            probability_before=probability_percent(market.pool),
            probability_after=probability_percent(after),
        )


class TradeResult(BaseModel):
    sequence: int
    market_id: int
    user_id: str
    side: ShareSide
    shares: Decimal              # signed: + bought, - sold
    cash: Decimal                # signed: - paid, + received
    new_balance: Decimal
    new_balance_display: str
    holding: HoldingOut
    price_after: Decimal         # price of `side` after the trade
    probability_before: int
    probability_after: int


class TipResult(BaseModel):
    from_user_id: str
    to_user_id: str
    amount: Decimal
    from_balance: Decimal
    to_balance: Decimal


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class BalanceOut(BaseModel):
    user_id: str
    balance: Decimal
    balance_display: str

    @classmethod
    def build(cls, user_id: str, units: int) -> "BalanceOut":
        return cls(
            user_id=user_id,
            balance=from_units(units),
            balance_display=units_to_display(units),
        )


class PortfolioPosition(BaseModel):
    market_id: int
    question: str
    side: ShareSide
    amount: Decimal
    mark_price: Decimal
    mark_value: Decimal


class Portfolio(BaseModel):
    user_id: str
    cash: Decimal
    cash_display: str
    positions: list[PortfolioPosition]
