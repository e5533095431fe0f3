"""Domain models for pm_ledger — pure dataclasses, no persistence dependency.

All amounts are int micro-units (see pm_common.money).
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.pm_common.enums import MarketStatus, ShareSide
from src.pm_pricing.domain.cpmm import Pool


@dataclass
class Holding:
    yes: int = 0
    no: int = 0

    def get(self, side: ShareSide) -> int:
        return self.yes if side is ShareSide.YES else self.no

    def add(self, side: ShareSide, delta: int) -> None:
        if side is ShareSide.YES:
            self.yes += delta
        else:
            self.no += delta

    @property
    def is_empty(self) -> bool:
        return self.yes == 0 and self.no == 0


@dataclass
class User:
    id: str
    balance: int
    holdings: dict[int, Holding] = field(default_factory=dict)

    def holding(self, market_id: int) -> Holding:
        """Holding in a market; an empty one (not stored) if the user has none."""
        return self.holdings.get(market_id, Holding())


@dataclass
class Market:
    id: int
    creator: str
    question: str
    description: str
    pool: Pool
    liquidity: int               # seeded reserve per side
    created_at: datetime
    status: MarketStatus = MarketStatus.OPEN
    close_at: datetime | None = None
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status is MarketStatus.OPEN

    def accepts_trades(self, now: datetime) -> bool:
        return self.is_open and (self.close_at is None or now < self.close_at)


@dataclass(frozen=True)
class Trade:
    sequence: int
    market_id: int
    user_id: str
    side: ShareSide
    share_delta: int             # + buy, - sell (user holding change)
    cash_delta: int              # - buy, + sell (user balance change)
    price_after: Decimal         # YES price after the trade, display only
    created_at: datetime

    @property
    def pool_cash(self) -> int:
        """Cash that entered the pool (negative when it left)."""
        return -self.cash_delta


@dataclass
class GlobalState:
    users: dict[str, User] = field(default_factory=dict)
    markets: dict[int, Market] = field(default_factory=dict)
    trades: list[Trade] = field(default_factory=list)
    next_market_id: int = 0

    @property
    def next_trade_sequence(self) -> int:
        return self.trades[-1].sequence + 1 if self.trades else 1

    def trades_for(self, market_id: int) -> list[Trade]:
        return [t for t in self.trades if t.market_id == market_id]
