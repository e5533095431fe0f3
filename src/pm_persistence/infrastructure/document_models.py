"""Pydantic models for the persisted state file.

The file is one JSON object:

    {
      "version": 1,
      "next_market_id": 3,
      "users":   [{"id", "balance", "holdings": [{"market_id", "yes", "no"}]}],
      "markets": [{"id", "creator", "question", "description", "status",
                   "reserve_yes", "reserve_no", "k", "liquidity",
                   "created_at", "close_at", "resolved_at"}],
      "trades":  [{"sequence", "market_id", "user_id", "side", "share_delta",
                   "cash_delta", "price_after", "created_at"}]
    }

Amounts are int micro-units, so save/load round-trips exactly.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from src.pm_common.enums import MarketStatus, ShareSide
from src.pm_ledger.domain.models import GlobalState, Holding, Market, Trade, User
from src.pm_pricing.domain.cpmm import Pool

STATE_FORMAT_VERSION = 1


class HoldingRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    market_id: int
    yes: int = Field(ge=0)
    no: int = Field(ge=0)


class UserRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    balance: int = Field(ge=0)
    holdings: list[HoldingRecord] = []


class MarketRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: int = Field(ge=0)
    creator: str
    question: str
    description: str
    status: MarketStatus
    reserve_yes: int = Field(gt=0)
    reserve_no: int = Field(gt=0)
    k: int = Field(gt=0)
    liquidity: int = Field(gt=0)
    created_at: datetime
    close_at: datetime | None = None
    resolved_at: datetime | None = None


class TradeRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    sequence: int = Field(ge=1)
    market_id: int
    user_id: str
    side: ShareSide
    share_delta: int
    cash_delta: int
    price_after: Decimal
    created_at: datetime


class StateDocument(BaseModel):
    model_config = ConfigDict(extra="forbid")

    version: int = STATE_FORMAT_VERSION
    next_market_id: int = Field(ge=0)
    users: list[UserRecord] = []
    markets: list[MarketRecord] = []
    trades: list[TradeRecord] = []

    @model_validator(mode="after")
    def _check_references(self) -> "StateDocument":
        if self.version != STATE_FORMAT_VERSION:
            raise ValueError(f"unsupported state format version {self.version}")
        market_ids = [m.id for m in self.markets]
        if len(set(market_ids)) != len(market_ids):
            raise ValueError("duplicate market id")
        if any(mid >= self.next_market_id for mid in market_ids):
            raise ValueError("market id not below next_market_id")
        user_ids = [u.id for u in self.users]
        if len(set(user_ids)) != len(user_ids):
            raise ValueError("duplicate user id")
        known = set(market_ids)
        for user in self.users:
            for h in user.holdings:
                if h.market_id not in known:
                    raise ValueError(f"user {user.id} holds shares in unknown market {h.market_id}")
        last_seq = 0
        for t in self.trades:
            if t.sequence <= last_seq:
                raise ValueError(f"trade sequence not increasing at {t.sequence}")
            if t.market_id not in known:
                raise ValueError(f"trade {t.sequence} references unknown market {t.market_id}")
            last_seq = t.sequence
        return self

    @classmethod
    def from_state(cls, state: GlobalState) -> "StateDocument":
        return cls(
            next_market_id=state.next_market_id,
            users=[
                UserRecord(
                    id=u.id,
                    balance=u.balance,
                    holdings=[
                        HoldingRecord(market_id=mid, yes=h.yes, no=h.no)
                        for mid, h in sorted(u.holdings.items())
                    ],
                )
                for u in state.users.values()
            ],
            markets=[
                MarketRecord(
                    id=m.id,
                    creator=m.creator,
                    question=m.question,
                    description=m.description,
                    status=m.status,
                    reserve_yes=m.pool.reserve_yes,
                    reserve_no=m.pool.reserve_no,
                    k=m.pool.k,
                    liquidity=m.liquidity,
                    created_at=m.created_at,
                    close_at=m.close_at,
                    resolved_at=m.resolved_at,
                )
                for m in state.markets.values()
            ],
            trades=[
                TradeRecord(
                    sequence=t.sequence,
                    market_id=t.market_id,
                    user_id=t.user_id,
                    side=t.side,
                    share_delta=t.share_delta,
                    cash_delta=t.cash_delta,
                    price_after=t.price_after,
                    created_at=t.created_at,
                )
                for t in state.trades
            ],
        )

    def to_state(self) -> GlobalState:
        return GlobalState(
            users={
                u.id: User(
                    id=u.id,
                    balance=u.balance,
                    holdings={h.market_id: Holding(yes=h.yes, no=h.no) for h in u.holdings},
                )
                for u in self.users
            },
            markets={
                m.id: Market(
                    id=m.id,
                    creator=m.creator,
                    question=m.question,
                    description=m.description,
                    pool=Pool(reserve_yes=m.reserve_yes, reserve_no=m.reserve_no, k=m.k),
                    liquidity=m.liquidity,
                    created_at=m.created_at,
                    status=m.status,
                    close_at=m.close_at,
                    resolved_at=m.resolved_at,
                )
                for m in self.markets
            },
            trades=[
                Trade(
                    sequence=t.sequence,
                    market_id=t.market_id,
                    user_id=t.user_id,
                    side=t.side,
                    share_delta=t.share_delta,
                    cash_delta=t.cash_delta,
                    price_after=t.price_after,
                    created_at=t.created_at,
                )
                for t in self.trades
            ],
            next_market_id=self.next_market_id,
        )
