"""Tagged engine requests: the closed set of things a chat front end can ask.

Each request kind is one pydantic model discriminated by `kind`; `Command` is
their union. The acting user is never part of a request: the platform supplies
it separately (the X-User-Id header over HTTP).

Amounts are plain decimals in dollars / shares; the engine validates them.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Literal

from pydantic import BaseModel, Field, RootModel, model_validator

from src.pm_common.enums import ShareSide


class CreateMarketCommand(BaseModel):
    kind: Literal["create_market"] = "create_market"
    question: str = Field(min_length=1, max_length=200)
    description: str = Field(default="", max_length=2000)
    fee: Decimal | None = None
    close_at: datetime | None = None


class BuyCommand(BaseModel):
    kind: Literal["buy"] = "buy"
    market_id: int
    side: ShareSide
    shares: Decimal


class BuyWithCashCommand(BaseModel):
    kind: Literal["buy_with_cash"] = "buy_with_cash"
    market_id: int
    side: ShareSide
    cash: Decimal


class SellCommand(BaseModel):
    kind: Literal["sell"] = "sell"
    market_id: int
    side: ShareSide
    shares: Decimal | None = None       # None = sell the whole holding


class ResolveMarketCommand(BaseModel):
    kind: Literal["resolve_market"] = "resolve_market"
    market_id: int
    outcome: str


class TipCommand(BaseModel):
    kind: Literal["tip"] = "tip"
    to_user_id: str = Field(min_length=1)
    amount: Decimal


class BalanceQuery(BaseModel):
    kind: Literal["balance"] = "balance"
    user_id: str | None = None          # None = the acting user


class BalancesQuery(BaseModel):
    kind: Literal["balances"] = "balances"


class PortfolioQuery(BaseModel):
    kind: Literal["portfolio"] = "portfolio"


class ListMarketsQuery(BaseModel):
    kind: Literal["list_markets"] = "list_markets"


class ShowMarketQuery(BaseModel):
    kind: Literal["show_market"] = "show_market"
    market_id: int


class QuoteBuyQuery(BaseModel):
    kind: Literal["quote_buy"] = "quote_buy"
    market_id: int
    side: ShareSide
    shares: Decimal | None = None
    cash: Decimal | None = None

    @model_validator(mode="after")
    def _one_amount(self) -> "QuoteBuyQuery":
        if (self.shares is None) == (self.cash is None):
            raise ValueError("give exactly one of shares or cash")
        return self


class QuoteSellQuery(BaseModel):
    kind: Literal["quote_sell"] = "quote_sell"
    market_id: int
    side: ShareSide
    shares: Decimal


Command = Annotated[
    CreateMarketCommand
    | BuyCommand
    | BuyWithCashCommand
    | SellCommand
    | ResolveMarketCommand
    | TipCommand
    | BalanceQuery
    | BalancesQuery
    | PortfolioQuery
    | ListMarketsQuery
    | ShowMarketQuery
    | QuoteBuyQuery
    | QuoteSellQuery,
    Field(discriminator="kind"),
]


class CommandRequest(RootModel[Command]):
    """Request body of POST /commands: any single tagged request."""
