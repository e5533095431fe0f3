"""Request bodies of the REST routes; each one is turned into a tagged command."""

from decimal import Decimal

from pydantic import BaseModel, model_validator

from src.pm_common.enums import ShareSide
from src.pm_gateway.commands.models import (
    BuyCommand,
    BuyWithCashCommand,
    ResolveMarketCommand,
    SellCommand,
)


class BuyRequest(BaseModel):
    side: ShareSide
    shares: Decimal | None = None
    cash: Decimal | None = None

    @model_validator(mode="after")
    def _one_amount(self) -> "BuyRequest":
        if (self.shares is None) == (self.cash is None):
            raise ValueError("give exactly one of shares or cash")
        return self

    def to_command(self, market_id: int) -> BuyCommand | BuyWithCashCommand:
        if self.shares is not None:
            return BuyCommand(market_id=market_id, side=self.side, shares=self.shares)
        return BuyWithCashCommand(market_id=market_id, side=self.side, cash=self.cash)


class SellRequest(BaseModel):
    side: ShareSide
    shares: Decimal | None = None

    def to_command(self, market_id: int) -> SellCommand:
        return SellCommand(market_id=market_id, side=self.side, shares=self.shares)


class ResolveRequest(BaseModel):
    outcome: str

    def to_command(self, market_id: int) -> ResolveMarketCommand:
        return ResolveMarketCommand(market_id=market_id, outcome=self.outcome)
