"""CommandHandler — maps each tagged request onto one engine call."""

import logging

from pydantic import BaseModel

from src.pm_gateway.commands.models import (
    BalanceQuery,
    BalancesQuery,
    BuyCommand,
    BuyWithCashCommand,
    Command,
    CreateMarketCommand,
    ListMarketsQuery,
    PortfolioQuery,
    QuoteBuyQuery,
    QuoteSellQuery,
    ResolveMarketCommand,
    SellCommand,
    ShowMarketQuery,
    TipCommand,
)
from src.pm_ledger.application.service import Ledger
from src.pm_resolution.application.service import ResolutionEngine

logger = logging.getLogger(__name__)

CommandResult = BaseModel | list[BaseModel]


class CommandHandler:
    def __init__(self, ledger: Ledger, resolution: ResolutionEngine) -> None:
        self.ledger = ledger
        self.resolution = resolution

    async def handle(self, actor: str, command: Command) -> CommandResult:
        logger.debug("Command %s from %s", type(command).__name__, actor)
        ledger = self.ledger

        if isinstance(command, CreateMarketCommand):
            return await ledger.create_market(
                actor,
                command.question,
                description=command.description,
                fee=command.fee,
                close_at=command.close_at,
            )
        if isinstance(command, BuyCommand):
            return await ledger.buy(actor, command.market_id, command.side, command.shares)
        if isinstance(command, BuyWithCashCommand):
            return await ledger.buy_with_cash(
                actor, command.market_id, command.side, command.cash
            )
        if isinstance(command, SellCommand):
            return await ledger.sell(actor, command.market_id, command.side, command.shares)
        if isinstance(command, ResolveMarketCommand):
            return await self.resolution.resolve(command.market_id, actor, command.outcome)
        if isinstance(command, TipCommand):
            return await ledger.tip(actor, command.to_user_id, command.amount)
        if isinstance(command, BalanceQuery):
            return await ledger.balance(command.user_id or actor)
        if isinstance(command, BalancesQuery):
            return await ledger.balances()
        if isinstance(command, PortfolioQuery):
            return await ledger.portfolio(actor)
        if isinstance(command, ListMarketsQuery):
            return await ledger.list_open_markets()
        if isinstance(command, ShowMarketQuery):
            return await ledger.market(command.market_id)
        if isinstance(command, QuoteBuyQuery):
            return await ledger.quote_buy(
                command.market_id, command.side, shares=command.shares, cash=command.cash
            )
        if isinstance(command, QuoteSellQuery):
            return await ledger.quote_sell(command.market_id, command.side, command.shares)
        raise TypeError(f"unhandled command type: {type(command).__name__}")
