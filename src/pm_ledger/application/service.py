"""Ledger — the single writer of the market economy's GlobalState.

Every mutating operation runs through commit(): one asyncio.Lock serialises
all operations, the mutation validates everything before its first write (so
a rejected operation leaves no trace), a persistence snapshot is taken while
the lock is still held, and the snapshot is written after the lock is
released. Queries take the same lock so they never observe a half-applied
operation.

Amount arguments are user-facing decimal values (Decimal, int or numeric
string); they are converted to micro-units here.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from decimal import ROUND_DOWN, Decimal
from typing import TypeVar

from config.settings import settings
from src.pm_common.datetime_utils import as_utc, utc_now
from src.pm_common.enums import ShareSide
from src.pm_common.errors import (
    InsufficientFundsError,
    InsufficientSharesError,
    InvalidAmountError,
    MarketClosedError,
    MarketNotFoundError,
)
from src.pm_common.money import (
    from_units,
    positive_units,
    shares_to_display,
    to_units,
    units_to_display,
)
from src.pm_ledger.application.schemas import (
    BalanceOut,
    HoldingOut,
    MarketSnapshot,
    Portfolio,
    PortfolioPosition,
    QuoteOut,
    TipResult,
    TradeResult,
)
from src.pm_ledger.domain.invariants import verify_quote_on_curve
from src.pm_ledger.domain.models import GlobalState, Holding, Market, Trade, User
from src.pm_persistence.infrastructure.persistence import PersistenceManager
from src.pm_pricing.domain.cpmm import (
    Pool,
    Quote,
    apply_quote,
    price,
    probability_percent,
    quote_buy,
    quote_buy_for_cash,
    quote_sell,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Amount = Decimal | int | str

_VALUE_QUANTUM = Decimal("0.000001")


class Ledger:
    def __init__(
        self,
        state: GlobalState | None = None,
        persistence: PersistenceManager | None = None,
        clock: Callable[[], datetime] = utc_now,
        start_balance: Amount | None = None,
        creation_cost: Amount | None = None,
    ) -> None:
        self._state = state if state is not None else GlobalState()
        self._persistence = persistence
        self._clock = clock
        self._lock = asyncio.Lock()
        self._revision = 0
        self.start_balance = to_units(
            start_balance if start_balance is not None else settings.USER_START_BALANCE
        )
        self.creation_cost = to_units(
            creation_cost if creation_cost is not None else settings.MARKET_CREATION_COST
        )

    @property
    def state(self) -> GlobalState:
        """The live state. Read it only from tests or while no operation runs."""
        return self._state

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Commit protocol
    # ------------------------------------------------------------------

    async def commit(self, mutation: Callable[[GlobalState], T]) -> T:
        """Run `mutation` exclusively, then persist the resulting state."""
        async with self._lock:
            result = mutation(self._state)
            self._revision += 1
            snapshot = (
                self._persistence.snapshot(self._state, self._revision)
                if self._persistence is not None
                else None
            )
            if snapshot is not None:
                self._persistence.submit(snapshot)  # type: ignore[union-attr]
        if snapshot is not None:
            await self._persistence.save(snapshot)  # type: ignore[union-attr]
        return result

    async def read(self, query: Callable[[GlobalState], T]) -> T:
        async with self._lock:
            return query(self._state)

    # ------------------------------------------------------------------
    # Helpers (call with the lock held)
    # ------------------------------------------------------------------

    def peek_user(self, state: GlobalState, user_id: str) -> User:
        """Existing user, or a new one that is not yet part of the state."""
        user = state.users.get(user_id)
        if user is None:
            user = User(id=user_id, balance=self.start_balance)
        return user

    @staticmethod
    def attach_user(state: GlobalState, user: User) -> None:
        state.users.setdefault(user.id, user)

    @staticmethod
    def get_market(state: GlobalState, market_id: int) -> Market:
        market = state.markets.get(market_id)
        if market is None:
            raise MarketNotFoundError(market_id)
        return market

    def _tradable_market(self, state: GlobalState, market_id: int) -> Market:
        market = self.get_market(state, market_id)
        if not market.is_open:
            raise MarketClosedError(market_id, f"resolved ({market.status.value})")
        if not market.accepts_trades(self.now()):
            raise MarketClosedError(market_id, "past its close time")
        return market

    def _execute(self, state: GlobalState, user: User, market: Market, quote: Quote) -> TradeResult:
        """Apply a validated quote. Nothing in here may fail on user input."""
        pool = market.pool
        probability_before = probability_percent(pool)
        verify_quote_on_curve(market, quote)
        apply_quote(pool, quote)

        user.balance += quote.cash_delta
        holding = user.holdings.setdefault(market.id, Holding())
        holding.add(quote.side, quote.share_delta)
        if holding.is_empty:
            del user.holdings[market.id]
        self.attach_user(state, user)

        trade = Trade(
            sequence=state.next_trade_sequence,
            market_id=market.id,
            user_id=user.id,
            side=quote.side,
            share_delta=quote.share_delta,
            cash_delta=quote.cash_delta,
            price_after=price(pool, ShareSide.YES),
            created_at=self.now(),
        )
        state.trades.append(trade)
        logger.debug(
            "Trade #%d: user=%s market=%s %s shares=%d cash=%d",
            trade.sequence, user.id, market.id, quote.side.value,
            trade.share_delta, trade.cash_delta,
        )

        return TradeResult(
            sequence=trade.sequence,
            market_id=market.id,
            user_id=user.id,
            side=quote.side,
            shares=from_units(trade.share_delta),
            cash=from_units(trade.cash_delta),
            new_balance=from_units(user.balance),
            new_balance_display=units_to_display(user.balance),
            holding=HoldingOut.from_domain(user.holding(market.id)),
            price_after=price(pool, quote.side),
            probability_before=probability_before,
            probability_after=probability_percent(pool),
        )

    @staticmethod
    def _require_funds(user: User, units: int) -> None:
        if user.balance < units:
            raise InsufficientFundsError(
                units_to_display(units), units_to_display(user.balance)
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_user(self, user_id: str) -> BalanceOut:
        def mutation(state: GlobalState) -> BalanceOut:
            user = self.peek_user(state, user_id)
            self.attach_user(state, user)
            return BalanceOut.build(user.id, user.balance)

        return await self.commit(mutation)

    async def create_market(
        self,
        creator: str,
        question: str,
        description: str = "",
        fee: Amount | None = None,
        close_at: datetime | None = None,
    ) -> MarketSnapshot:
        fee_units = self.creation_cost if fee is None else positive_units(fee)
        if fee_units < 2:
            raise InvalidAmountError("market creation cost must cover one unit per side")

        def mutation(state: GlobalState) -> MarketSnapshot:
            user = self.peek_user(state, creator)
            self._require_funds(user, fee_units)

            now = self.now()
            liquidity = fee_units // 2
            market = Market(
                id=state.next_market_id,
                creator=creator,
                question=question,
                description=description,
                pool=Pool.seeded(liquidity),
                liquidity=liquidity,
                created_at=now,
                close_at=as_utc(close_at) if close_at is not None else None,
            )
            user.balance -= fee_units
            self.attach_user(state, user)
            state.markets[market.id] = market
            state.next_market_id += 1
            logger.info(
                "Market created: id=%s creator=%s fee=%s question=%r",
                market.id, creator, units_to_display(fee_units), question,
            )
            return MarketSnapshot.from_domain(market, now)

        return await self.commit(mutation)

    async def buy(
        self, user_id: str, market_id: int, side: ShareSide, shares: Amount
    ) -> TradeResult:
        def mutation(state: GlobalState) -> TradeResult:
            market = self._tradable_market(state, market_id)
            quote = quote_buy(market.pool, side, positive_units(shares))
            user = self.peek_user(state, user_id)
            self._require_funds(user, quote.cash)
            return self._execute(state, user, market, quote)

        return await self.commit(mutation)

    async def buy_with_cash(
        self, user_id: str, market_id: int, side: ShareSide, cash: Amount
    ) -> TradeResult:
        def mutation(state: GlobalState) -> TradeResult:
            market = self._tradable_market(state, market_id)
            cash_units = positive_units(cash)
            user = self.peek_user(state, user_id)
            self._require_funds(user, cash_units)
            quote = quote_buy_for_cash(market.pool, side, cash_units)
            return self._execute(state, user, market, quote)

        return await self.commit(mutation)

    async def sell(
        self, user_id: str, market_id: int, side: ShareSide, shares: Amount | None = None
    ) -> TradeResult:
        """Sell `shares` of `side`; None sells the whole holding of that side."""

        def mutation(state: GlobalState) -> TradeResult:
            market = self._tradable_market(state, market_id)
            user = self.peek_user(state, user_id)
            held = user.holding(market_id).get(side)
            units = held if shares is None else positive_units(shares)
            if units == 0 or held < units:
                raise InsufficientSharesError(
                    shares_to_display(units), shares_to_display(held)
                )
            quote = quote_sell(market.pool, side, units)
            return self._execute(state, user, market, quote)

        return await self.commit(mutation)

    async def tip(self, from_id: str, to_id: str, amount: Amount) -> TipResult:
        units = positive_units(amount)

        def mutation(state: GlobalState) -> TipResult:
            sender = self.peek_user(state, from_id)
            self._require_funds(sender, units)
            if from_id == to_id:
                self.attach_user(state, sender)
                recipient = sender
            else:
                recipient = self.peek_user(state, to_id)
                sender.balance -= units
                recipient.balance += units
                self.attach_user(state, sender)
                self.attach_user(state, recipient)
            logger.info("Tip: %s -> %s %s", from_id, to_id, units_to_display(units))
            return TipResult(
                from_user_id=from_id,
                to_user_id=to_id,
                amount=from_units(units),
                from_balance=from_units(sender.balance),
                to_balance=from_units(recipient.balance),
            )

        return await self.commit(mutation)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def balance(self, user_id: str) -> BalanceOut:
        def query(state: GlobalState) -> BalanceOut:
            return BalanceOut.build(user_id, self.peek_user(state, user_id).balance)

        return await self.read(query)

    async def balances(self) -> list[BalanceOut]:
        """Every known user, richest first."""

        def query(state: GlobalState) -> list[BalanceOut]:
            ranked = sorted(state.users.values(), key=lambda u: (-u.balance, u.id))
            return [BalanceOut.build(u.id, u.balance) for u in ranked]

        return await self.read(query)

    async def portfolio(self, user_id: str) -> Portfolio:
        def query(state: GlobalState) -> Portfolio:
            user = self.peek_user(state, user_id)
            positions = []
            for market_id, holding in sorted(user.holdings.items()):
                market = state.markets[market_id]
                if not market.is_open:
                    continue
                for side in ShareSide:
                    amount = holding.get(side)
                    if amount == 0:
                        continue
                    mark = price(market.pool, side)
                    positions.append(
                        PortfolioPosition(
                            market_id=market_id,
                            question=market.question,
                            side=side,
                            amount=from_units(amount),
                            mark_price=mark,
                            mark_value=(from_units(amount) * mark).quantize(
                                _VALUE_QUANTUM, rounding=ROUND_DOWN
                            ),
                        )
                    )
            return Portfolio(
                user_id=user_id,
                cash=from_units(user.balance),
                cash_display=units_to_display(user.balance),
                positions=positions,
            )

        return await self.read(query)

    async def list_open_markets(self) -> list[MarketSnapshot]:
        def query(state: GlobalState) -> list[MarketSnapshot]:
            now = self.now()
            return [
                MarketSnapshot.from_domain(m, now)
                for _, m in sorted(state.markets.items())
                if m.is_open
            ]

        return await self.read(query)

    async def market(self, market_id: int) -> MarketSnapshot:
        """Single market with its current positions and transaction history."""

        def query(state: GlobalState) -> MarketSnapshot:
            market = self.get_market(state, market_id)
            holders = [u for u in state.users.values() if market_id in u.holdings]
            return MarketSnapshot.from_domain(
                market, self.now(), holders, state.trades_for(market_id)
            )

        return await self.read(query)

    async def quote_buy(
        self,
        market_id: int,
        side: ShareSide,
        shares: Amount | None = None,
        cash: Amount | None = None,
    ) -> QuoteOut:
        """Preview a buy by share amount or by cash to spend, without trading."""
        if (shares is None) == (cash is None):
            raise InvalidAmountError("give exactly one of shares or cash")

        def query(state: GlobalState) -> QuoteOut:
            market = self._tradable_market(state, market_id)
            if shares is not None:
                quote = quote_buy(market.pool, side, positive_units(shares))
            else:
                quote = quote_buy_for_cash(market.pool, side, positive_units(cash))  # type: ignore[arg-type]
            return QuoteOut.from_quote(market, quote)

        return await self.read(query)

    async def quote_sell(self, market_id: int, side: ShareSide, shares: Amount) -> QuoteOut:
        def query(state: GlobalState) -> QuoteOut:
            market = self._tradable_market(state, market_id)
            return QuoteOut.from_quote(market, quote_sell(market.pool, side, positive_units(shares)))

        return await self.read(query)
