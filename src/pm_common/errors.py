"""Unified error codes and custom exceptions.

Error code ranges:
  2xxx: Account (cash)
  3xxx: Market lifecycle
  4xxx: Trade
  5xxx: Position
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 2xxx: Account ---

class InsufficientFundsError(AppError):
    def __init__(self, required: str, available: str) -> None:
        super().__init__(
            2001,
            f"Insufficient funds: required {required}, available {available}",
            422,
        )


# --- 3xxx: Market ---

class MarketNotFoundError(AppError):
    def __init__(self, market_id: int) -> None:
        super().__init__(3001, f"Market not found: {market_id}", 404)


class MarketClosedError(AppError):
    def __init__(self, market_id: int, reason: str = "closed for trading") -> None:
        super().__init__(3002, f"Market {market_id} is {reason}", 422)


class MarketAlreadyResolvedError(AppError):
    def __init__(self, market_id: int, status: str) -> None:
        super().__init__(3003, f"Market {market_id} is already resolved ({status})", 409)


class NotMarketCreatorError(AppError):
    def __init__(self, market_id: int) -> None:
        super().__init__(
            3004, f"Only the creator of market {market_id} can resolve it", 403
        )


class InvalidOutcomeError(AppError):
    def __init__(self, outcome: str) -> None:
        super().__init__(
            3005, f"Invalid outcome: {outcome!r} (expected YES, NO or UNDO)", 422
        )


# --- 4xxx: Trade ---

class InsufficientLiquidityError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4001, f"Insufficient liquidity: {detail}", 422)


class InvalidAmountError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(4002, f"Invalid amount: {detail}", 422)


# --- 5xxx: Position ---

class InsufficientSharesError(AppError):
    def __init__(self, required: str, available: str) -> None:
        super().__init__(
            5001,
            f"Insufficient shares: required {required}, available {available}",
            422,
        )


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class PersistenceError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9003, f"Persistence failure: {detail}", 500)
