"""Market engine HTTP router.

Every route turns its input into a tagged command and runs it through the
CommandHandler stored on app.state, so REST and POST /commands share one
code path. All endpoints return ApiResponse; request_id is read from
request.state (injected by RequestLogMiddleware).

The acting user comes from the X-User-Id header; identity is owned by the
chat platform in front of this service, so no authentication happens here.
"""

from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, status

from src.pm_common.enums import ShareSide
from src.pm_common.errors import InvalidAmountError
from src.pm_common.response import ApiResponse, success_response
from src.pm_gateway.api.schemas import BuyRequest, ResolveRequest, SellRequest
from src.pm_gateway.commands.handler import CommandHandler, CommandResult
from src.pm_gateway.commands.models import (
    BalanceQuery,
    BalancesQuery,
    Command,
    CommandRequest,
    CreateMarketCommand,
    ListMarketsQuery,
    PortfolioQuery,
    QuoteBuyQuery,
    ShowMarketQuery,
    TipCommand,
)

router = APIRouter(tags=["market-engine"])


def get_handler(request: Request) -> CommandHandler:
    return request.app.state.handler


def get_user_id(x_user_id: Annotated[str, Header(min_length=1)]) -> str:
    return x_user_id


Handler = Annotated[CommandHandler, Depends(get_handler)]
UserId = Annotated[str, Depends(get_user_id)]


def _get_request_id(request: Request) -> str:
    """Read request_id injected by RequestLogMiddleware, fallback if absent."""
    return getattr(request.state, "request_id", "req_unknown")


def _dump(result: CommandResult) -> object:
    if isinstance(result, list):
        return [item.model_dump(mode="json") for item in result]
    return result.model_dump(mode="json")


async def _run(
    request: Request, handler: CommandHandler, user_id: str, command: Command
) -> ApiResponse:
    result = await handler.handle(user_id, command)
    return success_response(_dump(result), request_id=_get_request_id(request))


@router.post("/commands", response_model=ApiResponse, summary="Run any tagged command")
async def run_command(
    request: Request, body: CommandRequest, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body.root)


# --- Accounts ---

@router.get("/balance", response_model=ApiResponse)
async def get_balance(request: Request, handler: Handler, user_id: UserId) -> ApiResponse:
    return await _run(request, handler, user_id, BalanceQuery())


@router.get("/balances", response_model=ApiResponse, summary="Leaderboard")
async def get_balances(request: Request, handler: Handler, user_id: UserId) -> ApiResponse:
    return await _run(request, handler, user_id, BalancesQuery())


@router.get("/portfolio", response_model=ApiResponse)
async def get_portfolio(request: Request, handler: Handler, user_id: UserId) -> ApiResponse:
    return await _run(request, handler, user_id, PortfolioQuery())


@router.post("/tips", response_model=ApiResponse)
async def send_tip(
    request: Request, body: TipCommand, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body)


# --- Markets ---

@router.get("/markets", response_model=ApiResponse, summary="Open markets")
async def list_markets(request: Request, handler: Handler, user_id: UserId) -> ApiResponse:
    return await _run(request, handler, user_id, ListMarketsQuery())


@router.post("/markets", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def create_market(
    request: Request, body: CreateMarketCommand, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body)


@router.get("/markets/{market_id}", response_model=ApiResponse)
async def show_market(
    request: Request, market_id: int, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, ShowMarketQuery(market_id=market_id))


@router.get("/markets/{market_id}/quote", response_model=ApiResponse, summary="Preview a buy")
async def quote_buy(
    request: Request,
    market_id: int,
    handler: Handler,
    user_id: UserId,
    side: ShareSide = Query(...),
    shares: Decimal | None = Query(None),
    cash: Decimal | None = Query(None),
) -> ApiResponse:
    if (shares is None) == (cash is None):
        raise InvalidAmountError("give exactly one of shares or cash")
    query = QuoteBuyQuery(market_id=market_id, side=side, shares=shares, cash=cash)
    return await _run(request, handler, user_id, query)


@router.post("/markets/{market_id}/buy", response_model=ApiResponse)
async def buy(
    request: Request, market_id: int, body: BuyRequest, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body.to_command(market_id))


@router.post("/markets/{market_id}/sell", response_model=ApiResponse)
async def sell(
    request: Request, market_id: int, body: SellRequest, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body.to_command(market_id))


@router.post("/markets/{market_id}/resolve", response_model=ApiResponse)
async def resolve(
    request: Request, market_id: int, body: ResolveRequest, handler: Handler, user_id: UserId
) -> ApiResponse:
    return await _run(request, handler, user_id, body.to_command(market_id))
