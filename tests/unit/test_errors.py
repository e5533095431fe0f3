"""Tests for pm_common.errors and pm_common.response."""

from src.pm_common.errors import (
    AppError,
    InsufficientFundsError,
    InsufficientLiquidityError,
    InsufficientSharesError,
    InvalidAmountError,
    InvalidOutcomeError,
    MarketAlreadyResolvedError,
    MarketClosedError,
    MarketNotFoundError,
    NotMarketCreatorError,
    PersistenceError,
)
from src.pm_common.response import ApiResponse, error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500

    def test_custom_http_status(self) -> None:
        err = AppError(code=3001, message="gone", http_status=404)
        assert err.http_status == 404

    def test_is_exception(self) -> None:
        assert isinstance(AppError(code=1, message="x"), Exception)


class TestSpecificErrors:
    def test_insufficient_funds(self) -> None:
        err = InsufficientFundsError(required="$50.00", available="$12.30")
        assert err.code == 2001
        assert err.http_status == 422
        assert "$50.00" in err.message
        assert "$12.30" in err.message

    def test_market_not_found(self) -> None:
        err = MarketNotFoundError(7)
        assert err.code == 3001
        assert err.http_status == 404
        assert "7" in err.message

    def test_market_closed(self) -> None:
        err = MarketClosedError(3, "past its close time")
        assert err.code == 3002
        assert err.http_status == 422
        assert "past its close time" in err.message

    def test_already_resolved_is_conflict(self) -> None:
        err = MarketAlreadyResolvedError(3, "RESOLVED_YES")
        assert err.code == 3003
        assert err.http_status == 409
        assert "RESOLVED_YES" in err.message

    def test_not_creator_is_forbidden(self) -> None:
        err = NotMarketCreatorError(3)
        assert err.code == 3004
        assert err.http_status == 403

    def test_invalid_outcome(self) -> None:
        err = InvalidOutcomeError("MAYBE")
        assert err.code == 3005
        assert "MAYBE" in err.message

    def test_trade_errors(self) -> None:
        assert InsufficientLiquidityError("pool empty").code == 4001
        assert InvalidAmountError("negative").code == 4002
        assert InsufficientSharesError("10.00", "2.00").code == 5001

    def test_persistence(self) -> None:
        err = PersistenceError("disk full")
        assert err.code == 9003
        assert err.http_status == 500
        assert "disk full" in err.message


class TestApiResponse:
    def test_success(self) -> None:
        resp = success_response({"market_id": 0})
        assert resp.code == 0
        assert resp.message == "success"
        assert resp.data == {"market_id": 0}

    def test_error(self) -> None:
        resp = error_response(2001, "Insufficient funds")
        assert resp.code == 2001
        assert resp.message == "Insufficient funds"
        assert resp.data is None

    def test_request_id_passed_through(self) -> None:
        resp = success_response(None, request_id="req_abc")
        assert resp.request_id == "req_abc"

    def test_generated_request_id(self) -> None:
        resp = ApiResponse()
        assert resp.request_id.startswith("req_")
        assert len(resp.request_id) == 16

    def test_serialization(self) -> None:
        d = success_response({"price": "0.5"}).model_dump()
        for key in ("code", "message", "data", "timestamp", "request_id"):
            assert key in d
