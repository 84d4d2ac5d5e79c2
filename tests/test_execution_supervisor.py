"""End-to-end tests for one execution attempt against an in-memory venue."""

import asyncio
from decimal import Decimal, InvalidOperation
from unittest.mock import AsyncMock

import pytest

from config import ExecutionConfig
from conftest import TICK_ERROR, FailingSink, FakeVenue, build_supervisor, error_reply, resting_reply
from exchange.models import (
    Direction,
    ErrorCode,
    ExecutionState,
    Filled,
    Rejected,
    Resting,
    TimedOut,
    TradeIntent,
    TransportError,
    Treatment,
)
from trading.errors import (
    ExecutionInProgress,
    InvalidTradeIntent,
    InvariantViolation,
    SigningUnavailable,
    VenueTransportError,
)


def _intent(symbol="BTC", direction=Direction.LONG, size="0.01", leverage="10"):
    return TradeIntent(
        asset_symbol=symbol,
        direction=direction,
        size=Decimal(size),
        leverage=Decimal(leverage),
    )


def _short_deadline(**overrides):
    params = dict(
        deadline_sec=0.2,
        call_timeout_sec=0.1,
        tick_size_candidates=[Decimal("0.5"), Decimal("0.1"), Decimal("1.0")],
        trading_enabled=True,
    )
    params.update(overrides)
    return ExecutionConfig(**params)


class TestHappyPath:

    @pytest.mark.asyncio
    async def test_filled_buy(self, supervisor, venue, db):
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, Filled)
        assert result.treatment is Treatment.SUCCESS
        assert result.state is ExecutionState.TERMINAL
        assert result.reference_price == Decimal("97000.23")
        assert result.attempts[0].limit_price == Decimal("98941")
        assert venue.events == ["price", "leverage", "order"]

        records = db.recent()
        assert len(records) == 1
        assert records[0].status == "filled"
        assert records[0].entry_price == Decimal("98941.0")
        assert records[0].exchange_order_id == "1001"
        assert records[0].error_message is None

    @pytest.mark.asyncio
    async def test_states_progress_in_order(self, supervisor):
        result = await supervisor.execute(_intent())
        assert result.states == [
            ExecutionState.IDLE,
            ExecutionState.RESOLVING,
            ExecutionState.PRICING_AND_LEVERAGE,
            ExecutionState.NEGOTIATING,
            ExecutionState.TERMINAL,
        ]

    @pytest.mark.asyncio
    async def test_resting_logs_limit_price(self, supervisor, venue, db):
        venue.order_replies = [resting_reply(oid=42)]
        result = await supervisor.execute(_intent())

        assert result.outcome == Resting(oid="42")
        record = db.recent()[0]
        assert record.status == "resting"
        assert record.entry_price == Decimal("98941")

    @pytest.mark.asyncio
    async def test_leverage_is_set_for_resolved_index(self, supervisor, venue):
        await supervisor.execute(_intent(symbol="ETH", leverage="5"))
        assert venue.leverage_calls == [(1, 5, True)]
        assert venue.orders[0].asset_index == 1

    @pytest.mark.asyncio
    async def test_negotiates_through_tick_rejections(self, supervisor, venue, db):
        venue.order_replies = [error_reply(TICK_ERROR), error_reply(TICK_ERROR), resting_reply()]
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, Resting)
        assert len(venue.orders) == 3
        assert len(venue.leverage_calls) == 1
        assert db.count() == 1

    @pytest.mark.asyncio
    async def test_stale_price_is_flagged(self, supervisor, venue):
        await supervisor.execute(_intent())
        venue.price_error = VenueTransportError("connection refused")

        result = await supervisor.execute(_intent())
        assert isinstance(result.outcome, Filled)
        assert result.price_stale is True

    @pytest.mark.asyncio
    async def test_notifier_receives_result(self, venue, db, exec_config):
        notifier = AsyncMock()
        supervisor = build_supervisor(venue, db, exec_config, notifier=notifier)
        result = await supervisor.execute(_intent())
        notifier.send_execution_result.assert_awaited_once_with(result)


class TestFailures:

    @pytest.mark.asyncio
    async def test_leverage_failure_submits_no_order(self, supervisor, venue, db):
        venue.leverage_reply = {"status": "err", "response": "Invalid leverage value"}
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, Rejected)
        assert result.outcome.code is ErrorCode.LEVERAGE_CONFIG_FAILED
        assert venue.orders == []
        assert venue.events == ["price", "leverage"]
        records = db.recent()
        assert len(records) == 1
        assert records[0].status == "rejected"
        assert records[0].entry_price == Decimal("0")

    @pytest.mark.asyncio
    async def test_unknown_asset_is_rejected_and_logged(self, supervisor, venue, db):
        result = await supervisor.execute(_intent(symbol="DOGE"))

        assert isinstance(result.outcome, Rejected)
        assert result.outcome.code is ErrorCode.UNKNOWN_ASSET
        assert venue.events == []
        assert db.recent()[0].symbol == "DOGE"

    @pytest.mark.asyncio
    async def test_catalog_unavailable_is_transport_error(self, supervisor, venue, db):
        venue.meta_error = VenueTransportError("connection refused")
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, TransportError)
        assert result.outcome.code is ErrorCode.CATALOG_UNAVAILABLE
        assert db.recent()[0].status == "transport_error"

    @pytest.mark.asyncio
    async def test_no_price_is_transport_error_without_leverage(self, supervisor, venue):
        venue.price_error = VenueTransportError("connection refused")
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, TransportError)
        assert result.outcome.code is ErrorCode.NO_PRICE_AVAILABLE
        assert venue.leverage_calls == []

    @pytest.mark.asyncio
    async def test_size_below_precision_is_rejected_before_leverage(self, supervisor, venue, db):
        result = await supervisor.execute(_intent(size="0.000001"))

        assert isinstance(result.outcome, Rejected)
        assert result.outcome.code is ErrorCode.MIN_SIZE
        assert venue.leverage_calls == []
        assert db.count() == 1

    @pytest.mark.asyncio
    async def test_order_transport_failure(self, supervisor, venue, db):
        venue.order_replies = [VenueTransportError("connection reset")]
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, TransportError)
        assert len(venue.orders) == 1
        assert db.recent()[0].status == "transport_error"

    @pytest.mark.asyncio
    async def test_exhausted_negotiation(self, supervisor, venue, db):
        venue.order_replies = [error_reply(TICK_ERROR)] * 3
        result = await supervisor.execute(_intent())

        assert result.outcome.code is ErrorCode.TICK_SIZE_EXHAUSTED
        assert result.outcome.last_error == TICK_ERROR
        assert len(venue.orders) == 3
        assert db.count() == 1

    @pytest.mark.asyncio
    async def test_failing_sink_keeps_outcome(self, venue, exec_config):
        supervisor = build_supervisor(venue, FailingSink(), exec_config)
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, Filled)
        assert result.log_warning is not None
        assert "database is locked" in result.log_warning
        assert result.log_record is not None

    @pytest.mark.asyncio
    async def test_unrecognized_reply_is_logged_then_raised(self, supervisor, venue, db):
        venue.order_replies = [{"status": "ok"}]
        with pytest.raises(InvariantViolation):
            await supervisor.execute(_intent())

        records = db.recent()
        assert len(records) == 1
        assert records[0].status == "invariant_violation"
        assert records[0].entry_price == Decimal("98941")
        assert not supervisor.busy


class TestDeadline:

    @pytest.mark.asyncio
    async def test_slow_order_times_out_and_is_abandoned(self, venue, db):
        venue.order_delay = 5
        supervisor = build_supervisor(venue, db, _short_deadline())
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, TimedOut)
        assert result.treatment is Treatment.AMBIGUOUS
        assert "Check your positions" in result.user_message
        assert venue.order_cancelled is True
        records = db.recent()
        assert len(records) == 1
        assert records[0].status == "timed_out"

    @pytest.mark.asyncio
    async def test_hung_leverage_call_times_out_without_order(self, venue, db):
        venue.hang_on = "leverage"
        supervisor = build_supervisor(venue, db, _short_deadline())
        result = await supervisor.execute(_intent())

        assert isinstance(result.outcome, TimedOut)
        assert venue.orders == []
        assert db.count() == 1


class TestDirectExecution:

    @pytest.mark.asyncio
    async def test_single_submission_at_given_tick(self, supervisor, venue):
        venue.order_replies = [error_reply(TICK_ERROR)]
        result = await supervisor.execute_direct(_intent(), tick_size=Decimal("1.0"))

        assert result.direct is True
        assert isinstance(result.outcome, Rejected)
        assert result.outcome.code is ErrorCode.TICK_SIZE
        assert len(venue.orders) == 1
        assert result.attempts[0].candidate_tick_size == Decimal("1.0")

    @pytest.mark.asyncio
    async def test_defaults_to_first_candidate(self, supervisor, venue, db):
        result = await supervisor.execute_direct(_intent())

        assert isinstance(result.outcome, Filled)
        assert result.attempts[0].candidate_tick_size == Decimal("0.5")
        assert venue.events == ["price", "leverage", "order"]
        assert db.count() == 1


class TestPreflight:

    @pytest.mark.asyncio
    async def test_no_signing_credentials(self, supervisor, venue, db):
        venue.can_sign = False
        with pytest.raises(SigningUnavailable):
            await supervisor.execute(_intent())
        assert venue.events == []
        assert db.count() == 0

    @pytest.mark.asyncio
    async def test_leverage_above_configured_max(self, venue, db):
        supervisor = build_supervisor(venue, db, _short_deadline(max_leverage=Decimal("20")))
        with pytest.raises(InvalidTradeIntent):
            await supervisor.execute(_intent(leverage="25"))
        assert db.count() == 0

    @pytest.mark.asyncio
    async def test_second_confirmation_while_in_flight(self, venue, db, exec_config):
        venue.order_delay = 0.2
        supervisor = build_supervisor(venue, db, exec_config)

        first = asyncio.ensure_future(supervisor.execute(_intent()))
        while not supervisor.busy:
            await asyncio.sleep(0)
        with pytest.raises(ExecutionInProgress):
            await supervisor.execute(_intent())

        result = await first
        assert isinstance(result.outcome, Filled)
        assert len(venue.orders) == 1
        assert db.count() == 1


class TestPreview:

    @pytest.mark.asyncio
    async def test_preview_places_nothing(self, supervisor, venue):
        preview = await supervisor.preview(_intent())

        assert preview.limit_price == Decimal("98941")
        assert preview.tick_size == Decimal("0.5")
        assert preview.estimated_margin == Decimal("97.00023")
        assert venue.leverage_calls == []
        assert venue.orders == []


def _venue_with_doge():
    venue = FakeVenue(
        universe=[{"name": "BTC", "szDecimals": 5}, {"name": "DOGE", "szDecimals": 0}],
        prices=[Decimal("97000.23"), Decimal("0.15")],
    )
    return venue


class TestLowPricedSells:

    @pytest.mark.asyncio
    async def test_short_falls_through_to_finer_tick(self, db, exec_config):
        venue = _venue_with_doge()
        supervisor = build_supervisor(venue, db, exec_config)
        result = await supervisor.execute(_intent(symbol="DOGE", direction=Direction.SHORT, size="100", leverage="3"))

        assert isinstance(result.outcome, Filled)
        assert len(venue.orders) == 1
        assert venue.orders[0].limit_price == Decimal("0.1")
        assert venue.orders[0].is_buy is False
        assert db.count() == 1

    @pytest.mark.asyncio
    async def test_direct_default_uses_first_tick_that_prices(self, db, exec_config):
        venue = _venue_with_doge()
        supervisor = build_supervisor(venue, db, exec_config)
        result = await supervisor.execute_direct(_intent(symbol="DOGE", direction=Direction.SHORT, size="100", leverage="3"))

        assert result.attempts[0].candidate_tick_size == Decimal("0.1")
        assert len(venue.orders) == 1

    @pytest.mark.asyncio
    async def test_direct_with_coarse_tick_is_rejected_without_order(self, db, exec_config):
        venue = _venue_with_doge()
        supervisor = build_supervisor(venue, db, exec_config)
        result = await supervisor.execute_direct(
            _intent(symbol="DOGE", direction=Direction.SHORT, size="100", leverage="3"),
            tick_size=Decimal("0.5"),
        )

        assert isinstance(result.outcome, Rejected)
        assert result.outcome.code is ErrorCode.TICK_SIZE
        assert venue.orders == []
        assert db.recent()[0].status == "rejected"

    @pytest.mark.asyncio
    async def test_preview_reports_viable_tick(self, db, exec_config):
        supervisor = build_supervisor(_venue_with_doge(), db, exec_config)
        preview = await supervisor.preview(_intent(symbol="DOGE", direction=Direction.SHORT, size="100", leverage="3"))
        assert preview.tick_size == Decimal("0.1")
        assert preview.limit_price == Decimal("0.1")


class TestUnexpectedFailures:

    @pytest.mark.asyncio
    async def test_signer_failure_is_logged_then_raised(self, supervisor, venue, db):
        venue.order_replies = [RuntimeError("signing backend failure")]
        with pytest.raises(RuntimeError):
            await supervisor.execute(_intent())

        records = db.recent()
        assert len(records) == 1
        assert records[0].status == "error"
        assert "signing backend failure" in records[0].error_message
        assert not supervisor.busy

    @pytest.mark.asyncio
    async def test_malformed_mark_price_is_logged_then_raised(self, supervisor, venue, db):
        venue.prices = ["not-a-price", Decimal("3500.5"), Decimal("150.25")]
        with pytest.raises(InvalidOperation):
            await supervisor.execute(_intent())
        assert db.count() == 1
        assert db.recent()[0].status == "error"
