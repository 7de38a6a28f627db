"""
Tests for the trading service: order acceptance, tick processing and
shutdown. Each test drives the service on its own event loop.
"""

import asyncio
from decimal import Decimal

import pytest

from backend.core.event_log import EventLevel
from backend.core.order import OrderSide, OrderStatus, OrderType
from backend.core.tick import Tick
from backend.services.feed_adapter import ReplayFeedAdapter
from backend.services.trading_service import TradingService
from backend.utils.exceptions import (
    InvalidStateException,
    MatchingInvariantError,
    ValidationException,
)


def run(coro):
    return asyncio.run(coro)


class TestOrderSubmission:
    """Test order submission through the service."""

    def test_submit_places_open_order(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=0)
            order = await service.submit_order(
                OrderSide.BUY, OrderType.LIMIT, Decimal("0.5"), Decimal("99")
            )
            return service, order

        service, order = run(scenario())

        assert order.status == OrderStatus.OPEN
        assert service.get_order(order.order_id) == order
        messages = [e.message for e in service.event_log.all()]
        assert messages == [
            "Sending order: BUY 0.5 BTCUSDT (LIMIT)",
            f"Order accepted by matching engine. ID: {order.order_id}",
            "Limit order active. Waiting for trigger price 99...",
        ]

    def test_invalid_order_fails_before_delay(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=10_000)
            with pytest.raises(ValidationException):
                await asyncio.wait_for(
                    service.submit_order(OrderSide.BUY, OrderType.LIMIT, Decimal("1")),
                    timeout=1.0
                )
            return service

        service = run(scenario())

        assert service.list_orders() == []
        assert len(service.event_log) == 0

    def test_acceptance_delay_applies(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=50)
            task = asyncio.create_task(
                service.submit_order(OrderSide.SELL, OrderType.MARKET, Decimal("1"))
            )
            await asyncio.sleep(0)
            await asyncio.sleep(0.01)
            pending = (service.pending_acceptances, len(service.list_orders()))
            await task
            return service, pending

        service, (pending, placed_early) = run(scenario())

        assert pending == 1
        assert placed_early == 0
        assert len(service.list_orders()) == 1

    def test_cancelled_acceptance_never_places(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=5_000)
            task = asyncio.create_task(
                service.submit_order(OrderSide.BUY, OrderType.MARKET, Decimal("1"))
            )
            await asyncio.sleep(0.01)
            cancelled = await service.cancel_pending_acceptances()
            with pytest.raises(InvalidStateException):
                await task
            return service, cancelled

        service, cancelled = run(scenario())

        assert cancelled == 1
        assert service.list_orders() == []
        assert service.pending_acceptances == 0


class TestTickProcessing:
    """Test the tick queue and matching task."""

    def test_reference_scenario_through_queue(self):
        async def scenario():
            service = TradingService(window_size=3, order_acceptance_delay_ms=0)
            await service.start()

            limit = await service.submit_order(
                OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("99")
            )
            for price in (100, 101, 99):
                service.ingest_tick(Tick(price=Decimal(price)))
            await service.drain()

            market = await service.submit_order(OrderSide.SELL, OrderType.MARKET, Decimal("1"))
            service.ingest_tick(Tick(price=Decimal("98")))
            await service.drain()

            await service.stop()
            return service, limit, market

        service, limit, market = run(scenario())

        assert service.get_order(limit.order_id).fill_price == Decimal("99")
        assert service.get_order(market.order_id).fill_price == Decimal("98")
        assert service.market_window.prices() == [Decimal("101"), Decimal("99"), Decimal("98")]
        assert service.list_orders(OrderStatus.OPEN) == []

    def test_cancel_order(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=0)
            order = await service.submit_order(
                OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("50")
            )
            cancelled = service.cancel_order(order.order_id)
            with pytest.raises(InvalidStateException):
                service.cancel_order(order.order_id)
            return service, cancelled

        service, cancelled = run(scenario())

        assert cancelled.status == OrderStatus.CANCELLED
        assert service.event_log.all()[-1].message.startswith("Order cancelled: BUY 1 BTCUSDT")

    def test_feed_adapter_drives_matching(self):
        async def scenario():
            feed = ReplayFeedAdapter("BTCUSDT", [100, 99, 98], interval=0.01)
            service = TradingService(order_acceptance_delay_ms=0, feed_adapter=feed)
            await service.submit_order(OrderSide.BUY, OrderType.LIMIT, Decimal("1"), Decimal("98"))
            await service.start()
            await feed.wait_closed()
            await service.drain()
            await service.stop()
            return service

        service = run(scenario())

        stats = service.get_statistics()
        assert stats["ticks_processed"] == 3
        assert stats["orders_filled"] == 1
        assert stats["feed_connected"] is False

    def test_invariant_breach_halts_matching(self):
        async def scenario():
            service = TradingService(order_acceptance_delay_ms=0)

            def broken(tick):
                raise MatchingInvariantError("book mutated")

            service.matching_engine.process_tick = broken
            await service.start()
            service.ingest_tick(Tick(price=Decimal("100")))
            service.ingest_tick(Tick(price=Decimal("101")))
            await service.drain()

            service.ingest_tick(Tick(price=Decimal("102")))
            halted = service.is_halted
            await service.stop()
            return service, halted

        service, halted = run(scenario())

        assert halted
        assert service.get_statistics()["matching_halted"] is True

    def test_feed_error_becomes_event(self):
        service = TradingService()
        service._on_feed_error(RuntimeError("socket closed"))

        event = service.event_log.all()[-1]
        assert event.level == EventLevel.ERROR
        assert "socket closed" in event.message
