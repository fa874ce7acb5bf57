"""
Unit tests for the relay loop.
"""

import asyncio
import logging

import pytest

from certrelay.errors import PublishError, SerializationError, TransportError
from certrelay.fast_path.liveness import LivenessState
from certrelay.fast_path.relay import (
    LIFETIME_EXPIRED,
    PUBLISH_FAILED,
    STOPPED,
    TRANSPORT_FAILED,
    RelayLoop,
)
from fakes import FakeSource, FakeSubscription, RecordingPublisher, TickingClock, make_event


def make_relay(publisher=None, source=None, lifetime=0.1, fail_with=None):
    liveness = LivenessState(clock=TickingClock())
    publisher = publisher or RecordingPublisher(liveness=liveness, fail_with=fail_with)
    relay = RelayLoop(
        publisher,
        source=source or FakeSource(),
        liveness=liveness,
        lifetime_seconds=lifetime,
        reconnect_delay_seconds=0,
    )
    relay.running = True
    return relay


class TestRunSubscription:
    """Test a single subscription's RUNNING state."""

    @pytest.mark.asyncio
    async def test_happy_path(self, cert_event):
        """Test an event is projected, published, and advances both timestamps."""
        relay = make_relay()
        subscription = FakeSubscription(events=[cert_event])

        reason = await relay.run_subscription(subscription)

        assert reason == LIFETIME_EXPIRED
        publisher = relay.publisher
        assert [r.to_json() for r in publisher.records] == [
            '{"domains":["a.example","b.example"],"not_before":1700000000,'
            '"not_after":1731536000,"serial_number":"0A1B","fingerprint":"",'
            '"issuer_cn":"CN=Test"}'
        ]
        assert relay.liveness.last_read > 0
        assert relay.liveness.last_sent > relay.liveness.last_read
        assert relay.relayed == 1

    @pytest.mark.asyncio
    async def test_unknown_type_counts_as_read(self, caplog):
        """Test a heartbeat advances last_read only, with a warning and no teardown."""
        relay = make_relay()
        subscription = FakeSubscription(events=[{"message_type": "heartbeat"}])

        with caplog.at_level(logging.WARNING, logger="certrelay.fast_path.relay"):
            reason = await relay.run_subscription(subscription)

        assert reason == LIFETIME_EXPIRED
        assert relay.publisher.records == []
        assert relay.liveness.last_read > 0
        assert relay.liveness.last_sent == 0
        assert relay.rejected == 1
        assert "UnknownType" in caplog.text

    @pytest.mark.asyncio
    async def test_missing_field_counts_as_read(self, cert_event, caplog):
        """Test a certificate_update without serial_number is skipped."""
        del cert_event["data"]["leaf_cert"]["serial_number"]
        relay = make_relay()
        subscription = FakeSubscription(events=[cert_event])

        with caplog.at_level(logging.WARNING, logger="certrelay.fast_path.relay"):
            reason = await relay.run_subscription(subscription)

        assert reason == LIFETIME_EXPIRED
        assert relay.publisher.records == []
        assert relay.liveness.last_read > 0
        assert relay.liveness.last_sent == 0
        assert "data.leaf_cert.serial_number" in caplog.text

    @pytest.mark.asyncio
    async def test_upstream_fault_tears_down(self, cert_event):
        """Test a transport error ends the subscription after queued events."""
        relay = make_relay(lifetime=5)
        subscription = FakeSubscription(events=[cert_event], error=TransportError("reset"))

        reason = await relay.run_subscription(subscription)

        assert reason == TRANSPORT_FAILED
        assert len(relay.publisher.records) == 1

    @pytest.mark.asyncio
    async def test_publish_fault_tears_down(self, cert_event):
        """Test a synchronous publish error ends the subscription without marking sent."""
        relay = make_relay(lifetime=5, fail_with=PublishError("broker down"))
        subscription = FakeSubscription(events=[cert_event, make_event("0A1C")])

        reason = await relay.run_subscription(subscription)

        assert reason == PUBLISH_FAILED
        assert relay.liveness.last_read > 0
        assert relay.liveness.last_sent == 0
        # Second event never reached the publisher.
        assert len(relay.publisher.read_at_publish) == 1

    @pytest.mark.asyncio
    async def test_serialization_fault_tears_down(self, cert_event):
        """Test encoding failures are treated like publish failures."""
        relay = make_relay(lifetime=5, fail_with=SerializationError("bad"))
        reason = await relay.run_subscription(FakeSubscription(events=[cert_event]))
        assert reason == PUBLISH_FAILED
        assert relay.liveness.last_sent == 0

    @pytest.mark.asyncio
    async def test_unexpected_publisher_exception_tears_down(self, cert_event):
        """Test a publisher bug does not escape the loop."""
        relay = make_relay(lifetime=5, fail_with=RuntimeError("bug"))
        reason = await relay.run_subscription(FakeSubscription(events=[cert_event]))
        assert reason == PUBLISH_FAILED

    @pytest.mark.asyncio
    async def test_lifetime_expiry(self):
        """Test a silent upstream is recycled once the lifetime runs out."""
        relay = make_relay(lifetime=0.05)
        loop = asyncio.get_running_loop()
        started = loop.time()

        reason = await relay.run_subscription(FakeSubscription())

        elapsed = loop.time() - started
        assert reason == LIFETIME_EXPIRED
        assert 0.04 <= elapsed < 1.0
        assert relay.liveness.last_read == 0

    @pytest.mark.asyncio
    async def test_publisher_order_preserved(self):
        """Test records reach the publisher in upstream order."""
        serials = [f"{i:04X}" for i in range(20)]
        relay = make_relay(lifetime=5)
        subscription = FakeSubscription(
            events=[make_event(s) for s in serials], error=TransportError("done")
        )

        await relay.run_subscription(subscription)

        assert [r.serial_number for r in relay.publisher.records] == serials

    @pytest.mark.asyncio
    async def test_read_before_send_and_monotonic(self):
        """Test every publish sees its read mark, and marks never go backwards."""
        relay = make_relay(lifetime=5)
        events = [make_event("01"), {"message_type": "heartbeat"}, make_event("02")]
        subscription = FakeSubscription(events=events, error=TransportError("done"))

        await relay.run_subscription(subscription)

        publisher = relay.publisher
        reads = publisher.read_at_publish
        sents = publisher.sent_at_publish
        assert reads == sorted(reads)
        assert sents == sorted(sents)
        # last_read was marked for this record before publish; last_sent still
        # belongs to the previous record.
        for read_mark, previous_sent in zip(reads, sents):
            assert read_mark > previous_sent
        assert relay.liveness.last_sent > reads[-1]

    @pytest.mark.asyncio
    async def test_stopped(self):
        """Test a stopped loop leaves the subscription without waiting."""
        relay = make_relay(lifetime=5)
        relay.stop()
        assert await relay.run_subscription(FakeSubscription()) == STOPPED


class TestRun:
    """Test the reconnect-forever loop."""

    async def _run_until(self, relay, predicate, timeout=2.0):
        task = asyncio.create_task(relay.run())
        try:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            while not predicate():
                assert loop.time() < deadline, "relay did not make progress"
                await asyncio.sleep(0.01)
        finally:
            relay.stop()
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    @pytest.mark.asyncio
    async def test_reconnects_after_faults(self, cert_event):
        """Test each torn-down subscription is released and replaced."""
        first = FakeSubscription(events=[cert_event], error=TransportError("reset"))
        source = FakeSource([first])
        relay = make_relay(source=source, lifetime=5)

        await self._run_until(relay, lambda: len(source.issued) >= 3)

        assert first.closed
        assert all(s.closed for s in source.issued[:-1])
        assert len(relay.publisher.records) == 1
        assert relay.subscriptions >= 3

    @pytest.mark.asyncio
    async def test_reconnects_after_lifetime(self):
        """Test an expired subscription is replaced by a new one."""
        source = FakeSource([FakeSubscription(), FakeSubscription()])
        relay = make_relay(source=source, lifetime=0.05)

        await self._run_until(relay, lambda: len(source.issued) >= 2)

        assert source.issued[0].closed

    @pytest.mark.asyncio
    async def test_subscribe_failure_is_retried(self, caplog):
        """Test an exception while subscribing does not end the loop."""
        source = FakeSource([RuntimeError("dns"), FakeSubscription(error=TransportError("x"))])
        relay = make_relay(source=source, lifetime=5)

        with caplog.at_level(logging.ERROR, logger="certrelay.fast_path.relay"):
            await self._run_until(relay, lambda: len(source.issued) >= 1)

        assert "Couldn't subscribe" in caplog.text

    @pytest.mark.asyncio
    async def test_timestamps_frozen_during_reconnect(self, cert_event):
        """Test teardown leaves the liveness marks where they were."""
        source = FakeSource([FakeSubscription(events=[cert_event], error=TransportError("x"))])
        relay = make_relay(source=source, lifetime=5)

        await self._run_until(relay, lambda: len(source.issued) >= 3)

        # TickingClock starts at 1_700_000_000 and advances once per mark.
        assert relay.liveness.last_read == 1_700_000_001
        assert relay.liveness.last_sent == 1_700_000_002
