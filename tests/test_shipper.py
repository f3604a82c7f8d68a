"""Tests for the LogShipper lifecycle and shutdown coordination."""

import asyncio
import logging
import signal
import sys

import httpx
import pytest

from logsentinel.config import ClientConfig, Config, QueueConfig
from logsentinel.shipper import LogShipper
from logsentinel.shutdown import ShutdownCoordinator
from logsentinel.telemetry.sinks.http import HttpSink


class TestLogShipper:
    @pytest.mark.asyncio
    async def test_size_trigger_dispatches_without_timer(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        for i in range(50):
            shipper.push(event_factory(i))
        await shipper.scheduler.wait_idle()

        assert sink.trace_ids == [f"req_{i}" for i in range(50)]
        await shipper.drain_and_stop()

    @pytest.mark.asyncio
    async def test_time_trigger(self, client_config, sink, event_factory):
        config = Config(client=client_config, queue=QueueConfig(flush_interval_seconds=0.05))
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        shipper.push(event_factory(1))
        await asyncio.sleep(0.2)

        assert sink.trace_ids == ["req_1"]
        await shipper.drain_and_stop()

    @pytest.mark.asyncio
    async def test_bounded_memory(self, config, sink, event_factory):
        # Dispatch blocked: nothing leaves the queue but the first batch
        sink.gate = asyncio.Event()
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        for i in range(50):
            shipper.push(event_factory(i))
        for i in range(50, 1550):
            shipper.push(event_factory(i))

        assert shipper.size() == 1000
        assert shipper.stats["queue"]["dropped"] == 500

        sink.gate.set()
        await shipper.drain_and_stop()

        assert sink.trace_ids[:50] == [f"req_{i}" for i in range(50)]
        assert sink.trace_ids[50:] == [f"req_{i}" for i in range(550, 1550)]

    @pytest.mark.asyncio
    async def test_config_gating_makes_no_network_call(self, event_factory):
        requests = []
        client = ClientConfig(api_key="", base_url="")
        sink = HttpSink(
            client=client,
            transport=httpx.MockTransport(lambda r: requests.append(r) or httpx.Response(200)),
        )
        shipper = LogShipper(config=Config(client=client), sink=sink)
        await shipper.start()

        for i in range(50):
            shipper.push(event_factory(i))
        await shipper.drain_and_stop()

        assert requests == []
        assert shipper.size() == 0
        assert shipper.stats["dispatcher"]["batches_skipped"] == 1

    @pytest.mark.asyncio
    async def test_failed_batch_dropped_after_retries(self, config, sink, sleeper, event_factory):
        sink.fail_always = True
        shipper = LogShipper(config=config, sink=sink, sleep=sleeper)
        await shipper.start()

        for i in range(50):
            shipper.push(event_factory(i))
        await shipper.scheduler.wait_idle()

        assert sink.calls == 3
        assert sleeper.delays == [1.0, 2.0]
        assert shipper.stats["scheduler"]["exhausted"] == 1
        assert not shipper.scheduler.flushing
        await shipper.drain_and_stop()

    @pytest.mark.asyncio
    async def test_push_never_raises(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)

        def explode(event):
            raise RuntimeError("queue bug")

        shipper.queue.push = explode
        shipper.push(event_factory(1))

    @pytest.mark.asyncio
    async def test_context_manager(self, config, sink, event_factory):
        async with LogShipper(config=config, sink=sink) as shipper:
            shipper.push(event_factory(1))
            assert sink.started

        assert sink.trace_ids == ["req_1"]
        assert sink.stopped
        assert shipper.stopped

    @pytest.mark.asyncio
    async def test_missing_config_warns_once_at_start(self, sink, monkeypatch, caplog):
        monkeypatch.delenv("LOGSENTINEL_API_KEY", raising=False)
        monkeypatch.delenv("LOGSENTINEL_BASE_URL", raising=False)

        with caplog.at_level(logging.WARNING, logger="logsentinel"):
            shipper = LogShipper(config=Config.from_dict({}), sink=sink)
            await shipper.start()
            await shipper.drain_and_stop()

        assert caplog.text.count("LOGSENTINEL_API_KEY is not set") == 1
        assert caplog.text.count("LOGSENTINEL_BASE_URL is not set") == 1

    @pytest.mark.asyncio
    async def test_lifecycle_logged_at_info(self, config, sink, caplog):
        with caplog.at_level(logging.INFO, logger="logsentinel"):
            async with LogShipper(config=config, sink=sink):
                pass

        assert "Log shipper started (capacity=1000, batch_size=50, interval=60.0s)" in caplog.text
        assert "Log shipper stopped" in caplog.text

    def test_stats_layout(self, config, sink):
        stats = LogShipper(config=config, sink=sink).stats

        assert set(stats["queue"]) == {"pushed", "dropped", "discarded", "size", "capacity"}
        assert set(stats["scheduler"]) == {
            "flushes", "events_flushed", "succeeded", "skipped", "exhausted",
            "flush_errors", "flushing", "queue_size", "seconds_since_flush",
        }
        assert set(stats["dispatcher"]) == {
            "batches_sent", "events_sent", "batches_skipped", "batches_dropped", "retries",
        }

    @pytest.mark.asyncio
    async def test_default_sink_is_http(self, config):
        shipper = LogShipper(config=config)
        assert isinstance(shipper.sink, HttpSink)
        assert shipper.sink.timeout_seconds == 10.0


class TestDrainAndStop:
    @pytest.mark.asyncio
    async def test_drains_remaining_events(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        for i in range(10):
            shipper.push(event_factory(i))
        await shipper.drain_and_stop()

        assert sink.trace_ids == [f"req_{i}" for i in range(10)]
        assert not shipper.scheduler.timer_running

    @pytest.mark.asyncio
    async def test_push_after_shutdown_discarded(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()
        await shipper.drain_and_stop()

        shipper.push(event_factory(1))

        assert shipper.size() == 0
        assert shipper.stats["queue"]["discarded"] == 1

    @pytest.mark.asyncio
    async def test_waits_for_inflight_flush(self, config, sink, event_factory):
        sink.gate = asyncio.Event()
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        for i in range(55):
            shipper.push(event_factory(i))

        drain = asyncio.ensure_future(shipper.drain_and_stop())
        await asyncio.sleep(0.01)
        assert not drain.done()

        sink.gate.set()
        await drain

        assert sink.max_active == 1
        assert sink.trace_ids == [f"req_{i}" for i in range(55)]

    @pytest.mark.asyncio
    async def test_concurrent_calls_share_one_drain(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()
        for i in range(3):
            shipper.push(event_factory(i))

        await asyncio.gather(shipper.drain_and_stop(), shipper.drain_and_stop())

        assert sink.trace_ids == ["req_0", "req_1", "req_2"]


class TestShutdownCoordinator:
    @pytest.mark.asyncio
    async def test_signal_drains_once(self, client_config, sink, event_factory):
        config = Config(client=client_config, queue=QueueConfig(flush_interval_seconds=0.05))
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()
        coordinator = ShutdownCoordinator(shipper, reraise=False)

        for i in range(10):
            shipper.push(event_factory(i))

        first = coordinator.handle_signal(signal.SIGTERM)
        second = coordinator.handle_signal(signal.SIGTERM)
        await coordinator.wait()

        assert first is second
        assert coordinator.completed
        assert sink.trace_ids == [f"req_{i}" for i in range(10)]
        assert shipper.stats["scheduler"]["flushes"] == 1

        # Timer is gone: nothing else is dispatched afterwards
        shipper.push(event_factory(99))
        await asyncio.sleep(0.15)
        assert shipper.stats["scheduler"]["flushes"] == 1
        assert not shipper.scheduler.timer_running

    @pytest.mark.asyncio
    @pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX-only")
    async def test_real_signal(self, config, sink, event_factory):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()
        coordinator = ShutdownCoordinator(shipper, signals=(signal.SIGUSR1,), reraise=False)
        coordinator.install()
        assert coordinator.installed

        shipper.push(event_factory(1))
        signal.raise_signal(signal.SIGUSR1)
        await asyncio.wait_for(coordinator.wait(), timeout=5)

        assert sink.trace_ids == ["req_1"]
        assert not coordinator.installed

    @pytest.mark.asyncio
    async def test_drain_failure_is_logged(self, caplog):
        class BrokenShipper:
            async def drain_and_stop(self):
                raise RuntimeError("boom")

        coordinator = ShutdownCoordinator(BrokenShipper(), reraise=False)
        await coordinator.handle_signal(signal.SIGTERM)

        assert coordinator.completed
        assert "Failed to flush remaining logs during shutdown: boom" in caplog.text


@pytest.mark.skipif(sys.platform == "win32", reason="loop signal handlers are POSIX-only")
class TestSignalHandlersFromStart:
    @pytest.mark.asyncio
    async def test_signal_drains_and_removes_handlers(self, config, sink, event_factory):
        previous = signal.getsignal(signal.SIGUSR1)
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start(install_signal_handlers=True, signals=(signal.SIGUSR1,), reraise=False)
        assert shipper.coordinator.installed

        for i in range(3):
            shipper.push(event_factory(i))
        signal.raise_signal(signal.SIGUSR1)
        await asyncio.wait_for(shipper.coordinator.wait(), timeout=5)

        assert sink.trace_ids == ["req_0", "req_1", "req_2"]
        assert shipper.stopped
        assert not shipper.coordinator.installed
        assert signal.getsignal(signal.SIGUSR1) == previous

    @pytest.mark.asyncio
    async def test_drain_and_stop_uninstalls_handlers(self, config, sink):
        previous = signal.getsignal(signal.SIGUSR1)
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start(install_signal_handlers=True, signals=(signal.SIGUSR1,), reraise=False)

        await shipper.drain_and_stop()

        assert not shipper.coordinator.installed
        assert not shipper.coordinator.completed
        assert signal.getsignal(signal.SIGUSR1) == previous

    @pytest.mark.asyncio
    async def test_no_handlers_by_default(self, config, sink):
        shipper = LogShipper(config=config, sink=sink)
        await shipper.start()

        assert shipper.coordinator is None
        await shipper.drain_and_stop()
