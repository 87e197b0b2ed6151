"""Tests for the outbound sync dispatcher and the retry helper."""

import asyncio

import pytest

from zysculpt.services.sync import OutboundSync
from zysculpt.utils.ids import new_id, new_ids
from zysculpt.utils.retry import with_retry


class TestOutboundSync:

    def test_same_key_runs_in_submission_order(self):
        log = []

        def write(name, delay):
            async def run():
                await asyncio.sleep(delay)
                log.append(name)
            return run

        async def scenario():
            sync = OutboundSync()
            sync.submit("s1", "slow", write("first", 0.03))
            sync.submit("s1", "fast", write("second", 0))
            sync.submit("s2", "other", write("other-key", 0))
            await sync.drain()
            return sync

        sync = asyncio.run(scenario())
        assert log.index("first") < log.index("second")
        assert log[0] == "other-key"
        assert sync.pending == 0

    def test_failure_is_logged_not_raised(self, caplog):
        async def boom():
            raise RuntimeError("remote down")

        async def scenario():
            sync = OutboundSync()
            sync.submit("s1", "update session s1", boom)
            await sync.drain()

        asyncio.run(scenario())
        assert "update session s1 failed" in caplog.text

    def test_later_write_still_runs_after_failure(self):
        log = []

        async def boom():
            raise RuntimeError("x")

        async def ok():
            log.append("ok")

        async def scenario():
            sync = OutboundSync()
            sync.submit("s1", "a", boom)
            sync.submit("s1", "b", ok)
            await sync.drain()

        asyncio.run(scenario())
        assert log == ["ok"]

    def test_disabled_does_nothing(self):
        called = []

        async def write():
            called.append(True)

        assert OutboundSync(enabled=False).submit("s1", "x", write) is None
        assert called == []

    def test_runs_inline_without_event_loop(self):
        called = []

        async def write():
            called.append(True)

        assert OutboundSync().submit("s1", "x", write) is None
        assert called == [True]


class TestRetry:

    def test_succeeds_after_failures(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise RuntimeError("temporary")
            return "done"

        assert asyncio.run(with_retry(flaky, max_retries=3, initial_delay=0)) == "done"
        assert len(attempts) == 3

    def test_reraises_last_error(self):
        async def always():
            raise RuntimeError("permanent")

        with pytest.raises(RuntimeError, match="permanent"):
            asyncio.run(with_retry(always, max_retries=2, initial_delay=0))


class TestIds:

    def test_ids_are_unique_and_increasing(self):
        ids = [int(i) for i in new_ids(50)] + [int(new_id())]
        assert ids == sorted(ids)
        assert len(set(ids)) == len(ids)
