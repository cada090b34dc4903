import asyncio

import pytest

from huemap_lib.memo import SegmentMemo
from huemap_lib.oracles import OracleError
from huemap_lib.pipeline import collect_segments
from tests.helpers import RGB_PRIMARIES, FakeSampler


def test_concurrent_callers_share_one_failure():
    memo = SegmentMemo()
    calls = []

    async def failing():
        calls.append(1)
        await asyncio.sleep(0.01)
        raise OracleError("color service unavailable", status=503)

    async def run():
        return await asyncio.gather(
            memo.get_or_compute((60, 50), failing),
            memo.get_or_compute((60, 50), failing),
            return_exceptions=True,
        )

    first, second = asyncio.run(run())
    assert isinstance(first, OracleError)
    assert first is second
    assert len(calls) == 1
    assert (60, 50) not in memo
    assert memo.evictions == 1


def test_failed_key_is_retried():
    memo = SegmentMemo()
    sample = FakeSampler(RGB_PRIMARIES, fail_at=180.0)

    async def run():
        with pytest.raises(OracleError):
            await collect_segments(60, 50, sample, memo=memo)
        sample.fail_at = None
        return await collect_segments(60, 50, sample, memo=memo)

    segments = asyncio.run(run())
    assert [s.color.name for s in segments] == ["Red", "Green", "Blue"]
    assert len(memo) == 1


def test_results_are_shared_and_fresh():
    memo = SegmentMemo()
    sample = FakeSampler(RGB_PRIMARIES)

    async def run():
        first = await collect_segments(60, 50, sample, memo=memo)
        calls = len(sample.calls)
        first.clear()
        second = await collect_segments(60, 50, sample, memo=memo)
        return calls, second

    calls, second = asyncio.run(run())
    assert len(second) == 3
    assert len(sample.calls) == calls
    assert memo.stats() == {"entries": 1, "hits": 1, "misses": 1, "evictions": 0}


def test_keys_are_independent():
    memo = SegmentMemo()

    async def run():
        await collect_segments(60, 50, FakeSampler(RGB_PRIMARIES), memo=memo)
        await collect_segments(0, 50, FakeSampler(RGB_PRIMARIES), memo=memo)

    asyncio.run(run())
    assert (60, 50) in memo and (0, 50) in memo
    assert memo.clear() == 2
    assert len(memo) == 0


def test_cancelled_caller_does_not_cancel_shared_work():
    memo = SegmentMemo()
    sample = FakeSampler(RGB_PRIMARIES, delay=0.002)

    async def run():
        impatient = asyncio.ensure_future(collect_segments(60, 50, sample, memo=memo))
        patient = asyncio.ensure_future(collect_segments(60, 50, sample, memo=memo))
        await asyncio.sleep(0.005)
        impatient.cancel()
        return await patient

    segments = asyncio.run(run())
    assert [s.color.name for s in segments] == ["Red", "Green", "Blue"]


def test_concurrent_collect_calls_share_one_failure():
    memo = SegmentMemo()
    calls = []

    async def failing_sample(hue):
        calls.append(hue)
        await asyncio.sleep(0.01)
        raise OracleError("color service unavailable", status=503)

    async def run():
        results = await asyncio.gather(
            collect_segments(60, 50, failing_sample, memo=memo),
            collect_segments(60, 50, failing_sample, memo=memo),
            return_exceptions=True,
        )
        retry = await asyncio.gather(
            collect_segments(60, 50, failing_sample, memo=memo),
            return_exceptions=True,
        )
        return results, retry

    (first, second), (retry,) = asyncio.run(run())
    assert isinstance(first, OracleError)
    assert first is second
    assert calls == [0.0, 0.0]
    assert isinstance(retry, OracleError)
    assert retry is not first


def test_clear_during_failing_computation():
    memo = SegmentMemo()

    async def failing():
        await asyncio.sleep(0.01)
        memo.clear()
        raise OracleError("color service unavailable", status=503)

    async def run():
        return await asyncio.gather(
            memo.get_or_compute((60, 50), failing),
            memo.get_or_compute((60, 50), failing),
            return_exceptions=True,
        )

    first, second = asyncio.run(run())
    assert isinstance(first, OracleError)
    assert first is second
    assert len(memo) == 0
    assert memo.evictions == 0
