"""Unit tests for BatchScheduler."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.models.catalog import Artist, ErrorKind
from src.models.run import RunPhase, RunProgress
from src.pipeline.progress_tracker import ProgressTracker
from src.services.batch_scheduler import BatchScheduler
from src.services.release_retriever import ReleaseRetriever
from src.utils.errors import (
    BadRequestError,
    NetworkError,
    RateLimitError,
    RetrievalError,
    ServerError,
    UnauthorizedError,
)
from tests.conftest import FIXED_NOW, RecordingSleep, make_artist, make_release


def _artists(count: int) -> list[Artist]:
    return [make_artist(f"a{i}", f"Artist {i}") for i in range(count)]


def _retriever(script: dict[str, list[Any]] | None = None) -> MagicMock:
    """Mock retriever.

    *script* maps artist id to the successive results of its calls; an
    exception instance is raised, anything else returned.  Unscripted
    artists get one release named after them.
    """
    queues = {key: list(values) for key, values in (script or {}).items()}

    async def fetch(artist: Artist, window_days: int, use_optimized_search: bool = False,
                    now=None):
        queue = queues.get(artist.id)
        if queue:
            result = queue.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return [make_release(release_id=f"rel-{artist.id}", artist_id=artist.id)]

    retriever = MagicMock(spec=ReleaseRetriever)
    retriever.fetch_for_artist = AsyncMock(side_effect=fetch)
    return retriever


def _called_ids(retriever: MagicMock) -> list[str]:
    return [c.args[0].id for c in retriever.fetch_for_artist.await_args_list]


# ======================================================================
# Batching and delays
# ======================================================================


class TestBatching:
    @pytest.mark.asyncio
    async def test_processes_every_artist(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever()
        scheduler = BatchScheduler(retriever, batch_size=2, sleep=recording_sleep)

        result = await scheduler.run(_artists(5), now=FIXED_NOW)

        assert _called_ids(retriever) == ["a0", "a1", "a2", "a3", "a4"]
        assert len(result.releases) == 5
        assert result.summary.total_artists == 5
        assert result.summary.succeeded_artists == 5
        assert result.summary.failed_artist_ids == []
        assert result.summary.cancelled is False

    @pytest.mark.asyncio
    async def test_artist_and_inter_batch_delays(self, recording_sleep: RecordingSleep) -> None:
        scheduler = BatchScheduler(
            _retriever(),
            batch_size=2,
            artist_delay_ms=100,
            inter_batch_delay_ms=200,
            sleep=recording_sleep,
        )

        await scheduler.run(_artists(5), now=FIXED_NOW)

        # Batches [a0 a1] [a2 a3] [a4]: stagger before the 2nd artist of
        # each batch, longer pause between batches.
        assert recording_sleep.calls == [0.1, 0.2, 0.1, 0.2]

    @pytest.mark.asyncio
    async def test_inter_batch_delay_override(self, recording_sleep: RecordingSleep) -> None:
        scheduler = BatchScheduler(
            _retriever(), batch_size=1, artist_delay_ms=0, inter_batch_delay_ms=200,
            sleep=recording_sleep,
        )

        await scheduler.run(_artists(3), inter_batch_delay_ms=50, now=FIXED_NOW)

        assert recording_sleep.calls == [0.05, 0.05]

    @pytest.mark.asyncio
    async def test_passes_window_strategy_and_now(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever()
        scheduler = BatchScheduler(
            retriever, window_days=30, use_optimized_search=True, sleep=recording_sleep
        )

        await scheduler.run(_artists(1), now=FIXED_NOW)

        call = retriever.fetch_for_artist.await_args
        assert call.args[1] == 30
        assert call.kwargs["use_optimized_search"] is True
        assert call.kwargs["now"] == FIXED_NOW

    @pytest.mark.asyncio
    async def test_concurrency_within_batch(self, recording_sleep: RecordingSleep) -> None:
        in_flight = 0
        peak = 0

        async def fetch(artist: Artist, *args: Any, **kwargs: Any):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0)
            in_flight -= 1
            return []

        retriever = MagicMock(spec=ReleaseRetriever)
        retriever.fetch_for_artist = AsyncMock(side_effect=fetch)
        scheduler = BatchScheduler(
            retriever, batch_size=6, concurrency_within_batch=3, artist_delay_ms=0,
            sleep=recording_sleep,
        )

        result = await scheduler.run(_artists(6), now=FIXED_NOW)

        assert peak == 3
        assert result.summary.succeeded_artists == 6

    @pytest.mark.asyncio
    async def test_zero_artists(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever()
        result = await BatchScheduler(retriever, sleep=recording_sleep).run([], now=FIXED_NOW)

        assert result.releases == []
        assert result.summary.total_artists == 0
        retriever.fetch_for_artist.assert_not_awaited()

    def test_rejects_invalid_sizes(self) -> None:
        with pytest.raises(ValueError):
            BatchScheduler(_retriever(), batch_size=0)
        with pytest.raises(ValueError):
            BatchScheduler(_retriever(), concurrency_within_batch=0)

    def test_with_options(self) -> None:
        scheduler = BatchScheduler(_retriever(), window_days=10)
        assert scheduler.with_options() is scheduler
        other = scheduler.with_options(window_days=30, use_optimized_search=True)
        assert (other.window_days, other.use_optimized_search) == (30, True)
        assert (scheduler.window_days, scheduler.use_optimized_search) == (10, False)


# ======================================================================
# Rate limiting and retries
# ======================================================================


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_rate_limited_artist_is_retried_after_pause(
        self, recording_sleep: RecordingSleep
    ) -> None:
        x_release = make_release(release_id="x-new", artist_id="a1")
        retriever = _retriever({"a1": [RateLimitError(retry_after_seconds=2), [x_release]]})
        scheduler = BatchScheduler(retriever, artist_delay_ms=0, sleep=recording_sleep)

        result = await scheduler.run(_artists(3), now=FIXED_NOW)

        assert 2.0 in recording_sleep.calls
        assert _called_ids(retriever).count("a1") == 2
        assert "x-new" in {r.id for r in result.releases}
        assert result.summary.failed_artist_ids == []
        outcome = next(o for o in result.outcomes if o.artist_id == "a1")
        assert outcome.attempts == 2

    @pytest.mark.asyncio
    async def test_second_rate_limit_records_failure(
        self, recording_sleep: RecordingSleep
    ) -> None:
        retriever = _retriever(
            {"a1": [RateLimitError(retry_after_seconds=2), RateLimitError(retry_after_seconds=2)]}
        )
        scheduler = BatchScheduler(retriever, artist_delay_ms=0, sleep=recording_sleep)

        result = await scheduler.run(_artists(3), now=FIXED_NOW)

        assert recording_sleep.calls.count(2.0) == 1
        assert _called_ids(retriever).count("a1") == 2
        assert result.summary.failed_artist_ids == ["a1"]
        assert {r.id for r in result.releases} == {"rel-a0", "rel-a2"}
        outcome = next(o for o in result.outcomes if o.artist_id == "a1")
        assert outcome.error == ErrorKind.RATE_LIMITED

    @pytest.mark.asyncio
    async def test_rate_limit_pauses_the_rest_of_the_batch(self) -> None:
        started: list[str] = []
        gate_released = asyncio.Event()

        async def slow_sleep(seconds: float) -> None:
            if seconds == 5.0:
                await gate_released.wait()

        async def fetch(artist: Artist, *args: Any, **kwargs: Any):
            started.append(artist.id)
            if artist.id == "a0" and started.count("a0") == 1:
                raise RateLimitError(retry_after_seconds=5)
            return []

        retriever = MagicMock(spec=ReleaseRetriever)
        retriever.fetch_for_artist = AsyncMock(side_effect=fetch)
        scheduler = BatchScheduler(
            retriever, batch_size=3, concurrency_within_batch=3, artist_delay_ms=10,
            sleep=slow_sleep,
        )

        run = asyncio.ensure_future(scheduler.run(_artists(3), now=FIXED_NOW))
        for _ in range(10):
            await asyncio.sleep(0)
        # a1 and a2 finished their stagger but wait at the closed gate.
        assert started == ["a0"]

        gate_released.set()
        result = await run
        assert sorted(started) == ["a0", "a0", "a1", "a2"]
        assert result.summary.succeeded_artists == 3

    @pytest.mark.asyncio
    async def test_retry_waits_for_overlapping_pause(self) -> None:
        started: list[str] = []
        pauses = {1.0: asyncio.Event(), 3.0: asyncio.Event()}

        async def controlled_sleep(seconds: float) -> None:
            if seconds in pauses:
                await pauses[seconds].wait()

        both_in_flight = asyncio.Event()

        async def fetch(artist: Artist, *args: Any, **kwargs: Any):
            started.append(artist.id)
            if started.count(artist.id) == 1:
                # Both first attempts are in flight before either 429 lands.
                if len(started) == 2:
                    both_in_flight.set()
                await both_in_flight.wait()
                raise RateLimitError(retry_after_seconds=1 if artist.id == "a0" else 3)
            return []

        retriever = MagicMock(spec=ReleaseRetriever)
        retriever.fetch_for_artist = AsyncMock(side_effect=fetch)
        scheduler = BatchScheduler(
            retriever, batch_size=2, concurrency_within_batch=2, artist_delay_ms=0,
            sleep=controlled_sleep,
        )

        run = asyncio.ensure_future(scheduler.run(_artists(2), now=FIXED_NOW))
        for _ in range(10):
            await asyncio.sleep(0)
        assert started == ["a0", "a1"]

        # a0's own pause is over but a1's still holds the gate closed.
        pauses[1.0].set()
        for _ in range(10):
            await asyncio.sleep(0)
        assert started == ["a0", "a1"]

        pauses[3.0].set()
        result = await run
        assert sorted(started) == ["a0", "a0", "a1", "a1"]
        assert result.summary.succeeded_artists == 2


class TestRetries:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [ServerError(status_code=503), NetworkError()])
    async def test_transient_error_retried_once(
        self, recording_sleep: RecordingSleep, error: Exception
    ) -> None:
        retriever = _retriever({"a0": [error]})
        scheduler = BatchScheduler(retriever, artist_delay_ms=100, sleep=recording_sleep)

        result = await scheduler.run(_artists(1), now=FIXED_NOW)

        assert _called_ids(retriever) == ["a0", "a0"]
        assert recording_sleep.calls == [0.1]
        assert result.summary.succeeded_artists == 1

    @pytest.mark.asyncio
    async def test_transient_error_twice_fails_artist(
        self, recording_sleep: RecordingSleep
    ) -> None:
        retriever = _retriever({"a0": [ServerError(), ServerError()]})
        scheduler = BatchScheduler(retriever, sleep=recording_sleep)

        result = await scheduler.run(_artists(2), now=FIXED_NOW)

        assert result.summary.failed_artist_ids == ["a0"]
        assert result.outcomes[0].error == ErrorKind.SERVER_ERROR
        assert result.outcomes[0].attempts == 2

    @pytest.mark.asyncio
    async def test_bad_request_is_not_retried(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever({"a0": [BadRequestError(status_code=400)]})
        scheduler = BatchScheduler(retriever, sleep=recording_sleep)

        result = await scheduler.run(_artists(2), now=FIXED_NOW)

        assert _called_ids(retriever).count("a0") == 1
        assert result.summary.failed_artist_ids == ["a0"]
        assert result.outcomes[0].error == ErrorKind.BAD_REQUEST


# ======================================================================
# Fatal outcomes
# ======================================================================


class TestFatal:
    @pytest.mark.asyncio
    async def test_all_artists_failing_raises(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever(
            {"a0": [BadRequestError()], "a1": [ServerError(), NetworkError()]}
        )
        scheduler = BatchScheduler(retriever, batch_size=1, sleep=recording_sleep)

        with pytest.raises(RetrievalError) as exc_info:
            await scheduler.run(_artists(2), now=FIXED_NOW)
        assert exc_info.value.failed_artist_ids == ["a0", "a1"]

    @pytest.mark.asyncio
    async def test_unauthorized_stops_the_run(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever({"a1": [UnauthorizedError()]})
        scheduler = BatchScheduler(retriever, batch_size=2, sleep=recording_sleep)

        with pytest.raises(UnauthorizedError):
            await scheduler.run(_artists(5), now=FIXED_NOW)
        assert _called_ids(retriever) == ["a0", "a1"]

    @pytest.mark.asyncio
    async def test_unauthorized_on_retry_is_fatal(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever({"a0": [RateLimitError(), UnauthorizedError()]})
        scheduler = BatchScheduler(retriever, sleep=recording_sleep)

        with pytest.raises(UnauthorizedError):
            await scheduler.run(_artists(3), now=FIXED_NOW)
        assert _called_ids(retriever) == ["a0", "a0"]


# ======================================================================
# Cancellation and progress
# ======================================================================


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_before_start(self, recording_sleep: RecordingSleep) -> None:
        retriever = _retriever()
        cancel = asyncio.Event()
        cancel.set()

        result = await BatchScheduler(retriever, sleep=recording_sleep).run(
            _artists(3), cancel_event=cancel, now=FIXED_NOW
        )

        retriever.fetch_for_artist.assert_not_awaited()
        assert result.summary.cancelled is True
        assert result.releases == []

    @pytest.mark.asyncio
    async def test_cancel_mid_run_keeps_finished_artists(
        self, recording_sleep: RecordingSleep
    ) -> None:
        cancel = asyncio.Event()

        async def fetch(artist: Artist, *args: Any, **kwargs: Any):
            if artist.id == "a1":
                cancel.set()
            return [make_release(release_id=f"rel-{artist.id}", artist_id=artist.id)]

        retriever = MagicMock(spec=ReleaseRetriever)
        retriever.fetch_for_artist = AsyncMock(side_effect=fetch)
        scheduler = BatchScheduler(retriever, batch_size=2, sleep=recording_sleep)

        result = await scheduler.run(_artists(6), cancel_event=cancel, now=FIXED_NOW)

        assert _called_ids(retriever) == ["a0", "a1"]
        assert {r.id for r in result.releases} == {"rel-a0", "rel-a1"}
        assert result.summary.cancelled is True
        assert result.summary.total_artists == 6


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_after_every_artist(self, recording_sleep: RecordingSleep) -> None:
        tracker = ProgressTracker()
        received: list[RunProgress] = []
        tracker.register_listener("run-1", lambda run_id, progress: received.append(progress))
        scheduler = BatchScheduler(
            _retriever(), batch_size=2, progress_tracker=tracker, sleep=recording_sleep
        )

        await scheduler.run(_artists(3), now=FIXED_NOW, run_id="run-1")

        assert [p.artists_processed for p in received] == [1, 2, 3]
        assert all(p.phase == RunPhase.RETRIEVE_RELEASES for p in received)
        assert received[-1].releases_found == 3
        assert received[-1].total_artists == 3
        assert tracker.get_status("run-1").percent == 100.0
