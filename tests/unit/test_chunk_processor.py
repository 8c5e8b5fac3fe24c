"""
Unit tests for chunked processing.

Includes property-based testing with hypothesis for chunk accounting.
"""

import threading
import time

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from secure_batch.batch.chunk_processor import (
    CANCELLED_REASON,
    ChunkProcessor,
    describe_failure,
    split_into_chunks,
)


def fail_on(bad_items):
    def worker(item):
        if item in bad_items:
            raise ValueError(f"bad item {item}")
    return worker


class TestSplitIntoChunks:
    """Tests for split_into_chunks"""

    def test_even_split(self):
        assert split_into_chunks([1, 2, 3, 4], 2) == [(0, [1, 2]), (2, [3, 4])]

    def test_remainder_chunk(self):
        chunks = split_into_chunks(list(range(120)), 50)
        assert [(start, len(chunk)) for start, chunk in chunks] == [(0, 50), (50, 50), (100, 20)]

    def test_empty(self):
        assert split_into_chunks([], 10) == []

    def test_chunk_size_must_be_positive(self):
        with pytest.raises(ValueError):
            split_into_chunks([1], 0)


class TestDescribeFailure:
    """Tests for describe_failure"""

    def test_uses_message(self):
        assert describe_failure(ValueError("email missing")) == "email missing"

    def test_falls_back_to_type_name(self):
        assert describe_failure(KeyError()) == "KeyError"


class TestChunkProcessor:
    """Tests for ChunkProcessor.process"""

    def test_failures_are_isolated(self):
        """Test one failing item does not affect the rest of its chunk"""
        results = ChunkProcessor().process(
            list(range(120)), chunk_size=50, max_concurrency=2, worker=fail_on({75})
        )

        assert [r.chunk_index for r in results] == [0, 1, 2]
        assert sum(r.succeeded for r in results) == 119
        assert sum(r.failed for r in results) == 1
        assert results[1].errors[0].index == 75
        assert results[1].errors[0].reason == "bad item 75"

    def test_every_item_failing_still_runs_all(self):
        seen = []
        lock = threading.Lock()

        def worker(item):
            with lock:
                seen.append(item)
            raise RuntimeError("boom")

        results = ChunkProcessor().process(list(range(10)), chunk_size=3, max_concurrency=2, worker=worker)

        assert sorted(seen) == list(range(10))
        assert sum(r.failed for r in results) == 10

    def test_empty_input(self):
        assert ChunkProcessor().process([], chunk_size=10, max_concurrency=2, worker=lambda item: None) == []

    def test_concurrency_is_bounded(self):
        active = 0
        peak = 0
        lock = threading.Lock()

        def worker(item):
            nonlocal active, peak
            with lock:
                active += 1
                peak = max(peak, active)
            time.sleep(0.005)
            with lock:
                active -= 1

        ChunkProcessor().process(list(range(20)), chunk_size=2, max_concurrency=3, worker=worker)

        assert 1 <= peak <= 3

    def test_max_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            ChunkProcessor().process([1], chunk_size=1, max_concurrency=0, worker=lambda item: None)

    def test_on_chunk_complete_called_per_chunk(self):
        reported = []
        ChunkProcessor().process(
            list(range(7)), chunk_size=3, max_concurrency=2,
            worker=lambda item: None, on_chunk_complete=reported.append,
        )

        assert sorted(r.start_index for r in reported) == [0, 3, 6]

    def test_should_stop_skips_remaining_items(self):
        calls = []

        def worker(item):
            calls.append(item)

        results = ChunkProcessor().process(
            list(range(10)), chunk_size=10, max_concurrency=1,
            worker=worker, should_stop=lambda: len(calls) >= 4,
        )

        assert calls == [0, 1, 2, 3]
        assert results[0].succeeded == 4
        assert results[0].failed == 6
        assert {e.reason for e in results[0].errors} == {CANCELLED_REASON}
        assert [e.index for e in results[0].errors] == list(range(4, 10))

    @settings(max_examples=30, deadline=None)
    @given(
        total=st.integers(min_value=0, max_value=60),
        chunk_size=st.integers(min_value=1, max_value=20),
        concurrency=st.integers(min_value=1, max_value=4),
        bad=st.sets(st.integers(min_value=0, max_value=59)),
    )
    def test_property_every_item_accounted_once(self, total, chunk_size, concurrency, bad):
        """Property test: succeeded + failed covers each item exactly once"""
        results = ChunkProcessor().process(
            list(range(total)), chunk_size=chunk_size, max_concurrency=concurrency, worker=fail_on(bad)
        )

        assert sum(r.size for r in results) == total
        failed_indices = sorted(e.index for r in results for e in r.errors)
        assert failed_indices == sorted(i for i in bad if i < total)
