"""Tests for transform stages.

Validates:
- Per-stage chunk semantics (compact, map, filter, tap, batch, flatten, ...)
- Flush behaviour on close (batch remainder, reduce, append)
- take's immediate stop and upstream release
- Error propagation from user callbacks
- Argument validation at construction
"""

from __future__ import annotations

import asyncio
import operator

import pytest

from chunkflow import (
    ReadableStream,
    StageConfigError,
    StreamPair,
    TransformStream,
    append,
    batch,
    compact,
    filter,
    flat_map,
    flatten,
    from_iterable,
    map,
    reduce,
    scan,
    skip,
    take,
    tap,
    to_array,
)


async def collect(items: list, *stages: object) -> list:
    stream: ReadableStream = from_iterable(items)
    for stage in stages:
        stream = stream.pipe_through(stage)  # type: ignore[arg-type]
    return await to_array(stream)


# ─────────────────────────────────────────────────────────────────────────────
# Element-wise stages
# ─────────────────────────────────────────────────────────────────────────────


class TestElementwise:
    """Tests for compact, map, filter and tap."""

    @pytest.mark.asyncio
    async def test_compact_drops_none_only(self) -> None:
        assert await collect([1, None, 2, None, 3], compact()) == [1, 2, 3]
        assert await collect([0, "", None, False, []], compact()) == [0, "", False, []]

    @pytest.mark.asyncio
    async def test_map(self) -> None:
        assert await collect([1, 2, 3], map(lambda x: x * 10)) == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_map_awaits_async_callback(self) -> None:
        async def slow_double(x: int) -> int:
            await asyncio.sleep(0)
            return x * 2

        assert await collect([1, 2, 3], map(slow_double)) == [2, 4, 6]

    @pytest.mark.asyncio
    async def test_filter(self) -> None:
        assert await collect(list(range(10)), filter(lambda x: x % 3 == 0)) == [0, 3, 6, 9]

    @pytest.mark.asyncio
    async def test_filter_async_predicate(self) -> None:
        async def is_odd(x: int) -> bool:
            return x % 2 == 1

        assert await collect([1, 2, 3, 4, 5], filter(is_odd)) == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_tap_sees_every_chunk_and_forwards_unchanged(self) -> None:
        seen: list[int] = []
        assert await collect([1, 2, 3], tap(seen.append)) == [1, 2, 3]
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_tap_return_value_is_ignored(self) -> None:
        assert await collect(["a", "b"], tap(lambda s: s.upper())) == ["a", "b"]


# ─────────────────────────────────────────────────────────────────────────────
# Grouping and flattening
# ─────────────────────────────────────────────────────────────────────────────


class TestBatchAndFlatten:
    """Tests for batch, flatten and flat_map."""

    @pytest.mark.asyncio
    async def test_batch_groups_with_remainder(self) -> None:
        assert await collect([1, 2, 3, 4, 5], batch(2)) == [[1, 2], [3, 4], [5]]

    @pytest.mark.asyncio
    async def test_batch_flushes_short_input(self) -> None:
        assert await collect([1, 2, 3], batch(5)) == [[1, 2, 3]]

    @pytest.mark.asyncio
    async def test_batch_empty_input(self) -> None:
        assert await collect([], batch(3)) == []

    @pytest.mark.asyncio
    async def test_batch_exact_multiple_has_no_trailing_group(self) -> None:
        assert await collect([1, 2, 3, 4], batch(2)) == [[1, 2], [3, 4]]

    @pytest.mark.asyncio
    async def test_batches_are_independent_lists(self) -> None:
        groups = await collect([1, 2, 3, 4], batch(2))
        groups[0].append(99)
        assert groups[1] == [3, 4]

    @pytest.mark.asyncio
    async def test_flatten(self) -> None:
        assert await collect([[1, 2], [], [3], (4, 5)], flatten()) == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_flat_map(self) -> None:
        assert await collect([1, 2, 3], flat_map(lambda x: [x] * x)) == [1, 2, 2, 3, 3, 3]

    @pytest.mark.asyncio
    async def test_flat_map_exposes_outer_ends_only(self) -> None:
        pair = flat_map(list)
        assert isinstance(pair, StreamPair)
        assert pair.writable.name == "map.writable"
        assert pair.readable.name == "flatten.readable"
        # Inner map.readable -> flatten.writable is already wired
        assert pair.readable.locked is False
        assert await to_array(from_iterable(["ab", "c"]).pipe_through(pair)) == ["a", "b", "c"]


# ─────────────────────────────────────────────────────────────────────────────
# take / skip
# ─────────────────────────────────────────────────────────────────────────────


class TestTakeSkip:
    """Tests for take and skip."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("limit", "expected"), [(0, []), (2, [1, 2]), (3, [1, 2, 3]), (5, [1, 2, 3])])
    async def test_take_limits(self, limit: int, expected: list[int]) -> None:
        assert await collect([1, 2, 3], take(limit)) == expected

    @pytest.mark.asyncio
    async def test_take_stops_infinite_source(self) -> None:
        def naturals():
            n = 0
            while True:
                yield n
                n += 1

        assert await collect(naturals(), take(4)) == [0, 1, 2, 3]  # type: ignore[arg-type]

    @pytest.mark.asyncio
    async def test_take_closes_upstream_generator(self) -> None:
        produced: list[int] = []
        closed: list[bool] = []

        def source():
            try:
                for n in range(1000):
                    produced.append(n)
                    yield n
            finally:
                closed.append(True)

        assert await to_array(from_iterable(source()).pipe_through(take(2))) == [0, 1]
        await asyncio.sleep(0.01)
        assert closed == [True]
        # One chunk of read-ahead at most beyond what take forwarded
        assert len(produced) <= 4

    @pytest.mark.asyncio
    async def test_take_releases_whole_chain(self) -> None:
        closed: list[bool] = []

        def source():
            try:
                yield from range(100)
            finally:
                closed.append(True)

        stream = (
            from_iterable(source())
            .pipe_through(map(lambda x: x + 1))
            .pipe_through(filter(lambda x: x % 2 == 0))
            .pipe_through(take(3))
        )
        assert await to_array(stream) == [2, 4, 6]
        await asyncio.sleep(0.01)
        assert closed == [True]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("count", "expected"), [(0, [1, 2, 3]), (1, [2, 3]), (3, []), (10, [])])
    async def test_skip(self, count: int, expected: list[int]) -> None:
        assert await collect([1, 2, 3], skip(count)) == expected


# ─────────────────────────────────────────────────────────────────────────────
# Accumulation
# ─────────────────────────────────────────────────────────────────────────────


class TestAccumulation:
    """Tests for scan, reduce and append."""

    @pytest.mark.asyncio
    async def test_scan_emits_running_total(self) -> None:
        assert await collect([1, 2, 3, 4], scan(operator.add, 0)) == [1, 3, 6, 10]

    @pytest.mark.asyncio
    async def test_scan_empty_input(self) -> None:
        assert await collect([], scan(operator.add, 0)) == []

    @pytest.mark.asyncio
    async def test_reduce_emits_once(self) -> None:
        assert await collect([1, 2, 3, 4], reduce(operator.add, 0)) == [10]

    @pytest.mark.asyncio
    async def test_reduce_empty_input_emits_nothing(self) -> None:
        assert await collect([], reduce(operator.add, 0)) == []

    @pytest.mark.asyncio
    async def test_reduce_async_callback(self) -> None:
        async def concat(acc: str, chunk: str) -> str:
            return acc + chunk

        assert await collect(["a", "b", "c"], reduce(concat, ">")) == [">abc"]

    @pytest.mark.asyncio
    async def test_append(self) -> None:
        assert await collect([1, 2, 3], append(4)) == [1, 2, 3, 4]
        assert await collect([], append(4)) == [4]

    @pytest.mark.asyncio
    async def test_stage_state_is_per_instance(self) -> None:
        first, second = scan(operator.add, 0), scan(operator.add, 0)
        assert await collect([1, 2], first) == [1, 3]
        assert await collect([10, 20], second) == [10, 30]


# ─────────────────────────────────────────────────────────────────────────────
# Composition
# ─────────────────────────────────────────────────────────────────────────────


class TestComposition:
    """filter -> map -> take equals a single pass over the input."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, 1, 3, 50])
    async def test_filter_map_take_law(self, k: int) -> None:
        data = list(range(-5, 40))
        pred = lambda x: x % 4 == 1  # noqa: E731
        fn = lambda x: x * x  # noqa: E731

        expected: list[int] = []
        for x in data:
            if len(expected) >= k:
                break
            if pred(x):
                expected.append(fn(x))

        assert await collect(data, filter(pred), map(fn), take(k)) == expected

    @pytest.mark.asyncio
    async def test_custom_transform_stream_identity(self) -> None:
        assert await collect([1, 2, 3], TransformStream()) == [1, 2, 3]


# ─────────────────────────────────────────────────────────────────────────────
# Errors
# ─────────────────────────────────────────────────────────────────────────────


class TestStageErrors:
    """User callback failures and argument validation."""

    @pytest.mark.asyncio
    async def test_map_error_propagates_unchanged(self) -> None:
        boom = ValueError("bad chunk")

        def explode(x: int) -> int:
            if x == 2:
                raise boom
            return x

        with pytest.raises(ValueError) as exc_info:
            await collect([1, 2, 3], map(explode))
        assert exc_info.value is boom

    @pytest.mark.asyncio
    async def test_error_cancels_upstream(self) -> None:
        closed: list[bool] = []

        def source():
            try:
                yield from range(100)
            finally:
                closed.append(True)

        def explode(x: int) -> int:
            raise KeyError(x)

        with pytest.raises(KeyError):
            await to_array(from_iterable(source()).pipe_through(filter(explode)))
        await asyncio.sleep(0.01)
        assert closed == [True]

    @pytest.mark.asyncio
    async def test_upstream_error_skips_flush(self) -> None:
        async def failing():
            yield 1
            raise RuntimeError("source down")

        with pytest.raises(RuntimeError, match="source down"):
            await to_array(from_iterable(failing()).pipe_through(append("tail")))

    @pytest.mark.parametrize("size", [0, -1, 1.5, "2", True, None])
    def test_batch_rejects_bad_size(self, size: object) -> None:
        with pytest.raises(StageConfigError) as exc_info:
            batch(size)  # type: ignore[arg-type]
        assert exc_info.value.error.stage == "batch"

    @pytest.mark.parametrize("factory", [take, skip])
    @pytest.mark.parametrize("value", [-1, 2.0, "3", False])
    def test_counts_reject_bad_values(self, factory, value: object) -> None:
        with pytest.raises(StageConfigError):
            factory(value)

    def test_config_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            take(-5)

    @pytest.mark.parametrize("factory", [map, filter, tap, flat_map])
    def test_callback_must_be_callable(self, factory) -> None:
        with pytest.raises(StageConfigError, match="callable"):
            factory(42)

    def test_stages_construct_without_running_loop(self) -> None:
        stream = from_iterable([1, 2]).pipe_through(map(str)).pipe_through(batch(2))
        assert isinstance(stream, ReadableStream)
