"""
Tests for the Store API against every enabled backend.
"""

import json
import random
from dataclasses import replace

import pytest

from sqlkv.engine.cursor_iterator import IteratorState
from sqlkv.engine.store import Store
from sqlkv.models.batch_op import BatchOperation
from sqlkv.models.exceptions import (
    ConfigurationError,
    ConnectionFailure,
    NotFoundError,
    SerializationError,
    StoreClosedError,
)
from sqlkv.models.range_query import RangeBounds, RangeQuery, RangeUnion
from sqlkv.models.value import ColumnType


class TestStore:
    """Tests for point operations."""

    async def test_put_and_get(self, store):
        """Test basic put and get operations."""
        await store.put("key1", "value1")
        await store.put("key2", "value2")

        assert await store.get("key1") == "value1"
        assert await store.get("key2") == "value2"
        assert await store.get("key3") is None

    async def test_update(self, store):
        """Test updating existing key."""
        await store.put("key1", "value1")
        await store.put("key1", "value2")

        assert await store.get("key1") == "value2"

    async def test_delete_then_get_is_not_found(self, store):
        """put("a", V), del("a"), get("a") reports NotFound."""
        await store.put("a", "V")
        await store.delete("a")

        assert await store.get("a") is None
        with pytest.raises(NotFoundError) as info:
            await store.get_or_raise("a")
        assert info.value.key == "a"

    async def test_delete_missing_key(self, store):
        """Deleting an absent key is not an error."""
        await store.delete("nonexistent")
        assert await store.get("nonexistent") is None

    async def test_not_found_is_key_error(self, store):
        with pytest.raises(KeyError):
            await store.get_or_raise("missing")

    async def test_empty_value(self, store):
        """Empty and None values read back as the empty string, not None."""
        await store.put("empty", "")
        await store.put("none", None)

        assert await store.get("empty") == ""
        assert await store.get("none") == ""

    async def test_numeric_values_are_stringified(self, store):
        await store.put("int", 123)
        await store.put("false", False)

        assert await store.get("int") == "123"
        assert await store.get("false") == "False"

    async def test_binary_round_trip(self, make_config):
        """Binary keys and values survive when read as bytes."""
        buffer = bytes.fromhex("00ff61626301feffff00000000ffff")
        config = make_config(keys_as_bytes=True, values_as_bytes=True)
        async with Store(config) as store:
            await store.put(buffer, buffer)
            assert await store.get(buffer) == buffer
            assert await store.iterator().all() == [(buffer, buffer)]
        await Store.destroy(config)

    async def test_abnormal_keys(self, store):
        for key in ["\x00", "\x01", "\xff", "￿"]:
            await store.put(key, "val")
            assert await store.get(key) == "val"


class TestBatch:
    """Tests for atomic batches."""

    async def test_batch_then_ordered_read(self, store):
        """Keys written out of order come back sorted."""
        await store.batch(
            [
                {"type": "put", "key": "aa", "value": "aa-value"},
                {"type": "put", "key": "ac", "value": "ac-value"},
                {"type": "put", "key": "ab", "value": "ab-value"},
            ]
        )

        assert await store.get("ab") == "ab-value"
        assert await store.iterator().all() == [
            ("aa", "aa-value"),
            ("ab", "ab-value"),
            ("ac", "ac-value"),
        ]

    async def test_last_write_wins_within_batch(self, store):
        await store.batch(
            [
                BatchOperation.put("k", "first"),
                BatchOperation.put("k", "second"),
                BatchOperation.put("gone", "x"),
                BatchOperation.delete("gone"),
            ]
        )

        assert await store.get("k") == "second"
        assert await store.get("gone") is None

    async def test_empty_batch(self, store):
        await store.batch([])
        assert store.pool.dangling == 0

    async def test_failed_batch_has_no_effect(self, make_config):
        """A value the column cannot hold fails the whole batch."""
        config = make_config(value_column=ColumnType.TEXT)
        async with Store(config) as store:
            await store.put("keep", "old")
            with pytest.raises(SerializationError):
                await store.batch(
                    [
                        BatchOperation.put("keep", "new"),
                        BatchOperation.put("a", "fine"),
                        BatchOperation.put("b", "null\x00byte"),
                    ]
                )

            assert await store.get("keep") == "old"
            assert await store.get("a") is None
            assert store.pool.dangling == 0
        await Store.destroy(config)

    async def test_invalid_operation(self, store):
        with pytest.raises(ValueError):
            await store.batch([{"type": "merge", "key": "a"}])

    async def test_merge_matches_model(self, store):
        """Several batches equal the last-write-wins merge minus deletes."""
        rng = random.Random(7)
        model: dict[str, str] = {}

        for round_no in range(5):
            ops = []
            for i in range(20):
                key = f"k{rng.randint(0, 30):02d}"
                if rng.random() < 0.25:
                    ops.append(BatchOperation.delete(key))
                    model.pop(key, None)
                else:
                    value = f"v{round_no}-{i}"
                    ops.append(BatchOperation.put(key, value))
                    model[key] = value
            await store.batch(ops)

        assert await store.iterator().all() == sorted(model.items())


class TestIteration:
    """Tests for ordered range iteration."""

    @pytest.fixture
    async def populated(self, store, sample_keys):
        await store.batch([BatchOperation.put(k, f"v-{k}") for k in sample_keys])
        return store

    async def test_full_ascending(self, populated, sample_keys):
        keys = [k for k, _ in await populated.iterator().all()]
        assert keys == sample_keys

    async def test_exclusive_range(self, populated):
        """{gt: "a", lt: "ac"} over {a, aa, ab, ac} returns {aa, ab}."""
        result = await populated.iterator(gt="a", lt="ac").all()
        assert result == [("aa", "v-aa"), ("ab", "v-ab")]

    async def test_inclusive_range(self, populated):
        result = await populated.iterator({"gte": "aa", "lte": "ac"}).all()
        assert [k for k, _ in result] == ["aa", "ab", "ac"]

    async def test_eq_and_ne(self, populated):
        assert [k for k, _ in await populated.iterator(eq="ab").all()] == ["ab"]
        assert [k for k, _ in await populated.iterator(ne="ab").all()] == ["a", "aa", "ac"]

    async def test_reverse_is_exact_reverse(self, populated):
        forward = await populated.iterator(gte="aa").all()
        backward = await populated.iterator(gte="aa", reverse=True).all()
        assert backward == list(reversed(forward))

    async def test_limit(self, populated, sample_keys):
        result = await populated.iterator(limit=2).all()
        assert [k for k, _ in result] == sample_keys[:2]

        result = await populated.iterator(limit=2, reverse=True).all()
        assert [k for k, _ in result] == sample_keys[::-1][:2]

    async def test_zero_and_negative_limit(self, populated, sample_keys):
        assert await populated.iterator(limit=0).all() == []
        assert len(await populated.iterator(limit=-1).all()) == len(sample_keys)

    async def test_union(self, populated):
        query = RangeQuery(where=RangeUnion((RangeBounds(eq="a"), RangeBounds(gt="ab"))))
        assert [k for k, _ in await populated.iterator(query).all()] == ["a", "ac"]

    async def test_union_from_options(self, populated):
        result = await populated.iterator([{"lte": "a"}, {"gte": "ac"}]).all()
        assert [k for k, _ in result] == ["a", "ac"]

    async def test_start_end(self, populated):
        result = await populated.iterator(start="ac", end="aa", reverse=True).all()
        assert [k for k, _ in result] == ["ac", "ab", "aa"]

    async def test_empty_store(self, store):
        assert await store.iterator().all() == []

    async def test_batched_fetch_is_transparent(self, small_fetch_store):
        """One-row fetches return the same sequence as larger pages."""
        keys = [f"key{i:03d}" for i in range(25)]
        await small_fetch_store.batch([BatchOperation.put(k, k) for k in keys])
        assert [k for k, _ in await small_fetch_store.iterator().all()] == keys

    async def test_binary_ordering_is_unsigned(self, make_config):
        config = make_config(keys_as_bytes=True)
        async with Store(config) as store:
            keys = [b"\x00", b"\x01", b"\x7f", b"\x80", b"\xff", b"\xff\x00"]
            await store.batch([BatchOperation.put(k, "v") for k in reversed(keys)])
            assert [k for k, _ in await store.iterator().all()] == keys
        await Store.destroy(config)

    async def test_keyword_options_with_list_query(self, store):
        with pytest.raises(TypeError):
            store.iterator([{"gt": "a"}], reverse=True)


class TestApproximateSize:
    """Tests for approximate_size."""

    async def test_empty_range_is_positive(self, store):
        assert await store.approximate_size() == 1
        await store.put("b", "x")
        assert await store.approximate_size("c", "d") == 1
        assert await store.approximate_size() > 1

    async def test_integer_and_monotonic(self, store):
        for i in range(10):
            await store.put(f"k{i}", "x" * 100)

        size_ab = await store.approximate_size("k0", "k5")
        size_ac = await store.approximate_size("k0", "k9")
        size_all = await store.approximate_size()

        assert isinstance(size_ab, int)
        assert size_ab > 0
        assert size_ac >= size_ab
        assert size_all >= size_ac

    async def test_grows_with_data(self, store):
        await store.put("a", "x")
        before = await store.approximate_size("a", "z")
        await store.put("b", "x" * 1000)
        after = await store.approximate_size("a", "z")
        assert after > before


class TestValueColumns:
    """Tests for text and JSON value columns."""

    async def test_json_column(self, make_config):
        config = make_config(value_column=ColumnType.JSON)
        async with Store(config) as store:
            await store.put("a", json.dumps({"str": "foo", "int": 123}))
            await store.put("n", None)

            assert json.loads(await store.get("a")) == {"str": "foo", "int": 123}
            assert json.loads(await store.get("n")) is None

            with pytest.raises(SerializationError):
                await store.put("bad", "{oops")
        await Store.destroy(config)

    async def test_json_read_stream(self, make_config):
        config = make_config(value_column=ColumnType.JSON)
        batch = [
            {"type": "put", "key": "aa", "value": json.dumps({"k": "aa"})},
            {"type": "put", "key": "ac", "value": json.dumps({"k": "ac"})},
            {"type": "put", "key": "ab", "value": json.dumps({"k": "ab"})},
        ]
        async with Store(config) as store:
            await store.batch(batch)
            records = [(k, json.loads(v)) async for k, v in store.iterator()]
            assert records == [("aa", {"k": "aa"}), ("ab", {"k": "ab"}), ("ac", {"k": "ac"})]
        await Store.destroy(config)

    async def test_text_column_rejects_null_byte(self, make_config):
        config = make_config(value_column=ColumnType.TEXT)
        async with Store(config) as store:
            with pytest.raises(SerializationError):
                await store.put("k", "string with \x00 byte")
            await store.put("k", "control \x01 char")
            assert await store.get("k") == "control \x01 char"
        await Store.destroy(config)


class TestLifecycle:
    """Tests for open/close/destroy."""

    async def test_idempotent_close(self, make_config):
        config = make_config()
        store = await Store.create(config)
        await store.put("a", "b")
        await store.close()
        await store.close()

        assert store.status == "closed"
        assert store.pool.dangling == 0
        await Store.destroy(config)

    async def test_operations_require_open(self, make_config):
        store = Store(make_config())
        with pytest.raises(StoreClosedError):
            await store.get("a")
        with pytest.raises(StoreClosedError):
            store.iterator()

    async def test_reopen_keeps_data(self, make_config):
        config = make_config()
        async with Store(config) as store:
            await store.put("key1", "value1")
        async with Store(config) as store:
            assert await store.get("key1") == "value1"
        await Store.destroy(config)

    async def test_error_if_exists(self, make_config):
        config = make_config()
        async with Store(config):
            pass
        store = Store(config)
        with pytest.raises(ConfigurationError, match="already exists"):
            await store.open(error_if_exists=True)
        assert store.status == "closed"
        assert store.pool.dangling == 0
        await Store.destroy(config)

    async def test_create_if_missing(self, make_config):
        store = Store(make_config())
        with pytest.raises(ConfigurationError, match="does not exist"):
            await store.open(create_if_missing=False)

    async def test_destroy(self, make_config):
        config = make_config()
        async with Store(config) as store:
            await store.put("a", "b")
        await Store.destroy(config)

        store = Store(config)
        with pytest.raises(ConfigurationError):
            await store.open(create_if_missing=False)

    async def test_close_ends_open_iterators(self, make_config):
        config = make_config()
        store = await Store.create(config)
        await store.batch([BatchOperation.put(f"k{i}", "v") for i in range(10)])

        iterator = store.iterator()
        assert await iterator.next() is not None
        assert store.pool.dangling == 1

        await store.close()
        assert store.pool.dangling == 0
        await Store.destroy(config)


class TestValueRepresentation:
    """Values the columns cannot hold, and values that must survive a rewrite."""

    async def test_unencodable_text_keeps_connection(self, make_config):
        """A lone surrogate fails as a serialization error, not a driver error."""
        config = make_config(value_column=ColumnType.TEXT)
        async with Store(config) as store:
            with pytest.raises(SerializationError):
                await store.put("k", "\ud800")
            assert store.pool.dangling == 0
            assert await store.get("k") is None
        await Store.destroy(config)

    async def test_binary_value_rewrite_is_lossless(self, make_config):
        """A non-UTF-8 value read as str and written back keeps its bytes."""
        config = make_config()
        async with Store(config) as store:
            await store.put("k", b"\xff\xfe")
            value = await store.get("k")
            await store.put("k2", value)

        async with Store(replace(config, values_as_bytes=True)) as store:
            assert await store.get("k2") == b"\xff\xfe"
        await Store.destroy(config)


class TestCloseWithFailingIterator:
    """Store.close() when an iterator fails to close."""

    async def test_remaining_iterators_still_closed(self, make_config):
        config = make_config()
        store = await Store.create(config)
        await store.batch([BatchOperation.put(f"k{i}", "v") for i in range(5)])

        iterators = [store.iterator() for _ in range(3)]
        for iterator in iterators:
            await iterator.next()
        assert store.pool.dangling == 3

        async def failing_close():
            raise ConnectionFailure("cursor close failed")

        iterators[0]._cursor.close = failing_close

        with pytest.raises(ConnectionFailure, match="cursor close failed"):
            await store.close()

        assert store.status == "closed"
        assert store.pool.dangling == 0
        assert all(it.state is IteratorState.CLOSED for it in iterators)
        await Store.destroy(config)
