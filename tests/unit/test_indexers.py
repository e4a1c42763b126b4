"""
Tests for the record-producing indexers.

Tests cover:
- Data indexer catch-up, validity window and resume
- Idempotent re-runs and monotonic cursors
- Value indexer dependency bound and loud missing records
- Block timestamp search bounds
- Cursor reset on configuration change and clamping to parents
- Chain start block checked against the first hour
"""

from decimal import Decimal

import pytest

from tvl.config.constants import HOUR
from tvl.config.projects import ChainConfig
from tvl.services.chain.rpc_client import BlockHeader
from tvl.services.indexers.block_timestamp_indexer import BlockTimestampIndexer
from tvl.services.indexers.data_indexer import DataIndexer
from tvl.services.indexers.sync_optimizer import SyncOptimizer
from tvl.services.indexers.value_indexer import ValueIndexer, compute_value
from tvl.utils.exceptions import ConfigurationError, MissingUpstreamRecord, NotYetAvailable


def h(n: int) -> int:
    return n * HOUR


class TestDataIndexer:
    """Test raw amount catch-up."""

    @pytest.mark.asyncio
    async def test_catches_up_to_parent(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        """Test min 100h, parent at 110h: records 101h..110h of 1000 each."""
        parent = make_parent("block_timestamp_ethereum", h(110))
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()

        more = await indexer.tick()

        amounts = await store.get_raw_amounts(indexer.indexer_id, h(0), h(200))
        assert amounts == {h(n): 1000 for n in range(101, 111)}
        assert indexer.safe_height == h(110)
        assert (await store.get_cursor(indexer.indexer_id)).safe_height == h(110)
        assert more is False
        assert indexer.state == "idle"

    @pytest.mark.asyncio
    async def test_batch_width_caps_one_cycle(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        """Test min 100h, parent at 150h, width 10: one cycle ends at 110h."""
        parent = make_parent("block_timestamp_ethereum", h(150))
        indexer = DataIndexer(
            token_config,
            mock_amount_service,
            store,
            parent,
            indexer_service,
            optimizer=SyncOptimizer(min_batch_width=10, max_batch_width=10),
        )
        await indexer.initialize()

        more = await indexer.tick()

        amounts = await store.get_raw_amounts(indexer.indexer_id, h(0), h(200))
        assert sorted(amounts) == [h(n) for n in range(101, 111)]
        assert mock_amount_service.resolve_amount.await_count == 10
        assert indexer.safe_height == h(110)
        assert more is True

    @pytest.mark.asyncio
    async def test_min_height_itself_is_not_processed(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(100))
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()

        await indexer.tick()

        mock_amount_service.resolve_amount.assert_not_awaited()
        assert await store.get_raw_amounts(indexer.indexer_id, h(0), h(200)) == {}

    @pytest.mark.asyncio
    async def test_stops_at_until_timestamp(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        """Test min 50h, max 75h, parent at 100h: records 51h..75h only."""
        config = token_config.model_copy(
            update={"since_timestamp": h(50), "until_timestamp": h(75)}
        )
        parent = make_parent("block_timestamp_ethereum", h(100))
        indexer = DataIndexer(config, mock_amount_service, store, parent, indexer_service)
        await indexer.initialize()

        await indexer.tick()
        await indexer.tick()

        amounts = await store.get_raw_amounts(indexer.indexer_id, h(0), h(200))
        assert sorted(amounts) == [h(n) for n in range(51, 76)]
        assert indexer.safe_height == h(75)
        calls = mock_amount_service.resolve_amount.await_count

        parent.safe_height = h(120)
        assert await indexer.tick() is False

        assert await store.get_raw_amounts(indexer.indexer_id, h(76), h(200)) == {}
        assert mock_amount_service.resolve_amount.await_count == calls
        assert indexer.safe_height == h(75)
        assert (await store.get_cursor(indexer.indexer_id)).safe_height == h(75)

    @pytest.mark.asyncio
    async def test_rerun_reproduces_identical_records(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(110))
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()
        await indexer.tick()
        first = await store.get_raw_amounts(indexer.indexer_id, h(0), h(200))

        # Rewind the cursor and run again
        await store.set_safe_height(indexer.indexer_id, h(104))
        await indexer.initialize()
        assert indexer.safe_height == h(104)
        await indexer.tick()

        second = await store.get_raw_amounts(indexer.indexer_id, h(0), h(200))
        assert second == first

    @pytest.mark.asyncio
    async def test_not_yet_available_keeps_cursor_before_failing_hour(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        async def resolve(config, timestamp):
            if timestamp >= h(105):
                raise NotYetAvailable("no block")
            return 1000

        mock_amount_service.resolve_amount.side_effect = resolve
        parent = make_parent("block_timestamp_ethereum", h(110))
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()

        with pytest.raises(NotYetAvailable):
            await indexer.tick()

        assert indexer.safe_height == h(104)
        assert (await store.get_cursor(indexer.indexer_id)).safe_height == h(104)

        mock_amount_service.resolve_amount.side_effect = None
        await indexer.tick()

        assert indexer.safe_height == h(110)

    @pytest.mark.asyncio
    async def test_cursor_never_decreases_across_cycles(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(103))
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()

        heights = []
        for parent_height in (h(103), h(102), h(108), h(120)):
            parent.safe_height = parent_height
            await indexer.tick()
            heights.append(indexer.safe_height)

        assert heights == sorted(heights)
        assert heights[-1] == h(120)

    @pytest.mark.asyncio
    async def test_parent_without_cursor_does_nothing(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", None)
        indexer = DataIndexer(
            token_config, mock_amount_service, store, parent, indexer_service
        )
        await indexer.initialize()

        assert await indexer.tick() is False
        mock_amount_service.resolve_amount.assert_not_awaited()


class TestCursorInitialization:
    """Test resume and configuration change."""

    @pytest.mark.asyncio
    async def test_resume_from_persisted_cursor(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(110))
        first = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await first.initialize()
        await first.tick()

        restarted = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await restarted.initialize()

        assert restarted.safe_height == h(110)

    @pytest.mark.asyncio
    async def test_config_change_resets_cursor(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(110))
        first = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await first.initialize()
        await first.tick()

        changed = token_config.model_copy(update={"decimals": 6})
        restarted = DataIndexer(changed, mock_amount_service, store, parent, indexer_service)
        await restarted.initialize()

        assert restarted.indexer_id == first.indexer_id
        assert restarted.safe_height == h(100)

    @pytest.mark.asyncio
    async def test_cursor_ahead_of_parent_moves_back(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        """Test a child at 110h whose parent restarts at 104h resumes from 104h."""
        parent = make_parent("block_timestamp_ethereum", h(110))
        first = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await first.initialize()
        await first.tick()

        parent.safe_height = h(104)
        restarted = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await restarted.initialize()

        assert restarted.safe_height == h(104)
        assert (await store.get_cursor(restarted.indexer_id)).safe_height == h(104)

        mock_amount_service.resolve_amount.reset_mock()
        parent.safe_height = h(110)
        await restarted.tick()

        processed = [c.args[1] for c in mock_amount_service.resolve_amount.call_args_list]
        assert processed == [h(n) for n in range(105, 111)]

    @pytest.mark.asyncio
    async def test_cursor_not_moved_below_min_height(
        self, store, indexer_service, token_config, mock_amount_service, make_parent
    ):
        parent = make_parent("block_timestamp_ethereum", h(110))
        first = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await first.initialize()
        await first.tick()

        parent.safe_height = h(90)
        restarted = DataIndexer(token_config, mock_amount_service, store, parent, indexer_service)
        await restarted.initialize()

        assert restarted.safe_height == h(100)


class TestValueIndexer:
    """Test priced value computation."""

    @staticmethod
    async def seed(store, data_id, price_id, hours, amount=10**18, price=Decimal("2")):
        for n in hours:
            await store.put_raw_amount(data_id, h(n), amount)
            await store.put_price_point(price_id, h(n), price)

    @pytest.mark.asyncio
    async def test_bounded_by_slowest_parent(
        self, store, indexer_service, native_config, make_parent
    ):
        """Test parents at 50h and 40h: no value beyond 40h."""
        config = native_config.model_copy(update={"since_timestamp": h(30)})
        data = make_parent(config.identity, h(50))
        descendant = make_parent("price_descendant", h(40))
        await self.seed(store, config.identity, "eth", range(31, 51))

        indexer = ValueIndexer(config, data, descendant, store, indexer_service)
        await indexer.initialize()
        await indexer.tick()

        values = await store.get_priced_values(config.identity, h(0), h(100))
        assert [v.timestamp for v in values] == [h(n) for n in range(31, 41)]
        assert indexer.safe_height == h(40)
        assert values[0].value_usd == Decimal("2")
        assert values[0].project == "bridge"
        assert values[0].source == "native"

    @pytest.mark.asyncio
    async def test_missing_amount_raises_and_does_not_skip(
        self, store, indexer_service, native_config, make_parent
    ):
        config = native_config.model_copy(update={"since_timestamp": h(30)})
        data = make_parent(config.identity, h(40))
        descendant = make_parent("price_descendant", h(40))
        await self.seed(store, config.identity, "eth", [n for n in range(31, 41) if n != 35])
        await store.put_price_point("eth", h(35), Decimal("2"))

        indexer = ValueIndexer(config, data, descendant, store, indexer_service)
        await indexer.initialize()

        with pytest.raises(MissingUpstreamRecord):
            await indexer.tick()

        assert indexer.safe_height == h(34)
        values = await store.get_priced_values(config.identity, h(0), h(100))
        assert [v.timestamp for v in values] == [h(n) for n in range(31, 35)]

    @pytest.mark.asyncio
    async def test_missing_price_raises(
        self, store, indexer_service, native_config, make_parent
    ):
        config = native_config.model_copy(update={"since_timestamp": h(30)})
        data = make_parent(config.identity, h(31))
        descendant = make_parent("price_descendant", h(31))
        await store.put_raw_amount(config.identity, h(31), 1)

        indexer = ValueIndexer(config, data, descendant, store, indexer_service)
        await indexer.initialize()

        with pytest.raises(MissingUpstreamRecord):
            await indexer.tick()

    @pytest.mark.asyncio
    async def test_batch_capped_by_max_timestamps(
        self, store, indexer_service, native_config, make_parent
    ):
        config = native_config.model_copy(update={"since_timestamp": h(30)})
        data = make_parent(config.identity, h(60))
        descendant = make_parent("price_descendant", h(60))
        await self.seed(store, config.identity, "eth", range(31, 61))

        indexer = ValueIndexer(
            config, data, descendant, store, indexer_service, max_batch_width=7
        )
        await indexer.initialize()

        assert await indexer.tick() is True
        assert indexer.safe_height == h(37)


class TestComputeValue:
    """Test USD value arithmetic."""

    def test_whole_units(self):
        assert compute_value(5 * 10**18, 18, Decimal("2.5")) == Decimal("12.5")

    def test_quantized_to_18_places(self):
        value = compute_value(1, 18, Decimal("1"))

        assert value == Decimal("0.000000000000000001")
        assert value.as_tuple().exponent == -18

    def test_uint256_amount_keeps_precision(self):
        whole, fraction = divmod(2**256 - 1, 10**18)

        value = compute_value(2**256 - 1, 18, Decimal("1"))

        assert value == Decimal(f"{whole}.{fraction:018d}")


class TestBlockTimestampIndexer:
    """Test hour to block mapping."""

    @pytest.mark.asyncio
    async def test_search_lower_bound_follows_previous_block(
        self, store, indexer_service, mock_rpc_client, make_parent
    ):
        chain = ChainConfig(name="ethereum", provider_url="https://rpc.example", min_block=500)
        mock_rpc_client.get_block_number_at_or_before.side_effect = (
            lambda timestamp, lower_hint: timestamp // 12
        )
        clock = make_parent("clock", h(103))
        indexer = BlockTimestampIndexer(
            chain, mock_rpc_client, store, clock, indexer_service, min_height=h(100)
        )
        await indexer.initialize()

        while await indexer.tick():
            pass

        hints = [
            c.kwargs["lower_hint"]
            for c in mock_rpc_client.get_block_number_at_or_before.call_args_list
        ]
        assert hints == [500, h(101) // 12, h(102) // 12]
        assert await store.get_block_number("ethereum", h(103)) == h(103) // 12
        assert indexer.indexer_id == "block_timestamp_ethereum"

    @pytest.mark.asyncio
    async def test_min_block_after_first_hour_rejected(
        self, store, indexer_service, mock_rpc_client, make_parent
    ):
        chain = ChainConfig(name="ethereum", provider_url="https://rpc.example", min_block=500)
        mock_rpc_client.get_block.return_value = BlockHeader(number=500, timestamp=h(101) + 1)
        indexer = BlockTimestampIndexer(
            chain, mock_rpc_client, store, make_parent("clock", h(103)),
            indexer_service, min_height=h(100),
        )

        with pytest.raises(ConfigurationError, match="min_block 500"):
            await indexer.initialize()

        mock_rpc_client.get_block.assert_awaited_once_with(500)

    @pytest.mark.asyncio
    async def test_min_block_at_first_hour_accepted(
        self, store, indexer_service, mock_rpc_client, make_parent
    ):
        chain = ChainConfig(name="ethereum", provider_url="https://rpc.example", min_block=500)
        mock_rpc_client.get_block.return_value = BlockHeader(number=500, timestamp=h(101))
        indexer = BlockTimestampIndexer(
            chain, mock_rpc_client, store, make_parent("clock", h(103)),
            indexer_service, min_height=h(100),
        )

        await indexer.initialize()

        assert indexer.safe_height == h(100)

    @pytest.mark.asyncio
    async def test_resumed_cursor_skips_min_block_check(
        self, store, indexer_service, mock_rpc_client, make_parent
    ):
        chain = ChainConfig(name="ethereum", provider_url="https://rpc.example", min_block=500)
        clock = make_parent("clock", h(103))
        first = BlockTimestampIndexer(
            chain, mock_rpc_client, store, clock, indexer_service, min_height=h(100)
        )
        await first.initialize()
        await store.set_safe_height(first.indexer_id, h(102))
        mock_rpc_client.get_block.reset_mock()

        restarted = BlockTimestampIndexer(
            chain, mock_rpc_client, store, clock, indexer_service, min_height=h(100)
        )
        await restarted.initialize()

        assert restarted.safe_height == h(102)
        mock_rpc_client.get_block.assert_not_awaited()
