from __future__ import annotations

import asyncio
import threading
import time
from unittest.mock import MagicMock

import pytest

from defi_recon.blocks import BlockTimeIndex
from defi_recon.clients.etherscan import EtherscanError
from defi_recon.errors import BlockLookupError
from defi_recon.settings import ZeroBlockPolicy


def _client(answer) -> MagicMock:
    client = MagicMock()
    if isinstance(answer, BaseException):
        client.get_block_number_by_time.side_effect = answer
    else:
        client.get_block_number_by_time.return_value = answer
    return client


@pytest.mark.asyncio
async def test_lookup_is_memoized_per_chain_and_timestamp():
    client = _client(1234)
    index = BlockTimeIndex(client)

    assert await index.find_block_by_timestamp(8453, 1_700_000_000) == 1234
    assert await index.find_block_by_timestamp(8453, 1_700_000_000, "ceil") == 1234
    assert client.get_block_number_by_time.call_count == 1
    client.get_block_number_by_time.assert_called_with(8453, 1_700_000_000, "before")

    await index.find_block_by_timestamp(1, 1_700_000_000, "ceil")
    assert client.get_block_number_by_time.call_count == 2
    client.get_block_number_by_time.assert_called_with(1, 1_700_000_000, "after")


@pytest.mark.asyncio
async def test_zero_block_is_a_miss_by_default():
    index = BlockTimeIndex(_client(0))

    with pytest.raises(BlockLookupError, match="returned block 0"):
        await index.find_block_by_timestamp(1, 1)
    assert index.cached_block(1, 1) is None


@pytest.mark.asyncio
async def test_zero_block_can_be_valid():
    index = BlockTimeIndex(_client(0), zero_block_policy=ZeroBlockPolicy.VALID)

    assert await index.find_block_by_timestamp(1, 1) == 0
    assert index.cached_block(1, 1) == 0


@pytest.mark.asyncio
async def test_missing_block_raises():
    with pytest.raises(BlockLookupError, match="No block found"):
        await BlockTimeIndex(_client(None)).find_block_by_timestamp(1, 10)


@pytest.mark.asyncio
async def test_client_errors_are_wrapped():
    index = BlockTimeIndex(_client(EtherscanError("NOTOK")))

    with pytest.raises(BlockLookupError, match="NOTOK"):
        await index.find_block_by_timestamp(1, 10)


@pytest.mark.asyncio
async def test_invalid_arguments_raise_value_error():
    index = BlockTimeIndex(_client(1))

    with pytest.raises(ValueError, match="Invalid target timestamp"):
        await index.find_block_by_timestamp(1, -5)
    with pytest.raises(ValueError, match="Unknown block preference"):
        await index.find_block_by_timestamp(1, 5, "nearest")  # type: ignore[arg-type]


@pytest.mark.asyncio
async def test_concurrent_lookups_share_one_request():
    calls = 0
    lock = threading.Lock()

    def slow_lookup(chain_id, timestamp, closest):
        nonlocal calls
        with lock:
            calls += 1
        time.sleep(0.05)
        return 99

    client = MagicMock()
    client.get_block_number_by_time.side_effect = slow_lookup
    index = BlockTimeIndex(client)

    results = await asyncio.gather(
        *[index.find_block_by_timestamp(1, 500) for _ in range(5)]
    )

    assert results == [99] * 5
    assert calls == 1
