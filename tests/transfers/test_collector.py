from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from conftest import ALICE, BASE_USDC, BOB
from defi_recon.clients.etherscan import EtherscanError
from defi_recon.constants import TRANSFER_TOPIC
from defi_recon.errors import LogCollectionError
from defi_recon.transfers import TransferLogCollector, address_to_topic
from defi_recon.transfers.collector import decode_transfer_log


def _raw_log(sender: str, recipient: str, raw: int, block: int, log_index: int = 0) -> dict:
    return {
        "address": BASE_USDC.lower(),
        "topics": [TRANSFER_TOPIC, address_to_topic(sender), address_to_topic(recipient)],
        "data": "0x" + f"{raw:064x}",
        "blockNumber": hex(block),
        "timeStamp": hex(1_700_000_000 + block),
        "logIndex": hex(log_index),
        "transactionHash": f"0x{block:064x}",
    }


def test_address_topic_is_left_padded():
    topic = address_to_topic(ALICE)

    assert len(topic) == 66
    assert topic == "0x" + "0" * 24 + ALICE[2:].lower()
    assert address_to_topic(BASE_USDC) == address_to_topic(BASE_USDC.lower())


def test_address_to_topic_rejects_bad_addresses():
    for bad in ("0x1234", "0x" + "zz" * 20):
        with pytest.raises(ValueError, match="Invalid address"):
            address_to_topic(bad)


class TestDecodeTransferLog:
    def test_decodes_sender_recipient_and_amount(self):
        entry = decode_transfer_log(_raw_log(ALICE, BOB, 2_500_000, 42, 3), BASE_USDC, 6)

        assert entry is not None
        assert entry.sender == ALICE.lower()
        assert entry.recipient == BOB.lower()
        assert entry.amount.value == 2.5
        assert entry.block_number == 42
        assert entry.timestamp == 1_700_000_042
        assert entry.log_index == 3

    def test_non_transfer_shape_is_skipped(self):
        raw = _raw_log(ALICE, BOB, 1, 1)
        raw["topics"] = raw["topics"][:2]

        assert decode_transfer_log(raw, BASE_USDC, 6) is None

    def test_bad_amount_is_skipped(self):
        raw = _raw_log(ALICE, BOB, 1, 1)
        raw["data"] = "0xnothex"

        assert decode_transfer_log(raw, BASE_USDC, 6) is None

    def test_other_event_signature_is_skipped(self):
        raw = _raw_log(ALICE, BOB, 1, 1)
        raw["topics"][0] = "0x" + "ab" * 32

        assert decode_transfer_log(raw, BASE_USDC, 6) is None

    def test_bad_metadata_is_skipped(self):
        raw = _raw_log(ALICE, BOB, 1, 1)
        raw["blockNumber"] = "0xzz"

        assert decode_transfer_log(raw, BASE_USDC, 6) is None


def _collector(side_effect, **kwargs) -> tuple[TransferLogCollector, MagicMock]:
    client = MagicMock()
    client.fetch_logs.side_effect = side_effect
    return TransferLogCollector(client, **kwargs), client


def _windows(client: MagicMock) -> list[tuple[int, int]]:
    return [(c.args[3], c.args[4]) for c in client.fetch_logs.call_args_list]


@pytest.mark.asyncio
async def test_range_is_walked_in_contiguous_chunks():
    collector, client = _collector(lambda *args: [], max_block_span=5000)

    await collector.collect_raw(8453, BASE_USDC, ALICE, 0, 12_000)

    assert _windows(client) == [(0, 4999), (5000, 9999), (10_000, 12_000)]
    topics = client.fetch_logs.call_args.args[2]
    assert topics["topic0"] == TRANSFER_TOPIC
    assert topics["topic1"] == topics["topic2"] == address_to_topic(ALICE)
    assert topics["topic1_2_opr"] == "or"


@pytest.mark.asyncio
async def test_failing_window_is_retried_with_halved_span():
    def fetch(chain_id, token, topics, start, end):
        if end - start + 1 > 625:
            raise EtherscanError("Query returned more than 10000 results")
        return [_raw_log(ALICE, BOB, 1, start)]

    collector, client = _collector(fetch, max_block_span=5000, min_block_span=20)

    entries = await collector.collect(8453, BASE_USDC, ALICE, 0, 1249, decimals=6)

    spans = [end - start + 1 for start, end in _windows(client)]
    assert spans == [1250, 1250, 1250, 625, 625]
    assert [entry.block_number for entry in entries] == [0, 625]


@pytest.mark.asyncio
async def test_failure_at_minimum_span_raises():
    collector, _ = _collector(
        EtherscanError("NOTOK"), max_block_span=80, min_block_span=20
    )

    with pytest.raises(LogCollectionError, match="between blocks 0-19"):
        await collector.collect_raw(8453, BASE_USDC, ALICE, 0, 100)


@pytest.mark.asyncio
async def test_empty_range_makes_no_requests():
    collector, client = _collector(lambda *args: [])

    assert await collector.collect(8453, BASE_USDC, ALICE, 10, 9) == []
    client.fetch_logs.assert_not_called()


@pytest.mark.asyncio
async def test_per_call_span_overrides_default():
    collector, client = _collector(lambda *args: [], max_block_span=5000)

    await collector.collect_raw(8453, BASE_USDC, ALICE, 0, 199, max_block_span=100)

    assert _windows(client) == [(0, 99), (100, 199)]
