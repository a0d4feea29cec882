from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from defi_recon.clients.etherscan import EtherscanClient, EtherscanError


def _response(payload):
    response = MagicMock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


@pytest.fixture
def client():
    client = EtherscanClient("test-key", page_size=2)
    client._session = MagicMock()
    return client


def _log(index: int) -> dict:
    return {"transactionHash": f"0x{index:064x}", "logIndex": hex(index)}


def test_fetch_logs_follows_pages_until_short_page(client):
    client._session.get.side_effect = [
        _response({"status": "1", "message": "OK", "result": [_log(1), _log(2)]}),
        _response({"status": "1", "message": "OK", "result": [_log(3)]}),
    ]

    logs = client.fetch_logs(
        8453,
        "0xToken",
        {"topic0": "0xddf", "topic1": "0xa", "topic2": "0xa", "topic1_2_opr": "or"},
        100,
        200,
    )

    assert [entry["logIndex"] for entry in logs] == ["0x1", "0x2", "0x3"]
    assert client._session.get.call_count == 2
    first_params = client._session.get.call_args_list[0].kwargs["params"]
    second_params = client._session.get.call_args_list[1].kwargs["params"]
    assert first_params["chainid"] == "8453"
    assert first_params["fromBlock"] == "100"
    assert first_params["toBlock"] == "200"
    assert first_params["topic1_2_opr"] == "or"
    assert first_params["offset"] == 2
    assert first_params["apikey"] == "test-key"
    assert second_params["page"] == 2


def test_fetch_logs_treats_no_records_as_empty(client):
    client._session.get.return_value = _response(
        {"status": "0", "message": "No records found", "result": []}
    )

    assert client.fetch_logs(1, "0xToken", {}, 0, 10) == []


def test_fetch_logs_raises_on_rejected_query(client):
    client._session.get.return_value = _response(
        {"status": "0", "message": "NOTOK", "result": "Query Timeout occured"}
    )

    with pytest.raises(EtherscanError, match="Query Timeout"):
        client.fetch_logs(1, "0xToken", {}, 0, 10_000_000)


def test_page_size_is_capped():
    assert EtherscanClient("k", page_size=50_000).page_size == 1000
    assert EtherscanClient("k", page_size=0).page_size == 1


def test_block_lookup_returns_int(client):
    client._session.get.return_value = _response(
        {"status": "1", "message": "OK", "result": "12345"}
    )

    assert client.get_block_number_by_time(8453, 1_700_000_000, "after") == 12345
    params = client._session.get.call_args.kwargs["params"]
    assert params["closest"] == "after"
    assert params["timestamp"] == "1700000000"


def test_block_lookup_failure_returns_none(client):
    client._session.get.return_value = _response(
        {"status": "0", "message": "NOTOK", "result": "Error! No closest block found"}
    )

    assert client.get_block_number_by_time(8453, 1) is None


def test_token_transfers_pass_block_bounds(client):
    client._session.get.return_value = _response(
        {"status": "1", "message": "OK", "result": [{"hash": "0x1"}]}
    )

    result = client.get_token_transfers(
        1, "0xAccount", start_block=10, end_block=20, offset=10_000
    )

    assert result == [{"hash": "0x1"}]
    params = client._session.get.call_args.kwargs["params"]
    assert params["action"] == "tokentx"
    assert params["startblock"] == "10"
    assert params["endblock"] == "20"
    assert params["sort"] == "desc"
