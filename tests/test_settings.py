"""Tests for settings configuration loading."""

from __future__ import annotations

from textwrap import dedent

import pytest
from pydantic import ValidationError

from defi_recon.settings import (
    ReconSettings,
    ZeroBlockPolicy,
    normalize_transfer_exclusions,
)


def _write_config(tmp_path, monkeypatch, body: str):
    config_path = tmp_path / "config.toml"
    config_path.write_text(dedent(body).strip())
    monkeypatch.setenv("DEFI_RECON_CONFIG", str(config_path))
    return config_path


def test_loads_values_from_toml(tmp_path, monkeypatch):
    _write_config(
        tmp_path,
        monkeypatch,
        """
        default_chain_id = 8453
        max_block_span = 2000
        zero_block_policy = "valid"
        extra_stable_symbols = ["gho"]

        [rpc_urls]
        8453 = "https://base.example"

        [protocols.compound.8453]
        assets = ["USDC"]
        """,
    )

    settings = ReconSettings()

    assert settings.default_chain_id == 8453
    assert settings.max_block_span == 2000
    assert settings.zero_block_policy is ZeroBlockPolicy.VALID
    assert settings.extra_stable_symbols == ["gho"]
    assert settings.rpc_url_for(8453) == "https://base.example"
    assert settings.protocols.compound[8453].assets == ["USDC"]


def test_supports_namespaced_table(tmp_path, monkeypatch):
    _write_config(
        tmp_path,
        monkeypatch,
        """
        [defi_recon]
        default_account = "0x1111111111111111111111111111111111111111"
        """,
    )

    settings = ReconSettings()

    assert settings.default_account_required == "0x1111111111111111111111111111111111111111"


def test_precedence_cli_over_env_over_file(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, "max_block_span = 1000\nmin_block_span = 10")
    monkeypatch.setenv("DEFI_RECON_MAX_BLOCK_SPAN", "3000")

    assert ReconSettings().max_block_span == 3000
    assert ReconSettings(max_block_span=4000).max_block_span == 4000
    assert ReconSettings().min_block_span == 10


def test_secret_in_toml_is_refused(tmp_path, monkeypatch):
    _write_config(tmp_path, monkeypatch, 'etherscan_api_key = "oops"')

    with pytest.raises(ValueError, match="Security violation"):
        ReconSettings()


def test_secret_is_redacted_in_safe_dict(monkeypatch):
    monkeypatch.setenv("DEFI_RECON_ETHERSCAN_API_KEY", "topsecret")
    settings = ReconSettings()

    assert settings.etherscan_api_key_required == "topsecret"
    assert settings.as_safe_dict()["etherscan_api_key"] == "***redacted***"


def test_required_properties_raise_when_missing():
    settings = ReconSettings()

    with pytest.raises(ValueError, match="etherscan_api_key"):
        _ = settings.etherscan_api_key_required
    with pytest.raises(ValueError, match="accountAddress is required"):
        _ = settings.default_account_required
    with pytest.raises(ValueError, match="chain_id is required"):
        settings.resolve_chain_id(None)


def test_min_block_span_cannot_exceed_max():
    with pytest.raises(ValidationError, match="min_block_span"):
        ReconSettings(max_block_span=10, min_block_span=20)


def test_rpc_defaults_can_be_disabled():
    assert ReconSettings().rpc_url_for(8453) == "https://mainnet.base.org"
    assert ReconSettings(use_default_rpcs=False).rpc_url_for(8453) is None
    assert ReconSettings().rpc_url_for(999999) is None


def test_configured_wallet_tokens_replace_defaults():
    settings = ReconSettings(
        wallet_tokens={
            8453: {"stable": [{"symbol": "usdc", "address": "0xabc", "decimals": 6}]}
        }
    )

    tokens = settings.wallet_tokens_for(8453)

    assert tokens == {
        "stable": [{"symbol": "usdc", "address": "0xabc", "decimals": 6}],
        "assets": [],
    }
    assert settings.wallet_tokens_for(1) is not None


def test_normalize_transfer_exclusions_shapes():
    normalized = normalize_transfer_exclusions(
        "0xAAA",
        ["0xBbB", ["0xCCC"]],
        {"global": "0xDDD", "8453": ["0xEEE"]},
    )

    assert normalized["global"] == {"0xaaa", "0xbbb", "0xccc", "0xddd"}
    assert normalized["8453"] == {"0xeee"}


def test_normalize_transfer_exclusions_rejects_unknown_entries():
    with pytest.raises(ValueError, match="Unsupported transfer exclusion"):
        normalize_transfer_exclusions([42])


def test_exclusions_for_merges_defaults_and_chain_bucket():
    settings = ReconSettings(transfer_exclusions={"8453": ["0xABC"], "1": ["0xDEF"]})

    exclusions = settings.exclusions_for(8453)

    assert "0xabc" in exclusions
    assert "0xdef" not in exclusions
    # default router exclusion, lower-cased
    assert "0xd4f480965d2347d421f1bec7f545682e5ec2151d" in exclusions


def test_default_exclusions_can_be_disabled():
    settings = ReconSettings(use_default_exclusions=False, transfer_exclusions="0xABC")

    assert settings.exclusions_for(8453) == {"0xabc"}
