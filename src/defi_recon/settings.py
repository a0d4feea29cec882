"""Settings module with unified configuration precedence: CLI > ENV > CONFIG FILE."""

from __future__ import annotations

import os
import tomllib
from enum import Enum
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .constants import (
    DEFAULT_MAX_BLOCK_SPAN,
    DEFAULT_PRICE_CACHE_TTL_MS,
    DEFAULT_RPC_URLS,
    DEFAULT_TRANSFER_EXCLUSIONS,
    DEFILLAMA_API_URL,
    LOG_PAGE_SIZE,
    MIN_BLOCK_SPAN,
    PORTFOLIO_TOKENS,
    ChainWalletTokens,
)

load_dotenv()

GLOBAL_EXCLUSION_KEY = "global"


def normalize_transfer_exclusions(*sources: Any) -> dict[str, set[str]]:
    """Merge exclusion sources into a map keyed by ``"global"`` or chain id string.

    Each source may be a single address, a list of addresses (global), or a
    mapping of ``"global"``/chain id to an address or address list. Nested
    lists are flattened. All addresses are lower-cased.
    """
    normalized: dict[str, set[str]] = {GLOBAL_EXCLUSION_KEY: set()}

    def register(payload: Any, bucket_key: str) -> None:
        if not payload:
            return
        if isinstance(payload, str):
            normalized.setdefault(bucket_key, set()).add(payload.lower())
        elif isinstance(payload, dict):
            for key, value in payload.items():
                register(value, str(key).lower())
        elif isinstance(payload, (list, tuple, set, frozenset)):
            for entry in payload:
                register(entry, bucket_key)
        else:
            raise ValueError(f"Unsupported transfer exclusion entry: {payload!r}")

    for source in sources:
        register(source, GLOBAL_EXCLUSION_KEY)
    return normalized


class ZeroBlockPolicy(str, Enum):
    """How a block-by-timestamp answer of zero is interpreted."""

    VALID = "valid"  # genesis block, cached like any other answer
    MISS = "miss"  # failed lookup, raised and never cached


class WalletTokenSettings(BaseModel):
    symbol: str
    address: str | None = None
    decimals: int | None = None

    model_config = ConfigDict(extra="ignore")


class WalletChainSettings(BaseModel):
    """Wallet scan catalog override for one chain."""

    stable: list[WalletTokenSettings] = Field(default_factory=list)
    assets: list[WalletTokenSettings] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class ProtocolChainSettings(BaseModel):
    """Options shared by every protocol on a given chain."""

    stable_symbols: list[str] = Field(default_factory=list)
    stable_addresses: list[str] = Field(default_factory=list)
    price_overrides: dict[str, float] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class AaveReserveSettings(BaseModel):
    symbol: str
    underlying: str
    a_token: str
    decimals: int | None = None

    model_config = ConfigDict(extra="ignore")


class AaveChainSettings(ProtocolChainSettings):
    reserves: list[AaveReserveSettings] = Field(default_factory=list)


class CompoundMarketSettings(BaseModel):
    name: str
    comet: str
    base_symbol: str
    base_underlying: str | None = None
    base_decimals: int = 18

    model_config = ConfigDict(extra="ignore")


class CompoundChainSettings(ProtocolChainSettings):
    markets: list[CompoundMarketSettings] = Field(default_factory=list)
    assets: list[str] = Field(
        default_factory=list,
        description="Restrict balance reads to these base-asset symbols.",
    )


class PendleMarketSettings(BaseModel):
    name: str
    address: str
    pt: str
    underlying: str | None = None
    underlying_symbol: str | None = None

    model_config = ConfigDict(extra="ignore")


class PendleChainSettings(ProtocolChainSettings):
    markets: list[PendleMarketSettings] = Field(default_factory=list)


class ProtocolSettings(BaseModel):
    """Per-protocol, per-chain catalogs. Chains missing here fall back to
    the built-in catalogs when ``use_default_catalogs`` is enabled."""

    use_default_catalogs: bool = True
    aave: dict[int, AaveChainSettings] = Field(default_factory=dict)
    compound: dict[int, CompoundChainSettings] = Field(default_factory=dict)
    pendle: dict[int, PendleChainSettings] = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class ReconSettings(BaseSettings):
    """Single source of truth for configuration. Values may come from:
    - CLI (init kwargs)
    - ENV / .env (prefixed with DEFI_RECON_)
    - Config file (TOML), lowest precedence

    Do not read os.environ or files elsewhere in the codebase.
    """

    # --- defaults for calls that omit them ---
    default_chain_id: int | None = None
    default_account: str | None = None

    # --- endpoints ---
    rpc_urls: dict[int, str] = Field(default_factory=dict)
    use_default_rpcs: bool = True
    etherscan_api_key: SecretStr | None = None
    defillama_base_url: str = DEFILLAMA_API_URL
    request_timeout: float = 15.0

    # --- pricing ---
    price_cache_ttl_ms: int = Field(default=DEFAULT_PRICE_CACHE_TTL_MS, ge=0)
    price_overrides: dict[str, float] = Field(default_factory=dict)

    # --- stable classification ---
    extra_stable_symbols: list[str] = Field(default_factory=list)
    stable_token_map: dict[int, list[str]] = Field(default_factory=dict)

    # --- transfer collection ---
    max_block_span: int = Field(default=DEFAULT_MAX_BLOCK_SPAN, gt=0)
    min_block_span: int = Field(default=MIN_BLOCK_SPAN, gt=0)
    log_page_size: int = Field(default=LOG_PAGE_SIZE, gt=0, le=LOG_PAGE_SIZE)
    zero_block_policy: ZeroBlockPolicy = ZeroBlockPolicy.MISS
    transfer_exclusions: list[str] | dict[str, list[str]] | str | None = None
    use_default_exclusions: bool = True

    # --- catalogs ---
    wallet_tokens: dict[int, WalletChainSettings] = Field(default_factory=dict)
    protocols: ProtocolSettings = Field(default_factory=ProtocolSettings)

    # --- RPC settings ---
    rpc_max_concurrent_calls: int = 5
    rpc_delay: float = 0.0
    rpc_jitter: float = 0.0

    # --- runtime ---
    global_timeout_seconds: float | None = 300.0
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="DEFI_RECON_",
        env_file=".env",
        extra="ignore",  # ignore unknown keys in env/config file
    )

    @field_validator("etherscan_api_key", mode="before")
    @classmethod
    def wrap_secrets(cls, v: Any) -> SecretStr | None:
        """Wrap string secrets in SecretStr."""
        if v is None or isinstance(v, SecretStr):
            return v
        return SecretStr(v)

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode="after")
    def validate_block_spans(self) -> "ReconSettings":
        """Validate that the chunk floor does not exceed the chunk size."""
        if self.min_block_span > self.max_block_span:
            raise ValueError(
                f"min_block_span ({self.min_block_span}) "
                f"must not exceed max_block_span ({self.max_block_span})"
            )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Custom config-file source with explicit precedence: CLI > ENV > FILE."""
        env_cfg = os.environ.get("DEFI_RECON_CONFIG")
        cfg_path = Path(env_cfg) if env_cfg else None

        class TomlConfigSource(PydanticBaseSettingsSource):
            def __init__(self, settings_cls: type[BaseSettings], path: Path | None):
                super().__init__(settings_cls)
                self._path = path

            def get_field_value(
                self, field: Any, field_name: str
            ) -> tuple[Any, str, bool]:
                return None, "", False

            def __call__(self) -> dict[str, Any]:
                if not self._path:
                    local_config = Path("defi-recon.toml")
                    user_config = Path.home() / ".config" / "defi-recon" / "config.toml"
                    if local_config.exists():
                        self._path = local_config
                    elif user_config.exists():
                        self._path = user_config
                    else:
                        return {}

                if not self._path.exists():
                    return {}

                with self._path.open("rb") as f:
                    data = tomllib.load(f)  # supports top-level or [defi_recon]
                body = data.get("defi_recon", data)
                if not isinstance(body, dict):
                    return {}

                if "etherscan_api_key" in body:
                    raise ValueError(
                        "Security violation: 'etherscan_api_key' found in TOML config file. "
                        "Secrets must only be provided via environment variables or CLI flags."
                    )

                return body

        return (
            init_settings,  # CLI (highest)
            env_settings,  # ENV
            dotenv_settings,  # .env
            TomlConfigSource(settings_cls, cfg_path),  # CONFIG (lowest)
            file_secret_settings,  # optional secrets dir
        )

    def as_safe_dict(self) -> dict[str, Any]:
        """Return the config as a dict with secrets redacted."""
        data = self.model_dump(mode="json")
        if self.etherscan_api_key:
            data["etherscan_api_key"] = "***redacted***"
        return data

    @property
    def etherscan_api_key_required(self) -> str:
        """Get etherscan_api_key, raising ValueError if not set."""
        if self.etherscan_api_key is None:
            raise ValueError("etherscan_api_key must be configured")
        return self.etherscan_api_key.get_secret_value()

    @property
    def default_account_required(self) -> str:
        """Get default_account, raising ValueError if not set."""
        if self.default_account is None:
            raise ValueError("accountAddress is required")
        return self.default_account

    def resolve_chain_id(self, chain_id: int | None) -> int:
        """Return ``chain_id`` or the configured default, raising if neither is set."""
        resolved = chain_id if chain_id is not None else self.default_chain_id
        if resolved is None:
            raise ValueError("chain_id is required")
        return resolved

    def rpc_url_for(self, chain_id: int) -> str | None:
        """RPC endpoint for ``chain_id``; configured URLs win over the defaults."""
        if chain_id in self.rpc_urls:
            return self.rpc_urls[chain_id]
        if self.use_default_rpcs:
            return DEFAULT_RPC_URLS.get(chain_id)
        return None

    def wallet_tokens_for(self, chain_id: int) -> ChainWalletTokens | None:
        """Wallet scan catalog for ``chain_id``, configured entries first."""
        configured = self.wallet_tokens.get(chain_id)
        if configured is not None:
            return {
                "stable": [
                    {"symbol": t.symbol, "address": t.address, "decimals": t.decimals}
                    for t in configured.stable
                ],
                "assets": [
                    {"symbol": t.symbol, "address": t.address, "decimals": t.decimals}
                    for t in configured.assets
                ],
            }
        return PORTFOLIO_TOKENS.get(chain_id)

    def all_wallet_chains(self) -> set[int]:
        return set(PORTFOLIO_TOKENS) | set(self.wallet_tokens)

    @property
    def transfer_exclusion_map(self) -> dict[str, set[str]]:
        """Normalized exclusion map keyed by ``"global"`` or a chain id string.

        Accepts a single address, a list of addresses (global) or a mapping of
        ``"global"``/chain id to address lists. All addresses are lower-cased.
        """
        sources: list[Any] = []
        if self.use_default_exclusions:
            sources.append(DEFAULT_TRANSFER_EXCLUSIONS)
        sources.append(self.transfer_exclusions)
        return normalize_transfer_exclusions(*sources)

    def exclusions_for(self, chain_id: int) -> set[str]:
        """Global exclusions plus those registered for ``chain_id``."""
        exclusion_map = self.transfer_exclusion_map
        return exclusion_map[GLOBAL_EXCLUSION_KEY] | exclusion_map.get(
            str(chain_id), set()
        )
