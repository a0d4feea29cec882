"""CLI-facing runners: build the service, run one query under the global timeout."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from ..service import ReconService
from ..state import AppState
from ..transfers import NetTransferRequest

T = TypeVar("T")


async def _with_timeout(
    state: AppState, label: str, work: Callable[[ReconService], Awaitable[T]]
) -> T:
    """Run ``work`` against a fresh service, bounded by ``global_timeout_seconds``."""
    s = state.settings
    log = state.logger
    timeout_s = s.global_timeout_seconds
    service = ReconService(s)

    log.info("Starting %s", label)
    try:
        if timeout_s is None or timeout_s <= 0:
            result = await work(service)
        else:
            async with asyncio.timeout(timeout_s):
                result = await work(service)
    except asyncio.TimeoutError as exc:
        log.error("%s timed out after %ss", label, timeout_s)
        raise asyncio.TimeoutError(
            f"{label} exceeded global timeout {timeout_s}s\n"
            "N.B. This can be changed via `global_timeout_seconds`."
        ) from exc

    log.info("%s completed", label)
    return result


async def run_net_transfer(state: AppState, request: NetTransferRequest) -> dict[str, Any]:
    """Single-account result for one account, batch result for several."""
    accounts = request.accounts or []
    if len(accounts) > 1:
        batch = await _with_timeout(
            state, "net transfer", lambda svc: svc.get_net_transfers(request)
        )
        return batch.to_dict()
    single = await _with_timeout(
        state, "net transfer", lambda svc: svc.get_net_transfer(request)
    )
    return single.to_dict()


async def run_balance(
    state: AppState,
    chain_id: int | None,
    account: str | None,
    protocols: Iterable[str] | None = None,
    include_items: bool = True,
) -> dict[str, Any]:
    """Unified summary, or one protocol's balance when exactly one is named."""
    protocols = list(protocols or [])
    if len(protocols) == 1:
        balance = await _with_timeout(
            state,
            f"{protocols[0]} balance",
            lambda svc: svc.get_user_balance(
                chain_id, protocols[0], account, include_items=include_items
            ),
        )
        return balance.to_dict()
    summary = await _with_timeout(
        state,
        "unified balance",
        lambda svc: svc.get_unified_balance_summary(
            chain_id, account, protocols=protocols or None, include_items=include_items
        ),
    )
    return summary.to_dict()


async def run_wallet(
    state: AppState, chain_id: int | None, account: str | None
) -> dict[str, Any]:
    wallet = await _with_timeout(
        state,
        "wallet scan",
        lambda svc: svc.get_wallet_portfolio_balances(chain_id, account),
    )
    return wallet.to_dict()


async def run_price(
    state: AppState, chain_id: int | None, address: str | None, symbol: str | None
) -> dict[str, Any]:
    price = await _with_timeout(
        state,
        "price lookup",
        lambda svc: svc.get_usd_price(chain_id, address=address, symbol=symbol),
    )
    return {
        "chainId": state.settings.resolve_chain_id(chain_id),
        "address": address,
        "symbol": symbol,
        "usdPrice": price,
    }


async def run_transfers(
    state: AppState,
    account: str | None,
    *,
    chain_id: int | None = None,
    start_time: Any = None,
    end_time: Any = None,
    page: int = 1,
    size: int = 20,
) -> list[dict[str, Any]]:
    transfers = await _with_timeout(
        state,
        "token transfer history",
        lambda svc: svc.get_token_transfers(
            account,
            chain_id=chain_id,
            start_time=start_time,
            end_time=end_time,
            page=page,
            size=size,
        ),
    )
    return [transfer.to_dict() for transfer in transfers]
