"""CLI entrypoint for defi-recon."""

from __future__ import annotations

import asyncio
import json
import logging
import os
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import typer

from .logger import setup_logging
from .settings import ReconSettings
from .state import AppState
from .transfers import NetTransferRequest

app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    add_help_option=True,
    pretty_exceptions_enable=True,
    pretty_exceptions_short=True,
    pretty_exceptions_show_locals=False,
    rich_markup_mode="rich",
    help="Multi-protocol DeFi balance and net-transfer reconciliation.",
)


class OutputFormat(str, Enum):
    JSON = "json"
    TABLE = "table"


ChainOption = Annotated[
    int | None,
    typer.Option("--chain", "-n", help="Chain id; defaults to `default_chain_id`."),
]
FormatOption = Annotated[
    OutputFormat,
    typer.Option("--format", "-f", help="Output format (json or table)."),
]


def _build_logger() -> logging.Logger:
    """Build a logger instance."""
    return logging.getLogger("defi_recon")


def _state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if not isinstance(state, AppState):
        raise typer.BadParameter("settings were not initialised")
    return state


def _emit(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to a TOML config file (can include [defi_recon] table).",
        ),
    ] = None,
    rpc_url: Annotated[
        list[str] | None,
        typer.Option(
            "--rpc",
            help="RPC endpoint as CHAIN_ID=URL; may be repeated.",
        ),
    ] = None,
    etherscan_api_key: Annotated[
        str | None,
        typer.Option(
            "--etherscan-api-key",
            help="Etherscan API key (prefer DEFI_RECON_ETHERSCAN_API_KEY).",
        ),
    ] = None,
    global_timeout_seconds: Annotated[
        float | None,
        typer.Option(
            "--global-timeout-seconds",
            help="Abort a query after this many seconds (0 disables).",
        ),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option(
            "--log-level",
            help="Override logging verbosity (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL).",
        ),
    ] = None,
    show_config: Annotated[
        bool,
        typer.Option(
            "--show-config",
            help="Print effective config (with secrets redacted) and exit.",
        ),
    ] = False,
):
    """Load configuration (CLI > ENV > config file) and set up logging."""
    if config_path:
        os.environ["DEFI_RECON_CONFIG"] = str(config_path)

    init_kwargs: dict[str, Any] = {}
    if rpc_url:
        rpc_urls: dict[int, str] = {}
        for entry in rpc_url:
            chain, sep, url = entry.partition("=")
            if not sep or not chain.strip().isdigit() or not url:
                raise typer.BadParameter(
                    f"expected CHAIN_ID=URL, got {entry!r}", param_hint="--rpc"
                )
            rpc_urls[int(chain)] = url.strip()
        init_kwargs["rpc_urls"] = rpc_urls
    if etherscan_api_key is not None:
        init_kwargs["etherscan_api_key"] = etherscan_api_key
    if global_timeout_seconds is not None:
        init_kwargs["global_timeout_seconds"] = global_timeout_seconds
    if log_level is not None:
        init_kwargs["log_level"] = log_level.upper()

    settings = ReconSettings(**init_kwargs)

    setup_logging(settings.log_level)
    ctx.obj = AppState(settings=settings, logger=_build_logger())

    if show_config:
        _emit(settings.as_safe_dict())
        raise typer.Exit(code=0)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=0)


@app.command("net-transfer")
def net_transfer(
    ctx: typer.Context,
    start: Annotated[
        str,
        typer.Option("--start", "-s", help="Window start (unix seconds, ms or ISO-8601)."),
    ],
    accounts: Annotated[
        list[str] | None,
        typer.Argument(help="Watched accounts; defaults to `default_account`."),
    ] = None,
    chain_id: ChainOption = None,
    end: Annotated[
        str | None,
        typer.Option("--end", "-e", help="Window end; defaults to now."),
    ] = None,
    tokens: Annotated[
        list[str] | None,
        typer.Option("--token", "-t", help="Token address to evaluate; may be repeated."),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-x", help="Address to ignore; may be repeated."),
    ] = None,
    breakdown: Annotated[
        bool,
        typer.Option("--breakdown/--no-breakdown", help="Include per-transfer detail."),
    ] = False,
    max_block_span: Annotated[
        int | None,
        typer.Option("--max-block-span", help="Blocks per log query (minimum 50)."),
    ] = None,
    output: FormatOption = OutputFormat.JSON,
):
    """Inbound, outbound and net USD transfers over a time window."""
    from .pipeline.run import run_net_transfer

    state = _state(ctx)
    request = NetTransferRequest(
        chain_id=chain_id,
        accounts=accounts or None,
        start_time=start,
        end_time=end,
        tokens=tokens or None,
        exclude_addresses=exclude or None,
        include_breakdown=breakdown,
        max_block_span=max_block_span,
    )
    data = asyncio.run(run_net_transfer(state, request))
    if output == OutputFormat.TABLE:
        from .formatter import format_net_transfer

        format_net_transfer(data)
    else:
        _emit(data)


@app.command("balance")
def balance(
    ctx: typer.Context,
    account: Annotated[
        str | None, typer.Argument(help="Account; defaults to `default_account`.")
    ] = None,
    chain_id: ChainOption = None,
    protocols: Annotated[
        list[str] | None,
        typer.Option(
            "--protocol",
            "-p",
            help="Protocol to include (aave, compound, pendle); may be repeated.",
        ),
    ] = None,
    items: Annotated[
        bool, typer.Option("--items/--no-items", help="Include per-position items.")
    ] = True,
    output: FormatOption = OutputFormat.JSON,
):
    """Unified balance summary, or a single protocol's balance."""
    from .pipeline.run import run_balance

    data = asyncio.run(
        run_balance(_state(ctx), chain_id, account, protocols, include_items=items)
    )
    if output == OutputFormat.TABLE:
        from .formatter import format_balance

        format_balance(data)
    else:
        _emit(data)


@app.command("wallet")
def wallet(
    ctx: typer.Context,
    account: Annotated[
        str | None, typer.Argument(help="Account; defaults to `default_account`.")
    ] = None,
    chain_id: ChainOption = None,
    output: FormatOption = OutputFormat.JSON,
):
    """Wallet holdings of the chain's catalog tokens."""
    from .pipeline.run import run_wallet

    data = asyncio.run(run_wallet(_state(ctx), chain_id, account))
    if output == OutputFormat.TABLE:
        from .formatter import format_wallet

        format_wallet(data)
    else:
        _emit(data)


@app.command("price")
def price(
    ctx: typer.Context,
    address: Annotated[str | None, typer.Argument(help="Token address.")] = None,
    chain_id: ChainOption = None,
    symbol: Annotated[
        str | None, typer.Option("--symbol", help="Token symbol (stablecoins skip lookup).")
    ] = None,
):
    """USD price of a token."""
    from .pipeline.run import run_price

    if address is None and symbol is None:
        raise typer.BadParameter("either ADDRESS or --symbol is required")
    _emit(asyncio.run(run_price(_state(ctx), chain_id, address, symbol)))


@app.command("transfers")
def transfers(
    ctx: typer.Context,
    account: Annotated[
        str | None, typer.Argument(help="Account; defaults to `default_account`.")
    ] = None,
    chain_id: ChainOption = None,
    start: Annotated[str | None, typer.Option("--start", "-s")] = None,
    end: Annotated[str | None, typer.Option("--end", "-e")] = None,
    page: Annotated[int, typer.Option("--page", min=1)] = 1,
    size: Annotated[int, typer.Option("--size", min=1)] = 20,
):
    """Recent transfers of the chain's catalog assets, newest first."""
    from .pipeline.run import run_transfers

    _emit(
        asyncio.run(
            run_transfers(
                _state(ctx),
                account,
                chain_id=chain_id,
                start_time=start,
                end_time=end,
                page=page,
                size=size,
            )
        )
    )


def run() -> None:
    """Entrypoint used by the console script."""
    app()


if __name__ == "__main__":
    run()
