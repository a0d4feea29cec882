"""Rich console tables for CLI results."""

from __future__ import annotations

from typing import Any

from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table


def _truncate_address(address: str | None) -> str:
    """Truncate address for display."""
    if not address:
        return "-"
    return f"{address[:10]}...{address[-4:]}"


def _usd(value: Any) -> str:
    return f"${float(value or 0):,.2f}"


def _market_label(item: dict[str, Any]) -> str:
    market = item.get("market")
    if market and market.startswith("0x"):
        return _truncate_address(market)
    return market or item.get("category") or "-"


def _items_table(title: str, items: list[dict[str, Any]]) -> Table:
    table = Table(title=title, title_justify="left")
    table.add_column("Protocol", style="dim")
    table.add_column("Market")
    table.add_column("Symbol", style="cyan")
    table.add_column("Amount", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("USD", justify="right", style="green")
    table.add_column("Stable", justify="center")
    for item in items:
        table.add_row(
            item.get("protocol", ""),
            _market_label(item),
            item.get("symbol") or "-",
            f"{item.get('amount', 0):,.6f}",
            _usd(item.get("price")) if item.get("price") is not None else "-",
            _usd(item.get("usdValue")),
            "yes" if item.get("isStable") else "no",
        )
    return table


def _failures_table(failures: list[dict[str, Any]]) -> Table:
    table = Table(title="Failures", title_justify="left", border_style="red")
    table.add_column("Source", style="dim")
    table.add_column("Token")
    table.add_column("Error", style="red")
    for failure in failures:
        table.add_row(
            failure.get("protocol") or failure.get("market") or "-",
            failure.get("token") or failure.get("asset") or "-",
            str(failure.get("error", "")),
        )
    return table


def _totals_panel(title: str, totals: dict[str, Any]) -> Panel:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Key", style="dim")
    table.add_column("Value", style="green")
    for key, value in totals.items():
        if isinstance(value, (int, float)):
            table.add_row(key, _usd(value))
    return Panel(table, title=f"[bold]{title}[/]", border_style="blue")


def format_balance(data: dict[str, Any], console: Console | None = None) -> None:
    """Print a unified summary or a single protocol balance."""
    console = console or Console()
    parts: list[Any] = [_totals_panel(_truncate_address(data.get("account")), data["totals"])]

    if "protocols" in data:
        items = [item for balance in data["protocols"] for item in balance["items"]]
        wallet = data.get("wallet") or {}
        items += wallet.get("stable", []) + wallet.get("assets", [])
    else:
        items = data.get("items", [])
    if items:
        parts.append(_items_table("Positions", items))

    failures = data.get("failures") or data.get("metadata", {}).get("failures") or []
    if failures:
        parts.append(_failures_table(failures))
    console.print(Group(*parts))


def format_wallet(data: dict[str, Any], console: Console | None = None) -> None:
    console = console or Console()
    parts: list[Any] = [_totals_panel("Wallet", data["totals"])]
    items = data.get("stable", []) + data.get("assets", [])
    if items:
        parts.append(_items_table("Holdings", items))
    if data.get("failures"):
        parts.append(_failures_table(data["failures"]))
    console.print(Group(*parts))


def format_net_transfer(data: dict[str, Any], console: Console | None = None) -> None:
    """Print one row per account with its inbound, outbound and net USD."""
    console = console or Console()
    accounts = data.get("accounts") or [data]

    table = Table(
        title=(
            f"Net transfers, chain {data['chainId']}, "
            f"blocks {data['fromBlock']}-{data['toBlock']}"
        ),
        title_justify="left",
    )
    table.add_column("Account", style="cyan")
    table.add_column("Inbound", justify="right")
    table.add_column("Outbound", justify="right")
    table.add_column("Net", justify="right", style="bold")
    for summary in accounts:
        net = summary.get("netTransfer", 0)
        table.add_row(
            summary.get("account", ""),
            _usd(summary.get("inboundUsd")),
            _usd(summary.get("outboundUsd")),
            f"[{'green' if net >= 0 else 'red'}]{_usd(net)}[/]",
        )
    console.print(table)
    console.print(
        f"[dim]{data['tokensEvaluated']} token(s), {data['logsEvaluated']} log(s) evaluated[/]"
    )
