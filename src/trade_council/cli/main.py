"""
CLI entry point for trade-council.

Commands:
    trade-council decide <snapshot.json>  - Run a consensus round
    trade-council roster                  - Show the active team and roster
    trade-council doctor                  - Check provider status
    trade-council config                  - Manage configuration
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from trade_council.config import EngineConfig, load_config, resolve_credential
from trade_council.protocol.types import RiskLevel

app = typer.Typer(
    name="trade-council",
    help="Multi-provider AI trading consensus engine",
    no_args_is_help=True,
)
console = Console()

_ACTION_STYLES = {"buy": "green", "sell": "red", "hold": "yellow"}


def _get_config_file() -> Path:
    """Get the config file path. Computed at runtime for test compatibility."""
    return Path.home() / ".config" / "trade-council" / "config.yaml"


def _load_engine_config(path: Path | None) -> EngineConfig:
    """Explicit path, else the user config file, else the default catalogue."""
    if path is None:
        candidate = _get_config_file()
        path = candidate if candidate.exists() else None
    return load_config(path)


def _secrets(config: EngineConfig) -> list[str]:
    return [s for s in (resolve_credential(p) for p in config.providers) if s]


def _read_snapshots(source: str) -> list[dict[str, Any]]:
    text = sys.stdin.read() if source == "-" else Path(source).read_text()
    data = json.loads(text)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and all(isinstance(item, dict) for item in data):
        return data
    raise ValueError("Snapshot input must be a JSON object or a list of objects")


def _at_hour(hour: int | None) -> datetime | None:
    if hour is None:
        return None
    return datetime.now(timezone.utc).replace(hour=hour, minute=0, second=0, microsecond=0)


def _render_decision(result: Any, verbose: bool) -> None:
    style = _ACTION_STYLES.get(result.action.value, "white")
    body = [
        f"[bold]{result.action.value.upper()}[/bold]  confidence {result.confidence:.0%}  "
        f"risk {result.risk_level.value}",
        "",
        result.reasoning,
    ]
    if result.suggested_position_size is not None:
        body.append(f"Suggested size: {result.suggested_position_size:g}")
    if result.potential_upside_percent:
        body.append(f"Avg potential upside: {result.potential_upside_percent:.1f}%")
    if result.key_factors:
        body.append("Key factors: " + "; ".join(result.key_factors[:8]))
    console.print(
        Panel(
            "\n".join(body),
            title=f"[{style}]{result.asset_id or 'Decision'}[/{style}]",
            border_style=style,
        )
    )

    if verbose:
        table = Table(title=f"Votes (team {result.team})")
        table.add_column("Provider", style="cyan")
        table.add_column("Action")
        table.add_column("Confidence")
        table.add_column("Weight")
        table.add_column("Latency")
        table.add_column("Error")
        for vote in result.votes:
            name = vote.provider
            if vote.substitute_for:
                name += f" (for {vote.substitute_for})"
            table.add_row(
                name,
                vote.action.value if vote.success else "[red]failed[/red]",
                f"{vote.confidence:.2f}",
                f"{vote.weight:g}",
                f"{vote.latency_ms}ms",
                (vote.error or "-")[:60],
            )
        console.print(table)
        console.print(f"  Duration: {result.duration_ms}ms")


@app.command()
def decide(
    snapshot: str = typer.Argument(
        ..., help="Market snapshot JSON file (object or list of objects), or '-' for stdin"
    ),
    budget: float = typer.Option(0.02, "--budget", "-b", help="Maximum position size per trade"),
    risk: RiskLevel = typer.Option(RiskLevel.MEDIUM, "--risk", "-r", help="Risk tolerance"),
    full_ensemble: bool = typer.Option(
        False, "--full-ensemble", help="Skip the minimum-health filter"
    ),
    no_premium: bool = typer.Option(False, "--no-premium", help="Exclude premium-tier providers"),
    max_size: int | None = typer.Option(
        None, "--max-size", help="Maximum number of providers to query"
    ),
    min_upside: float | None = typer.Option(
        None, "--min-upside", help="Minimum potential upside (%) for a buy"
    ),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
    output_json: bool = typer.Option(False, "--json", help="Output as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show the vote ledger"),
) -> None:
    """Run a consensus round for one or more market snapshots."""
    try:
        from trade_council import TradeCouncil
        from trade_council.logging import configure_logging
        from trade_council.protocol.types import MarketSnapshot, TradingContext

        engine_config = _load_engine_config(config_path)
        configure_logging(logging.INFO if verbose else logging.WARNING, _secrets(engine_config))

        snapshots = [MarketSnapshot.model_validate(s) for s in _read_snapshots(snapshot)]
        context = TradingContext(
            risk_tolerance=risk,
            budget_per_trade=budget,
            force_full_ensemble=full_ensemble,
            exclude_premium=no_premium,
            max_ensemble_size=max_size,
            min_upside_percent=min_upside,
        )

        if not output_json:
            console.print(
                f"[bold blue]Trade Council[/bold blue] Analyzing {len(snapshots)} asset(s)..."
            )

        async def _run() -> Any:
            council = TradeCouncil(engine_config)
            try:
                if len(snapshots) == 1:
                    return await council.decide(snapshots[0], context)
                return await council.decide_batch(snapshots, context)
            finally:
                await council.aclose()

        result = asyncio.run(_run())

        if output_json:
            print(json.dumps(result.model_dump(mode="json"), indent=2, default=str))
        elif hasattr(result, "decisions"):
            for decision in result.decisions:
                _render_decision(decision, verbose)
            for asset_id, error in result.failures.items():
                console.print(f"[red]{asset_id}:[/red] {error}")
        else:
            _render_decision(result, verbose)

    except Exception as e:
        if output_json:
            print(json.dumps({"error": str(e)}))
        else:
            console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@app.command()
def roster(
    hour: int | None = typer.Option(
        None, "--hour", min=0, max=23, help="UTC hour to schedule for (default: now)"
    ),
    no_premium: bool = typer.Option(False, "--no-premium", help="Exclude premium-tier providers"),
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Show the active team and the providers a round would query."""
    from trade_council import TradeCouncil
    from trade_council.protocol.types import TradingContext

    try:
        engine_config = _load_engine_config(config_path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    council = TradeCouncil(engine_config)
    selected = council.roster(TradingContext(exclude_premium=no_premium), _at_hour(hour))

    table = Table(title=f"Team {selected.team}")
    table.add_column("Provider", style="cyan")
    table.add_column("Tier")
    table.add_column("Weight")
    table.add_column("Health")
    table.add_column("Substitute for")
    for entry in selected.entries:
        table.add_row(
            entry.id,
            str(entry.provider.tier),
            f"{entry.weight:g}",
            str(council.health.health_score(entry.id)),
            entry.substitute_for or "-",
        )
    console.print(table)

    if selected.dropped:
        console.print(f"[yellow]Dropped:[/yellow] {', '.join(selected.dropped)}")
    if not selected.entries:
        console.print(
            "[yellow]No providers available. Set provider API keys to enable them.[/yellow]"
        )


@app.command()
def doctor(
    config_path: Path | None = typer.Option(None, "--config", "-c", help="Config file path"),
) -> None:
    """Check provider availability and configuration."""
    console.print("[bold blue]Trade Council Doctor[/bold blue] Checking providers...\n")

    from trade_council import TradeCouncil

    try:
        engine_config = _load_engine_config(config_path)
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)

    council = TradeCouncil(engine_config)

    async def _check_all() -> dict[str, Any]:
        try:
            return await council.doctor()
        finally:
            await council.aclose()

    results = asyncio.run(_check_all())
    report = council.health_report()

    table = Table(title="Provider Status")
    table.add_column("Provider", style="cyan")
    table.add_column("Status")
    table.add_column("Circuit")
    table.add_column("Message")
    table.add_column("Latency")

    for provider in engine_config.providers:
        result = results.get(provider.id)
        circuit = report[provider.id]["state"]
        if result is None:
            key = provider.credential_ref or "credential"
            table.add_row(provider.id, "[dim]SKIPPED[/dim]", circuit, f"{key} not set", "-")
            continue
        status = "[green]OK[/green]" if result.ok else "[red]FAIL[/red]"
        latency = f"{result.latency_ms:.0f}ms" if result.latency_ms else "-"
        table.add_row(provider.id, status, circuit, result.message or "-", latency)

    console.print(table)


def _default_config_yaml() -> str:
    from trade_council.config import default_config

    engine_config = default_config()
    data = {
        "providers": [
            p.model_dump(mode="json", exclude_defaults=True, exclude={"team"})
            for p in engine_config.providers
        ],
        "teams": [t.model_dump(mode="json", exclude_defaults=True) for t in engine_config.teams],
        "engine": {
            "failure_threshold": engine_config.failure_threshold,
            "cooldown_seconds": engine_config.cooldown_seconds,
            "min_health_score": engine_config.min_health_score,
            "max_attempts": engine_config.max_attempts,
            "cache_ttl_seconds": engine_config.cache_ttl_seconds,
        },
    }
    header = (
        "# Trade Council Configuration\n"
        "# API keys are read from the environment variables named by credential_ref.\n\n"
    )
    return header + yaml.safe_dump(data, sort_keys=False)


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    init: bool = typer.Option(False, "--init", help="Initialize default configuration"),
) -> None:
    """Manage Trade Council configuration."""
    config_file = _get_config_file()

    if show:
        if config_file.exists():
            console.print(config_file.read_text())
        else:
            console.print("[yellow]No configuration file found.[/yellow]")
            console.print(f"Run 'trade-council config --init' to create one at {config_file}")
        return

    if init:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(_default_config_yaml())
        console.print(f"[green]Created configuration at {config_file}[/green]")
        return

    console.print("Usage: trade-council config [--show | --init]")


@app.command()
def version() -> None:
    """Show version information."""
    from trade_council import __version__

    console.print(f"Trade Council v{__version__}")


if __name__ == "__main__":
    app()
