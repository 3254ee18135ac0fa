"""Command-line interface for the Portfolio Insights Engine."""

import asyncio
import json
import sys
from enum import Enum
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from portfolio_insights.config import configure_logging, get_engine_settings, get_model_settings
from portfolio_insights.models import TradeAction

app = typer.Typer(
    name="portfolio-insights",
    help="Portfolio Insights Engine - Run analysis pipelines over a portfolio snapshot",
    add_completion=False,
)
console = Console()


class PipelineName(str, Enum):
    INSIGHTS = "insights"
    DIVERSIFICATION = "diversification"
    STRATEGY = "strategy"
    SCENARIO = "scenario"


def _load_snapshot(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        snapshot = json.load(f)
    if not isinstance(snapshot, dict) or "portfolio" not in snapshot:
        raise typer.BadParameter("snapshot must be an object with 'positions' and 'portfolio'")
    return snapshot


@app.command()
def run(
    pipeline: PipelineName = typer.Argument(..., help="Pipeline to run"),
    snapshot_path: Path = typer.Argument(
        ...,
        help="JSON file with positions, portfolio and optional marketContext/priceHistory",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    asset: str = typer.Option(None, "--asset", help="Scenario: ticker to trade"),
    action: TradeAction = typer.Option(TradeAction.BUY, "--action", help="Scenario: buy or sell"),
    quantity: float = typer.Option(None, "--quantity", help="Scenario: number of shares"),
    price: float = typer.Option(None, "--price", help="Scenario: price per share"),
    timeout: float = typer.Option(None, "--timeout", help="Run deadline in seconds"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
) -> None:
    """Run one analysis pipeline and print its result."""
    engine_settings = get_engine_settings()
    configure_logging(
        "DEBUG" if verbose else "WARNING",
        json_output=engine_settings.log_json,
    )

    if pipeline == PipelineName.SCENARIO and (asset is None or quantity is None or price is None):
        console.print("[red]Error:[/red] scenario requires --asset, --quantity and --price")
        raise typer.Exit(code=2)

    if timeout is not None:
        engine_settings = engine_settings.model_copy(update={"run_timeout_seconds": timeout})

    try:
        from portfolio_insights.pipeline import PortfolioInsightsService

        snapshot = _load_snapshot(snapshot_path)
        service = PortfolioInsightsService(engine_settings=engine_settings)
        positions = snapshot.get("positions", [])
        portfolio = snapshot["portfolio"]
        market_context = snapshot.get("marketContext")

        if not as_json:
            console.print(
                Panel.fit(
                    f"[bold blue]Portfolio Insights Engine[/bold blue]\n"
                    f"Running the {pipeline.value} pipeline...",
                    border_style="blue",
                )
            )

        if pipeline == PipelineName.INSIGHTS:
            coro = service.generate_insights(positions, portfolio, market_context)
        elif pipeline == PipelineName.DIVERSIFICATION:
            coro = service.generate_diversification_recommendations(positions, portfolio)
        elif pipeline == PipelineName.STRATEGY:
            coro = service.generate_strategy_advice(positions, portfolio, market_context)
        else:
            scenario = {"asset": asset, "action": action, "quantity": quantity, "price": price}
            coro = service.analyze_scenario(
                positions, portfolio, scenario, snapshot.get("priceHistory")
            )

        result = asyncio.run(coro)

    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)

    if as_json:
        payload = {
            "data": [item.model_dump(mode="json", by_alias=True) for item in result.data],
            "degraded": result.degraded,
            "failureReasons": result.failure_reasons,
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    _display_result(pipeline, result)


@app.command()
def info() -> None:
    """Display configuration."""
    from portfolio_insights import __version__

    settings = get_model_settings()
    engine_settings = get_engine_settings()

    console.print(
        Panel.fit(
            "[bold blue]Portfolio Insights Engine[/bold blue]",
            border_style="blue",
        )
    )

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value")

    table.add_row("Version", __version__)
    table.add_row("LLM Model", settings.model_name)
    table.add_row("Ollama URL", settings.ollama_base_url)
    table.add_row("Temperature", str(settings.temperature))
    table.add_row("Context Window", str(settings.num_ctx))
    table.add_row("Max Retries", str(settings.max_retries))
    table.add_row("Run Timeout", f"{engine_settings.run_timeout_seconds}s")

    console.print(table)


def _display_result(pipeline: PipelineName, result) -> None:
    """Render a pipeline result as a table.

    Args:
        pipeline: Which pipeline produced the result.
        result: The PipelineResult.
    """
    table = Table(title=f"{pipeline.value.title()} ({len(result.data)})")

    if pipeline == PipelineName.INSIGHTS:
        table.add_column("Type", style="dim")
        table.add_column("Title", style="bold")
        table.add_column("Confidence", justify="right")
        table.add_column("Assets")
        for item in result.data:
            table.add_row(
                item.type.value,
                item.title,
                f"{item.confidence:.0f}%",
                ", ".join(item.related_assets),
            )
    elif pipeline == PipelineName.DIVERSIFICATION:
        table.add_column("Symbol", style="bold")
        table.add_column("Amount", justify="right")
        table.add_column("Correlation", justify="right")
        table.add_column("Liquidity", justify="right")
        table.add_column("Reason")
        for item in result.data:
            table.add_row(
                item.asset_symbol,
                f"${item.amount:,.0f}",
                f"{item.correlation:.2f}",
                f"{item.liquidity_score:.0f}",
                item.reason,
            )
    elif pipeline == PipelineName.STRATEGY:
        table.add_column("Title", style="bold")
        table.add_column("Recommended")
        table.add_column("Description")
        for item in result.data:
            table.add_row(item.title, "yes" if item.recommended else "no", item.description)
    else:
        table.add_column("Metric", style="bold")
        table.add_column("Current", justify="right")
        table.add_column("New", justify="right")
        table.add_column("Change", justify="right")
        table.add_column("Insight")
        for item in result.data:
            table.add_row(
                item.metric,
                _number(item.current_value),
                _number(item.new_value),
                f"{item.change:+.2f}%" if item.change is not None else "-",
                item.insight or "",
            )

    console.print(table)

    if result.degraded:
        console.print("\n[yellow]Fallback result used:[/yellow]")
        for reason in result.failure_reasons:
            console.print(f"  - {reason}")


def _number(value: float | None) -> str:
    return f"{value:,.2f}" if value is not None else "-"


if __name__ == "__main__":
    app()
