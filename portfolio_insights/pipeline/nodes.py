"""Node factories and prompt variable builders shared by the pipelines.

Prompt variable builders read the snapshot defensively: a field written by
a failed upstream node is simply absent, and renders as an empty string.
"""

import json
from typing import Any, Iterable, Mapping

from portfolio_insights.config import prompts
from portfolio_insights.config.settings import ModelSettings
from portfolio_insights.engine import Node
from portfolio_insights.llm import CompletionModel, NodeInvoker
from portfolio_insights.llm.invoker import PromptVariables
from portfolio_insights.models import Portfolio, Position


def llm_node(
    node_id: str,
    output: str,
    template: str,
    variables: PromptVariables,
    llm: CompletionModel,
    settings: ModelSettings | None = None,
    pipeline: str | None = None,
    depends_on: Iterable[str] = (),
) -> Node:
    """Create a node that prompts the model and stores its text in ``output``.

    Args:
        node_id: Node id, also used as the model run name.
        output: State field the response text is written to.
        template: LangChain prompt template.
        variables: Builds the template variables from the snapshot.
        llm: Model-completion collaborator.
        settings: Model settings shared by the pipeline.
        pipeline: Owning pipeline name, for logging and prompt records.
        depends_on: Upstream node ids.

    Returns:
        Node owning exactly the ``output`` field.
    """
    invoker = NodeInvoker(
        name=node_id,
        template=template,
        variables=variables,
        llm=llm,
        settings=settings,
        pipeline=pipeline,
    )

    async def run(state: Mapping[str, Any]) -> dict[str, str]:
        return {output: await invoker.run(state)}

    return Node(
        id=node_id,
        run=run,
        depends_on=frozenset(depends_on),
        outputs=frozenset({output}),
    )


# =============================================================================
# Snapshot accessors
# =============================================================================

def text_field(state: Mapping[str, Any], key: str) -> str:
    """Narrative field written by an upstream node, or '' when unavailable."""
    value = state.get(key)
    return value if isinstance(value, str) else ""


def positions_of(state: Mapping[str, Any], key: str = "positions") -> list[Position]:
    return list(state.get(key) or [])


def portfolio_of(state: Mapping[str, Any], key: str = "portfolio") -> Portfolio | None:
    return state.get(key)


def _memo(position: Position, template: str = " - memo: {}") -> str:
    return template.format(position.investment_memo) if position.investment_memo else ""


def format_positions(positions: list[Position], portfolio: Portfolio | None) -> str:
    """One line per holding with quantity, price and share of total value."""
    total = portfolio.total_value if portfolio and portfolio.total_value > 0 else 1
    lines = []
    for pos in positions:
        share = pos.current_price * pos.quantity / total * 100
        lines.append(
            f"{pos.symbol}: {pos.quantity:g} shares @ ${pos.current_price:,.2f} "
            f"({share:.1f}%){_memo(pos)}"
        )
    return "\n".join(lines)


def format_portfolio(portfolio: Portfolio | None) -> str:
    if portfolio is None:
        return ""
    return (
        f"Total value: ${portfolio.total_value:,.2f}\n"
        f"Cash: ${portfolio.cash_value:,.2f}\n"
        f"Risk mode: {portfolio.risk_mode.value}"
    )


def format_symbols(positions: list[Position]) -> str:
    return ", ".join(f"{pos.symbol}{_memo(pos, ' ({})')}" for pos in positions)


def format_market_context(context: Any) -> str:
    if context is None or context == "":
        return "Not provided"
    if isinstance(context, str):
        return context
    return json.dumps(context, indent=2, ensure_ascii=False, default=str)


# =============================================================================
# Shared analysis nodes
# =============================================================================

def portfolio_analyzer_variables(state: Mapping[str, Any]) -> dict[str, str]:
    positions = positions_of(state)
    portfolio = portfolio_of(state)
    return {
        "positions_block": format_positions(positions, portfolio),
        "portfolio_block": format_portfolio(portfolio),
        "market_context": format_market_context(state.get("market_context")),
    }


def risk_assessor_variables(state: Mapping[str, Any]) -> dict[str, str]:
    positions = positions_of(state)
    return {
        "portfolio_analysis": text_field(state, "portfolio_analysis"),
        "positions_block": format_positions(positions, portfolio_of(state)),
    }


def portfolio_analyzer_node(
    llm: CompletionModel,
    settings: ModelSettings | None = None,
    pipeline: str | None = None,
) -> Node:
    return llm_node(
        "portfolio_analyzer",
        output="portfolio_analysis",
        template=prompts.PORTFOLIO_ANALYZER_PROMPT,
        variables=portfolio_analyzer_variables,
        llm=llm,
        settings=settings,
        pipeline=pipeline,
    )


def risk_assessor_node(
    llm: CompletionModel,
    settings: ModelSettings | None = None,
    pipeline: str | None = None,
) -> Node:
    return llm_node(
        "risk_assessor",
        output="risk_assessment",
        template=prompts.RISK_ASSESSOR_PROMPT,
        variables=risk_assessor_variables,
        llm=llm,
        settings=settings,
        pipeline=pipeline,
        depends_on=("portfolio_analyzer",),
    )
