"""Shared wrapper for the analysis pipelines.

Every pipeline follows the same shape: compile its static graph once, run
it through the execution engine, extract the terminal node's raw text into
structured items, and fall back to a static default whenever any of that
fails. The result always carries data; ``degraded`` tells the caller when
that data is the fallback.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar, Generic, Iterable, Mapping, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from portfolio_insights.config.settings import ModelSettings, get_model_settings
from portfolio_insights.engine import (
    CompiledGraph,
    ExecutionEngine,
    ExtractionFailure,
    Node,
    PipelineGraph,
    RunFailure,
    node_errors,
    node_failed,
)
from portfolio_insights.extraction import extract_json
from portfolio_insights.llm import CompletionModel
from portfolio_insights.models import Portfolio, Position

from .nodes import llm_node
from .state import SnapshotState

logger = structlog.get_logger(__name__)

ItemT = TypeVar("ItemT", bound=BaseModel)


@dataclass
class PipelineResult(Generic[ItemT]):
    """Pipeline output with degradation details."""

    data: list[ItemT]
    degraded: bool = False
    failure_reasons: list[str] = field(default_factory=list)
    final_state: dict[str, Any] = field(default_factory=dict, repr=False)


def coerce_positions(positions: Iterable[Position | Mapping[str, Any]] | None) -> list[Position]:
    return [
        pos if isinstance(pos, Position) else Position.model_validate(pos)
        for pos in positions or []
    ]


def coerce_portfolio(portfolio: Portfolio | Mapping[str, Any]) -> Portfolio:
    return portfolio if isinstance(portfolio, Portfolio) else Portfolio.model_validate(portfolio)


class AnalysisPipeline(ABC, Generic[ItemT]):
    """Base class for the four analysis pipelines.

    Subclasses describe their graph, the field holding the terminal node's
    raw text, the JSON key wrapping the items and the item model.
    """

    name: ClassVar[str]
    terminal_node: ClassVar[str]
    raw_output_key: ClassVar[str]
    collection_key: ClassVar[str]
    item_model: ClassVar[type[BaseModel]]
    state_schema: ClassVar[type] = SnapshotState

    def __init__(
        self,
        llm: CompletionModel,
        settings: ModelSettings | None = None,
        engine: ExecutionEngine | None = None,
    ):
        self.llm = llm
        self.settings = settings or get_model_settings()
        self.engine = engine or ExecutionEngine()
        self.graph: CompiledGraph = self.build_graph().compile()

    @abstractmethod
    def build_graph(self) -> PipelineGraph:
        """Register the pipeline's nodes and edges."""

    @abstractmethod
    def fallback(self, state: Mapping[str, Any]) -> list[ItemT]:
        """Static default result used when the pipeline cannot produce one."""

    def llm_node(
        self,
        node_id: str,
        output: str,
        template: str,
        variables,
        depends_on: Iterable[str] = (),
    ) -> Node:
        return llm_node(
            node_id,
            output=output,
            template=template,
            variables=variables,
            llm=self.llm,
            settings=self.settings,
            pipeline=self.name,
            depends_on=depends_on,
        )

    def postprocess(self, items: list[ItemT], state: Mapping[str, Any]) -> list[ItemT]:
        """Hook for pipeline-specific enrichment of parsed items."""
        return items

    def prepare_item(self, item: dict[str, Any], state: Mapping[str, Any]) -> dict[str, Any]:
        """Hook to adjust a raw item before validation."""
        return item

    async def arun(
        self,
        initial_state: Mapping[str, Any],
        timeout: float | None = None,
    ) -> PipelineResult[ItemT]:
        """Run the pipeline and return its items, or the fallback.

        Args:
            initial_state: Inputs for the first layer.
            timeout: Optional deadline for the whole run, in seconds.

        Returns:
            PipelineResult that always holds a non-empty list.
        """
        logger.info("pipeline_starting", pipeline=self.name)

        unexpected = set(initial_state) - set(self.state_schema.__annotations__)
        if unexpected:
            logger.warning("pipeline_unexpected_inputs", pipeline=self.name, keys=sorted(unexpected))

        try:
            final_state = await self.engine.run(self.graph, initial_state, timeout=timeout)
        except Exception as e:
            logger.exception("pipeline_run_failed", pipeline=self.name)
            failure = RunFailure(f"{type(e).__name__}: {e}")
            return self._degraded(dict(initial_state), [str(failure)])

        reasons = [f"{marker['error']}: {marker['message']}" for marker in node_errors(final_state)]

        if node_failed(final_state, self.terminal_node):
            return self._degraded(final_state, reasons)

        extraction = extract_json(final_state.get(self.raw_output_key))
        if not extraction.success:
            failure = ExtractionFailure(f"{self.terminal_node}: {extraction.error}")
            logger.warning("pipeline_extraction_failed", pipeline=self.name, error=str(failure))
            return self._degraded(final_state, reasons + [str(failure)])

        items = self.parse_items(extraction.data, final_state)
        if not items:
            return self._degraded(
                final_state,
                reasons + [f"{self.terminal_node}: no valid {self.collection_key} in response"],
            )

        logger.info(
            "pipeline_complete",
            pipeline=self.name,
            items=len(items),
            extraction_method=extraction.method,
            failed_nodes=len(reasons),
        )
        return PipelineResult(
            data=self.postprocess(items, final_state),
            degraded=False,
            failure_reasons=reasons,
            final_state=final_state,
        )

    def run(
        self,
        initial_state: Mapping[str, Any],
        timeout: float | None = None,
    ) -> PipelineResult[ItemT]:
        """Synchronous wrapper around :meth:`arun`."""
        return asyncio.run(self.arun(initial_state, timeout=timeout))

    def parse_items(self, data: Any, state: Mapping[str, Any]) -> list[ItemT]:
        """Validate the extracted collection, dropping invalid items."""
        items: list[ItemT] = []
        for index, raw in enumerate(self._collection(data)):
            if not isinstance(raw, dict):
                logger.warning("pipeline_item_skipped", pipeline=self.name, index=index)
                continue
            try:
                items.append(self.item_model.model_validate(self.prepare_item(dict(raw), state)))
            except ValidationError as e:
                logger.warning(
                    "pipeline_item_invalid",
                    pipeline=self.name,
                    index=index,
                    errors=e.error_count(),
                )
        return items

    def _collection(self, data: Any) -> list[Any]:
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            wrapped = data.get(self.collection_key)
            if isinstance(wrapped, list):
                return wrapped
            for value in data.values():
                if isinstance(value, list) and any(isinstance(entry, dict) for entry in value):
                    return value
            return [data]
        return []

    def _degraded(self, state: dict[str, Any], reasons: list[str]) -> PipelineResult[ItemT]:
        logger.warning("pipeline_fallback_used", pipeline=self.name, reasons=reasons)
        return PipelineResult(
            data=self.fallback(state),
            degraded=True,
            failure_reasons=reasons,
            final_state=state,
        )
