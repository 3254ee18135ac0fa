"""Model-backed node invocation.

A NodeInvoker owns one pipeline step that talks to the model: it renders
the step's prompt from the current state snapshot and awaits the model's
complete text. Provider failures are retried; the whole call is bounded by
a timeout. Errors propagate to the execution engine, which records them
against the node.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Mapping

import structlog
from langchain_core.prompts import PromptTemplate
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from portfolio_insights.config.settings import ModelSettings, get_model_settings
from portfolio_insights.llm.client import CompletionModel, response_text

logger = structlog.get_logger(__name__)

PromptVariables = Callable[[Mapping[str, Any]], dict[str, Any]]


class ProviderError(Exception):
    """Error returned by, or while talking to, the model provider."""

    pass


class NodeInvoker:
    """Prompt rendering and model invocation for one pipeline step."""

    def __init__(
        self,
        name: str,
        template: str,
        variables: PromptVariables,
        llm: CompletionModel,
        settings: ModelSettings | None = None,
        pipeline: str | None = None,
    ):
        self.name = name
        self.pipeline = pipeline
        self.llm = llm
        self.settings = settings or get_model_settings()
        self._template = PromptTemplate.from_template(template)
        self._variables = variables

    def build_prompt(self, state: Mapping[str, Any]) -> str:
        """Render the prompt for ``state``. Pure: no I/O."""
        return self._template.format(**self._variables(state))

    async def invoke(self, prompt: str, timeout: float | None = None) -> str:
        """Send the prompt to the model and return its full text.

        Args:
            prompt: Rendered prompt.
            timeout: Seconds allowed for the call, retries included.
                Defaults to the configured request timeout.

        Returns:
            Non-empty response text.

        Raises:
            ProviderError: The provider failed on every attempt.
            asyncio.TimeoutError: The call did not finish in time.
        """
        self._record_prompt(prompt)
        limit = timeout if timeout is not None else self.settings.request_timeout
        return await asyncio.wait_for(self._invoke_with_retry(prompt), timeout=limit)

    async def run(self, state: Mapping[str, Any]) -> str:
        """Build the prompt from ``state`` and invoke the model."""
        return await self.invoke(self.build_prompt(state))

    async def _invoke_with_retry(self, prompt: str) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(max(1, self.settings.max_retries)),
            wait=wait_exponential(
                multiplier=1,
                min=self.settings.retry_min_wait,
                max=self.settings.retry_max_wait,
            ),
            retry=retry_if_exception_type(ProviderError),
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                attempt_number = attempt.retry_state.attempt_number
                if attempt_number > 1:
                    logger.warning("node_invoke_retry", node=self.name, attempt=attempt_number)
                return await self._complete(prompt)

        raise ProviderError(f"{self.name}: no attempt was made")

    async def _complete(self, prompt: str) -> str:
        config = {
            "run_name": self.name,
            "tags": [self.name],
            "metadata": {"pipeline": self.pipeline, "node": self.name},
        }

        logger.debug("node_invoke_start", node=self.name, prompt_length=len(prompt))

        try:
            if self.settings.streaming and hasattr(self.llm, "astream"):
                chunks = []
                async for chunk in self.llm.astream(prompt, config=config):
                    chunks.append(response_text(chunk))
                text = "".join(chunks)
            else:
                text = response_text(await self.llm.ainvoke(prompt, config=config))
        except Exception as e:
            logger.error("node_invoke_failed", node=self.name, error=str(e))
            raise ProviderError(str(e) or type(e).__name__) from e

        if not text or not text.strip():
            raise ProviderError("empty response from model")

        logger.debug("node_invoke_complete", node=self.name, response_length=len(text))
        return text

    def _record_prompt(self, prompt: str) -> None:
        record_dir = self.settings.prompt_record_dir
        if record_dir is None:
            return
        try:
            path = Path(record_dir)
            path.mkdir(parents=True, exist_ok=True)
            prefix = f"{self.pipeline}-" if self.pipeline else ""
            (path / f"{prefix}{self.name}.md").write_text(prompt, encoding="utf-8")
        except OSError as e:
            logger.warning("prompt_record_failed", node=self.name, error=str(e))
