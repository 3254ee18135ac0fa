"""Ollama LLM client configuration."""

from typing import Any, Protocol, runtime_checkable

from langchain_ollama import OllamaLLM

from portfolio_insights.config.settings import ModelSettings, get_model_settings


@runtime_checkable
class CompletionModel(Protocol):
    """What the pipelines need from a model: a LangChain-style async invoke."""

    async def ainvoke(self, input: Any, config: Any = None, **kwargs: Any) -> Any:
        ...


def create_llm_client(settings: ModelSettings | None = None) -> OllamaLLM:
    """Create configured Ollama LLM client.

    Args:
        settings: Optional custom settings. Uses defaults if not provided.

    Returns:
        Configured OllamaLLM instance.
    """
    settings = settings or get_model_settings()

    return OllamaLLM(
        model=settings.model_name,
        base_url=settings.ollama_base_url,
        temperature=settings.temperature,
        timeout=settings.request_timeout,
        num_ctx=settings.num_ctx,
        num_predict=settings.num_predict,
    )


def response_text(response: Any) -> str:
    """Coerce a model response or stream chunk to plain text.

    Handles plain strings (text LLMs), message objects with a string
    ``content`` and message objects whose content is a list of parts.
    """
    if response is None:
        return ""
    if isinstance(response, str):
        return response

    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
        return "".join(parts)
    return str(content)
