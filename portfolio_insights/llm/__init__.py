"""LLM client and node invocation."""

from .client import CompletionModel, create_llm_client, response_text
from .invoker import NodeInvoker, ProviderError

__all__ = [
    "CompletionModel",
    "create_llm_client",
    "response_text",
    "NodeInvoker",
    "ProviderError",
]
