"""LLM adapter layer - abstracts over LLM providers and their failure vocabulary."""

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import create_llm_client
from app.adapters.llm.failures import FailureCategory, categorize_failure
from app.adapters.llm.openai_client import OpenAIClient

__all__ = [
    "AbstractLLMClient",
    "FailureCategory",
    "OpenAIClient",
    "categorize_failure",
    "create_llm_client",
]
