"""OpenAI LLM client adapter."""

import json
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.failures import FailureCategory
from app.core.errors import UpstreamError


def translate_openai_error(exc: Exception) -> UpstreamError:
    """Translate an OpenAI SDK exception into an UpstreamError.

    Args:
        exc: Exception raised by the OpenAI client.

    Returns:
        UpstreamError whose code is the matching FailureCategory value.
    """
    # APITimeoutError subclasses APIConnectionError, so it must be checked first.
    if isinstance(exc, openai.APITimeoutError):
        category = FailureCategory.DEADLINE_EXCEEDED
    elif isinstance(exc, openai.APIConnectionError):
        category = FailureCategory.UNAVAILABLE
    elif isinstance(exc, openai.AuthenticationError):
        category = FailureCategory.UNAUTHENTICATED
    elif isinstance(exc, openai.PermissionDeniedError):
        category = FailureCategory.PERMISSION_DENIED
    elif isinstance(
        exc,
        (openai.BadRequestError, openai.UnprocessableEntityError, openai.NotFoundError),
    ):
        category = FailureCategory.INVALID_ARGUMENT
    elif isinstance(exc, openai.RateLimitError):
        category = FailureCategory.RESOURCE_EXHAUSTED
    elif isinstance(exc, openai.APIStatusError):
        if exc.status_code in (502, 503, 529):
            category = FailureCategory.OVERLOADED
        elif exc.status_code >= 500:
            category = FailureCategory.INTERNAL
        else:
            category = FailureCategory.UNKNOWN
    else:
        category = FailureCategory.UNKNOWN

    return UpstreamError(
        code=category.value,
        message=f"OpenAI API error: {str(exc)}",
    )


class OpenAIClient(AbstractLLMClient):
    """Client for calling OpenAI chat completions and returning JSON.

    Uses the official OpenAI Python SDK with async support. SDK retries are
    disabled; retrying is owned by the RetryClient.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout_seconds: float = 45.0,
    ) -> None:
        """Initialize OpenAI async client.

        Args:
            api_key: OpenAI API key for authentication.
            model: Vision-capable model name (e.g., "gpt-4o", "gpt-4o-mini").
            base_url: Optional custom base URL for OpenAI API.
            timeout_seconds: Timeout for a single request in seconds.
        """
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout_seconds,
            max_retries=0,
        )
        self.model = model

    @staticmethod
    def _build_user_content(prompt: str, images: Sequence[str] | None) -> str | list[dict[str, Any]]:
        if not images:
            return prompt
        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        for data_url in images:
            content.append({"type": "image_url", "image_url": {"url": data_url}})
        return content

    async def generate_json(
        self,
        prompt: str,
        *,
        schema: dict[str, Any] | None = None,
        images: Sequence[str] | None = None,
        **kwargs: Any,
    ) -> dict[str, Any]:
        """Generate structured JSON using OpenAI chat completions.

        Args:
            prompt: User prompt to send to the model.
            schema: Optional JSON schema to enforce (uses json_object mode if provided).
            images: Optional base64 data URLs attached to the user message.
            **kwargs: Provider options (temperature, max_tokens, top_p, etc.).

        Returns:
            dict[str, Any]: Parsed JSON object from the LLM response.

        Raises:
            UpstreamError: If the API call fails, or the response is empty or
                not valid JSON (``internal``).
        """
        messages = [
            {
                "role": "system",
                "content": "Output JSON only. No extra text or markdown formatting.",
            },
            {"role": "user", "content": self._build_user_content(prompt, images)},
        ]

        temperature = kwargs.pop("temperature", 0.2)

        request_params: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }

        if schema is not None:
            request_params["response_format"] = {"type": "json_object"}

        allowed_params = {
            "max_tokens",
            "top_p",
            "frequency_penalty",
            "presence_penalty",
            "seed",
        }
        for param in allowed_params:
            if param in kwargs:
                request_params[param] = kwargs[param]

        try:
            response = await self.client.chat.completions.create(**request_params)
        except openai.OpenAIError as exc:
            raise translate_openai_error(exc) from exc

        content = response.choices[0].message.content if response.choices else None
        if not content or not content.strip():
            raise UpstreamError(
                code=FailureCategory.INTERNAL.value,
                message="LLM returned empty response",
            )

        try:
            parsed = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            raise UpstreamError(
                code=FailureCategory.INTERNAL.value,
                message=f"LLM returned invalid JSON: {str(exc)}",
            ) from exc

        if not isinstance(parsed, dict):
            raise UpstreamError(
                code=FailureCategory.INTERNAL.value,
                message="LLM returned JSON that is not an object",
            )
        return parsed
