from abc import ABC, abstractmethod
from typing import Any, Sequence


class AbstractLLMClient(ABC):
	"""Interface for LLM clients that produce structured JSON outputs."""

	@abstractmethod
	async def generate_json(
		self,
		prompt: str,
		*,
		schema: dict[str, Any] | None = None,
		images: Sequence[str] | None = None,
		**kwargs: Any,
	) -> dict[str, Any]:
		"""Generate a structured JSON response from the model.

		Args:
			prompt: User or system prompt to send to the model.
			schema: Optional JSON schema to validate/enforce on the response.
			images: Optional base64 data URLs sent alongside the prompt.
			**kwargs: Provider-specific options (e.g., temperature, max_tokens).

		Returns:
			dict[str, Any]: Parsed JSON object returned by the model.

		Raises:
			UpstreamError: If the provider call fails or the response cannot be
				parsed. The error code is a FailureCategory value.
		"""
		...
