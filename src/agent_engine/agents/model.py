"""Model backends.

A ModelBackend turns a ModelRequest (conversation + tool definitions) into a
ModelResponse (generated content + tool calls). OpenAIModel talks to any
OpenAI-compatible chat completions endpoint.
"""

import json
import os
from abc import ABC, abstractmethod
from typing import Any

from openai import AsyncOpenAI

from ..config.schemas import LLMConfig
from ..errors import ContextLimitError, ModelInvocationError
from ..models import Content, FunctionCall, ModelRequest, ModelResponse, Part
from ..utils import async_retry_with_exponential_backoff, get_logger, is_retryable_error

logger = get_logger(__name__)


class ModelBackend(ABC):
    """Model-invocation backend consumed by LLM agents."""

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Model identifier placed in requests."""

    @abstractmethod
    async def generate(self, request: ModelRequest) -> ModelResponse:
        """Generate a response.

        Args:
            request: Conversation and tool definitions

        Returns:
            Generated content and tool calls

        Raises:
            ModelInvocationError: If the backend fails
        """


def _is_context_limit(error: Exception) -> bool:
    error_str = str(error).lower()
    return "context" in error_str and ("limit" in error_str or "length" in error_str)


def _should_retry(error: Exception) -> bool:
    return not _is_context_limit(error) and is_retryable_error(error)


class OpenAIModel(ModelBackend):
    """Backend for OpenAI-compatible APIs.

    Supports OpenAI, DeepSeek, GLM, Ollama, and custom endpoints.
    """

    def __init__(self, config: LLMConfig, client: AsyncOpenAI | None = None) -> None:
        """Initialize the backend.

        Args:
            config: Endpoint configuration
            client: Pre-built client (tests inject one)
        """
        self.config = config

        if client is None:
            api_key = os.environ.get(config.api_key_env, "")
            if not api_key and config.api_type not in ["ollama", "custom"]:
                logger.warning(f"API key not found for {config.api_key_env}")

            client = AsyncOpenAI(
                base_url=config.endpoint,
                api_key=api_key if api_key else "not-needed",  # Ollama doesn't need API key
                timeout=config.timeout_seconds,
            )
        self.client = client

        policy = config.retry
        self._create_with_retry = async_retry_with_exponential_backoff(
            max_attempts=policy.max_attempts,
            base_delay=policy.base_delay,
            max_delay=policy.max_delay,
            exponential_base=policy.exponential_base,
            jitter=policy.jitter,
            retryable=_should_retry,
        )(self._create)

    @property
    def model_name(self) -> str:
        return self.config.model

    async def generate(self, request: ModelRequest) -> ModelResponse:
        params: dict[str, Any] = {
            "model": request.model or self.config.model,
            "messages": self.to_openai_messages(request),
        }

        generation = request.generation_config
        temperature = generation.get("temperature", self.config.temperature)
        if temperature is not None:
            params["temperature"] = temperature
        max_tokens = generation.get("max_tokens", self.config.max_tokens)
        if max_tokens is not None:
            params["max_tokens"] = max_tokens
        for key in ("top_p", "stop", "seed"):
            if key in generation:
                params[key] = generation[key]

        if request.tools:
            params["tools"] = request.tools
            params["tool_choice"] = request.tool_choice

        try:
            response = await self._create_with_retry(params)
        except Exception as e:
            if _is_context_limit(e):
                raise ContextLimitError(f"LLM context limit exceeded: {e}") from e
            logger.error(f"LLM completion error: {e}")
            raise ModelInvocationError(
                f"LLM completion failed: {e}",
                details={"model": params["model"], "error_type": type(e).__name__},
            ) from e

        return self._parse_response(response)

    async def _create(self, params: dict[str, Any]) -> Any:
        return await self.client.chat.completions.create(**params)

    @staticmethod
    def to_openai_messages(request: ModelRequest) -> list[dict[str, Any]]:
        """Convert the request conversation to chat completion messages.

        Args:
            request: Model request

        Returns:
            List of message dictionaries
        """
        messages: list[dict[str, Any]] = []
        if request.system_instruction:
            messages.append({"role": "system", "content": request.system_instruction})

        for content in request.messages:
            if content.role == "tool":
                for part in content.parts:
                    if part.type == "function_response" and part.function_response:
                        messages.append(
                            {
                                "role": "tool",
                                "tool_call_id": part.function_response.id,
                                "content": part.function_response.content,
                            }
                        )
                continue

            message_dict: dict[str, Any] = {"role": content.role, "content": content.text}
            calls = content.function_calls
            if calls:
                message_dict["tool_calls"] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": json.dumps(call.arguments),
                        },
                    }
                    for call in calls
                ]
            messages.append(message_dict)

        return messages

    def _parse_response(self, response: Any) -> ModelResponse:
        choice = response.choices[0]
        message = choice.message
        text = message.content or ""

        tool_calls = [
            FunctionCall(
                id=tc.id,
                name=tc.function.name,
                arguments=self._parse_function_args(tc.function.arguments),
            )
            for tc in (message.tool_calls or [])
        ]

        usage: dict[str, int] = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens or 0,
                "completion_tokens": response.usage.completion_tokens or 0,
                "total_tokens": response.usage.total_tokens or 0,
            }

        return ModelResponse(
            content=Content(role="assistant", parts=[Part.from_text(text)]) if text else None,
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    def _parse_function_args(self, args_str: str | None) -> dict[str, Any]:
        """Parse function arguments from JSON string.

        Args:
            args_str: JSON string of arguments

        Returns:
            Parsed arguments dictionary
        """
        if not args_str:
            return {}
        try:
            parsed = json.loads(args_str)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse function arguments: {args_str}")
            return {}
        return parsed if isinstance(parsed, dict) else {"value": parsed}
