"""Async generation client built around OpenAI-compatible endpoints."""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping

import httpx
from jsonschema import Draft7Validator, ValidationError
from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..errors import GenerationError, SchemaValidationError

LOGGER = logging.getLogger(__name__)

# Provider image sizes for the aspect ratios the dashboard asks for
IMAGE_SIZES: Dict[str, str] = {
    "1:1": "1024x1024",
    "2:3": "1024x1536",
    "3:4": "1024x1536",
    "9:16": "1024x1792",
    "16:9": "1792x1024",
}


@dataclass(slots=True)
class ClientSettings:
    """Subset of settings required to configure the generation client."""

    api_key: str
    model: str = "gpt-4o-mini"
    image_model: str = "gpt-image-1"
    base_url: str | None = None
    organization: str | None = None
    request_timeout: float | None = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: Mapping[str, str] | None = None
    debug_logging: bool = False


class GenerationClient:
    """Single request/response text and image generation with retry semantics."""

    def __init__(self, settings: ClientSettings, *, client: AsyncOpenAI | None = None) -> None:
        self._settings = settings
        self._client = client or self._build_client(settings)

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    async def complete_text(
        self,
        prompt: str,
        *,
        schema: Mapping[str, Any] | None = None,
        temperature: float | None = None,
    ) -> Any:
        """Run one completion.

        Args:
            prompt: The user prompt.
            schema: Optional JSON schema. When given the provider is asked for
                a JSON object and the parsed result is validated against it.
            temperature: Optional sampling temperature.

        Returns:
            The completion text, or the validated JSON object when ``schema``
            was given.

        Raises:
            GenerationError: The provider returned no content.
            SchemaValidationError: The structured result is not valid JSON or
                does not match ``schema``.
        """
        payload: Dict[str, Any] = {
            "model": self._settings.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        if temperature is not None:
            payload["temperature"] = temperature
        if schema is not None:
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": "result", "schema": dict(schema)},
            }
        LOGGER.debug("Requesting completion via %s (%d chars)", self._settings.model, len(prompt))
        if self._settings.debug_logging:
            self._log_prompt_payload(payload)

        response = None
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.chat.completions.create(**payload)

        text = _first_message_text(response)
        if schema is None:
            return text
        return _validate_structured(text, schema)

    async def generate_image(self, prompt: str, *, aspect_ratio: str = "1:1") -> str:
        """Generate one image and return it as a ``data:image/...;base64,`` URL."""

        size = IMAGE_SIZES.get(aspect_ratio)
        if size is None:
            raise ValueError(f"Unsupported aspect ratio '{aspect_ratio}'")
        LOGGER.debug("Requesting %s image via %s", aspect_ratio, self._settings.image_model)

        response = None
        async for attempt in self._retrying():
            with attempt:
                response = await self._client.images.generate(
                    model=self._settings.image_model,
                    prompt=prompt,
                    size=size,
                    n=1,
                )

        data = getattr(response, "data", None) or []
        encoded = getattr(data[0], "b64_json", None) if data else None
        if not encoded:
            raise GenerationError("Image provider returned no image data")
        return f"data:image/png;base64,{encoded}"

    def _build_client(self, settings: ClientSettings) -> AsyncOpenAI:
        headers = dict(settings.default_headers) if settings.default_headers else None
        return AsyncOpenAI(
            api_key=settings.api_key,
            base_url=settings.base_url,
            organization=settings.organization,
            timeout=settings.request_timeout,
            default_headers=headers,
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self._settings.max_retries)),
            wait=wait_exponential(
                multiplier=self._settings.retry_min_seconds,
                max=self._settings.retry_max_seconds,
            ),
            retry=retry_if_exception_type(
                (
                    APIStatusError,
                    APIConnectionError,
                    RateLimitError,
                    httpx.TimeoutException,
                )
            ),
        )

    def _log_prompt_payload(self, payload: Mapping[str, Any]) -> None:
        try:
            serialized = json.dumps(payload, ensure_ascii=False, indent=2)
        except (TypeError, ValueError):
            LOGGER.debug("Generation payload (unserializable): %s", payload)
        else:
            LOGGER.debug("Generation payload:\n%s", serialized)

    async def aclose(self) -> None:
        """Close the underlying OpenAI client to release network resources."""

        close = getattr(self._client, "close", None)
        if close is None:
            return
        result = close()
        if inspect.isawaitable(result):
            await result


def _first_message_text(response: Any) -> str:
    choices = getattr(response, "choices", None) or []
    message = getattr(choices[0], "message", None) if choices else None
    content = getattr(message, "content", None)
    if not content:
        raise GenerationError("Provider returned an empty completion")
    return str(content)


def _validate_structured(text: str, schema: Mapping[str, Any]) -> Any:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SchemaValidationError(f"Structured completion is not valid JSON: {exc}") from exc
    try:
        Draft7Validator(dict(schema)).validate(data)
    except ValidationError as error:
        raise SchemaValidationError(
            f"Structured completion does not match schema: {_format_validation_error(error)}"
        ) from error
    return data


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


__all__ = ["ClientSettings", "GenerationClient", "IMAGE_SIZES"]
