"""
Chat completion client for OpenRouter-compatible providers.

Sends exactly one request to one named model and normalizes the outcome into
a CompletionResult or a categorized ProviderError. Retries and model
fallback live in FallbackOrchestrator; this client never retries.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Literal

import httpx
from loguru import logger

from src.core.exceptions import (
    CancellationError,
    ConfigurationError,
    EmptyResponseError,
    PermanentProviderError,
    ProviderConnectionError,
    ProviderError,
    RateLimitedError,
    ServerError,
    ValidationError,
)

DEFAULT_API_URL = "https://openrouter.ai/api/v1/chat/completions"

Role = Literal["system", "user", "assistant"]


@dataclass
class ChatMessage:
    """One chat message in a completion request."""

    role: Role
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class CompletionOptions:
    """Per-request generation options."""

    expect_json: bool = False
    temperature: float = 0.3
    max_tokens: int = 4096
    top_p: float = 0.9
    cancel_event: asyncio.Event | None = None


@dataclass
class CompletionResult:
    """Normalized successful completion."""

    content: str
    finish_reason: str = ""
    model_used: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def truncated(self) -> bool:
        """True when the provider stopped because of the token limit."""
        return self.finish_reason == "length"


def classify_status(model: str, status_code: int, body: str) -> ProviderError:
    """Map a non-success HTTP status to the matching ProviderError."""
    if status_code == 429:
        hint = "Rate limited. Retry soon or try another model."
        error_cls: type[ProviderError] = RateLimitedError
    elif status_code >= 500:
        hint = "Provider error. Retry or switch model."
        error_cls = ServerError
    else:
        hint = "Verify request format and API key/limits."
        error_cls = PermanentProviderError

    return error_cls(
        f"HTTP {status_code} [{model}]: {hint}",
        model=model,
        status_code=status_code,
        body=body,
    )


def extract_message_content(data: Any) -> tuple[str, str]:
    """
    Return (content, finish_reason) from a chat completions payload.

    Malformed payloads (non-object bodies, non-object choices, content
    given as a list of parts) yield empty content so the caller can
    report them as an empty response.
    """
    if not isinstance(data, dict):
        return "", ""
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return "", ""
    choice = choices[0]
    if not isinstance(choice, dict):
        return "", ""

    content = ""
    for key in ("message", "delta"):
        part = choice.get(key)
        if isinstance(part, dict) and isinstance(part.get("content"), str) and part["content"]:
            content = part["content"]
            break

    finish_reason = choice.get("finish_reason")
    return content, finish_reason if isinstance(finish_reason, str) else ""


class CompletionStream:
    """
    Async iterator over content deltas of a streaming completion.

    The HTTP response is already open and known to be successful; it is
    closed when iteration ends or aclose() is called.
    """

    def __init__(
        self,
        response: httpx.Response,
        model: str,
        cancel_event: asyncio.Event | None = None,
    ):
        self._response = response
        self.model_used = model
        self._cancel_event = cancel_event

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iter_deltas()

    async def _iter_deltas(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                if self._cancel_event is not None and self._cancel_event.is_set():
                    raise CancellationError(f"Stream from {self.model_used} cancelled by caller")
                line = line.strip()
                # Blank keep-alives and ": comment" lines carry no data
                if not line.startswith("data:"):
                    continue
                data = line[len("data:"):].strip()
                if data == "[DONE]":
                    break
                try:
                    payload = json.loads(data)
                except json.JSONDecodeError:
                    logger.debug(f"Skipping malformed stream line from {self.model_used}: {data[:80]}")
                    continue
                delta, _ = extract_message_content(payload)
                if delta:
                    yield delta
        finally:
            await self._response.aclose()

    async def aclose(self) -> None:
        await self._response.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the concatenated text."""
        parts = [delta async for delta in self]
        return "".join(parts)


class CompletionClient:
    """HTTP client for a single chat completion request."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str = DEFAULT_API_URL,
        timeout_seconds: float = 120.0,
        referer: str = "https://studyforge.local",
        app_title: str = "StudyForge",
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the completion client.

        Args:
            api_key: Provider API key (required)
            api_url: Chat completions endpoint
            timeout_seconds: Timeout for one request
            referer: HTTP-Referer header value
            app_title: X-Title header value
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not api_key or not api_key.strip() or api_key == "placeholder-key":
            raise ConfigurationError(
                "OpenRouter API key is required. Set OPENROUTER_API_KEY in the environment or .env."
            )
        self.api_key = api_key
        self.api_url = api_url
        self.referer = referer
        self.app_title = app_title
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings=None) -> CompletionClient:
        """Build a client from application settings."""
        if settings is None:
            from config import get_settings

            settings = get_settings()
        return cls(
            api_key=settings.openrouter_api_key,
            api_url=settings.openrouter_api_url,
            timeout_seconds=settings.request_timeout_seconds,
            referer=settings.openrouter_referer,
            app_title=settings.openrouter_app_title,
        )

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> CompletionClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.referer,
            "X-Title": self.app_title,
        }

    def build_payload(
        self,
        model: str,
        messages: list[ChatMessage],
        options: CompletionOptions,
        stream: bool = False,
    ) -> dict[str, Any]:
        """Request body for one completion call."""
        payload: dict[str, Any] = {
            "model": model,
            "messages": [m.to_dict() for m in messages],
            "temperature": options.temperature,
            "top_p": options.top_p,
            "max_tokens": options.max_tokens,
        }
        if options.expect_json:
            payload["response_format"] = {"type": "json_object"}
        elif stream:
            payload["stream"] = True
        return payload

    async def send_completion(
        self,
        model: str,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionResult:
        """
        Send one completion request to one model.

        Returns:
            CompletionResult with non-empty content

        Raises:
            RateLimitedError: HTTP 429
            ServerError: HTTP 5xx
            ProviderConnectionError: Network failure or timeout
            PermanentProviderError: Any other non-success status
            EmptyResponseError: Success without usable content
            CancellationError: options.cancel_event was set while in flight
        """
        options = options or CompletionOptions()
        payload = self.build_payload(model, messages, options)

        response = await self._with_cancellation(
            lambda: self._guard_network(
                model,
                self.client.post(self.api_url, json=payload, headers=self.headers),
            ),
            options.cancel_event,
        )

        if response.status_code >= 400:
            raise classify_status(model, response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise PermanentProviderError(
                f"Invalid JSON body from {model}: {e}",
                model=model,
                status_code=response.status_code,
                body=response.text,
            ) from e

        content, finish_reason = extract_message_content(data)
        if not content.strip():
            raise EmptyResponseError(
                f"Empty response from model {model}",
                model=model,
                status_code=response.status_code,
            )

        return CompletionResult(
            content=content,
            finish_reason=finish_reason,
            model_used=model,
            raw=data,
        )

    async def open_stream(
        self,
        model: str,
        messages: list[ChatMessage],
        options: CompletionOptions | None = None,
    ) -> CompletionStream:
        """
        Open a streaming completion.

        Errors are raised before the stream is returned, so callers can
        fall back to another model without having consumed any output.

        Raises:
            ValidationError: If JSON mode was requested (partial JSON is useless)
            ProviderError: Same categories as send_completion
        """
        options = options or CompletionOptions()
        if options.expect_json:
            raise ValidationError("JSON mode and streaming are mutually exclusive")

        payload = self.build_payload(model, messages, options, stream=True)
        request = self.client.build_request("POST", self.api_url, json=payload, headers=self.headers)

        response = await self._with_cancellation(
            lambda: self._guard_network(model, self.client.send(request, stream=True)),
            options.cancel_event,
        )

        if response.status_code >= 400:
            body = (await response.aread()).decode("utf-8", errors="replace")
            await response.aclose()
            raise classify_status(model, response.status_code, body)

        return CompletionStream(response, model, options.cancel_event)

    async def _guard_network(self, model: str, request: Awaitable[httpx.Response]) -> httpx.Response:
        """Translate transport-level httpx failures into ProviderConnectionError."""
        try:
            return await request
        except httpx.TimeoutException as e:
            raise ProviderConnectionError(f"Timeout calling {model}: {e}", model=model) from e
        except httpx.RequestError as e:
            raise ProviderConnectionError(f"Request to {model} failed: {e}", model=model) from e

    async def _with_cancellation(
        self,
        make_request: Callable[[], Awaitable[httpx.Response]],
        cancel_event: asyncio.Event | None,
    ) -> httpx.Response:
        """Await the request, aborting it if cancel_event fires first."""
        if cancel_event is None:
            return await make_request()
        if cancel_event.is_set():
            raise CancellationError("Request cancelled before it was sent")

        request_task = asyncio.ensure_future(make_request())
        cancel_task = asyncio.ensure_future(cancel_event.wait())
        try:
            done, _ = await asyncio.wait(
                {request_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            pending = [task for task in (request_task, cancel_task) if not task.done()]
            for task in pending:
                task.cancel()
            # Reap cancelled tasks so their exceptions are always retrieved
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if request_task in done:
            return request_task.result()

        raise CancellationError("Request cancelled by caller")
