"""Async HTTP client for the local chat-completions endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError

from agentroom.schemas import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionChunk,
    Config,
)

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "http://localhost:12434"
COMPLETIONS_PATH = "/engines/llama.cpp/v1/chat/completions"

# Timeouts
DEFAULT_TIMEOUT = 300.0  # seconds, large models can be slow to first token
HEALTH_TIMEOUT = 2.0


class ModelClientError(Exception):
    """Raised when the model endpoint is unavailable or returns an error."""

    pass


class MalformedResponseError(ModelClientError):
    """Raised when the endpoint answers with something that is not a completion."""

    pass


def _describe_status_error(e: httpx.HTTPStatusError) -> str:
    detail = f"HTTP {e.response.status_code}"
    try:
        error = e.response.json().get("error")
    except (ValueError, AttributeError, httpx.ResponseNotRead):
        error = None
    if error:
        detail += f" - {json.dumps(error)}"
    return detail


class ModelClient:
    """Chat-completion client for an OpenAI-compatible local server."""

    def __init__(
        self,
        base_url: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Server root, e.g. http://localhost:12434
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: Config) -> ModelClient:
        return cls(base_url=config.endpoint, timeout=config.request_timeout)

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}{COMPLETIONS_PATH}"

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout or self.timeout,
            transport=self._transport,
            headers={"Content-Type": "application/json"},
        )

    async def chat_completion(self, request: ChatCompletionRequest) -> ChatCompletionResponse:
        """Send a non-streaming completion request.

        Raises:
            ModelClientError: On connection failure, timeout or HTTP error
            MalformedResponseError: If the body is not a completion response
        """
        payload = request.model_dump(exclude_none=True)
        payload["stream"] = False

        try:
            async with self._client() as client:
                response = await client.post(self.completions_url, json=payload)
                response.raise_for_status()
                body = response.json()
        except httpx.ConnectError as e:
            logger.error(f"Failed to connect to model endpoint: {e}")
            raise ModelClientError(f"Model endpoint unavailable at {self.base_url}") from e
        except httpx.TimeoutException as e:
            logger.warning(f"Completion request for {request.model} timed out")
            raise ModelClientError(f"Request timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Model endpoint HTTP error: {e}")
            raise ModelClientError(_describe_status_error(e)) from e
        except httpx.HTTPError as e:
            raise ModelClientError(str(e) or e.__class__.__name__) from e
        except ValueError as e:
            raise MalformedResponseError("Response body is not JSON") from e

        try:
            completion = ChatCompletionResponse.model_validate(body)
        except ValidationError as e:
            raise MalformedResponseError(f"Unexpected response shape: {e}") from e

        if not completion.choices or completion.choices[0].message is None:
            raise MalformedResponseError("Response has no choices[0].message")
        return completion

    async def chat_completion_stream(
        self, request: ChatCompletionRequest
    ) -> AsyncIterator[CompletionChunk]:
        """Stream a completion as server-sent events.

        Yields one CompletionChunk per ``data:`` line until ``[DONE]``.
        Lines that are not valid JSON are skipped.

        Raises:
            ModelClientError: On connection failure, timeout or HTTP error
        """
        payload = request.model_dump(exclude_none=True)
        payload["stream"] = True

        try:
            async with self._client() as client:
                async with client.stream("POST", self.completions_url, json=payload) as response:
                    if response.is_error:
                        await response.aread()
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.startswith("data: "):
                            continue
                        data = line[len("data: "):].strip()
                        if data == "[DONE]":
                            return
                        try:
                            yield CompletionChunk.model_validate_json(data)
                        except ValidationError:
                            logger.debug(f"Skipping unparseable stream line: {data[:80]}")
        except httpx.ConnectError as e:
            logger.error(f"Failed to connect to model endpoint: {e}")
            raise ModelClientError(f"Model endpoint unavailable at {self.base_url}") from e
        except httpx.TimeoutException as e:
            raise ModelClientError(f"Stream timed out after {self.timeout:.0f}s") from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Model endpoint HTTP error: {e}")
            raise ModelClientError(_describe_status_error(e)) from e
        except httpx.HTTPError as e:
            raise ModelClientError(str(e) or e.__class__.__name__) from e

    async def health_check(self) -> bool:
        """Check if the endpoint is reachable. Any HTTP response counts as up."""
        try:
            async with self._client(timeout=HEALTH_TIMEOUT) as client:
                await client.post(
                    self.completions_url,
                    json={
                        "model": "test",
                        "messages": [{"role": "user", "content": "test"}],
                        "max_tokens": 1,
                    },
                )
            return True
        except httpx.HTTPError:
            return False


async def stream_tokens(
    chunks: AsyncIterator[CompletionChunk],
    usage_sink: list | None = None,
) -> AsyncIterator[str]:
    """Reduce a chunk stream to its delta text fragments.

    Stops after the first chunk carrying a ``finish_reason``. Usage metadata,
    when present on any chunk, is appended to ``usage_sink``.
    """
    try:
        async for chunk in chunks:
            if chunk.usage is not None and usage_sink is not None:
                usage_sink.append(chunk.usage)
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.delta is not None and choice.delta.content:
                yield choice.delta.content
            if choice.finish_reason:
                return
    finally:
        aclose = getattr(chunks, "aclose", None)
        if aclose is not None:
            await aclose()
