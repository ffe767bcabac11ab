"""Base adapter classes for streamed chat-completions backends."""

import asyncio
import contextlib
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Iterable, Iterator, List, Optional

import aiohttp
import requests

from ...agents.exceptions import ModelAPIError
from ..config import ModelConfig
from ..streaming import DecodedResponse, StreamDecoder, StreamEvent

logger = logging.getLogger(__name__)

_END = object()


async def iterate_in_thread(factory: Callable[[], Iterable[Any]]) -> AsyncIterator[Any]:
    """
    Consume a blocking iterable in a worker thread and yield its items.

    Exceptions raised by the iterable are re-raised in the consumer. When the
    consumer stops early (break, aclose, cancellation) the worker stops at the
    next item and closes the iterable, so a streamed HTTP response is released
    instead of being drained in the background.
    """
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()
    stop = threading.Event()

    def put(item: Any, error: Optional[BaseException]) -> None:
        if stop.is_set():
            return
        try:
            loop.call_soon_threadsafe(queue.put_nowait, (item, error))
        except RuntimeError:
            # event loop already closed
            stop.set()

    def worker() -> None:
        iterator = None
        try:
            iterator = iter(factory())
            for item in iterator:
                if stop.is_set():
                    break
                put(item, None)
        except Exception as e:
            put(_END, e)
        else:
            put(_END, None)
        finally:
            close = getattr(iterator, "close", None)
            if close is not None:
                close()

    loop.run_in_executor(None, worker)
    try:
        while True:
            item, error = await queue.get()
            if item is _END:
                if error is not None:
                    raise error
                return
            yield item
    finally:
        stop.set()


class ChatCompletionsAdapter(ABC):
    """
    Blocking adapter for a streamed chat-completions endpoint.

    Transport and HTTP failures raise ModelAPIError; nothing is retried
    internally. ``astream`` runs the blocking read in a worker thread so the
    run loop can use the same interface as the aiohttp adapter.
    """

    provider: str = "unknown"

    def __init__(self, config: ModelConfig) -> None:
        self.config = config
        self.model_name = config.name

    # Abstract methods that each provider must implement
    @abstractmethod
    def get_headers(self) -> Dict[str, str]:
        """Return provider-specific headers"""
        pass

    @abstractmethod
    def format_request_payload(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Build the JSON request body"""
        pass

    @abstractmethod
    def get_endpoint_url(self) -> str:
        """Return provider-specific endpoint URL"""
        pass

    def handle_api_error(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        error: Optional[BaseException] = None,
    ) -> ModelAPIError:
        """Build the ModelAPIError for a failed request."""
        api_error = ModelAPIError(
            message,
            provider=self.provider,
            api_endpoint=self.get_endpoint_url(),
            status_code=status_code,
            raw_response=body,
        )
        if error is not None:
            api_error.__cause__ = error
        logger.error(f"{self.provider} request for {self.model_name} failed: {message}")
        return api_error

    def stream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Iterator[bytes]:
        """POST the request and yield raw SSE lines as they arrive."""
        payload = self.format_request_payload(messages, tools=tools, model=model, max_tokens=max_tokens)
        try:
            response = requests.post(
                self.get_endpoint_url(),
                headers=self.get_headers(),
                json=payload,
                stream=True,
                timeout=self.config.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise self.handle_api_error(f"Request failed: {e}", error=e) from e

        with response:
            if response.status_code != 200:
                raise self.handle_api_error(
                    f"HTTP {response.status_code} from {self.provider}",
                    status_code=response.status_code,
                    body=response.text,
                )
            try:
                for line in response.iter_lines():
                    if line:
                        yield line
            except requests.exceptions.RequestException as e:
                raise self.handle_api_error(f"Stream interrupted: {e}", error=e) from e

    async def astream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[bytes]:
        lines = iterate_in_thread(
            lambda: self.stream(messages, tools=tools, model=model, max_tokens=max_tokens)
        )
        async with contextlib.aclosing(lines):
            async for line in lines:
                yield line

    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        on_event: Optional[Callable[[StreamEvent], Any]] = None,
    ) -> DecodedResponse:
        """Stream one completion and return the decoded result."""
        return StreamDecoder().decode(
            self.stream(messages, tools=tools, model=model, max_tokens=max_tokens), on_event
        )


class AsyncChatCompletionsAdapter(ChatCompletionsAdapter):
    """
    aiohttp version of ChatCompletionsAdapter.

    Reuses the parent's request formatting; the streamed read is awaited
    on the event loop instead of running in a thread.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Create the pooled client session on first use."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(limit=100, limit_per_host=30, ttl_dns_cache=300)
            self._session = aiohttp.ClientSession(connector=connector)
        return self._session

    async def astream(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> AsyncIterator[bytes]:
        payload = self.format_request_payload(messages, tools=tools, model=model, max_tokens=max_tokens)
        session = await self._ensure_session()
        try:
            async with session.post(
                self.get_endpoint_url(),
                headers=self.get_headers(),
                json=payload,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as response:
                if response.status != 200:
                    body = await response.text()
                    raise self.handle_api_error(
                        f"HTTP {response.status} from {self.provider}",
                        status_code=response.status,
                        body=body,
                    )
                async for line in response.content:
                    line = line.rstrip(b"\r\n")
                    if line:
                        yield line
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise self.handle_api_error(f"Request failed: {e}", error=e) from e

    async def acomplete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        on_event: Optional[Callable[[StreamEvent], Any]] = None,
    ) -> DecodedResponse:
        return await StreamDecoder().adecode(
            self.astream(messages, tools=tools, model=model, max_tokens=max_tokens), on_event
        )

    async def cleanup(self) -> None:
        """Close the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()
