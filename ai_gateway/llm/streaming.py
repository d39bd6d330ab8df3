"""Streaming completions normalized into one text-delta stream.

The proxy answers a streaming request with server-sent events
(``data: <payload>`` lines, terminated by ``data: [DONE]``). Payload shape
depends on the vendor behind the proxy, so each line is run through an
ordered list of format matchers until one recognizes it.

State machine::

    idle -> connecting -> streaming -> complete | error | cancelled
    (any) -> idle                      via reset()
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Sequence

import httpx

from ai_gateway.utils.errors import ProviderHTTPError

from .config import ProviderType
from .types import MessageLike, coerce_messages

logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data: "
SSE_DONE_MARKER = "[DONE]"

DEFAULT_STREAM_MODEL = "gpt-3.5-turbo"


class StreamingStatus(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = frozenset(
    {StreamingStatus.COMPLETE, StreamingStatus.ERROR, StreamingStatus.CANCELLED}
)


# ============================================
# Frame parsing
# ============================================

# A matcher takes a decoded JSON payload and returns a text fragment, or
# None when the payload is not in its format.
FormatMatcher = Callable[[Any], Optional[str]]


def match_openai_delta(payload: Any) -> Optional[str]:
    """``{"choices": [{"delta": {"content": "..."}}]}``"""
    if not isinstance(payload, dict):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


def match_anthropic_delta(payload: Any) -> Optional[str]:
    """``{"delta": {"text": "..."}}``, including ``content_block_delta`` events."""
    if not isinstance(payload, dict):
        return None
    delta = payload.get("delta")
    if not isinstance(delta, dict):
        return None
    text = delta.get("text")
    return text if isinstance(text, str) and text else None


def match_json_string(payload: Any) -> Optional[str]:
    """A bare JSON string literal."""
    return payload if isinstance(payload, str) and payload else None


FORMAT_MATCHERS: tuple[FormatMatcher, ...] = (
    match_openai_delta,
    match_anthropic_delta,
    match_json_string,
)


@dataclass
class ParsedChunk:
    fragments: list[str] = field(default_factory=list)
    done: bool = False


def parse_sse_line(
    line: str, matchers: Sequence[FormatMatcher] = FORMAT_MATCHERS
) -> tuple[Optional[str], bool]:
    """Decode one SSE line.

    Returns:
        Tuple of (text fragment or None, end-of-stream seen)
    """
    line = line.strip()
    if not line.startswith(SSE_DATA_PREFIX):
        return None, False

    data = line[len(SSE_DATA_PREFIX):]
    if data == SSE_DONE_MARKER:
        return None, True

    try:
        payload = json.loads(data)
    except ValueError:
        # Not JSON: the payload is literal text
        return (data or None), False

    for matcher in matchers:
        fragment = matcher(payload)
        if fragment is not None:
            return fragment, False

    return None, False


def parse_sse_chunk(
    chunk: str, matchers: Sequence[FormatMatcher] = FORMAT_MATCHERS
) -> ParsedChunk:
    """Parse a self-contained block of SSE text into fragments.

    Lines after the end-of-stream marker are ignored.
    """
    parsed = ParsedChunk()
    for line in chunk.split("\n"):
        fragment, done = parse_sse_line(line, matchers)
        if done:
            parsed.done = True
            break
        if fragment is not None:
            parsed.fragments.append(fragment)
    return parsed


class SSEDecoder:
    """Incremental SSE decoder that tolerates lines split across network chunks."""

    def __init__(self, matchers: Sequence[FormatMatcher] = FORMAT_MATCHERS):
        self.matchers = tuple(matchers)
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> ParsedChunk:
        """Consume a network chunk; only complete lines are parsed."""
        if self.done:
            return ParsedChunk(done=True)

        self._buffer += chunk
        complete, _, self._buffer = self._buffer.rpartition("\n")
        if not complete:
            return ParsedChunk()

        parsed = parse_sse_chunk(complete, self.matchers)
        if parsed.done:
            self.done = True
            self._buffer = ""
        return parsed

    def flush(self) -> ParsedChunk:
        """Parse whatever is left once the body ends without a newline."""
        remainder, self._buffer = self._buffer, ""
        if self.done or not remainder:
            return ParsedChunk(done=self.done)
        parsed = parse_sse_chunk(remainder, self.matchers)
        self.done = self.done or parsed.done
        return parsed


def infer_provider_from_model(model: str) -> ProviderType:
    """Guess the vendor from a model id prefix, for observability only."""
    if model.startswith("claude"):
        return ProviderType.ANTHROPIC
    if model.startswith("gemini"):
        return ProviderType.GEMINI
    return ProviderType.OPENAI


# ============================================
# Streaming state machine
# ============================================


@dataclass
class StreamingOptions:
    """Options for one streaming request."""

    model: str = DEFAULT_STREAM_MODEL
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    endpoint: Optional[str] = None
    on_chunk: Optional[Callable[[str, str], None]] = None
    on_complete: Optional[Callable[[str], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None


@dataclass
class StreamingState:
    """Snapshot of the streaming state machine."""

    status: StreamingStatus = StreamingStatus.IDLE
    text: str = ""
    error: Optional[Exception] = None
    provider: Optional[ProviderType] = None
    model: Optional[str] = None
    start_time: Optional[float] = None
    duration: Optional[int] = None

    @property
    def is_streaming(self) -> bool:
        return self.status == StreamingStatus.STREAMING

    @property
    def is_loading(self) -> bool:
        return self.status == StreamingStatus.CONNECTING

    @property
    def is_complete(self) -> bool:
        return self.status == StreamingStatus.COMPLETE


@dataclass
class StreamingSession:
    """One in-flight stream. Owned by a single StreamingCompletion."""

    model: str
    start_time: float
    status: StreamingStatus = StreamingStatus.CONNECTING
    text: str = ""
    provider: Optional[ProviderType] = None
    error: Optional[Exception] = None
    duration: Optional[int] = None
    abort_handle: Optional["asyncio.Task[None]"] = None
    cancel_requested: bool = False


class StreamingCompletion:
    """Stateful streaming client with cancel/reset and observer callbacks.

    Only one stream is active per instance; starting a new one cancels the
    previous session first.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: float = 120.0,
        matchers: Sequence[FormatMatcher] = FORMAT_MATCHERS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the streaming client.

        Args:
            endpoint: Default streaming URL on the proxy
            api_key: Key sent in the ``x-api-key`` header
            http_client: Shared client, left open by ``aclose``; one is created
                lazily and owned when omitted
            timeout_seconds: Transport timeout
            matchers: Ordered frame format matchers
            clock: Monotonic clock in seconds, injectable for tests
        """
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.matchers = tuple(matchers)
        self._client = http_client
        self._owns_client = False
        self._clock = clock
        self._session: Optional[StreamingSession] = None
        self._manual_text = ""

    @property
    def state(self) -> StreamingState:
        session = self._session
        if session is None:
            return StreamingState(text=self._manual_text)
        return self._snapshot(session)

    @staticmethod
    def _snapshot(session: StreamingSession) -> StreamingState:
        return StreamingState(
            status=session.status,
            text=session.text,
            error=session.error,
            provider=session.provider,
            model=session.model,
            start_time=session.start_time,
            duration=session.duration,
        )

    @property
    def status(self) -> StreamingStatus:
        return self.state.status

    @property
    def text(self) -> str:
        return self.state.text

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
            self._owns_client = True
        return self._client

    def _elapsed_ms(self, session: StreamingSession) -> int:
        return int((self._clock() - session.start_time) * 1000)

    async def stream(
        self,
        messages: Sequence[MessageLike],
        options: Optional[StreamingOptions] = None,
    ) -> StreamingState:
        """Stream a completion, updating state and firing callbacks.

        Never raises for vendor or transport failures; those end in the
        ``error`` status. Returns the final state snapshot.
        """
        options = options or StreamingOptions()
        self.cancel()

        session = StreamingSession(model=options.model, start_time=self._clock())
        self._session = session
        self._manual_text = ""

        task = asyncio.ensure_future(self._run(session, messages, options))
        session.abort_handle = task

        try:
            await task
        except asyncio.CancelledError:
            if not session.cancel_requested:
                # The caller itself was cancelled: stop the request and propagate
                task.cancel()
                self._mark_cancelled(session)
                raise
            self._mark_cancelled(session)
        finally:
            session.abort_handle = None

        return self._snapshot(session)

    async def _run(
        self,
        session: StreamingSession,
        messages: Sequence[MessageLike],
        options: StreamingOptions,
    ) -> None:
        endpoint = options.endpoint or self.endpoint
        body: dict[str, Any] = {
            "messages": [m.model_dump() for m in coerce_messages(messages)],
            "model": options.model,
            "stream": True,
        }
        if options.max_tokens is not None:
            body["maxTokens"] = options.max_tokens
        if options.temperature is not None:
            body["temperature"] = options.temperature

        logger.info(f"Starting stream | model={options.model} | endpoint={endpoint}")

        try:
            async with self._get_client().stream(
                "POST",
                endpoint,
                json=body,
                headers={"Content-Type": "application/json", "x-api-key": self.api_key},
            ) as response:
                if response.is_error:
                    await response.aread()
                    raise ProviderHTTPError(
                        status_code=response.status_code,
                        response_text=response.text or "Unknown error",
                    )

                session.provider = infer_provider_from_model(options.model)
                decoder = SSEDecoder(self.matchers)
                async for chunk in response.aiter_text():
                    if session.status == StreamingStatus.CONNECTING:
                        session.status = StreamingStatus.STREAMING
                    if self._apply(session, decoder.feed(chunk), options):
                        break
                else:
                    self._apply(session, decoder.flush(), options)

        except Exception as e:
            if session.status in TERMINAL_STATUSES:
                return
            session.status = StreamingStatus.ERROR
            session.error = e
            session.duration = self._elapsed_ms(session)
            logger.error(f"Stream failed after {session.duration}ms: {e}")
            if options.on_error:
                options.on_error(e)
            return

        if session.status in TERMINAL_STATUSES:
            # Cancelled from a callback
            return

        session.status = StreamingStatus.COMPLETE
        session.duration = self._elapsed_ms(session)
        logger.info(
            f"Stream complete | model={options.model} | "
            f"chars={len(session.text)} | duration_ms={session.duration}"
        )
        if options.on_complete:
            options.on_complete(session.text)

    def _apply(
        self, session: StreamingSession, parsed: ParsedChunk, options: StreamingOptions
    ) -> bool:
        """Append fragments to the session.

        Returns:
            True once reading must stop: end marker seen or stream cancelled
        """
        for fragment in parsed.fragments:
            session.text += fragment
            if options.on_chunk:
                options.on_chunk(fragment, session.text)
            if session.cancel_requested:
                return True
        return parsed.done

    def _mark_cancelled(self, session: StreamingSession) -> None:
        if session.status in TERMINAL_STATUSES:
            return
        session.status = StreamingStatus.CANCELLED
        session.duration = self._elapsed_ms(session)
        logger.info(f"Stream cancelled after {session.duration}ms")

    def cancel(self) -> None:
        """Abort the in-flight stream, if any. Cancellation is not a failure."""
        session = self._session
        if session is None or session.abort_handle is None:
            return
        if session.abort_handle.done():
            return
        session.cancel_requested = True
        session.abort_handle.cancel()
        self._mark_cancelled(session)

    def reset(self) -> None:
        """Cancel any stream and return to idle with all text cleared."""
        self.cancel()
        self._session = None
        self._manual_text = ""

    def append_text(self, text: str) -> None:
        """Append text to the current buffer by hand."""
        if self._session is not None:
            self._session.text += text
        else:
            self._manual_text += text

    async def aclose(self) -> None:
        self.cancel()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._owns_client = False


async def simulate_stream(
    text: str,
    delay_seconds: float = 0.05,
    chunk_size: int = 5,
    on_chunk: Optional[Callable[[str, str], None]] = None,
    on_complete: Optional[Callable[[str], None]] = None,
    sleep: Callable[[float], Any] = asyncio.sleep,
) -> str:
    """Replay text in word chunks through streaming callbacks.

    Useful for demos and UI tests. Cancel the awaiting task to stop early;
    ``on_complete`` is not called in that case.

    Returns:
        The accumulated text
    """
    words = text.split(" ")
    accumulated = ""

    for index in range(0, len(words), chunk_size):
        await sleep(delay_seconds)
        chunk = " ".join(words[index:index + chunk_size]) + " "
        accumulated += chunk
        if on_chunk:
            on_chunk(chunk, accumulated)

    if on_complete:
        on_complete(accumulated)
    return accumulated
