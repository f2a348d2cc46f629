"""Streaming chat with the recovery assistant."""

from __future__ import annotations

import codecs
import json
import logging
import threading
import uuid
from dataclasses import replace
from enum import Enum
from typing import Any, Callable, List, Mapping, Optional, Tuple

import requests

from api_client import GatewayError, WellnessApiClient
from models import ChatMessage


logger = logging.getLogger(__name__)

GREETING = (
    "Hey there! I'm Ally, your recovery companion. 👋 How are you feeling today? "
    "I'm here to listen, support, and help you through anything."
)
WELCOME_ID = "welcome"
STREAMING_PREFIX = "assistant-streaming-"
DONE_SENTINEL = "[DONE]"

StatsProvider = Callable[[], Optional[Mapping[str, Any]]]
DeltaListener = Callable[[ChatMessage], None]


class ChatState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FINALIZING = "finalizing"


class ChatBusyError(RuntimeError):
    """Raised when a message is sent while the previous reply is still in flight."""


class ChatCancelledError(RuntimeError):
    """Raised inside the read loop when the caller cancels the request."""


def _delta_content(payload: Any) -> str | None:
    if not isinstance(payload, Mapping):
        return None
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    delta = first.get("delta") if isinstance(first, Mapping) else None
    content = delta.get("content") if isinstance(delta, Mapping) else None
    return content if isinstance(content, str) and content else None


def _data_payload(line: str) -> str | None:
    """Return the ``data:`` payload of an SSE line, or ``None`` for anything ignorable."""

    if line.endswith("\r"):
        line = line[:-1]
    if not line.strip() or line.startswith(":") or not line.startswith("data:"):
        return None
    return line[5:].strip()


class SSEDeltaDecoder:
    """Incremental decoder for OpenAI-style ``text/event-stream`` deltas.

    Bytes are decoded as UTF-8 across chunk boundaries and buffered until a
    full line is available. A ``data:`` line whose JSON does not parse stays
    buffered until more input arrives; :meth:`flush` handles whatever remains
    at end of stream. The text produced does not depend on where the chunk
    boundaries fall.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, chunk: bytes | str) -> List[str]:
        if self.done:
            return []
        text = chunk if isinstance(chunk, str) else self._decoder.decode(chunk)
        self._buffer += text
        return self._drain()

    def _drain(self) -> List[str]:
        fragments: List[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line, rest = self._buffer[:newline], self._buffer[newline + 1 :]
            payload = _data_payload(line)
            if payload is None:
                self._buffer = rest
                continue
            if payload == DONE_SENTINEL:
                self._buffer = rest
                self.done = True
                break
            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError:
                break
            self._buffer = rest
            content = _delta_content(parsed)
            if content:
                fragments.append(content)
        return fragments

    def flush(self) -> List[str]:
        """Parse any buffered lines at end of stream, skipping unparseable ones."""

        if self.done:
            self._buffer = ""
            return []
        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        fragments: List[str] = []
        for line in remaining.split("\n"):
            payload = _data_payload(line)
            if payload is None:
                continue
            if payload == DONE_SENTINEL:
                break
            try:
                parsed = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Skipping unparseable stream line: %r", payload[:80])
                continue
            content = _delta_content(parsed)
            if content:
                fragments.append(content)
        self.done = True
        return fragments


def _greeting() -> ChatMessage:
    return ChatMessage(id=WELCOME_ID, role="assistant", content=GREETING)


def apology_text(error: str) -> str:
    return f"I'm having trouble connecting right now. {error}. Please try again in a moment. 💙"


class ChatSession:
    """Transcript plus the request/stream state machine for one conversation.

    ``idle -> requesting -> streaming -> finalizing -> idle``; any failure
    returns to ``idle`` with :attr:`error` set and an apology in the
    transcript. Each turn grows a single assistant message in place.
    """

    def __init__(
        self,
        client: WellnessApiClient,
        *,
        stats_provider: StatsProvider | None = None,
    ) -> None:
        self._client = client
        self._stats_provider = stats_provider
        self._messages: List[ChatMessage] = [_greeting()]
        self._turn_lock = threading.Lock()
        self.state = ChatState.IDLE
        self.error: str | None = None

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    @property
    def is_busy(self) -> bool:
        return self.state is not ChatState.IDLE

    def send_message(
        self,
        content: str,
        *,
        cancel: threading.Event | None = None,
        on_update: DeltaListener | None = None,
    ) -> ChatMessage | None:
        """Send one user turn and stream the reply into the transcript.

        ``on_update`` receives the growing assistant message after every
        delta, so a caller can redraw it while the reply streams. Returns the final assistant message, the apology on failure, or
        ``None`` when the input is blank or the reply was empty.
        """

        text = (content or "").strip()
        if not text:
            return None
        with self._turn_lock:
            if self.state is not ChatState.IDLE:
                raise ChatBusyError("A reply is still in progress")
            self.state = ChatState.REQUESTING

        user_message = ChatMessage(id=f"user-{uuid.uuid4().hex}", role="user", content=text)
        history = [m.as_api_message() for m in self._messages if m.id != WELCOME_ID]
        history.append(user_message.as_api_message())
        self._messages.append(user_message)
        self.error = None

        stream_id = f"{STREAMING_PREFIX}{uuid.uuid4().hex}"
        response: requests.Response | None = None
        try:
            user_stats = self._stats_provider() if self._stats_provider else None
            response = self._client.open_chat_stream(history, user_stats)
            self.state = ChatState.STREAMING
            decoder = SSEDeltaDecoder()
            for chunk in response.iter_content(chunk_size=None):
                if cancel is not None and cancel.is_set():
                    raise ChatCancelledError("Request cancelled")
                if not chunk:
                    continue
                for fragment in decoder.feed(chunk):
                    self._append_delta(stream_id, fragment, on_update)
                if decoder.done:
                    break
            for fragment in decoder.flush():
                self._append_delta(stream_id, fragment, on_update)
            self.state = ChatState.FINALIZING
            return self._finalize(stream_id)
        except (requests.RequestException, GatewayError, ChatCancelledError) as exc:
            message = str(exc) or "Something went wrong"
            logger.warning("Chat request failed: %s", message)
            self.error = message
            self._messages = [m for m in self._messages if not m.id.startswith(STREAMING_PREFIX)]
            apology = ChatMessage(
                id=f"error-{uuid.uuid4().hex}",
                role="assistant",
                content=apology_text(message),
            )
            self._messages.append(apology)
            return apology
        finally:
            if response is not None:
                response.close()
            self.state = ChatState.IDLE

    def clear_history(self) -> None:
        self._messages = [_greeting()]
        self.error = None

    def _append_delta(
        self,
        stream_id: str,
        fragment: str,
        on_update: DeltaListener | None = None,
    ) -> None:
        last = self._messages[-1] if self._messages else None
        if last is not None and last.id == stream_id:
            self._messages[-1] = replace(last, content=last.content + fragment)
        else:
            self._messages.append(ChatMessage(id=stream_id, role="assistant", content=fragment))
        if on_update is not None:
            on_update(self._messages[-1])

    def _finalize(self, stream_id: str) -> ChatMessage | None:
        last = self._messages[-1] if self._messages else None
        if last is None or last.id != stream_id:
            return None
        final = replace(last, id=f"assistant-{uuid.uuid4().hex}")
        self._messages[-1] = final
        return final


__all__ = [
    "ChatBusyError",
    "ChatCancelledError",
    "ChatSession",
    "ChatState",
    "GREETING",
    "SSEDeltaDecoder",
    "WELCOME_ID",
    "apology_text",
]
