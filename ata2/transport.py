"""Streamed chat-completion requests over server-sent events.

``ChatTransport.submit`` posts one request and yields ``StreamEvent`` objects
as frames arrive. Per-request failures never raise; they are yielded as a
final ``StreamError`` so the caller can decide whether to retry.
"""

import codecs
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

import requests

from .conversation import ConversationTurn
from .errors import ErrorKind
from .logger import redact_headers
from .retry import error_type_of

__all__ = [
    "ContentDelta", "RoleMarker", "FinishReason", "StreamError", "Done",
    "StreamEvent", "split_frames", "parse_frame", "ChatTransport",
]

_log = logging.getLogger(__name__)

FRAME_SEPARATOR = "\n\n"
DATA_PREFIX = "data:"
DONE_TOKEN = "[DONE]"


@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class RoleMarker:
    role: str


@dataclass(frozen=True)
class FinishReason:
    reason: str

    @property
    def is_stop(self) -> bool:
        return self.reason == "stop"


@dataclass(frozen=True)
class StreamError:
    message: str
    kind: ErrorKind
    raw: str = ""
    error_type: str = ""


@dataclass(frozen=True)
class Done:
    aborted: bool = False


StreamEvent = Union[ContentDelta, RoleMarker, FinishReason, StreamError, Done]


def split_frames(chunks: Iterable[bytes]) -> Iterator[str]:
    """Reassemble network chunks into blank-line separated frames.

    UTF-8 is decoded incrementally so a character split between chunks
    survives. A trailing partial frame is emitted when the body ends.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    buffer = ""
    for chunk in chunks:
        if not chunk:
            continue
        text = buffer + decoder.decode(chunk)
        held = ""
        if text.endswith("\r"):
            text, held = text[:-1], "\r"
        text = text.replace("\r\n", "\n")
        *frames, buffer = text.split(FRAME_SEPARATOR)
        buffer += held
        for frame in frames:
            if frame.strip():
                yield frame.strip()
    buffer = (buffer + decoder.decode(b"", final=True)).replace("\r\n", "\n").strip()
    if buffer:
        yield buffer


def _unrecognized(payload: str) -> StreamError:
    return StreamError(f"Unrecognized payload: {payload}", ErrorKind.UNRECOGNIZED_PAYLOAD, raw=payload)


def _completion_events(body: Dict[str, Any], payload: str) -> List[StreamEvent]:
    choices = body.get("choices")
    if choices == []:
        # Usage-only trailer (some providers) or an empty keep-alive.
        _log.debug("Ignoring frame without choices: %s", body)
        return []
    if not isinstance(choices, list) or not isinstance(choices[0], dict):
        return [_unrecognized(payload)]
    choice = choices[0]
    delta = choice.get("delta")
    events: List[StreamEvent] = []
    if isinstance(delta, dict):
        if delta.get("role"):
            events.append(RoleMarker(str(delta["role"])))
        content = delta.get("content")
        if isinstance(content, str) and content:
            events.append(ContentDelta(content))
    finish_reason = choice.get("finish_reason")
    if finish_reason:
        events.append(FinishReason(str(finish_reason)))
    return events


def _error_event(body: Dict[str, Any], payload: str) -> StreamError:
    error = body["error"]
    if isinstance(error, dict):
        message = str(error.get("message") or error.get("type") or payload)
        error_type = str(error.get("type") or "")
    else:
        message, error_type = str(error), ""
    return StreamError(message, ErrorKind.PROVIDER_ERROR, raw=payload, error_type=error_type)


def parse_frame(frame: str) -> List[StreamEvent]:
    """Turn one frame into zero or more events."""
    frame = frame.strip()
    if not frame:
        return []
    if not frame.startswith(DATA_PREFIX):
        return [StreamError(
            frame, ErrorKind.MALFORMED_FRAME, raw=frame, error_type=error_type_of(frame),
        )]

    payload = frame[len(DATA_PREFIX):].strip()
    if payload == DONE_TOKEN:
        return [Done()]
    try:
        body = json.loads(payload)
    except ValueError:
        return [StreamError(f"Malformed frame: {payload}", ErrorKind.MALFORMED_FRAME, raw=payload)]

    if isinstance(body, dict) and "choices" in body:
        return _completion_events(body, payload)
    if isinstance(body, dict) and "error" in body:
        return [_error_event(body, payload)]
    return [_unrecognized(payload)]


def build_messages(conversation: Sequence[ConversationTurn]) -> List[Dict[str, str]]:
    return [turn.to_message() for turn in conversation]


class ChatTransport:
    """POSTs to a chat-completion endpoint with ``stream`` always on."""

    TIMEOUT = None  # a hung stream is only unstuck by an abort or exit

    def __init__(self, endpoint: str, api_key: Optional[str] = None,
                 session: Optional[requests.Session] = None):
        self.endpoint = endpoint
        self.api_key = api_key
        self._session = session

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update({
                "Content-Type": "application/json",
                "Accept": "text/event-stream",
            })
        return self._session

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    @staticmethod
    def build_body(conversation: Sequence[ConversationTurn], params: Dict[str, Any]) -> Dict[str, Any]:
        body = dict(params)
        body["messages"] = build_messages(conversation)
        body["stream"] = True
        return body

    def submit(
        self,
        conversation: Sequence[ConversationTurn],
        params: Dict[str, Any],
        abort: Optional[threading.Event] = None,
    ) -> Iterator[StreamEvent]:
        """Send ``conversation`` and yield events until ``Done`` or an error.

        ``abort`` is polled after every frame; once set the body is closed
        and ``Done(aborted=True)`` is yielded. Text already yielded stays yielded.
        """
        body = self.build_body(conversation, params)
        headers = self._headers()
        _log.debug(
            "Request:\n\nHeaders:\n%s\n\nBody:\n%s",
            redact_headers(headers), json.dumps(body, indent=2, ensure_ascii=False),
        )

        try:
            response = self._get_session().post(
                self.endpoint, json=body, headers=headers, stream=True, timeout=self.TIMEOUT,
            )
        except requests.RequestException as e:
            _log.warning("Request to %s failed: %s", self.endpoint, e)
            yield StreamError(str(e), ErrorKind.TRANSPORT_FAILURE)
            return

        with response:
            if not response.ok:
                _log.warning("HTTP %s from %s", response.status_code, self.endpoint)
            try:
                for frame in split_frames(response.iter_content(chunk_size=None)):
                    for event in parse_frame(frame):
                        yield event
                        if isinstance(event, (Done, StreamError)):
                            return
                    if abort is not None and abort.is_set():
                        _log.info("Abort requested, closing stream")
                        yield Done(aborted=True)
                        return
            except requests.RequestException as e:
                _log.warning("Stream interrupted: %s", e)
                yield StreamError(f"Stream interrupted: {e}", ErrorKind.TRANSPORT_FAILURE)
                return
        yield Done()
