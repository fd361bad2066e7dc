"""One user line through the retry loop, the transport and the reassembler."""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Sequence

from .conversation import ConversationStore, ConversationTurn, Role
from .errors import failure_for
from .reassembler import TokenReassembler
from .renderer import Renderer
from .retry import RetryPolicy
from .state import SessionContext
from .transport import ContentDelta, Done, FinishReason, RoleMarker, StreamError

_log = logging.getLogger(__name__)


class TurnOutcome(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"
    EMPTY = "empty"
    RETRY = "retry"


@dataclass
class AttemptResult:
    outcome: TurnOutcome
    text: str = ""
    error: Optional[StreamError] = None


class RequestPipeline:
    """Consumer side of a turn: submit, render, retry, then record the answer.

    The user turn is appended once per line, after the snapshot for that line
    was taken. The assistant turn is appended only for a stream that ended
    normally with some text; aborted, failed or empty turns leave the user
    turn unanswered.
    """

    def __init__(
        self,
        transport,
        store: ConversationStore,
        renderer: Renderer,
        context: SessionContext,
        params: Dict[str, Any],
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.transport = transport
        self.store = store
        self.renderer = renderer
        self.context = context
        self.params = params
        self.policy = policy or RetryPolicy()
        self.sleep = sleep

    def run(self, line: str) -> TurnOutcome:
        user_turn = ConversationTurn.user(line)
        conversation = self.store.snapshot() + (user_turn,)
        self.store.append(user_turn)

        attempt = 1
        while True:
            result = self._attempt(conversation, attempt)
            if result.outcome is not TurnOutcome.RETRY:
                break
            self.renderer.print_notice(
                f"Server responded with a `server_error`. "
                f"Trying again... ({attempt}/{self.policy.max_attempts})"
            )
            self.sleep(self.policy.backoff_seconds)
            if self.context.abort_requested.is_set():
                _log.info("Abort requested during backoff, not resubmitting")
                result = AttemptResult(TurnOutcome.ABORTED)
                break
            attempt += 1

        if result.outcome is TurnOutcome.COMPLETED:
            self.store.append(ConversationTurn.assistant(result.text))
        elif result.outcome is TurnOutcome.ABORTED:
            self.renderer.print_warning("\nInterrupted.")
        _log.info("Turn finished: %s after %d attempt(s)", result.outcome.value, attempt)
        self.renderer.finish_turn()
        return result.outcome

    def _attempt(self, conversation: Sequence[ConversationTurn], attempt: int) -> AttemptResult:
        reassembler = TokenReassembler()
        parts = []
        started = False
        aborted = False

        def emit(text: str) -> None:
            if text:
                self.renderer.print_text(text)
                parts.append(text)

        events = self.transport.submit(conversation, self.params, abort=self.context.abort_requested)
        for event in events:
            if isinstance(event, ContentDelta):
                if not started:
                    started = True
                    self.renderer.print_header(Role.ASSISTANT)
                emit(reassembler.process(event.text))
            elif isinstance(event, RoleMarker):
                continue
            elif isinstance(event, FinishReason):
                if not event.is_stop:
                    _log.info("Stream finished with reason %r", event.reason)
                    self.renderer.print_warning(f"\n(finish reason: {event.reason})")
            elif isinstance(event, StreamError):
                if not started and self.policy.should_retry(event.raw, attempt):
                    return AttemptResult(TurnOutcome.RETRY, error=event)
                emit(reassembler.flush())
                failure = failure_for(event.kind, event.message, event.error_type)
                _log.error("Request failed: %s", failure)
                self.renderer.print_error(str(failure))
                return AttemptResult(TurnOutcome.FAILED, "".join(parts), event)
            elif isinstance(event, Done):
                aborted = event.aborted
                break

        emit(reassembler.flush())
        text = "".join(parts)
        if aborted:
            return AttemptResult(TurnOutcome.ABORTED, text)
        if not text:
            return AttemptResult(TurnOutcome.EMPTY)
        return AttemptResult(TurnOutcome.COMPLETED, text)
