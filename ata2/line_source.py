"""Where user lines come from: a prompt_toolkit session or piped stdin.

``read_line`` returns one line, raises ``EOFError`` at end of input and
``KeyboardInterrupt`` on Ctrl-C, the same contract as ``PromptSession.prompt``.
"""

import logging
import sys
from contextlib import nullcontext
from pathlib import Path
from typing import Optional, TextIO

from prompt_toolkit import PromptSession
from prompt_toolkit.history import FileHistory, History, InMemoryHistory
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout

from .config import UiConfig

_log = logging.getLogger(__name__)


class LineSource:
    interactive = False

    def read_line(self) -> str:
        raise NotImplementedError

    def output_guard(self):
        """Context that keeps concurrent output from corrupting the input line."""
        return nullcontext()

    @property
    def history_len(self) -> int:
        return 0


class PipedLineSource(LineSource):
    """Non-interactive input: read the whole stream once, then end of input."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream or sys.stdin
        self._consumed = False

    def read_line(self) -> str:
        if self._consumed:
            raise EOFError
        self._consumed = True
        return self.stream.read().rstrip("\n")


def open_history(ui: UiConfig) -> History:
    if not ui.save_history:
        return InMemoryHistory()
    path = Path(ui.history_file)
    if not path.exists():
        _log.warning("No history file found. Creating a new one.")
        try:
            path.touch()
        except OSError as e:
            _log.error("Could not create history file: %s", e)
            _log.warning("Keeping history in memory only.")
            return InMemoryHistory()
    return FileHistory(str(path))


def build_key_bindings(multiline: bool) -> KeyBindings:
    kb = KeyBindings()
    if multiline:
        # Enter inserts a newline (multiline session); Ctrl-D submits.
        @kb.add("c-d")
        def _accept(event):
            buffer = event.current_buffer
            if buffer.text:
                buffer.validate_and_handle()
            else:
                event.app.exit(exception=EOFError)

    return kb


class PromptLineSource(LineSource):
    """Interactive terminal input with history replay on the up arrow."""

    interactive = True

    def __init__(self, ui: UiConfig, **session_kwargs):
        self.multiline = ui.multiline_insertions
        self.session = PromptSession(
            history=open_history(ui),
            multiline=self.multiline,
            key_bindings=build_key_bindings(self.multiline),
            **session_kwargs,
        )

    def read_line(self) -> str:
        # Empty prompt text: the "Prompt:" header is printed by the renderer,
        # so a fresh prompt is not mistaken for a finished response.
        return self.session.prompt("").rstrip("\n")

    def output_guard(self):
        return patch_stdout(raw=True)

    @property
    def history_len(self) -> int:
        return len(list(self.session.history.get_strings()))


def open_line_source(ui: UiConfig, stdin: Optional[TextIO] = None) -> LineSource:
    stdin = stdin or sys.stdin
    if stdin.isatty():
        return PromptLineSource(ui)
    return PipedLineSource(stdin)
