"""Terminal output: role headers on stderr, streamed text on stdout."""

from typing import Optional, TYPE_CHECKING

from rich.console import Console
from rich.markup import escape

from .conversation import Role

if TYPE_CHECKING:
    from .config import Config

__all__ = ["Renderer", "HEADERS"]

ACCENT = "#7FA6D9"
WARN = "#E3B341"
ERROR = "#F85149"
DIM = "dim"

HEADERS = {
    Role.USER: "Prompt:",
    Role.ASSISTANT: "Response:",
}


class Renderer:
    """Append-only, flush-on-write output used by both threads."""

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self.console = console or Console(highlight=False)
        self.err_console = err_console or Console(stderr=True, highlight=False)

    @property
    def decorated(self) -> bool:
        """Headers and prompts are only shown when stderr is a terminal."""
        return self.err_console.is_terminal

    def _say(self, markup: str) -> None:
        # Styling comes from markup only, never from the repr highlighter.
        self.err_console.print(markup, highlight=False)

    @staticmethod
    def _write_raw(console: Console, chunk: str) -> None:
        """Write a chunk directly to the console's stream (no markup, no wrapping)."""
        if not chunk:
            return
        stream = getattr(console, "file", None)
        if stream is not None and hasattr(stream, "write"):
            stream.write(chunk)
            if hasattr(stream, "flush"):
                stream.flush()
            return
        console.print(chunk, end="", markup=False, highlight=False, soft_wrap=True)

    def print_header(self, role: Role) -> None:
        if not self.decorated:
            return
        self._say(f"[bold]{HEADERS[role]}[/bold]")

    def print_text(self, fragment: str) -> None:
        self._write_raw(self.console, fragment)

    def print_notice(self, message: str) -> None:
        self._say(f"[{DIM}]{escape(message)}[/{DIM}]")

    def print_warning(self, message: str) -> None:
        self._say(f"[{WARN}]{escape(message)}[/{WARN}]")

    def print_error(self, message: str) -> None:
        self._say(f"[bold {ERROR}]Error:[/bold {ERROR}] {escape(message)}")

    def finish_turn(self) -> None:
        """Close the response block and show the prompt header again."""
        self._write_raw(self.err_console, "\n\n")
        self.print_header(Role.USER)

    def render_config(self, config: "Config") -> None:
        """Print the named configuration fields, API key redacted if configured."""
        self._say("[underline]Configuration:[/underline]")
        for key, value in config.summary().items():
            if key == "api_key" and value == "[redacted]":
                self._say(f"{key}: [{ERROR}]\\[redacted][/{ERROR}]")
            elif isinstance(value, dict):
                inner = ", ".join(f"{k}: {v!r}" for k, v in value.items())
                self._say(f"{key}: {{{escape(inner)}}}")
            else:
                self._say(f"{key}: {escape(str(value))}")
        self._say("")
