"""Request coordination between the input reader and the request worker.

Two units run concurrently:

- the *reader* (main thread) reads lines, turns Ctrl-C into abort or exit
  decisions and hands lines to the worker;
- the *worker* (``RequestWorker`` thread) takes one line at a time from a
  single-slot queue and runs it through the request pipeline.

They share nothing but the queue and the flags on ``SessionContext``.
Cancellation is cooperative: the reader sets ``abort_requested`` and the
transport notices it after the next frame.
"""

import logging
import queue
import threading

from .conversation import Role
from .line_source import LineSource
from .renderer import Renderer
from .state import SessionContext

_log = logging.getLogger(__name__)

# Queue value meaning "no more input".
SENTINEL = None

POLL_SECONDS = 0.1


class RequestWorker(threading.Thread):
    """Daemon thread: blocks on its inbox and runs one request at a time."""

    def __init__(self, context: SessionContext, inbox: "queue.Queue", pipeline, renderer: Renderer):
        super().__init__(name="ata2-requests", daemon=True)
        self.context = context
        self.inbox = inbox
        self.pipeline = pipeline
        self.renderer = renderer

    def run(self):
        while True:
            item = self.inbox.get()
            if item is SENTINEL:
                _log.info("Got end of input in request loop, exiting")
                break
            self.execute(item)

    def execute(self, line: str) -> None:
        self.context.begin_request()
        try:
            self.pipeline.run(line)
        except Exception as e:
            _log.exception("Failed to request")
            self.renderer.print_error(f"failed to request: {e}")
            self.renderer.finish_turn()
        finally:
            self.context.end_request()


class RequestCoordinator:
    """Owns the reader loop and the state transitions driven by input."""

    def __init__(
        self,
        context: SessionContext,
        line_source: LineSource,
        pipeline,
        renderer: Renderer,
        double_ctrlc: bool = True,
    ):
        self.context = context
        self.line_source = line_source
        self.renderer = renderer
        self.double_ctrlc = double_ctrlc
        self.inbox: "queue.Queue" = queue.Queue(maxsize=1)
        self.worker = RequestWorker(context, self.inbox, pipeline, renderer)

    # ── Transitions ─────────────────────────────
    # Each returns True while the reader should keep reading.

    def on_line(self, line: str) -> bool:
        self.context.had_first_interrupt.clear()
        if self.context.is_running:
            # Any submitted keystroke while streaming cancels the current answer.
            self.context.request_abort()
        if not line:
            return True
        return self._queue_line(line)

    def on_interrupt(self) -> bool:
        if self.context.is_running:
            _log.info("Interrupt while streaming, requesting abort")
            self.context.request_abort()
            return True
        if self.double_ctrlc and not self.context.had_first_interrupt.is_set():
            self.context.had_first_interrupt.set()
            self.renderer.print_warning("\nPress Ctrl-C again to exit.\n")
            self.renderer.print_header(Role.USER)
            return True
        self._send_sentinel()
        return False

    def on_end_of_input(self) -> bool:
        self._send_sentinel()
        return False

    # ── Queue ───────────────────────────────────

    def _queue_line(self, line: str) -> bool:
        """Put ``line`` in the slot without waiting.

        A line still waiting in the slot was never sent; the newer one takes
        its place.
        """
        try:
            self.inbox.put_nowait(line)
            return True
        except queue.Full:
            pass
        if not self.worker.is_alive():
            _log.warning("Request worker is gone, dropping input")
            return False
        if self._drop_pending() is not None:
            self.renderer.print_notice("Replaced the prompt that was still waiting to be sent.")
        # Only the reader puts, so the slot is free now.
        self.inbox.put_nowait(line)
        return True

    def _drop_pending(self):
        try:
            item = self.inbox.get_nowait()
        except queue.Empty:
            return None
        _log.info("Dropped queued line: %r", item)
        return item

    def _send_sentinel(self) -> None:
        """Queue the sentinel behind any waiting line; Ctrl-C drops that line."""
        while True:
            try:
                self.inbox.put(SENTINEL, timeout=POLL_SECONDS)
                return
            except queue.Full:
                if not self.worker.is_alive():
                    return
            except KeyboardInterrupt:
                self._drop_pending()
                if self.context.is_running:
                    self.context.request_abort()

    # ── Loops ───────────────────────────────────

    def read_loop(self) -> None:
        self.renderer.print_header(Role.USER)
        keep_reading = True
        while keep_reading:
            try:
                line = self.line_source.read_line()
                keep_reading = self.on_line(line)
            except KeyboardInterrupt:
                keep_reading = self.on_interrupt()
            except EOFError:
                keep_reading = self.on_end_of_input()
            except OSError as e:
                _log.error("Reading input failed: %s", e)
                self.renderer.print_error(f"reading input failed: {e}")
                keep_reading = self.on_end_of_input()
        _log.info("Reader loop finished")

    def wait_for_worker(self) -> None:
        """Join the worker. Ctrl-C aborts the running request; a second one stops waiting."""
        while self.worker.is_alive():
            try:
                self.worker.join(timeout=POLL_SECONDS)
            except KeyboardInterrupt:
                if self.context.is_aborting:
                    _log.warning("Request did not stop after abort, exiting without it")
                    return
                if self.context.is_running:
                    self.context.request_abort()

    def run(self) -> None:
        self.worker.start()
        with self.line_source.output_guard():
            self.read_loop()
            self.wait_for_worker()
