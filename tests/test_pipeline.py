"""Tests for one user line through submit, render, retry and record."""

import json

from ata2.conversation import ConversationStore, ConversationTurn, Role
from ata2.pipeline import RequestPipeline, TurnOutcome
from ata2.retry import RetryPolicy
from ata2.state import SessionContext


def _content(text):
    return "data: " + json.dumps({"choices": [{"delta": {"content": text}}]})


def _make_pipeline(transport, renderer, store=None, context=None, sleeps=None):
    sleeps = sleeps if sleeps is not None else []
    return RequestPipeline(
        transport=transport,
        store=store if store is not None else ConversationStore(),
        renderer=renderer,
        context=context if context is not None else SessionContext(),
        params={"model": "gpt-3.5-turbo"},
        policy=RetryPolicy(max_attempts=3, backoff_seconds=0.5),
        sleep=sleeps.append,
    )


class TestCompletedTurn:

    def test_hello_hi(self, scripted_transport, recording_renderer, hello_frames):
        store = ConversationStore()
        transport = scripted_transport(hello_frames)
        pipeline = _make_pipeline(transport, recording_renderer, store=store)

        assert pipeline.run("hello") is TurnOutcome.COMPLETED
        assert recording_renderer.text == "hi"
        assert store.snapshot() == (
            ConversationTurn.user("hello"),
            ConversationTurn.assistant("hi"),
        )
        assert transport.calls[0]["conversation"] == (ConversationTurn.user("hello"),)

    def test_response_header_printed_once(self, scripted_transport, recording_renderer):
        transport = scripted_transport([_content("a"), _content("b"), "data: [DONE]"])
        _make_pipeline(transport, recording_renderer).run("x")
        assert recording_renderer.kinds("header").count(Role.ASSISTANT) == 1
        # finish_turn shows the prompt header again.
        assert recording_renderer.kinds("header")[-1] is Role.USER

    def test_history_is_sent_with_next_line(self, scripted_transport, recording_renderer, hello_frames):
        store = ConversationStore()
        transport = scripted_transport(hello_frames)
        pipeline = _make_pipeline(transport, recording_renderer, store=store)
        pipeline.run("hello")
        pipeline.run("again")

        sent = transport.calls[1]["conversation"]
        assert [t.content for t in sent] == ["hello", "hi", "again"]
        assert len(store) == 4

    def test_split_newline_is_repaired(self, scripted_transport, recording_renderer):
        transport = scripted_transport([_content("Hel\\"), _content("nlo"), "data: [DONE]"])
        store = ConversationStore()
        _make_pipeline(transport, recording_renderer, store=store).run("x")
        assert recording_renderer.text == "Hel\nlo"
        assert store.snapshot()[-1].content == "Hel\nlo"

    def test_trailing_backslash_is_flushed(self, scripted_transport, recording_renderer):
        transport = scripted_transport([_content("end\\"), "data: [DONE]"])
        _make_pipeline(transport, recording_renderer).run("x")
        assert recording_renderer.text == "end\\"

    def test_non_stop_finish_reason_warns(self, scripted_transport, recording_renderer):
        frames = [_content("cut"), 'data: {"choices":[{"delta":{},"finish_reason":"length"}]}', "data: [DONE]"]
        _make_pipeline(scripted_transport(frames), recording_renderer).run("x")
        assert any("length" in w for w in recording_renderer.kinds("warning"))


class TestRetry:

    def test_server_error_twice_then_success(
        self, scripted_transport, recording_renderer, hello_frames, server_error_frame,
    ):
        sleeps = []
        store = ConversationStore()
        transport = scripted_transport([server_error_frame], [server_error_frame], hello_frames)
        pipeline = _make_pipeline(transport, recording_renderer, store=store, sleeps=sleeps)

        assert pipeline.run("hello") is TurnOutcome.COMPLETED
        assert sleeps == [0.5, 0.5]
        assert len(transport.calls) == 3
        assert store.snapshot() == (
            ConversationTurn.user("hello"),
            ConversationTurn.assistant("hi"),
        )
        # Every attempt resubmits the same conversation.
        assert len({call["conversation"] for call in transport.calls}) == 1
        notices = recording_renderer.kinds("notice")
        assert notices[0].endswith("(1/3)")
        assert notices[1].endswith("(2/3)")

    def test_gives_up_after_max_attempts(self, scripted_transport, recording_renderer, server_error_frame):
        sleeps = []
        store = ConversationStore()
        transport = scripted_transport([server_error_frame])
        pipeline = _make_pipeline(transport, recording_renderer, store=store, sleeps=sleeps)

        assert pipeline.run("hello") is TurnOutcome.FAILED
        assert len(transport.calls) == 3
        assert len(sleeps) == 2
        assert recording_renderer.kinds("error")
        assert store.snapshot() == (ConversationTurn.user("hello"),)

    def test_other_errors_do_not_retry(self, scripted_transport, recording_renderer):
        frame = 'data: {"error": {"type": "invalid_request_error", "message": "bad model"}}'
        transport = scripted_transport([frame])
        sleeps = []
        outcome = _make_pipeline(transport, recording_renderer, sleeps=sleeps).run("x")

        assert outcome is TurnOutcome.FAILED
        assert sleeps == []
        assert "bad model" in recording_renderer.kinds("error")[0]

    def test_no_retry_once_content_started(self, scripted_transport, recording_renderer):
        frames = [_content("partial"), 'data: {"error": {"type": "server_error", "message": "x"}}']
        transport = scripted_transport(frames)
        sleeps = []
        store = ConversationStore()
        outcome = _make_pipeline(transport, recording_renderer, store=store, sleeps=sleeps).run("x")

        assert outcome is TurnOutcome.FAILED
        assert sleeps == []
        assert recording_renderer.text == "partial"
        assert len(store) == 1


class TestAbortAndEmpty:

    def test_abort_keeps_partial_output(self, scripted_transport, recording_renderer):
        context = SessionContext()
        store = ConversationStore()

        def press_ctrl_c(index):
            if index == 0:
                context.request_abort()

        transport = scripted_transport(
            [_content("first"), _content("second"), "data: [DONE]"], on_frame=press_ctrl_c,
        )
        context.begin_request()
        outcome = _make_pipeline(transport, recording_renderer, store=store, context=context).run("x")

        assert outcome is TurnOutcome.ABORTED
        assert recording_renderer.text == "first"
        assert any("Interrupted" in w for w in recording_renderer.kinds("warning"))
        assert store.snapshot() == (ConversationTurn.user("x"),)

    def test_empty_response_records_nothing(self, scripted_transport, recording_renderer):
        store = ConversationStore()
        outcome = _make_pipeline(scripted_transport(["data: [DONE]"]), recording_renderer, store=store).run("x")
        assert outcome is TurnOutcome.EMPTY
        assert len(store) == 1
        assert Role.ASSISTANT not in recording_renderer.kinds("header")

    def test_abort_during_backoff_skips_resubmit(self, scripted_transport, recording_renderer, server_error_frame):
        context = SessionContext()
        store = ConversationStore()
        transport = scripted_transport([server_error_frame], [_content("after-abort"), "data: [DONE]"])

        def sleep_then_ctrl_c(seconds):
            context.request_abort()

        pipeline = RequestPipeline(
            transport=transport,
            store=store,
            renderer=recording_renderer,
            context=context,
            params={"model": "gpt-3.5-turbo"},
            sleep=sleep_then_ctrl_c,
        )
        context.begin_request()

        assert pipeline.run("hello") is TurnOutcome.ABORTED
        assert len(transport.calls) == 1
        assert recording_renderer.text == ""
        assert store.snapshot() == (ConversationTurn.user("hello"),)


def test_empty_store_is_used_as_given(scripted_transport, recording_renderer, hello_frames):
    store = ConversationStore()
    assert not store
    _make_pipeline(scripted_transport(hello_frames), recording_renderer, store=store).run("hello")
    assert len(store) == 2
