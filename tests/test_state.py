"""Tests for the shared interrupt flags."""

from ata2.state import SessionContext


def test_starts_idle():
    ctx = SessionContext()
    assert not ctx.is_running
    assert not ctx.is_aborting
    assert ctx.describe() == "idle"


def test_begin_and_end_request():
    ctx = SessionContext()
    ctx.begin_request()
    assert ctx.is_running
    assert ctx.describe() == "streaming"

    ctx.request_abort()
    assert ctx.is_aborting
    assert ctx.describe() == "aborting"

    ctx.end_request()
    assert not ctx.is_running
    assert not ctx.abort_requested.is_set()


def test_stale_abort_does_not_cancel_next_request():
    ctx = SessionContext()
    ctx.request_abort()
    ctx.begin_request()
    assert ctx.is_running
    assert not ctx.abort_requested.is_set()


def test_abort_while_idle_is_not_aborting():
    ctx = SessionContext()
    ctx.request_abort()
    assert not ctx.is_aborting


def test_interrupted_idle():
    ctx = SessionContext()
    ctx.had_first_interrupt.set()
    assert ctx.describe() == "interrupted-idle"
