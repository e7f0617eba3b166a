import asyncio

import pytest

from common.config import FetchSettings
from asr_providers.errors import FetchCancelledError, FetchError, PollTimeoutError
from asr_providers.workflow import Step, Workflow, WorkflowContext, poll


def make_ctx(max_attempts=5, cancel=None):
    settings = FetchSettings(poll_interval_s=0.0, poll_max_attempts=max_attempts)
    return WorkflowContext(client=None, settings=settings, cancel=cancel)


class FakeResponder:
    """Returns queued statuses in order, counting calls."""

    def __init__(self, statuses, on_call=None):
        self.statuses = list(statuses)
        self.calls = 0
        self.on_call = on_call

    async def __call__(self):
        self.calls += 1
        if self.on_call:
            self.on_call(self.calls)
        status = self.statuses[min(self.calls, len(self.statuses)) - 1]
        return {"status": status, "attempt": self.calls}


def status_of(resp):
    return resp["status"]


class TestPoll:
    @pytest.mark.asyncio
    async def test_stops_at_first_complete(self):
        responder = FakeResponder(["pending", "pending", "complete", "pending"])
        result = await poll(make_ctx(), responder, status_of, "complete")
        assert result == {"status": "complete", "attempt": 3}
        assert responder.calls == 3

    @pytest.mark.asyncio
    async def test_attempt_cap(self):
        responder = FakeResponder(["pending"])
        with pytest.raises(PollTimeoutError) as exc_info:
            await poll(make_ctx(max_attempts=7), responder, status_of, "complete")
        assert exc_info.value.attempts == 7
        assert responder.calls == 7

    @pytest.mark.asyncio
    async def test_cancel_between_attempts(self):
        cancel = asyncio.Event()

        def on_call(n):
            if n == 2:
                cancel.set()

        responder = FakeResponder(["pending"], on_call=on_call)
        with pytest.raises(FetchCancelledError):
            await poll(make_ctx(max_attempts=50, cancel=cancel), responder, status_of, "complete")
        assert responder.calls == 2

    @pytest.mark.asyncio
    async def test_cancel_wakes_sleep(self):
        cancel = asyncio.Event()
        settings = FetchSettings(poll_interval_s=30.0, poll_max_attempts=3)
        ctx = WorkflowContext(client=None, settings=settings, cancel=cancel)
        responder = FakeResponder(["pending"], on_call=lambda n: cancel.set())
        with pytest.raises(FetchCancelledError):
            await asyncio.wait_for(poll(ctx, responder, status_of, "complete"), timeout=5)
        assert responder.calls == 1

    @pytest.mark.asyncio
    async def test_bad_status_is_fatal(self):
        calls = 0

        async def query():
            nonlocal calls
            calls += 1
            return {}

        with pytest.raises(KeyError):
            await poll(make_ctx(), query, status_of, "complete")
        assert calls == 1


class TestWorkflow:
    @pytest.mark.asyncio
    async def test_steps_run_in_order(self):
        async def first(session, ctx):
            session.append("first")

        async def second(session, ctx):
            session.append("second")

        wf = Workflow("test", [Step("a", "a failed", first), Step("b", "b failed", second)])
        assert wf.step_names == ["a", "b"]
        assert await wf.run([], make_ctx()) == ["first", "second"]

    @pytest.mark.asyncio
    async def test_failure_is_tagged_with_step(self):
        ran = []

        async def ok(session, ctx):
            ran.append("ok")

        async def boom(session, ctx):
            raise ValueError("kaput")

        async def never(session, ctx):
            ran.append("never")

        wf = Workflow("test", [
            Step("ok", "ok failed", ok),
            Step("boom", "boom failed", boom),
            Step("never", "never failed", never),
        ])
        with pytest.raises(FetchError) as exc_info:
            await wf.run(None, make_ctx())
        err = exc_info.value
        assert err.step == "boom"
        assert err.message == "boom failed"
        assert isinstance(err.cause, ValueError)
        assert err.__cause__ is err.cause
        assert "fetch error at step 'boom'" in str(err)
        assert ran == ["ok"]

    @pytest.mark.asyncio
    async def test_cancel_before_step(self):
        cancel = asyncio.Event()
        cancel.set()
        ran = []

        async def step(session, ctx):
            ran.append(1)

        wf = Workflow("test", [Step("only", "failed", step)])
        with pytest.raises(FetchError) as exc_info:
            await wf.run(None, make_ctx(cancel=cancel))
        assert isinstance(exc_info.value.cause, FetchCancelledError)
        assert ran == []

    @pytest.mark.asyncio
    async def test_task_cancellation_is_not_wrapped(self):
        async def step(session, ctx):
            raise asyncio.CancelledError()

        wf = Workflow("test", [Step("only", "failed", step)])
        with pytest.raises(asyncio.CancelledError):
            await wf.run(None, make_ctx())
