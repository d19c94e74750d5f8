"""Unit tests for the command dispatcher."""

import pytest
from pydantic import BaseModel

from board_sync.core.dispatcher import (
    BatchErrorPolicy,
    CommandContext,
    CommandDispatcher,
    Middleware,
)
from board_sync.exceptions import (
    DispatcherNotReadyError,
    UnknownCommandError,
    ValidationError,
)
from board_sync.models import Command


class EchoPayload(BaseModel):
    text: str


class RecordingMiddleware(Middleware):
    def __init__(self):
        self.events = []

    async def before(self, command):
        self.events.append(("before", command.name))

    async def after(self, command, result):
        self.events.append(("after", command.name, result))

    async def on_error(self, command, error):
        self.events.append(("error", command.name, type(error).__name__))


class BrokenMiddleware(Middleware):
    async def before(self, command):
        raise RuntimeError("hook failed")


@pytest.fixture
def dispatcher():
    d = CommandDispatcher()
    d.set_context(CommandContext(get_case=lambda case_id: None, get_actor=lambda: "Dana"))
    return d


@pytest.mark.unit
class TestDispatch:
    """Test single command dispatch"""

    async def test_routes_to_handler(self, dispatcher):
        """Happy path: handler receives validated payload and context"""

        async def echo(payload, ctx):
            return f"{ctx.get_actor()}: {payload.text}"

        dispatcher.register("echo", echo, EchoPayload)
        result = await dispatcher.dispatch(Command(name="echo", payload={"text": "hi"}))
        assert result == "Dana: hi"

    async def test_raw_payload_without_model(self, dispatcher):
        async def raw(payload, ctx):
            return payload

        dispatcher.register("raw", raw)
        assert await dispatcher.dispatch(Command(name="raw", payload={"a": 1})) == {"a": 1}

    async def test_unknown_command(self, dispatcher):
        with pytest.raises(UnknownCommandError) as exc_info:
            await dispatcher.dispatch(Command(name="nope"))
        assert "nope" in str(exc_info.value)

    async def test_validation_error(self, dispatcher):
        calls = []

        async def echo(payload, ctx):
            calls.append(payload)

        dispatcher.register("echo", echo, EchoPayload)
        with pytest.raises(ValidationError):
            await dispatcher.dispatch(Command(name="echo", payload={"wrong": 1}))
        assert calls == []

    async def test_not_ready_without_context(self):
        dispatcher = CommandDispatcher()

        async def noop(payload, ctx):
            return None

        dispatcher.register("noop", noop)
        with pytest.raises(DispatcherNotReadyError):
            await dispatcher.dispatch(Command(name="noop"))

    async def test_reregistration_replaces_handler(self, dispatcher):
        async def first(payload, ctx):
            return 1

        async def second(payload, ctx):
            return 2

        dispatcher.register("n", first)
        dispatcher.register("n", second)
        assert await dispatcher.dispatch(Command(name="n")) == 2
        assert dispatcher.registered_commands == ["n"]

    async def test_unregister(self, dispatcher):
        async def noop(payload, ctx):
            return None

        dispatcher.register("noop", noop)
        dispatcher.unregister("noop")
        assert not dispatcher.has_handler("noop")

    async def test_handler_error_propagates_unmodified(self, dispatcher):
        async def fail(payload, ctx):
            raise KeyError("boom")

        dispatcher.register("fail", fail)
        with pytest.raises(KeyError):
            await dispatcher.dispatch(Command(name="fail"))


@pytest.mark.unit
class TestMiddleware:
    """Test observer middleware"""

    async def test_observes_success(self, dispatcher):
        recorder = RecordingMiddleware()
        dispatcher.use(recorder)

        async def one(payload, ctx):
            return 1

        dispatcher.register("one", one)
        await dispatcher.dispatch(Command(name="one"))
        assert recorder.events == [("before", "one"), ("after", "one", 1)]

    async def test_observes_error_without_swallowing(self, dispatcher):
        recorder = RecordingMiddleware()
        dispatcher.use(recorder)

        async def fail(payload, ctx):
            raise ValueError("bad")

        dispatcher.register("fail", fail)
        with pytest.raises(ValueError):
            await dispatcher.dispatch(Command(name="fail"))
        assert recorder.events[-1] == ("error", "fail", "ValueError")

    async def test_unknown_command_reaches_on_error(self, dispatcher):
        recorder = RecordingMiddleware()
        dispatcher.use(recorder)
        with pytest.raises(UnknownCommandError):
            await dispatcher.dispatch(Command(name="ghost"))
        assert recorder.events[-1] == ("error", "ghost", "UnknownCommandError")

    async def test_hook_failure_ignored(self, dispatcher):
        dispatcher.use(BrokenMiddleware())

        async def one(payload, ctx):
            return 1

        dispatcher.register("one", one)
        assert await dispatcher.dispatch(Command(name="one")) == 1

    async def test_remove(self, dispatcher):
        recorder = RecordingMiddleware()
        remove = dispatcher.use(recorder)
        remove()

        async def one(payload, ctx):
            return 1

        dispatcher.register("one", one)
        await dispatcher.dispatch(Command(name="one"))
        assert recorder.events == []


@pytest.mark.unit
class TestBatch:
    """Test sequential batch dispatch"""

    @pytest.fixture
    def calls(self, dispatcher):
        calls = []

        async def ok(payload, ctx):
            calls.append(payload["n"])
            return payload["n"]

        async def fail(payload, ctx):
            calls.append("fail")
            raise RuntimeError("second failed")

        dispatcher.register("ok", ok)
        dispatcher.register("fail", fail)
        return calls

    async def test_abort_stops_at_first_failure(self, dispatcher, calls):
        batch = await dispatcher.dispatch_batch(
            [
                Command(name="ok", payload={"n": 1}),
                Command(name="fail"),
                Command(name="ok", payload={"n": 3}),
            ]
        )
        assert calls == [1, "fail"]
        assert len(batch.results) == 1
        assert batch.results[0].value == 1
        assert isinstance(batch.error, RuntimeError)
        assert batch.failed_command.name == "fail"
        assert not batch.succeeded
        with pytest.raises(RuntimeError):
            batch.raise_for_error()

    async def test_continue_runs_everything(self, dispatcher, calls):
        batch = await dispatcher.dispatch_batch(
            [
                Command(name="ok", payload={"n": 1}),
                Command(name="fail"),
                Command(name="ok", payload={"n": 3}),
            ],
            on_error=BatchErrorPolicy.CONTINUE,
        )
        assert calls == [1, "fail", 3]
        assert [r.success for r in batch.results] == [True, False, True]
        assert batch.results[1].error == "second failed"
        assert batch.error is None
        assert not batch.succeeded

    async def test_all_succeed(self, dispatcher, calls):
        batch = await dispatcher.dispatch_batch([Command(name="ok", payload={"n": 1})])
        assert batch.succeeded
        batch.raise_for_error()
