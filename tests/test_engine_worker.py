"""Worker loop: tool dispatch, error asymmetry, ceilings, persistence and history policy."""

import pytest

from officellm.core.engine import WORKER_CEILING_MESSAGE, WorkerAgent
from officellm.core.errors import ProviderError
from officellm.core.messages import AgentKind
from officellm.memory import InMemoryStore
from tests.support import ScriptedProvider, reply, request, request_many, worker_config


class RecordingStore(InMemoryStore):
    def __init__(self):
        super().__init__()
        self.writes = []

    async def store(self, conversation):
        self.writes.append(conversation.model_copy(deep=True))
        await super().store(conversation)


class BrokenStore(InMemoryStore):
    async def store(self, conversation):
        raise RuntimeError("disk full")


def make_worker(provider, store=None, **overrides):
    return WorkerAgent(config=worker_config(provider, **overrides), store=store, instance_id="inst_test")


class TestWorkerLoop:
    @pytest.mark.asyncio
    async def test_toolless_first_response_finishes_in_one_iteration(self, worker_provider):
        worker_provider.queue(reply("nothing to do", prompt=3, completion=2))
        worker = make_worker(worker_provider)

        result = await worker.invoke({"task": "say hi"})

        assert result.success is True
        assert result.content == "nothing to do"
        assert result.iterations == 1
        assert result.usage.total_tokens == 5
        assert len(worker_provider.requests) == 1

    @pytest.mark.asyncio
    async def test_first_request_is_system_plus_formatted_params(self, worker_provider):
        worker_provider.queue(reply("ok"))
        worker = make_worker(worker_provider)

        await worker.invoke({"task": "add numbers", "context": "2 and 3"})

        sent = worker_provider.sent_turns[0]
        assert [t.role for t in sent] == ["system", "user"]
        assert sent[0].content == "You are the calc worker."
        assert sent[1].content == "task: add numbers\ncontext: 2 and 3"

    @pytest.mark.asyncio
    async def test_tool_result_is_fed_back_as_tool_turn(self, worker_provider):
        worker_provider.queue(
            request("add", {"a": 2, "b": 3}, prompt=10, completion=5),
            reply("The answer is 5", prompt=20, completion=4),
        )
        worker = make_worker(worker_provider)

        result = await worker.invoke({"task": "2 + 3"})

        assert result.success is True
        assert result.content == "The answer is 5"
        assert result.iterations == 2
        assert result.usage.prompt_tokens == 30
        assert result.usage.completion_tokens == 9
        assert result.usage.total_tokens == 39

        second = worker_provider.sent_turns[1]
        assistant, tool = second[-2], second[-1]
        assert assistant.role == "assistant" and assistant.tool_calls[0].name == "add"
        assert tool.role == "tool"
        assert tool.content == "5"
        assert tool.tool_call_id == assistant.tool_calls[0].id

    @pytest.mark.asyncio
    async def test_advertises_configured_tools(self, worker_provider):
        worker_provider.queue(reply("ok"))
        worker = make_worker(worker_provider)

        await worker.invoke({"task": "x"})

        _, tools = worker_provider.requests[0]
        assert [t.name for t in tools] == ["add"]

    @pytest.mark.asyncio
    async def test_async_tool_implementation(self, worker_provider):
        async def slow_add(args):
            return args["a"] + args["b"]

        worker_provider.queue(request("add", {"a": 1, "b": 1}), reply("done"))
        worker = make_worker(worker_provider, tool_implementations={"add": slow_add})

        result = await worker.invoke({"task": "1 + 1"})

        assert result.success is True
        assert worker_provider.sent_turns[1][-1].content == "2"

    @pytest.mark.asyncio
    async def test_tool_failure_is_recoverable(self, worker_provider):
        def explode(args):
            raise ValueError("division by zero")

        worker_provider.queue(request("add", {"a": 1, "b": 0}), reply("could not compute"))
        worker = make_worker(worker_provider, tool_implementations={"add": explode})

        result = await worker.invoke({"task": "1 / 0"})

        assert result.success is True
        assert result.iterations == 2
        tool_turn = worker_provider.sent_turns[1][-1]
        assert tool_turn.content == 'Error executing tool "add": division by zero'


    @pytest.mark.asyncio
    async def test_several_calls_in_one_turn_run_in_order(self, worker_provider):
        executed = []

        def tracked_add(args):
            executed.append((args["a"], args["b"]))
            return str(args["a"] + args["b"])

        worker_provider.queue(
            request_many(("add", {"a": 1, "b": 2}), ("add", {"a": 3, "b": 4}), prompt=6, completion=2),
            reply("3 and 7", prompt=9, completion=3),
        )
        worker = make_worker(worker_provider, tool_implementations={"add": tracked_add})

        result = await worker.invoke({"task": "1 + 2 and 3 + 4"})

        assert result.success is True
        assert result.iterations == 2
        assert result.usage.total_tokens == 20
        assert executed == [(1, 2), (3, 4)]

        second = worker_provider.sent_turns[1]
        assistant, first_tool, second_tool = second[-3:]
        assert [c.name for c in assistant.tool_calls] == ["add", "add"]
        assert [first_tool.role, second_tool.role] == ["tool", "tool"]
        assert [first_tool.tool_call_id, second_tool.tool_call_id] == [c.id for c in assistant.tool_calls]
        assert [first_tool.content, second_tool.content] == ["3", "7"]

    @pytest.mark.asyncio
    async def test_failing_call_does_not_stop_later_calls_in_the_turn(self, worker_provider):
        def picky_add(args):
            if args["a"] < 0:
                raise ValueError("negative input")
            return str(args["a"] + args["b"])

        worker_provider.queue(
            request_many(("add", {"a": -1, "b": 2}), ("add", {"a": 3, "b": 4})),
            reply("partial"),
        )
        worker = make_worker(worker_provider, tool_implementations={"add": picky_add})

        await worker.invoke({"task": "two sums"})

        tool_turns = [t for t in worker_provider.sent_turns[1] if t.role == "tool"]
        assert [t.content for t in tool_turns] == ['Error executing tool "add": negative input', "7"]


class TestWorkerErrors:
    @pytest.mark.asyncio
    async def test_missing_implementation_is_fatal(self, worker_provider):
        worker_provider.queue(request("add", {"a": 1, "b": 2}, prompt=4, completion=1), reply("unreachable"))
        worker = make_worker(worker_provider, tool_implementations={})

        result = await worker.invoke({"task": "1 + 2"})

        assert result.success is False
        assert "add" in result.error
        assert "no implementation" in result.error
        assert result.iterations == 1
        assert result.usage.total_tokens == 5
        assert len(worker_provider.requests) == 1

    @pytest.mark.asyncio
    async def test_provider_failure_is_fatal(self, worker_provider):
        worker_provider.queue(ProviderError("openai", "rate limited"))
        worker = make_worker(worker_provider)

        result = await worker.invoke({"task": "x"})

        assert result.success is False
        assert result.content == ""
        assert result.error == "openai provider error: rate limited"

    @pytest.mark.asyncio
    async def test_ceiling_of_one_stops_after_one_iteration(self, worker_provider):
        worker_provider.queue(request("add", {"a": 1, "b": 1}))
        worker = make_worker(worker_provider, max_iterations=1)

        result = await worker.invoke({"task": "loop forever"})

        assert result.success is True
        assert result.content == WORKER_CEILING_MESSAGE
        assert result.iterations == 1
        assert len(worker_provider.requests) == 1

    @pytest.mark.asyncio
    async def test_iterations_never_exceed_ceiling(self, worker_provider):
        worker_provider.queue(request("add", {"a": 1, "b": 1}))
        worker = make_worker(worker_provider, max_iterations=4)

        result = await worker.invoke({"task": "loop forever"})

        assert result.iterations == 4
        assert len(worker_provider.requests) == 4

    @pytest.mark.asyncio
    async def test_missing_implementation_leaves_no_unanswered_calls(self, worker_provider):
        store = RecordingStore()
        worker_provider.queue(
            request_many(("add", {"a": 1, "b": 2}), ("subtract", {"a": 5, "b": 1})),
            reply("recovered"),
        )
        worker = make_worker(worker_provider, store=store, tool_implementations={})

        result = await worker.invoke({"task": "x"})

        assert result.success is False
        saved = store.writes[0].turns
        assert [t.role for t in saved] == ["system", "user", "assistant", "tool", "tool"]
        assert [t.tool_call_id for t in saved[3:]] == [c.id for c in saved[2].tool_calls]
        assert all(t.content.startswith("Error: execution aborted:") for t in saved[3:])


class TestWorkerPersistence:
    @pytest.mark.asyncio
    async def test_one_write_per_execution(self, worker_provider):
        store = RecordingStore()
        worker_provider.queue(request("add", {"a": 2, "b": 2}), reply("4"))
        worker = make_worker(worker_provider, store=store)

        result = await worker.invoke({"task": "2 + 2"})

        assert len(store.writes) == 1
        saved = store.writes[0]
        assert saved.id == result.conversation_id
        assert saved.agent_kind is AgentKind.WORKER
        assert saved.agent_name == "calc"
        assert saved.turns[0].role == "system"
        assert [t.role for t in saved.turns] == ["system", "user", "assistant", "tool", "assistant"]
        assert saved.metadata["instance_id"] == "inst_test"
        assert saved.metadata["tools"] == ["add"]
        assert saved.metadata["model"] == "worker-model"

    @pytest.mark.asyncio
    async def test_failed_execution_is_still_persisted(self, worker_provider):
        store = RecordingStore()
        worker_provider.queue(request("add"))
        worker = make_worker(worker_provider, store=store, tool_implementations={})

        result = await worker.invoke({"task": "x"})

        assert result.success is False
        assert len(store.writes) == 1
        assert store.writes[0].turns[0].role == "system"

    @pytest.mark.asyncio
    async def test_store_failure_does_not_change_result(self, worker_provider):
        worker_provider.queue(reply("fine"))
        worker = make_worker(worker_provider, store=BrokenStore())

        result = await worker.invoke({"task": "x"})

        assert result.success is True
        assert result.content == "fine"


class TestWorkerHistory:
    @pytest.mark.asyncio
    async def test_fresh_per_call_by_default(self, worker_provider):
        worker_provider.queue(reply("first"), reply("second"))
        worker = make_worker(worker_provider)

        one = await worker.invoke({"task": "a"})
        two = await worker.invoke({"task": "b"})

        assert one.conversation_id != two.conversation_id
        assert [t.content for t in worker_provider.sent_turns[1]] == ["You are the calc worker.", "task: b"]
        assert worker.history == []

    @pytest.mark.asyncio
    async def test_continuity_carries_turns_into_next_invocation(self, worker_provider):
        worker_provider.queue(
            request("add", {"a": 2, "b": 3}),
            reply("five"),
            reply("still five"),
        )
        worker = make_worker(worker_provider, retain_history=True, context_window=3)

        one = await worker.invoke({"task": "2 + 3"})
        two = await worker.invoke({"task": "repeat that"})

        assert one.conversation_id == two.conversation_id
        sent = worker_provider.sent_turns[-1]
        assert len(sent) <= 3
        assert sent[0].role == "system"
        assert sent[-1].content == "task: repeat that"
        assert any(t.content == "five" for t in sent)
        assert [t.role for t in worker.history].count("system") == 1

    @pytest.mark.asyncio
    async def test_continuity_without_trimming_sends_everything(self, worker_provider):
        worker_provider.queue(reply("one"), reply("two"))
        worker = make_worker(worker_provider, retain_history=True, context_window=10)

        await worker.invoke({"task": "first"})
        await worker.invoke({"task": "second"})

        assert [t.content for t in worker_provider.sent_turns[-1]] == [
            "You are the calc worker.",
            "task: first",
            "one",
            "task: second",
        ]

    @pytest.mark.asyncio
    async def test_continuity_after_fatal_abort_sends_well_formed_history(self, worker_provider):
        worker_provider.queue(request("subtract", {"a": 5, "b": 1}), reply("ok"))
        worker = make_worker(worker_provider, retain_history=True, tool_implementations={})

        failed = await worker.invoke({"task": "5 - 1"})
        recovered = await worker.invoke({"task": "never mind"})

        assert failed.success is False
        assert recovered.success is True
        assert recovered.conversation_id == failed.conversation_id

        sent = worker_provider.sent_turns[-1]
        requested = [c.id for t in sent if t.role == "assistant" for c in t.tool_calls or []]
        answered = [t.tool_call_id for t in sent if t.role == "tool"]
        assert requested and requested == answered
        assert [t.role for t in worker.history] == [
            "system", "user", "assistant", "tool", "user", "assistant",
        ]

    @pytest.mark.asyncio
    async def test_reset_starts_a_new_conversation(self, worker_provider):
        worker_provider.queue(reply("one"), reply("two"))
        worker = make_worker(worker_provider, retain_history=True)

        one = await worker.invoke({"task": "first"})
        worker.reset()
        two = await worker.invoke({"task": "second"})

        assert one.conversation_id != two.conversation_id
        assert [t.content for t in worker_provider.sent_turns[-1]] == ["You are the calc worker.", "task: second"]


def test_delegation_definition_uses_fixed_schema():
    worker = make_worker(ScriptedProvider())
    definition = worker.delegation_definition()
    schema = definition.json_schema()

    assert definition.name == "calc"
    assert definition.description == "Performs arithmetic"
    assert set(schema["properties"]) == {"task", "context", "metadata", "priority"}
    assert set(schema["required"]) == {"task", "metadata"}
