# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Integration Tests for the workflow execution engine

Runs whole workflows against in-memory stores with a MockTransport behind
every outbound HTTP call.
"""

import httpx
import pytest

from builders import RecordingTransport, make_edge, make_node, make_workflow
from hookflow.core.errors import InvalidTransitionError, NotFoundError
from hookflow.engine.events import ExecutionEventEmitter
from hookflow.engine.exceptions import WorkflowStructureError
from hookflow.engine.executor import WorkflowEngine
from hookflow.engine.models import ExecutionStatus, NodeType, StepStatus, TriggerEvent
from hookflow.nodes import NODE_HANDLERS, NodeHandler


class RecordingEmitter(ExecutionEventEmitter):
    """Collects (event name, event) pairs in order"""

    def __init__(self):
        self.events = []

    async def on_execution_start(self, event):
        self.events.append(("execution:start", event))

    async def on_step_start(self, event):
        self.events.append(("step:start", event))

    async def on_step_complete(self, event):
        self.events.append(("step:complete", event))

    async def on_execution_complete(self, event):
        self.events.append(("execution:complete", event))

    def names(self):
        return [name for name, _ in self.events]

    def completed_steps(self):
        return [event for name, event in self.events if name == "step:complete"]


class SleepRecorder:

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def webhook_event(**body):
    return TriggerEvent(workflow_id="wf-test", body=body, headers={"Authorization": "Bearer secret"})


def engine_for(repository, store, config, transport=None, **kwargs):
    client = httpx.AsyncClient(transport=transport) if transport else None
    return WorkflowEngine(repository, store, http_client=client, config=config, **kwargs)


@pytest.fixture
def ok_transport():
    return RecordingTransport(lambda request: httpx.Response(200, json={"ok": True}))


class TestRun:

    @pytest.mark.asyncio
    async def test_webhook_to_http_success(self, repository, store, config, ok_transport):
        """Test that a webhook run resolves templates and records every step"""
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("notify", "http-request", label="Notify",
                          method="POST", url="https://api.example.com/orders/{{trigger.body.id}}",
                          body={"amount": "{{trigger.body.amount}}"}),
            ],
            [make_edge("trigger", "notify")],
        ))
        emitter = RecordingEmitter()
        engine = engine_for(repository, store, config, ok_transport, emitter=emitter)

        execution = await engine.run("wf-test", webhook_event(id=7, amount=42))

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.finished_at is not None
        assert execution.output["body"] == {"ok": True}
        assert str(ok_transport.requests[0].url) == "https://api.example.com/orders/7"
        assert ok_transport.requests[0].content == b'{"amount": 42}'

        logs = await store.list_step_logs(execution.id)
        assert [(log.node_id, log.status) for log in logs] == [
            ("trigger", StepStatus.SUCCESS),
            ("notify", StepStatus.SUCCESS),
        ]
        assert logs[1].input["url"] == "https://api.example.com/orders/7"
        assert logs[1].node_name == "Notify"
        assert logs[0].output["headers"]["Authorization"] == "[REDACTED]"

        assert emitter.names() == [
            "execution:start",
            "step:start", "step:complete",
            "step:start", "step:complete",
            "execution:complete",
        ]
        assert emitter.events[-1][1].status == "SUCCESS"

    @pytest.mark.asyncio
    async def test_blocked_url_fails_without_request(self, repository, store, config, ok_transport):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("steal", "http-request", url="http://169.254.169.254/latest/meta-data/"),
                make_node("after", "http-request", url="https://api.example.com"),
            ],
            [make_edge("trigger", "steal"), make_edge("steal", "after")],
        ))
        engine = engine_for(repository, store, config, ok_transport)

        execution = await engine.run("wf-test", webhook_event())

        assert execution.status == ExecutionStatus.FAILED
        assert "169.254.169.254" in execution.error
        assert ok_transport.requests == []
        logs = await store.list_step_logs(execution.id)
        assert [log.node_id for log in logs] == ["trigger", "steal"]
        assert logs[1].status == StepStatus.ERROR
        assert logs[1].attempts == 1

    @pytest.mark.asyncio
    async def test_condition_skips_untaken_branch(self, repository, store, config, ok_transport):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("check", "condition", expression="input.body.amount > 100"),
                make_node("big", "http-request", url="https://api.example.com/big"),
                make_node("small", "http-request", url="https://api.example.com/small"),
            ],
            [
                make_edge("trigger", "check"),
                make_edge("check", "big", "true"),
                make_edge("check", "small", "false"),
            ],
        ))
        engine = engine_for(repository, store, config, ok_transport)

        execution = await engine.run("wf-test", webhook_event(amount=10))

        assert execution.status == ExecutionStatus.SUCCESS
        logs = {log.node_id: log for log in await store.list_step_logs(execution.id)}
        assert logs["check"].output["matchedBranch"] == "false"
        assert logs["big"].status == StepStatus.SKIPPED
        assert logs["small"].status == StepStatus.SUCCESS
        assert [str(r.url) for r in ok_transport.requests] == ["https://api.example.com/small"]

    @pytest.mark.asyncio
    async def test_node_linked_from_trigger_runs_when_branch_rejected(self, repository, store, config, ok_transport):
        """Test that a node with a path around the condition is not skipped"""
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("check", "condition", expression="false"),
                make_node("audit", "http-request", url="https://api.example.com/audit"),
            ],
            [
                make_edge("trigger", "check"),
                make_edge("trigger", "audit"),
                make_edge("check", "audit", "true"),
            ],
        ))
        engine = engine_for(repository, store, config, ok_transport)

        execution = await engine.run("wf-test", webhook_event())

        assert execution.status == ExecutionStatus.SUCCESS
        statuses = {log.node_id: log.status for log in await store.list_step_logs(execution.id)}
        assert statuses == {
            "trigger": StepStatus.SUCCESS,
            "check": StepStatus.SUCCESS,
            "audit": StepStatus.SUCCESS,
        }
        assert [str(r.url) for r in ok_transport.requests] == ["https://api.example.com/audit"]

    @pytest.mark.asyncio
    async def test_missing_handler_fails_the_node(self, repository, store, config):
        """Test that an unregistered node type ends the run as FAILED instead of raising"""
        handlers = dict(NODE_HANDLERS)
        del handlers[NodeType.TRANSFORM]
        repository.add("wf-test", make_workflow(
            [make_node("trigger", "webhook-trigger"), make_node("t", "transform", expression="1")],
            [make_edge("trigger", "t")],
        ))
        emitter = RecordingEmitter()
        engine = engine_for(repository, store, config, handlers=handlers, emitter=emitter)

        execution = await engine.run("wf-test", webhook_event())

        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "No handler registered for node type transform"
        saved = await store.get_execution(execution.id)
        assert saved.status == ExecutionStatus.FAILED
        logs = await store.list_step_logs(execution.id)
        assert logs[1].status == StepStatus.ERROR
        assert logs[1].attempts == 1
        assert emitter.events[-1][1].status == "FAILED"

    @pytest.mark.asyncio
    async def test_non_fatal_failure_continues(self, repository, store, config, ok_transport):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("optional", "http-request", url="http://localhost/internal", nonFatal=True),
                make_node("final", "transform", expression="'done'"),
            ],
            [make_edge("trigger", "optional"), make_edge("optional", "final")],
        ))
        engine = engine_for(repository, store, config, ok_transport)

        execution = await engine.run("wf-test", webhook_event())

        logs = await store.list_step_logs(execution.id)
        assert [log.status for log in logs] == [StepStatus.SUCCESS, StepStatus.ERROR, StepStatus.SUCCESS]
        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.output == "done"

    @pytest.mark.asyncio
    async def test_transform_chain(self, repository, store, config):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("total", "transform", expression="input.body.price * input.body.qty"),
                make_node("label", "transform", expression="'total=' + toString(input) + ' ' + variables.currency"),
            ],
            [make_edge("trigger", "total"), make_edge("total", "label")],
            variables={"currency": "EUR"},
        ))
        engine = engine_for(repository, store, config)

        execution = await engine.run("wf-test", webhook_event(price=5, qty=3))

        assert execution.output == "total=15 EUR"

    @pytest.mark.asyncio
    async def test_manual_run_without_event(self, repository, store, config):
        repository.add("wf-test", make_workflow(
            [make_node("trigger", "webhook-trigger"), make_node("t", "transform", expression="input.body")],
            [make_edge("trigger", "t")],
        ))

        execution = await engine_for(repository, store, config).run("wf-test")

        assert execution.status == ExecutionStatus.SUCCESS
        assert execution.output == {}
        assert execution.input["method"] == "POST"


class TestRetries:

    @pytest.mark.asyncio
    async def test_retries_with_backoff(self, repository, store, config):
        responses = iter([503, 503, 200])
        transport = RecordingTransport(lambda request: httpx.Response(next(responses)))
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("flaky", "http-request", url="https://api.example.com",
                          retryConfig={"maxAttempts": 3, "initialDelayMs": 100, "backoffMultiplier": 2}),
            ],
            [make_edge("trigger", "flaky")],
        ))
        sleep = SleepRecorder()
        emitter = RecordingEmitter()
        engine = engine_for(repository, store, config, transport, sleep=sleep, emitter=emitter)

        execution = await engine.run("wf-test", webhook_event())

        assert execution.status == ExecutionStatus.SUCCESS
        assert sleep.calls == [0.1, 0.2]
        assert len(transport.requests) == 3
        log = (await store.list_step_logs(execution.id))[1]
        assert log.attempts == 3
        assert emitter.completed_steps()[1].retry_attempts == 2

    @pytest.mark.asyncio
    async def test_required_field_fails_without_retry(self, repository, store, config, ok_transport):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("call", "http-request", url="{{trigger.body.callback}}",
                          requiredFields=["url"], retryConfig={"maxAttempts": 5}),
            ],
            [make_edge("trigger", "call")],
        ))
        sleep = SleepRecorder()
        engine = engine_for(repository, store, config, ok_transport, sleep=sleep)

        execution = await engine.run("wf-test", webhook_event())

        assert execution.status == ExecutionStatus.FAILED
        assert execution.error == "Required field(s) unresolved: url"
        assert sleep.calls == []
        assert ok_transport.requests == []


class TestPersistence:

    @pytest.mark.asyncio
    async def test_persisted_before_emitted(self, repository, store, config):
        """Test that subscribers never see an event the store does not yet reflect"""
        observed = []

        class CheckingEmitter(ExecutionEventEmitter):
            async def on_step_complete(self, event):
                logs = await store.list_step_logs(event.execution_id)
                observed.append(any(log.node_id == event.node_id for log in logs))

            async def on_execution_complete(self, event):
                saved = await store.get_execution(event.execution_id)
                observed.append(saved.status.value == event.status)

        repository.add("wf-test", make_workflow(
            [make_node("trigger", "webhook-trigger"), make_node("t", "transform", expression="1 + 1")],
            [make_edge("trigger", "t")],
        ))
        engine = engine_for(repository, store, config, emitter=CheckingEmitter())

        await engine.run("wf-test", webhook_event())

        assert observed == [True, True, True]

    @pytest.mark.asyncio
    async def test_step_log_input_redacts_credentials(self, repository, store, config, ok_transport):
        """Test that resolved credentials never reach the stored step log"""
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("call", "http-request", url="https://api.example.com/hook",
                          headers={"Authorization": "Bearer sk-live-SECRET", "X-Trace": "{{trigger.body.id}}"},
                          auth={"type": "bearer", "token": "tok-SECRET"}),
                make_node("mail", "send-email", apiKey="re_SECRET", to="ops@example.com",
                          subject="hi", body="hi", nonFatal=True),
            ],
            [make_edge("trigger", "call"), make_edge("call", "mail")],
        ))
        engine = engine_for(repository, store, config, ok_transport)

        execution = await engine.run("wf-test", webhook_event(id=9))

        logs = {log.node_id: log for log in await store.list_step_logs(execution.id)}
        call_input = logs["call"].input
        assert call_input["url"] == "https://api.example.com/hook"
        assert call_input["headers"] == {"Authorization": "[REDACTED]", "X-Trace": 9}
        assert call_input["auth"] == {"type": "bearer", "token": "[REDACTED]"}
        assert logs["mail"].input["apiKey"] == "[REDACTED]"
        assert logs["mail"].input["to"] == "ops@example.com"
        assert "SECRET" not in repr([log.input for log in logs.values()])
        # The handler itself still saw the real token
        assert ok_transport.requests[0].headers["Authorization"] == "Bearer tok-SECRET"

    @pytest.mark.asyncio
    async def test_emitter_failure_does_not_fail_run(self, repository, store, config):
        class BrokenEmitter(ExecutionEventEmitter):
            async def on_step_start(self, event):
                raise ConnectionError("subscriber gone")

        repository.add("wf-test", make_workflow(
            [make_node("trigger", "webhook-trigger"), make_node("t", "transform", expression="1")],
            [make_edge("trigger", "t")],
        ))

        execution = await engine_for(repository, store, config, emitter=BrokenEmitter()).run("wf-test")

        assert execution.status == ExecutionStatus.SUCCESS


class TestPauseResume:

    @pytest.mark.asyncio
    async def test_cancel_then_resume(self, repository, store, config):
        """Test that a stop request pauses at the next node and resume finishes the run"""
        holder = {}

        class StoppingHandler(NodeHandler):
            node_type = NodeType.TRANSFORM

            async def execute(self, ctx):
                holder["engine"].cancel(ctx.execution_id)
                return {"stage": "first"}

        handlers = dict(NODE_HANDLERS)
        handlers[NodeType.TRANSFORM] = StoppingHandler()
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("first", "transform"),
                make_node("second", "condition", expression="first.stage == 'first'"),
            ],
            [make_edge("trigger", "first"), make_edge("first", "second")],
        ))
        emitter = RecordingEmitter()
        engine = engine_for(repository, store, config, handlers=handlers, emitter=emitter)
        holder["engine"] = engine

        paused = await engine.run("wf-test", webhook_event(n=1))

        assert paused.status == ExecutionStatus.PAUSED
        assert [log.node_id for log in await store.list_step_logs(paused.id)] == ["trigger", "first"]
        assert emitter.events[-1][1].status == "PAUSED"

        resumed = await engine.resume(paused.id)

        assert resumed.status == ExecutionStatus.SUCCESS
        assert resumed.output["result"] is True
        logs = await store.list_step_logs(paused.id)
        assert [log.node_id for log in logs] == ["trigger", "first", "second"]

    @pytest.mark.asyncio
    async def test_resume_requires_paused(self, repository, store, config):
        repository.add("wf-test", make_workflow([make_node("trigger", "webhook-trigger")], []))
        engine = engine_for(repository, store, config)
        execution = await engine.run("wf-test")

        with pytest.raises(InvalidTransitionError):
            await engine.resume(execution.id)

    def test_cancel_unknown_execution(self, repository, store, config):
        engine = engine_for(repository, store, config)

        assert engine.cancel("nope") is False
        assert engine.pause("nope") is False


class TestLoadErrors:

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, repository, store, config):
        with pytest.raises(NotFoundError):
            await engine_for(repository, store, config).run("missing")

    @pytest.mark.asyncio
    async def test_invalid_graph_creates_no_execution(self, repository, store, config):
        repository.add("wf-test", make_workflow(
            [
                make_node("trigger", "webhook-trigger"),
                make_node("a", "transform", expression="1"),
                make_node("b", "transform", expression="2"),
            ],
            [make_edge("trigger", "a"), make_edge("a", "b"), make_edge("b", "a")],
        ))

        with pytest.raises(WorkflowStructureError):
            await engine_for(repository, store, config).run("wf-test")
        assert store.executions == {}
