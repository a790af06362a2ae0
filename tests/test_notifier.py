# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Tests for failed-execution email notifications
"""

import json

import httpx
import pytest

from builders import RecordingTransport, make_edge, make_node, make_workflow
from hookflow.engine.events import ExecutionCompleteEvent
from hookflow.engine.executor import WorkflowEngine
from hookflow.engine.models import ExecutionStatus
from hookflow.engine.notifier import FailureNotificationEmitter, build_failure_email, format_duration
from hookflow.nodes.notifications import RESEND_API_URL


def failed_event(**overrides):
    fields = {
        "execution_id": "exec-1",
        "workflow_id": "wf-test",
        "status": "FAILED",
        "error": "Request failed with status code 500",
        "finished_at": "2025-01-01T00:00:02+00:00",
        "total_duration": 1500,
    }
    fields.update(overrides)
    return ExecutionCompleteEvent(**fields)


def add_workflow(repository, **extra):
    repository.add("wf-test", make_workflow(
        [
            make_node("trigger", "webhook-trigger"),
            make_node("call", "http-request", url="http://localhost/internal"),
        ],
        [make_edge("trigger", "call")],
        **extra,
    ))


@pytest.fixture
def resend_transport():
    return RecordingTransport(lambda request: httpx.Response(200, json={"id": "email-1"}))


class TestFailureEmail:

    def test_format_duration(self):
        assert format_duration(250) == "250ms"
        assert format_duration(1500) == "1.5s"

    def test_error_is_escaped_in_html(self):
        email = build_failure_email("Orders", failed_event(error="<script>x</script>"))

        assert email["subject"] == "[hookflow] Workflow Failed: Orders"
        assert "&lt;script&gt;" in email["html"]
        assert "<script>x</script>" in email["text"]
        assert "Duration: 1.5s" in email["text"]


class TestFailureNotificationEmitter:

    @pytest.mark.asyncio
    async def test_sends_to_workflow_address(self, repository, config, resend_transport):
        """Test that a failed execution is mailed to the workflow's notificationEmail"""
        add_workflow(repository, notificationEmail="owner@example.com")
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )

        sent = await emitter.notify(failed_event())

        assert sent is True
        request = resend_transport.requests[0]
        assert str(request.url) == RESEND_API_URL
        assert request.headers["Authorization"] == "Bearer re_test"
        body = json.loads(request.content)
        assert body["to"] == ["owner@example.com"]
        assert body["from"] == config.notification_from_email
        assert body["subject"] == "[hookflow] Workflow Failed: Test"
        assert "Request failed with status code 500" in body["text"]

    @pytest.mark.asyncio
    async def test_no_address_sends_nothing(self, repository, config, resend_transport):
        add_workflow(repository)
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )

        assert await emitter.notify(failed_event()) is False
        assert resend_transport.requests == []

    @pytest.mark.asyncio
    async def test_disabled_without_api_key(self, repository, config, resend_transport, monkeypatch):
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        add_workflow(repository, notificationEmail="owner@example.com")
        emitter = FailureNotificationEmitter(
            repository, http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )

        assert await emitter.notify(failed_event()) is False
        assert resend_transport.requests == []

    @pytest.mark.asyncio
    async def test_success_and_pause_are_ignored(self, repository, config, resend_transport):
        add_workflow(repository, notificationEmail="owner@example.com")
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )

        await emitter.on_execution_complete(failed_event(status="SUCCESS", error=None))
        await emitter.on_execution_complete(failed_event(status="PAUSED", error=None))

        assert resend_transport.requests == []

    @pytest.mark.asyncio
    async def test_provider_error_is_reported_not_raised(self, repository, config):
        transport = RecordingTransport(
            lambda request: httpx.Response(422, json={"message": "Invalid `to` field"})
        )
        add_workflow(repository, notificationEmail="not-an-address")
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=transport), config=config,
        )

        assert await emitter.notify(failed_event()) is False
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    async def test_unknown_workflow(self, repository, config, resend_transport):
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )

        assert await emitter.notify(failed_event(workflow_id="missing")) is False
        assert resend_transport.requests == []

    @pytest.mark.asyncio
    async def test_failed_run_triggers_notification(self, repository, store, config, resend_transport):
        """Test that the engine's FAILED completion event reaches the notifier"""
        add_workflow(repository, notificationEmail="owner@example.com")
        emitter = FailureNotificationEmitter(
            repository, api_key="re_test", http_client=httpx.AsyncClient(transport=resend_transport), config=config,
        )
        engine = WorkflowEngine(repository, store, emitter=emitter, config=config)

        execution = await engine.run("wf-test")

        assert execution.status == ExecutionStatus.FAILED
        assert len(resend_transport.requests) == 1
        body = json.loads(resend_transport.requests[0].content)
        assert execution.id in body["text"]
        assert execution.error in body["text"]
