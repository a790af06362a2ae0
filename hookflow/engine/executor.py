# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Execution Engine

Runs one workflow execution sequentially along the graph's execution order:
- One StepLog per visited node (success, error or skipped)
- Per-node retry with exponential backoff
- Condition nodes prune the branch that was not taken
- cancel()/pause() stop the run at the next node boundary (PAUSED)
- resume() continues a PAUSED run from its persisted step logs

Node failures never escape run(); they end up on the StepLog and, when
fatal, on the Execution.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import httpx

from hookflow.core.config import Config, get_config
from hookflow.core.errors import InvalidTransitionError
from hookflow.core.logging import get_engine_logger
from hookflow.nodes import NODE_HANDLERS, NodeContext, NodeHandler
from hookflow.triggers.payloads import redact_config
from .context import DataContext
from .events import (
    ExecutionCompleteEvent,
    ExecutionEventEmitter,
    ExecutionStartEvent,
    NullEventEmitter,
    StepCompleteEvent,
    StepStartEvent,
    emit_safely,
)
from .exceptions import NodeConfigurationError, NodeExecutionError
from .graph import TRIGGER_KEY, WorkflowGraph
from .models import (
    Execution,
    ExecutionStatus,
    Node,
    NodeType,
    RetryConfig,
    StepLog,
    StepStatus,
    TriggerEvent,
    WorkflowDefinition,
)
from .retry import AttemptOutcome, RetryPolicy, SleepFunc
from .store import ExecutionStore, WorkflowRepository
from .templates import check_required_fields, resolve_value


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _duration_ms(started_at: str, finished_at: str) -> int:
    delta = datetime.fromisoformat(finished_at) - datetime.fromisoformat(started_at)
    return max(int(delta.total_seconds() * 1000), 0)


class _RunState:
    """Mutable per-run bookkeeping, never shared between executions"""

    def __init__(self, graph: WorkflowGraph, context: DataContext):
        self.graph = graph
        self.context = context
        self.visited: Set[str] = set()
        self.skipped: Set[str] = set()
        self.last_output: Any = None
        self.failure: Optional[str] = None


class WorkflowEngine:
    """
    Executes workflows loaded from a WorkflowRepository and records them
    in an ExecutionStore.

    Args:
        repository: Source of workflow definitions
        store: Execution and step log persistence
        emitter: Progress event sink (default: discard)
        http_client: Shared httpx client handed to network handlers
        config: Engine configuration (default: get_config())
        sleep: Backoff sleep, injectable for tests
        handlers: NodeType -> handler table (default: NODE_HANDLERS)
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        store: ExecutionStore,
        emitter: Optional[ExecutionEventEmitter] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        config: Optional[Config] = None,
        sleep: Optional[SleepFunc] = None,
        handlers: Optional[Dict[NodeType, NodeHandler]] = None,
    ):
        self.repository = repository
        self.store = store
        self.emitter = emitter or NullEventEmitter()
        self.http_client = http_client
        self.config = config or get_config()
        self.sleep = sleep
        self.handlers = handlers or NODE_HANDLERS
        self.logger = get_engine_logger(self.config)

        # execution_id -> stop requested (only for runs in progress on this engine)
        self._stop_requests: Dict[str, bool] = {}

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    async def run(self, workflow_id: str, trigger_event: Optional[TriggerEvent] = None) -> Execution:
        """
        Execute a workflow for one trigger event.

        Args:
            workflow_id: Workflow to load from the repository
            trigger_event: Normalized trigger event (None = empty manual trigger)

        Returns:
            The finished (SUCCESS/FAILED) or PAUSED execution

        Raises:
            NotFoundError: If the workflow does not exist
            WorkflowStructureError: If the workflow graph is invalid
        """
        definition = await self.repository.load_workflow(workflow_id)
        graph = WorkflowGraph(definition)

        if trigger_event is None:
            trigger_event = TriggerEvent(workflow_id=workflow_id)
        payload = trigger_event.to_payload()

        execution = Execution(workflow_id=workflow_id, input=payload)
        await self.store.save_execution(execution)
        execution.transition(ExecutionStatus.RUNNING)
        await self.store.save_execution(execution)

        self.logger.info(
            f"Starting workflow {definition.name or workflow_id}",
            extra={"execution_id": execution.id, "workflow_id": workflow_id}
        )
        await emit_safely(self.emitter.on_execution_start, ExecutionStartEvent(
            execution_id=execution.id,
            workflow_id=workflow_id,
            workflow_name=definition.name,
            started_at=execution.started_at,
        ))

        state = _RunState(graph, DataContext(payload))
        return await self._drive(execution, definition, state)

    async def resume(self, execution_id: str) -> Execution:
        """
        Continue a PAUSED execution with the nodes it has not visited yet.

        The DataContext is rebuilt from the persisted step logs.

        Raises:
            NotFoundError: If the execution or its workflow does not exist
            InvalidTransitionError: If the execution is not PAUSED
        """
        execution = await self.store.get_execution(execution_id)
        if execution.status != ExecutionStatus.PAUSED:
            raise InvalidTransitionError(execution.id, execution.status.value, ExecutionStatus.RUNNING.value)

        definition = await self.repository.load_workflow(execution.workflow_id)
        graph = WorkflowGraph(definition)
        step_logs = await self.store.list_step_logs(execution_id)

        trigger_id = graph.trigger.id
        entries = [(TRIGGER_KEY, execution.input)]
        entries += [
            (log.node_id, log.output) for log in step_logs
            if log.status == StepStatus.SUCCESS and log.node_id != trigger_id
        ]
        state = _RunState(graph, DataContext.rebuild(entries))

        for log in step_logs:
            state.visited.add(log.node_id)
            if log.status != StepStatus.SUCCESS:
                continue
            state.last_output = log.output
            if log.node_id in graph and graph.get_node(log.node_id).type == NodeType.CONDITION:
                result = bool((log.output or {}).get("result"))
                state.skipped |= graph.nodes_to_skip(log.node_id, result)

        execution.transition(ExecutionStatus.RUNNING)
        await self.store.save_execution(execution)
        self.logger.info(
            f"Resuming execution {execution_id} ({len(state.visited)} node(s) already visited)",
            extra={"execution_id": execution_id, "workflow_id": execution.workflow_id}
        )
        return await self._drive(execution, definition, state)

    def cancel(self, execution_id: str) -> bool:
        """
        Ask a running execution to stop at the next node boundary.

        The in-flight node finishes; the execution then becomes PAUSED.

        Returns:
            False if no run with this id is in progress on this engine
        """
        if execution_id not in self._stop_requests:
            return False
        self._stop_requests[execution_id] = True
        self.logger.info(f"Stop requested for execution {execution_id}", extra={"execution_id": execution_id})
        return True

    def pause(self, execution_id: str) -> bool:
        """Same as cancel(): both leave the execution PAUSED."""
        return self.cancel(execution_id)

    # =========================================================================
    # RUN LOOP
    # =========================================================================

    async def _drive(self, execution: Execution, definition: WorkflowDefinition, state: _RunState) -> Execution:
        self._stop_requests[execution.id] = False
        try:
            for node in state.graph.execution_order():
                if node.id in state.visited:
                    continue

                if self._stop_requests.get(execution.id):
                    return await self._pause(execution)

                state.visited.add(node.id)

                if node.id in state.skipped:
                    await self._record_skipped(execution, node)
                    continue

                fatal = await self._execute_step(execution, definition, node, state)
                if fatal:
                    break

            return await self._finish(execution, state)
        finally:
            self._stop_requests.pop(execution.id, None)

    async def _execute_step(self, execution: Execution, definition: WorkflowDefinition,
                            node: Node, state: _RunState) -> bool:
        """Run one node. Returns True if the run must stop (fatal failure)."""
        graph = state.graph
        handler = self.handlers.get(node.type)

        await emit_safely(self.emitter.on_step_start, StepStartEvent(
            execution_id=execution.id,
            node_id=node.id,
            node_name=node.label,
        ))

        sources = state.context.as_dict()
        raw_fields = handler.raw_fields if handler is not None else ()
        data = {
            key: value if key in raw_fields else resolve_value(value, sources)
            for key, value in node.data.items()
        }

        ctx = NodeContext(
            execution_id=execution.id,
            node=node,
            data=data,
            input=self._node_input(graph, node, sources),
            sources=sources,
            variables=dict(definition.variables),
            config=self.config,
            http_client=self.http_client,
        )

        if handler is None:
            missing = NodeConfigurationError(node.id, f"No handler registered for node type {node.type.value}")
            outcome = AttemptOutcome(error=missing, attempts=1)
        elif node.type.is_trigger:
            # Entry point: the payload is already in the context
            outcome = await RetryPolicy(sleep=self.sleep).run(lambda: handler.execute(ctx), node.id)
        else:
            try:
                check_required_fields(node.id, data, node.required_fields)
            except NodeExecutionError as e:
                outcome = AttemptOutcome(error=e)
            else:
                policy = RetryPolicy(node.retry_config or self._default_retry(), sleep=self.sleep)
                outcome = await policy.run(lambda: handler.execute(ctx), node.id)

        step_log = StepLog(
            execution_id=execution.id,
            node_id=node.id,
            node_name=node.label,
            input=redact_config(data),
            duration=outcome.duration_ms,
            attempts=outcome.attempts,
        )

        if outcome.succeeded:
            step_log.status = StepStatus.SUCCESS
            step_log.output = outcome.output
            if not node.type.is_trigger:
                state.context.set(node.id, outcome.output)
            state.last_output = outcome.output
            if node.type == NodeType.CONDITION:
                result = bool((outcome.output or {}).get("result"))
                state.skipped |= graph.nodes_to_skip(node.id, result)
        else:
            step_log.status = StepStatus.ERROR
            step_log.error = _error_message(outcome.error)
            self.logger.warning(
                f"Node {node.id} failed after {outcome.attempts} attempt(s): {step_log.error}",
                extra={"execution_id": execution.id, "node_id": node.id, "non_fatal": node.non_fatal}
            )

        await self.store.append_step_log(step_log)
        await emit_safely(self.emitter.on_step_complete, StepCompleteEvent(
            execution_id=execution.id,
            node_id=node.id,
            node_name=node.label,
            status=step_log.status.value,
            output=step_log.output,
            error=step_log.error,
            duration=step_log.duration,
            retry_attempts=outcome.retry_attempts,
        ))

        if outcome.succeeded or node.non_fatal:
            return False
        state.failure = step_log.error
        return True

    async def _record_skipped(self, execution: Execution, node: Node) -> None:
        step_log = StepLog(
            execution_id=execution.id,
            node_id=node.id,
            node_name=node.label,
            status=StepStatus.SKIPPED,
        )
        await self.store.append_step_log(step_log)
        await emit_safely(self.emitter.on_step_complete, StepCompleteEvent(
            execution_id=execution.id,
            node_id=node.id,
            node_name=node.label,
            status=StepStatus.SKIPPED.value,
            duration=0,
        ))

    async def _pause(self, execution: Execution) -> Execution:
        execution.transition(ExecutionStatus.PAUSED)
        await self.store.save_execution(execution)
        self.logger.info(f"Execution {execution.id} paused", extra={"execution_id": execution.id})

        paused_at = datetime.now(timezone.utc).isoformat()
        await emit_safely(self.emitter.on_execution_complete, ExecutionCompleteEvent(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status.value,
            finished_at=paused_at,
            total_duration=_duration_ms(execution.started_at, paused_at),
        ))
        return execution

    async def _finish(self, execution: Execution, state: _RunState) -> Execution:
        if state.failure is None:
            execution.output = state.last_output
            execution.transition(ExecutionStatus.SUCCESS)
        else:
            execution.error = state.failure
            execution.transition(ExecutionStatus.FAILED)
        await self.store.save_execution(execution)

        total_duration = _duration_ms(execution.started_at, execution.finished_at)
        self.logger.info(
            f"Execution {execution.id} finished: {execution.status.value} ({total_duration}ms)",
            extra={"execution_id": execution.id, "workflow_id": execution.workflow_id}
        )
        await emit_safely(self.emitter.on_execution_complete, ExecutionCompleteEvent(
            execution_id=execution.id,
            workflow_id=execution.workflow_id,
            status=execution.status.value,
            output=execution.output,
            error=execution.error,
            finished_at=execution.finished_at,
            total_duration=total_duration,
        ))
        return execution

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _node_input(self, graph: WorkflowGraph, node: Node, sources: Dict[str, Any]) -> Any:
        """Output of the first predecessor that produced one"""
        trigger_id = graph.trigger.id
        for parent in graph.predecessors(node.id):
            key = TRIGGER_KEY if parent == trigger_id else parent
            if key in sources:
                return sources[key]
        if node.type.is_trigger:
            return sources.get(TRIGGER_KEY)
        return None

    def _default_retry(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.config.retry_max_attempts,
            initial_delay_ms=self.config.retry_initial_delay_ms,
            backoff_multiplier=self.config.retry_backoff_multiplier,
            max_delay_ms=self.config.retry_max_delay_ms,
        )

