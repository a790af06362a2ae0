# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Persistence contracts and reference stores.

The engine only talks to WorkflowRepository and ExecutionStore. In-memory
implementations back tests and embedded use; the file-backed ones keep
everything as inspectable JSON/YAML text files.
"""

import asyncio
import json
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import aiofiles.os
import yaml
from pydantic import ValidationError as PydanticValidationError

from hookflow.core.errors import NotFoundError
from .exceptions import WorkflowStructureError
from .models import Execution, StepLog, WorkflowDefinition


# =============================================================================
# CONTRACTS
# =============================================================================

class WorkflowRepository:
    """Source of workflow definitions"""

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        """
        Raises:
            NotFoundError: If no workflow has this id
        """
        raise NotImplementedError


class ExecutionStore:
    """Durable record of executions and their step logs"""

    async def save_execution(self, execution: Execution) -> None:
        raise NotImplementedError

    async def append_step_log(self, step_log: StepLog) -> None:
        raise NotImplementedError

    async def list_step_logs(self, execution_id: str) -> List[StepLog]:
        raise NotImplementedError

    async def get_execution(self, execution_id: str) -> Execution:
        """
        Raises:
            NotFoundError: If the execution was never saved
        """
        raise NotImplementedError


def parse_workflow(data: dict, workflow_id: Optional[str] = None) -> WorkflowDefinition:
    """Build a WorkflowDefinition from raw JSON/YAML data."""
    if not isinstance(data, dict):
        raise WorkflowStructureError("Workflow definition must be a mapping")
    if workflow_id and not data.get("id"):
        data = {**data, "id": workflow_id}
    try:
        return WorkflowDefinition.model_validate(data)
    except PydanticValidationError as e:
        raise WorkflowStructureError(f"Invalid workflow definition: {e}")


# =============================================================================
# IN-MEMORY
# =============================================================================

class InMemoryWorkflowRepository(WorkflowRepository):

    def __init__(self, workflows: Optional[Dict[str, WorkflowDefinition]] = None):
        self._workflows: Dict[str, WorkflowDefinition] = dict(workflows or {})

    def add(self, workflow_id: str, definition: Union[WorkflowDefinition, dict]) -> WorkflowDefinition:
        if isinstance(definition, dict):
            definition = parse_workflow(definition, workflow_id)
        self._workflows[workflow_id] = definition
        return definition

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        if workflow_id not in self._workflows:
            raise NotFoundError("Workflow", workflow_id)
        return self._workflows[workflow_id]


class InMemoryExecutionStore(ExecutionStore):
    """Keeps copies so later mutation of the engine's objects cannot rewrite history"""

    def __init__(self):
        self.executions: Dict[str, Execution] = {}
        self.step_logs: Dict[str, List[StepLog]] = {}

    async def save_execution(self, execution: Execution) -> None:
        self.executions[execution.id] = execution.model_copy(deep=True)

    async def append_step_log(self, step_log: StepLog) -> None:
        self.step_logs.setdefault(step_log.execution_id, []).append(step_log.model_copy(deep=True))

    async def list_step_logs(self, execution_id: str) -> List[StepLog]:
        return [log.model_copy(deep=True) for log in self.step_logs.get(execution_id, [])]

    async def get_execution(self, execution_id: str) -> Execution:
        if execution_id not in self.executions:
            raise NotFoundError("Execution", execution_id)
        return self.executions[execution_id].model_copy(deep=True)


# =============================================================================
# FILE-BACKED
# =============================================================================

class FileWorkflowRepository(WorkflowRepository):
    """
    Load workflows from text files.

    Directory structure:
        workflows/
        ├── order-sync.json
        └── nightly-report.yaml
    """

    EXTENSIONS = (".json", ".yaml", ".yml")

    def __init__(self, base_dir: Optional[str] = None):
        if base_dir is None:
            from hookflow.core.config import get_config
            base_dir = get_config().workflows_path
        self.base_dir = Path(base_dir)

    def _find(self, workflow_id: str) -> Optional[Path]:
        # Ids are file stems; refuse anything that could escape base_dir
        if not workflow_id or "/" in workflow_id or "\\" in workflow_id or workflow_id.startswith("."):
            return None
        for ext in self.EXTENSIONS:
            path = self.base_dir / f"{workflow_id}{ext}"
            if path.exists():
                return path
        return None

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        path = self._find(workflow_id)
        if path is None:
            raise NotFoundError("Workflow", workflow_id)

        async with aiofiles.open(path, "r") as f:
            raw = await f.read()

        try:
            data = json.loads(raw) if path.suffix == ".json" else yaml.safe_load(raw)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            raise WorkflowStructureError(f"Cannot parse workflow file {path.name}: {e}")

        return parse_workflow(data, workflow_id)


class FileExecutionStore(ExecutionStore):
    """
    Store execution history as JSON files.

    Storage structure:
        executions/
        └── {YYYY-MM-DD}/
            ├── {execution_id}.json
            └── {execution_id}.json

    Each file holds {"execution": {...}, "stepLogs": [...]}.
    Writes to one file are serialized with a per-file asyncio.Lock.
    """

    def __init__(self, base_dir: Optional[str] = None):
        if base_dir is None:
            from hookflow.core.config import get_config
            base_dir = get_config().executions_path
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        # Async locks for file operations
        self._locks: Dict[str, asyncio.Lock] = {}
        self._paths: Dict[str, Path] = {}

    def _get_lock(self, file_path: str) -> asyncio.Lock:
        """Get or create lock for a specific file"""
        if file_path not in self._locks:
            self._locks[file_path] = asyncio.Lock()
        return self._locks[file_path]

    def _path_for(self, execution: Execution) -> Path:
        if execution.id not in self._paths:
            existing = self._search_all_dates(execution.id)
            if existing is None:
                date = execution.started_at[:10]  # YYYY-MM-DD
                existing = self.base_dir / date / f"{execution.id}.json"
            self._paths[execution.id] = existing
        return self._paths[execution.id]

    def _search_all_dates(self, execution_id: str) -> Optional[Path]:
        """Search for execution across all dates"""
        for date_dir in sorted(self.base_dir.glob("*"), reverse=True):
            if not date_dir.is_dir():
                continue
            execution_file = date_dir / f"{execution_id}.json"
            if execution_file.exists():
                return execution_file
        return None

    def _locate(self, execution_id: str) -> Optional[Path]:
        path = self._paths.get(execution_id) or self._search_all_dates(execution_id)
        if path is not None:
            self._paths[execution_id] = path
        return path

    async def _read(self, path: Path) -> dict:
        if not await aiofiles.os.path.exists(path):
            return {"execution": None, "stepLogs": []}
        async with aiofiles.open(path, "r") as f:
            return json.loads(await f.read())

    async def _write(self, path: Path, document: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        async with aiofiles.open(tmp_path, "w") as f:
            await f.write(json.dumps(document, indent=2, default=str))
        await aiofiles.os.replace(tmp_path, path)

    async def save_execution(self, execution: Execution) -> None:
        path = self._path_for(execution)
        async with self._get_lock(str(path)):
            document = await self._read(path)
            document["execution"] = execution.model_dump(by_alias=True, mode="json")
            await self._write(path, document)

    async def append_step_log(self, step_log: StepLog) -> None:
        path = self._locate(step_log.execution_id)
        if path is None:
            raise NotFoundError("Execution", step_log.execution_id)
        async with self._get_lock(str(path)):
            document = await self._read(path)
            document.setdefault("stepLogs", []).append(step_log.model_dump(by_alias=True, mode="json"))
            await self._write(path, document)

    async def list_step_logs(self, execution_id: str) -> List[StepLog]:
        path = self._locate(execution_id)
        if path is None:
            return []
        async with self._get_lock(str(path)):
            document = await self._read(path)
        return [StepLog.model_validate(item) for item in document.get("stepLogs", [])]

    async def get_execution(self, execution_id: str) -> Execution:
        path = self._locate(execution_id)
        if path is None:
            raise NotFoundError("Execution", execution_id)
        async with self._get_lock(str(path)):
            document = await self._read(path)
        if not document.get("execution"):
            raise NotFoundError("Execution", execution_id)
        return Execution.model_validate(document["execution"])
