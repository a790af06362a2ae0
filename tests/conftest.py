# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Test Fixtures

Isolated engine configuration and in-memory persistence shared by the
engine and node tests.
"""

import pytest

from hookflow.core.config import Config
from hookflow.engine.store import InMemoryExecutionStore, InMemoryWorkflowRepository


@pytest.fixture
def config(tmp_path) -> Config:
    """Engine configuration with no retries and text logging"""
    return Config(
        executions_path=str(tmp_path / "executions"),
        workflows_path=str(tmp_path / "workflows"),
        log_format="text",
    )


@pytest.fixture
def repository() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture
def store() -> InMemoryExecutionStore:
    return InMemoryExecutionStore()
