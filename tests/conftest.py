"""
Pytest configuration and fixtures for the buildkernel test suite.

This module provides common fixtures that can be used across different test modules.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from buildkernel.core.config import reset_config_manager
from buildkernel.core.di import reset_container
from buildkernel.core.error_boundary import reset_error_boundary
from buildkernel.core.events import EventBus, reset_event_bus
from buildkernel.core.health import reset_module_health_checker
from buildkernel.core.hooks import HookRegistry, reset_hook_registry
from buildkernel.core.interfaces.lifecycle import (
    BuildContext,
    BuildResult,
    HandoffContext,
    LifecycleHandlers,
    TaskContext,
    TaskResult,
)
from buildkernel.core.lazy import LazyAdapterRegistry, reset_lazy_adapter_registry
from buildkernel.core.logging import clear_context


# ===== Global State =====

@pytest.fixture(autouse=True)
def reset_globals():
    """Give every test fresh global kernel services."""
    yield
    reset_event_bus()
    reset_hook_registry()
    reset_lazy_adapter_registry()
    reset_error_boundary()
    reset_module_health_checker()
    reset_container()
    reset_config_manager()
    clear_context()


# ===== Component Fixtures =====

@pytest.fixture
def event_bus():
    """Create an event bus with history enabled."""
    return EventBus()


@pytest.fixture
def hook_registry():
    """Create an empty hook registry."""
    return HookRegistry()


@pytest.fixture
def adapter_registry():
    """Create an empty lazy adapter registry."""
    return LazyAdapterRegistry()


@pytest.fixture
def mock_handlers():
    """Create a handler set whose handlers are all async mocks."""
    return LifecycleHandlers(
        on_before_build=AsyncMock(),
        on_before_task=AsyncMock(),
        on_after_task=AsyncMock(),
        on_task_error=AsyncMock(),
        on_handoff=AsyncMock(),
        on_build_complete=AsyncMock()
    )


@pytest.fixture
def mock_factory(mock_handlers):
    """Create a factory that returns the mock handler set."""
    return MagicMock(return_value=mock_handlers)


# ===== Context Fixtures =====

@pytest.fixture
def build_context():
    """Create a build context."""
    return BuildContext(
        build_id="build-1",
        prd_id="prd-1",
        prd_name="Test PRD",
        started_at="2024-01-01T00:00:00Z"
    )


@pytest.fixture
def task_context():
    """Create a task context."""
    return TaskContext(task_id="task-1", title="Build the API", agent_name="EARTH")


@pytest.fixture
def task_result():
    """Create a successful task result."""
    return TaskResult(task_id="task-1", agent_name="EARTH", success=True, duration_ms=120.0)


@pytest.fixture
def handoff_context():
    """Create a handoff context."""
    return HandoffContext(from_agent="EARTH", to_agent="MARS", task_id="task-1")


@pytest.fixture
def build_result():
    """Create a build result."""
    return BuildResult(
        build_id="build-1",
        prd_id="prd-1",
        total_tasks=3,
        successful_tasks=3,
        failed_tasks=0,
        total_duration_ms=900.0
    )
