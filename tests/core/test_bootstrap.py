"""
Tests for kernel initialization and shutdown.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from buildkernel.core.bootstrap import (
    EVENT_BUS,
    HOOK_REGISTRY,
    SETTINGS,
    initialize_kernel,
    kernel_lifespan,
    shutdown_kernel,
)
from buildkernel.core.di import get_container
from buildkernel.core.error_boundary import get_error_boundary
from buildkernel.core.events import get_event_bus
from buildkernel.core.hooks import get_hook_registry
from buildkernel.core.interfaces.events import EventName
from buildkernel.core.interfaces.lifecycle import HookPhase, LifecycleHandlers
from buildkernel.core.lazy import get_lazy_adapter_registry


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """Keep configuration files and environment of the host out of the kernel."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BUILDKERNEL_LOG_LEVEL", raising=False)


def test_initialize_kernel_installs_services():
    """Test that the kernel's services become the global ones."""
    kernel = initialize_kernel({
        "event": {"max_history_size": 3, "validate_payloads": False},
        "hook_default_priority": 42,
    })

    assert get_event_bus() is kernel.event_bus
    assert get_hook_registry() is kernel.hook_registry
    assert get_lazy_adapter_registry() is kernel.adapter_registry
    assert get_error_boundary() is kernel.error_boundary

    container = get_container()
    assert container is kernel.container
    assert container.resolve(EVENT_BUS) is kernel.event_bus
    assert container.resolve(HOOK_REGISTRY) is kernel.hook_registry
    assert container.resolve(SETTINGS).hook_default_priority == 42

    assert kernel.event_bus.max_history_size == 3
    assert kernel.event_bus.validate_payloads is False
    assert kernel.hook_registry.default_priority == 42
    assert kernel.adapter_registry.error_boundary is kernel.error_boundary


@pytest.mark.asyncio
async def test_initialize_kernel_wires_enabled_modules(build_context):
    """Test that enabled modules are wired and built lazily."""
    real = LifecycleHandlers(on_before_build=AsyncMock())
    portfolio_factory = MagicMock(return_value=real)
    debug_factory = MagicMock()

    kernel = initialize_kernel(
        {"enabled_modules": {"portfolio": True, "debug": False}},
        adapter_factories={"portfolio": portfolio_factory, "debug": debug_factory}
    )

    assert kernel.wiring.features_wired == ["portfolio"]
    assert kernel.hook_registry.get_hook_count() == 2
    portfolio_factory.assert_not_called()

    await kernel.hook_registry.execute_phase(HookPhase.BEFORE_BUILD, build_context)

    portfolio_factory.assert_called_once()
    real.on_before_build.assert_awaited_once_with(build_context)
    debug_factory.assert_not_called()

    report = await kernel.health_checker.check_all()
    statuses = {health.module_name: health.status.value for health in report.modules}
    assert statuses == {"portfolio": "healthy", "debug": "disabled"}


@pytest.mark.asyncio
async def test_failed_module_is_recorded(build_context):
    """Test that a module failing to build shows up in errors and health."""
    kernel = initialize_kernel(
        {"enabled_modules": {"environment": True}},
        adapter_factories={"environment": MagicMock(side_effect=RuntimeError("missing env"))}
    )

    await kernel.hook_registry.execute_phase(HookPhase.BEFORE_BUILD, build_context)

    assert kernel.error_boundary.has_module_errors("environment")
    report = await kernel.health_checker.check_all()
    assert report.overall_status.value == "unhealthy"


def test_shutdown_kernel_resets_services():
    """Test that shutdown discards every global service."""
    kernel = initialize_kernel()

    shutdown_kernel()

    assert get_event_bus() is not kernel.event_bus
    assert get_hook_registry() is not kernel.hook_registry
    assert get_container() is not kernel.container
    assert not get_container().has(EVENT_BUS)


@pytest.mark.asyncio
async def test_kernel_lifespan():
    """Test the kernel lifespan context manager."""
    handler = MagicMock()

    async with kernel_lifespan({"event": {"history_enabled": True}}) as kernel:
        kernel.event_bus.on(EventName.SPAN_CREATED, handler, "mod-a")
        await get_event_bus().emit(EventName.SPAN_CREATED, {
            "span_id": "s1", "operation_name": "build", "module_name": "mod-a",
        })
        handler.assert_called_once()

    assert get_event_bus() is not kernel.event_bus
