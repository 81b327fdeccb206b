"""
Tests for lazy module adapters.
"""

import asyncio
import logging
import pytest
from unittest.mock import AsyncMock, MagicMock

from buildkernel.core.error_boundary import ErrorBoundary
from buildkernel.core.hooks import HookRegistry
from buildkernel.core.interfaces.lifecycle import HookPhase, LifecycleHandlers
from buildkernel.core.lazy import (
    AdapterState,
    LazyAdapter,
    LazyAdapterRegistry,
    get_lazy_adapter_registry,
    reset_lazy_adapter_registry,
)


def test_construction_does_not_build_module(mock_factory):
    """Test that creating an adapter and getting its handlers is free."""
    adapter = LazyAdapter("mod-a", mock_factory)
    handlers = adapter.get_handlers()

    assert adapter.get_handlers() is handlers
    assert adapter.module_name == "mod-a"
    assert adapter.state == AdapterState.UNINITIALIZED
    assert not adapter.is_initialized()
    mock_factory.assert_not_called()


@pytest.mark.asyncio
async def test_first_call_builds_module_once(mock_factory, mock_handlers, build_context, task_context):
    """Test that the module is built on first use and reused across phases."""
    adapter = LazyAdapter("mod-a", mock_factory)
    handlers = adapter.get_handlers()

    await handlers.on_before_build(build_context)
    await handlers.on_before_task(task_context)
    await handlers.on_before_build(build_context)

    mock_factory.assert_called_once_with()
    assert adapter.is_initialized()
    assert adapter.state == AdapterState.READY
    assert mock_handlers.on_before_build.await_count == 2
    mock_handlers.on_before_task.assert_awaited_once_with(task_context)


@pytest.mark.asyncio
async def test_async_factory(build_context):
    """Test a coroutine factory."""
    before = MagicMock()

    async def factory():
        await asyncio.sleep(0)
        return {"on_before_build": before}

    adapter = LazyAdapter("mod-a", factory)
    await adapter.get_handlers().on_before_build(build_context)

    before.assert_called_once_with(build_context)
    assert adapter.is_initialized()


@pytest.mark.asyncio
async def test_concurrent_first_calls_build_once(build_context):
    """Test that concurrent first calls share one build."""
    calls = 0

    async def factory():
        nonlocal calls
        calls += 1
        await asyncio.sleep(0.01)
        return LifecycleHandlers(on_before_build=AsyncMock())

    adapter = LazyAdapter("mod-a", factory)
    handler = adapter.get_handlers().on_before_build

    await asyncio.gather(handler(build_context), handler(build_context), handler(build_context))

    assert calls == 1


@pytest.mark.asyncio
async def test_missing_real_handler_is_noop(build_context, handoff_context):
    """Test calling a phase the module does not handle."""
    before = MagicMock()
    adapter = LazyAdapter("mod-a", lambda: LifecycleHandlers(on_before_build=before))

    await adapter.get_handlers().on_handoff(handoff_context)

    assert adapter.is_initialized()
    before.assert_not_called()


@pytest.mark.asyncio
async def test_failed_factory_is_sticky(build_context, caplog):
    """Test that a failed build is not retried until reset."""
    factory = MagicMock(side_effect=RuntimeError("cannot build"))
    adapter = LazyAdapter("broken-module", factory)
    handlers = adapter.get_handlers()

    with caplog.at_level(logging.ERROR, logger="buildkernel.core.lazy"):
        await handlers.on_before_build(build_context)

    assert not adapter.is_initialized()
    assert adapter.state == AdapterState.FAILED
    assert str(adapter.last_error) == "cannot build"
    assert "broken-module" in caplog.text
    assert "cannot build" in caplog.text

    await handlers.on_before_build(build_context)
    await handlers.on_build_complete(build_context)
    assert factory.call_count == 1


@pytest.mark.asyncio
async def test_reset_retries_factory(build_context):
    """Test that reset makes the next call build the module again."""
    real = LifecycleHandlers(on_before_build=AsyncMock())
    factory = MagicMock(side_effect=[RuntimeError("first attempt"), real])
    adapter = LazyAdapter("mod-a", factory)
    handlers = adapter.get_handlers()

    await handlers.on_before_build(build_context)
    assert adapter.state == AdapterState.FAILED

    adapter.reset()
    assert adapter.state == AdapterState.UNINITIALIZED
    assert adapter.last_error is None

    await handlers.on_before_build(build_context)

    assert factory.call_count == 2
    assert adapter.is_initialized()
    real.on_before_build.assert_awaited_once_with(build_context)


@pytest.mark.asyncio
async def test_reset_during_build_discards_stale_module(build_context):
    """Test that a build finishing after reset does not mark the adapter ready."""
    gate = asyncio.Event()
    stale = LifecycleHandlers(on_before_build=AsyncMock())
    fresh = LifecycleHandlers(on_before_build=AsyncMock())
    built = [stale, fresh]

    async def factory():
        instance = built.pop(0)
        if instance is stale:
            await gate.wait()
        return instance

    adapter = LazyAdapter("mod-a", factory)
    handler = adapter.get_handlers().on_before_build

    pending = asyncio.create_task(handler(build_context))
    await asyncio.sleep(0)

    adapter.reset()
    gate.set()
    await pending

    assert adapter.state == AdapterState.UNINITIALIZED
    stale.on_before_build.assert_not_awaited()

    await handler(build_context)

    assert adapter.is_initialized()
    fresh.on_before_build.assert_awaited_once_with(build_context)


@pytest.mark.asyncio
async def test_reset_discards_built_module(mock_factory, build_context):
    """Test that reset after a successful build builds a new instance."""
    adapter = LazyAdapter("mod-a", mock_factory)

    await adapter.get_handlers().on_before_build(build_context)
    adapter.reset()
    assert not adapter.is_initialized()

    await adapter.get_handlers().on_before_build(build_context)
    assert mock_factory.call_count == 2


@pytest.mark.asyncio
async def test_failing_real_handler_does_not_raise(task_result, caplog):
    """Test that failures of the built module's handlers are contained."""
    adapter = LazyAdapter(
        "mod-a", lambda: {"on_after_task": MagicMock(side_effect=ValueError("handler failed"))}
    )

    with caplog.at_level(logging.ERROR, logger="buildkernel.core.lazy"):
        await adapter.get_handlers().on_after_task(task_result)

    assert adapter.is_initialized()
    assert "handler failed" in caplog.text


@pytest.mark.asyncio
async def test_failures_are_recorded_in_error_boundary(build_context, task_result):
    """Test that an error boundary receives initialization and handler failures."""
    boundary = ErrorBoundary()

    broken = LazyAdapter("broken", MagicMock(side_effect=RuntimeError("no")), error_boundary=boundary)
    await broken.get_handlers().on_before_build(build_context)

    flaky = LazyAdapter(
        "flaky",
        lambda: {"on_after_task": MagicMock(side_effect=ValueError("bad result"))},
        error_boundary=boundary
    )
    await flaky.get_handlers().on_after_task(task_result)

    assert boundary.get_module_error_stats("broken").errors_by_phase == {"initialize": 1}
    flaky_errors = boundary.get_module_error_history("flaky")
    assert len(flaky_errors) == 1
    assert flaky_errors[0].phase == "on_after_task"
    assert flaky_errors[0].context is task_result


@pytest.mark.asyncio
async def test_lazy_handlers_as_hooks(mock_factory, mock_handlers, build_context):
    """Test registering lazy handlers in a hook registry."""
    registry = HookRegistry()
    adapter = LazyAdapter("mod-a", mock_factory)
    registry.register(HookPhase.BEFORE_BUILD, "mod-a", adapter.get_handlers().on_before_build, priority=10)

    mock_factory.assert_not_called()

    await registry.execute_phase(HookPhase.BEFORE_BUILD, build_context)

    mock_factory.assert_called_once()
    mock_handlers.on_before_build.assert_awaited_once_with(build_context)


@pytest.mark.asyncio
async def test_registry_partitions_modules(adapter_registry, build_context):
    """Test the initialized and uninitialized module lists."""
    adapter_registry.register("mod-a", MagicMock(return_value=LifecycleHandlers()))
    adapter_registry.register("mod-b", MagicMock(return_value=LifecycleHandlers()))

    assert adapter_registry.get_all_modules() == ["mod-a", "mod-b"]
    assert adapter_registry.get_initialized_modules() == []
    assert adapter_registry.get_uninitialized_modules() == ["mod-a", "mod-b"]

    await adapter_registry.get_adapter("mod-a").get_handlers().on_before_build(build_context)

    assert adapter_registry.get_initialized_modules() == ["mod-a"]
    assert adapter_registry.get_uninitialized_modules() == ["mod-b"]


@pytest.mark.asyncio
async def test_registry_failed_modules(adapter_registry, build_context):
    """Test that failed modules count as uninitialized."""
    adapter_registry.register("ok", MagicMock(return_value=LifecycleHandlers()))
    adapter_registry.register("broken", MagicMock(side_effect=RuntimeError("no")))

    for name in ("ok", "broken"):
        await adapter_registry.get_adapter(name).get_handlers().on_before_build(build_context)

    assert adapter_registry.get_initialized_modules() == ["ok"]
    assert adapter_registry.get_uninitialized_modules() == ["broken"]
    assert adapter_registry.get_failed_modules() == ["broken"]


@pytest.mark.asyncio
async def test_registry_reset_all_and_clear(adapter_registry, build_context):
    """Test resetAll keeps registrations and clear removes them."""
    for name in ("mod-a", "mod-b"):
        adapter_registry.register(name, MagicMock(return_value=LifecycleHandlers()))
        await adapter_registry.get_adapter(name).get_handlers().on_before_build(build_context)

    assert adapter_registry.get_initialized_modules() == ["mod-a", "mod-b"]

    adapter_registry.reset_all()
    assert adapter_registry.get_initialized_modules() == []
    assert adapter_registry.get_uninitialized_modules() == ["mod-a", "mod-b"]

    adapter_registry.clear()
    assert adapter_registry.get_all_modules() == []
    assert adapter_registry.get_adapter("mod-a") is None


def test_registry_register_replaces(adapter_registry):
    """Test that registering a module again replaces its adapter."""
    first = adapter_registry.register("mod-a", MagicMock())
    second = adapter_registry.register("mod-a", MagicMock())

    assert first is not second
    assert adapter_registry.get_adapter("mod-a") is second
    assert adapter_registry.get_all_modules() == ["mod-a"]


def test_registry_passes_error_boundary():
    """Test that adapters created by a registry share its error boundary."""
    boundary = ErrorBoundary()
    registry = LazyAdapterRegistry(error_boundary=boundary)

    adapter = registry.register("mod-a", MagicMock())

    assert adapter._error_boundary is boundary


def test_global_lazy_adapter_registry():
    """Test the global registry accessor and reset."""
    registry = get_lazy_adapter_registry()
    assert get_lazy_adapter_registry() is registry

    reset_lazy_adapter_registry()
    assert get_lazy_adapter_registry() is not registry
