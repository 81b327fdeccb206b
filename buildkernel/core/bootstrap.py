"""
Initialization module for the buildkernel.

This module builds the kernel from configuration: it reads the kernel
settings, creates the event bus, hook registry, lazy adapter registry, error
boundary and health checker, registers them in the dependency injection
container and wires the enabled feature modules.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, Any, Optional, Mapping
import logging

from buildkernel.core.config import DictConfigSource, KernelSettings, get_config_manager, reset_config_manager
from buildkernel.core.di import Container, get_container, reset_container
from buildkernel.core.error_boundary import ErrorBoundary, reset_error_boundary, set_error_boundary
from buildkernel.core.events import EventBus, reset_event_bus, set_event_bus
from buildkernel.core.health import (
    ModuleHealthChecker,
    register_adapter_health_checks,
    reset_module_health_checker,
    set_module_health_checker,
)
from buildkernel.core.hooks import HookRegistry, reset_hook_registry, set_hook_registry
from buildkernel.core.lazy import (
    AdapterFactory,
    LazyAdapterRegistry,
    reset_lazy_adapter_registry,
    set_lazy_adapter_registry,
)
from buildkernel.core.logging import configure_logging
from buildkernel.core.wiring import WiringResult, wire_feature_hooks

logger = logging.getLogger(__name__)

# Names under which the kernel services are registered in the container
SETTINGS = "settings"
EVENT_BUS = "event_bus"
HOOK_REGISTRY = "hook_registry"
LAZY_ADAPTER_REGISTRY = "lazy_adapter_registry"
ERROR_BOUNDARY = "error_boundary"
HEALTH_CHECKER = "health_checker"


@dataclass
class Kernel:
    """The services of an initialized kernel."""

    settings: KernelSettings
    container: Container
    event_bus: EventBus
    hook_registry: HookRegistry
    adapter_registry: LazyAdapterRegistry
    error_boundary: ErrorBoundary
    health_checker: ModuleHealthChecker
    wiring: WiringResult


def initialize_kernel(
    config: Optional[Dict[str, Any]] = None,
    adapter_factories: Optional[Mapping[str, AdapterFactory]] = None,
    setup_logging: bool = False
) -> Kernel:
    """Initialize the buildkernel.

    The created services replace the global ones, so get_event_bus() and the
    other accessors return the kernel's instances afterwards.

    Args:
        config: Optional configuration, taking precedence over environment and files
        adapter_factories: Factories of the feature modules, keyed by module name
        setup_logging: Whether to configure the root logger from the settings

    Returns:
        The initialized kernel
    """
    logger.info("Initializing buildkernel")

    config_manager = get_config_manager()
    if config:
        config_manager.add_source(DictConfigSource(config), priority=200)  # Higher priority than default sources

    settings = config_manager.get_typed_config(KernelSettings)

    if setup_logging:
        configure_logging(
            level=logging.getLevelName(settings.log_level.upper()),
            json_format=settings.log_json
        )

    error_boundary = ErrorBoundary(max_errors_per_module=settings.error_max_errors_per_module)
    event_bus = EventBus(
        enable_history=settings.event_history_enabled,
        max_history_size=settings.event_max_history_size,
        validate_payloads=settings.event_validate_payloads
    )
    hook_registry = HookRegistry(default_priority=settings.hook_default_priority)
    adapter_registry = LazyAdapterRegistry(error_boundary=error_boundary)
    health_checker = ModuleHealthChecker()

    for module_name, factory in (adapter_factories or {}).items():
        adapter_registry.register(module_name, factory)

    wiring = wire_feature_hooks(hook_registry, adapter_registry, settings.enabled_modules)
    register_adapter_health_checks(health_checker, adapter_registry, settings.enabled_modules)

    set_error_boundary(error_boundary)
    set_event_bus(event_bus)
    set_hook_registry(hook_registry)
    set_lazy_adapter_registry(adapter_registry)
    set_module_health_checker(health_checker)

    container = get_container()
    container.register_instance(SETTINGS, settings)
    container.register_instance(EVENT_BUS, event_bus)
    container.register_instance(HOOK_REGISTRY, hook_registry)
    container.register_instance(LAZY_ADAPTER_REGISTRY, adapter_registry)
    container.register_instance(ERROR_BOUNDARY, error_boundary)
    container.register_instance(HEALTH_CHECKER, health_checker)

    logger.info("Buildkernel initialized")

    return Kernel(
        settings=settings,
        container=container,
        event_bus=event_bus,
        hook_registry=hook_registry,
        adapter_registry=adapter_registry,
        error_boundary=error_boundary,
        health_checker=health_checker,
        wiring=wiring
    )


def shutdown_kernel() -> None:
    """Shutdown the buildkernel.

    Every global service and the configuration manager are discarded, so the
    next initialization starts from scratch.
    """
    logger.info("Shutting down buildkernel")

    reset_event_bus()
    reset_hook_registry()
    reset_lazy_adapter_registry()
    reset_error_boundary()
    reset_module_health_checker()
    reset_container()
    reset_config_manager()

    logger.info("Buildkernel shut down")


@asynccontextmanager
async def kernel_lifespan(
    config: Optional[Dict[str, Any]] = None,
    adapter_factories: Optional[Mapping[str, AdapterFactory]] = None
):
    """Manage the lifecycle of the buildkernel.

    This context manager initializes the kernel and shuts it down when done.
    """
    try:
        yield initialize_kernel(config, adapter_factories)
    finally:
        shutdown_kernel()
