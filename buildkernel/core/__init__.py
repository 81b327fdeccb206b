"""
Core module for the buildkernel.

This module provides the integration kernel of the build orchestrator, including:
- Event bus for announcing build facts to feature modules
- Lifecycle hooks run at the milestones of a build
- Lazy adapters that build feature modules on first use
- Dependency injection
- Configuration management
"""

from buildkernel.core.interfaces.events import EventName, EventPayload, EVENT_PAYLOAD_MODELS
from buildkernel.core.interfaces.lifecycle import (
    HookPhase,
    BuildContext,
    TaskContext,
    TaskResult,
    HandoffPayload,
    HandoffContext,
    BuildResult,
    LifecycleHandlers,
    validate_context,
)
from buildkernel.core.events import EventBus, EventPayloadError, HistoryEntry, get_event_bus, reset_event_bus
from buildkernel.core.hooks import DEFAULT_HOOK_PRIORITY, HookRegistry, LifecycleHook, get_hook_registry, reset_hook_registry
from buildkernel.core.lazy import (
    AdapterState,
    LazyAdapter,
    LazyAdapterRegistry,
    get_lazy_adapter_registry,
    reset_lazy_adapter_registry,
)
from buildkernel.core.di import Container, Lifetime, ServiceNotRegisteredError, inject, get_container, reset_container
from buildkernel.core.error_boundary import (
    AdapterErrorInfo,
    ErrorBoundary,
    ModuleErrorStats,
    get_error_boundary,
    reset_error_boundary,
    wrap_adapter_with_error_boundary,
)
from buildkernel.core.wiring import DEFAULT_FEATURE_HOOKS, FeatureHookConfig, WiringResult, wire_feature_hooks, get_wiring_summary
from buildkernel.core.health import (
    ModuleStatus,
    HealthCheckResult,
    ModuleHealth,
    HealthReport,
    ModuleHealthChecker,
    register_adapter_health_checks,
    format_health_report,
    get_module_health_checker,
    reset_module_health_checker,
)
from buildkernel.core.config import ConfigSource, EnvConfigSource, FileConfigSource, DictConfigSource, ConfigManager, KernelSettings, get_config_manager, get_config, get_config_section, get_typed_config
from buildkernel.core.bootstrap import Kernel, initialize_kernel, shutdown_kernel, kernel_lifespan

__all__ = [
    # Event catalog and lifecycle contexts
    'EventName',
    'EventPayload',
    'EVENT_PAYLOAD_MODELS',
    'HookPhase',
    'BuildContext',
    'TaskContext',
    'TaskResult',
    'HandoffPayload',
    'HandoffContext',
    'BuildResult',
    'LifecycleHandlers',
    'validate_context',

    # Event bus
    'EventBus',
    'EventPayloadError',
    'HistoryEntry',
    'get_event_bus',
    'reset_event_bus',

    # Lifecycle hooks
    'DEFAULT_HOOK_PRIORITY',
    'HookRegistry',
    'LifecycleHook',
    'get_hook_registry',
    'reset_hook_registry',

    # Lazy adapters
    'AdapterState',
    'LazyAdapter',
    'LazyAdapterRegistry',
    'get_lazy_adapter_registry',
    'reset_lazy_adapter_registry',

    # Dependency injection
    'Container',
    'Lifetime',
    'ServiceNotRegisteredError',
    'inject',
    'get_container',
    'reset_container',

    # Error boundary
    'AdapterErrorInfo',
    'ErrorBoundary',
    'ModuleErrorStats',
    'get_error_boundary',
    'reset_error_boundary',
    'wrap_adapter_with_error_boundary',

    # Feature wiring
    'DEFAULT_FEATURE_HOOKS',
    'FeatureHookConfig',
    'WiringResult',
    'wire_feature_hooks',
    'get_wiring_summary',

    # Module health
    'ModuleStatus',
    'HealthCheckResult',
    'ModuleHealth',
    'HealthReport',
    'ModuleHealthChecker',
    'register_adapter_health_checks',
    'format_health_report',
    'get_module_health_checker',
    'reset_module_health_checker',

    # Configuration
    'ConfigSource',
    'EnvConfigSource',
    'FileConfigSource',
    'DictConfigSource',
    'ConfigManager',
    'KernelSettings',
    'get_config_manager',
    'get_config',
    'get_config_section',
    'get_typed_config',

    # Bootstrap
    'Kernel',
    'initialize_kernel',
    'shutdown_kernel',
    'kernel_lifespan',
]
