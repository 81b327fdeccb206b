"""
Feature wiring for the buildkernel.

This module holds the catalog of known feature modules, the lifecycle phases
each of them takes part in and the priority of its hooks, and connects the
lazy adapters of enabled modules to the hook registry.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Mapping
import logging

from buildkernel.core.error_boundary import ErrorBoundary
from buildkernel.core.hooks import HookRegistry
from buildkernel.core.interfaces.lifecycle import HookPhase
from buildkernel.core.lazy import LazyAdapterRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureHookConfig:
    """Phases and hook priority of a feature module."""

    module_name: str
    phases: Tuple[HookPhase, ...]
    priority: int


@dataclass
class WiringResult:
    """Outcome of wiring feature modules into a hook registry."""

    wired_count: int = 0
    skipped_count: int = 0
    total_hooks: int = 0
    features_wired: List[str] = field(default_factory=list)
    missing_adapters: List[str] = field(default_factory=list)


def _feature(module_name: str, priority: int, *phases: HookPhase) -> Tuple[str, FeatureHookConfig]:
    return module_name, FeatureHookConfig(module_name=module_name, phases=tuple(phases), priority=priority)


_BB = HookPhase.BEFORE_BUILD
_BT = HookPhase.BEFORE_TASK
_AT = HookPhase.AFTER_TASK
_TE = HookPhase.TASK_ERROR
_HO = HookPhase.HANDOFF
_BC = HookPhase.BUILD_COMPLETE

# Known feature modules, keyed by module name
DEFAULT_FEATURE_HOOKS: Dict[str, FeatureHookConfig] = dict([
    _feature("portfolio", 50, _BB, _BC),
    _feature("agent-memory", 45, _BB, _AT),
    _feature("generative-ui", 60, _BB, _AT),
    _feature("autonomous-testing", 40, _AT, _TE, _BC),
    _feature("wellbeing", 35, _BT, _AT, _BC),
    _feature("advanced-recovery", 15, _TE),
    _feature("advanced-init", 5, _BB),
    _feature("code-review", 70, _AT, _BC),
    _feature("migration", 80, _BB, _AT),
    _feature("debug", 20, _TE),
    _feature("accessibility", 55, _AT, _BC),
    _feature("debt", 90, _BB, _BC),
    _feature("dependency-management", 100, _BB),
    _feature("production-feedback", 110, _BC),
    _feature("health", 30, _BB, _BC),
    _feature("environment", 10, _BB),
    _feature("orchestration", 25, _HO, _BT),
    _feature("model-routing", 42, _BB, _BT),
    _feature("perplexity", 65, _BT, _AT),
    _feature("workflow-engine", 38, _BB, _AT, _BC),
    _feature("infinite-memory", 48, _AT, _BC),
    _feature("cinematic-observability", 8, _BB, _BT, _AT, _TE, _HO, _BC),
    _feature("ai-model-database", 44, _BB, _BT),
    _feature("crdt-collaboration", 52, _BB, _AT, _BC),
])


def _enabled_names(enabled_modules: Mapping[str, bool]) -> List[str]:
    return [name for name, enabled in enabled_modules.items() if enabled]


def wire_feature_hooks(
    hook_registry: HookRegistry,
    adapter_registry: LazyAdapterRegistry,
    enabled_modules: Mapping[str, bool],
    hook_configs: Optional[Mapping[str, FeatureHookConfig]] = None,
    error_boundary: Optional[ErrorBoundary] = None
) -> WiringResult:
    """Register the lazy handlers of enabled feature modules as lifecycle hooks.

    A module is wired when it is enabled, has a hook config and has a
    registered lazy adapter. One hook is registered per configured phase, at
    the configured priority. Enabled modules without a config are skipped;
    enabled modules with a config but no adapter are skipped and reported in
    missing_adapters.

    Args:
        hook_registry: The registry to register hooks in
        adapter_registry: The registry holding the modules' lazy adapters
        enabled_modules: Mapping of module name to whether it is enabled
        hook_configs: Hook configs keyed by module name, DEFAULT_FEATURE_HOOKS if None
        error_boundary: Optional boundary wrapping every registered handler

    Returns:
        The wiring result
    """
    configs = DEFAULT_FEATURE_HOOKS if hook_configs is None else hook_configs
    result = WiringResult()

    for module_name in _enabled_names(enabled_modules):
        config = configs.get(module_name)
        if config is None:
            logger.warning(f"No hook config for enabled module '{module_name}', skipping")
            result.skipped_count += 1
            continue

        adapter = adapter_registry.get_adapter(module_name)
        if adapter is None:
            logger.warning(f"No lazy adapter registered for enabled module '{module_name}', skipping")
            result.skipped_count += 1
            result.missing_adapters.append(module_name)
            continue

        handlers = adapter.get_handlers()
        if error_boundary is not None:
            handlers = error_boundary.wrap_adapter(handlers, module_name)

        for phase in config.phases:
            handler = handlers.get(phase)
            if handler is None:
                continue
            hook_registry.register(phase, config.module_name, handler, priority=config.priority)
            result.total_hooks += 1

        result.wired_count += 1
        result.features_wired.append(module_name)

    logger.info(
        f"Wired {result.wired_count} feature modules with {result.total_hooks} hooks "
        f"({result.skipped_count} skipped)"
    )
    return result


def get_wiring_summary(
    enabled_modules: Mapping[str, bool],
    hook_configs: Optional[Mapping[str, FeatureHookConfig]] = None
) -> Dict[str, List[str]]:
    """Describe which modules wiring would wire, without registering anything.

    Args:
        enabled_modules: Mapping of module name to whether it is enabled
        hook_configs: Hook configs keyed by module name, DEFAULT_FEATURE_HOOKS if None

    Returns:
        A dictionary with the keys "would_wire" (enabled modules with a config),
        "would_skip" (known modules that are not enabled) and "unknown"
        (enabled modules without a config)
    """
    configs = DEFAULT_FEATURE_HOOKS if hook_configs is None else hook_configs
    enabled = set(_enabled_names(enabled_modules))

    summary: Dict[str, List[str]] = {"would_wire": [], "would_skip": [], "unknown": []}
    for module_name in configs:
        key = "would_wire" if module_name in enabled else "would_skip"
        summary[key].append(module_name)

    summary["unknown"] = [name for name in _enabled_names(enabled_modules) if name not in configs]
    return summary
