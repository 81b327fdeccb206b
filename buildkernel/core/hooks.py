"""
Lifecycle hooks for the buildkernel.

Feature modules register handlers for the six milestones of a build. The
orchestrator calls execute_phase() at each milestone; handlers run one at a
time in ascending priority order, and a failing handler never stops the
others or the build.
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Union
import inspect
import itertools
import logging
import uuid

from buildkernel.core.interfaces.lifecycle import HookPhase, LifecycleHandler, to_phase
from buildkernel.core.logging import logging_context

logger = logging.getLogger(__name__)

# Priority used when a hook is registered without one
DEFAULT_HOOK_PRIORITY = 100


@dataclass(frozen=True)
class LifecycleHook:
    """A handler registered for one lifecycle phase."""

    id: str
    phase: HookPhase
    module_name: str
    priority: int
    handler: LifecycleHandler
    sequence: int


class HookRegistry:
    """Priority-ordered registry of lifecycle hooks."""

    def __init__(self, default_priority: int = DEFAULT_HOOK_PRIORITY):
        """Initialize the hook registry.

        Args:
            default_priority: Priority of hooks registered without one
        """
        self.default_priority = default_priority
        self._hooks: Dict[HookPhase, List[LifecycleHook]] = {phase: [] for phase in HookPhase}
        self._sequence = itertools.count()

    def register(
        self,
        phase: Union[str, HookPhase],
        module_name: str,
        handler: LifecycleHandler,
        priority: Optional[int] = None
    ) -> str:
        """Register a hook.

        Args:
            phase: The lifecycle phase
            module_name: Name of the module that owns the hook
            handler: Function called with the phase's context; may be a coroutine function
            priority: Lower priorities run first; ties run in registration order

        Returns:
            The id of the new hook

        Raises:
            ValueError: If the phase is unknown
        """
        hook = LifecycleHook(
            id=uuid.uuid4().hex,
            phase=to_phase(phase),
            module_name=module_name,
            priority=self.default_priority if priority is None else priority,
            handler=handler,
            sequence=next(self._sequence)
        )
        self._hooks[hook.phase].append(hook)

        logger.debug(
            f"Registered hook {hook.id} for {hook.phase.value} "
            f"(module={module_name}, priority={hook.priority})"
        )
        return hook.id

    def unregister(self, hook_id: str) -> bool:
        """Unregister a hook.

        Args:
            hook_id: The id returned by register()

        Returns:
            True if the hook was registered, False otherwise
        """
        for phase, hooks in self._hooks.items():
            for hook in hooks:
                if hook.id == hook_id:
                    hooks.remove(hook)
                    logger.debug(f"Unregistered hook {hook_id} from {phase.value}")
                    return True
        return False

    def unregister_module(self, module_name: str) -> int:
        """Unregister every hook owned by a module.

        Returns:
            The number of hooks removed
        """
        removed = 0
        for phase in HookPhase:
            kept = [hook for hook in self._hooks[phase] if hook.module_name != module_name]
            removed += len(self._hooks[phase]) - len(kept)
            self._hooks[phase] = kept
        return removed

    def get_hooks_for_phase(self, phase: Union[str, HookPhase]) -> List[LifecycleHook]:
        """Get the hooks of a phase in execution order.

        Args:
            phase: The lifecycle phase

        Returns:
            The hooks sorted by priority, ties in registration order
        """
        return sorted(self._hooks[to_phase(phase)], key=lambda hook: (hook.priority, hook.sequence))

    def get_all_hooks(self) -> List[LifecycleHook]:
        """Get all hooks in registration order."""
        hooks = [hook for phase_hooks in self._hooks.values() for hook in phase_hooks]
        return sorted(hooks, key=lambda hook: hook.sequence)

    def get_registered_modules(self) -> List[str]:
        """Get the names of modules with at least one hook, in first-registration order."""
        modules: Dict[str, None] = {}
        for hook in self.get_all_hooks():
            modules.setdefault(hook.module_name, None)
        return list(modules)

    def get_hook_count(self) -> int:
        """Get the total number of registered hooks."""
        return sum(len(hooks) for hooks in self._hooks.values())

    def clear(self) -> None:
        """Remove all hooks."""
        for phase in HookPhase:
            self._hooks[phase] = []

    async def execute_phase(self, phase: Union[str, HookPhase], context: Any) -> None:
        """Execute every hook of a phase.

        Each hook is awaited before the next one starts. A hook that raises is
        logged with its module and phase, and execution moves on to the next
        hook.

        Args:
            phase: The lifecycle phase
            context: The context passed to every hook
        """
        phase = to_phase(phase)
        hooks = self.get_hooks_for_phase(phase)

        if not hooks:
            logger.debug(f"No hooks registered for {phase.value}")
            return

        for hook in hooks:
            with logging_context(module_name=hook.module_name, phase=phase.value):
                try:
                    result = hook.handler(context)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(
                        f"Hook of module '{hook.module_name}' failed in {phase.value}: {str(e)}",
                        exc_info=True
                    )


# Global hook registry, created on first use
_hook_registry: Optional[HookRegistry] = None


def get_hook_registry() -> HookRegistry:
    """Get the global hook registry.

    Returns:
        The global hook registry
    """
    global _hook_registry
    if _hook_registry is None:
        _hook_registry = HookRegistry()
    return _hook_registry


def reset_hook_registry() -> None:
    """Discard the global hook registry so the next get_hook_registry() builds a new one."""
    global _hook_registry
    _hook_registry = None


def set_hook_registry(hook_registry: HookRegistry) -> None:
    """Install a hook registry as the global hook registry."""
    global _hook_registry
    _hook_registry = hook_registry
