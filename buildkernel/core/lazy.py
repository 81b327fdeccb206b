"""
Lazy module adapters for the buildkernel.

A LazyAdapter stands in for a feature module from the moment the module is
declared, but only builds the module the first time one of its lifecycle
handlers is called. A successful build is cached; a failed build is
remembered until reset() so a broken module is not rebuilt on every call.
"""

from enum import Enum
from typing import Dict, Any, List, Optional, Callable
import asyncio
import inspect
import logging

from buildkernel.core.interfaces.lifecycle import (
    HookPhase,
    LifecycleHandler,
    LifecycleHandlers,
    get_phase_handler,
)
from buildkernel.core.error_boundary import AdapterErrorInfo, ErrorBoundary
from buildkernel.core.logging import logging_context

logger = logging.getLogger(__name__)

# Zero-argument function producing a handler set; may be a coroutine function
AdapterFactory = Callable[[], Any]


class AdapterState(str, Enum):
    """Initialization state of a lazy adapter."""
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


class LazyAdapter:
    """Defers construction of a feature module until its first handler call."""

    def __init__(
        self,
        module_name: str,
        factory: AdapterFactory,
        error_boundary: Optional[ErrorBoundary] = None
    ):
        """Initialize the adapter. The factory is not called.

        Args:
            module_name: Name of the feature module
            factory: Zero-argument function producing the module's handler set
            error_boundary: Optional boundary that records initialization and handler failures
        """
        self._module_name = module_name
        self._factory = factory
        self._error_boundary = error_boundary
        self._state = AdapterState.UNINITIALIZED
        self._instance: Any = None
        self._error: Optional[Exception] = None
        self._lock: Optional[asyncio.Lock] = None
        # Bumped by reset() so a build started before it is discarded
        self._generation = 0
        self._handlers = LifecycleHandlers(**{
            phase.value: self._make_handler(phase) for phase in HookPhase
        })

    @property
    def module_name(self) -> str:
        """Get the name of the feature module."""
        return self._module_name

    @property
    def state(self) -> AdapterState:
        """Get the initialization state of the adapter."""
        return self._state

    @property
    def last_error(self) -> Optional[Exception]:
        """Get the error of the failed initialization, if any."""
        return self._error

    def is_initialized(self) -> bool:
        """Check whether the module has been built successfully."""
        return self._state == AdapterState.READY

    def get_handlers(self) -> LifecycleHandlers:
        """Get the lazy-bound handler set.

        The same handler set is returned on every call and getting it never
        builds the module.

        Returns:
            A handler set with one function per lifecycle phase
        """
        return self._handlers

    def reset(self) -> None:
        """Forget the built module or the failure, so the next call builds again."""
        self._generation += 1
        self._state = AdapterState.UNINITIALIZED
        self._instance = None
        self._error = None
        logger.debug(f"Reset lazy adapter '{self._module_name}'")

    def _make_handler(self, phase: HookPhase) -> LifecycleHandler:
        async def handler(context: Any) -> None:
            await self._invoke(phase, context)

        handler.__name__ = f"{self._module_name}.{phase.value}"
        return handler

    async def _ensure_initialized(self) -> None:
        if self._state != AdapterState.UNINITIALIZED:
            return

        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            # Another call may have finished initialization while we waited
            if self._state != AdapterState.UNINITIALIZED:
                return

            generation = self._generation
            try:
                instance = self._factory()
                if inspect.isawaitable(instance):
                    instance = await instance
            except Exception as e:
                if generation != self._generation:
                    logger.debug(f"Discarded failed build of '{self._module_name}' after reset")
                    return
                self._state = AdapterState.FAILED
                self._error = e
                logger.error(
                    f"Failed to initialize module '{self._module_name}': {str(e)}",
                    exc_info=True
                )
                self._record_error("initialize", e, None)
                return

            if generation != self._generation:
                logger.debug(f"Discarded build of '{self._module_name}' after reset")
                return

            self._instance = instance
            self._state = AdapterState.READY
            logger.info(f"Initialized module '{self._module_name}'")

    async def _invoke(self, phase: HookPhase, context: Any) -> None:
        await self._ensure_initialized()

        if self._state != AdapterState.READY:
            return

        real_handler = get_phase_handler(self._instance, phase)
        if real_handler is None:
            return

        with logging_context(module_name=self._module_name, phase=phase.value):
            try:
                result = real_handler(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(
                    f"Handler {phase.value} of module '{self._module_name}' failed: {str(e)}",
                    exc_info=True
                )
                self._record_error(phase.value, e, context)

    def _record_error(self, phase: str, error: Exception, context: Any) -> None:
        if self._error_boundary is None:
            return
        self._error_boundary.record_error(AdapterErrorInfo(
            module_name=self._module_name,
            phase=phase,
            error=error,
            context=context
        ))


class LazyAdapterRegistry:
    """Registry of lazy adapters keyed by module name."""

    def __init__(self, error_boundary: Optional[ErrorBoundary] = None):
        """Initialize the lazy adapter registry.

        Args:
            error_boundary: Optional boundary handed to every adapter the registry creates
        """
        self.error_boundary = error_boundary
        self._adapters: Dict[str, LazyAdapter] = {}

    def register(self, module_name: str, factory: AdapterFactory) -> LazyAdapter:
        """Register a module, replacing any adapter already registered under its name.

        Args:
            module_name: Name of the feature module
            factory: Zero-argument function producing the module's handler set

        Returns:
            The new adapter
        """
        adapter = LazyAdapter(module_name, factory, error_boundary=self.error_boundary)
        self._adapters[module_name] = adapter
        logger.debug(f"Registered lazy adapter: {module_name}")
        return adapter

    def get_adapter(self, module_name: str) -> Optional[LazyAdapter]:
        """Get the adapter of a module, or None if the module is not registered."""
        return self._adapters.get(module_name)

    def get_all_modules(self) -> List[str]:
        """Get the names of every registered module."""
        return list(self._adapters)

    def get_initialized_modules(self) -> List[str]:
        """Get the modules that were built successfully."""
        return [name for name, adapter in self._adapters.items() if adapter.is_initialized()]

    def get_uninitialized_modules(self) -> List[str]:
        """Get the modules that are not built, including the failed ones."""
        return [name for name, adapter in self._adapters.items() if not adapter.is_initialized()]

    def get_failed_modules(self) -> List[str]:
        """Get the modules whose build failed."""
        return [
            name for name, adapter in self._adapters.items()
            if adapter.state == AdapterState.FAILED
        ]

    def reset_all(self) -> None:
        """Reset every adapter, keeping the registrations."""
        for adapter in self._adapters.values():
            adapter.reset()

    def clear(self) -> None:
        """Remove every adapter."""
        self._adapters.clear()


# Global lazy adapter registry, created on first use
_lazy_adapter_registry: Optional[LazyAdapterRegistry] = None


def get_lazy_adapter_registry() -> LazyAdapterRegistry:
    """Get the global lazy adapter registry.

    Returns:
        The global lazy adapter registry
    """
    global _lazy_adapter_registry
    if _lazy_adapter_registry is None:
        _lazy_adapter_registry = LazyAdapterRegistry()
    return _lazy_adapter_registry


def reset_lazy_adapter_registry() -> None:
    """Discard the global registry so the next accessor call builds a new one."""
    global _lazy_adapter_registry
    _lazy_adapter_registry = None


def set_lazy_adapter_registry(adapter_registry: LazyAdapterRegistry) -> None:
    """Install a lazy adapter registry as the global registry."""
    global _lazy_adapter_registry
    _lazy_adapter_registry = adapter_registry
