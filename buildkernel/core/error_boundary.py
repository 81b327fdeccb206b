"""
Error boundary for lifecycle adapters.

This module wraps the handlers of a feature module so that a failing handler
is recorded and logged instead of raised, and keeps per-module error
statistics for diagnostics.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Callable, Deque
import inspect
import logging
import time

from buildkernel.core.interfaces.lifecycle import (
    HookPhase,
    LifecycleHandler,
    LifecycleHandlers,
    get_phase_handler,
)

logger = logging.getLogger(__name__)


@dataclass
class AdapterErrorInfo:
    """Error captured from a failing adapter handler."""

    module_name: str
    phase: str
    error: Exception
    timestamp: float = field(default_factory=time.time)
    context: Any = None


@dataclass
class ModuleErrorStats:
    """Error statistics of one module."""

    module_name: str
    error_count: int = 0
    last_error: Optional[AdapterErrorInfo] = None
    errors_by_phase: Dict[str, int] = field(default_factory=dict)

    def copy(self) -> "ModuleErrorStats":
        return ModuleErrorStats(
            module_name=self.module_name,
            error_count=self.error_count,
            last_error=self.last_error,
            errors_by_phase=dict(self.errors_by_phase)
        )


class ErrorBoundary:
    """Records failures of wrapped adapter handlers."""

    def __init__(
        self,
        enable_logging: bool = True,
        max_errors_per_module: int = 100,
        on_error: Optional[Callable[[AdapterErrorInfo], None]] = None
    ):
        """Initialize the error boundary.

        Args:
            enable_logging: Whether to log captured errors
            max_errors_per_module: Number of errors kept in each module's history
            on_error: Callback invoked with every captured error
        """
        self.enable_logging = enable_logging
        self.max_errors_per_module = max_errors_per_module
        self.on_error = on_error

        self._stats: Dict[str, ModuleErrorStats] = {}
        self._history: Dict[str, Deque[AdapterErrorInfo]] = {}

    def wrap_handler(
        self,
        handler: Optional[LifecycleHandler],
        module_name: str,
        phase: str
    ) -> Optional[LifecycleHandler]:
        """Wrap a single handler.

        Args:
            handler: The handler to wrap, or None
            module_name: Name of the module for error tracking
            phase: Name of the phase for error tracking

        Returns:
            The wrapped handler, or None if no handler was given
        """
        if handler is None:
            return None

        async def wrapped(context: Any) -> None:
            try:
                result = handler(context)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                self.record_error(AdapterErrorInfo(
                    module_name=module_name,
                    phase=phase,
                    error=e,
                    context=context
                ))

        return wrapped

    def wrap_adapter(self, handlers: Any, module_name: str) -> LifecycleHandlers:
        """Wrap every handler of a handler set.

        Args:
            handlers: The handler set to wrap
            module_name: Name of the module for error tracking

        Returns:
            A handler set whose handlers never raise
        """
        return LifecycleHandlers(**{
            phase.value: self.wrap_handler(get_phase_handler(handlers, phase), module_name, phase.value)
            for phase in HookPhase
        })

    def record_error(self, error_info: AdapterErrorInfo) -> None:
        """Record a captured error.

        Args:
            error_info: The captured error
        """
        stats = self._stats.get(error_info.module_name)
        if stats is None:
            stats = ModuleErrorStats(module_name=error_info.module_name)
            self._stats[error_info.module_name] = stats

        stats.error_count += 1
        stats.last_error = error_info
        stats.errors_by_phase[error_info.phase] = stats.errors_by_phase.get(error_info.phase, 0) + 1

        history = self._history.get(error_info.module_name)
        if history is None:
            history = deque(maxlen=self.max_errors_per_module)
            self._history[error_info.module_name] = history
        history.append(error_info)

        if self.enable_logging:
            logger.error(
                f"{error_info.module_name}.{error_info.phase} failed: {str(error_info.error)}"
            )

        if self.on_error is not None:
            try:
                self.on_error(error_info)
            except Exception as e:
                logger.warning(f"Error boundary callback failed: {str(e)}")

    def get_module_error_stats(self, module_name: str) -> Optional[ModuleErrorStats]:
        """Get a copy of a module's error statistics, or None if it has no errors."""
        stats = self._stats.get(module_name)
        return stats.copy() if stats is not None else None

    def get_all_error_stats(self) -> Dict[str, ModuleErrorStats]:
        return {name: stats.copy() for name, stats in self._stats.items()}

    def get_module_error_history(self, module_name: str) -> List[AdapterErrorInfo]:
        """Get a module's captured errors, most recent last."""
        return list(self._history.get(module_name, ()))

    def get_total_error_count(self) -> int:
        return sum(stats.error_count for stats in self._stats.values())

    def has_module_errors(self, module_name: str) -> bool:
        stats = self._stats.get(module_name)
        return stats is not None and stats.error_count > 0

    def get_modules_with_errors(self) -> List[str]:
        return [name for name, stats in self._stats.items() if stats.error_count > 0]

    def clear(self) -> None:
        """Clear all error tracking data."""
        self._stats.clear()
        self._history.clear()

    def clear_module(self, module_name: str) -> None:
        """Clear the error tracking data of one module."""
        self._stats.pop(module_name, None)
        self._history.pop(module_name, None)


# Global error boundary, created on first use
_error_boundary: Optional[ErrorBoundary] = None


def get_error_boundary() -> ErrorBoundary:
    """Get the global error boundary.

    Returns:
        The global error boundary
    """
    global _error_boundary
    if _error_boundary is None:
        _error_boundary = ErrorBoundary()
    return _error_boundary


def reset_error_boundary() -> None:
    """Discard the global error boundary."""
    global _error_boundary
    _error_boundary = None


def set_error_boundary(error_boundary: ErrorBoundary) -> None:
    """Install an error boundary as the global error boundary."""
    global _error_boundary
    _error_boundary = error_boundary


def wrap_adapter_with_error_boundary(handlers: Any, module_name: str) -> LifecycleHandlers:
    """Wrap a handler set with the global error boundary."""
    return get_error_boundary().wrap_adapter(handlers, module_name)
