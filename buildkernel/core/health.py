"""
Module health checks for the buildkernel.

Each feature module can register a check that reports whether it is usable.
check_all() runs every check one after the other and aggregates the results
into a report; a check that raises is reported as unhealthy.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional, Callable, Mapping
import inspect
import logging
import time

from buildkernel.core.lazy import AdapterState, LazyAdapter, LazyAdapterRegistry

logger = logging.getLogger(__name__)


class ModuleStatus(str, Enum):
    """Health status of a module."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"
    DISABLED = "disabled"


@dataclass
class HealthCheckResult:
    """Result returned by a health check."""

    status: ModuleStatus
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ModuleHealth:
    """Health of one module, as measured by its check."""

    module_name: str
    status: ModuleStatus
    message: str
    latency_ms: float
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class HealthReport:
    """Aggregated health of every checked module."""

    modules: List[ModuleHealth]
    total_modules: int
    healthy: int
    degraded: int
    unhealthy: int
    disabled: int
    overall_status: ModuleStatus
    timestamp: float = field(default_factory=time.time)


# A check may be synchronous or a coroutine function
HealthCheck = Callable[[], Any]


class ModuleHealthChecker:
    """Runs registered module health checks."""

    def __init__(self):
        """Initialize the health checker."""
        self._checks: Dict[str, HealthCheck] = {}
        self._last_report: Optional[HealthReport] = None

    def register_check(self, module_name: str, check: HealthCheck) -> None:
        """Register the check of a module, replacing any existing one.

        Args:
            module_name: Name of the module
            check: Function returning a HealthCheckResult
        """
        self._checks[module_name] = check
        logger.debug(f"Registered health check: {module_name}")

    def unregister_check(self, module_name: str) -> bool:
        """Unregister the check of a module.

        Returns:
            True if a check was registered, False otherwise
        """
        return self._checks.pop(module_name, None) is not None

    def get_registered_modules(self) -> List[str]:
        return list(self._checks)

    async def check_module(self, module_name: str) -> Optional[ModuleHealth]:
        """Run the check of one module.

        Args:
            module_name: Name of the module

        Returns:
            The module's health, or None if it has no check
        """
        check = self._checks.get(module_name)
        if check is None:
            return None

        start = time.perf_counter()
        try:
            result = check()
            if inspect.isawaitable(result):
                result = await result

            # A malformed result counts as a failed check
            return ModuleHealth(
                module_name=module_name,
                status=ModuleStatus(result.status),
                message=result.message,
                latency_ms=(time.perf_counter() - start) * 1000,
                details=dict(result.details)
            )
        except Exception as e:
            logger.error(f"Health check of module '{module_name}' failed: {str(e)}", exc_info=True)
            return ModuleHealth(
                module_name=module_name,
                status=ModuleStatus.UNHEALTHY,
                message=str(e),
                latency_ms=(time.perf_counter() - start) * 1000
            )

    async def check_all(self) -> HealthReport:
        """Run every registered check and aggregate the results.

        Returns:
            The health report, also kept as the last report
        """
        modules = []
        for module_name in list(self._checks):
            health = await self.check_module(module_name)
            if health is not None:
                modules.append(health)

        counts = {status: 0 for status in ModuleStatus}
        for health in modules:
            counts[health.status] += 1

        if counts[ModuleStatus.UNHEALTHY]:
            overall = ModuleStatus.UNHEALTHY
        elif counts[ModuleStatus.DEGRADED]:
            overall = ModuleStatus.DEGRADED
        else:
            overall = ModuleStatus.HEALTHY

        report = HealthReport(
            modules=modules,
            total_modules=len(modules),
            healthy=counts[ModuleStatus.HEALTHY],
            degraded=counts[ModuleStatus.DEGRADED],
            unhealthy=counts[ModuleStatus.UNHEALTHY],
            disabled=counts[ModuleStatus.DISABLED],
            overall_status=overall
        )
        self._last_report = report
        return report

    def get_last_report(self) -> Optional[HealthReport]:
        return self._last_report

    def clear(self) -> None:
        """Remove every check and the last report."""
        self._checks.clear()
        self._last_report = None


def _adapter_check(adapter: LazyAdapter, enabled: bool) -> HealthCheck:
    def check() -> HealthCheckResult:
        if not enabled:
            return HealthCheckResult(status=ModuleStatus.DISABLED, message="Module is disabled")

        if adapter.state == AdapterState.FAILED:
            return HealthCheckResult(
                status=ModuleStatus.UNHEALTHY,
                message=f"Initialization failed: {str(adapter.last_error)}",
                details={"state": adapter.state.value}
            )

        message = "Initialized" if adapter.state == AdapterState.READY else "Not yet initialized"
        return HealthCheckResult(
            status=ModuleStatus.HEALTHY,
            message=message,
            details={"state": adapter.state.value}
        )

    return check


def register_adapter_health_checks(
    checker: ModuleHealthChecker,
    adapter_registry: LazyAdapterRegistry,
    enabled_modules: Mapping[str, bool]
) -> int:
    """Register one check per lazy adapter, derived from the adapter's state.

    Args:
        checker: The health checker to register the checks with
        adapter_registry: The registry holding the adapters
        enabled_modules: Mapping of module name to whether it is enabled

    Returns:
        The number of checks registered
    """
    count = 0
    for module_name in adapter_registry.get_all_modules():
        adapter = adapter_registry.get_adapter(module_name)
        checker.register_check(
            module_name, _adapter_check(adapter, bool(enabled_modules.get(module_name, False)))
        )
        count += 1
    return count


_STATUS_MARKERS = {
    ModuleStatus.HEALTHY: "[OK]",
    ModuleStatus.DEGRADED: "[WARN]",
    ModuleStatus.UNHEALTHY: "[FAIL]",
    ModuleStatus.DISABLED: "[OFF]",
}


def format_health_report(report: HealthReport) -> str:
    """Format a health report as text.

    Args:
        report: The report to format

    Returns:
        The report, one line per module followed by the totals
    """
    lines = [
        "Module Health Report",
        f"Overall: {report.overall_status.value}",
        "",
    ]

    for health in report.modules:
        line = f"{_STATUS_MARKERS[health.status]} {health.module_name}: {health.status.value}"
        if health.message:
            line += f" - {health.message}"
        lines.append(f"{line} ({health.latency_ms:.1f}ms)")

    lines.extend([
        "",
        f"Total: {report.total_modules}",
        f"Healthy: {report.healthy}",
        f"Degraded: {report.degraded}",
        f"Unhealthy: {report.unhealthy}",
        f"Disabled: {report.disabled}",
    ])
    return "\n".join(lines)


# Global health checker, created on first use
_module_health_checker: Optional[ModuleHealthChecker] = None


def get_module_health_checker() -> ModuleHealthChecker:
    """Get the global module health checker.

    Returns:
        The global module health checker
    """
    global _module_health_checker
    if _module_health_checker is None:
        _module_health_checker = ModuleHealthChecker()
    return _module_health_checker


def reset_module_health_checker() -> None:
    """Discard the global module health checker."""
    global _module_health_checker
    _module_health_checker = None


def set_module_health_checker(checker: ModuleHealthChecker) -> None:
    """Install a health checker as the global module health checker."""
    global _module_health_checker
    _module_health_checker = checker
