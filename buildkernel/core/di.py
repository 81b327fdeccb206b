"""
Dependency Injection system for the buildkernel.

This module provides a dependency injection container that supports:
- Registering services by name with zero-argument factories
- Singleton and transient lifetimes
- Factories that resolve other services from the same container
- Injecting resolved services into function parameters
"""

from typing import Dict, Any, Optional, List, TypeVar, Callable
import inspect
import logging
from functools import wraps

logger = logging.getLogger(__name__)

T = TypeVar('T')


class Lifetime:
    """Enumeration of dependency lifetimes."""
    SINGLETON = "singleton"  # One instance until the registration changes
    TRANSIENT = "transient"  # New instance each time


class ServiceNotRegisteredError(LookupError):
    """Exception raised when resolving a name that has no registration."""

    def __init__(self, name: str, registered: List[str]):
        """Initialize the error.

        Args:
            name: The name that was resolved
            registered: The names registered at the time of the call
        """
        self.name = name
        self.registered = list(registered)
        available = ", ".join(self.registered) if self.registered else "(none)"
        super().__init__(
            f"Service '{name}' is not registered. Registered services: {available}"
        )


class DependencyRegistration:
    """Registration of a dependency in the container."""

    def __init__(
        self,
        name: str,
        factory: Callable[[], Any],
        lifetime: str = Lifetime.SINGLETON
    ):
        """Initialize the dependency registration.

        Args:
            name: The name of the service
            factory: Zero-argument function producing the service
            lifetime: The lifetime of the service

        Raises:
            ValueError: If the lifetime is unknown
        """
        if lifetime not in (Lifetime.SINGLETON, Lifetime.TRANSIENT):
            raise ValueError(f"Unknown lifetime '{lifetime}' for service '{name}'")

        self.name = name
        self.factory = factory
        self.lifetime = lifetime
        self.instance = None
        self.has_instance = False

    def resolve(self) -> Any:
        """Resolve the dependency.

        Returns:
            The resolved dependency
        """
        if self.lifetime == Lifetime.SINGLETON:
            # None is a legitimate singleton value, so track creation separately
            if self.has_instance:
                return self.instance

            instance = self.factory()
            self.instance = instance
            self.has_instance = True
            return instance

        # TRANSIENT
        return self.factory()


class Container:
    """Dependency injection container for the buildkernel."""

    def __init__(self):
        """Initialize the dependency injection container."""
        self._registrations: Dict[str, DependencyRegistration] = {}

    def register(
        self,
        name: str,
        factory: Callable[[], T],
        lifetime: str = Lifetime.SINGLETON
    ) -> None:
        """Register a dependency.

        Registering a name that is already registered replaces the factory and
        lifetime and discards any cached instance. The name keeps its original
        position in the registration order.

        Args:
            name: The name of the service
            factory: Zero-argument function producing the service
            lifetime: The lifetime of the service
        """
        replaced = name in self._registrations

        self._registrations[name] = DependencyRegistration(
            name=name,
            factory=factory,
            lifetime=lifetime
        )

        if replaced:
            logger.debug(f"Replaced dependency: {name} ({lifetime})")
        else:
            logger.debug(f"Registered dependency: {name} ({lifetime})")

    def register_instance(self, name: str, instance: T) -> None:
        """Register an existing instance as a singleton.

        Args:
            name: The name of the service
            instance: The instance of the service
        """
        self.register(name, lambda: instance, Lifetime.SINGLETON)

    def resolve(self, name: str) -> Any:
        """Resolve a dependency.

        Args:
            name: The service name

        Returns:
            The resolved dependency

        Raises:
            ServiceNotRegisteredError: If the service is not registered
        """
        registration = self._registrations.get(name)
        if registration is None:
            raise ServiceNotRegisteredError(name, self.get_registered_names())

        return registration.resolve()

    def has(self, name: str) -> bool:
        """Check whether a service is registered."""
        return name in self._registrations

    def unregister(self, name: str) -> bool:
        """Unregister a dependency and discard its cached instance.

        Args:
            name: The service name

        Returns:
            True if the service was registered, False otherwise
        """
        if name not in self._registrations:
            return False

        del self._registrations[name]
        logger.debug(f"Unregistered dependency: {name}")
        return True

    def clear(self) -> None:
        """Remove all registrations and cached instances."""
        self._registrations.clear()

    def get_registered_names(self) -> List[str]:
        """Get the registered service names in registration order."""
        return list(self._registrations.keys())

    def inject(self, func: Callable) -> Callable:
        """Decorator to inject dependencies into a function.

        Parameters that are not passed by the caller are resolved by name.
        Parameters with a default value are only resolved if their name is
        registered.

        Args:
            func: The function to inject dependencies into

        Returns:
            The decorated function
        """
        params = inspect.signature(func).parameters

        @wraps(func)
        def wrapper(*args, **kwargs):
            resolved_kwargs = {}

            for i, (name, param) in enumerate(params.items()):
                # Skip *args and **kwargs
                if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                    continue

                # Skip parameters that are already provided
                if name in kwargs or i < len(args):
                    continue

                if self.has(name):
                    resolved_kwargs[name] = self.resolve(name)
                elif param.default is inspect.Parameter.empty:
                    raise ServiceNotRegisteredError(name, self.get_registered_names())

            return func(*args, **{**resolved_kwargs, **kwargs})

        return wrapper


# Global dependency injection container, created on first use
_container: Optional[Container] = None


def get_container() -> Container:
    """Get the global dependency injection container.

    Returns:
        The global dependency injection container
    """
    global _container
    if _container is None:
        _container = Container()
    return _container


def reset_container() -> None:
    """Discard the global container so the next get_container() builds a new one."""
    global _container
    _container = None


def inject(func: Callable) -> Callable:
    """Decorator to inject dependencies from the global container.

    The container is looked up on every call, so the decorator keeps working
    across reset_container().

    Args:
        func: The function to inject dependencies into

    Returns:
        The decorated function
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        return get_container().inject(func)(*args, **kwargs)

    return wrapper
