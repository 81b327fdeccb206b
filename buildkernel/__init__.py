"""
buildkernel: the integration kernel of a multi-agent build orchestrator.

Feature modules plug into a build through a typed event bus, priority-ordered
lifecycle hooks and lazily initialized adapters.
"""

__version__ = "0.1.0"
