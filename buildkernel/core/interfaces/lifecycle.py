"""
Lifecycle interfaces for the buildkernel.

This module defines the contracts shared by the hook registry, the lazy
adapters and the feature modules, including:
- The closed set of lifecycle phases of a build
- Pydantic models for the context passed to each phase
- The handler set a feature module exposes
"""

from dataclasses import dataclass, fields
from enum import Enum
from typing import Dict, Any, List, Optional, Callable, Mapping, Type, Union
from pydantic import BaseModel, ConfigDict, Field


class HookPhase(str, Enum):
    """Enumeration of lifecycle phases.

    The value of each phase is the attribute name a handler set uses for it.
    """
    BEFORE_BUILD = "on_before_build"
    BEFORE_TASK = "on_before_task"
    AFTER_TASK = "on_after_task"
    TASK_ERROR = "on_task_error"
    HANDOFF = "on_handoff"
    BUILD_COMPLETE = "on_build_complete"


def to_phase(phase: Union[str, HookPhase]) -> HookPhase:
    """Convert a phase name to a HookPhase.

    Args:
        phase: The phase or its name

    Returns:
        The phase

    Raises:
        ValueError: If the name is not one of the six lifecycle phases
    """
    if isinstance(phase, HookPhase):
        return phase
    try:
        return HookPhase(phase)
    except ValueError:
        valid = ", ".join(p.value for p in HookPhase)
        raise ValueError(f"Unknown lifecycle phase '{phase}'. Valid phases: {valid}") from None


class LifecycleModel(BaseModel):
    """Base class for lifecycle context models."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())


class BuildContext(LifecycleModel):
    """Context passed to on_before_build."""

    build_id: str
    prd_id: str
    prd_name: str
    started_at: str
    options: Dict[str, Any] = Field(default_factory=dict)


class TaskContext(LifecycleModel):
    """Context passed to on_before_task."""

    task_id: str
    title: str
    agent_name: str
    dependencies: List[str] = Field(default_factory=list)


class TaskResult(LifecycleModel):
    """Result passed to on_after_task and on_task_error."""

    task_id: str
    agent_name: str
    success: bool
    duration_ms: float
    output: Optional[str] = None
    error: Optional[str] = None
    ace_score: Optional[float] = None


class HandoffPayload(LifecycleModel):
    """State accumulated across agents and carried by a handoff."""

    memory: List[str] = Field(default_factory=list)
    output: List[str] = Field(default_factory=list)
    model_preference: Optional[str] = None


class HandoffContext(LifecycleModel):
    """Context passed to on_handoff."""

    from_agent: str
    to_agent: str
    task_id: str
    payload: HandoffPayload = Field(default_factory=HandoffPayload)


class BuildResult(LifecycleModel):
    """Result passed to on_build_complete."""

    build_id: str
    prd_id: str
    total_tasks: int
    successful_tasks: int
    failed_tasks: int
    total_duration_ms: float
    average_ace_score: float = 0.0


PHASE_CONTEXT_MODELS: Dict[HookPhase, Type[LifecycleModel]] = {
    HookPhase.BEFORE_BUILD: BuildContext,
    HookPhase.BEFORE_TASK: TaskContext,
    HookPhase.AFTER_TASK: TaskResult,
    HookPhase.TASK_ERROR: TaskResult,
    HookPhase.HANDOFF: HandoffContext,
    HookPhase.BUILD_COMPLETE: BuildResult,
}


class LifecycleHookSpec(BaseModel):
    """Schema of a hook registration, used to validate declarative hook lists."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: HookPhase
    module_name: str
    priority: int
    handler: Callable[..., Any]
    id: Optional[str] = None


def validate_context(phase: Union[str, HookPhase], data: Any) -> LifecycleModel:
    """Validate a context against the model of a phase.

    Args:
        phase: The lifecycle phase
        data: A mapping or an instance of the phase's model

    Returns:
        The validated context model

    Raises:
        ValueError: If the phase is unknown
        pydantic.ValidationError: If the data does not match the model
    """
    model = PHASE_CONTEXT_MODELS[to_phase(phase)]
    if isinstance(data, model):
        return data
    return model.model_validate(data)


LifecycleHandler = Callable[[Any], Any]


@dataclass
class LifecycleHandlers:
    """Set of lifecycle handlers a feature module exposes.

    Every handler is optional and may be synchronous or a coroutine function.
    """

    on_before_build: Optional[LifecycleHandler] = None
    on_before_task: Optional[LifecycleHandler] = None
    on_after_task: Optional[LifecycleHandler] = None
    on_task_error: Optional[LifecycleHandler] = None
    on_handoff: Optional[LifecycleHandler] = None
    on_build_complete: Optional[LifecycleHandler] = None

    def get(self, phase: Union[str, HookPhase]) -> Optional[LifecycleHandler]:
        """Get the handler for a phase, or None if the module has none."""
        return getattr(self, to_phase(phase).value)

    def phases(self) -> List[HookPhase]:
        """Get the phases this handler set has a handler for."""
        return [HookPhase(f.name) for f in fields(self) if getattr(self, f.name) is not None]


def get_phase_handler(handlers: Any, phase: Union[str, HookPhase]) -> Optional[LifecycleHandler]:
    """Look up the handler for a phase on an arbitrary handler set.

    Handler sets may be LifecycleHandlers, mappings keyed by phase name, or
    any object with attributes named after the phases.

    Args:
        handlers: The handler set
        phase: The lifecycle phase

    Returns:
        The handler, or None if the handler set has none for the phase
    """
    name = to_phase(phase).value
    if isinstance(handlers, Mapping):
        handler = handlers.get(name)
    else:
        handler = getattr(handlers, name, None)
    return handler if callable(handler) else None


__all__ = [
    "HookPhase",
    "to_phase",
    "BuildContext",
    "TaskContext",
    "TaskResult",
    "HandoffPayload",
    "HandoffContext",
    "BuildResult",
    "PHASE_CONTEXT_MODELS",
    "LifecycleHookSpec",
    "validate_context",
    "LifecycleHandler",
    "LifecycleHandlers",
    "get_phase_handler",
]
