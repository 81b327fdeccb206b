"""
Event interfaces for the buildkernel.

This module defines the closed catalog of events the orchestrator emits and
the payload schema of each one. Payload models forbid extra fields so that
the contract between emitters and subscribers stays testable.
"""

from enum import Enum
from typing import Dict, List, Literal, Optional, Type, Union
from pydantic import BaseModel, ConfigDict


class EventName(str, Enum):
    """Enumeration of the events in the catalog."""
    MODEL_SELECTED = "model:selected"
    TASK_STARTED = "task:started"
    TASK_COMPLETED = "task:completed"
    TASK_FAILED = "task:failed"
    MEMORY_STORED = "memory:stored"
    WORKFLOW_TRANSITIONED = "workflow:transitioned"
    COLLABORATION_CHANGED = "collaboration:changed"
    BUILD_STARTED = "build:started"
    BUILD_COMPLETED = "build:completed"
    RESEARCH_COMPLETED = "research:completed"
    SPAN_CREATED = "span:created"


def to_event_name(name: Union[str, EventName]) -> EventName:
    """Convert an event name to an EventName.

    Args:
        name: The event or its name

    Returns:
        The event name

    Raises:
        ValueError: If the name is not in the catalog
    """
    if isinstance(name, EventName):
        return name
    try:
        return EventName(name)
    except ValueError:
        raise ValueError(f"Unknown event '{name}'") from None


class EventPayload(BaseModel):
    """Base class for event payloads."""

    model_config = ConfigDict(extra="forbid", protected_namespaces=())


class ModelSelectedEvent(EventPayload):
    agent_name: str
    task_id: str
    model_id: str
    model_name: str
    routing_reason: str
    latency_ms: Optional[float] = None


class TaskStartedEvent(EventPayload):
    task_id: str
    agent_name: str
    title: str
    build_id: str
    started_at: float


class TaskCompletedEvent(EventPayload):
    task_id: str
    agent_name: str
    success: bool
    duration_ms: float
    output_size: int
    ace_score: Optional[float] = None


class TaskFailedEvent(EventPayload):
    task_id: str
    agent_name: str
    error: str
    duration_ms: float
    recovery_attempted: Optional[bool] = None


class MemoryStoredEvent(EventPayload):
    node_id: str
    level: Literal["scene", "episode", "project", "portfolio"]
    task_id: str
    agent_name: str
    taste_score: Optional[float] = None


class WorkflowTransitionedEvent(EventPayload):
    node_id: str
    from_status: str
    to_status: str
    task_id: str
    triggered_downstream: List[str]


class CollaborationChangedEvent(EventPayload):
    session_id: str
    change_type: Literal["merge", "conflict", "resolve", "broadcast"]
    participant_count: int
    document_version: int


class BuildStartedEvent(EventPayload):
    build_id: str
    prd_id: str
    prd_name: str
    total_tasks: int
    enabled_modules: List[str]


class BuildCompletedEvent(EventPayload):
    build_id: str
    total_tasks: int
    successful_tasks: int
    failed_tasks: int
    total_duration_ms: float


class ResearchCompletedEvent(EventPayload):
    task_id: str
    query_count: int
    relevance_score: float
    cached_results: int


class SpanCreatedEvent(EventPayload):
    span_id: str
    operation_name: str
    module_name: str
    parent_span_id: Optional[str] = None


EVENT_PAYLOAD_MODELS: Dict[EventName, Type[EventPayload]] = {
    EventName.MODEL_SELECTED: ModelSelectedEvent,
    EventName.TASK_STARTED: TaskStartedEvent,
    EventName.TASK_COMPLETED: TaskCompletedEvent,
    EventName.TASK_FAILED: TaskFailedEvent,
    EventName.MEMORY_STORED: MemoryStoredEvent,
    EventName.WORKFLOW_TRANSITIONED: WorkflowTransitionedEvent,
    EventName.COLLABORATION_CHANGED: CollaborationChangedEvent,
    EventName.BUILD_STARTED: BuildStartedEvent,
    EventName.BUILD_COMPLETED: BuildCompletedEvent,
    EventName.RESEARCH_COMPLETED: ResearchCompletedEvent,
    EventName.SPAN_CREATED: SpanCreatedEvent,
}
