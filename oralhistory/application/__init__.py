"""Application services."""

from .workflow import (
    RecordWorkflow,
    build_workflow,
    close_workflow_service,
    configure_workflow_service,
    generate_record_id,
    get_workflow_service,
    reset_workflow_state,
)

__all__ = [
    "RecordWorkflow",
    "build_workflow",
    "close_workflow_service",
    "configure_workflow_service",
    "generate_record_id",
    "get_workflow_service",
    "reset_workflow_state",
]
