"""
Batch orchestration for recognition and reconciliation.
"""

from .context import BatchContext, MemoryMonitor
from .orchestrator import (
    BatchOrchestrator,
    BatchProgress,
    BatchResult,
    BatchStage,
    FileFailure,
    FileState,
    create_placeholder_record,
    process_batch
)
from .retry import backoff_delay, retry_with_backoff

__all__ = [
    "BatchContext",
    "MemoryMonitor",
    "BatchOrchestrator",
    "BatchProgress",
    "BatchResult",
    "BatchStage",
    "FileFailure",
    "FileState",
    "create_placeholder_record",
    "process_batch",
    "backoff_delay",
    "retry_with_backoff"
]
