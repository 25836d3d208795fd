"""Storage backends for the approval engine."""
from .base import WorkflowRepository  # noqa: F401
from .memory import InMemoryRepository  # noqa: F401

__all__ = ["InMemoryRepository", "WorkflowRepository"]
