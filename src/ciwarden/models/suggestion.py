"""Remediation suggestion model."""

from enum import Enum

from pydantic import BaseModel, Field


class ExecutionStrategy(str, Enum):
    """How a failure is expected to be fixed."""

    DETERMINISTIC = "deterministic"
    AI = "ai"
    MANUAL = "manual"


class Suggestion(BaseModel):
    """Human-facing remediation hint for a failure."""

    command: str
    auto_fixable: bool = False
    execution_strategy: ExecutionStrategy = ExecutionStrategy.MANUAL
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
